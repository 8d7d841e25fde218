"""
Database models using SQLModel.

Relationships keep SQLAlchemy's default lazy loading, so related rows are
not fetched with their parent. Under an AsyncSession an unloaded relation
cannot be lazy-loaded implicitly; load it through the repository's
load_collection / load_reference helpers.
"""

from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy import Column, DateTime, Index, String
from sqlmodel import Field, Relationship, SQLModel

from core.security import new_security_stamp


def utc_now() -> datetime:
    """
    Get current time in UTC (timezone-naive) for database storage.

    Stores datetime in UTC without timezone info; convert to local time at
    the presentation layer.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TableModel(SQLModel):
    """Base for persistable entities.

    Table models subclass this with ``table=True`` and declare an ``id``
    primary key, which is what repositories resolve lookups against.
    """

    pass


class Role(TableModel, table=True):
    """Role model for user permissions and access control."""

    __tablename__ = "roles"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    name: str = Field(
        sa_column=Column(String(100), nullable=False, unique=True),
        description="Role name",
    )
    description: Optional[str] = Field(
        default=None,
        max_length=500,
        description="Role description",
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime, nullable=False),
    )

    # Relationships
    user_roles: List["UserRole"] = Relationship(back_populates="role")


class User(TableModel, table=True):
    """User model with UUID as primary key."""

    __tablename__ = "users"

    id: UUID = Field(
        default_factory=uuid4,
        primary_key=True,
        description="UUID primary key for user identification",
    )
    username: str = Field(
        sa_column=Column(String(50), unique=True, nullable=False),
        description="Unique username for authentication",
    )
    password_hash: str = Field(
        max_length=500,
        description="SHA-256 digest of the password (never plaintext)",
    )
    full_name: Optional[str] = Field(
        default=None, max_length=100, description="User's full name"
    )
    age: Optional[int] = Field(default=None, description="User's age")
    is_active: bool = Field(default=True, description="Whether user account is active")
    security_stamp: str = Field(
        default_factory=new_security_stamp,
        max_length=64,
        description="Opaque token rotated to invalidate issued credentials",
    )
    last_login_date: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime, nullable=True),
        description="Last successful login (UTC)",
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime, nullable=False),
    )

    # Relationships
    user_roles: List["UserRole"] = Relationship(back_populates="user")

    def __repr__(self) -> str:
        return f"User(id={self.id!r}, username={self.username!r})"


class UserRole(TableModel, table=True):
    """User-Role junction table for many-to-many relationship."""

    __tablename__ = "user_roles"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: UUID = Field(foreign_key="users.id", description="User UUID")
    role_id: UUID = Field(foreign_key="roles.id", description="Role ID")
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime, nullable=False),
    )

    # Relationships
    user: Optional["User"] = Relationship(back_populates="user_roles")
    role: Optional["Role"] = Relationship(back_populates="user_roles")

    __table_args__ = (
        Index("ix_user_roles_user_id", "user_id"),
        Index("ix_user_roles_role_id", "role_id"),
        Index("ix_user_roles_unique", "user_id", "role_id", unique=True),
    )
