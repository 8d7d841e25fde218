"""
Database models using SQLModel.

Import models from this package to ensure they're registered on the
SQLModel metadata before tables are created.
"""
from .models import (
    TableModel,
    Role,
    User,
    UserRole,
    utc_now,
)

__all__ = [
    "TableModel",
    "Role",
    "User",
    "UserRole",
    "utc_now",
]
