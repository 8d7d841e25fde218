"""
Repository layer for database operations.

This package contains all data access logic isolated from business logic.
Repositories borrow the session they are constructed with; the caller's
session scope owns its lifecycle.
"""

from repositories.generic_repository import AsyncGenericRepository, GenericRepository
from repositories.user_repository import DuplicateUsernameError, UserRepository

__all__ = [
    "AsyncGenericRepository",
    "GenericRepository",
    "DuplicateUsernameError",
    "UserRepository",
]
