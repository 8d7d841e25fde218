"""
Argument guards used at repository boundaries.

Guards run before any session interaction so a bad argument never
reaches the store.
"""

from typing import Any, Optional, Sized


class ArgumentNullError(ValueError):
    """Raised when a required argument is None."""

    def __init__(self, name: str, message: Optional[str] = None):
        self.name = name
        super().__init__(message or f"{name} must not be None")


class ArgumentEmptyError(ValueError):
    """Raised when a required argument is empty."""

    def __init__(self, name: str, message: Optional[str] = None):
        self.name = name
        super().__init__(message or f"{name} must not be empty")


def not_none(value: Any, name: str) -> None:
    """Raise ArgumentNullError if value is None."""
    if value is None:
        raise ArgumentNullError(name)


def not_empty(value: Optional[Sized], name: str) -> None:
    """Raise if value is None or has no items.

    Strings made only of whitespace count as empty.
    """
    not_none(value, name)
    if isinstance(value, str):
        if not value.strip():
            raise ArgumentEmptyError(name)
    elif len(value) == 0:
        raise ArgumentEmptyError(name)
