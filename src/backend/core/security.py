"""
Security helpers for credential storage.

Passwords are stored as a deterministic one-way digest so a user can be
looked up by username and hash in a single query.
"""

import base64
import hashlib
from uuid import uuid4


def get_sha256_hash(value: str) -> str:
    """Hash a string with SHA-256.

    Args:
        value: Plain text to hash (encoded as UTF-8)

    Returns:
        Base64-encoded 32-byte digest (44 characters)
    """
    digest = hashlib.sha256(value.encode("utf-8")).digest()
    return base64.b64encode(digest).decode("ascii")


def new_security_stamp() -> str:
    """Generate a fresh opaque security stamp.

    A new stamp invalidates anything issued against the previous one.
    """
    return str(uuid4())
