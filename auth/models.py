"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and services
do the work.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class User:
    """A principal: the identity tokens are issued for.

    snowflake is the durable external identifier and the first token segment.
    secret is the per-user signing key (hex text). Replacing it invalidates
    every token issued so far -- it is the only revocation mechanism.
    hashed_password is None for users that cannot log in with a password.
    """

    username: str
    snowflake: str
    secret: str
    id: Optional[int] = None
    hashed_password: Optional[str] = None
    created_at: Optional[str] = None


@dataclass(frozen=True)
class DecodedToken:
    """A token that passed verification, with the principal it names."""

    snowflake: str
    issued_at: datetime
    signed_payload: str
    principal: User
