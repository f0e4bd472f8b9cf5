"""
auth/credentials.py -- Password hashing and user creation workflows.

Passwords: bcrypt directly (no passlib wrapper). bcrypt is the right choice
    for low-entropy secrets because its cost factor makes brute force
    expensive. The algorithm is a black box to the rest of the system:
    only hash_password() and verify_password() know about it.

Timing equalization: authenticate_user() always runs bcrypt, against
    _DUMMY_HASH when the username does not exist, so response time does not
    reveal which usernames are registered.

Signing secrets: 32 random bytes (64 hex chars) per user, from
    core.security.random_hex(). A fresh secret is generated on creation and
    on every rotation.
"""

from __future__ import annotations

import bcrypt

from auth.models import User
from auth.store import UserStore
from core.security import random_hex
from core.snowflake import IdGenerator

SECRET_BYTES = 32


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Passwords longer than 72 bytes are truncated by bcrypt. The API layer caps
    passwords at 72 characters so this never matters in practice.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at import so the first failed login is not measurably slower.
_DUMMY_HASH: str = hash_password("stormstarter_timing_dummy")


def password_matches(user: User, plain: str) -> bool:
    if not user.hashed_password:
        return False
    return verify_password(plain, user.hashed_password)


def new_secret() -> str:
    return random_hex(SECRET_BYTES)


def create_user(store: UserStore, ids: IdGenerator, username: str, password: str | None) -> User:
    """Build, persist and return a new user with a fresh snowflake and secret.

    Raises sqlalchemy.exc.IntegrityError if the username is already taken.
    """
    user = User(
        username=username,
        snowflake=ids.next_id(),
        secret=new_secret(),
        hashed_password=hash_password(password) if password is not None else None,
    )
    user.id = store.create_user(user)
    return user


def rotate_secret(store: UserStore, user: User) -> User:
    """Give the user a new signing secret. Every previously issued token stops verifying."""
    user.secret = new_secret()
    store.rotate_secret(user.snowflake, user.secret)
    return user


def authenticate_user(store: UserStore, username: str, password: str) -> User | None:
    """Return the user on a correct username/password pair, None otherwise.

    Always runs bcrypt, whether or not the user exists.
    """
    user = store.get_by_username(username)
    if user is None or user.hashed_password is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user
