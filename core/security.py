"""
core/security.py -- Secure random generation.

secrets.token_bytes() reads from the OS CSPRNG (os.urandom). It can only fail
when the platform has no usable entropy source, which surfaces as OSError or
NotImplementedError; both are translated to EntropyError so callers deal with
a single failure type.
"""

import secrets

from core.errors import EntropyError


def random_hex(byte_length: int) -> str:
    """Return byte_length secure random bytes as a hex string (2 * byte_length chars)."""
    if byte_length < 0:
        raise ValueError("byte_length must be non-negative")
    try:
        return secrets.token_bytes(byte_length).hex()
    except (OSError, NotImplementedError) as exc:
        raise EntropyError("secure random source unavailable") from exc
