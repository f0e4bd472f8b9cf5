"""
auth/tokens.py -- Signed authentication tokens.

Wire format (ASCII, three segments joined by "."):

    b64(snowflake) . b64(issued_at_millis) . signature

  Signing is itsdangerous.Signer keyed with the user's secret (HMAC key
  derivation, SHA-256), so signature = base64url(HMAC-SHA256(k, "<seg1>.<seg2>"))
  unpadded, where k = HMAC-SHA256(user.secret, SIGNER_SALT).

Security design decisions:
  Per-user keys: every user signs with their own random secret instead of one
       process-wide key. Rotating a single user's secret revokes all of that
       user's tokens without touching anyone else's.

  No expiry: tokens carry an issue time but are not rejected for age. Secret
       rotation is the only revocation path (see DESIGN.md, token expiry).

  One failure value: verify() returns None for *every* failure (malformed,
       unknown user, stale secret, bad signature). Callers must not be able
       to tell "no such user" from "revoked" -- that would enable account
       enumeration. The route layer turns None into a 401.

  Byte-for-byte signature check: the expected segment from Signer.get_signature()
       is compared with hmac.compare_digest against the segment as sent.
       Signer.verify_signature() decodes first, and base64 decoding ignores the
       unused low bits of the final character, so two spellings of one
       signature would both pass.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Optional

from itsdangerous import BadData, Signer
from itsdangerous.encoding import base64_decode, base64_encode

from auth.models import DecodedToken, User

logger = logging.getLogger("stormstarter.auth")

DELIMITER = "."
SIGNER_SALT = "stormstarter.auth.token"

PrincipalLookup = Callable[[str], Optional[User]]


# ---------------------------------------------------------------------------
# Segment encoding
# ---------------------------------------------------------------------------


def _encode_segment(text: str) -> str:
    return base64_encode(text.encode("ascii")).decode("ascii")


def _decode_segment(segment: str) -> Optional[str]:
    """Decode a base64 segment, tolerating missing padding and either alphabet.

    Returns None instead of raising so verify() has a single failure path.
    """
    normalized = segment.replace("+", "-").replace("/", "_").rstrip("=")
    try:
        return base64_decode(normalized).decode("ascii")
    except (BadData, UnicodeDecodeError):
        return None


def secret_of(user: User) -> bytes:
    return user.secret.encode("utf-8")


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------


class TokenCodec:
    """Signs and verifies tokens.

    The codec holds no key material; the key is always the named user's
    *current* secret, fetched through the lookup passed to verify().
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        secret_of: Callable[[User], bytes] = secret_of,
    ) -> None:
        self._clock = clock
        self._secret_of = secret_of

    def signer(self, principal: User) -> Signer:
        return Signer(
            self._secret_of(principal),
            salt=SIGNER_SALT,
            sep=DELIMITER,
            key_derivation="hmac",
            digest_method=hashlib.sha256,
        )

    def sign(self, principal: User) -> str:
        issued_at_ms = int(self._clock() * 1000)
        payload = DELIMITER.join((_encode_segment(principal.snowflake), _encode_segment(str(issued_at_ms))))
        return self.signer(principal).sign(payload).decode("ascii")

    def verify(self, token: str, lookup: PrincipalLookup) -> Optional[DecodedToken]:
        """Return the decoded token, or None if it is not valid right now."""
        if not isinstance(token, str) or not token.isascii():
            return None
        chunks = token.split(DELIMITER)
        if len(chunks) != 3 or not all(chunks):
            return None
        snowflake_b64, issued_b64, signature = chunks

        snowflake = _decode_segment(snowflake_b64)
        issued_text = _decode_segment(issued_b64)
        if not snowflake or issued_text is None:
            return None
        issued_at = _parse_millis(issued_text)
        if issued_at is None:
            return None

        principal = lookup(snowflake)
        if principal is None:
            return None

        payload = f"{snowflake_b64}{DELIMITER}{issued_b64}"
        expected = self.signer(principal).get_signature(payload)
        if not hmac.compare_digest(expected, signature.encode("ascii")):
            return None

        return DecodedToken(
            snowflake=snowflake,
            issued_at=issued_at,
            signed_payload=payload,
            principal=principal,
        )


def _parse_millis(text: str) -> Optional[datetime]:
    text = text.strip()
    if not text.lstrip("-").isdigit():
        return None
    try:
        return datetime.fromtimestamp(int(text) / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


# ---------------------------------------------------------------------------
# User-level helpers
# ---------------------------------------------------------------------------

_codec = TokenCodec()


def issue_token(user: User) -> str:
    """Create a token for the user with the default codec."""
    return _codec.sign(user)


def find_by_token(token: str, lookup: PrincipalLookup) -> Optional[User]:
    """Return the user a token belongs to, or None if the token is invalid."""
    decoded = _codec.verify(token, lookup)
    return decoded.principal if decoded is not None else None
