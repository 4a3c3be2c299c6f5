"""Opaque revision tokens ("zookies").

Callers receive a zookie from every write and hand it back on later
reads to ask for a snapshot at least as fresh as their own write. The
token wraps the integer revision so clients do not depend on its shape.
"""

from __future__ import annotations

import base64
import binascii

from authz.domain.value_objects import Revision

_PREFIX = "v1:"


class InvalidZookieError(ValueError):
    """Raised when a zookie cannot be decoded."""


def encode_zookie(revision: Revision) -> str:
    """Encode a revision as an opaque token."""
    if revision < 0:
        raise ValueError("Revision must be non-negative")
    raw = f"{_PREFIX}{revision}".encode("ascii")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_zookie(token: str) -> Revision:
    """Decode a token produced by ``encode_zookie``.

    Raises:
        InvalidZookieError: If the token is malformed
    """
    padded = token + "=" * (-len(token) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii")).decode("ascii")
    except (binascii.Error, UnicodeError) as e:
        raise InvalidZookieError(f"Invalid zookie: {token!r}") from e

    if not raw.startswith(_PREFIX) or not raw[len(_PREFIX) :].isdigit():
        raise InvalidZookieError(f"Invalid zookie: {token!r}")
    return int(raw[len(_PREFIX) :])
