"""
Deglet - Utilities

Small helpers shared by the key hierarchy, the token protocol and the blob
store: random hex, canonical JSON, base64url and the Bitcoin-style hashes.
"""

import base64
import binascii
import hashlib
import json
import secrets
from typing import Any

from Crypto.Hash import RIPEMD160

from .errors import ConfigError


# =============================================================================
# Random
# =============================================================================

def random_hex(num_words: int) -> str:
    """
    Generate 32 bits * num_words of random data encoded as hex.

    num_words must be at least 1 (which produces a string of length 8).
    """
    nw = int(num_words)
    if nw < 1:
        raise ConfigError("num_words < 1")
    return secrets.token_hex(4 * nw)


# =============================================================================
# Canonical JSON
# =============================================================================

def canonical_json(obj: Any) -> bytes:
    """
    Serialize obj to canonical JSON bytes.

    Format:
    - Keys sorted lexicographically
    - No whitespace (separators=(",", ":"))
    - UTF-8 without escaping non-ASCII

    Signer and verifier both go through this function, so the same object
    always yields the same bytes.
    """
    json_str = json.dumps(obj, separators=(",", ":"), sort_keys=True, ensure_ascii=False)
    return json_str.encode('utf-8')


# =============================================================================
# base64url (unpadded)
# =============================================================================

def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(text: str) -> bytes:
    """
    Decode unpadded base64url.

    Only the canonical encoding is accepted (no padding, zero trailing bits).

    Raises:
        ValueError: if text is not valid base64url
    """
    if not isinstance(text, str):
        raise ValueError("base64url input must be str")
    try:
        raw = text.encode("ascii")
    except UnicodeEncodeError as e:
        raise ValueError(f"non-ascii base64url: {e}") from e
    raw += b"=" * (-len(raw) % 4)
    try:
        data = base64.b64decode(raw, altchars=b"-_", validate=True)
    except binascii.Error as e:
        raise ValueError(f"invalid base64url: {e}") from e
    # Unused trailing bits must be zero: one byte string, one encoding
    if b64url_encode(data) != text:
        raise ValueError("non-canonical base64url")
    return data


def b64e(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def b64d(text: str) -> bytes:
    return base64.b64decode(text.encode("ascii"), validate=True)


# =============================================================================
# Hashes
# =============================================================================

def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def sha256d(data: bytes) -> bytes:
    """Double SHA-256 (Bitcoin message and checksum hash)."""
    return sha256(sha256(data))


def hash160(data: bytes) -> bytes:
    """RIPEMD160(SHA256(data)), used for addresses and key fingerprints."""
    return RIPEMD160.new(sha256(data)).digest()
