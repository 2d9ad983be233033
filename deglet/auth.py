"""
Deglet - Signed Tokens

Every request to the remote service is a three-part token:

    base64url(header) . base64url(payload) . base64url(signature)

- header: {"typ": "JWT", "alg": "CUSTOM-BITCOIN-SIGN", "kid": <address>}
- payload: caller fields + claims {exp, iat, aud}
- signature: Bitcoin signed-message signature over "header.payload"

The signer's address travels in the header ("kid"), so the verifier needs no
key directory: it recovers the public key from the signature and checks that
it hashes to that address. Whether that address is one the verifier accepts
is a separate policy decision (the is_trusted predicate).

Both JSON segments go through canonical_json() so signer and verifier
produce identical bytes.
"""

import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .errors import (
    AudienceMismatch,
    MalformedToken,
    ReservedClaim,
    SignatureInvalid,
    TokenExpired,
    UntrustedSigner,
)
from .logger import get_logger
from .signing import SigningKey, verify_message
from .util import b64url_decode, b64url_encode, canonical_json


# =============================================================================
# Configuration
# =============================================================================

TOKEN_TYPE = "JWT"
ALGORITHM = "CUSTOM-BITCOIN-SIGN"
CONTENT_TYPE = "application/jose"
DEFAULT_TTL = 3600       # seconds
RESERVED_CLAIMS = ("exp", "iat", "aud")

log = get_logger(__name__)


# =============================================================================
# Types
# =============================================================================

@dataclass(frozen=True)
class Claims:
    """
    Registered claims added to every payload.

    - exp: expiration, float seconds since epoch
    - iat: issued at, integer milliseconds since epoch (used as a nonce)
    - aud: intended recipient, usually the request URL (may be None)
    """
    exp: float
    iat: int
    aud: Optional[str]

    @classmethod
    def issue(cls, audience: Optional[str], ttl: float = DEFAULT_TTL,
              now: Optional[float] = None) -> "Claims":
        if now is None:
            now = time.time()
        return cls(exp=float(now) + ttl, iat=int(now * 1000), aud=audience)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Claims":
        exp = payload.get("exp")
        iat = payload.get("iat")
        aud = payload.get("aud")
        if isinstance(exp, bool) or not isinstance(exp, (int, float)):
            raise MalformedToken("Invalid payload, exp must be a number")
        if isinstance(iat, bool) or not isinstance(iat, int):
            raise MalformedToken("Invalid payload, iat must be an integer")
        if aud is not None and not isinstance(aud, str):
            raise MalformedToken("Invalid payload, aud must be a string or null")
        return cls(exp=exp, iat=iat, aud=aud)

    def to_dict(self) -> Dict[str, Any]:
        return {"exp": self.exp, "iat": self.iat, "aud": self.aud}


@dataclass(frozen=True)
class VerifiedToken:
    """Header and payload of a token that passed every check."""
    header: Dict[str, Any]
    payload: Dict[str, Any]

    @property
    def kid(self) -> str:
        return self.header["kid"]

    @property
    def claims(self) -> Claims:
        return Claims.from_payload(self.payload)

    @property
    def body(self) -> Dict[str, Any]:
        """Payload without the registered claims."""
        return {k: v for k, v in self.payload.items() if k not in RESERVED_CLAIMS}


# =============================================================================
# Encoding
# =============================================================================

def jwt_header(key_id: str) -> str:
    """Return the base64url header segment carrying the signer's address."""
    data = {
        "typ": TOKEN_TYPE,
        "alg": ALGORITHM,
        "kid": key_id,
    }
    return b64url_encode(canonical_json(data))


def _decode_segment(segment: str, name: str) -> Dict[str, Any]:
    try:
        obj = json.loads(b64url_decode(segment).decode("utf-8"))
    except (ValueError, UnicodeDecodeError) as e:
        raise MalformedToken(f"Invalid {name}, cannot decode ({e})") from e
    if not isinstance(obj, dict):
        raise MalformedToken(f"Invalid {name}, expected a JSON object")
    return obj


# =============================================================================
# Sign / Verify
# =============================================================================

def sign(
    audience: Optional[str],
    payload: Optional[Dict[str, Any]],
    sign_key: SigningKey,
    ttl: float = DEFAULT_TTL,
    now: Optional[float] = None,
) -> str:
    """
    Return a signed token for audience carrying payload.

    The expiration claim defaults to one hour in the future and the issued-at
    claim is the current time in milliseconds.

    Args:
        audience: Expected receiver, usually the request URL (may be None)
        payload: Caller fields; must not use exp, iat or aud
        sign_key: SigningKey whose address becomes the header's kid
        ttl: Seconds until expiration
        now: Override for the current time (seconds)

    Raises:
        ReservedClaim: if payload uses a claim name
    """
    payload = dict(payload or {})
    clashing = sorted(set(payload) & set(RESERVED_CLAIMS))
    if clashing:
        raise ReservedClaim(f"Payload uses reserved claim names: {', '.join(clashing)}")

    claims = Claims.issue(audience, ttl, now)
    payload.update(claims.to_dict())

    msg = jwt_header(sign_key.address) + "." + b64url_encode(canonical_json(payload))
    signature = b64url_encode(sign_key.sign(msg.encode("ascii")))

    log.debug("signed token kid=%s aud=%s iat=%d", sign_key.address, audience, claims.iat)
    return msg + "." + signature


def verify(
    audience: Optional[str],
    raw: str,
    is_trusted: Optional[Callable[[str], bool]] = None,
    now: Optional[float] = None,
) -> VerifiedToken:
    """
    Verify a token and return its header and payload.

    Checks, in order: structure, header, signature, signer trust, payload,
    audience, expiration. Claims are only read after the signature matched.

    Args:
        audience: Audience the token must have been issued for
        raw: Token string
        is_trusted: Optional predicate deciding whether a valid signer is
            acceptable for this audience
        now: Override for the current time (seconds)

    Raises:
        MalformedToken, SignatureInvalid, UntrustedSigner,
        AudienceMismatch, TokenExpired
    """
    if not isinstance(raw, str):
        raise MalformedToken("Invalid raw data, expected a string")
    pieces = raw.split(".")
    if len(pieces) != 3:
        raise MalformedToken("Invalid raw data")
    raw_header, raw_payload, raw_signature = pieces

    header = _decode_segment(raw_header, "header")
    key = header.get("kid")
    if not key or not isinstance(key, str):
        raise MalformedToken("Invalid header, missing key id")

    try:
        signature = b64url_decode(raw_signature)
    except ValueError as e:
        raise SignatureInvalid(f"Signature is not valid base64url ({e})") from e
    try:
        message = (raw_header + "." + raw_payload).encode("ascii")
    except UnicodeEncodeError as e:
        raise MalformedToken("Invalid raw data, non-ascii segment") from e
    if not verify_message(key, message, signature):
        log.debug("signature mismatch for kid=%s", key)
        raise SignatureInvalid("Signature does not match")

    if is_trusted is not None and not is_trusted(key):
        raise UntrustedSigner(f"Signer {key} is not trusted")

    payload = _decode_segment(raw_payload, "payload")
    claims = Claims.from_payload(payload)

    if claims.aud != audience:
        raise AudienceMismatch(f"Audience mismatch ({claims.aud} != {audience})")
    if now is None:
        now = time.time()
    if now > claims.exp:
        raise TokenExpired("Payload expired")

    return VerifiedToken(header=header, payload=payload)
