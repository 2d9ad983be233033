"""
Deglet - Error Types

Every failure the library can raise is one of these classes, so callers can
react by kind (an expired token means "sign in again", a bad signature must
never be retried).

All errors are local and synchronous. Nothing here retries.
"""

from typing import Any, Dict, Optional


class DegletError(Exception):
    """Base class for all deglet errors."""


# =============================================================================
# Local validation
# =============================================================================

class ConfigError(DegletError, ValueError):
    """Invalid derivation parameters (iteration count, salt, word count...)."""


class InvalidPhrase(DegletError, ValueError):
    """Recovery phrase or recovery shares failed validation."""


class InvalidKeyLength(DegletError, ValueError):
    """A key could not be normalized to the expected byte length."""


class ReservedClaim(DegletError, ValueError):
    """Caller payload used a field name reserved for token claims."""


# =============================================================================
# Token protocol
# =============================================================================

class TokenError(DegletError):
    """Base class for token verification failures."""


class MalformedToken(TokenError, TypeError):
    """Wrong segment count, missing signer id or undecodable segment."""


class SignatureInvalid(TokenError):
    """Signature does not match the declared signer."""


class UntrustedSigner(TokenError):
    """Signature is valid but the signer is not trusted by the verifier."""


class AudienceMismatch(TokenError):
    """Token was issued for a different recipient."""


class TokenExpired(TokenError):
    """Token expiration time is in the past."""


# =============================================================================
# Blob store
# =============================================================================

class AuthenticationFailed(DegletError):
    """Ciphertext tag did not verify (tampering, wrong key, bad parameters)."""


# =============================================================================
# Remote API
# =============================================================================

class ApiError(DegletError):
    """Error reported by the remote service (or by the transport)."""

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        self.data = dict(data or {})
        self.code = self.data.get("code")
        super().__init__(self.data.get("error") or "API error")
