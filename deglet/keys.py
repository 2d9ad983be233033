"""
Deglet - Key Hierarchy

Turns a username and password into everything a client needs, without ever
storing a secret on the device.

Derivation:
    1. (username, password) + salt -> PBKDF2-HMAC-SHA256 -> 32 bytes entropy
    2. entropy -> BIP-39 phrase (24 words) = the recovery phrase
    3. phrase -> BIP-39 seed (64 bytes)
    4. seed -> HKDF -> subkeys (sign, encrypt, wallet), one info label each

Step 1 is the expensive, iteration-tunable part. Steps 2-4 only depend on the
phrase, so recover() rebuilds identical keys from the phrase alone.

The server keeps {username, check, iterations, salt} so a returning user can
find their parameters with check_bytes() and derive again.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Union

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from mnemonic import Mnemonic

from .errors import ConfigError, InvalidKeyLength, InvalidPhrase
from .logger import get_logger
from .signing import DEFAULT_NETWORK, ExtendedKey, SigningKey, get_network
from .util import canonical_json, random_hex


# =============================================================================
# Configuration
# =============================================================================

DEFAULT_ITERATIONS = 10000
MIN_ITERATIONS = 1000
SALT_WORDS = 4           # 4 x 32 bits = 16-byte salt
ENTROPY_SIZE = 32        # 256 bits -> 24-word phrase

CHECK_ITERATIONS = 16
CHECK_SIZE = 4
CHECK_SALT = b"deglet-check-v1"

SIGN_LABEL = "deglet-sign-v1"
ENCRYPT_LABEL = "deglet-encrypt-v1"
WALLET_LABEL = "deglet-wallet-v1"
ENCRYPT_KEY_SIZE = 16    # AES-128

_MNEMONIC = Mnemonic("english")

log = get_logger(__name__)


# =============================================================================
# Types
# =============================================================================

@dataclass(frozen=True)
class KeyBundle:
    """The derived key triple. Lives in memory only."""
    sign: SigningKey
    encrypt: bytes
    gen_wallet: ExtendedKey

    @property
    def address(self) -> str:
        return self.sign.address

    def __repr__(self):
        return f"KeyBundle(address={self.sign.address!r})"


@dataclass(frozen=True)
class Metadata:
    """What the server stores so the same user can derive again. Not secret."""
    username: str
    check: str
    iterations: int
    salt: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "username": self.username,
            "check": self.check,
            "iterations": self.iterations,
            "salt": self.salt,
        }


@dataclass(frozen=True)
class DerivedKeys:
    recovery_phrase: str
    keys: KeyBundle
    metadata: Metadata

    def __repr__(self):
        return f"DerivedKeys(address={self.keys.address!r}, metadata={self.metadata!r})"


# =============================================================================
# Key Derivation
# =============================================================================

def _validate_iterations(iterations) -> int:
    if isinstance(iterations, bool) or not isinstance(iterations, int):
        raise ConfigError(f"iterations must be an integer, got {iterations!r}")
    if iterations < MIN_ITERATIONS:
        raise ConfigError(f"iterations must be at least {MIN_ITERATIONS}, got {iterations}")
    return iterations


def _salt_bytes(salt: str) -> bytes:
    try:
        raw = bytes.fromhex(salt)
    except (TypeError, ValueError):
        raise ConfigError(f"salt must be a hex string, got {salt!r}") from None
    if not raw:
        raise ConfigError("salt must not be empty")
    return raw


def stretch(username: str, password: str, iterations: int, salt: str) -> bytes:
    """
    The expensive step: PBKDF2-HMAC-SHA256 over (username, password).

    The pair is serialized as a canonical JSON list so that ("ab", "c") and
    ("a", "bc") never collide.

    Returns:
        32 bytes of entropy
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=ENTROPY_SIZE,
        salt=_salt_bytes(salt),
        iterations=_validate_iterations(iterations),
    )
    return kdf.derive(canonical_json([username, password]))


def _hkdf(seed: bytes, info: str, length: int) -> bytes:
    h = HKDF(
        algorithm=hashes.SHA256(),
        length=length,
        salt=None,
        info=info.encode('utf-8'),
    )
    return h.derive(seed)


def keys_from_seed(seed: bytes, network: str = DEFAULT_NETWORK) -> KeyBundle:
    """
    Derive the key bundle from a 64-byte BIP-39 seed.

    Each subkey has its own HKDF info label, so none can be computed from
    another without the seed.
    """
    get_network(network)
    return KeyBundle(
        sign=SigningKey.from_seed(_hkdf(seed, SIGN_LABEL, 32), network),
        encrypt=_hkdf(seed, ENCRYPT_LABEL, ENCRYPT_KEY_SIZE),
        gen_wallet=ExtendedKey.from_seed(_hkdf(seed, WALLET_LABEL, 64), network),
    )


def derive(
    username: str,
    password: str,
    iterations: Optional[int] = None,
    salt: Optional[str] = None,
    network: str = DEFAULT_NETWORK,
) -> DerivedKeys:
    """
    Derive the recovery phrase, key bundle and server metadata.

    With iterations/salt omitted a fresh salt and DEFAULT_ITERATIONS are used;
    otherwise the bundle from a previous call is reproduced exactly.

    Args:
        username: Account name (also part of the stretched input)
        password: User's password (never leaves this function)
        iterations: PBKDF2 iteration count (>= MIN_ITERATIONS)
        salt: Hex string returned in a previous metadata
        network: "livenet" or "testnet"

    Returns:
        DerivedKeys(recovery_phrase, keys, metadata)

    Raises:
        ConfigError: bad iteration count, salt or network
    """
    if iterations is None:
        iterations = DEFAULT_ITERATIONS
    if salt is None:
        salt = random_hex(SALT_WORDS)

    entropy = stretch(username, password, iterations, salt)
    phrase = _MNEMONIC.to_mnemonic(entropy)
    keys = keys_from_seed(Mnemonic.to_seed(phrase), network)

    log.debug("derived key bundle for %s (iterations=%d)", keys.sign.address, iterations)

    metadata = Metadata(
        username=username,
        check=check_bytes(username + password),
        iterations=iterations,
        salt=salt,
    )
    return DerivedKeys(recovery_phrase=phrase, keys=keys, metadata=metadata)


def normalize_phrase(phrase: str) -> str:
    if not isinstance(phrase, str):
        raise InvalidPhrase("recovery phrase must be a string")
    return " ".join(phrase.lower().split())


def _checked_phrase(phrase: str) -> str:
    phrase = normalize_phrase(phrase)
    if not _MNEMONIC.check(phrase):
        raise InvalidPhrase("Invalid recovery phrase (word list or checksum)")
    return phrase


def phrase_to_entropy(phrase: str) -> bytes:
    return bytes(_MNEMONIC.to_entropy(_checked_phrase(phrase)))


def entropy_to_phrase(entropy: bytes) -> str:
    try:
        return _MNEMONIC.to_mnemonic(entropy)
    except ValueError as e:
        raise InvalidPhrase(f"Cannot encode entropy as a phrase: {e}") from e


def recover(recovery_phrase: str, network: str = DEFAULT_NETWORK) -> KeyBundle:
    """
    Rebuild the key bundle from the recovery phrase alone.

    Raises:
        InvalidPhrase: if word list or checksum validation fails
    """
    phrase = _checked_phrase(recovery_phrase)
    keys = keys_from_seed(Mnemonic.to_seed(phrase), network)
    log.debug("recovered key bundle for %s", keys.sign.address)
    return keys


# =============================================================================
# Check bytes
# =============================================================================

def check_bytes(secret: str) -> str:
    """
    Cheap fingerprint of username + password, used as a lookup key.

    The server uses it to return the right (iterations, salt) before the
    expensive derivation. It is one-way and short (CHECK_SIZE bytes), so it
    identifies a record without revealing the password or any derived key.

    Returns:
        Hex string (8 chars)
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=CHECK_SIZE,
        salt=CHECK_SALT,
        iterations=CHECK_ITERATIONS,
    )
    return kdf.derive(secret.encode('utf-8')).hex()


# =============================================================================
# Key normalization
# =============================================================================

def key_to_buffer(raw: Union[bytes, bytearray, str, Sequence[int]], length: int = 32) -> bytes:
    """
    Normalize an external key representation to `length` bytes.

    Accepts raw bytes, a hex string, or a list of 32-bit words (the bitArray
    form used by JavaScript clients).

    Raises:
        InvalidKeyLength: if the result is not exactly `length` bytes
    """
    if isinstance(raw, (bytes, bytearray)):
        buf = bytes(raw)
    elif isinstance(raw, str):
        try:
            buf = bytes.fromhex(raw)
        except ValueError:
            raise InvalidKeyLength("Unexpected length: key is not valid hex") from None
    elif isinstance(raw, (list, tuple)):
        try:
            buf = b"".join((w & 0xffffffff).to_bytes(4, "big") for w in raw)
        except TypeError:
            raise InvalidKeyLength("Unexpected length: key words must be integers") from None
    else:
        raise InvalidKeyLength(f"Unexpected length: unsupported key type {type(raw).__name__}")

    if len(buf) != length:
        raise InvalidKeyLength(f"Unexpected length: got {len(buf)} bytes, expected {length}")
    return buf
