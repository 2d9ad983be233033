"""
Deglet - Encrypted Blobs

Client data (an exported wallet, for instance) is stored on the server as a
self-describing JSON object the server cannot read:

    {"v": 1, "cipher": "aes", "mode": "gcm", "ks": 128, "ts": 128,
     "iv": <base64>, "ct": <base64 ciphertext + tag>}

Passphrase keys add "salt" and "iter" (PBKDF2 parameters).

AES-GCM provides:
- Confidentiality: plaintext is hidden
- Authenticity: any tampering with ct is detected
- Associated data: every parameter except ct is bound as canonical JSON,
  so editing iv, ks, salt... also fails authentication
"""

import json
import os
from typing import Any, Dict, Sequence, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .errors import AuthenticationFailed
from .keys import key_to_buffer
from .logger import get_logger
from .util import b64d, b64e, canonical_json


# =============================================================================
# Configuration
# =============================================================================

ENCPARAMS = {
    "cipher": "aes",
    "mode": "gcm",
    "ks": 128,
    "ts": 128,
}
VERSION = 1
KEY_SIZE = ENCPARAMS["ks"] // 8      # 16 bytes
NONCE_SIZE = 12                      # 96-bit nonce for AES-GCM
SALT_SIZE = 8
PASSPHRASE_ITERATIONS = 10000

Key = Union[bytes, bytearray, str, Sequence[int]]

log = get_logger(__name__)


# =============================================================================
# Keys
# =============================================================================

def _passphrase_key(passphrase: str, salt: bytes, iterations: int) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(passphrase.encode('utf-8'))


# =============================================================================
# Encryption (AES-128-GCM)
# =============================================================================

def _associated_data(params: Dict[str, Any]) -> bytes:
    return canonical_json({k: v for k, v in params.items() if k != "ct"})


def encrypt(key: Key, plaintext: Union[bytes, str]) -> str:
    """
    Encrypt plaintext using AES-GCM-128.

    A fresh random nonce is generated on every call, so the same
    (key, plaintext) never produces the same ciphertext.

    Args:
        key: 16-byte encryption key from keys.derive(), or a passphrase (str)
        plaintext: bytes, or str (UTF-8 encoded)

    Returns:
        JSON text of the cipher object
    """
    if isinstance(plaintext, str):
        plaintext = plaintext.encode('utf-8')

    params: Dict[str, Any] = {"v": VERSION}
    params.update(ENCPARAMS)

    if isinstance(key, str):
        salt = os.urandom(SALT_SIZE)
        params["salt"] = b64e(salt)
        params["iter"] = PASSPHRASE_ITERATIONS
        raw_key = _passphrase_key(key, salt, PASSPHRASE_ITERATIONS)
    else:
        raw_key = key_to_buffer(key, KEY_SIZE)

    # Never reuse a nonce with the same key
    nonce = os.urandom(NONCE_SIZE)
    params["iv"] = b64e(nonce)

    ct = AESGCM(raw_key).encrypt(nonce, bytes(plaintext), _associated_data(params))
    params["ct"] = b64e(ct)

    log.debug("encrypted blob (%d bytes)", len(plaintext))
    return json.dumps(params, sort_keys=True)


def _load(cipherobj: Union[str, bytes, Dict[str, Any]]) -> Dict[str, Any]:
    if isinstance(cipherobj, dict):
        return dict(cipherobj)
    try:
        obj = json.loads(cipherobj)
    except (TypeError, ValueError) as e:
        raise AuthenticationFailed(f"Cipher object is not valid JSON ({e})") from e
    if not isinstance(obj, dict):
        raise AuthenticationFailed("Cipher object must be a JSON object")
    return obj


def decrypt(key: Key, cipherobj: Union[str, bytes, Dict[str, Any]]) -> bytes:
    """
    Decrypt something that was encrypted with encrypt() and the same key.

    Returns:
        Plaintext bytes

    Raises:
        AuthenticationFailed: tampered ciphertext or parameters, wrong key,
            or an object that cannot be parsed
    """
    params = _load(cipherobj)

    for name, expected in ENCPARAMS.items():
        if params.get(name) != expected:
            raise AuthenticationFailed(f"Unsupported or corrupted parameter {name!r}")

    if not isinstance(key, str):
        raw_key = key_to_buffer(key, KEY_SIZE)

    try:
        nonce = b64d(params["iv"])
        ct = b64d(params["ct"])
        if isinstance(key, str):
            salt = b64d(params["salt"])
            iterations = params["iter"]
            if isinstance(iterations, bool) or not isinstance(iterations, int) or iterations < 1:
                raise ValueError("iter must be a positive integer")
            raw_key = _passphrase_key(key, salt, iterations)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise AuthenticationFailed(f"Corrupted cipher object ({e})") from e

    try:
        plaintext = AESGCM(raw_key).decrypt(nonce, ct, _associated_data(params))
    except (InvalidTag, ValueError) as e:
        raise AuthenticationFailed("Authentication tag does not match") from e

    log.debug("decrypted blob (%d bytes)", len(plaintext))
    return plaintext


# =============================================================================
# JSON helpers
# =============================================================================

def encrypt_json(key: Key, obj: Any) -> str:
    """Encrypt a JSON-serializable object (e.g. an exported wallet)."""
    return encrypt(key, canonical_json(obj))


def decrypt_json(key: Key, cipherobj: Union[str, bytes, Dict[str, Any]]) -> Any:
    plaintext = decrypt(key, cipherobj)
    try:
        return json.loads(plaintext.decode('utf-8'))
    except (UnicodeDecodeError, ValueError) as e:
        raise AuthenticationFailed(f"Decrypted blob is not JSON ({e})") from e
