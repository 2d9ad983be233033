"""
Deglet - Signing Primitives (secp256k1)

The elliptic-curve layer used by the rest of the library:

    1. SigningKey: private scalar -> compressed public key -> P2PKH address
    2. Bitcoin "signed message" signatures (65-byte compact, recoverable)
    3. verify_message(): recover the public key and compare addresses
    4. ExtendedKey: BIP-32 nodes handed to the external wallet engine

Signatures are verified against an address, not a public key. The address is
all a token header carries, so the public key is recovered from the signature
itself and hashed back to an address for comparison.
"""

import hashlib
import hmac
import struct
from typing import Dict, NamedTuple

import base58
import ecdsa
from ecdsa import SECP256k1, BadSignatureError
from ecdsa.ecdsa import InvalidPointError
from ecdsa.errors import MalformedPointError
from ecdsa.numbertheory import Error as NumberTheoryError
from ecdsa.util import sigdecode_string, sigencode_string_canonize

from .errors import ConfigError, InvalidKeyLength
from .util import hash160, sha256d


# =============================================================================
# Configuration
# =============================================================================

CURVE_ORDER = SECP256k1.order
PRIVATE_KEY_SIZE = 32
SIGNATURE_SIZE = 65      # header byte + r (32) + s (32)
HARDENED = 0x80000000

MESSAGE_MAGIC = b"\x18Bitcoin Signed Message:\n"
BIP32_SEED_KEY = b"Bitcoin seed"


class Network(NamedTuple):
    name: str
    pubkeyhash: int
    xprv: int
    xpub: int


NETWORKS: Dict[str, Network] = {
    "livenet": Network("livenet", 0x00, 0x0488ADE4, 0x0488B21E),
    "testnet": Network("testnet", 0x6f, 0x04358394, 0x043587CF),
}
DEFAULT_NETWORK = "livenet"


def get_network(name: str) -> Network:
    try:
        return NETWORKS[name]
    except KeyError:
        raise ConfigError(f"Unknown network: {name!r}") from None


# =============================================================================
# Addresses
# =============================================================================

def public_key_to_address(public_key: bytes, network: str = DEFAULT_NETWORK) -> str:
    """P2PKH address: base58check(version || hash160(pubkey))."""
    version = get_network(network).pubkeyhash
    payload = bytes([version]) + hash160(public_key)
    return base58.b58encode_check(payload).decode("ascii")


def _address_version(address: str) -> int:
    raw = base58.b58decode_check(address)
    if len(raw) != 21:
        raise ValueError("address payload must be 21 bytes")
    return raw[0]


# =============================================================================
# Bitcoin signed messages
# =============================================================================

def _varint(n: int) -> bytes:
    if n < 0xfd:
        return bytes([n])
    if n <= 0xffff:
        return b"\xfd" + struct.pack("<H", n)
    if n <= 0xffffffff:
        return b"\xfe" + struct.pack("<I", n)
    return b"\xff" + struct.pack("<Q", n)


def message_digest(message: bytes) -> bytes:
    """sha256d(magic || varint(len) || message)."""
    return sha256d(MESSAGE_MAGIC + _varint(len(message)) + message)


def _recover_candidates(sig: bytes, digest: bytes):
    return ecdsa.VerifyingKey.from_public_key_recovery_with_digest(
        sig, digest, SECP256k1, hashfunc=hashlib.sha256, sigdecode=sigdecode_string
    )


def verify_message(address: str, message: bytes, signature: bytes) -> bool:
    """
    Check that signature over message was produced by the owner of address.

    Returns:
        True if valid, False otherwise (never raises on bad input)
    """
    if not isinstance(signature, (bytes, bytearray)) or len(signature) != SIGNATURE_SIZE:
        return False

    header = signature[0]
    if not 27 <= header <= 34:
        return False
    recid = (header - 27) & 3
    compressed = header >= 31
    sig = bytes(signature[1:])
    digest = message_digest(message)

    try:
        version = _address_version(address)
        candidates = _recover_candidates(sig, digest)
        if recid >= len(candidates):
            return False
        vk = candidates[recid]
        encoding = "compressed" if compressed else "uncompressed"
        payload = bytes([version]) + hash160(vk.to_string(encoding))
        recovered = base58.b58encode_check(payload).decode("ascii")
        if not hmac.compare_digest(recovered, address):
            return False
        return vk.verify_digest(sig, digest, sigdecode=sigdecode_string)
    except (ValueError, ArithmeticError, BadSignatureError, MalformedPointError,
            NumberTheoryError, InvalidPointError):
        return False


class SigningKey:
    """
    A secp256k1 private key with its P2PKH address.

    The address doubles as the signer identity ("kid") in token headers.
    """

    def __init__(self, secret: bytes, network: str = DEFAULT_NETWORK):
        if len(secret) != PRIVATE_KEY_SIZE:
            raise InvalidKeyLength(
                f"Unexpected length: private key must be {PRIVATE_KEY_SIZE} bytes, got {len(secret)}"
            )
        scalar = int.from_bytes(secret, "big")
        if not 0 < scalar < CURVE_ORDER:
            raise ConfigError("Private key out of curve range")

        self.network = get_network(network).name
        self._secret = bytes(secret)
        self._sk = ecdsa.SigningKey.from_string(self._secret, curve=SECP256k1)
        self.public_key = self._sk.get_verifying_key().to_string("compressed")
        self.address = public_key_to_address(self.public_key, self.network)

    @classmethod
    def from_seed(cls, seed: bytes, network: str = DEFAULT_NETWORK) -> "SigningKey":
        """Map arbitrary seed bytes onto a valid scalar in [1, n-1]."""
        scalar = int.from_bytes(seed, "big") % (CURVE_ORDER - 1) + 1
        return cls(scalar.to_bytes(PRIVATE_KEY_SIZE, "big"), network)

    def to_bytes(self) -> bytes:
        return self._secret

    def sign(self, message: bytes) -> bytes:
        """Produce a 65-byte compact recoverable signature (compressed key)."""
        digest = message_digest(message)
        sig = self._sk.sign_digest_deterministic(
            digest, hashfunc=hashlib.sha256, sigencode=sigencode_string_canonize
        )
        for recid, candidate in enumerate(_recover_candidates(sig, digest)):
            if candidate.to_string("compressed") == self.public_key:
                return bytes([27 + 4 + recid]) + sig
        raise RuntimeError("could not determine recovery id")

    def __eq__(self, other):
        if not isinstance(other, SigningKey):
            return NotImplemented
        return hmac.compare_digest(self._secret, other._secret) and self.network == other.network

    def __hash__(self):
        return hash(self.address)

    def __repr__(self):
        return f"SigningKey(address={self.address!r})"


# =============================================================================
# BIP-32 extended keys
# =============================================================================

class ExtendedKey:
    """
    BIP-32 private node.

    Only what the wallet engine needs: master from seed, child derivation and
    xprv/xpub serialization.
    """

    def __init__(self, key: bytes, chain_code: bytes, depth: int = 0,
                 index: int = 0, parent_fingerprint: bytes = b"\x00" * 4,
                 network: str = DEFAULT_NETWORK):
        self.signing_key = SigningKey(key, network)
        self.chain_code = bytes(chain_code)
        self.depth = depth
        self.index = index
        self.parent_fingerprint = bytes(parent_fingerprint)
        self.network = self.signing_key.network

    @classmethod
    def from_seed(cls, seed: bytes, network: str = DEFAULT_NETWORK) -> "ExtendedKey":
        I = hmac.new(BIP32_SEED_KEY, seed, hashlib.sha512).digest()
        return cls(I[:32], I[32:], network=network)

    @classmethod
    def from_xprv(cls, xprv: str) -> "ExtendedKey":
        raw = base58.b58decode_check(xprv)
        if len(raw) != 78 or raw[45] != 0:
            raise InvalidKeyLength("Unexpected length: not a serialized private node")
        version = struct.unpack(">I", raw[:4])[0]
        for net in NETWORKS.values():
            if net.xprv == version:
                break
        else:
            raise ConfigError(f"Unknown extended key version: {version:#x}")
        return cls(
            key=raw[46:],
            chain_code=raw[13:45],
            depth=raw[4],
            index=struct.unpack(">I", raw[9:13])[0],
            parent_fingerprint=raw[5:9],
            network=net.name,
        )

    @property
    def public_key(self) -> bytes:
        return self.signing_key.public_key

    @property
    def fingerprint(self) -> bytes:
        return hash160(self.public_key)[:4]

    def derive(self, index: int, hardened: bool = False) -> "ExtendedKey":
        """Derive the child private node at index (hardened adds 2^31)."""
        if hardened:
            index += HARDENED
        if not 0 <= index <= 0xffffffff:
            raise ConfigError(f"Child index out of range: {index}")

        if index >= HARDENED:
            data = b"\x00" + self.signing_key.to_bytes() + struct.pack(">I", index)
        else:
            data = self.public_key + struct.pack(">I", index)

        I = hmac.new(self.chain_code, data, hashlib.sha512).digest()
        tweak = int.from_bytes(I[:32], "big")
        child = (tweak + int.from_bytes(self.signing_key.to_bytes(), "big")) % CURVE_ORDER
        if tweak >= CURVE_ORDER or child == 0:
            raise ConfigError(f"Invalid child at index {index}, use the next one")

        return ExtendedKey(
            key=child.to_bytes(32, "big"),
            chain_code=I[32:],
            depth=self.depth + 1,
            index=index,
            parent_fingerprint=self.fingerprint,
            network=self.network,
        )

    def derive_path(self, path: str) -> "ExtendedKey":
        """Derive from a path string like "m/2'/1"."""
        if path in ("m", ""):
            return self
        if path.startswith("m/"):
            path = path[2:]
        node = self
        for component in path.split("/"):
            if component.endswith("'"):
                node = node.derive(int(component[:-1]), hardened=True)
            else:
                node = node.derive(int(component))
        return node

    def _serialize(self, version: int, key_data: bytes) -> str:
        raw = (
            struct.pack(">I", version)
            + bytes([self.depth])
            + self.parent_fingerprint
            + struct.pack(">I", self.index)
            + self.chain_code
            + key_data
        )
        return base58.b58encode_check(raw).decode("ascii")

    @property
    def xprv(self) -> str:
        net = get_network(self.network)
        return self._serialize(net.xprv, b"\x00" + self.signing_key.to_bytes())

    @property
    def xpub(self) -> str:
        net = get_network(self.network)
        return self._serialize(net.xpub, self.public_key)

    def __eq__(self, other):
        if not isinstance(other, ExtendedKey):
            return NotImplemented
        return self.xprv == other.xprv

    def __hash__(self):
        return hash(self.xpub)

    def __repr__(self):
        return f"ExtendedKey(xpub={self.xpub!r})"
