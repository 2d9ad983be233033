"""
Deglet - Self-Tests

Run with: python test_simple.py   (or pytest)

Proves correctness of the core and shows how common attacks fail:
- Same username/password/salt always gives the same keys
- The recovery phrase alone rebuilds every key
- Tampered, re-signed, expired or misdirected tokens are rejected
- Tampered blobs or wrong keys never decrypt
- Insufficient Shamir shares are rejected
"""

import json
import logging
import os
import string
import tempfile
import time

from deglet import auth, keys, store
from deglet.errors import (
    AudienceMismatch,
    AuthenticationFailed,
    ConfigError,
    InvalidKeyLength,
    InvalidPhrase,
    MalformedToken,
    ReservedClaim,
    SignatureInvalid,
    TokenExpired,
    UntrustedSigner,
)
from deglet.logger import get_logger
from deglet.recovery import combine_recovery_shares, format_recovery_kit, split_recovery_phrase
from deglet.signing import ExtendedKey, SigningKey, verify_message
from deglet.util import b64d, b64e, b64url_decode, b64url_encode, random_hex

ITERATIONS = keys.MIN_ITERATIONS
SALT = "00112233445566778899aabbccddeeff"


def _derive(username="some user", password="some pwd", iterations=ITERATIONS, salt=SALT):
    return keys.derive(username, password, iterations, salt)


def _flip_char(segment: str) -> str:
    """Replace one base64url character in the middle of a segment."""
    idx = len(segment) // 2
    new = "A" if segment[idx] != "A" else "B"
    return segment[:idx] + new + segment[idx + 1:]


# =============================================================================
# Key Hierarchy
# =============================================================================

def test_kdf():
    """Derivation is deterministic and sensitive to every input."""
    print("Testing KDF (Key Derivation)...")

    data1 = _derive()
    data2 = _derive()

    assert data1.recovery_phrase == data2.recovery_phrase
    assert data1.keys.sign.address == data2.keys.sign.address
    assert data1.keys.sign.to_bytes() == data2.keys.sign.to_bytes()
    assert data1.keys.encrypt == data2.keys.encrypt
    assert data1.keys.gen_wallet.xprv == data2.keys.gen_wallet.xprv
    assert len(data1.keys.encrypt) == 16, "Encryption key should be 128 bits"
    assert len(data1.recovery_phrase.split()) == 24
    print("  [OK] Same inputs give the same bundle")

    other_pw = _derive(password="different pwd")
    other_salt = _derive(salt="ffeeddccbbaa99887766554433221100")
    other_user = _derive(username="someone else")
    for other in (other_pw, other_salt, other_user):
        assert other.keys.sign.address != data1.keys.sign.address
        assert other.keys.encrypt != data1.keys.encrypt
    print("  [OK] Different password, salt or username give different keys")

    # The three subkeys are independent
    assert data1.keys.encrypt not in data1.keys.sign.to_bytes()
    assert data1.keys.gen_wallet.signing_key.to_bytes() != data1.keys.sign.to_bytes()
    print("  [OK] Subkeys are domain separated")


def test_fields():
    """Metadata carries what the server needs and nothing secret."""
    print("Testing derived fields...")

    data = keys.derive("some user", "some pwd", 10002)
    assert data.metadata.to_dict().keys() == {"username", "check", "iterations", "salt"}
    assert data.metadata.username == "some user"
    assert data.metadata.iterations == 10002
    assert len(bytes.fromhex(data.metadata.salt)) == 16
    assert data.metadata.check == keys.check_bytes("some user" + "some pwd")
    assert data.keys.sign.address == data.keys.address
    assert data.keys.sign.address.startswith("1")
    assert data.keys.gen_wallet.xprv.startswith("xprv")

    # Fresh salt each time when none is given
    again = keys.derive("some user", "some pwd")
    assert again.metadata.salt != data.metadata.salt
    assert again.metadata.iterations == keys.DEFAULT_ITERATIONS

    # Re-deriving with the stored parameters gives the same keys
    same = keys.derive("some user", "some pwd", data.metadata.iterations, data.metadata.salt)
    assert same.keys.sign.address == data.keys.sign.address
    assert same.keys.encrypt == data.keys.encrypt
    print("  [OK] Metadata and re-derivation work")


def test_derive_config_errors():
    print("Testing derivation parameter validation...")

    for bad in (0, -1, keys.MIN_ITERATIONS - 1, "10000", 1.5, True):
        try:
            keys.derive("u", "p", bad, SALT)
            assert False, f"iterations={bad!r} should be rejected"
        except ConfigError:
            pass
    print("  [OK] Bad iteration counts rejected")

    for bad in ("not hex", "", "abc"):
        try:
            keys.derive("u", "p", ITERATIONS, bad)
            assert False, f"salt={bad!r} should be rejected"
        except ConfigError:
            pass
    print("  [OK] Bad salts rejected")

    try:
        keys.derive("u", "p", ITERATIONS, SALT, network="moonnet")
        assert False, "unknown network should be rejected"
    except ConfigError:
        print("  [OK] Unknown network rejected")


def test_recovery_phrase():
    """The phrase alone rebuilds byte-identical keys."""
    print("Testing recovery phrase...")

    data = _derive()
    bundle = keys.recover(data.recovery_phrase)
    assert bundle.sign.address == data.keys.sign.address
    assert bundle.sign.to_bytes() == data.keys.sign.to_bytes()
    assert bundle.encrypt == data.keys.encrypt
    assert bundle.gen_wallet.xprv == data.keys.gen_wallet.xprv
    print("  [OK] Recovery round-trip works")

    messy = "  " + data.recovery_phrase.upper().replace(" ", "   ") + "\n"
    assert keys.recover(messy).sign.address == data.keys.sign.address
    print("  [OK] Whitespace and case are normalized")

    words = data.recovery_phrase.split()
    for bad in (
        " ".join(words[:-1] + ["notaword"]),
        " ".join(words[:23]),
        "",
    ):
        try:
            keys.recover(bad)
            assert False, "Invalid phrase should be rejected"
        except InvalidPhrase:
            pass
    print("  [OK] Invalid phrases rejected")


def test_check_bytes():
    print("Testing check bytes...")

    c1 = keys.check_bytes("alice" + "pw1")
    assert c1 == keys.check_bytes("alicepw1")
    assert len(c1) == 8
    assert c1 != keys.check_bytes("alice" + "pw2")
    # Check bytes are not any part of the derived keys
    data = keys.derive("alice", "pw1", ITERATIONS, SALT)
    assert c1 not in data.keys.encrypt.hex()
    assert c1 not in data.keys.sign.to_bytes().hex()
    print("  [OK] Check bytes are stable and short")


def test_key_to_buffer():
    print("Testing key normalization...")

    raw = bytes(range(32))
    assert keys.key_to_buffer(raw) == raw
    assert keys.key_to_buffer(bytearray(raw)) == raw
    assert keys.key_to_buffer(raw.hex()) == raw
    assert keys.key_to_buffer([0x00010203, 0x04050607, 0x08090a0b, 0x0c0d0e0f], 16) == raw[:16]
    assert keys.key_to_buffer([-1], 4) == b"\xff\xff\xff\xff"
    print("  [OK] bytes, hex and word lists are accepted")

    for bad in ([123], b"short", "zz" * 32, 42):
        try:
            keys.key_to_buffer(bad)
            assert False, f"{bad!r} should be rejected"
        except InvalidKeyLength as e:
            assert "Unexpected length" in str(e)
    print("  [OK] Wrong lengths rejected")


def test_random_hex():
    assert len(random_hex(1)) == 8
    assert len(random_hex(4)) == 32
    assert random_hex(4) != random_hex(4)
    try:
        random_hex(0)
        assert False, "Should fail to generate less than 1 random word"
    except ConfigError as e:
        assert "num_words < 1" in str(e)


def test_base64url():
    for data in (b"", b"\x00", b"\xfb\xff", bytes(range(65))):
        encoded = b64url_encode(data)
        assert "=" not in encoded and "+" not in encoded and "/" not in encoded
        assert b64url_decode(encoded) == data
    assert b64d(b64e(b"hello")) == b"hello"
    # "AB" and "-_9" carry non-zero trailing bits; "AA==" is padded
    for bad in ("a*b", "é", None, "AB", "-_9", "AA=="):
        try:
            b64url_decode(bad)
            assert False, f"{bad!r} should not decode"
        except ValueError:
            pass


# =============================================================================
# Signing primitives
# =============================================================================

def test_signing_key():
    print("Testing secp256k1 signing...")

    one = SigningKey((1).to_bytes(32, "big"))
    assert one.address == "1BgGZ9tcN4rm9KBzDn7KprQz87SZ26SAMH"
    print("  [OK] Address derivation matches the known vector")

    key = SigningKey.from_seed(b"\x42" * 32)
    sig = key.sign(b"hello")
    assert len(sig) == 65
    assert 31 <= sig[0] <= 34, "Signature should flag a compressed key"
    assert verify_message(key.address, b"hello", sig)
    assert key.sign(b"hello") == sig, "Signatures are deterministic (RFC 6979)"
    print("  [OK] Sign/verify works")

    assert not verify_message(key.address, b"hellO", sig)
    assert not verify_message(one.address, b"hello", sig)
    assert not verify_message(key.address, b"hello", sig[:-1])
    assert not verify_message(key.address, b"hello", b"\x00" * 65)
    assert not verify_message("not-an-address", b"hello", sig)
    tampered = bytearray(sig)
    tampered[10] ^= 1
    assert not verify_message(key.address, b"hello", bytes(tampered))
    print("  [OK] Wrong message, address or signature rejected")

    testnet = SigningKey.from_seed(b"\x42" * 32, network="testnet")
    assert testnet.address[0] in "mn"
    assert verify_message(testnet.address, b"hi", testnet.sign(b"hi"))

    for bad in (b"\x00" * 32, b"\x01" * 31):
        try:
            SigningKey(bad)
            assert False, "invalid private key should be rejected"
        except (ConfigError, InvalidKeyLength):
            pass


def test_extended_key():
    print("Testing BIP-32 nodes...")

    master = ExtendedKey.from_seed(b"\x01" * 64)
    assert master.xprv.startswith("xprv")
    assert master.xpub.startswith("xpub")
    assert master.depth == 0

    hardened = master.derive(3, hardened=True)
    normal = master.derive(3)
    assert hardened.index == 3 + 0x80000000
    assert hardened.depth == 1
    assert hardened.parent_fingerprint == master.fingerprint
    assert hardened.xprv != normal.xprv
    assert master.derive_path("m/3'/1") == hardened.derive(1)
    assert master.derive_path("m") is master
    print("  [OK] Child derivation works")

    restored = ExtendedKey.from_xprv(hardened.xprv)
    assert restored == hardened
    assert restored.xpub == hardened.xpub
    print("  [OK] xprv round-trip works")

    test_node = ExtendedKey.from_seed(b"\x01" * 64, network="testnet")
    assert test_node.xprv.startswith("tprv")


# =============================================================================
# Token Protocol
# =============================================================================

def test_token_roundtrip():
    print("Testing signed tokens...")

    data = keys.derive("alice", "pw1", ITERATIONS, SALT)
    raw = auth.sign("https://svc", {"data": {"x": 1}}, data.keys.sign)
    assert raw.count(".") == 2

    decoded = auth.verify("https://svc", raw)
    assert decoded.payload["data"]["x"] == 1
    assert decoded.header["kid"] == data.keys.sign.address
    assert decoded.header["typ"] == auth.TOKEN_TYPE
    assert decoded.header["alg"] == auth.ALGORITHM
    assert decoded.kid == data.keys.sign.address
    assert decoded.body == {"data": {"x": 1}}
    assert decoded.claims.aud == "https://svc"
    print("  [OK] Sign/verify round-trip works")

    try:
        auth.verify("https://other", raw)
        assert False, "Audience mismatch should be rejected"
    except AudienceMismatch:
        print("  [OK] Audience binding works")


def test_token_null_audience():
    data = _derive()
    raw = auth.sign(None, {"data": data.metadata.to_dict()}, data.keys.sign)
    decoded = auth.verify(None, raw)
    assert decoded.payload["aud"] is None
    assert decoded.payload["data"]["username"] == "some user"

    raw = auth.sign("https://svc", None, data.keys.sign)
    assert auth.verify("https://svc", raw).body == {}


def test_token_claims():
    print("Testing token claims...")

    data = _derive()
    raw = auth.sign("https://svc", {"data": 1}, data.keys.sign, now=1000.0)
    decoded = auth.verify("https://svc", raw, now=1000.5)
    assert decoded.payload["iat"] == 1000000, "iat is in milliseconds"
    assert decoded.payload["exp"] == 1000.0 + auth.DEFAULT_TTL, "exp is in seconds"
    assert isinstance(decoded.claims.exp, float)
    print("  [OK] iat in ms, exp in seconds")

    raw = auth.sign("https://svc", {"data": 1}, data.keys.sign)
    claims = auth.verify("https://svc", raw).claims
    assert abs(claims.exp - (time.time() + auth.DEFAULT_TTL)) < 60
    assert abs(claims.iat / 1000 - time.time()) < 60

    for field in auth.RESERVED_CLAIMS:
        try:
            auth.sign("https://svc", {field: 0}, data.keys.sign)
            assert False, f"{field} should be reserved"
        except ReservedClaim:
            pass
    print("  [OK] Reserved claim names rejected")


def test_token_expired():
    data = _derive()
    raw = auth.sign(None, {"data": 1}, data.keys.sign, ttl=-10)
    try:
        auth.verify(None, raw)
        assert False, "Expired token should be rejected"
    except TokenExpired:
        pass

    raw = auth.sign(None, {"data": 1}, data.keys.sign, now=0)
    payload = json.loads(b64url_decode(raw.split(".")[1]))
    assert isinstance(payload["exp"], float), "exp is float seconds even for an int clock"
    assert payload["exp"] == float(auth.DEFAULT_TTL) and payload["iat"] == 0
    try:
        auth.verify(None, raw)
        assert False, "Expired token should be rejected"
    except TokenExpired:
        print("  [OK] Expired tokens rejected")


def test_token_malformed():
    print("Testing malformed tokens...")

    data = _derive()
    raw = auth.sign(None, {"data": 1}, data.keys.sign)
    pieces = raw.split(".")

    for bad in ("", pieces[0] + "." + pieces[1], raw + ".extra", None, 42):
        try:
            auth.verify(None, bad)
            assert False, f"{bad!r} should be malformed"
        except MalformedToken:
            pass
    print("  [OK] Wrong segment counts rejected")

    # Payload used as header: no kid
    try:
        auth.verify(None, pieces[1] + "." + pieces[1] + "." + pieces[2])
        assert False, "Header without kid should be rejected"
    except MalformedToken:
        pass

    # Header that is not base64url JSON
    try:
        auth.verify(None, "!!!." + pieces[1] + "." + pieces[2])
        assert False, "Undecodable header should be rejected"
    except MalformedToken:
        print("  [OK] Bad headers rejected")


def test_token_tampering():
    print("Testing token tampering...")

    data = _derive()
    other = _derive("someone", "else")
    raw = auth.sign(None, {"data": {"amount": 1}}, data.keys.sign)
    raw2 = auth.sign(None, {"data": {"amount": 1}}, other.keys.sign)
    h, p, s = raw.split(".")
    h2, p2, s2 = raw2.split(".")

    # Signature from a different key
    try:
        auth.verify(None, h + "." + p + "." + s2)
        assert False, "Foreign signature should be rejected"
    except SignatureInvalid:
        print("  [OK] Foreign signature rejected")

    # Payload from a different token
    try:
        auth.verify(None, h + "." + p2 + "." + s)
        assert False, "Swapped payload should be rejected"
    except SignatureInvalid:
        pass

    # Claim the other user's identity
    try:
        auth.verify(None, h2 + "." + p + "." + s)
        assert False, "Swapped header should be rejected"
    except SignatureInvalid:
        pass

    # Modified payload (e.g. amount changed)
    forged = b64url_encode(json.dumps({"data": {"amount": 1000}, "aud": None,
                                       "exp": time.time() + 60, "iat": 1}).encode())
    try:
        auth.verify(None, h + "." + forged + "." + s)
        assert False, "Forged payload should be rejected"
    except SignatureInvalid:
        pass

    try:
        auth.verify(None, h + "." + _flip_char(p) + "." + s)
        assert False, "Flipped payload should be rejected"
    except SignatureInvalid:
        pass

    try:
        auth.verify(None, h + "." + p + "." + _flip_char(s))
        assert False, "Flipped signature should be rejected"
    except SignatureInvalid:
        pass

    try:
        auth.verify(None, h + "." + p + "." + s[:-4])
        assert False, "Truncated signature should be rejected"
    except SignatureInvalid:
        pass

    flipped = _flip_char(h)
    expected = SignatureInvalid if _header_has_kid(flipped) else MalformedToken
    try:
        auth.verify(None, flipped + "." + p + "." + s)
        assert False, "Flipped header should be rejected"
    except expected:
        print("  [OK] Tampered segments rejected")


B64URL = string.ascii_uppercase + string.ascii_lowercase + string.digits + "-_"


def _swap_char(segment: str, idx: int) -> str:
    """Replace the character at idx with its neighbour in the base64url alphabet."""
    new = B64URL[B64URL.index(segment[idx]) ^ 1]
    return segment[:idx] + new + segment[idx + 1:]


def _header_has_kid(segment: str) -> bool:
    try:
        header = json.loads(b64url_decode(segment).decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        return False
    return isinstance(header, dict) and isinstance(header.get("kid"), str) and bool(header["kid"])


def test_token_tampering_every_position():
    """Editing any single character of any segment is detected."""
    print("Testing single-character edits in every segment...")

    data = _derive()
    raw = auth.sign("https://svc", {"data": {"amount": 1}}, data.keys.sign)
    h, p, s = raw.split(".")

    for i in range(len(h)):
        edited = _swap_char(h, i)
        expected = SignatureInvalid if _header_has_kid(edited) else MalformedToken
        try:
            auth.verify("https://svc", edited + "." + p + "." + s)
            assert False, f"Header edit at {i} verified"
        except expected:
            pass

    for i in range(len(p)):
        try:
            auth.verify("https://svc", h + "." + _swap_char(p, i) + "." + s)
            assert False, f"Payload edit at {i} verified"
        except SignatureInvalid:
            pass

    for i in range(len(s)):
        try:
            auth.verify("https://svc", h + "." + p + "." + _swap_char(s, i))
            assert False, f"Signature edit at {i} verified"
        except SignatureInvalid:
            pass

    print(f"  [OK] {len(h) + len(p) + len(s)} edited tokens rejected")


def test_token_trust_predicate():
    data = _derive()
    raw = auth.sign("https://svc", {"data": 1}, data.keys.sign)

    decoded = auth.verify("https://svc", raw, is_trusted=lambda kid: kid == data.keys.sign.address)
    assert decoded.payload["data"] == 1

    try:
        auth.verify("https://svc", raw, is_trusted=lambda kid: False)
        assert False, "Untrusted signer should be rejected"
    except UntrustedSigner:
        pass


# =============================================================================
# Blob Store
# =============================================================================

def test_encryption():
    print("Testing Encryption...")

    data = _derive()
    key = data.keys.encrypt
    plaintext = json.dumps({"wallet": "state", "n": 3})

    cipher = store.encrypt(key, plaintext)
    assert store.decrypt(key, cipher) == plaintext.encode()
    assert store.decrypt(key, json.loads(cipher)) == plaintext.encode()
    assert store.decrypt(key, cipher.encode()) == plaintext.encode()

    obj = json.loads(cipher)
    assert obj["cipher"] == "aes"
    assert obj["mode"] == "gcm"
    assert obj["ks"] == 128
    assert obj["ts"] == 128
    assert len(b64d(obj["iv"])) == store.NONCE_SIZE
    assert "salt" not in obj
    print("  [OK] Encryption/decryption works")

    for message in (b"", b"\x00\xff" * 100, bytes(range(256))):
        assert store.decrypt(key, store.encrypt(key, message)) == message

    assert store.encrypt(key, b"same") != store.encrypt(key, b"same")
    print("  [OK] Fresh nonce per call")


def test_encryption_passphrase():
    cipher = store.encrypt("hi", "hello")
    assert store.decrypt("hi", cipher) == b"hello"
    obj = json.loads(cipher)
    assert obj["iter"] == store.PASSPHRASE_ITERATIONS
    assert "salt" in obj

    try:
        store.decrypt("ho", cipher)
        assert False, "Wrong passphrase should be rejected"
    except AuthenticationFailed:
        pass


def test_encryption_word_key():
    key = [0x01020304, 0x05060708, 0x090a0b0c, 0x0d0e0f10]
    cipher = store.encrypt(key, b"hello")
    assert store.decrypt(bytes(range(1, 17)), cipher) == b"hello"

    try:
        store.encrypt([123], b"hello")
        assert False, "Short key should be rejected"
    except InvalidKeyLength:
        pass


def test_encryption_json():
    key = _derive().keys.encrypt
    obj = {"copayers": ["a", "b"], "m": 2}
    assert store.decrypt_json(key, store.encrypt_json(key, obj)) == obj


def test_encryption_tampering():
    print("Testing blob tampering...")

    key = _derive().keys.encrypt
    wrong_key = _derive(password="other").keys.encrypt
    cipher = store.encrypt(key, b"This is a secret message!")

    try:
        store.decrypt(wrong_key, cipher)
        assert False, "Wrong key should be rejected"
    except AuthenticationFailed:
        print("  [OK] Wrong key rejected")

    obj = json.loads(cipher)
    ct = bytearray(b64d(obj["ct"]))
    ct[0] ^= 1
    tampered = dict(obj, ct=b64e(bytes(ct)))
    try:
        store.decrypt(key, tampered)
        assert False, "Tampered ciphertext should be rejected"
    except AuthenticationFailed:
        print("  [OK] Tampering detection works")

    iv = bytearray(b64d(obj["iv"]))
    iv[0] ^= 1
    for bad in (
        dict(obj, iv=b64e(bytes(iv))),
        dict(obj, v=2),
        dict(obj, ks=256),
        dict(obj, mode="ccm"),
        dict(obj, ct="not base64!"),
        {k: v for k, v in obj.items() if k != "iv"},
    ):
        try:
            store.decrypt(key, bad)
            assert False, f"Corrupted parameters should be rejected: {bad}"
        except AuthenticationFailed:
            pass
    print("  [OK] Parameter tampering detected")

    for bad in ("not json", "[1, 2]", b"\xff"):
        try:
            store.decrypt(key, bad)
            assert False, "Garbage should be rejected"
        except AuthenticationFailed:
            pass


# =============================================================================
# Recovery shares
# =============================================================================

def test_recovery():
    """Test Shamir Secret Sharing of the recovery phrase."""
    print("Testing Recovery (Shamir Secret Sharing)...")

    data = _derive()
    shares = split_recovery_phrase(data.recovery_phrase, k=3, n=5)
    assert len(shares) == 5
    print("  [OK] Share generation works")

    phrase = combine_recovery_shares([shares[0], shares[2], shares[4]])
    assert phrase == data.recovery_phrase
    assert keys.recover(phrase).sign.address == data.keys.sign.address
    print("  [OK] Recovery from k shares works")

    assert combine_recovery_shares([shares[1], shares[3], shares[4]]) == data.recovery_phrase
    print("  [OK] Any k shares work")

    try:
        combine_recovery_shares([shares[0], shares[1]])
        assert False, "Should require at least k shares"
    except InvalidPhrase:
        print("  [OK] Insufficient shares rejected")

    for k, n in ((4, 3), (1, 3), (2, 17)):
        try:
            split_recovery_phrase(data.recovery_phrase, k, n)
            assert False, f"k={k}, n={n} should be rejected"
        except ConfigError:
            pass

    kit = format_recovery_kit(shares, "some user", 3)
    assert "Need 3 of 5" in kit
    assert all(share in kit for share in shares)


# =============================================================================
# Logging
# =============================================================================

def test_logger():
    """Explicit levels stay local; file handlers can be added on any call."""
    root = get_logger()
    before = root.level

    debug = get_logger("levels.a", level="DEBUG")
    plain = get_logger("levels.b")
    assert debug.name == "deglet.levels.a"
    assert debug.level == logging.DEBUG
    assert plain.level == logging.NOTSET
    assert root.level == before, "Shared level must not follow one module's override"

    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "logs", "deglet.log")
        log = get_logger("levels.c", level="INFO", to_file=path)
        get_logger("levels.c", to_file=path)
        handlers = [h for h in root.handlers if getattr(h, "baseFilename", None) == path]
        assert len(handlers) == 1
        try:
            log.info("written")
            handlers[0].flush()
            with open(path) as f:
                record = json.loads(f.readline())
            assert record["name"] == "deglet.levels.c"
            assert record["msg"] == "written"
        finally:
            for h in handlers:
                root.removeHandler(h)
                h.close()
    print("  [OK] Logger levels and file output")


def run_all_tests():
    """Run all tests (attack demos + correctness)."""
    print("=" * 70)
    print("Deglet - Attack Demo + Test Suite")
    print("=" * 70)
    print()

    tests = [
        test_kdf,
        test_fields,
        test_derive_config_errors,
        test_recovery_phrase,
        test_check_bytes,
        test_key_to_buffer,
        test_random_hex,
        test_base64url,
        test_signing_key,
        test_extended_key,
        test_token_roundtrip,
        test_token_null_audience,
        test_token_claims,
        test_token_expired,
        test_token_malformed,
        test_token_tampering,
        test_token_tampering_every_position,
        test_token_trust_predicate,
        test_encryption,
        test_encryption_passphrase,
        test_encryption_word_key,
        test_encryption_json,
        test_encryption_tampering,
        test_recovery,
        test_logger,
    ]

    failed = []

    for test in tests:
        try:
            test()
            print()
        except Exception as e:
            print(f"  [FAIL] TEST FAILED: {e}")
            failed.append((test.__name__, e))
            print()

    print("=" * 70)
    if not failed:
        print("[OK] ALL TESTS PASSED!")
    else:
        print(f"[FAIL] {len(failed)} TESTS FAILED:")
        for name, error in failed:
            print(f"  - {name}: {error}")
    print("=" * 70)

    return len(failed) == 0


if __name__ == "__main__":
    import sys
    success = run_all_tests()
    sys.exit(0 if success else 1)
