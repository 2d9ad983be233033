"""
Deglet - Password-Derived Keys, Signed Tokens and Encrypted Blobs

Authenticate to a remote service and store secrets on it with nothing but a
username and password: no credential database, no certificates, no secret
kept on the device.

Key Features:
- Deterministic keys: PBKDF2 + BIP-39 phrase + HKDF subkeys
- Signed requests: JWT-shaped tokens with Bitcoin message signatures
- Opaque storage: AES-128-GCM blobs the server cannot read
- Recovery: the 24-word phrase, optionally split into k-of-n Shamir shares

Components:
- keys.py: key hierarchy (derive, recover, check_bytes)
- auth.py: signed tokens (sign, verify)
- store.py: encrypted blobs (encrypt, decrypt)
- signing.py: secp256k1 signing, addresses and BIP-32 nodes
- recovery.py: Shamir Secret Sharing of the recovery phrase
- client.py: thin HTTP client for the wallet service

Usage:
    from deglet import auth, keys, store

    data = keys.derive("alice", "pw1")
    token = auth.sign("https://svc", {"data": {"x": 1}}, data.keys.sign)
    auth.verify("https://svc", token).payload["data"]["x"]   # 1

    blob = store.encrypt(data.keys.encrypt, b"wallet state")
    store.decrypt(data.keys.encrypt, blob)                   # b"wallet state"
"""

__version__ = "0.3.0"
__author__ = "Deglet Team"
