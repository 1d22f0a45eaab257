"""Encrypt / decrypt stored records with a passphrase (stdlib only).

PBKDF2-HMAC-SHA256 derives a store key once per process; each value gets a
random nonce, a SHA-256 counter keystream and an HMAC tag so that a wrong
passphrase or a tampered record is detected instead of decoded into garbage.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import os

SALT_LEN = 16
_NONCE_LEN = 16
_TAG_LEN = 16
_ITERATIONS = 200_000


class DecryptionError(ValueError):
    pass


def new_salt() -> bytes:
    return os.urandom(SALT_LEN)


def derive_key(password: str, salt: bytes, length: int = 32) -> bytes:
    return hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), salt, _ITERATIONS, dklen=length
    )


def _keystream(key: bytes, nonce: bytes, length: int) -> bytes:
    n_blocks = -(-length // 32)
    blocks = [
        hashlib.sha256(key + nonce + counter.to_bytes(8, "big")).digest()
        for counter in range(n_blocks)
    ]
    return b"".join(blocks)[:length]


def _xor_bytes(data: bytes, stream: bytes) -> bytes:
    return bytes(d ^ s for d, s in zip(data, stream))


def _tag(key: bytes, nonce: bytes, ciphertext: bytes) -> bytes:
    return hmac.new(key, nonce + ciphertext, hashlib.sha256).digest()[:_TAG_LEN]


def encrypt_value(value: str, key: bytes) -> str:
    nonce = os.urandom(_NONCE_LEN)
    plain = value.encode("utf-8")
    encrypted = _xor_bytes(plain, _keystream(key, nonce, len(plain)))
    return base64.b64encode(nonce + _tag(key, nonce, encrypted) + encrypted).decode("ascii")


def decrypt_value(token: str, key: bytes) -> str:
    try:
        payload = base64.b64decode(token, validate=True)
    except (ValueError, TypeError) as exc:
        raise DecryptionError("record is not valid base64") from exc
    if len(payload) < _NONCE_LEN + _TAG_LEN:
        raise DecryptionError("record is truncated")
    nonce = payload[:_NONCE_LEN]
    tag = payload[_NONCE_LEN:_NONCE_LEN + _TAG_LEN]
    encrypted = payload[_NONCE_LEN + _TAG_LEN:]
    if not hmac.compare_digest(tag, _tag(key, nonce, encrypted)):
        raise DecryptionError("authentication tag mismatch (wrong encryption key?)")
    return _xor_bytes(encrypted, _keystream(key, nonce, len(encrypted))).decode("utf-8")
