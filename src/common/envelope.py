"""
Encrypted request/response envelope used by the pension-lottery (EL) site.

Wire form: percent-encode( hex(salt) + hex(iv) + base64(ciphertext) )

- passphrase: first 32 characters of the session id
- key: PBKDF2-HMAC-SHA256(passphrase, salt, 1000 iterations, 16 bytes)
- cipher: AES-128-CBC with PKCS7 padding

The iteration count and key size mirror the site's own JavaScript. They must
stay as they are or the server cannot read what we send.
"""

from __future__ import annotations

import base64
import binascii
import os
from urllib.parse import quote, unquote

from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .errors import CryptoError, CryptoErrorKind


PBKDF2_ITERATIONS = 1000
KEY_BYTES = 16
SALT_BYTES = 32
IV_BYTES = 16
PASSPHRASE_LENGTH = 32
SALT_HEX_LENGTH = SALT_BYTES * 2
IV_HEX_LENGTH = IV_BYTES * 2

# Characters encodeURIComponent leaves alone besides alphanumerics and "-_.~"
_URI_COMPONENT_SAFE = "!*'()"


def _passphrase(session_id: str | None) -> bytes:
    if not session_id or len(session_id) < PASSPHRASE_LENGTH:
        raise CryptoError(
            CryptoErrorKind.SESSION_MISSING,
            "Session cookie is missing or too short for EL encryption",
        )
    return session_id[:PASSPHRASE_LENGTH].encode("utf-8")


def derive_key(passphrase: bytes, salt: bytes) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_BYTES,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )
    return kdf.derive(passphrase)


def _decode_possibly_encoded(value: str) -> str:
    try:
        return unquote(value, errors="strict")
    except UnicodeDecodeError:
        return value


def encrypt_envelope(plaintext: str, session_id: str | None) -> str:
    passphrase = _passphrase(session_id)
    salt = os.urandom(SALT_BYTES)
    iv = os.urandom(IV_BYTES)
    key = derive_key(passphrase, salt)

    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()

    combined = salt.hex() + iv.hex() + base64.b64encode(ciphertext).decode("ascii")
    return quote(combined, safe=_URI_COMPONENT_SAFE)


def decrypt_envelope(value: str, session_id: str | None) -> str:
    """
    Decrypt an envelope that may or may not still be percent-encoded.

    One decode pass is applied to the whole value. If the base64 segment still
    carries escapes afterwards, the value was encoded one extra time in
    transit, and that segment gets a second pass ('%' is never base64).
    """
    passphrase = _passphrase(session_id)
    decoded = _decode_possibly_encoded(value)

    if len(decoded) < SALT_HEX_LENGTH + IV_HEX_LENGTH + 1:
        raise CryptoError(CryptoErrorKind.DECRYPT_FAILED, "Invalid EL encrypted payload format")

    salt_hex = decoded[:SALT_HEX_LENGTH]
    iv_hex = decoded[SALT_HEX_LENGTH : SALT_HEX_LENGTH + IV_HEX_LENGTH]
    ciphertext_b64 = decoded[SALT_HEX_LENGTH + IV_HEX_LENGTH :]
    if "%" in ciphertext_b64:
        ciphertext_b64 = _decode_possibly_encoded(ciphertext_b64)

    try:
        salt = bytes.fromhex(salt_hex)
        iv = bytes.fromhex(iv_hex)
        ciphertext = base64.b64decode(ciphertext_b64, validate=True)
        key = derive_key(passphrase, salt)

        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        plain = unpadder.update(padded) + unpadder.finalize()
        return plain.decode("utf-8")
    except (ValueError, binascii.Error) as exc:
        # UnicodeDecodeError is a ValueError too
        raise CryptoError(
            CryptoErrorKind.DECRYPT_FAILED,
            f"Failed to decrypt EL payload: {exc}",
            cause=exc,
        ) from exc


__all__ = [
    "PBKDF2_ITERATIONS",
    "decrypt_envelope",
    "derive_key",
    "encrypt_envelope",
]
