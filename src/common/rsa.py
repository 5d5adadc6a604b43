from __future__ import annotations

from cryptography.hazmat.primitives.asymmetric import padding, rsa
from pydantic import BaseModel, Field

from .errors import CryptoError, CryptoErrorKind


# PKCS#1 v1.5 needs 0x00 0x02 <8+ nonzero bytes> 0x00 ahead of the message.
PKCS1_V15_OVERHEAD = 11


class RsaPublicKey(BaseModel):
    """Server-supplied RSA public key as hex-encoded big integers."""

    modulus: str = Field(..., min_length=1, description="Modulus n, hex")
    exponent: str = Field(..., min_length=1, description="Public exponent e, hex")


def _parse_hex_int(value: str, what: str) -> int:
    try:
        return int(value, 16)
    except (TypeError, ValueError) as exc:
        raise CryptoError(
            CryptoErrorKind.ENCODING, f"Invalid RSA {what}: not a hex integer", cause=exc
        ) from exc


def rsa_encrypt(plaintext: str, modulus_hex: str, exponent_hex: str) -> str:
    """
    Encrypt `plaintext` with RSAES-PKCS1-v1_5 under `(n, e)` given in hex.

    Output is lowercase hex of exactly the modulus byte length, which is what
    the login form expects. Padding is random, so two calls never agree.
    """
    n = _parse_hex_int(modulus_hex, "modulus")
    e = _parse_hex_int(exponent_hex, "exponent")
    try:
        public_key = rsa.RSAPublicNumbers(e, n).public_key()
    except ValueError as exc:
        raise CryptoError(CryptoErrorKind.ENCODING, f"Invalid RSA public key: {exc}", cause=exc) from exc

    key_bytes = (public_key.key_size + 7) // 8
    message = plaintext.encode("utf-8")
    if len(message) > key_bytes - PKCS1_V15_OVERHEAD:
        raise CryptoError(
            CryptoErrorKind.ENCODING,
            f"Message too long for RSA key: {len(message)} > {key_bytes - PKCS1_V15_OVERHEAD} bytes",
        )

    try:
        ciphertext = public_key.encrypt(message, padding.PKCS1v15())
    except ValueError as exc:
        raise CryptoError(CryptoErrorKind.ENCODING, f"RSA encryption failed: {exc}", cause=exc) from exc
    return ciphertext.hex()


def encrypt_with_key(plaintext: str, key: RsaPublicKey) -> str:
    return rsa_encrypt(plaintext, key.modulus, key.exponent)


__all__ = ["RsaPublicKey", "encrypt_with_key", "rsa_encrypt"]
