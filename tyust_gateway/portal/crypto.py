"""
Password encryption for the SSO login form.

The login form expects the password DES-encrypted (ECB, PKCS#7 padding)
under a random 8-byte key that is submitted alongside it in the
``croypto`` field. Both values travel base64-encoded.
"""

import base64
import secrets
from dataclasses import dataclass

from Crypto.Cipher import DES
from Crypto.Util.Padding import pad

from .errors import CryptoError

KEY_SIZE = 8


@dataclass(frozen=True)
class CipherMaterial:
    """One-time key and ciphertext for a single login attempt."""
    key_base64: str
    ciphertext_base64: str

    def __repr__(self) -> str:
        return "CipherMaterial(key_base64=<redacted>, ciphertext_base64=<redacted>)"


def generate_key() -> bytes:
    return secrets.token_bytes(KEY_SIZE)


def encrypt_password(password: str, key: bytes) -> bytes:
    """
    Encrypt ``password`` under ``key`` with DES-ECB.

    The UTF-8 bytes are padded PKCS#7-style to a multiple of the block size;
    an already aligned password still gets a full block of padding.

    Raises:
        CryptoError: If the cipher cannot be constructed from ``key``
    """
    try:
        cipher = DES.new(key, DES.MODE_ECB)
    except ValueError as e:
        raise CryptoError(f"Failed to create DES cipher: {e}") from e
    return cipher.encrypt(pad(password.encode("utf-8"), DES.block_size))


def make_cipher_material(password: str) -> CipherMaterial:
    """Generate a fresh key and return it with the encrypted password."""
    key = generate_key()
    ciphertext = encrypt_password(password, key)
    return CipherMaterial(
        key_base64=base64.b64encode(key).decode("ascii"),
        ciphertext_base64=base64.b64encode(ciphertext).decode("ascii"),
    )
