"""
Unit Tests for Password Encryption
==================================

Test Coverage:
--------------
1. Key is 8 random bytes, base64 encoded
2. Padding: short passwords fill one block, aligned passwords gain a full block
3. Ciphertext decrypts back to the password under the generated key
4. Invalid key material raises CryptoError
"""

import base64

import pytest
from Crypto.Cipher import DES
from Crypto.Util.Padding import unpad

from tyust_gateway.portal.crypto import encrypt_password, make_cipher_material
from tyust_gateway.portal.errors import CryptoError, PortalError


def decode(material):
    return base64.b64decode(material.key_base64), base64.b64decode(material.ciphertext_base64)


def test_key_is_eight_bytes():
    key, _ = decode(make_cipher_material("secret"))
    assert len(key) == 8


def test_keys_differ_between_attempts():
    first, _ = decode(make_cipher_material("secret"))
    second, _ = decode(make_cipher_material("secret"))
    assert first != second


@pytest.mark.parametrize(
    "password,expected_length",
    [
        ("", 8),
        ("abc", 8),
        ("1234567", 8),
        ("12345678", 16),
        ("123456789", 16),
    ],
)
def test_ciphertext_length_is_padded_to_block(password, expected_length):
    _, ciphertext = decode(make_cipher_material(password))
    assert len(ciphertext) == expected_length


def test_aligned_password_gets_full_padding_block():
    key = b"\x01\x02\x03\x04\x05\x06\x07\x08"
    ciphertext = encrypt_password("12345678", key)

    plain = DES.new(key, DES.MODE_ECB).decrypt(ciphertext)

    assert plain[8:] == bytes([8] * 8)


def test_round_trip_recovers_password():
    material = make_cipher_material("p@ssw0rd-密码")
    key, ciphertext = decode(material)

    plain = unpad(DES.new(key, DES.MODE_ECB).decrypt(ciphertext), 8)

    assert plain.decode("utf-8") == "p@ssw0rd-密码"


def test_invalid_key_raises_crypto_error():
    with pytest.raises(CryptoError) as exc_info:
        encrypt_password("secret", b"short")

    assert isinstance(exc_info.value, PortalError)


def test_repr_hides_material():
    material = make_cipher_material("secret")
    assert material.ciphertext_base64 not in repr(material)
