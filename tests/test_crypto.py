"""
FlashChat - Cryptography tests.

Created by orpheus497

Tests for the AES-256-GCM message codec, identifier generation and
passphrase sealing of key material.
"""

import os

import pytest

from flashchat import crypto
from flashchat.errors import DecryptionError, ErrorCode, InvalidKeyMaterial


def test_encrypt_without_key_is_plaintext():
    """Test that messages sent before the key exchange stay plaintext."""
    unit = crypto.encrypt(None, "hi")

    assert unit.is_encrypted is False
    assert unit.ciphertext is None
    assert unit.nonce is None
    assert crypto.decrypt(None, unit) == "hi"


def test_encrypt_decrypt_round_trip(key_pair_engines):
    """Test encryption and decryption under a derived shared key."""
    alice, bob = key_pair_engines
    plaintext = "This is a secret message with unicode: 你好世界 🔒"

    unit = crypto.encrypt(alice.shared_key, plaintext)

    assert unit.is_encrypted is True
    assert len(unit.nonce) == 12
    assert plaintext.encode("utf-8") not in unit.ciphertext
    assert crypto.decrypt(bob.shared_key, unit) == plaintext


def test_empty_text_round_trip():
    """Test that an empty string survives encryption."""
    key = os.urandom(32)
    assert crypto.decrypt(key, crypto.encrypt(key, "")) == ""


def test_fresh_nonce_per_message():
    """Test that encrypting the same text twice yields different output."""
    key = os.urandom(32)
    first = crypto.encrypt(key, "same")
    second = crypto.encrypt(key, "same")

    assert first.nonce != second.nonce
    assert first.ciphertext != second.ciphertext


def test_decryption_with_wrong_key():
    """Test that decryption fails with a different key."""
    unit = crypto.encrypt(os.urandom(32), "Secret message")

    with pytest.raises(DecryptionError):
        crypto.decrypt(os.urandom(32), unit)


def test_decryption_without_key():
    """Test that an encrypted unit cannot be read in plaintext mode."""
    unit = crypto.encrypt(os.urandom(32), "Secret message")

    with pytest.raises(DecryptionError) as exc_info:
        crypto.decrypt(None, unit)
    assert exc_info.value.code == ErrorCode.E109_KEY_MISSING


def test_tampered_ciphertext_fails():
    """Test that flipping a ciphertext bit fails authentication."""
    key = os.urandom(32)
    unit = crypto.encrypt(key, "Secret message")
    tampered = bytearray(unit.ciphertext)
    tampered[0] ^= 0x01

    with pytest.raises(DecryptionError):
        crypto.decrypt(key, crypto.EncryptedUnit(True, bytes(tampered), unit.nonce))


def test_wrong_nonce_fails():
    """Test that decrypting with another nonce fails authentication."""
    key = os.urandom(32)
    unit = crypto.encrypt(key, "Secret message")

    with pytest.raises(DecryptionError):
        crypto.decrypt(key, crypto.EncryptedUnit(True, unit.ciphertext, os.urandom(12)))


def test_short_nonce_fails():
    """Test that a nonce of the wrong size is a decryption error."""
    key = os.urandom(32)
    unit = crypto.encrypt(key, "Secret message")

    with pytest.raises(DecryptionError):
        crypto.decrypt(key, crypto.EncryptedUnit(True, unit.ciphertext, b"\x00" * 8))


def test_invalid_key_length():
    """Test that a key of the wrong size is rejected."""
    with pytest.raises(InvalidKeyMaterial):
        crypto.encrypt(b"\x00" * 16, "hi")


def test_unit_invariant():
    """Test that is_encrypted must match the presence of ciphertext and nonce."""
    with pytest.raises(ValueError):
        crypto.EncryptedUnit(True, ciphertext=b"abc")
    with pytest.raises(ValueError):
        crypto.EncryptedUnit(False, ciphertext=b"abc", nonce=b"\x00" * 12)


def test_user_id_generation():
    """Test participant id format and uniqueness."""
    uid1 = crypto.generate_user_id()
    uid2 = crypto.generate_user_id()

    assert uid1.startswith("user_")
    assert len(uid1) == 13
    assert all(c in "0123456789abcdefghijklmnopqrstuvwxyz" for c in uid1[5:])
    assert uid1 != uid2


def test_conversation_id_generation():
    """Test conversation id format."""
    cid = crypto.generate_conversation_id()

    assert cid.startswith("conv_")
    assert len(cid) == 13


def test_seal_and_unseal_private_key():
    """Test passphrase sealing of key material."""
    secret = os.urandom(32)

    sealed = crypto.seal_private_key(secret, "correct horse")

    assert set(sealed) == {"salt", "nonce", "ciphertext", "version"}
    assert crypto.unseal_private_key(sealed, "correct horse") == secret


def test_unseal_with_wrong_passphrase():
    """Test that unsealing fails with the wrong passphrase."""
    sealed = crypto.seal_private_key(os.urandom(32), "correct_password")

    with pytest.raises(DecryptionError):
        crypto.unseal_private_key(sealed, "wrong_password")


def test_unseal_corrupted_data():
    """Test that corrupted sealed data is a decryption error."""
    with pytest.raises(DecryptionError):
        crypto.unseal_private_key({"salt": "***"}, "anything")
