"""
FlashChat - Message encryption and identifier generation.

Created by orpheus497

This module implements the authenticated-encryption codec used for every
message in a conversation:
- AES-256-GCM over the UTF-8 encoding of the message text
- A fresh random 96-bit nonce per message
- Plaintext passthrough while no shared key has been derived yet

It also provides the random identifiers for participants and conversations,
and password sealing of private key material (Argon2id + AES-256-GCM) for
the rare case a caller wants keys to survive a reload.

All cryptographic operations use well-tested, open-source libraries:
- cryptography library (Apache 2.0/BSD License)
- argon2-cffi (MIT License)
"""

import base64
import os
import secrets
from dataclasses import dataclass
from typing import Dict, Optional

from argon2.low_level import Type, hash_secret_raw
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .constants import (
    ARGON2_MEMORY_COST,
    ARGON2_PARALLELISM,
    ARGON2_TIME_COST,
    CONVERSATION_ID_PREFIX,
    ID_ALPHABET,
    ID_RANDOM_LENGTH,
    NONCE_SIZE,
    SALT_SIZE,
    SEALED_KEY_VERSION,
    SHARED_KEY_SIZE,
    USER_ID_PREFIX,
)
from .errors import DecryptionError, ErrorCode, InvalidKeyMaterial


@dataclass(frozen=True)
class EncryptedUnit:
    """Result of encrypting one message text.

    When ``is_encrypted`` is False the unit is in plaintext fallback mode and
    ``text`` carries the message; ``ciphertext`` and ``nonce`` are None.
    When it is True, ``ciphertext`` (including the GCM tag) and ``nonce``
    are both set and ``text`` is None.
    """

    is_encrypted: bool
    ciphertext: Optional[bytes] = None
    nonce: Optional[bytes] = None
    text: Optional[str] = None

    def __post_init__(self):
        has_payload = self.ciphertext is not None and self.nonce is not None
        if self.is_encrypted != has_payload:
            raise ValueError("is_encrypted must be True exactly when ciphertext and nonce are set")


def _check_key(shared_key: bytes) -> None:
    if not isinstance(shared_key, (bytes, bytearray)) or len(shared_key) != SHARED_KEY_SIZE:
        raise InvalidKeyMaterial(
            f"Shared key must be {SHARED_KEY_SIZE} bytes",
            {"length": len(shared_key) if isinstance(shared_key, (bytes, bytearray)) else None},
        )


def encrypt(shared_key: Optional[bytes], text: str) -> EncryptedUnit:
    """
    Encrypt a message text under the conversation's shared key.

    Messages sent before the key exchange completes are never encrypted:
    without a shared key the text is returned as a plaintext unit.

    Each call draws a new random 96-bit nonce, so a nonce is never reused
    under the same key at any realistic message volume.
    """
    if shared_key is None:
        return EncryptedUnit(is_encrypted=False, text=text)

    _check_key(shared_key)
    nonce = os.urandom(NONCE_SIZE)
    ciphertext = AESGCM(bytes(shared_key)).encrypt(nonce, text.encode("utf-8"), None)
    return EncryptedUnit(is_encrypted=True, ciphertext=ciphertext, nonce=nonce)


def decrypt(shared_key: Optional[bytes], unit: EncryptedUnit) -> str:
    """
    Decrypt a unit produced by :func:`encrypt`.

    Plaintext units return their text unchanged.

    Raises:
        DecryptionError: If the unit is encrypted and no key is available,
            or the authentication tag does not verify (tampered data, wrong
            key or wrong nonce), or the plaintext is not valid UTF-8.
    """
    if not unit.is_encrypted:
        return unit.text if unit.text is not None else ""

    if shared_key is None:
        raise DecryptionError(
            "No shared key available to decrypt message",
            code=ErrorCode.E109_KEY_MISSING,
        )

    _check_key(shared_key)
    if len(unit.nonce) != NONCE_SIZE:
        raise DecryptionError("Nonce has invalid length", {"length": len(unit.nonce)})

    try:
        plaintext = AESGCM(bytes(shared_key)).decrypt(unit.nonce, unit.ciphertext, None)
    except InvalidTag as e:
        raise DecryptionError("Authentication tag verification failed") from e

    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecryptionError("Decrypted message is not valid UTF-8") from e


def _random_suffix(length: int = ID_RANDOM_LENGTH) -> str:
    return "".join(secrets.choice(ID_ALPHABET) for _ in range(length))


def generate_user_id() -> str:
    """
    Generate a local participant identifier.

    Format: "user_" followed by 8 lowercase base36 characters
    (e.g., "user_ab12cd34").
    """
    return USER_ID_PREFIX + _random_suffix()


def generate_conversation_id() -> str:
    """
    Generate a conversation identifier, minted by the first locally authored message.

    Format: "conv_" followed by 8 lowercase base36 characters.
    """
    return CONVERSATION_ID_PREFIX + _random_suffix()


def _derive_sealing_key(passphrase: str, salt: bytes) -> bytes:
    return hash_secret_raw(
        secret=passphrase.encode("utf-8"),
        salt=salt,
        time_cost=ARGON2_TIME_COST,
        memory_cost=ARGON2_MEMORY_COST,
        parallelism=ARGON2_PARALLELISM,
        hash_len=SHARED_KEY_SIZE,
        type=Type.ID,
    )


def seal_private_key(private_bytes: bytes, passphrase: str) -> Dict[str, str]:
    """
    Encrypt private key material with a passphrase.

    Uses Argon2id for key derivation and AES-256-GCM for the encryption:
    - Time cost: 3 iterations
    - Memory cost: 65536 KB (64 MB)
    - Parallelism: 1 thread
    - Unique 16-byte salt and 12-byte nonce per sealing
    """
    salt = os.urandom(SALT_SIZE)
    key = _derive_sealing_key(passphrase, salt)
    nonce = os.urandom(NONCE_SIZE)
    ciphertext = AESGCM(key).encrypt(nonce, private_bytes, None)

    return {
        "salt": base64.b64encode(salt).decode("utf-8"),
        "nonce": base64.b64encode(nonce).decode("utf-8"),
        "ciphertext": base64.b64encode(ciphertext).decode("utf-8"),
        "version": SEALED_KEY_VERSION,
    }


def unseal_private_key(sealed: Dict[str, str], passphrase: str) -> bytes:
    """
    Decrypt private key material sealed by :func:`seal_private_key`.

    Raises DecryptionError if:
    - Passphrase is incorrect
    - Sealed data is corrupted or incomplete
    - Authentication tag verification fails
    """
    try:
        salt = base64.b64decode(sealed["salt"], validate=True)
        nonce = base64.b64decode(sealed["nonce"], validate=True)
        ciphertext = base64.b64decode(sealed["ciphertext"], validate=True)
    except (KeyError, TypeError, ValueError) as e:
        raise DecryptionError("Sealed key data is corrupted") from e

    if len(salt) != SALT_SIZE:
        raise DecryptionError("Sealed key data is corrupted", {"salt_length": len(salt)})

    key = _derive_sealing_key(passphrase, salt)
    try:
        return AESGCM(key).decrypt(nonce, ciphertext, None)
    except (InvalidTag, ValueError) as e:
        raise DecryptionError("Failed to unseal key. Incorrect passphrase or corrupted data.") from e
