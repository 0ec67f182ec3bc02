"""
FlashChat - Ephemeral ECDH key exchange.

Created by orpheus497

This module implements the per-participant key exchange state machine:

    NO_KEY_PAIR  --generate_key_pair()-->  HAS_KEY_PAIR
    HAS_KEY_PAIR --derive_shared_key()-->  HAS_SHARED_KEY

Keys live on the NIST P-256 curve. Public keys travel as X9.62 uncompressed
points (65 bytes), the format browsers produce for a "raw" ECDH export. The
ECDH shared secret (32 bytes) is bound directly as the AES-256-GCM key, so
both participants compute the identical key from complementary key pairs.
"""

import base64
import logging
from enum import Enum, auto
from typing import Any, Dict, Optional

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from .constants import PUBLIC_KEY_SIZE, SHARED_KEY_SIZE
from .crypto import seal_private_key, unseal_private_key
from .errors import CryptoError, ErrorCode, InvalidKeyMaterial

logger = logging.getLogger(__name__)

CURVE = ec.SECP256R1()


class KeyExchangeState(Enum):
    """Key exchange states for one participant."""

    NO_KEY_PAIR = auto()  # Nothing generated yet
    HAS_KEY_PAIR = auto()  # Local key pair exists, no shared key
    HAS_SHARED_KEY = auto()  # Shared key derived


def load_public_key(data: Any) -> ec.EllipticCurvePublicKey:
    """
    Validate and load an exported public key.

    Accepts bytes or a sequence of integers (the share payload form).

    Raises:
        InvalidKeyMaterial: If the data is not a 65-byte uncompressed point
            lying on P-256.
    """
    if isinstance(data, (str, int)):
        raise InvalidKeyMaterial("Public key is not a byte sequence")

    try:
        raw = bytes(data)
    except (TypeError, ValueError) as e:
        raise InvalidKeyMaterial("Public key is not a byte sequence") from e

    if len(raw) != PUBLIC_KEY_SIZE or raw[0] != 0x04:
        raise InvalidKeyMaterial(
            f"Public key must be a {PUBLIC_KEY_SIZE}-byte uncompressed point",
            {"length": len(raw)},
        )

    try:
        return ec.EllipticCurvePublicKey.from_encoded_point(CURVE, raw)
    except ValueError as e:
        raise InvalidKeyMaterial("Public key is not a valid point on P-256") from e


def encode_public_key(public_key: ec.EllipticCurvePublicKey) -> bytes:
    """Export a public key as an uncompressed X9.62 point."""
    return public_key.public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.UncompressedPoint,
    )


class KeyExchangeEngine:
    """
    Owns one participant's key pair, the counterparty's public key and the
    derived shared key for a single conversation.

    A key pair is never regenerated once it exists: doing so mid-conversation
    would silently invalidate a shared key the counterparty already derived.
    """

    def __init__(self, private_key: Optional[ec.EllipticCurvePrivateKey] = None):
        self._private_key = private_key
        self._remote_public_key: Optional[ec.EllipticCurvePublicKey] = None
        self._shared_key: Optional[bytes] = None

    @property
    def state(self) -> KeyExchangeState:
        if self._shared_key is not None:
            return KeyExchangeState.HAS_SHARED_KEY
        if self._private_key is not None:
            return KeyExchangeState.HAS_KEY_PAIR
        return KeyExchangeState.NO_KEY_PAIR

    @property
    def shared_key(self) -> Optional[bytes]:
        """The derived 32-byte AES key, or None while in plaintext mode."""
        return self._shared_key

    @property
    def has_shared_key(self) -> bool:
        return self._shared_key is not None

    @property
    def remote_public_key(self) -> Optional[bytes]:
        if self._remote_public_key is None:
            return None
        return encode_public_key(self._remote_public_key)

    def generate_key_pair(self) -> None:
        """Create the local key pair. A no-op once a key pair exists."""
        if self._private_key is not None:
            return

        self._private_key = ec.generate_private_key(CURVE)
        logger.debug("Key exchange: NO_KEY_PAIR -> HAS_KEY_PAIR")

    def export_public_key(self) -> bytes:
        """
        Export the local public key as 65 raw bytes.

        Generates the key pair first when none exists yet.
        """
        self.generate_key_pair()
        return encode_public_key(self._private_key.public_key())

    def import_remote_public_key(self, data: Any) -> None:
        """
        Store the counterparty's public key and attempt derivation.

        Re-importing the key already stored is a no-op. Once a shared key
        exists a different key is rejected, since the conversation key never
        changes after the exchange.

        Raises:
            InvalidKeyMaterial: If the key is malformed or conflicts with the
                established shared key. State is left unchanged.
        """
        public_key = load_public_key(data)
        encoded = encode_public_key(public_key)

        if self._remote_public_key is not None and encoded == self.remote_public_key:
            self.derive_shared_key()
            return

        if self._shared_key is not None:
            raise InvalidKeyMaterial(
                "A shared key is already established with a different public key"
            )

        self._remote_public_key = public_key
        logger.debug("Key exchange: remote public key imported")
        self.derive_shared_key()

    def derive_shared_key(self) -> None:
        """
        Compute the ECDH shared secret and bind it as the AES-256 key.

        A no-op when either the local key pair or the remote public key is
        missing, or when the shared key already exists.
        """
        if self._private_key is None or self._remote_public_key is None:
            return
        if self._shared_key is not None:
            return

        try:
            secret = self._private_key.exchange(ec.ECDH(), self._remote_public_key)
        except ValueError as e:
            raise CryptoError(
                ErrorCode.E108_KEY_DERIVATION_FAILED, f"Key derivation failed: {e}"
            ) from e

        if len(secret) != SHARED_KEY_SIZE:
            raise CryptoError(
                ErrorCode.E108_KEY_DERIVATION_FAILED,
                "Derived secret has unexpected length",
                {"length": len(secret)},
            )

        self._shared_key = secret
        logger.debug("Key exchange: HAS_KEY_PAIR -> HAS_SHARED_KEY")

    def reset(self) -> None:
        """Forget all key material, returning to NO_KEY_PAIR."""
        self._private_key = None
        self._remote_public_key = None
        self._shared_key = None

    def seal(self, passphrase: str) -> Dict[str, Any]:
        """
        Export the engine's key material protected by a passphrase.

        Only the private scalar is encrypted; the remote public key is public
        data and stored as base64.
        """
        if self._private_key is None:
            raise CryptoError(ErrorCode.E103_INVALID_KEY, "No key pair to seal")

        scalar = self._private_key.private_numbers().private_value
        sealed = seal_private_key(scalar.to_bytes(SHARED_KEY_SIZE, "big"), passphrase)
        remote = self.remote_public_key
        return {
            "private": sealed,
            "remote": base64.b64encode(remote).decode("utf-8") if remote else None,
        }

    @classmethod
    def unseal(cls, data: Dict[str, Any], passphrase: str) -> "KeyExchangeEngine":
        """
        Restore an engine sealed by :meth:`seal`, re-deriving the shared key.

        Raises:
            DecryptionError: On a wrong passphrase or corrupted data.
            InvalidKeyMaterial: If the restored key material is invalid.
        """
        scalar_bytes = unseal_private_key(data.get("private") or {}, passphrase)
        try:
            private_key = ec.derive_private_key(int.from_bytes(scalar_bytes, "big"), CURVE)
        except ValueError as e:
            raise InvalidKeyMaterial("Sealed private key is not valid for P-256") from e

        engine = cls(private_key)
        remote = data.get("remote")
        if remote:
            try:
                remote_bytes = base64.b64decode(remote, validate=True)
            except ValueError as e:
                raise InvalidKeyMaterial("Sealed remote public key is not valid base64") from e
            engine.import_remote_public_key(remote_bytes)
        return engine
