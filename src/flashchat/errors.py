"""
FlashChat - Custom Exception Classes and Error Codes

This module defines all custom exceptions and error codes used throughout
FlashChat. Each error has a unique code for logging and debugging.

Author: orpheus497
Version: 1.0.0
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Enumeration of all FlashChat error codes."""

    # Crypto Errors (E100-E199)
    E100_CRYPTO_ERROR = "E100"
    E102_DECRYPTION_FAILED = "E102"
    E103_INVALID_KEY = "E103"
    E108_KEY_DERIVATION_FAILED = "E108"
    E109_KEY_MISSING = "E109"
    E110_PASSPHRASE_REQUIRED = "E110"

    # Payload Errors (E200-E299)
    E200_PAYLOAD_ERROR = "E200"
    E201_INVALID_ENCODING = "E201"
    E202_INVALID_JSON = "E202"
    E203_INVALID_STRUCTURE = "E203"
    E204_MISSING_PARAMETER = "E204"
    E205_PAYLOAD_TOO_LARGE = "E205"

    # Storage Errors (E300-E399)
    E300_STORAGE_ERROR = "E300"
    E301_STORAGE_LOAD_FAILED = "E301"
    E302_STORAGE_SAVE_FAILED = "E302"

    # Config Errors (E700-E799)
    E700_CONFIG_ERROR = "E700"
    E702_CONFIG_SAVE_FAILED = "E702"
    E704_CONFIG_PARSE_ERROR = "E704"


class FlashChatError(Exception):
    """Base exception class for all FlashChat errors.

    All custom exceptions in FlashChat inherit from this class.
    Provides standardized error handling and logging.

    Attributes:
        code: Error code from ErrorCode enum
        message: Human-readable error message
        details: Additional error details (optional)
    """

    def __init__(self, code: ErrorCode, message: str, details: Optional[Dict[str, Any]] = None):
        """Initialize a FlashChat error.

        Args:
            code: Error code from ErrorCode enum
            message: Human-readable error message
            details: Additional error context (optional)
        """
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(f"[{code.value}] {message}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for serialization.

        Returns:
            Dictionary containing error information
        """
        return {"code": self.code.value, "message": self.message, "details": self.details}


class CryptoError(FlashChatError):
    """Exception raised for cryptographic operation failures."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E100_CRYPTO_ERROR,
        message: str = "Cryptographic operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class InvalidKeyMaterial(CryptoError):
    """Raised when key bytes are malformed: wrong length or not a point on the curve.

    The key exchange state is left exactly as it was before the import.
    """

    def __init__(
        self,
        message: str = "Invalid key material",
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.E103_INVALID_KEY,
    ):
        super().__init__(code, message, details)


class DecryptionError(CryptoError):
    """Raised when a message cannot be decrypted.

    Covers a missing shared key, a failed authentication tag (tampered data,
    wrong key or wrong nonce) and undecodable plaintext.
    """

    def __init__(
        self,
        message: str = "Decryption failed",
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.E102_DECRYPTION_FAILED,
    ):
        super().__init__(code, message, details)


class PayloadError(FlashChatError):
    """Exception raised for share payload failures."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E200_PAYLOAD_ERROR,
        message: str = "Share payload operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class MalformedPayload(PayloadError):
    """Raised when share data cannot be decoded or parsed.

    Ingestion aborts for that payload only; stored messages are untouched.
    """

    def __init__(
        self,
        message: str = "Malformed share payload",
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.E203_INVALID_STRUCTURE,
    ):
        super().__init__(code, message, details)


class StorageError(FlashChatError):
    """Exception raised for persistent store failures."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E300_STORAGE_ERROR,
        message: str = "Storage operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class ConfigError(FlashChatError):
    """Exception raised for configuration failures.

    This includes loading, parsing, and validating configuration files.
    """

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E700_CONFIG_ERROR,
        message: str = "Configuration operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)
