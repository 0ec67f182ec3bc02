"""
FlashChat - Serverless, link-shareable encrypted conversations

A two-party conversation whose entire history travels inside a share link.
The first message carries an ephemeral P-256 public key; once the other
side replies, both derive the same AES-256-GCM key and every later message
is encrypted.

Author: orpheus497
Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
__author__ = "orpheus497"
__license__ = "MIT"

from .config import Config
from .constants import APP_NAME, VERSION
from .conversation import Conversation
from .crypto import EncryptedUnit, decrypt, encrypt
from .errors import (
    ConfigError,
    CryptoError,
    DecryptionError,
    ErrorCode,
    FlashChatError,
    InvalidKeyMaterial,
    MalformedPayload,
    PayloadError,
    StorageError,
)
from .key_exchange import KeyExchangeEngine, KeyExchangeState
from .message import ConversationStats, Message, MessageStore
from .storage import JsonFileStore, KeyValueStore, MemoryStore
from .sync import IngestResult, compose_share_payload, compose_share_url, ingest_share_payload

__all__ = [
    "APP_NAME",
    "VERSION",
    "Config",
    "ConfigError",
    "Conversation",
    "ConversationStats",
    "CryptoError",
    "DecryptionError",
    "EncryptedUnit",
    "ErrorCode",
    "FlashChatError",
    "IngestResult",
    "InvalidKeyMaterial",
    "JsonFileStore",
    "KeyExchangeEngine",
    "KeyExchangeState",
    "KeyValueStore",
    "MalformedPayload",
    "MemoryStore",
    "Message",
    "MessageStore",
    "PayloadError",
    "StorageError",
    "__author__",
    "__license__",
    "__version__",
    "compose_share_payload",
    "compose_share_url",
    "decrypt",
    "encrypt",
    "ingest_share_payload",
]
