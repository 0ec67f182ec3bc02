"""
FlashChat - Message storage and management.

Created by orpheus497
Version: 1.0.0

Handles message persistence and conversation history. Messages are keyed
by their millisecond timestamp, which doubles as the message id: inserting
a timestamp that already exists is a no-op, so merged payloads can be
re-processed safely.

Statistics are never kept as counters; they are recomputed from the
stored messages on every call.
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from .constants import MESSAGE_KEY_PREFIX
from .crypto import EncryptedUnit
from .storage import KeyValueStore

logger = logging.getLogger(__name__)


def _bytes_field(value: Any, name: str) -> bytes:
    """Decode a byte field transported as a list of integers."""
    if not isinstance(value, list):
        raise ValueError(f"'{name}' must be a list of byte values")
    if not all(isinstance(b, int) and not isinstance(b, bool) and 0 <= b <= 255 for b in value):
        raise ValueError(f"'{name}' contains values outside 0..255")
    return bytes(value)


def _id_set(value: Any, name: str) -> set:
    if value is None:
        return set()
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"'{name}' must be a list of participant ids")
    return set(value)


class Message:
    """Represents a message in a conversation.

    ``timestamp`` is the primary key. ``public_key`` is never persisted; it
    only rides along on share payloads (see :mod:`flashchat.sync`).
    """

    def __init__(
        self,
        text: str,
        timestamp: int,
        author_id: str,
        conversation_id: Optional[str] = None,
        is_encrypted: bool = False,
        ciphertext: Optional[bytes] = None,
        nonce: Optional[bytes] = None,
        read_by: Optional[Iterable[str]] = None,
        delivered_to: Optional[Iterable[str]] = None,
        public_key: Optional[bytes] = None,
    ):
        if is_encrypted != (ciphertext is not None and nonce is not None):
            raise ValueError("is_encrypted must be True exactly when ciphertext and nonce are set")

        self.text = text
        self.timestamp = timestamp
        self.author_id = author_id
        self.conversation_id = conversation_id
        self.is_encrypted = is_encrypted
        self.ciphertext = ciphertext
        self.nonce = nonce
        self.read_by = set(read_by or ())
        self.delivered_to = set(delivered_to or ())
        self.public_key = public_key

    @classmethod
    def from_unit(
        cls,
        unit: EncryptedUnit,
        timestamp: int,
        author_id: str,
        conversation_id: Optional[str],
    ) -> "Message":
        """Build a message from an encryption result.

        Encrypted messages keep an empty ``text``; the plaintext is only
        recoverable through the shared key.
        """
        return cls(
            text="" if unit.is_encrypted else (unit.text or ""),
            timestamp=timestamp,
            author_id=author_id,
            conversation_id=conversation_id,
            is_encrypted=unit.is_encrypted,
            ciphertext=unit.ciphertext,
            nonce=unit.nonce,
        )

    @property
    def unit(self) -> EncryptedUnit:
        """The encrypted (or plaintext) body of this message."""
        if self.is_encrypted:
            return EncryptedUnit(True, ciphertext=self.ciphertext, nonce=self.nonce)
        return EncryptedUnit(False, text=self.text)

    def to_dict(self, include_public_key: bool = False) -> Dict[str, Any]:
        """Convert message to its storage and share payload form."""
        data: Dict[str, Any] = {
            "text": self.text,
            "encrypted": self.is_encrypted,
        }
        if self.is_encrypted:
            data["data"] = list(self.ciphertext)
            data["iv"] = list(self.nonce)
        data.update(
            {
                "timestamp": self.timestamp,
                "userId": self.author_id,
                "conversationId": self.conversation_id,
                "readBy": sorted(self.read_by),
                "deliveredTo": sorted(self.delivered_to),
            }
        )
        if include_public_key and self.public_key is not None:
            data["publicKey"] = list(self.public_key)
        return data

    @staticmethod
    def from_dict(data: Any) -> "Message":
        """Create message from dictionary.

        Raises:
            ValueError: If a field is missing or has the wrong type
        """
        if not isinstance(data, dict):
            raise ValueError("Message entry must be an object")

        timestamp = data.get("timestamp")
        if not isinstance(timestamp, int) or isinstance(timestamp, bool) or timestamp < 0:
            raise ValueError("'timestamp' must be a non-negative integer")

        author_id = data.get("userId")
        if not isinstance(author_id, str) or not author_id:
            raise ValueError("'userId' must be a non-empty string")

        text = data.get("text", "")
        if not isinstance(text, str):
            raise ValueError("'text' must be a string")

        conversation_id = data.get("conversationId")
        if conversation_id is not None and not isinstance(conversation_id, str):
            raise ValueError("'conversationId' must be a string")

        is_encrypted = data.get("encrypted", False)
        if not isinstance(is_encrypted, bool):
            raise ValueError("'encrypted' must be a boolean")

        ciphertext = nonce = None
        if is_encrypted:
            # Plaintext entries may carry the text under "data"; it is ignored
            ciphertext = _bytes_field(data.get("data"), "data")
            nonce = _bytes_field(data.get("iv"), "iv")

        public_key = None
        if data.get("publicKey") is not None:
            public_key = _bytes_field(data["publicKey"], "publicKey")

        return Message(
            text=text,
            timestamp=timestamp,
            author_id=author_id,
            conversation_id=conversation_id,
            is_encrypted=is_encrypted,
            ciphertext=ciphertext,
            nonce=nonce,
            read_by=_id_set(data.get("readBy"), "readBy"),
            delivered_to=_id_set(data.get("deliveredTo"), "deliveredTo"),
            public_key=public_key,
        )

    def copy(self) -> "Message":
        return Message(
            text=self.text,
            timestamp=self.timestamp,
            author_id=self.author_id,
            conversation_id=self.conversation_id,
            is_encrypted=self.is_encrypted,
            ciphertext=self.ciphertext,
            nonce=self.nonce,
            read_by=self.read_by,
            delivered_to=self.delivered_to,
            public_key=self.public_key,
        )

    def mark_read(self, participant_id: str) -> bool:
        """Record that ``participant_id`` read this message.

        Returns:
            True if the receipt is new
        """
        if participant_id in self.read_by:
            return False
        self.read_by.add(participant_id)
        return True

    def mark_delivered(self, participant_id: str) -> bool:
        """Record delivery to ``participant_id``."""
        if participant_id in self.delivered_to:
            return False
        self.delivered_to.add(participant_id)
        return True

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Message):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return (
            f"Message(timestamp={self.timestamp}, author_id={self.author_id!r}, "
            f"encrypted={self.is_encrypted})"
        )


@dataclass(frozen=True)
class ConversationStats:
    """Counts derived from the stored messages."""

    sent: int
    received: int
    last_update: Optional[int]


def compute_stats(messages: Iterable[Message], local_id: str) -> ConversationStats:
    """Project ``messages`` into sent/received counts and the latest timestamp."""
    sent = received = 0
    last_update: Optional[int] = None
    for msg in messages:
        if msg.author_id == local_id:
            sent += 1
        else:
            received += 1
        if last_update is None or msg.timestamp > last_update:
            last_update = msg.timestamp
    return ConversationStats(sent=sent, received=received, last_update=last_update)


def message_key(timestamp: int) -> str:
    return f"{MESSAGE_KEY_PREFIX}{timestamp}"


class MessageStore:
    """Ordered, append-only, deduplicated message history.

    Persists each message under ``message:<timestamp>`` in a
    :class:`~flashchat.storage.KeyValueStore` and reloads them on startup
    by scanning that prefix.
    """

    def __init__(self, kv: KeyValueStore):
        self.kv = kv
        self._messages: Dict[int, Message] = {}
        self._load_messages()

    def _load_messages(self) -> None:
        """Load messages from the key-value store."""
        for key in self.kv.keys(MESSAGE_KEY_PREFIX):
            raw = self.kv.get(key)
            try:
                msg = Message.from_dict(json.loads(raw))
            except (TypeError, ValueError) as e:
                logger.warning(f"Skipping unreadable stored message {key}: {e}")
                continue
            msg.public_key = None
            self._messages[msg.timestamp] = msg

        if self._messages:
            logger.info(f"Loaded {len(self._messages)} messages")

    def _persist(self, message: Message) -> None:
        self.kv.put(message_key(message.timestamp), json.dumps(message.to_dict()))

    def append(self, message: Message) -> bool:
        """Insert a message keyed by its timestamp.

        A message whose timestamp is already stored is a duplicate and
        leaves the store unchanged.

        Returns:
            True if inserted, False for a duplicate
        """
        if message.timestamp in self._messages:
            logger.debug(f"Duplicate message {message.timestamp} ignored")
            return False

        stored = message.copy()
        stored.public_key = None
        self._messages[stored.timestamp] = stored
        self._persist(stored)
        logger.debug(f"Added message {stored.timestamp} from {stored.author_id}")
        return True

    def get(self, timestamp: int) -> Optional[Message]:
        return self._messages.get(timestamp)

    def all_messages(self) -> List[Message]:
        """All messages sorted ascending by timestamp."""
        return sorted(self._messages.values(), key=lambda m: m.timestamp)

    def stats(self, local_id: str) -> ConversationStats:
        """Sent/received counts and last update, recomputed from scratch."""
        return compute_stats(self.all_messages(), local_id)

    def mark_received_as_read(self, local_id: str) -> int:
        """Add ``local_id`` to ``read_by`` of every message authored by someone else.

        The receipt stays local; nothing reports it back to the sender.

        Returns:
            Number of messages updated
        """
        updated = 0
        for msg in self.all_messages():
            if msg.author_id != local_id and msg.mark_read(local_id):
                self._persist(msg)
                updated += 1
        return updated

    def latest_timestamp(self) -> Optional[int]:
        return max(self._messages) if self._messages else None

    def next_timestamp(self, now_ms: Optional[int] = None) -> int:
        """A timestamp for a new local message, unique and strictly increasing."""
        if now_ms is None:
            now_ms = int(time.time() * 1000)
        latest = self.latest_timestamp()
        if latest is not None and now_ms <= latest:
            return latest + 1
        return now_ms

    def clear(self) -> int:
        """Delete every stored message.

        Returns:
            Number of messages removed
        """
        count = len(self._messages)
        self._messages.clear()
        self.kv.clear_prefix(MESSAGE_KEY_PREFIX)
        return count

    def __len__(self) -> int:
        return len(self._messages)

    def __contains__(self, timestamp: object) -> bool:
        return timestamp in self._messages
