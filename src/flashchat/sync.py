"""
FlashChat - Share link encoding and conversation merge.

Created by orpheus497

A conversation has no server: its whole history travels inside a URL query
parameter. This module turns a message store into that payload and merges
a received payload back into a local store.

Payload format (before base64):
    [
        {"text": ..., "encrypted": bool, "data": [bytes]?, "iv": [bytes]?,
         "timestamp": int, "userId": str, "conversationId": str,
         "readBy": [str], "deliveredTo": [str], "publicKey": [bytes]?},
        ...
    ]

The sender's public key rides on the earliest message they authored. The
receiver imports it the first time that message arrives, which is how the
key exchange completes without any extra round trip.
"""

import base64
import binascii
import json
import logging
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import parse_qs, parse_qsl, urlencode, urlsplit, urlunsplit

from .constants import MAX_PAYLOAD_SIZE, SHARE_PARAM
from .errors import ErrorCode, InvalidKeyMaterial, MalformedPayload
from .key_exchange import KeyExchangeEngine
from .message import Message, MessageStore

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    """Outcome of merging one share payload."""

    added: List[int] = field(default_factory=list)
    duplicates: int = 0
    conversation_id: Optional[str] = None
    key_imported: bool = False
    key_error: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def changed(self) -> bool:
        return bool(self.added)


def compose_share_payload(store: MessageStore, local_id: str, key_engine: KeyExchangeEngine) -> str:
    """
    Serialize the whole conversation into transport-safe text.

    The local public key is attached to the copy of the earliest message
    authored by ``local_id``. The stored messages are not modified.
    """
    entries = []
    key_attached = False
    for msg in store.all_messages():
        include_key = False
        if not key_attached and msg.author_id == local_id:
            msg = msg.copy()
            msg.public_key = key_engine.export_public_key()
            include_key = key_attached = True
        entries.append(msg.to_dict(include_public_key=include_key))

    encoded = json.dumps(entries, separators=(",", ":")).encode("utf-8")
    return base64.b64encode(encoded).decode("ascii")


def compose_share_url(
    store: MessageStore,
    local_id: str,
    key_engine: KeyExchangeEngine,
    base_url: str,
    param: str = SHARE_PARAM,
) -> str:
    """Embed the share payload as the ``param`` query parameter of ``base_url``.

    Other query parameters already on ``base_url`` are kept; a stale payload
    parameter is replaced.
    """
    payload = compose_share_payload(store, local_id, key_engine)
    parts = urlsplit(base_url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != param]
    query.append((param, payload))
    return urlunsplit((parts.scheme, parts.netloc, parts.path or "/", urlencode(query), ""))


def extract_payload(url_or_text: str, param: str = SHARE_PARAM) -> str:
    """
    Get the payload text from a share URL, or return a bare payload as-is.

    Raises:
        MalformedPayload: If a URL carries no ``param`` parameter.
    """
    if not isinstance(url_or_text, str):
        raise MalformedPayload("Share data must be text", code=ErrorCode.E201_INVALID_ENCODING)

    text = url_or_text.strip()
    parts = urlsplit(text)
    if not (parts.scheme or parts.query or "?" in text):
        return text

    values = parse_qs(parts.query, keep_blank_values=True).get(param)
    if not values:
        raise MalformedPayload(
            f"Share link has no '{param}' parameter",
            code=ErrorCode.E204_MISSING_PARAMETER,
        )
    return values[0]


def _b64decode_lenient(text: str) -> bytes:
    # Query parsing turns '+' into ' '; URL-safe and unpadded forms are accepted too
    cleaned = "".join(text.strip().replace(" ", "+").split())
    cleaned = cleaned.replace("-", "+").replace("_", "/").rstrip("=")
    cleaned += "=" * (-len(cleaned) % 4)
    return base64.b64decode(cleaned, validate=True)


def decode_share_payload(text: str) -> List[Message]:
    """
    Decode transport text into messages sorted by timestamp.

    The payload is parsed completely before anything is returned, so a
    failure never leaves a half-processed payload behind.

    Raises:
        MalformedPayload: On any base64, UTF-8, JSON or structural error.
    """
    if not isinstance(text, str):
        raise MalformedPayload("Share data must be text", code=ErrorCode.E201_INVALID_ENCODING)
    if len(text) > MAX_PAYLOAD_SIZE:
        raise MalformedPayload(
            "Share payload is too large",
            {"size": len(text)},
            code=ErrorCode.E205_PAYLOAD_TOO_LARGE,
        )

    try:
        raw = _b64decode_lenient(text)
        decoded = raw.decode("utf-8")
    except (binascii.Error, ValueError) as e:
        raise MalformedPayload(
            f"Share payload is not valid base64: {e}", code=ErrorCode.E201_INVALID_ENCODING
        ) from e

    try:
        entries = json.loads(decoded)
    except json.JSONDecodeError as e:
        raise MalformedPayload(
            f"Share payload is not valid JSON: {e}", code=ErrorCode.E202_INVALID_JSON
        ) from e

    if not isinstance(entries, list):
        raise MalformedPayload("Share payload must be a list of messages")

    messages = []
    for index, entry in enumerate(entries):
        try:
            messages.append(Message.from_dict(entry))
        except ValueError as e:
            raise MalformedPayload(f"Invalid message entry: {e}", {"index": index}) from e

    messages.sort(key=lambda m: m.timestamp)
    return messages


def ingest_share_payload(
    text: str,
    store: MessageStore,
    key_engine: KeyExchangeEngine,
    local_id: str,
    conversation_id: Optional[str] = None,
) -> IngestResult:
    """
    Merge a share payload into ``store``.

    Messages are processed in timestamp order. For each message not yet
    stored:
    - it is inserted (its public key is not persisted);
    - an unset ``conversation_id`` adopts the message's conversation id;
    - a public key from the counterparty is imported while no shared key
      exists, creating the local key pair first if needed.

    Ingesting the same payload again adds nothing.

    Raises:
        MalformedPayload: If the payload cannot be decoded. The store is
            left untouched.
    """
    messages = decode_share_payload(text)
    result = IngestResult(conversation_id=conversation_id)

    for msg in messages:
        public_key = msg.public_key
        if not store.append(msg):
            result.duplicates += 1
            continue

        result.added.append(msg.timestamp)

        if result.conversation_id is None and msg.conversation_id:
            result.conversation_id = msg.conversation_id
            logger.info(f"Joined conversation {msg.conversation_id}")

        if public_key is None or msg.author_id == local_id or key_engine.has_shared_key:
            continue

        try:
            key_engine.generate_key_pair()
            key_engine.import_remote_public_key(public_key)
        except InvalidKeyMaterial as e:
            logger.warning(f"Rejected public key on message {msg.timestamp}: {e.message}")
            result.key_error = e.message
            continue

        if key_engine.has_shared_key:
            result.key_imported = True
            logger.info("Shared key derived from received public key")

    logger.debug(
        f"Ingested payload: {len(result.added)} new, {result.duplicates} duplicate messages"
    )
    return result


def ingest_share_url(
    url: str,
    store: MessageStore,
    key_engine: KeyExchangeEngine,
    local_id: str,
    conversation_id: Optional[str] = None,
    param: str = SHARE_PARAM,
) -> IngestResult:
    """URL form of :func:`ingest_share_payload`."""
    return ingest_share_payload(
        extract_payload(url, param), store, key_engine, local_id, conversation_id
    )
