"""
FlashChat - Conversation controller.

Created by orpheus497

Wires the message store, key exchange engine and share link protocol
together behind the user intents a front end emits:
- send(text)
- share_link()
- open_link(url)
- destroy_all()

It also owns the local participant id, the conversation id and the
display preferences kept in the key-value store.
"""

import json
import logging
from typing import Dict, List, Optional, Tuple

from .constants import (
    CONVERSATION_ID_KEY,
    DEFAULT_BASE_URL,
    DEFAULT_MODE,
    DEFAULT_THEME,
    MODE_IRC,
    MODE_SIGNAL,
    PREFERENCE_KEY_PREFIX,
    PREFS_KEY,
    SEALED_KEY_KEY,
    SEEN_WELCOME_KEY,
    SHARE_PARAM,
    THEME_DARK,
    THEME_LIGHT,
    USER_ID_KEY,
)
from .crypto import decrypt, encrypt, generate_conversation_id, generate_user_id
from .errors import DecryptionError, MalformedPayload
from .key_exchange import KeyExchangeEngine
from .message import ConversationStats, Message, MessageStore
from .storage import KeyValueStore
from .sync import IngestResult, compose_share_url, ingest_share_url

logger = logging.getLogger(__name__)


class Conversation:
    """One participant's view of a two-party conversation."""

    def __init__(
        self,
        kv: KeyValueStore,
        base_url: str = DEFAULT_BASE_URL,
        param: str = SHARE_PARAM,
        key_engine: Optional[KeyExchangeEngine] = None,
        default_theme: str = DEFAULT_THEME,
        default_mode: str = DEFAULT_MODE,
    ):
        self.kv = kv
        self.base_url = base_url
        self.param = param
        self.default_theme = default_theme
        self.default_mode = default_mode
        self.key_engine = key_engine or KeyExchangeEngine()
        self.store = MessageStore(kv)
        self.user_id = self._load_user_id()
        self.conversation_id: Optional[str] = kv.get(CONVERSATION_ID_KEY)

    @classmethod
    def open(
        cls,
        kv: KeyValueStore,
        *,
        passphrase: Optional[str] = None,
        **kwargs,
    ) -> "Conversation":
        """Open the conversation held in ``kv``.

        With a passphrase, previously sealed key material is restored so
        earlier encrypted messages stay readable after a restart.

        Raises:
            DecryptionError: If the passphrase does not unseal the stored keys
        """
        engine = None
        sealed = kv.get(SEALED_KEY_KEY)
        if passphrase is not None and sealed:
            try:
                data = json.loads(sealed)
            except json.JSONDecodeError as e:
                raise DecryptionError("Stored key data is corrupted") from e
            engine = KeyExchangeEngine.unseal(data, passphrase)
            logger.info("Restored sealed key material")
        return cls(kv, key_engine=engine, **kwargs)

    def _load_user_id(self) -> str:
        user_id = self.kv.get(USER_ID_KEY)
        if not user_id:
            user_id = generate_user_id()
            self.kv.put(USER_ID_KEY, user_id)
            logger.info(f"Created participant id {user_id}")
        return user_id

    def _has_sent(self) -> bool:
        return any(msg.author_id == self.user_id for msg in self.store.all_messages())

    def send(self, text: str) -> Message:
        """Encrypt (when a shared key exists) and store a new local message.

        The first locally authored message creates the key pair and, unless
        this side joined through a link, mints the conversation id.

        Raises:
            ValueError: If ``text`` is empty after stripping whitespace
        """
        text = text.strip()
        if not text:
            raise ValueError("Cannot send an empty message")

        if not self._has_sent():
            self.key_engine.generate_key_pair()
            if self.conversation_id is None:
                self.conversation_id = generate_conversation_id()
                self.kv.put(CONVERSATION_ID_KEY, self.conversation_id)
                logger.info(f"Started conversation {self.conversation_id}")

        unit = encrypt(self.key_engine.shared_key, text)
        message = Message.from_unit(
            unit,
            timestamp=self.store.next_timestamp(),
            author_id=self.user_id,
            conversation_id=self.conversation_id,
        )
        self.store.append(message)
        logger.debug(f"Sent message {message.timestamp} (encrypted={message.is_encrypted})")
        return message

    def share_link(self) -> str:
        """The URL carrying the full conversation."""
        return compose_share_url(
            self.store, self.user_id, self.key_engine, self.base_url, self.param
        )

    def open_link(self, url: str) -> IngestResult:
        """Merge a received share link (or bare payload).

        A malformed link is logged and reported through ``IngestResult.error``;
        the conversation keeps its previous state.
        """
        try:
            result = ingest_share_url(
                url,
                self.store,
                self.key_engine,
                self.user_id,
                self.conversation_id,
                self.param,
            )
        except MalformedPayload as e:
            logger.error(f"Invalid share data: {e}")
            return IngestResult(conversation_id=self.conversation_id, error=e.message)

        if self.conversation_id is None and result.conversation_id:
            self.conversation_id = result.conversation_id
            self.kv.put(CONVERSATION_ID_KEY, self.conversation_id)

        self.store.mark_received_as_read(self.user_id)
        return result

    def read(self, message: Message) -> Optional[str]:
        """Plaintext of ``message``, or None if it cannot be decrypted."""
        try:
            return decrypt(self.key_engine.shared_key, message.unit)
        except DecryptionError as e:
            logger.debug(f"Message {message.timestamp} is unreadable: {e.message}")
            return None

    def messages(self) -> List[Message]:
        return self.store.all_messages()

    def transcript(self) -> List[Tuple[Message, Optional[str]]]:
        """Every message with its readable text (None when undecryptable)."""
        return [(msg, self.read(msg)) for msg in self.store.all_messages()]

    def stats(self) -> ConversationStats:
        return self.store.stats(self.user_id)

    def save_keys(self, passphrase: str) -> None:
        """Seal the key material into the store under ``passphrase``."""
        self.kv.put(SEALED_KEY_KEY, json.dumps(self.key_engine.seal(passphrase)))

    def destroy_all(self) -> int:
        """Permanently delete all messages, keys and preferences.

        A fresh participant id is created so the next conversation starts
        from a clean slate.

        Returns:
            Number of messages deleted
        """
        removed = self.store.clear()
        self.kv.clear_prefix(PREFERENCE_KEY_PREFIX)
        self.key_engine.reset()
        self.conversation_id = None
        self.user_id = self._load_user_id()
        logger.info(f"Destroyed conversation data ({removed} messages)")
        return removed

    # Preferences

    def preferences(self) -> Dict[str, str]:
        prefs = {"theme": self.default_theme, "mode": self.default_mode}
        raw = self.kv.get(PREFS_KEY)
        if raw:
            try:
                stored = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("Ignoring corrupted preferences")
                stored = {}
            if isinstance(stored, dict):
                prefs.update({k: v for k, v in stored.items() if k in prefs and isinstance(v, str)})
        return prefs

    def _save_preferences(self, prefs: Dict[str, str]) -> None:
        self.kv.put(PREFS_KEY, json.dumps(prefs))

    def toggle_theme(self) -> str:
        prefs = self.preferences()
        prefs["theme"] = THEME_LIGHT if prefs["theme"] == THEME_DARK else THEME_DARK
        self._save_preferences(prefs)
        return prefs["theme"]

    def toggle_mode(self) -> str:
        prefs = self.preferences()
        prefs["mode"] = MODE_IRC if prefs["mode"] == MODE_SIGNAL else MODE_SIGNAL
        self._save_preferences(prefs)
        return prefs["mode"]

    def should_show_welcome(self) -> bool:
        return self.kv.get(SEEN_WELCOME_KEY) != "true"

    def dismiss_welcome(self) -> None:
        self.kv.put(SEEN_WELCOME_KEY, "true")
