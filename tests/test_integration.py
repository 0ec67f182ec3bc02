"""
FlashChat - Integration tests.

Created by orpheus497

End-to-end conversations between two independent local stores that only
exchange share links.
"""

import base64
import json
from urllib.parse import parse_qs, urlsplit

import pytest

from flashchat.constants import (
    CONVERSATION_ID_KEY,
    PREFS_KEY,
    SEEN_WELCOME_KEY,
    USER_ID_KEY,
)
from flashchat.conversation import Conversation
from flashchat.key_exchange import KeyExchangeState
from flashchat.storage import JsonFileStore, MemoryStore


def payload_entries(url: str):
    data = parse_qs(urlsplit(url).query)["data"][0]
    return json.loads(base64.b64decode(data))


def history(conversation: Conversation):
    """The shared part of a history; read receipts are local-only."""
    return [
        (
            m.timestamp,
            m.author_id,
            m.conversation_id,
            m.is_encrypted,
            m.ciphertext,
            m.nonce,
            m.text,
        )
        for m in conversation.messages()
    ]


def test_first_message_example():
    """Test the state after the very first send."""
    kv = MemoryStore({USER_ID_KEY: "user_ab12cd34"})
    conversation = Conversation(kv)

    message = conversation.send("hi")

    assert conversation.user_id == "user_ab12cd34"
    assert len(conversation.messages()) == 1
    assert message.is_encrypted is False
    assert conversation.conversation_id.startswith("conv_")
    assert kv.get(CONVERSATION_ID_KEY) == conversation.conversation_id
    assert kv.keys("flash_") == [CONVERSATION_ID_KEY, USER_ID_KEY]
    entries = payload_entries(conversation.share_link())
    assert entries[0]["publicKey"] == list(conversation.key_engine.export_public_key())
    assert entries[0]["text"] == "hi"


def test_two_party_convergence(alice, bob):
    """Test that two stores converge after exchanging links."""
    alice.send("hi")

    result = bob.open_link(alice.share_link())

    assert result.ok
    assert result.key_imported
    assert bob.conversation_id == alice.conversation_id
    assert bob.key_engine.state == KeyExchangeState.HAS_SHARED_KEY

    reply = bob.send("hello back")
    assert reply.is_encrypted is True
    assert reply.text == ""

    result = alice.open_link(bob.share_link())

    assert result.key_imported
    assert alice.key_engine.shared_key == bob.key_engine.shared_key
    assert history(alice) == history(bob)
    assert [text for _, text in alice.transcript()] == ["hi", "hello back"]
    assert [text for _, text in bob.transcript()] == ["hi", "hello back"]


def test_conversation_continues_encrypted(alice, bob):
    """Test that later messages in both directions are encrypted and readable."""
    alice.send("hi")
    bob.open_link(alice.share_link())
    bob.send("hello back")
    alice.open_link(bob.share_link())

    third = alice.send("now this is secret")
    bob.open_link(alice.share_link())

    assert third.is_encrypted is True
    assert history(alice) == history(bob)
    assert bob.transcript()[-1][1] == "now this is secret"
    assert bob.stats().received == 2
    assert bob.stats().sent == 1
    assert alice.stats().last_update == third.timestamp


def test_reopening_same_link_is_idempotent(alice, bob):
    """Test that ingesting the same link twice changes nothing."""
    alice.send("hi")
    alice.send("are you there?")
    link = alice.share_link()

    bob.open_link(link)
    first = [m.to_dict() for m in bob.messages()]
    result = bob.open_link(link)

    assert result.added == []
    assert [m.to_dict() for m in bob.messages()] == first


def test_received_messages_marked_read_locally(alice, bob):
    """Test that read receipts only exist on the receiving side."""
    alice.send("hi")
    bob.open_link(alice.share_link())

    assert bob.messages()[0].read_by == {bob.user_id}
    assert alice.messages()[0].read_by == set()


def test_malformed_link_is_recoverable(alice):
    """Test that a corrupt link leaves the conversation untouched."""
    alice.send("hi")
    before = history(alice)

    result = alice.open_link("https://chat.example/app?data=%%%garbage")

    assert not result.ok
    assert result.error
    assert history(alice) == before
    assert alice.send("still works").text == "still works"


def test_unreadable_message_does_not_break_transcript(alice, bob):
    """Test that a tampered message renders as unreadable."""
    alice.send("hi")
    bob.open_link(alice.share_link())
    bob.send("first secret")
    bob.send("second secret")

    entries = payload_entries(bob.share_link())
    entries[1]["data"][0] ^= 0x01
    tampered = base64.b64encode(json.dumps(entries).encode("utf-8")).decode("ascii")
    alice.open_link(tampered)

    assert [text for _, text in alice.transcript()] == ["hi", None, "second secret"]


def test_empty_message_rejected(alice):
    """Test that whitespace-only text is not sent."""
    with pytest.raises(ValueError):
        alice.send("   ")
    assert alice.messages() == []


def test_joined_conversation_keeps_adopted_id(alice, bob):
    """Test that replying does not mint a new conversation id."""
    alice.send("hi")
    bob.open_link(alice.share_link())

    reply = bob.send("hey")

    assert reply.conversation_id == alice.conversation_id


def test_destroy_all(alice, bob):
    """Test that destroy clears messages, keys and preferences."""
    alice.send("hi")
    alice.toggle_mode()
    alice.dismiss_welcome()
    old_user = alice.user_id

    assert alice.destroy_all() == 1

    assert alice.messages() == []
    assert alice.conversation_id is None
    assert alice.key_engine.state == KeyExchangeState.NO_KEY_PAIR
    assert alice.kv.keys("message:") == []
    assert alice.kv.get(PREFS_KEY) is None
    assert alice.kv.get(SEEN_WELCOME_KEY) is None
    assert alice.user_id != old_user
    assert alice.kv.keys("flash_") == [USER_ID_KEY]


def test_preferences():
    """Test theme and mode toggles and the welcome flag."""
    conversation = Conversation(MemoryStore())

    assert conversation.preferences() == {"theme": "dark", "mode": "signal"}
    assert conversation.toggle_theme() == "light"
    assert conversation.toggle_mode() == "irc"
    assert conversation.preferences() == {"theme": "light", "mode": "irc"}
    assert conversation.should_show_welcome() is True

    conversation.dismiss_welcome()

    assert conversation.should_show_welcome() is False


def test_sealed_keys_survive_reload(temp_dir, bob):
    """Test that sealed keys keep encrypted history readable after reopening."""
    path = temp_dir / "store.json"
    alice = Conversation(JsonFileStore(path))
    alice.send("hi")
    bob.open_link(alice.share_link())
    bob.send("secret reply")
    alice.open_link(bob.share_link())
    alice.save_keys("pw")

    restored = Conversation.open(JsonFileStore(path), passphrase="pw")
    forgetful = Conversation.open(JsonFileStore(path))

    assert restored.user_id == alice.user_id
    assert [text for _, text in restored.transcript()] == ["hi", "secret reply"]
    assert [text for _, text in forgetful.transcript()] == ["hi", None]
