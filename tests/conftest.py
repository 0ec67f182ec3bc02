"""
Pytest configuration and fixtures for FlashChat tests.

Created by orpheus497

Provides common fixtures and test utilities for unit and integration tests.
"""

import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from flashchat.conversation import Conversation
from flashchat.key_exchange import KeyExchangeEngine
from flashchat.message import Message, MessageStore
from flashchat.storage import MemoryStore


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """
    Create a temporary directory for test data.

    Yields:
        Path: Temporary directory path

    Cleanup:
        Automatically removes directory after test
    """
    tmp = Path(tempfile.mkdtemp(prefix="flashchat_test_"))
    try:
        yield tmp
    finally:
        shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def kv() -> MemoryStore:
    """Empty in-memory key-value store."""
    return MemoryStore()


@pytest.fixture
def message_store(kv: MemoryStore) -> MessageStore:
    """Message store backed by the in-memory store."""
    return MessageStore(kv)


@pytest.fixture
def key_pair_engines():
    """
    Two engines that have completed the key exchange with each other.

    Returns:
        tuple: (alice_engine, bob_engine)
    """
    alice = KeyExchangeEngine()
    bob = KeyExchangeEngine()
    alice.import_remote_public_key(bob.export_public_key())
    bob.import_remote_public_key(alice.export_public_key())
    return alice, bob


@pytest.fixture
def alice() -> Conversation:
    """Conversation for the participant starting the chat."""
    return Conversation(MemoryStore(), base_url="https://chat.example/app")


@pytest.fixture
def bob() -> Conversation:
    """Conversation for the participant receiving the first link."""
    return Conversation(MemoryStore(), base_url="https://chat.example/app")


@pytest.fixture
def sample_message_data() -> dict:
    """
    Provide a sample plaintext message entry in share payload form.

    Returns:
        dict: Sample message dictionary
    """
    return {
        "text": "Hello, World!",
        "encrypted": False,
        "timestamp": 1735689600000,
        "userId": "user_ab12cd34",
        "conversationId": "conv_zz99yy88",
        "readBy": [],
        "deliveredTo": [],
    }


@pytest.fixture
def make_message():
    """Factory building plaintext messages for store tests."""

    def _make(timestamp: int, author_id: str = "user_ab12cd34", text: str = "hi") -> Message:
        return Message(
            text=text, timestamp=timestamp, author_id=author_id, conversation_id="conv_test0001"
        )

    return _make


# Pytest marks
def pytest_configure(config):
    """
    Configure pytest markers.

    Args:
        config: Pytest configuration object
    """
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )


# Test collection hooks
def pytest_collection_modifyitems(config, items):
    """
    Modify test collection to add markers based on test location.

    Args:
        config: Pytest configuration
        items: List of collected test items
    """
    for item in items:
        # Add unit marker to tests in unit/ directory
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)

        # Add integration marker to tests in integration modules
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
