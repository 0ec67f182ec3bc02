"""
FlashChat - Global Constants and Configuration Values

This module defines all constants used throughout the FlashChat package.
All magic numbers and configuration defaults are centralized here.

Author: orpheus497
Version: 1.0.0
"""

# Version Information
VERSION = "1.0.0"
APP_NAME = "FlashChat"

# Cryptography Constants
PUBLIC_KEY_SIZE = 65  # X9.62 uncompressed point: 0x04 || X || Y
SHARED_KEY_SIZE = 32  # 256 bits for AES-256-GCM
NONCE_SIZE = 12  # 96 bits for AES-GCM
SALT_SIZE = 16  # 128 bits
ARGON2_TIME_COST = 3
ARGON2_MEMORY_COST = 65536  # 64 MB
ARGON2_PARALLELISM = 1
SEALED_KEY_VERSION = "1.0"
PASSPHRASE_ENV = "FLASHCHAT_PASSPHRASE"

# Identifier Formats
USER_ID_PREFIX = "user_"
CONVERSATION_ID_PREFIX = "conv_"
ID_RANDOM_LENGTH = 8
ID_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"  # base36

# Storage Keys
MESSAGE_KEY_PREFIX = "message:"
PREFERENCE_KEY_PREFIX = "flash_"
USER_ID_KEY = "flash_user_id"
CONVERSATION_ID_KEY = "flash_conversation_id"
SEALED_KEY_KEY = "flash_sealed_key"
PREFS_KEY = "flash_prefs"
SEEN_WELCOME_KEY = "flash_seen_welcome"

# Share Link
DEFAULT_BASE_URL = "https://flashchat.local/"
SHARE_PARAM = "data"
MAX_PAYLOAD_SIZE = 8 * 1024 * 1024  # 8 MB of transport text

# UI Preferences
THEME_DARK = "dark"
THEME_LIGHT = "light"
MODE_SIGNAL = "signal"
MODE_IRC = "irc"
DEFAULT_THEME = THEME_DARK
DEFAULT_MODE = MODE_SIGNAL
UNREADABLE_PLACEHOLDER = "[unreadable]"

# File Paths
DEFAULT_DATA_DIR = "~/.flashchat"
STORE_FILENAME = "store.json"
CONFIG_FILENAME = "config.toml"
LOG_FILENAME = "flashchat.log"

# Logging Configuration
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
LOG_BACKUP_COUNT = 5
