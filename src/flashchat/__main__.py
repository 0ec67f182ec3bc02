"""
FlashChat - Allow running as ``python -m flashchat``.

Created by orpheus497
"""

import sys

from .main import main

sys.exit(main())
