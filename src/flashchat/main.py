"""
FlashChat - Command-line front end.

Created by orpheus497
"""

import argparse
import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

from rich.align import Align
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.text import Text

from . import __version__
from .config import Config
from .constants import (
    CONFIG_FILENAME,
    LOG_BACKUP_COUNT,
    LOG_DATE_FORMAT,
    LOG_FILENAME,
    LOG_FORMAT,
    LOG_MAX_BYTES,
    MODE_IRC,
    PASSPHRASE_ENV,
    UNREADABLE_PLACEHOLDER,
)
from .conversation import Conversation
from .errors import CryptoError, ErrorCode, FlashChatError
from .key_exchange import KeyExchangeState
from .message import Message
from .storage import JsonFileStore

logger = logging.getLogger(__name__)

# Commands that create, exchange or use key material
KEY_COMMANDS = ("send", "open", "link", "show")


def setup_logging(config: Config, debug: bool = False) -> None:
    """Configure the root logger from the [logging] config section."""
    level_name = "DEBUG" if debug else str(config.get("logging", "level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    if config.get("logging", "console_logging", True):
        root.addHandler(RichHandler(console=Console(stderr=True), show_path=debug))

    if config.get("logging", "file_logging", False):
        config.data_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            config.data_dir / LOG_FILENAME,
            maxBytes=LOG_MAX_BYTES,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT))
        root.addHandler(file_handler)


def format_time(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp / 1000).strftime("%H:%M")


def render_message(message: Message, text: Optional[str], user_id: str, mode: str):
    """Build a rich renderable for one message."""
    mine = message.author_id == user_id
    body = text if text is not None else UNREADABLE_PLACEHOLDER
    style = "italic dim" if text is None else ""

    if mode == MODE_IRC:
        line = Text()
        line.append(f"[{format_time(message.timestamp)}] ", style="dim")
        line.append(f"<{message.author_id}> ", style="bold blue")
        line.append(body, style=style)
        return line

    footer = format_time(message.timestamp)
    if mine:
        footer += " ✓✓" if message.read_by else " ✓"
    if message.is_encrypted:
        footer = "🔒 " + footer
    bubble = Panel(
        Text(body, style=style),
        subtitle=footer,
        subtitle_align="right",
        border_style="blue" if mine else "white",
        expand=False,
    )
    return Align.right(bubble) if mine else Align.left(bubble)


def show_transcript(console: Console, conversation: Conversation) -> None:
    mode = conversation.preferences()["mode"]
    transcript = conversation.transcript()
    if not transcript:
        console.print("[dim]No messages yet.[/dim]")
    for message, text in transcript:
        console.print(render_message(message, text, conversation.user_id, mode))
    show_stats(console, conversation)


def show_stats(console: Console, conversation: Conversation) -> None:
    stats = conversation.stats()
    last = format_time(stats.last_update) if stats.last_update is not None else "Never"
    console.print(
        f"[dim]Sent: {stats.sent}  Received: {stats.received}  Last: {last}[/dim]"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flashchat",
        description="FlashChat - serverless encrypted conversations carried in a link",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  flashchat send "hello"          # Start a conversation and print its link
  flashchat open "<link>"         # Merge a link received from the other side
  flashchat show                  # Display the conversation

Created by orpheus497
        """,
    )
    parser.add_argument("--version", action="version", version=f"FlashChat {__version__}")
    parser.add_argument("--data-dir", type=str, default=None, help="Directory holding the local store")
    parser.add_argument("--config", type=str, default=None, help="Path to a TOML configuration file")
    parser.add_argument(
        "--passphrase",
        action="store_true",
        help=f"Prompt for the passphrase sealing key material (or set {PASSPHRASE_ENV})",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    send = sub.add_parser("send", help="Send a message and print the share link")
    send.add_argument("text", help="Message text")

    open_ = sub.add_parser("open", help="Merge a share link from the other participant")
    open_.add_argument("url", help="Share link or bare payload")

    sub.add_parser("link", help="Print the current share link")
    sub.add_parser("show", help="Display the conversation")
    sub.add_parser("stats", help="Show message counts")

    toggle = sub.add_parser("toggle", help="Toggle a display preference")
    toggle.add_argument("preference", choices=["theme", "mode"])

    destroy = sub.add_parser("destroy", help="Permanently delete all local data")
    destroy.add_argument("--yes", action="store_true", help="Do not ask for confirmation")

    return parser


def resolve_passphrase(args: argparse.Namespace, console: Console) -> Optional[str]:
    """Find the passphrase that seals key material between runs.

    Commands that create or use keys need one, since every invocation is a
    new process and unsealed keys would be lost at exit.

    Raises:
        CryptoError: If a key command has no passphrase available
    """
    passphrase = None
    if args.passphrase:
        passphrase = Prompt.ask("Passphrase", password=True, console=console)
    elif os.environ.get(PASSPHRASE_ENV):
        passphrase = os.environ[PASSPHRASE_ENV]
    elif args.command in KEY_COMMANDS and sys.stdin.isatty():
        passphrase = Prompt.ask("Passphrase", password=True, console=console)

    if args.command in KEY_COMMANDS and not passphrase:
        raise CryptoError(
            ErrorCode.E110_PASSPHRASE_REQUIRED,
            f"'{args.command}' needs a passphrase to keep keys between runs; "
            f"use --passphrase or set {PASSPHRASE_ENV}",
        )
    return passphrase or None


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the FlashChat CLI."""
    args = build_parser().parse_args(argv)
    console = Console()

    try:
        config_path = Path(args.config).expanduser() if args.config else None
        if config_path is None and args.data_dir:
            config_path = Path(args.data_dir).expanduser() / CONFIG_FILENAME
        config = Config(config_path)
        if args.data_dir:
            config.set("storage", "data_dir", str(Path(args.data_dir).expanduser().resolve()))

        setup_logging(config, args.debug)

        passphrase = resolve_passphrase(args, console)

        kv = JsonFileStore(config.store_path)
        conversation = Conversation.open(
            kv,
            passphrase=passphrase,
            base_url=config.get("share", "base_url"),
            param=config.get("share", "param"),
            default_theme=config.get("ui", "theme"),
            default_mode=config.get("ui", "mode"),
        )

        if conversation.should_show_welcome():
            console.print(
                Panel(
                    "Messages live only in the link. Send it to one other person; "
                    "once they reply, everything after is end-to-end encrypted.",
                    title="Welcome to FlashChat",
                )
            )
            conversation.dismiss_welcome()

        status = run_command(args, console, conversation)

        engine_state = conversation.key_engine.state
        if passphrase is not None and engine_state is not KeyExchangeState.NO_KEY_PAIR:
            conversation.save_keys(passphrase)
        return status

    except FlashChatError as e:
        logger.debug(f"Command failed: {e.to_dict()}", exc_info=True)
        console.print(f"[red]Error:[/red] {e}")
        return 1


def run_command(args: argparse.Namespace, console: Console, conversation: Conversation) -> int:
    if args.command == "send":
        try:
            message = conversation.send(args.text)
        except ValueError as e:
            console.print(f"[red]{e}[/red]")
            return 1
        if not message.is_encrypted:
            console.print(
                "[yellow]Sent unencrypted: messages are encrypted once the other "
                "side has opened a link and replied.[/yellow]"
            )
        console.print(conversation.share_link(), soft_wrap=True)

    elif args.command == "open":
        result = conversation.open_link(args.url)
        if not result.ok:
            console.print(f"[red]Could not open link:[/red] {result.error}")
            return 1
        console.print(
            f"Merged {len(result.added)} new message(s), {result.duplicates} already known."
        )
        if result.key_imported:
            console.print("[green]Key exchange complete: replies are now encrypted.[/green]")
        if result.key_error:
            console.print(f"[yellow]Ignored invalid public key:[/yellow] {result.key_error}")
        show_transcript(console, conversation)

    elif args.command == "link":
        console.print(conversation.share_link(), soft_wrap=True)

    elif args.command == "show":
        show_transcript(console, conversation)

    elif args.command == "stats":
        show_stats(console, conversation)

    elif args.command == "toggle":
        if args.preference == "theme":
            console.print(f"Theme: {conversation.toggle_theme()}")
        else:
            console.print(f"Mode: {conversation.toggle_mode()}")

    elif args.command == "destroy":
        if not args.yes and not Confirm.ask(
            "Permanently delete all messages and data? This cannot be undone.",
            console=console,
        ):
            return 0
        removed = conversation.destroy_all()
        console.print(f"Deleted {removed} message(s).")

    return 0


if __name__ == "__main__":
    sys.exit(main())
