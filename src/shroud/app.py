"""Application entry point for the shroud client."""

from __future__ import annotations

import argparse
import logging
import os
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Awaitable, Callable, Optional

from art import tprint
from dotenv import load_dotenv
from telethon import TelegramClient, events

from shroud import settings
from shroud.adapters.asyncio_scheduler import AsyncioScheduler
from shroud.adapters.http_directory import HttpDirectory
from shroud.adapters.sqlite_secure_store import SQLiteSecureStore, decode_store_key, generate_store_key
from shroud.adapters.telegram_mapper import build_envelope
from shroud.adapters.telegram_transport import TelegramTransport
from shroud.auth import authorize
from shroud.client import build_client
from shroud.core.errors import ShroudError
from shroud.core.handshake import HandshakeEvent, SendStatus
from shroud.core.models import Direction
from shroud.core.session import Session

NAME = "SHROUD"
FONT = "tarty-1"

LOGGER = logging.getLogger(__name__)


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    values = []
    for name in redact_cfg.get("patterns", []):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return

    load_dotenv()
    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    formatter = _RedactingFormatter(_collect_redaction_values(config), fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/shroud.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        file_handler = RotatingFileHandler(
            path,
            maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
            backupCount=int(file_cfg.get("backup_count", 5)),
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)


def _open_store() -> SQLiteSecureStore:
    load_dotenv()
    encoded = os.getenv("STORE_KEY")
    if not encoded:
        raise RuntimeError("Missing STORE_KEY in environment (generate one with `shroud keygen`)")
    store = SQLiteSecureStore(settings.DB_PATH, decode_store_key(encoded))
    store.init_db()
    return store


def _build_session(client) -> Session:
    config = settings.build_core_config()
    directory = None
    if config.directory.url:
        directory = HttpDirectory(config.directory.url, config.directory.timeout_seconds)
    return Session(
        config,
        TelegramTransport(client),
        _open_store(),
        AsyncioScheduler(),
        directory,
    )


def _print_handshake_event(session: Session, event: HandshakeEvent) -> None:
    request = event.request
    if event.kind == "received":
        note = f": {request.message}" if request.message else ""
        print(f"Contact request {request.id} from {session.display_name_for(request.from_handle)}{note}")
    elif event.kind == "accepted" and request.direction is Direction.OUTGOING:
        print(f"{session.display_name_for(request.to_handle)} accepted your contact request")


CommandFn = Callable[[Session, TelegramClient, argparse.Namespace], Awaitable[None]]


async def _cmd_run(session: Session, client: TelegramClient, args: argparse.Namespace) -> None:
    subscription = session.handshake.subscribe(lambda event: _print_handshake_event(session, event))

    # Single handler keeps Telethon integration minimal and defers all payload
    # parsing to the core handshake.
    @client.on(events.NewMessage(incoming=True))
    async def handler(event) -> None:
        try:
            envelope = build_envelope(event.message)
            if envelope is not None:
                session.handle_inbound(envelope)
        except Exception:
            LOGGER.exception("Error while processing message")

    LOGGER.info(
        "Listening as %s with %s pending requests",
        session.own_handle or "[unregistered]",
        session.handshake.pending_count(),
    )
    try:
        await client.run_until_disconnected()
    finally:
        subscription.cancel()


async def _cmd_register(session: Session, client: TelegramClient, args: argparse.Namespace) -> None:
    if session.own_handle is not None:
        print(f"Already registered as {session.display_name_for(session.own_handle)}")
        return
    identity = await session.current_identity()
    handle = session.registry.generate_available_handle()
    try:
        user = session.registry.register_user(handle, args.label, identity=identity)
    except ShroudError:
        session.registry.release_handle(handle)
        raise
    session.claim_handle(user.handle)
    print(f"Registered as {session.display_name_for(user.handle)}")


async def _cmd_request(session: Session, client: TelegramClient, args: argparse.Namespace) -> None:
    result = await session.handshake.send_request(args.handle, message=args.message, to_identity=args.identity)
    if result.status is SendStatus.ALREADY_CONNECTED:
        print(f"{args.handle} is already a contact")
        return
    print(f"Contact request {result.request.id} sent to {args.handle}")


async def _cmd_requests(session: Session, client: TelegramClient, args: argparse.Namespace) -> None:
    pending = session.handshake.pending_requests()
    if not pending:
        print("No pending contact requests.")
        return
    for index, request in enumerate(pending, start=1):
        when = datetime.fromtimestamp(request.created_at).strftime("%Y-%m-%d %H:%M")
        note = f" | {request.message}" if request.message else ""
        print(f"{index}. {request.id} | {session.display_name_for(request.from_handle)} | {when}{note}")


async def _cmd_accept(session: Session, client: TelegramClient, args: argparse.Namespace) -> None:
    result = await session.handshake.accept(args.request_id)
    if result.already_accepted:
        print(f"Contact request {args.request_id} was already accepted")
    elif result.mapping_conflict is not None:
        print(f"Accepted, but the contact was not saved: {result.mapping_conflict.message}")
    else:
        print(f"{session.display_name_for(result.request.from_handle)} is now a contact")


async def _cmd_reject(session: Session, client: TelegramClient, args: argparse.Namespace) -> None:
    request = session.handshake.reject(args.request_id)
    print(f"Contact request {request.id} rejected")


async def _cmd_whois(session: Session, client: TelegramClient, args: argparse.Namespace) -> None:
    identity = session.identity_map.resolve(args.handle)
    name = session.display_names.display_name_or_fallback(args.handle)
    print(f"{session.nicknames.display_name(args.handle)} [{name}] -> {identity}")


async def _cmd_name(session: Session, client: TelegramClient, args: argparse.Namespace) -> None:
    if args.handle is None:
        if args.value is not None:
            session.display_names.set_user_display_name(args.value)
        print(f"Your display name: {session.display_names.get_user_display_name()}")
        return
    if args.remove:
        session.display_names.remove_display_name(args.handle)
    elif args.value is not None:
        session.display_names.set_display_name(args.handle, args.value)
    print(f"{args.handle}: {session.display_names.display_name_or_fallback(args.handle)}")


async def _cmd_refresh(session: Session, client: TelegramClient, args: argparse.Namespace) -> None:
    outcome = await session.identity_map.refresh_from_remote(force=True)
    print(f"Directory refresh: {outcome.value}")


_ONLINE_COMMANDS = {"run", "register", "request", "accept"}

_COMMANDS: dict[str, CommandFn] = {
    "run": _cmd_run,
    "register": _cmd_register,
    "request": _cmd_request,
    "requests": _cmd_requests,
    "accept": _cmd_accept,
    "reject": _cmd_reject,
    "whois": _cmd_whois,
    "name": _cmd_name,
    "refresh": _cmd_refresh,
}


def _execute(args: argparse.Namespace) -> None:
    _print_banner()
    _configure_logging()

    client = build_client()
    command = _COMMANDS[args.command]

    async def _run_command() -> None:
        if args.command in _ONLINE_COMMANDS:
            await client.connect()
            await authorize(client)
        session = _build_session(client)
        session.start(refresh_directory=args.command == "run")
        try:
            await command(session, client, args)
        except ShroudError as exc:
            LOGGER.error("%s failed: %s", args.command, exc.message)
            print(f"Error ({exc.code}): {exc.message}")
        finally:
            session.logout()
            if client.is_connected():
                await client.disconnect()

    client.loop.run_until_complete(_run_command())


def _keygen() -> None:
    print(f"STORE_KEY={generate_store_key()}")


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="shroud")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Listen for contact requests and acceptances")

    register = subparsers.add_parser("register", help="Allocate a handle and register a label")
    register.add_argument("label", help="Public label shown next to your handle")

    request = subparsers.add_parser("request", help="Send a contact request to a handle")
    request.add_argument("handle")
    request.add_argument("--message", "-m", default=None, help="Optional note for the recipient")
    request.add_argument("--identity", default=None, help="Recipient @username or user_id:<id>")

    subparsers.add_parser("requests", help="List pending incoming contact requests")

    accept = subparsers.add_parser("accept", help="Accept a pending contact request")
    accept.add_argument("request_id")

    reject = subparsers.add_parser("reject", help="Reject a pending contact request")
    reject.add_argument("request_id")

    whois = subparsers.add_parser("whois", help="Resolve a handle to its identity")
    whois.add_argument("handle")

    name = subparsers.add_parser("name", help="Show or set a display name")
    name.add_argument("value", nargs="?", default=None, help="New display name (up to 20 characters)")
    name.add_argument("--handle", default=None, help="Contact handle; omit for your own name")
    name.add_argument("--remove", action="store_true", help="Forget the contact's display name")

    subparsers.add_parser("refresh", help="Force a remote directory refresh")
    subparsers.add_parser("keygen", help="Print a new STORE_KEY for the .env file")

    args = parser.parse_args(argv)
    if args.command == "keygen":
        _keygen()
        return
    if args.command is None:
        args.command = "run"
    _execute(args)


if __name__ == "__main__":
    main()
