"""Telegram client factory.

The client is only the carrier for handshake payloads in direct chats. Offline
commands (requests, reject, whois, name, refresh) never connect it, so the app
connects explicitly where a command needs the network.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv
from telethon import TelegramClient

LOGGER = logging.getLogger(__name__)

DEFAULT_SESSION_NAME = "shroud"


def build_client() -> TelegramClient:
    """Create an unconnected Telethon client from API_ID/API_HASH in .env.

    The Telethon .session file (SESSION_NAME) holds the login only; contacts
    and handles live in the encrypted store opened with STORE_KEY.
    """

    load_dotenv()

    api_id = os.getenv("API_ID")
    api_hash = os.getenv("API_HASH")
    session_name = os.getenv("SESSION_NAME", DEFAULT_SESSION_NAME)

    if not api_id or not api_hash:
        raise RuntimeError("Missing API_ID or API_HASH in environment")

    LOGGER.info("Initializing Telegram client for session %s", session_name)
    return TelegramClient(session_name, int(api_id), api_hash)
