"""Adapters that implement the core ports (Telegram, SQLite, HTTP, asyncio)."""
