"""Core domain package for shroud.

Core contains handle resolution, presence, disclosure timing and the contact
handshake without any Telegram, SQLite or HTTP specific code, keeping the
business logic portable across transports.
"""
