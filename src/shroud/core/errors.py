"""Error taxonomy for the shroud core.

Every error carries a short machine-readable ``code`` so CLI and UI layers can
map failures to messages without string matching.
"""

from __future__ import annotations


class ShroudError(Exception):
    """Base exception for all shroud core failures."""

    code = "shroud_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ShroudError):
    """Malformed handle, label, identity or payload."""

    code = "validation_error"


class ConflictError(ShroudError):
    """Handle, label or identity already claimed, or an immutable record touched."""

    code = "conflict"


class NotFoundError(ShroudError):
    """Unknown handle, identity or request id."""

    code = "not_found"


class ExhaustedError(ShroudError):
    """No free value left in the handle space."""

    code = "exhausted"


class TransportError(ShroudError):
    """Send, room creation or identity lookup failed on the transport."""

    code = "transport_error"


class StorageError(ShroudError):
    """Secure store read/write failure."""

    code = "storage_error"


class DirectoryError(ShroudError):
    """Remote directory fetch failed (network, status, decoding)."""

    code = "directory_error"


class RefreshTimeoutError(ShroudError, TimeoutError):
    """Remote directory refresh exceeded its time budget."""

    code = "timeout"
