"""Remote handle directory over HTTP.

Fetches a JSON document ``{"<handle>": "<identity>", ...}``. The request runs in
a worker thread so the event loop, and with it cached resolution, never blocks.
"""

from __future__ import annotations

import asyncio
import json
import socket
import urllib.error
import urllib.request
from typing import Any

from shroud.core.errors import DirectoryError, RefreshTimeoutError


class HttpDirectory:
    """DirectoryPort adapter using a blocking urllib call off the loop."""

    def __init__(self, url: str, timeout_seconds: float = 10.0) -> None:
        self._url = url
        self._timeout = timeout_seconds

    def _fetch_blocking(self) -> Any:
        request = urllib.request.Request(self._url, method="GET")
        request.add_header("Accept", "application/json")
        request.add_header("Cache-Control", "no-cache")
        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                body = response.read()
        except urllib.error.HTTPError as e:
            raise DirectoryError(f"Directory returned HTTP {e.code}") from e
        except (socket.timeout, TimeoutError) as e:
            raise RefreshTimeoutError(f"Directory request timed out after {self._timeout}s") from e
        except urllib.error.URLError as e:
            if isinstance(e.reason, (socket.timeout, TimeoutError)):
                raise RefreshTimeoutError(f"Directory request timed out after {self._timeout}s") from e
            raise DirectoryError(f"Directory unreachable: {e.reason}") from e

        try:
            return json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise DirectoryError("Directory returned invalid JSON") from e

    async def fetch(self) -> Any:
        return await asyncio.to_thread(self._fetch_blocking)
