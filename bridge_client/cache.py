"""
Local cache for the last discovered tool list.
"""

import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from shared.logging import get_logger


DEFAULT_CACHE_TTL = 24 * 60 * 60


@dataclass
class CachedTools:
    tools: List[Dict[str, Any]]
    etag: str


class ToolsCache:
    """Stores ``{tools, etag, expiry}`` in a JSON file, or in memory when no path is given.

    CSRF tokens are never cached. Unreadable or expired entries read as a miss.
    """

    def __init__(
        self,
        path: Optional[Union[str, Path]] = None,
        *,
        ttl_seconds: int = DEFAULT_CACHE_TTL,
        clock: Callable[[], float] = time.time,
    ):
        self.path = Path(path) if path is not None else None
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._memory: Optional[str] = None
        self.logger = get_logger("bridge_client.cache")

    def _read(self) -> Optional[str]:
        if self.path is None:
            return self._memory
        try:
            return self.path.read_text(encoding="utf-8")
        except OSError:
            return None

    def _write(self, raw: Optional[str]) -> None:
        if self.path is None:
            self._memory = raw
            return
        try:
            if raw is None:
                self.path.unlink(missing_ok=True)
            else:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self.path.write_text(raw, encoding="utf-8")
        except OSError as e:
            self.logger.warning("Tools cache unavailable", path=str(self.path), error=str(e))

    def get(self) -> Optional[CachedTools]:
        raw = self._read()
        if not raw:
            return None

        try:
            entry = json.loads(raw)
            tools, etag, expiry = entry["tools"], entry["etag"], float(entry["expiry"])
        except (ValueError, TypeError, KeyError):
            return None

        if self._clock() > expiry:
            self.clear()
            return None
        if not isinstance(tools, list):
            return None
        return CachedTools(tools=tools, etag=etag or "")

    def set(self, tools: List[Dict[str, Any]], etag: str) -> None:
        self._write(json.dumps({
            "tools": tools,
            "etag": etag,
            "expiry": self._clock() + self.ttl_seconds,
        }))

    def clear(self) -> None:
        self._write(None)
