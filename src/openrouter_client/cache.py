from __future__ import annotations

import copy
import hashlib
import json
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import structlog

log = structlog.get_logger()


def cache_key(options: dict[str, Any]) -> str:
    """Deterministic fingerprint of the request fields that identify a completion."""
    raw = json.dumps(options, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class BaseResponseCache(ABC):
    """get/set contract used by the client; storage and eviction belong to the implementation.

    A miss must only cost a remote call. Concurrent writers for the same key are
    not coordinated: the last ``set`` wins.
    """

    @abstractmethod
    async def get(self, options: dict[str, Any], request_id: str) -> Any | None:
        """Return the stored result for these request options, or None."""

    @abstractmethod
    async def set(self, options: dict[str, Any], value: Any, request_id: str) -> None:
        """Store (or replace) the result for these request options."""

    @abstractmethod
    async def invalidate_request(self, request_id: str) -> int:
        """Drop every entry written under ``request_id``; returns the number removed."""


class InMemoryResponseCache(BaseResponseCache):
    def __init__(self) -> None:
        self._entries: dict[str, Any] = {}
        self._by_request: dict[str, set[str]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, options: dict[str, Any], request_id: str) -> Any | None:
        key = cache_key(options)
        if key not in self._entries:
            log.debug("llm_cache_miss", fingerprint=key[:16], request_id=request_id)
            return None
        return copy.deepcopy(self._entries[key])

    async def set(self, options: dict[str, Any], value: Any, request_id: str) -> None:
        key = cache_key(options)
        self._entries[key] = copy.deepcopy(value)
        self._by_request.setdefault(request_id, set()).add(key)

    async def invalidate_request(self, request_id: str) -> int:
        keys = self._by_request.pop(request_id, set())
        removed = 0
        for key in keys:
            if self._entries.pop(key, None) is not None:
                removed += 1
        return removed


class JsonFileResponseCache(BaseResponseCache):
    """One JSON file per key under ``cache_dir``; values must be JSON-serializable."""

    def __init__(self, cache_dir: str | Path):
        self._root = Path(cache_dir).expanduser()
        self._root.mkdir(parents=True, exist_ok=True)

    def _entry_path(self, key: str) -> Path:
        return self._root / f"{key}.json"

    def _read(self, path: Path) -> dict[str, Any] | None:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            log.warning("llm_cache_unreadable_entry", path=str(path), error=str(e))
            return None
        if not isinstance(data, dict) or "value" not in data:
            log.warning("llm_cache_malformed_entry", path=str(path))
            return None
        return data

    async def get(self, options: dict[str, Any], request_id: str) -> Any | None:
        key = cache_key(options)
        path = self._entry_path(key)
        if not path.exists():
            log.debug("llm_cache_miss", fingerprint=key[:16], request_id=request_id)
            return None
        data = self._read(path)
        if data is None:
            return None
        return data["value"]

    async def set(self, options: dict[str, Any], value: Any, request_id: str) -> None:
        key = cache_key(options)
        path = self._entry_path(key)

        request_ids: list[str] = []
        if path.exists():
            previous = self._read(path)
            if previous is not None:
                request_ids = list(previous.get("request_ids") or [])
        if request_id not in request_ids:
            request_ids.append(request_id)

        entry = {
            "value": value,
            "request_ids": request_ids,
            "created_at": time.time(),
        }
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps(entry), encoding="utf-8")
        tmp.replace(path)

    async def invalidate_request(self, request_id: str) -> int:
        removed = 0
        for path in self._root.glob("*.json"):
            data = self._read(path)
            if data is None:
                continue
            if request_id in (data.get("request_ids") or []):
                path.unlink(missing_ok=True)
                removed += 1
        return removed
