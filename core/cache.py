"""Response cache for generation calls."""

from __future__ import annotations

import asyncio
import copy
import fnmatch
import hashlib
import json
import time
from collections import OrderedDict
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

import aiofiles
import structlog

logger = structlog.get_logger(__name__)

_GLOB_CHARS = set("*?[")


@dataclass
class CacheEntry:
    """Cache entry with metadata."""

    key: str
    value: Any
    stored_at: float
    expires_at: float
    hits: int = 0
    size: int = 0

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


def _estimate_size(value: Any) -> int:
    if isinstance(value, str):
        return len(value.encode("utf-8"))
    return len(json.dumps(value, sort_keys=True, default=str).encode("utf-8"))


class LLMCache:
    """Key-addressed cache with per-entry TTL and a total size bound.

    Entries are evicted least-recently-used first: every ``set`` and every
    hit moves the key to the end of the order, and eviction removes from the
    front until the new entry fits. When ``persist_dir`` is given, entries
    are mirrored to JSON files there so they survive a restart.
    """

    def __init__(
        self,
        *,
        max_size_mb: float = 100,
        default_ttl: int = 3600,
        persist_dir: Optional[Union[str, Path]] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_size_bytes = int(max_size_mb * 1024 * 1024)
        self.default_ttl = default_ttl
        self.persist_dir = Path(persist_dir) if persist_dir else None
        if self.persist_dir:
            self.persist_dir.mkdir(parents=True, exist_ok=True)
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = asyncio.Lock()
        self._size = 0
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @staticmethod
    def generate_key(operation: str, prompt: str, extra: Optional[Mapping[str, Any]] = None) -> str:
        """Deterministic key for a request.

        ``extra`` must carry every field that changes the generated output
        (schema, model, sampling parameters).
        """
        content = json.dumps(
            {"operation": operation, "prompt": prompt, "extra": extra or {}},
            sort_keys=True,
            default=str,
        )
        digest = hashlib.sha256(content.encode("utf-8")).hexdigest()
        return f"{operation}:{digest}"

    async def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or ``None`` when missing or expired."""
        async with self._lock:
            now = self._clock()
            entry = self._entries.get(key)
            in_memory = entry is not None

            if entry is None and self.persist_dir:
                entry = await self._read_entry(key)
                if entry is not None and not entry.is_expired(now):
                    # may not fit if the size limit shrank since it was written
                    in_memory = await self._insert(entry)

            if entry is None:
                self._misses += 1
                return None

            if entry.is_expired(now):
                await self._remove(key)
                self._misses += 1
                return None

            if in_memory:
                self._entries.move_to_end(key)
            entry.hits += 1
            self._hits += 1
            return copy.deepcopy(entry.value)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Store ``value``. A ``ttl`` of zero or less stores nothing."""
        ttl = self.default_ttl if ttl is None else ttl
        if ttl <= 0 or value is None:
            return False

        size = _estimate_size(value)
        if size > self.max_size_bytes:
            logger.warning("cache_entry_too_large", key=key, size=size, limit=self.max_size_bytes)
            return False

        now = self._clock()
        entry = CacheEntry(
            key=key,
            value=copy.deepcopy(value),
            stored_at=now,
            expires_at=now + ttl,
            size=size,
        )
        async with self._lock:
            if key in self._entries:
                await self._remove(key)
            await self._insert(entry)
            if self.persist_dir:
                await self._write_entry(entry)
        return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return await self._remove(key)

    async def clear(self) -> int:
        """Remove every entry. Returns the number removed."""
        async with self._lock:
            count = len(self._entries)
            for key in list(self._entries):
                await self._remove(key)
            if self.persist_dir:
                for path in self.persist_dir.glob("*.json"):
                    path.unlink(missing_ok=True)
            return count

    async def clear_by_pattern(self, pattern: str) -> int:
        """Remove entries whose key matches ``pattern``.

        Patterns containing ``*``, ``?`` or ``[`` are globs matched against
        the whole key; anything else is a substring match. Persisted entries
        that were never loaded into memory are matched as well.
        """
        if _GLOB_CHARS & set(pattern):
            matches = lambda k: fnmatch.fnmatchcase(k, pattern)  # noqa: E731
        else:
            matches = lambda k: pattern in k  # noqa: E731

        async with self._lock:
            doomed = {k for k in self._entries if matches(k)}
            for key in doomed:
                await self._remove(key)
            if self.persist_dir:
                for path in sorted(self.persist_dir.glob("*.json")):
                    entry = await self._read_path(path)
                    if entry is not None and matches(entry.key):
                        path.unlink(missing_ok=True)
                        doomed.add(entry.key)
            logger.info("cache_cleared_by_pattern", pattern=pattern, cleared=len(doomed))
            return len(doomed)

    async def purge_expired(self) -> int:
        """Drop expired entries from memory and disk."""
        async with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                await self._remove(key)
            if expired:
                logger.debug("cache_purged_expired", purged=len(expired))
            return len(expired)

    async def load_from_disk(self) -> int:
        """Warm the memory tier from persisted entries."""
        if not self.persist_dir:
            return 0
        loaded = 0
        async with self._lock:
            now = self._clock()
            for path in sorted(self.persist_dir.glob("*.json")):
                entry = await self._read_path(path)
                if entry is None:
                    continue
                if entry.is_expired(now):
                    path.unlink(missing_ok=True)
                    continue
                if entry.key not in self._entries and await self._insert(entry):
                    loaded += 1
        logger.info("cache_loaded_from_disk", entries=loaded)
        return loaded

    async def reset(self) -> None:
        """Clear entries and statistics."""
        await self.clear()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get_stats(self) -> Dict[str, Any]:
        lookups = self._hits + self._misses
        return {
            "hit_count": self._hits,
            "miss_count": self._misses,
            "hit_rate": self._hits / lookups if lookups else 0.0,
            "entry_count": len(self._entries),
            "size_estimate": self._size,
            "max_size_bytes": self.max_size_bytes,
            "evictions": self._evictions,
            "persistent": self.persist_dir is not None,
        }

    def get_entries_summary(self) -> List[Dict[str, Any]]:
        """Entries ordered by hit count, most used first."""
        now = self._clock()
        summary = [
            {
                "key": e.key,
                "size": e.size,
                "hits": e.hits,
                "expires_in": max(0.0, e.expires_at - now),
                "age": now - e.stored_at,
            }
            for e in self._entries.values()
        ]
        return sorted(summary, key=lambda s: (-s["hits"], s["key"]))

    # -- internals, called with the lock held --

    async def _insert(self, entry: CacheEntry) -> bool:
        if entry.size > self.max_size_bytes:
            return False
        while self._entries and self._size + entry.size > self.max_size_bytes:
            oldest_key = next(iter(self._entries))
            await self._remove(oldest_key)
            self._evictions += 1
            logger.debug("cache_evicted", key=oldest_key)
        self._entries[entry.key] = entry
        self._size += entry.size
        return True

    async def _remove(self, key: str) -> bool:
        entry = self._entries.pop(key, None)
        if entry is not None:
            self._size -= entry.size
        if self.persist_dir:
            self._path_for(key).unlink(missing_ok=True)
        return entry is not None

    def _path_for(self, key: str) -> Path:
        key_hash = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self.persist_dir / f"{key_hash}.json"

    async def _write_entry(self, entry: CacheEntry) -> None:
        try:
            async with aiofiles.open(self._path_for(entry.key), "w") as f:
                await f.write(json.dumps(asdict(entry), default=str))
        except (OSError, TypeError) as e:
            logger.error("cache_persist_failed", key=entry.key, error=str(e))

    async def _read_entry(self, key: str) -> Optional[CacheEntry]:
        path = self._path_for(key)
        if not path.exists():
            return None
        return await self._read_path(path)

    async def _read_path(self, path: Path) -> Optional[CacheEntry]:
        try:
            async with aiofiles.open(path, "r") as f:
                data = json.loads(await f.read())
            return CacheEntry(**data)
        except (OSError, ValueError, TypeError) as e:
            logger.warning("cache_entry_unreadable", path=str(path), error=str(e))
            path.unlink(missing_ok=True)
            return None
