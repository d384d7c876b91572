"""
TTL-based read-through cache over the configuration table.

States: cold (never loaded) -> warm -> stale (age >= TTL) -> warm.

Readers always see one immutable snapshot. ``refresh()`` builds a complete
replacement and swaps it in by reference; a failed refresh keeps the old
snapshot. Refreshes run one at a time, so a slow refresh can never
overwrite the result of a later one. A background task reloads on a fixed interval independent of
traffic, and a stale read schedules a reload without waiting for it. After a
failed load, stale reads wait ``retry_backoff_seconds`` before trying again.

Empty values are treated as unset and fall through to the static settings,
so seeded-but-blank rows do not mask environment configuration.
"""

import asyncio
import threading
import time
from contextlib import suppress
from types import MappingProxyType
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Mapping, NamedTuple, Optional, Protocol

from identity_bridge.kernel.exceptions import ConfigNotFound
from identity_bridge.kernel.models.configuration import ConfigEntry
from identity_bridge.logging_config import get_logger

logger = get_logger(__name__)

_MISSING: Any = object()
_DELETED: Any = object()

DEFAULT_TTL_SECONDS = 30.0
DEFAULT_REFRESH_INTERVAL_SECONDS = 30.0
DEFAULT_RETRY_BACKOFF_SECONDS = 5.0


class ConfigStore(Protocol):
    async def load_all(self) -> List[ConfigEntry]: ...
    async def get_entry(self, key: str) -> Optional[ConfigEntry]: ...
    async def list_entries(self, category: Optional[str] = None) -> List[ConfigEntry]: ...
    async def upsert(self, key: str, value: str, description: Optional[str] = None,
                     category: str = "general", is_secret: bool = False) -> None: ...
    async def delete(self, key: str) -> bool: ...


class _Snapshot(NamedTuple):
    values: Mapping[str, str]
    secret_keys: FrozenSet[str]


_EMPTY = _Snapshot(MappingProxyType({}), frozenset())


def split_list(raw: str) -> List[str]:
    """Split a comma-separated configuration value."""
    return [item.strip() for item in raw.split(",") if item.strip()]


class ConfigCache:
    """
    Read-through configuration cache with explicit lifetime.

    Usage:
        cache = ConfigCache(SqlConfigStore(async_session_maker), static_values=static_config(settings))
        await cache.start()
        url = cache.get("API_SERVICE_URL")
        ...
        await cache.stop()
    """

    def __init__(
        self,
        store: ConfigStore,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        refresh_interval_seconds: float = DEFAULT_REFRESH_INTERVAL_SECONDS,
        retry_backoff_seconds: float = DEFAULT_RETRY_BACKOFF_SECONDS,
        static_values: Optional[Mapping[str, str]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._store = store
        self.ttl_seconds = ttl_seconds
        self.refresh_interval_seconds = refresh_interval_seconds
        self.retry_backoff_seconds = retry_backoff_seconds
        self._static = dict(static_values or {})
        self._clock = clock

        self._lock = threading.Lock()
        self._snapshot: _Snapshot = _EMPTY
        self._last_load_time: Optional[float] = None
        self._last_failure_time: Optional[float] = None
        # One refresh at a time; a later refresh always sees an earlier one's result
        self._refresh_lock = asyncio.Lock()
        # Writes made while a refresh is in flight, replayed over its result
        self._generation = 0
        self._writes: Dict[str, tuple[int, Any, bool]] = {}

        self._refresh_task: Optional[asyncio.Task] = None
        self._reload_task: Optional[asyncio.Task] = None

    # State

    @property
    def last_load_time(self) -> Optional[float]:
        with self._lock:
            return self._last_load_time

    @property
    def state(self) -> str:
        loaded = self.last_load_time
        if loaded is None:
            return "cold"
        if self._clock() - loaded >= self.ttl_seconds:
            return "stale"
        return "warm"

    def snapshot(self) -> Mapping[str, str]:
        return self._snapshot.values

    def is_secret(self, key: str) -> bool:
        return key in self._snapshot.secret_keys

    # Reads

    def get(self, key: str, default: Any = _MISSING) -> str:
        """
        Synchronous cached read.

        Order: cached value, static settings, ``default``.

        Raises:
            ConfigNotFound: If no layer has a value and no default was given
        """
        self._schedule_reload_if_stale()
        value = self._snapshot.values.get(key)
        if value:
            return value
        return self._fallback(key, default)

    async def aget(self, key: str, default: Any = _MISSING, include_static: bool = True) -> str:
        """
        Asynchronous read; a cache miss does a point lookup for that key.

        Raises:
            ConfigNotFound: If no layer has a value and no default was given
        """
        self._schedule_reload_if_stale()
        value = self._snapshot.values.get(key)
        if value:
            return value

        entry = await self._store.get_entry(key)
        if entry is not None:
            self._put(key, entry.value, entry.is_secret)
            if entry.value:
                return entry.value

        if include_static:
            return self._fallback(key, default)
        if default is _MISSING:
            raise ConfigNotFound(key)
        return default

    def get_list(self, key: str, default: Any = _MISSING) -> List[str]:
        """Read a comma-separated value as a list."""
        return split_list(self.get(key, default))

    async def list_entries(self, category: Optional[str] = None) -> List[ConfigEntry]:
        return await self._store.list_entries(category)

    def _fallback(self, key: str, default: Any) -> str:
        static = self._static.get(key)
        if static:
            return static
        if default is _MISSING:
            raise ConfigNotFound(key)
        return default

    # Writes

    async def set(
        self,
        key: str,
        value: str,
        description: Optional[str] = None,
        category: str = "general",
        is_secret: bool = False,
    ) -> None:
        """Upsert in the store, then make the value visible to the next read."""
        await self._store.upsert(key, value, description, category, is_secret)
        self._put(key, value, is_secret)
        logger.info("Configuration updated", extra={"config_key": key, "category": category})

    async def delete(self, key: str) -> bool:
        deleted = await self._store.delete(key)
        self._put(key, _DELETED, False)
        if deleted:
            logger.info("Configuration deleted", extra={"config_key": key})
        return deleted

    def invalidate(self, key: str) -> None:
        """Drop one key from the cache; the next async read goes to the store."""
        with self._lock:
            values = dict(self._snapshot.values)
            values.pop(key, None)
            self._snapshot = _Snapshot(MappingProxyType(values), self._snapshot.secret_keys - {key})

    def clear(self) -> None:
        """Drop everything and return to the cold state."""
        with self._lock:
            self._snapshot = _EMPTY
            self._last_load_time = None
            self._last_failure_time = None
            self._writes.clear()

    def _put(self, key: str, value: Any, is_secret: bool) -> None:
        with self._lock:
            self._generation += 1
            self._writes[key] = (self._generation, value, is_secret)
            self._snapshot = self._apply(self._snapshot, {key: (value, is_secret)})

    @staticmethod
    def _apply(snapshot: _Snapshot, changes: Mapping[str, tuple[Any, bool]]) -> _Snapshot:
        values = dict(snapshot.values)
        secret_keys = set(snapshot.secret_keys)
        for key, (value, is_secret) in changes.items():
            if value is _DELETED:
                values.pop(key, None)
                secret_keys.discard(key)
                continue
            values[key] = value
            if is_secret:
                secret_keys.add(key)
            else:
                secret_keys.discard(key)
        return _Snapshot(MappingProxyType(values), frozenset(secret_keys))

    # Refresh

    async def refresh(self) -> bool:
        """
        Reload the whole key space and swap it in.

        Returns:
            True on success; False if the store failed and the previous
            snapshot was kept
        """
        async with self._refresh_lock:
            return await self._refresh_locked()

    async def _refresh_locked(self) -> bool:
        with self._lock:
            started_at = self._generation
        try:
            entries = await self._store.load_all()
        except Exception:
            logger.exception("Failed to load configuration cache; keeping previous values")
            with self._lock:
                self._last_failure_time = self._clock()
            return False

        fresh = self._build(entries)
        with self._lock:
            replay = {
                key: (value, is_secret)
                for key, (generation, value, is_secret) in self._writes.items()
                if generation > started_at
            }
            self._snapshot = self._apply(fresh, replay) if replay else fresh
            self._writes = {
                key: write for key, write in self._writes.items() if write[0] > started_at
            }
            self._last_load_time = self._clock()
            self._last_failure_time = None
        logger.debug("Loaded %d configurations into cache", len(entries))
        return True

    @staticmethod
    def _build(entries: Iterable[ConfigEntry]) -> _Snapshot:
        values: Dict[str, str] = {}
        secret_keys = set()
        for entry in entries:
            values[entry.key] = entry.value
            if entry.is_secret:
                secret_keys.add(entry.key)
        return _Snapshot(MappingProxyType(values), frozenset(secret_keys))

    def _schedule_reload_if_stale(self) -> None:
        if self.state == "warm" or self._in_failure_backoff():
            return
        if self._reload_task is not None and not self._reload_task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._reload_task = loop.create_task(self.refresh())

    def _in_failure_backoff(self) -> bool:
        with self._lock:
            failed_at = self._last_failure_time
        return failed_at is not None and self._clock() - failed_at < self.retry_backoff_seconds

    # Lifecycle

    async def start(self) -> None:
        """Initial load plus the periodic background refresh."""
        await self.refresh()
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.create_task(self._refresh_loop())

    async def stop(self) -> None:
        for task in (self._refresh_task, self._reload_task):
            if task is not None and not task.done():
                task.cancel()
                with suppress(asyncio.CancelledError):
                    await task
        self._refresh_task = None
        self._reload_task = None

    async def _refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self.refresh_interval_seconds)
            if await self.refresh():
                logger.debug("Configuration cache auto-refreshed")
