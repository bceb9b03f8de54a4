"""
Freshness cache: one computed value per logical key with a fixed TTL.

A refresh runs as a background task so that at most one recomputation per key
is in flight. Callers that arrive while it runs await the same task. When a
refresh fails and a previous value exists, the previous value is returned
unchanged; otherwise the failure propagates to every waiter.

The cache is bound to a single event loop and is not thread-safe.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Generic, Mapping, Optional, Protocol, TypeVar

import structlog

from .errors import UpstreamError

logger = structlog.stdlib.get_logger(__name__)

T = TypeVar("T")

DEFAULT_TTL = timedelta(minutes=30)


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class EntryState(str, Enum):
    IDLE = "idle"
    REFRESHING = "refreshing"


@dataclass
class CacheEntry(Generic[T]):
    key: str
    value: Optional[T] = None
    computed_at: Optional[datetime] = None
    state: EntryState = EntryState.IDLE
    last_error: Optional[str] = None
    refresh_task: Optional["asyncio.Task[T]"] = field(default=None, repr=False)

    @property
    def has_value(self) -> bool:
        # A computed value may legitimately be None, so track presence by timestamp
        return self.computed_at is not None


class FreshnessCache:
    """TTL cache with single-flight refresh and stale fallback."""

    def __init__(
        self,
        ttls: Optional[Mapping[str, timedelta]] = None,
        *,
        default_ttl: timedelta = DEFAULT_TTL,
        clock: Optional[Clock] = None,
        serve_stale_while_refreshing: bool = False,
    ):
        self._ttls: Dict[str, timedelta] = dict(ttls or {})
        self._default_ttl = default_ttl
        self._clock: Clock = clock or SystemClock()
        self._serve_stale = serve_stale_while_refreshing
        self._entries: Dict[str, CacheEntry[Any]] = {}

    def ttl_for(self, key: str) -> timedelta:
        return self._ttls.get(key, self._default_ttl)

    def entry(self, key: str) -> CacheEntry[Any]:
        entry = self._entries.get(key)
        if entry is None:
            entry = CacheEntry(key=key)
            self._entries[key] = entry
        return entry

    def is_fresh(self, key: str) -> bool:
        entry = self._entries.get(key)
        if entry is None or not entry.has_value:
            return False
        return self._clock.now() - entry.computed_at < self.ttl_for(key)

    async def get(self, key: str, compute: Callable[[], Awaitable[T]]) -> T:
        """Return the cached value for ``key``, refreshing it via ``compute`` when expired.

        Raises:
            UpstreamError: the refresh failed and there is no previous value.
        """
        entry = self.entry(key)
        if self.is_fresh(key):
            return entry.value

        task = entry.refresh_task
        if task is None:
            task = self._start_refresh(entry, compute)

        if self._serve_stale and entry.has_value:
            return entry.value

        # Shielded so that a cancelled waiter leaves the refresh running
        return await asyncio.shield(task)

    def _start_refresh(self, entry: CacheEntry[T], compute: Callable[[], Awaitable[T]]) -> "asyncio.Task[T]":
        entry.state = EntryState.REFRESHING
        task = asyncio.get_running_loop().create_task(
            self._refresh(entry, compute),
            name=f"cache-refresh:{entry.key}",
        )
        entry.refresh_task = task
        task.add_done_callback(_consume_task_result)
        return task

    async def _refresh(self, entry: CacheEntry[T], compute: Callable[[], Awaitable[T]]) -> T:
        logger.info("cache_refresh_started", key=entry.key, has_value=entry.has_value)
        try:
            value = await compute()
        except Exception as exc:
            entry.last_error = str(exc) or exc.__class__.__name__
            if entry.has_value:
                logger.warning(
                    "cache_refresh_failed_serving_stale",
                    key=entry.key,
                    error=entry.last_error,
                    stale_since=entry.computed_at.isoformat(),
                )
                return entry.value
            logger.error("cache_refresh_failed", key=entry.key, error=entry.last_error)
            if isinstance(exc, UpstreamError):
                raise
            raise UpstreamError(f"Failed to compute '{entry.key}': {entry.last_error}", source=entry.key) from exc
        else:
            # No await between these writes: readers see old or new, never a mix
            entry.value = value
            entry.computed_at = self._clock.now()
            entry.last_error = None
            logger.info("cache_refresh_succeeded", key=entry.key)
            return value
        finally:
            entry.state = EntryState.IDLE
            entry.refresh_task = None

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        """Per-key diagnostics for health reporting."""
        now = self._clock.now()
        result: Dict[str, Dict[str, Any]] = {}
        for key, entry in self._entries.items():
            age = (now - entry.computed_at).total_seconds() if entry.has_value else None
            result[key] = {
                "state": entry.state.value,
                "has_value": entry.has_value,
                "fresh": self.is_fresh(key),
                "computed_at": entry.computed_at.isoformat() if entry.computed_at else None,
                "age_seconds": age,
                "ttl_seconds": self.ttl_for(key).total_seconds(),
                "last_error": entry.last_error,
            }
        return result


def _consume_task_result(task: "asyncio.Task[Any]") -> None:
    # Failures reach waiters through the task; mark them retrieved when nobody waited
    if not task.cancelled():
        task.exception()
