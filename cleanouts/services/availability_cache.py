"""
Process-local TTL cache for availability results.

One instance is built per process (see ``cleanouts.main``) and handed to the
availability service through a dependency. Keys are the JSON serialization of
the normalized query parameters, so parameter order never matters. A single
asyncio task sweeps expired entries on a fixed interval regardless of reads.
Request handlers run in the threadpool while the sweep runs on the event loop,
so every access to the entry table goes through one lock.
"""

import asyncio
import json
import logging
import threading
import time
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

ALL_SERVICES = "all"


def build_cache_key(params: Dict[str, Any]) -> str:
    """Deterministic key: sorted keys, compact separators, values stringified."""
    return json.dumps(params, sort_keys=True, separators=(",", ":"), default=str)


def availability_key(
    booking_date: date,
    service_id: Optional[Any],
    duration: int,
    exclude_booking_id: Optional[Any] = None,
    as_of: Optional[str] = None,
) -> str:
    """``as_of`` ties an entry to the business clock for results that depend on it."""
    params = {
        "date": booking_date.isoformat(),
        "service_id": str(service_id) if service_id else ALL_SERVICES,
        "duration": duration,
        "exclude_booking_id": str(exclude_booking_id) if exclude_booking_id else "none",
    }
    if as_of:
        params["as_of"] = as_of
    return build_cache_key(params)


def bulk_availability_key(dates, service_id: Optional[Any], duration: int, as_of: Optional[str] = None) -> str:
    params = {
        "dates": sorted({d.isoformat() for d in dates}),
        "service_id": str(service_id) if service_id else ALL_SERVICES,
        "duration": duration,
    }
    if as_of:
        params["as_of"] = as_of
    return build_cache_key(params)


@dataclass
class _Entry:
    value: Any
    expires_at: float
    params: Dict[str, Any]


class AvailabilityCache:
    def __init__(
        self,
        ttl_seconds: float = 300,
        sweep_interval_seconds: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}
        self._lock = threading.Lock()
        self._sweep_task: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                logger.debug("Availability cache MISS: %s", key)
                return None
            if self._clock() >= entry.expires_at:
                self._entries.pop(key, None)
                logger.debug("Availability cache EXPIRED: %s", key)
                return None
        logger.debug("Availability cache HIT: %s", key)
        return entry.value

    def set(self, key: str, value: Any) -> None:
        entry = _Entry(
            value=value,
            expires_at=self._clock() + self.ttl_seconds,
            params=json.loads(key),
        )
        with self._lock:
            self._entries[key] = entry

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        return count

    def invalidate(self, booking_date: Optional[date] = None, service_id: Optional[Any] = None) -> int:
        """
        Drop entries that could be serving stale availability.

        Without a date everything goes. With a date, single-date entries for that
        date and bulk entries whose list contains it are dropped; a service id
        narrows that to entries for the service plus the "all services" ones.
        Returns the number of entries removed.
        """
        if booking_date is None:
            removed = self.clear()
            logger.info("Cleared all availability cache (%d entries)", removed)
            return removed

        day = booking_date.isoformat()
        wanted_service = str(service_id) if service_id else None
        removed = 0
        with self._lock:
            for key, entry in list(self._entries.items()):
                params = entry.params
                touches_date = params.get("date") == day or day in (params.get("dates") or [])
                if not touches_date:
                    continue
                if wanted_service and params.get("service_id") not in (wanted_service, ALL_SERVICES):
                    continue
                del self._entries[key]
                removed += 1

        logger.info(
            "Cleared %d availability cache entries for date %s%s",
            removed,
            day,
            f" and service {wanted_service}" if wanted_service else "",
        )
        return removed

    def sweep(self) -> int:
        """Remove every expired entry; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in list(self._entries.items()) if now >= entry.expires_at]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("Swept %d expired availability cache entries", len(expired))
        return len(expired)

    # -----------------------------------------------------------------------
    # Background sweep lifecycle
    # -----------------------------------------------------------------------

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            try:
                self.sweep()
            except Exception:
                logger.exception("Error during availability cache sweep.")

    def start(self) -> asyncio.Task:
        """Start the sweep task on the running loop; a second call reuses the first task."""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop())
        return self._sweep_task

    async def stop(self) -> None:
        task, self._sweep_task = self._sweep_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    @property
    def running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()
