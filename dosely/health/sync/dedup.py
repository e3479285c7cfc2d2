"""Deduplication of imported weight samples.

The same reading reaches the backend again every time the user syncs, since
the health store keeps returning it for the whole trailing window.

Dedup key:
    (user_id, source, recorded_at truncated to the minute, UTC)

Health stores report sub-second timestamps while the backend may round them,
so the minute is the finest grain that survives a round trip.
"""

from __future__ import annotations

import logging
from datetime import datetime
from uuid import UUID

from dosely.health.base import as_utc
from dosely.models.tracking import WeightEntry

logger = logging.getLogger("dosely.health.sync.dedup")


def weight_sample_key(user_id: UUID, source: str, recorded_at: datetime) -> str:
    """Generate the dedup key for one weight reading.

    Args:
        user_id:     Owning user.
        source:      Provenance value (e.g. 'health_kit').
        recorded_at: Reading timestamp; naive values are taken as local time.

    Returns:
        Colon-separated dedup key string.
    """
    minute = as_utc(recorded_at).strftime("%Y-%m-%dT%H:%M")
    return f"{user_id}:{source}:{minute}"


def entry_key(entry: WeightEntry) -> str:
    """Dedup key of a stored weight entry."""
    return weight_sample_key(entry.user_id, entry.source.value, entry.recorded_at)


class InMemoryDedupCache:
    """Set of keys seen during one sync run.

    Seeded with the keys of the remote history, then extended as samples are
    inserted, so a reading appearing twice in one export is written once.

    Usage::

        cache = InMemoryDedupCache()
        if cache.is_seen(key):
            logger.debug("Skipping duplicate: %s", key)
        else:
            cache.mark_seen(key)
    """

    def __init__(self) -> None:
        self._seen: set[str] = set()

    def is_seen(self, key: str) -> bool:
        return key in self._seen

    def mark_seen(self, key: str) -> None:
        self._seen.add(key)

    def clear(self) -> None:
        self._seen.clear()

    def __len__(self) -> int:
        return len(self._seen)
