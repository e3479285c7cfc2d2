"""Health-data store interface and the canonical weight sample.

Every health store implementation subclasses HealthStore and returns
WeightSample values in kilograms with timezone-aware UTC timestamps.  The
weight reconciler and the weight log screen only talk to this interface.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable

logger = logging.getLogger("dosely.health")


class HealthStoreError(Exception):
    """A health store operation failed."""


class HealthAuthorizationError(HealthStoreError):
    """The user has not granted access to body-mass data."""


@dataclass(frozen=True)
class WeightSample:
    """One body-mass reading from a health store.

    Attributes:
        recorded_at: UTC timestamp of the reading.
        weight_kg:   Body mass in kilograms.
        source_name: Device or app that produced the reading, if known.
    """

    recorded_at: datetime
    weight_kg: float
    source_name: str | None = None


SampleCallback = Callable[[WeightSample], Awaitable[None] | None]


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime (naive values are local time)."""
    return value.astimezone(timezone.utc)


class HealthStore(ABC):
    """Abstract base class for body-weight health stores.

    Subclasses must implement:
        - request_authorization()
        - fetch_latest_sample()
        - fetch_samples_in_range()
        - save_sample()
        - enable_background_delivery()

    Reads on an unauthorized store return empty results; writes raise
    HealthAuthorizationError.
    """

    #: Unique slug for logging.
    SOURCE_ID: str = "unknown"

    #: Human-readable name for logging and UI.
    DISPLAY_NAME: str = "Unknown Health Store"

    def __init__(self) -> None:
        self._authorized = False

    @property
    def is_authorized(self) -> bool:
        return self._authorized

    @abstractmethod
    async def request_authorization(self) -> bool:
        """Ask for read/write access to body mass. Returns True when granted."""

    @abstractmethod
    async def fetch_latest_sample(self) -> WeightSample | None:
        """Return the most recent sample, or None if there is none."""

    @abstractmethod
    async def fetch_samples_in_range(
        self, start: datetime, end: datetime
    ) -> list[WeightSample]:
        """Return samples with ``start <= recorded_at <= end``, oldest first."""

    @abstractmethod
    async def save_sample(
        self, weight_kg: float, recorded_at: datetime | None = None
    ) -> WeightSample:
        """Write a body-mass sample.

        Raises:
            HealthAuthorizationError: If access has not been granted.
        """

    @abstractmethod
    async def enable_background_delivery(
        self, callback: SampleCallback | None = None
    ) -> bool:
        """Deliver new samples to ``callback`` as they arrive.

        Returns False when the store is not authorized.
        """
