"""Body-weight data: health stores, reconciliation and display aggregation.

Subpackages:
    sync/ — Health store → backend import (reconcile) and dedup keys

Core modules:
    base         — HealthStore ABC and the canonical WeightSample
    apple_health — HealthStore over an Apple Health export.xml
    summary      — Current / start / lost / to-goal display values
"""

from dosely.health.base import (
    HealthAuthorizationError,
    HealthStore,
    HealthStoreError,
    WeightSample,
)
from dosely.health.summary import WeightSummary

__all__ = [
    "HealthStore",
    "HealthStoreError",
    "HealthAuthorizationError",
    "WeightSample",
    "WeightSummary",
]
