"""Display aggregation over a user's weight history.

All arithmetic happens in kilograms; values are converted to the user's unit
only when formatted.  Missing data formats as the sentinel (``"--"``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from dosely.config_loader import DisplayConfig
from dosely.models.tracking import WeightEntry
from dosely.models.units import format_weight
from dosely.models.users import MeasurementUnit


@dataclass(frozen=True)
class WeightSummary:
    """Current / start / lost / to-goal over a weight history.

    Attributes:
        entries:     Weight entries; sorted newest first on construction.
        unit:        Unit to display in.
        goal_kg:     Goal weight from the profile, if set.
        baseline_kg: Start weight override (e.g. the onboarding weight);
                     defaults to the oldest entry.
        display:     Sentinel and decimals.
    """

    entries: Sequence[WeightEntry]
    unit: MeasurementUnit = MeasurementUnit.metric
    goal_kg: float | None = None
    baseline_kg: float | None = None
    display: DisplayConfig = field(default_factory=DisplayConfig)

    def __post_init__(self) -> None:
        ordered = sorted(self.entries, key=lambda e: e.recorded_at, reverse=True)
        object.__setattr__(self, "entries", ordered)

    # ---------- kilograms ----------

    @property
    def latest_kg(self) -> float | None:
        return self.entries[0].weight_kg if self.entries else None

    @property
    def start_kg(self) -> float | None:
        if self.baseline_kg is not None:
            return self.baseline_kg
        return self.entries[-1].weight_kg if self.entries else None

    @property
    def lost_kg(self) -> float | None:
        if self.latest_kg is None or self.start_kg is None:
            return None
        return self.start_kg - self.latest_kg

    @property
    def to_goal_kg(self) -> float | None:
        if self.latest_kg is None or self.goal_kg is None:
            return None
        return self.latest_kg - self.goal_kg

    # ---------- display ----------

    def _fmt(self, kg: float | None) -> str:
        return format_weight(
            kg,
            self.unit,
            decimals=self.display.decimals,
            sentinel=self.display.sentinel,
        )

    @property
    def current_display(self) -> str:
        return self._fmt(self.latest_kg)

    @property
    def start_display(self) -> str:
        return self._fmt(self.start_kg)

    @property
    def lost_display(self) -> str:
        return self._fmt(self.lost_kg)

    @property
    def to_goal_display(self) -> str:
        return self._fmt(self.to_goal_kg)

    @property
    def goal_display(self) -> str:
        return self._fmt(self.goal_kg)
