"""Visit schedule: maps assessment columns to cycles and elapsed time.

Each assessment column carries a cycle label such as ``C3``. Elapsed time
is cycle x cycle length, with months taken as days / (365.25 / 12).
"""

import re
from dataclasses import dataclass

import numpy as np
import pandas as pd

from oncoendpoints.utils.config import (
    DEFAULT_CYCLE_DAYS,
    DEFAULT_CYCLE_PATTERN,
    DEFAULT_DAYS_PER_MONTH,
    StudyConfig,
)
from oncoendpoints.utils.errors import ScheduleError

TIME_UNITS = ("cycle", "days", "months")


def parse_cycle_label(label, pattern: str = DEFAULT_CYCLE_PATTERN) -> int:
    """Extract the cycle number from a column label like 'C4'."""
    m = re.fullmatch(pattern, str(label).strip())
    if not m:
        raise ScheduleError(f"Malformed cycle label: {label!r}")
    cycle = int(m.group(1))
    if cycle < 1:
        raise ScheduleError(f"Cycle numbers start at 1, got {label!r}")
    return cycle


@dataclass(frozen=True)
class Visit:
    label: str
    cycle: int
    days: float
    months: float


@dataclass(frozen=True)
class VisitSchedule:
    """Ordered visits with a fixed cycle length."""

    visits: tuple[Visit, ...]
    cycle_days: float = DEFAULT_CYCLE_DAYS
    days_per_month: float = DEFAULT_DAYS_PER_MONTH

    @classmethod
    def from_columns(
        cls,
        labels,
        cycle_days: float = DEFAULT_CYCLE_DAYS,
        days_per_month: float = DEFAULT_DAYS_PER_MONTH,
        pattern: str = DEFAULT_CYCLE_PATTERN,
    ) -> "VisitSchedule":
        cycles = {}
        for label in labels:
            cycle = parse_cycle_label(label, pattern)
            if cycle in cycles:
                raise ScheduleError(
                    f"Columns {cycles[cycle]!r} and {label!r} both map to cycle {cycle}"
                )
            cycles[cycle] = str(label)
        if not cycles:
            raise ScheduleError("No assessment columns to build a schedule from")
        return cls._build(
            [(label, cycle) for cycle, label in sorted(cycles.items())],
            cycle_days,
            days_per_month,
        )

    @classmethod
    def from_positions(
        cls,
        n_visits: int,
        cycle_days: float = DEFAULT_CYCLE_DAYS,
        days_per_month: float = DEFAULT_DAYS_PER_MONTH,
    ) -> "VisitSchedule":
        """Schedule for unlabeled columns: position i (1-based) is cycle i."""
        if n_visits < 1:
            raise ScheduleError("No assessment columns to build a schedule from")
        return cls._build(
            [(f"C{i}", i) for i in range(1, n_visits + 1)], cycle_days, days_per_month
        )

    @classmethod
    def from_config(cls, labels, config: StudyConfig) -> "VisitSchedule":
        return cls.from_columns(
            labels,
            cycle_days=config.cycle_days,
            days_per_month=config.days_per_month,
            pattern=config.cycle_pattern,
        )

    @classmethod
    def _build(cls, pairs, cycle_days, days_per_month) -> "VisitSchedule":
        if cycle_days <= 0 or days_per_month <= 0:
            raise ScheduleError("Cycle length and days per month must be positive")
        visits = tuple(
            Visit(
                label=label,
                cycle=cycle,
                days=cycle * cycle_days,
                months=cycle * cycle_days / days_per_month,
            )
            for label, cycle in pairs
        )
        return cls(visits=visits, cycle_days=cycle_days, days_per_month=days_per_month)

    @property
    def labels(self) -> list[str]:
        return [v.label for v in self.visits]

    @property
    def cycles(self) -> np.ndarray:
        return np.array([v.cycle for v in self.visits], dtype=int)

    @property
    def is_contiguous(self) -> bool:
        """True when cycles run 1..n. Gaps are allowed; times use cycle numbers."""
        return np.array_equal(self.cycles, np.arange(1, len(self.visits) + 1))

    def cycle_of(self, label: str) -> int:
        for v in self.visits:
            if v.label == label:
                return v.cycle
        raise ScheduleError(f"Label {label!r} is not part of the schedule")

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [(v.label, v.cycle, v.days, v.months) for v in self.visits],
            columns=["label", "cycle", "days", "months"],
        )

    def convert(self, cycles, unit: str = "cycle"):
        """Express cycle counts (scalar, array or Series) in the requested unit."""
        if unit == "cycle":
            return cycles
        if unit == "days":
            return cycles * self.cycle_days
        if unit == "months":
            return cycles * self.cycle_days / self.days_per_month
        raise ValueError(f"Unknown time unit: {unit} (expected one of {TIME_UNITS})")
