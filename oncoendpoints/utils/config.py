"""YAML configuration loader for study definitions."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

DEFAULT_CYCLE_DAYS = 28
DEFAULT_DAYS_PER_MONTH = 365.25 / 12
DEFAULT_CYCLE_PATTERN = r"^C(\d+)$"
RESPONSE_CODES = ("CR", "PR", "SD", "PD")


@dataclass
class StudyConfig:
    """Study configuration loaded from YAML."""

    raw: dict[str, Any]
    config_path: Path | None = None

    @classmethod
    def load(cls, path: str | Path) -> "StudyConfig":
        path = Path(path)
        with open(path) as f:
            raw = yaml.safe_load(f)
        return cls(raw=raw, config_path=path)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "StudyConfig":
        return cls(raw=raw)

    @property
    def study_id(self) -> str:
        return self.raw["study"]["id"]

    @property
    def study_name(self) -> str:
        return self.raw["study"]["name"]

    @property
    def source(self) -> str:
        return self.raw["study"]["source"]

    @property
    def n_subjects(self) -> int | None:
        return self.raw["study"].get("n_subjects")

    @property
    def seed(self) -> int:
        return self.raw["study"].get("seed", 42)

    @property
    def arms(self) -> dict[str, str]:
        return self.raw["study"].get("arms", {})

    @property
    def cycle_days(self) -> float:
        return self.get("schedule", "cycle_days", default=DEFAULT_CYCLE_DAYS)

    @property
    def days_per_month(self) -> float:
        return self.get("schedule", "days_per_month", default=DEFAULT_DAYS_PER_MONTH)

    @property
    def cycle_pattern(self) -> str:
        return self.get("schedule", "cycle_pattern", default=DEFAULT_CYCLE_PATTERN)

    @property
    def response_codes(self) -> tuple[str, ...]:
        return tuple(self.get("codes", "responses", default=RESPONSE_CODES))

    @property
    def anp_marker(self) -> str:
        return self.get("codes", "anp_marker", default="ANP")

    @property
    def invalid_patient_policy(self) -> str:
        return self.get("derivation", "invalid_patient_policy", default="raise")

    @property
    def anp_violation_policy(self) -> str:
        return self.get("derivation", "anp_violation_policy", default="warn")

    @property
    def time_unit(self) -> str:
        return self.get("derivation", "time_unit", default="cycle")

    @property
    def substitution_group(self) -> str | None:
        return self.get("substitution", "group_by")

    @property
    def estimands(self) -> list[str]:
        return self.raw.get("estimands", [])

    def get(self, *keys: str, default: Any = None) -> Any:
        """Nested dict access: config.get('schedule', 'cycle_days')"""
        d = self.raw
        for k in keys:
            if isinstance(d, dict):
                d = d.get(k, default)
            else:
                return default
        return d if d is not None else default
