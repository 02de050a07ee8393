"""Config-driven harmonization of response tables.

Maps raw tables from any source (synthetic, CSV, parquet) to a standardized
three-table schema: subjects, assessments, interventions. Assessment cells
are normalized to upper-case response codes or missing; intervention cells
to booleans. Both wide tables share one visit schedule.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

import pandas as pd

from oncoendpoints.schedule.visits import VisitSchedule
from oncoendpoints.utils.config import StudyConfig

logger = logging.getLogger(__name__)

ID_COL = "subject_id"


@dataclass
class ResponseDataset:
    """Unified response dataset with three core tables."""

    subjects: pd.DataFrame
    assessments: pd.DataFrame
    interventions: pd.DataFrame
    schedule: VisitSchedule

    def to_parquet(self, path: Path) -> None:
        path.mkdir(parents=True, exist_ok=True)
        self.subjects.to_parquet(path / "subjects.parquet", index=False)
        self.assessments.to_parquet(path / "assessments.parquet", index=False)
        self.interventions.to_parquet(path / "interventions.parquet", index=False)

    @classmethod
    def from_parquet(cls, path: Path | str, config: StudyConfig) -> "ResponseDataset":
        path = Path(path)
        assessments = pd.read_parquet(path / "assessments.parquet")
        labels = [c for c in assessments.columns if c != ID_COL]
        return cls(
            subjects=pd.read_parquet(path / "subjects.parquet"),
            assessments=assessments,
            interventions=pd.read_parquet(path / "interventions.parquet"),
            schedule=VisitSchedule.from_config(labels, config),
        )

    @property
    def cycle_columns(self) -> list[str]:
        return self.schedule.labels

    def summary(self) -> None:
        n = len(self.subjects)
        cells = self.assessments[self.cycle_columns]
        n_assessed = int(cells.notna().sum().sum())
        n_anp = int(self.interventions[self.cycle_columns].any(axis=1).sum())
        print(f"Response dataset: {n} subjects")
        if "treatment_arm" in self.subjects.columns:
            print(f"  Arms: {self.subjects['treatment_arm'].value_counts().to_dict()}")
        print(f"  Cycles: {len(self.cycle_columns)} "
              f"({self.schedule.cycle_days:g} days each)")
        if not self.schedule.is_contiguous:
            print(f"  Non-contiguous cycles: {self.schedule.cycles.tolist()}")
        print(f"  Assessments recorded: {n_assessed}")
        print(f"  Subjects starting new therapy: {n_anp} / {n} ({n_anp/max(n, 1):.1%})")


def _normalize_response(value, codes: tuple[str, ...]):
    if value is None or pd.isna(value):
        return pd.NA
    code = str(value).strip().upper()
    if code == "":
        return pd.NA
    if code not in codes:
        raise ValueError(f"Unknown response code: {value!r} (expected one of {codes})")
    return code


def _normalize_flag(value, marker: str) -> bool:
    if value is None or pd.isna(value):
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    token = str(value).strip()
    if token == "" or token == "0" or token.upper() in ("FALSE", "N", "NO"):
        return False
    if token.upper() == marker.upper() or token == "1" or token.upper() == "TRUE":
        return True
    raise ValueError(f"Unknown intervention value: {value!r} (expected {marker!r} or empty)")


class Harmonizer:
    """Map raw response tables to the unified ResponseDataset schema."""

    def __init__(self, config: StudyConfig):
        self.config = config

    def harmonize(self, raw: dict[str, pd.DataFrame | None]) -> ResponseDataset:
        assessments = raw["assessments"].copy()
        interventions = raw.get("interventions")
        subjects = raw.get("subjects")

        if ID_COL not in assessments.columns:
            raise ValueError(f"Missing required column in assessments: {ID_COL}")
        if assessments[ID_COL].duplicated().any():
            dupes = assessments.loc[assessments[ID_COL].duplicated(), ID_COL].tolist()
            raise ValueError(f"Duplicate subjects in assessments: {dupes}")

        labels = [c for c in assessments.columns if c != ID_COL]
        if interventions is not None:
            if ID_COL not in interventions.columns:
                raise ValueError(f"Missing required column in interventions: {ID_COL}")
            labels += [c for c in interventions.columns if c != ID_COL and c not in labels]

        # One schedule spans both tables
        schedule = VisitSchedule.from_config(labels, self.config)
        columns = [ID_COL] + schedule.labels
        ids = assessments[ID_COL]

        codes = self.config.response_codes
        assessments = assessments.reindex(columns=columns)
        for col in schedule.labels:
            assessments[col] = assessments[col].map(
                lambda v: _normalize_response(v, codes)
            ).astype("string")

        interventions = self._align_interventions(interventions, ids, columns)
        marker = self.config.anp_marker
        for col in schedule.labels:
            interventions[col] = interventions[col].map(
                lambda v: _normalize_flag(v, marker)
            ).astype(bool)

        subjects = self._align_subjects(subjects, ids)

        return ResponseDataset(
            subjects=subjects.reset_index(drop=True),
            assessments=assessments.reset_index(drop=True),
            interventions=interventions.reset_index(drop=True),
            schedule=schedule,
        )

    def _align_interventions(
        self, interventions: pd.DataFrame | None, ids: pd.Series, columns: list[str]
    ) -> pd.DataFrame:
        if interventions is None:
            empty = pd.DataFrame({ID_COL: ids.values})
            return empty.reindex(columns=columns)

        unknown = set(interventions[ID_COL]) - set(ids)
        if unknown:
            logger.warning(
                "Dropping intervention rows for %d subjects without assessments: %s",
                len(unknown), sorted(map(str, unknown)),
            )
        if interventions[ID_COL].duplicated().any():
            raise ValueError("Duplicate subjects in interventions")
        aligned = interventions.set_index(ID_COL).reindex(ids.values)
        aligned.index.name = ID_COL
        return aligned.reset_index().reindex(columns=columns)

    def _align_subjects(self, subjects: pd.DataFrame | None, ids: pd.Series) -> pd.DataFrame:
        if subjects is None:
            return pd.DataFrame({ID_COL: ids.values})
        if ID_COL not in subjects.columns:
            raise ValueError(f"Missing required column in subjects: {ID_COL}")
        missing = set(ids) - set(subjects[ID_COL])
        if missing:
            raise ValueError(f"{len(missing)} assessed subjects missing from subjects table")
        return subjects.set_index(ID_COL).reindex(ids.values).rename_axis(ID_COL).reset_index()
