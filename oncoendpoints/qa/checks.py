"""Response data validation checks.

Each check is a class with a run() method that validates one assumption
the endpoint derivation relies on. The derivation does not repair these
conditions, so they are checked and reported before it runs.
"""

from dataclasses import dataclass

import numpy as np
import pandas as pd

from oncoendpoints.endpoints.intercurrent import find_post_anp_assessments, resolve_anp
from oncoendpoints.harmonize.harmonizer import ResponseDataset
from oncoendpoints.utils.config import StudyConfig


@dataclass
class QAResult:
    name: str
    passed: bool
    message: str
    details: str = ""


def _format_subjects(subjects, limit: int = 10) -> str:
    subjects = [str(s) for s in subjects]
    shown = ", ".join(subjects[:limit])
    return shown + (f" (+{len(subjects) - limit} more)" if len(subjects) > limit else "")


class ValidResponseCodes:
    """Assessment cells must be a configured response code or missing."""

    def run(self, data: ResponseDataset, config: StudyConfig) -> QAResult:
        cells = pd.Series(data.assessments[data.cycle_columns].to_numpy().ravel())
        cells = cells[cells.notna()]
        invalid = cells[~cells.isin(config.response_codes)]
        return QAResult(
            name="Valid Response Codes",
            passed=invalid.empty,
            message=f"{len(invalid)} invalid response values" if not invalid.empty
                    else "All response values are valid",
            details=str(sorted(set(map(str, invalid)))) if not invalid.empty else "",
        )


class AtLeastOneAssessment:
    """Every patient needs one non-missing assessment."""

    def run(self, data: ResponseDataset, config: StudyConfig) -> QAResult:
        assessed = data.assessments[data.cycle_columns].notna().any(axis=1)
        missing = data.assessments.loc[~assessed, "subject_id"].tolist()
        return QAResult(
            name="At Least One Assessment",
            passed=len(missing) == 0,
            message=f"{len(missing)} subjects without any assessment" if missing
                    else "All subjects have at least one assessment",
            details=_format_subjects(missing),
        )


class NoInterimMissingAssessments:
    """Assessments must be complete up to each patient's last assessment."""

    def run(self, data: ResponseDataset, config: StudyConfig) -> QAResult:
        observed = data.assessments[data.cycle_columns].notna().to_numpy()
        # Gap: a missing visit followed by a later assessed one
        later_assessed = np.flip(np.cumsum(np.flip(observed, axis=1), axis=1), axis=1) > 0
        gaps = (~observed & later_assessed).any(axis=1)
        subjects = data.assessments.loc[gaps, "subject_id"].tolist()
        return QAResult(
            name="No Interim Missing Assessments",
            passed=len(subjects) == 0,
            message=f"{len(subjects)} subjects with gaps before their last assessment"
                    if subjects else "No interim missing assessments",
            details=_format_subjects(subjects),
        )


class NoAssessmentsAfterProgression:
    """No assessment may follow a PD assessment."""

    def run(self, data: ResponseDataset, config: StudyConfig) -> QAResult:
        cells = data.assessments[data.cycle_columns]
        is_pd = (cells == "PD").fillna(False).to_numpy(dtype=bool)
        after_pd = np.cumsum(is_pd, axis=1) - is_pd > 0
        violations = (after_pd & cells.notna().to_numpy()).any(axis=1)
        subjects = data.assessments.loc[violations, "subject_id"].tolist()
        return QAResult(
            name="No Assessments After Progression",
            passed=len(subjects) == 0,
            message=f"{len(subjects)} subjects assessed after PD" if subjects
                    else "No assessments recorded after progression",
            details=_format_subjects(subjects),
        )


class SingleNewTherapyFlag:
    """At most one ANP flag per patient; the first one is used."""

    def run(self, data: ResponseDataset, config: StudyConfig) -> QAResult:
        n_flags = data.interventions[data.cycle_columns].sum(axis=1)
        subjects = data.interventions.loc[n_flags > 1, "subject_id"].tolist()
        return QAResult(
            name="Single New Therapy Flag",
            passed=len(subjects) == 0,
            message=f"{len(subjects)} subjects with repeated ANP flags (first one used)"
                    if subjects else "At most one ANP flag per subject",
            details=_format_subjects(subjects),
        )


class NoAssessmentsAfterNewTherapy:
    """No assessment may be recorded after the ANP cycle."""

    def run(self, data: ResponseDataset, config: StudyConfig) -> QAResult:
        anp = resolve_anp(data.interventions, data.schedule)
        violations = find_post_anp_assessments(data.assessments, anp, data.schedule)
        subjects = violations["subject_id"].unique().tolist()
        return QAResult(
            name="No Assessments After New Therapy",
            passed=len(subjects) == 0,
            message=f"{len(subjects)} subjects assessed after starting new therapy"
                    if subjects else "No assessments recorded after new therapy",
            details=_format_subjects(subjects),
        )


ALL_CHECKS = [
    ValidResponseCodes(),
    AtLeastOneAssessment(),
    NoInterimMissingAssessments(),
    NoAssessmentsAfterProgression(),
    SingleNewTherapyFlag(),
    NoAssessmentsAfterNewTherapy(),
]


def run_all_checks(data: ResponseDataset, config: StudyConfig) -> list[QAResult]:
    return [check.run(data, config) for check in ALL_CHECKS]

