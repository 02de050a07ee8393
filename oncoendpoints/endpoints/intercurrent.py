"""Intercurrent-event resolution for new anti-cancer therapy (ANP).

Implements the hypothetical strategy by discarding data observed once new
therapy has started: every assessment at or after the ANP cycle is set to
missing in a censored copy of the assessment table.
"""

import logging

import numpy as np
import pandas as pd

from oncoendpoints.schedule.visits import VisitSchedule
from oncoendpoints.utils.errors import PreconditionError

logger = logging.getLogger(__name__)

ID_COL = "subject_id"


def first_anp_cycle(flags, cycles) -> int | None:
    """Cycle of the first true flag, or None. Later flags are ignored."""
    for flag, cycle in zip(flags, cycles):
        if flag:
            return int(cycle)
    return None


def resolve_anp(interventions: pd.DataFrame, schedule: VisitSchedule) -> pd.DataFrame:
    """Per-patient ANP status.

    Returns DataFrame with: subject_id, any_anp, anp_cycle
    (anp_cycle is a nullable integer, missing when no new therapy started).
    """
    cycles = schedule.cycles
    flags = interventions[schedule.labels].to_numpy(dtype=bool)
    anp_cycles = [first_anp_cycle(row, cycles) for row in flags]
    return pd.DataFrame({
        ID_COL: interventions[ID_COL].values,
        "any_anp": [c is not None for c in anp_cycles],
        "anp_cycle": pd.array(anp_cycles, dtype="Int64"),
    })


def censor_sequence(values: list, cycles, anp_cycle: int | None) -> list:
    """Null every value at cycle >= anp_cycle. Returns a new list."""
    if anp_cycle is None:
        return list(values)
    return [pd.NA if cycle >= anp_cycle else v for v, cycle in zip(values, cycles)]


def censor_at_anp(
    assessments: pd.DataFrame, anp: pd.DataFrame, schedule: VisitSchedule
) -> pd.DataFrame:
    """Copy of the assessment table with post-ANP assessments removed."""
    censored = assessments.copy()
    anp_by_subject = anp.set_index(ID_COL)["anp_cycle"]
    cutoff = np.array([
        np.nan if pd.isna(c) else float(c)
        for c in censored[ID_COL].map(anp_by_subject)
    ])
    for label, cycle in zip(schedule.labels, schedule.cycles):
        censored.loc[cutoff <= cycle, label] = pd.NA
    return censored


def find_post_anp_assessments(
    assessments: pd.DataFrame, anp: pd.DataFrame, schedule: VisitSchedule
) -> pd.DataFrame:
    """Assessments recorded strictly after the ANP cycle.

    An assessment at the ANP cycle itself is allowed (it is removed from the
    censored sequence); only later ones break the precondition.

    Returns DataFrame with: subject_id, anp_cycle, cycle, response
    """
    anp_by_subject = anp.set_index(ID_COL)["anp_cycle"]
    records = []
    for _, row in assessments.iterrows():
        anp_cycle = anp_by_subject.get(row[ID_COL])
        if anp_cycle is None or pd.isna(anp_cycle):
            continue
        for label, cycle in zip(schedule.labels, schedule.cycles):
            if cycle > anp_cycle and not pd.isna(row[label]):
                records.append({
                    ID_COL: row[ID_COL],
                    "anp_cycle": int(anp_cycle),
                    "cycle": int(cycle),
                    "response": row[label],
                })
    return pd.DataFrame(records, columns=[ID_COL, "anp_cycle", "cycle", "response"])


def check_anp_precondition(
    assessments: pd.DataFrame,
    anp: pd.DataFrame,
    schedule: VisitSchedule,
    policy: str = "warn",
) -> pd.DataFrame:
    """Flag assessments after new therapy started.

    policy "warn" logs one warning per affected subject and returns the
    offending assessments; "raise" raises PreconditionError.
    """
    if policy not in ("warn", "raise"):
        raise ValueError(f"Unknown ANP violation policy: {policy}")
    violations = find_post_anp_assessments(assessments, anp, schedule)
    if violations.empty:
        return violations
    subjects = violations[ID_COL].unique()
    if policy == "raise":
        raise PreconditionError(
            f"{len(subjects)} subjects have assessments after new therapy started: "
            f"{', '.join(map(str, subjects))}"
        )
    for sid, group in violations.groupby(ID_COL, sort=False):
        logger.warning(
            "Subject %s: %d assessments after ANP at cycle %d (cycles %s); "
            "excluded from the hypothetical variant",
            sid, len(group), group["anp_cycle"].iloc[0], group["cycle"].tolist(),
        )
    return violations
