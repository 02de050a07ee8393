"""Estimand strategy selection.

Maps a named estimand to the endpoint variant (raw or ANP-censored) and the
time/event columns a survival or competing-risks estimator should consume.
Labels are matched case-insensitively, with spaces, commas and underscores
treated as hyphens, so "Conditional DOR, hypothetical" selects
"conditional-dor-hypothetical".
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable

import numpy as np
import pandas as pd

from oncoendpoints.schedule.visits import VisitSchedule
from oncoendpoints.utils.errors import UnsupportedEstimandError


class Estimand(str, Enum):
    CONDITIONAL_DOR_TREATMENT_POLICY = "conditional-dor-treatment-policy"
    CONDITIONAL_DOR_HYPOTHETICAL = "conditional-dor-hypothetical"
    TTR_COMPETING_RISKS_TREATMENT_POLICY = "ttr-competing-risks-treatment-policy"
    TTR_COMPETING_RISKS_HYPOTHETICAL = "ttr-competing-risks-hypothetical"
    TTR_SUBSTITUTED_TREATMENT_POLICY = "ttr-substituted-treatment-policy"
    TTR_SUBSTITUTED_HYPOTHETICAL = "ttr-substituted-hypothetical"
    TTP_TREATMENT_POLICY = "ttp-treatment-policy"
    TTP_HYPOTHETICAL = "ttp-hypothetical"
    TTP_CENSORED_AT_RESPONSE = "ttp-censored-at-response"
    TIME_IN_RESPONSE_WHILE_ALIVE = "time-in-response-while-alive"
    WHILE_USING_THERAPY_COMPETING_RISKS = "while-using-therapy-competing-risks"


@dataclass(frozen=True)
class EstimandSpec:
    """Which derived columns feed the downstream estimator.

    population: boolean column restricting the analysis set, or None for
    all patients. competing: event column holds multi-level status codes
    (0 = censored, 1 = event of interest, 2 = competing event).
    build: custom (time, event) constructor for estimands that combine
    several columns.
    """

    estimand: Estimand
    variant: str
    time: str | None
    event: str | None
    population: str | None = None
    competing: bool = False
    description: str = ""
    build: Callable[[pd.DataFrame], tuple[pd.Series, pd.Series]] | None = None


def _while_using_therapy(frame: pd.DataFrame) -> tuple[pd.Series, pd.Series]:
    """Progression before new therapy (1) competing with new therapy (2).

    Follow-up ends at the ANP cycle when new therapy starts first.
    """
    progressed = frame["any_pd_anp"].astype(bool)
    switched = frame["any_anp"].astype(bool) & ~progressed
    event = pd.Series(np.select([progressed, switched], [1, 2], default=0), index=frame.index)
    anp_cycle = pd.Series(
        frame["anp_cycle"].to_numpy(dtype=float, na_value=np.nan), index=frame.index
    )
    time = frame["ttp_anp"].astype(float).where(~switched, anp_cycle)
    return time, event


ESTIMANDS: dict[Estimand, EstimandSpec] = {
    spec.estimand: spec
    for spec in (
        EstimandSpec(
            Estimand.CONDITIONAL_DOR_TREATMENT_POLICY, "raw", "dor", "any_pd",
            population="or",
            description="DOR among responders, all observed data",
        ),
        EstimandSpec(
            Estimand.CONDITIONAL_DOR_HYPOTHETICAL, "anp", "dor_anp", "any_pd_anp",
            population="or_anp",
            description="DOR among responders, censored at new therapy",
        ),
        EstimandSpec(
            Estimand.TTR_COMPETING_RISKS_TREATMENT_POLICY, "raw", "ttr", "ttr_status",
            competing=True,
            description="Response (1) vs progression without response (2)",
        ),
        EstimandSpec(
            Estimand.TTR_COMPETING_RISKS_HYPOTHETICAL, "anp", "ttr_anp", "ttr_status_anp",
            competing=True,
            description="Response vs progression, censored at new therapy",
        ),
        EstimandSpec(
            Estimand.TTR_SUBSTITUTED_TREATMENT_POLICY, "raw", "sttr", "or",
            description="TTR with progressors censored at the cohort maximum TTP",
        ),
        EstimandSpec(
            Estimand.TTR_SUBSTITUTED_HYPOTHETICAL, "anp", "sttr_anp", "or_anp",
            description="Substituted TTR, censored at new therapy",
        ),
        EstimandSpec(
            Estimand.TTP_TREATMENT_POLICY, "raw", "ttp", "ttp_status",
            description="Time to progression, all observed data",
        ),
        EstimandSpec(
            Estimand.TTP_HYPOTHETICAL, "anp", "ttp_anp", "ttp_status_anp",
            description="Time to progression, censored at new therapy",
        ),
        EstimandSpec(
            Estimand.TTP_CENSORED_AT_RESPONSE, "raw", "ttp_censored_at_response",
            "no_or_and_pd",
            description="Progression without response, responders censored at response",
        ),
        EstimandSpec(
            Estimand.TIME_IN_RESPONSE_WHILE_ALIVE, "raw", "dor", "tir_status",
            description="EMA time in response (non-responders contribute zero time)",
        ),
        EstimandSpec(
            Estimand.WHILE_USING_THERAPY_COMPETING_RISKS, "anp", None, None,
            competing=True,
            description="Progression (1) vs start of new therapy (2)",
            build=_while_using_therapy,
        ),
    )
}


def normalize_label(label: str) -> str:
    return re.sub(r"[\s,_]+", "-", str(label).strip().lower()).strip("-")


def select_estimand(label: str | Estimand) -> EstimandSpec:
    if isinstance(label, Estimand):
        return ESTIMANDS[label]
    try:
        return ESTIMANDS[Estimand(normalize_label(label))]
    except ValueError:
        raise UnsupportedEstimandError(label, [e.value for e in Estimand]) from None


def select_analysis_data(
    endpoints: pd.DataFrame,
    label: str | Estimand,
    schedule: VisitSchedule | None = None,
    time_unit: str = "cycle",
    group: pd.Series | None = None,
) -> pd.DataFrame:
    """Analysis frame for one estimand.

    `endpoints` is the cycle-unit table from endpoints_to_frame. Returns
    DataFrame with: subject_id, time, event (and group when given),
    restricted to the estimand's population.
    """
    spec = select_estimand(label)
    if spec.build is not None:
        time, event = spec.build(endpoints)
    else:
        time, event = endpoints[spec.time].astype(float), endpoints[spec.event]

    data = pd.DataFrame({
        "subject_id": endpoints["subject_id"].values,
        "time": time.values,
        "event": event.astype(int).values,
    }, index=endpoints.index)
    if group is not None:
        data["group"] = endpoints["subject_id"].map(group).values

    if spec.population is not None:
        data = data[endpoints[spec.population].astype(bool)].copy()

    if time_unit != "cycle":
        if schedule is None:
            raise ValueError("A visit schedule is needed to convert times")
        data["time"] = schedule.convert(data["time"], time_unit)
    return data.reset_index(drop=True)


def to_structured_array(data: pd.DataFrame, label: str | Estimand | None = None) -> np.ndarray:
    """(event, time) record array for binary-event estimands.

    When `label` is given, competing-risks estimands are rejected even if
    the observed codes happen to be binary.
    """
    if label is not None and select_estimand(label).competing:
        raise ValueError(f"{label} is a competing-risks estimand; use the multi-level event column")
    if not set(data["event"].unique()) <= {0, 1}:
        raise ValueError("Structured survival arrays need a binary event column")
    return np.array(
        list(zip(data["event"].astype(bool), data["time"].astype(float))),
        dtype=[("event", bool), ("time", float)],
    )
