"""Time-to-event endpoint derivation from categorical response assessments.

Derives, per patient, best overall response, time to response (TTR),
duration of response (DOR), time to progression (TTP), time-in-response
status and competing-risk status codes. Times are cycle numbers.

Every rule runs on two variants of the assessment sequence:
    raw: all observed assessments (treatment-policy strategy)
    anp: assessments at or after the start of new anti-cancer therapy
         removed (hypothetical strategy)

Derivation is two-phase. The per-patient pass needs nothing from other
patients. The cohort pass then reduces TTP to a reference maximum and
assigns substituted TTR (sttr) to non-responders who progressed.
"""

import logging
from dataclasses import asdict, dataclass, field, replace

import pandas as pd

from oncoendpoints.endpoints.intercurrent import (
    censor_at_anp,
    censor_sequence,
    check_anp_precondition,
    resolve_anp,
)
from oncoendpoints.endpoints.response import (
    RESPONDER_CODES,
    best_overall_response,
    is_objective_response,
)
from oncoendpoints.harmonize.harmonizer import ResponseDataset
from oncoendpoints.schedule.visits import VisitSchedule
from oncoendpoints.utils.config import StudyConfig
from oncoendpoints.utils.errors import InvalidPatientError

logger = logging.getLogger(__name__)

ID_COL = "subject_id"

# Ordered (status, flag) rules: the first flag that holds assigns the status,
# otherwise the status is 0 (censored).
TTR_STATUS_RULES = (
    (1, "objective_response"),
    (2, "no_or_and_pd"),
)
TIR_STATUS_RULES = (
    (1, "or_and_pd"),
    (1, "no_or_and_pd"),
)

TIME_FIELDS = ("last_cycle", "ttr", "dor", "ttp", "ttp_censored_at_response", "sttr")


def first_matching_status(rules, flags: dict[str, bool], default: int = 0) -> int:
    for status, flag in rules:
        if flags[flag]:
            return status
    return default


@dataclass(frozen=True)
class ResponseEndpoints:
    """Endpoints derived from one variant of a patient's sequence."""

    bor: str
    objective_response: bool
    any_pd: bool
    last_cycle: int
    ttr: int
    dor: int
    or_and_pd: bool
    no_or_and_pd: bool
    no_or_or_pd: bool
    ttr_status: int
    tir_status: int
    ttp: int
    ttp_status: int
    ttp_censored_at_response: int
    sttr: int | None = None

    @property
    def substitutes_ttr(self) -> bool:
        """Non-responder with progression: TTR is replaced in the cohort pass."""
        return self.any_pd and not self.objective_response


@dataclass(frozen=True)
class PatientEndpoints:
    """All derived endpoints for one patient."""

    subject_id: str
    any_anp: bool
    anp_cycle: int | None
    raw: ResponseEndpoints
    anp: ResponseEndpoints

    def to_record(self) -> dict:
        """Flat row: raw fields as-is, hypothetical fields suffixed '_anp'."""
        record = {ID_COL: self.subject_id, "any_anp": self.any_anp, "anp_cycle": self.anp_cycle}
        for suffix, variant in (("", self.raw), ("_anp", self.anp)):
            for name, value in asdict(variant).items():
                name = "or" if name == "objective_response" else name
                record[f"{name}{suffix}"] = value
        return record


def derive_variant(values, cycles) -> ResponseEndpoints:
    """Apply the per-patient rules to one assessment sequence.

    An empty sequence (possible only for the ANP-censored variant) yields a
    non-responder censored at cycle 0.
    """
    observed = [(int(c), v) for v, c in zip(values, cycles) if not pd.isna(v)]
    last_cycle = max((c for c, _ in observed), default=0)

    bor = best_overall_response(v for _, v in observed)
    responder = is_objective_response(bor)
    any_pd = any(v == "PD" for _, v in observed)

    if responder:
        ttr = min(c for c, v in observed if v in RESPONDER_CODES)
        dor = last_cycle - ttr
    else:
        ttr = last_cycle
        dor = 0

    flags = {
        "objective_response": responder,
        "or_and_pd": responder and any_pd,
        "no_or_and_pd": not responder and any_pd,
        "no_or_or_pd": not responder or any_pd,
    }

    return ResponseEndpoints(
        bor=bor,
        objective_response=responder,
        any_pd=any_pd,
        last_cycle=last_cycle,
        ttr=ttr,
        dor=dor,
        or_and_pd=flags["or_and_pd"],
        no_or_and_pd=flags["no_or_and_pd"],
        no_or_or_pd=flags["no_or_or_pd"],
        ttr_status=first_matching_status(TTR_STATUS_RULES, flags),
        tir_status=first_matching_status(TIR_STATUS_RULES, flags),
        ttp=last_cycle,
        ttp_status=int(any_pd),
        ttp_censored_at_response=ttr if responder else last_cycle,
    )


def derive_patient(
    subject_id,
    values,
    cycles,
    anp_cycle: int | None = None,
    censored=None,
) -> PatientEndpoints:
    """Per-patient pass for both variants.

    `censored` is the ANP-censored sequence; it is built from `values` and
    `anp_cycle` when not given. Raises InvalidPatientError when the raw
    sequence has no assessment.
    """
    values = list(values)
    cycles = list(cycles)
    if all(pd.isna(v) for v in values):
        raise InvalidPatientError(subject_id, "no non-missing assessment")
    if censored is None:
        censored = censor_sequence(values, cycles, anp_cycle)

    return PatientEndpoints(
        subject_id=subject_id,
        any_anp=anp_cycle is not None,
        anp_cycle=anp_cycle,
        raw=derive_variant(values, cycles),
        anp=derive_variant(censored, cycles),
    )


def reference_max_ttp(
    records: list[PatientEndpoints], variant: str, groups: dict | None = None
) -> dict:
    """Maximum TTP per reference population (key None when ungrouped)."""
    maxima: dict = {}
    for rec in records:
        key = groups.get(rec.subject_id) if groups is not None else None
        ttp = getattr(rec, variant).ttp
        maxima[key] = max(maxima.get(key, ttp), ttp)
    return maxima


def apply_ttr_substitution(
    records: list[PatientEndpoints], groups: dict | None = None
) -> list[PatientEndpoints]:
    """Cohort pass: assign sttr for both variants.

    Non-responders who progressed get the maximum TTP of their reference
    population; everyone else keeps their own TTR. `groups` maps subject_id
    to a population key (e.g. treatment arm); None means the whole cohort.
    Returns new records, inputs are not modified.
    """
    maxima = {v: reference_max_ttp(records, v, groups) for v in ("raw", "anp")}

    def substitute(rec: PatientEndpoints, variant: str) -> ResponseEndpoints:
        ep = getattr(rec, variant)
        key = groups.get(rec.subject_id) if groups is not None else None
        sttr = maxima[variant][key] if ep.substitutes_ttr else ep.ttr
        return replace(ep, sttr=sttr)

    return [
        replace(rec, raw=substitute(rec, "raw"), anp=substitute(rec, "anp"))
        for rec in records
    ]


def endpoints_to_frame(
    records: list[PatientEndpoints],
    schedule: VisitSchedule | None = None,
    time_unit: str = "cycle",
) -> pd.DataFrame:
    """Output table, one row per patient.

    Time fields are converted to `time_unit` ("cycle", "days", "months");
    anp_cycle always stays a cycle number.
    """
    frame = pd.DataFrame([rec.to_record() for rec in records])
    if frame.empty:
        return frame
    frame["anp_cycle"] = pd.array(frame["anp_cycle"].tolist(), dtype="Int64")
    if time_unit != "cycle":
        if schedule is None:
            raise ValueError("A visit schedule is needed to convert times")
        for name in TIME_FIELDS:
            for col in (name, f"{name}_anp"):
                frame[col] = schedule.convert(frame[col].astype(float), time_unit)
    return frame


@dataclass
class DerivationResult:
    endpoints: list[PatientEndpoints]
    schedule: VisitSchedule
    censored_assessments: pd.DataFrame
    excluded: dict = field(default_factory=dict)
    post_anp_assessments: pd.DataFrame | None = None

    def to_frame(self, time_unit: str = "cycle") -> pd.DataFrame:
        return endpoints_to_frame(self.endpoints, self.schedule, time_unit)


class EndpointDeriver:
    """Runs the two-phase derivation over a harmonized response dataset."""

    POLICIES = ("raise", "exclude")

    def __init__(self, config: StudyConfig):
        self.config = config
        self.policy = config.invalid_patient_policy
        if self.policy not in self.POLICIES:
            raise ValueError(f"Unknown invalid-patient policy: {self.policy}")

    def derive(
        self, dataset: ResponseDataset, groups: dict | None = None
    ) -> DerivationResult:
        """Derive endpoints for every patient.

        `groups` overrides the configured substitution population
        (substitution.group_by, a subjects-table column).
        """
        schedule = dataset.schedule
        anp = resolve_anp(dataset.interventions, schedule)
        post_anp = check_anp_precondition(
            dataset.assessments, anp, schedule, self.config.anp_violation_policy
        )
        censored = censor_at_anp(dataset.assessments, anp, schedule)
        anp_by_subject = anp.set_index(ID_COL)["anp_cycle"]

        # Phase 1: per patient
        records = []
        excluded = {}
        cycles = schedule.cycles
        raw_rows = dataset.assessments[schedule.labels].itertuples(index=False)
        cens_rows = censored[schedule.labels].itertuples(index=False)
        for sid, raw_row, cens_row in zip(dataset.assessments[ID_COL], raw_rows, cens_rows):
            anp_cycle = anp_by_subject.get(sid)
            anp_cycle = None if pd.isna(anp_cycle) else int(anp_cycle)
            try:
                records.append(derive_patient(sid, raw_row, cycles, anp_cycle, cens_row))
            except InvalidPatientError as e:
                if self.policy == "raise":
                    raise
                logger.warning("Excluding subject %s: %s", sid, e.reason)
                excluded[sid] = e.reason

        # Phase 2: cohort reduction, then substitution
        if groups is None:
            groups = self._substitution_groups(dataset)
        records = apply_ttr_substitution(records, groups)

        logger.info(
            "Derived endpoints for %d subjects (%d excluded, %d with new therapy)",
            len(records), len(excluded), sum(r.any_anp for r in records),
        )
        return DerivationResult(
            endpoints=records,
            schedule=schedule,
            censored_assessments=censored,
            excluded=excluded,
            post_anp_assessments=post_anp,
        )

    def _substitution_groups(self, dataset: ResponseDataset) -> dict | None:
        column = self.config.substitution_group
        if column is None:
            return None
        if column not in dataset.subjects.columns:
            raise ValueError(f"Substitution group column not in subjects table: {column}")
        return dict(zip(dataset.subjects[ID_COL], dataset.subjects[column]))
