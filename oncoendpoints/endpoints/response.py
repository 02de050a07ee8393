"""Best overall response (BOR) and objective response (OR).

BOR is the most favorable category observed at any visit, by fixed
priority CR > PR > SD > PD. PD is also the default when no CR, PR or SD
was recorded, including an all-missing sequence. Order of visits does not
matter.
"""

import pandas as pd

from oncoendpoints.schedule.visits import VisitSchedule

BOR_PRIORITY = ("CR", "PR", "SD")
BOR_DEFAULT = "PD"
RESPONDER_CODES = frozenset({"CR", "PR"})


def best_overall_response(values) -> str:
    observed = {v for v in values if not pd.isna(v)}
    for code in BOR_PRIORITY:
        if code in observed:
            return code
    return BOR_DEFAULT


def is_objective_response(bor: str) -> bool:
    return bor in RESPONDER_CODES


def classify_best_response(
    assessments: pd.DataFrame, schedule: VisitSchedule
) -> pd.DataFrame:
    """Derive BOR and OR for every patient.

    Returns DataFrame with: subject_id, bor, or
    """
    bor = [
        best_overall_response(row)
        for row in assessments[schedule.labels].itertuples(index=False)
    ]
    return pd.DataFrame({
        "subject_id": assessments["subject_id"].values,
        "bor": bor,
        "or": [is_objective_response(b) for b in bor],
    })
