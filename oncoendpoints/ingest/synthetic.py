"""Synthetic tumor response cohort generator.

Simulates per-cycle categorical response assessments as a Markov chain over
{CR, PR, SD, PD}, with arm-specific transition probabilities. Follow-up for
a patient ends at progression, at dropout, at the end of the schedule, or
when a new anti-cancer therapy (ANP) starts. The generated tables respect
the derivation preconditions: the first cycle is always assessed, no
assessment follows PD, and no assessment follows the ANP cycle.
"""

from pathlib import Path

import numpy as np
import pandas as pd

from oncoendpoints.ingest.base import DataSource
from oncoendpoints.utils.config import StudyConfig


class SyntheticSource(DataSource):
    """Config-driven synthetic response data generator."""

    def __init__(self, config: StudyConfig, output_dir: Path | None = None):
        self.config = config
        self.rng = np.random.default_rng(config.seed)
        self.output_dir = output_dir

    def load(self) -> dict[str, pd.DataFrame]:
        n = self.config.n_subjects
        subjects = self._generate_subjects(n)
        assessments, interventions = self._generate_sequences(subjects)

        if self.output_dir:
            self._save_csvs(subjects, assessments, interventions)

        return {
            "subjects": subjects,
            "assessments": assessments,
            "interventions": interventions,
        }

    def _generate_subjects(self, n: int) -> pd.DataFrame:
        ratio = self.config.get("synthetic", "randomization_ratio", default=[1, 1])
        p_treat = ratio[1] / sum(ratio)
        arms = self.rng.choice(["control", "treatment"], size=n, p=[1 - p_treat, p_treat])
        return pd.DataFrame({
            "subject_id": [f"{self.config.study_id}-{i:04d}" for i in range(n)],
            "study_id": self.config.study_id,
            "treatment_arm": arms,
        })

    def _draw(self, probs: dict[str, float]) -> str:
        return str(self.rng.choice(list(probs.keys()), p=list(probs.values())))

    def _generate_sequences(
        self, subjects: pd.DataFrame
    ) -> tuple[pd.DataFrame, pd.DataFrame]:
        cfg = self.config
        n_cycles = cfg.get("synthetic", "n_cycles", default=24)
        dropout_rate = cfg.get("synthetic", "dropout_rate", default=0.0)
        anp_rate = cfg.get("synthetic", "anp_rate", default=0.0)
        assess_at_anp = cfg.get("synthetic", "assess_at_anp", default=0.0)
        labels = [f"C{c}" for c in range(1, n_cycles + 1)]

        assess_rows = []
        anp_rows = []
        for _, row in subjects.iterrows():
            arm = row["treatment_arm"]
            transitions = cfg.get("synthetic", "transitions", arm)
            responses: dict[str, str] = {}
            anp: dict[str, str] = {}

            state = self._draw(cfg.get("synthetic", "first_visit", arm))
            responses[labels[0]] = state

            for label in labels[1:]:
                if state == "PD":
                    break
                if self.rng.random() < dropout_rate:
                    break
                if self.rng.random() < anp_rate:
                    anp[label] = cfg.anp_marker
                    if self.rng.random() < assess_at_anp:
                        responses[label] = self._draw(transitions[state])
                    break
                state = self._draw(transitions[state])
                responses[label] = state

            assess_rows.append({"subject_id": row["subject_id"], **responses})
            anp_rows.append({"subject_id": row["subject_id"], **anp})

        columns = ["subject_id"] + labels
        assessments = pd.DataFrame(assess_rows).reindex(columns=columns)
        interventions = pd.DataFrame(anp_rows).reindex(columns=columns)
        return assessments, interventions

    def _save_csvs(
        self,
        subjects: pd.DataFrame,
        assessments: pd.DataFrame,
        interventions: pd.DataFrame,
    ) -> None:
        """Save the wide tables as CSVs readable by TableSource."""
        self.output_dir.mkdir(parents=True, exist_ok=True)
        subjects.to_csv(self.output_dir / "subjects.csv", index=False)
        assessments.to_csv(self.output_dir / "assessments.csv", index=False)
        interventions.to_csv(self.output_dir / "interventions.csv", index=False)
