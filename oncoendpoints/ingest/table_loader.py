"""Wide-table adapter for assessment and intervention files.

Reads the per-patient assessment table (one column per cycle) and the
optional intervention table from CSV or parquet into the unified
DataSource format.
"""

from pathlib import Path

import pandas as pd

from oncoendpoints.ingest.base import DataSource
from oncoendpoints.utils.config import StudyConfig


def read_table(path: str | Path) -> pd.DataFrame:
    path = Path(path)
    if path.suffix == ".parquet":
        return pd.read_parquet(path)
    if path.suffix in (".csv", ".txt"):
        return pd.read_csv(path, dtype=str)
    if path.suffix == ".tsv":
        return pd.read_csv(path, sep="\t", dtype=str)
    raise ValueError(f"Unsupported table format: {path.suffix}")


class TableSource(DataSource):
    """Load response tables from the files named in the config."""

    def __init__(
        self,
        config: StudyConfig,
        assessments: str | Path | None = None,
        interventions: str | Path | None = None,
        subjects: str | Path | None = None,
    ):
        self.config = config
        self.paths = {
            "assessments": assessments or config.get("files", "assessments"),
            "interventions": interventions or config.get("files", "interventions"),
            "subjects": subjects or config.get("files", "subjects"),
        }
        if self.paths["assessments"] is None:
            raise ValueError("No assessment table configured (files.assessments)")

    def load(self) -> dict[str, pd.DataFrame | None]:
        return {
            name: read_table(path) if path is not None else None
            for name, path in self.paths.items()
        }
