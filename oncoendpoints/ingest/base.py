"""Abstract base class for response data sources."""

from abc import ABC, abstractmethod

import pandas as pd


class DataSource(ABC):
    """Interface for loading tumor response data.

    All data sources (synthetic, CSV/parquet tables) implement this interface,
    returning data in a unified dict format that the Harmonizer can process.
    """

    @abstractmethod
    def load(self) -> dict[str, pd.DataFrame | None]:
        """Load and return response data.

        Returns:
            Dict with keys:
                "subjects": One row per patient (subject_id, optional treatment_arm)
                "assessments": One row per patient, one column per cycle label,
                    cells in {CR, PR, SD, PD, empty}
                "interventions": Same shape as assessments, cells hold the
                    new-therapy marker or are empty
            Sources without intervention data return None for "interventions",
            and sources without a subjects table return None for "subjects".
        """
        ...
