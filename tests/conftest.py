"""Shared fixtures for oncoendpoints tests."""

import pytest
from pathlib import Path

import pandas as pd

from oncoendpoints.utils.config import StudyConfig
from oncoendpoints.ingest.synthetic import SyntheticSource
from oncoendpoints.harmonize.harmonizer import Harmonizer
from oncoendpoints.endpoints.derive import EndpointDeriver


BASE_DIR = Path(__file__).resolve().parent.parent


@pytest.fixture(scope="session")
def study_config():
    return StudyConfig.load(BASE_DIR / "configs" / "study_synthetic.yaml")


@pytest.fixture(scope="session")
def raw_data(study_config):
    source = SyntheticSource(study_config)
    return source.load()


@pytest.fixture(scope="session")
def dataset(study_config, raw_data):
    harmonizer = Harmonizer(study_config)
    return harmonizer.harmonize(raw_data)


@pytest.fixture(scope="session")
def derivation(study_config, dataset):
    return EndpointDeriver(study_config).derive(dataset)


@pytest.fixture(scope="session")
def endpoints(derivation):
    return derivation.to_frame()


@pytest.fixture
def table_config():
    return StudyConfig.from_dict({
        "study": {"id": "UNIT", "name": "Unit test study", "source": "table"},
    })


@pytest.fixture
def build_dataset(table_config):
    """Harmonize small hand-written tables.

    assessments: {subject_id: [code per cycle, None for missing]}
    anp: {subject_id: cycle where new therapy starts}
    """
    def _build(assessments: dict, anp: dict | None = None, config=None):
        config = config or table_config
        n_cycles = max(len(v) for v in assessments.values())
        labels = [f"C{c}" for c in range(1, n_cycles + 1)]
        rows = [
            {"subject_id": sid, **dict(zip(labels, seq))}
            for sid, seq in assessments.items()
        ]
        raw = {
            "subjects": None,
            "assessments": pd.DataFrame(rows).reindex(columns=["subject_id"] + labels),
            "interventions": None,
        }
        if anp is not None:
            raw["interventions"] = pd.DataFrame([
                {"subject_id": sid, f"C{cycle}": "ANP"} for sid, cycle in anp.items()
            ])
        return Harmonizer(config).harmonize(raw)

    return _build
