"""Tests for harmonization, table loading and dataset persistence."""

import pandas as pd
import pytest

from oncoendpoints.harmonize.harmonizer import Harmonizer, ResponseDataset
from oncoendpoints.ingest.table_loader import TableSource
from oncoendpoints.utils.errors import ScheduleError


def _raw(assessments, interventions=None, subjects=None):
    return {"assessments": assessments, "interventions": interventions, "subjects": subjects}


def test_codes_normalized(table_config):
    assessments = pd.DataFrame({"subject_id": ["A"], "C1": [" sd "], "C2": ["pr"], "C3": [""]})
    data = Harmonizer(table_config).harmonize(_raw(assessments))
    row = data.assessments.iloc[0]
    assert row["C1"] == "SD"
    assert row["C2"] == "PR"
    assert pd.isna(row["C3"])


def test_unknown_code_rejected(table_config):
    assessments = pd.DataFrame({"subject_id": ["A"], "C1": ["XX"]})
    with pytest.raises(ValueError):
        Harmonizer(table_config).harmonize(_raw(assessments))


def test_missing_subject_column_rejected(table_config):
    with pytest.raises(ValueError):
        Harmonizer(table_config).harmonize(_raw(pd.DataFrame({"C1": ["SD"]})))


def test_duplicate_subject_rejected(table_config):
    assessments = pd.DataFrame({"subject_id": ["A", "A"], "C1": ["SD", "PD"]})
    with pytest.raises(ValueError):
        Harmonizer(table_config).harmonize(_raw(assessments))


def test_malformed_column_is_fatal(table_config):
    assessments = pd.DataFrame({"subject_id": ["A"], "C1": ["SD"], "Week 8": ["PD"]})
    with pytest.raises(ScheduleError):
        Harmonizer(table_config).harmonize(_raw(assessments))


def test_missing_interventions_mean_no_anp(table_config):
    assessments = pd.DataFrame({"subject_id": ["A", "B"], "C1": ["SD", "PR"]})
    data = Harmonizer(table_config).harmonize(_raw(assessments))
    assert not data.interventions["C1"].any()
    assert data.subjects["subject_id"].tolist() == ["A", "B"]


def test_intervention_markers(table_config):
    assessments = pd.DataFrame({"subject_id": ["A", "B", "C"], "C1": ["SD", "SD", "SD"], "C2": ["SD", None, None]})
    interventions = pd.DataFrame({
        "subject_id": ["A", "B", "C"],
        "C2": [None, "anp", 1],
    })
    data = Harmonizer(table_config).harmonize(_raw(assessments, interventions))
    assert data.interventions["C2"].tolist() == [False, True, True]
    assert not data.interventions["C1"].any()


def test_schedule_spans_both_tables(table_config):
    assessments = pd.DataFrame({"subject_id": ["A"], "C1": ["SD"], "C2": ["SD"]})
    interventions = pd.DataFrame({"subject_id": ["A"], "C3": ["ANP"]})
    data = Harmonizer(table_config).harmonize(_raw(assessments, interventions))
    assert data.schedule.labels == ["C1", "C2", "C3"]
    assert pd.isna(data.assessments.loc[0, "C3"])
    assert bool(data.interventions.loc[0, "C3"])


def test_unknown_intervention_value_rejected(table_config):
    assessments = pd.DataFrame({"subject_id": ["A"], "C1": ["SD"]})
    interventions = pd.DataFrame({"subject_id": ["A"], "C1": ["surgery"]})
    with pytest.raises(ValueError):
        Harmonizer(table_config).harmonize(_raw(assessments, interventions))


def test_subjects_table_aligned(table_config):
    assessments = pd.DataFrame({"subject_id": ["A", "B"], "C1": ["SD", "PR"]})
    subjects = pd.DataFrame({"subject_id": ["B", "A"], "treatment_arm": ["treatment", "control"]})
    data = Harmonizer(table_config).harmonize(_raw(assessments, subjects=subjects))
    assert data.subjects["treatment_arm"].tolist() == ["control", "treatment"]


def test_table_source_reads_csv(tmp_path, table_config):
    pd.DataFrame({"subject_id": ["A"], "C1": ["SD"], "C2": ["PD"]}).to_csv(
        tmp_path / "assessments.csv", index=False
    )
    pd.DataFrame({"subject_id": ["A"], "C1": [None], "C2": [None]}).to_csv(
        tmp_path / "interventions.csv", index=False
    )
    source = TableSource(
        table_config,
        assessments=tmp_path / "assessments.csv",
        interventions=tmp_path / "interventions.csv",
    )
    raw = source.load()
    assert raw["subjects"] is None
    data = Harmonizer(table_config).harmonize(raw)
    assert data.assessments.loc[0, "C2"] == "PD"
    assert not data.interventions[["C1", "C2"]].any().any()


def test_table_source_requires_assessments(table_config):
    with pytest.raises(ValueError):
        TableSource(table_config)


def test_parquet_round_trip(tmp_path, dataset, study_config):
    dataset.to_parquet(tmp_path)
    loaded = ResponseDataset.from_parquet(tmp_path, study_config)
    assert loaded.schedule.labels == dataset.schedule.labels
    pd.testing.assert_frame_equal(loaded.assessments, dataset.assessments, check_dtype=False)
    pd.testing.assert_frame_equal(loaded.interventions, dataset.interventions)


def test_summary_reports_cycle_gaps(capsys, table_config):
    assessments = pd.DataFrame({"subject_id": ["A"], "C1": ["SD"], "C3": ["PD"]})
    Harmonizer(table_config).harmonize(_raw(assessments)).summary()
    assert "Non-contiguous cycles: [1, 3]" in capsys.readouterr().out
