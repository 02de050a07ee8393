"""Tests for estimand selection and the analysis datasets it produces."""

import numpy as np
import pandas as pd
import pytest
from lifelines import AalenJohansenFitter, KaplanMeierFitter

from oncoendpoints.endpoints.derive import apply_ttr_substitution, derive_patient, endpoints_to_frame
from oncoendpoints.estimands.strategies import (
    ESTIMANDS,
    Estimand,
    normalize_label,
    select_analysis_data,
    select_estimand,
    to_structured_array,
)
from oncoendpoints.utils.errors import UnsupportedEstimandError


@pytest.fixture
def small_endpoints():
    records = [
        derive_patient("A", ["SD", "PR", "PR", "PD"], [1, 2, 3, 4]),
        derive_patient("B", ["SD", "PR", "PR", "PR"], [1, 2, 3, 4], anp_cycle=4),
        derive_patient("C", ["SD", "PD", None, None], [1, 2, 3, 4]),
        derive_patient("D", ["SD", "SD", None, None], [1, 2, 3, 4], anp_cycle=3),
        derive_patient("E", ["SD", "SD", "SD", "SD"], [1, 2, 3, 4]),
    ]
    return endpoints_to_frame(apply_ttr_substitution(records))


def test_every_estimand_registered():
    assert set(ESTIMANDS) == set(Estimand)


@pytest.mark.parametrize("label, expected", [
    ("conditional DOR, hypothetical", Estimand.CONDITIONAL_DOR_HYPOTHETICAL),
    ("Conditional DOR, treatment-policy", Estimand.CONDITIONAL_DOR_TREATMENT_POLICY),
    ("while-using-therapy competing risks", Estimand.WHILE_USING_THERAPY_COMPETING_RISKS),
    ("TTP_hypothetical", Estimand.TTP_HYPOTHETICAL),
    (Estimand.TTR_COMPETING_RISKS_TREATMENT_POLICY, Estimand.TTR_COMPETING_RISKS_TREATMENT_POLICY),
])
def test_label_lookup(label, expected):
    assert select_estimand(label).estimand is expected


def test_unsupported_estimand():
    with pytest.raises(UnsupportedEstimandError) as exc:
        select_estimand("overall survival, composite")
    assert exc.value.label == "overall survival, composite"
    assert "overall survival, composite" in str(exc.value)


def test_normalize_label():
    assert normalize_label("  Conditional DOR,  hypothetical ") == "conditional-dor-hypothetical"


def test_conditional_dor_population(small_endpoints):
    tp = select_analysis_data(small_endpoints, "conditional-dor-treatment-policy")
    assert tp["subject_id"].tolist() == ["A", "B"]
    assert tp["time"].tolist() == [2.0, 2.0]
    assert tp["event"].tolist() == [1, 0]

    hyp = select_analysis_data(small_endpoints, "conditional-dor-hypothetical")
    assert hyp.set_index("subject_id").loc["B", "time"] == 1.0


def test_ttr_competing_risk_codes(small_endpoints):
    data = select_analysis_data(small_endpoints, "ttr-competing-risks-treatment-policy")
    assert data.set_index("subject_id")["event"].to_dict() == {"A": 1, "B": 1, "C": 2, "D": 0, "E": 0}


def test_substituted_ttr(small_endpoints):
    data = select_analysis_data(small_endpoints, "ttr-substituted-treatment-policy").set_index("subject_id")
    assert data.loc["C", "time"] == 4.0
    assert data.loc["C", "event"] == 0
    assert data.loc["A", "time"] == 2.0
    assert data.loc["A", "event"] == 1


def test_ttp_censored_at_response(small_endpoints):
    data = select_analysis_data(small_endpoints, "ttp-censored-at-response").set_index("subject_id")
    assert data.loc["A", "time"] == 2.0
    assert data.loc["A", "event"] == 0
    assert data.loc["C", "event"] == 1


def test_while_using_therapy(small_endpoints):
    data = select_analysis_data(small_endpoints, "while-using-therapy-competing-risks").set_index("subject_id")
    assert data.loc["C", "event"] == 1
    assert data.loc["C", "time"] == 2.0
    assert data.loc["D", "event"] == 2
    assert data.loc["D", "time"] == 3.0
    assert data.loc["B", "event"] == 2
    assert data.loc["E", "event"] == 0
    assert data.loc["E", "time"] == 4.0


def test_time_unit_conversion(small_endpoints, dataset):
    cycles = select_analysis_data(small_endpoints, "ttp-treatment-policy")
    months = select_analysis_data(small_endpoints, "ttp-treatment-policy", dataset.schedule, "months")
    assert np.allclose(months["time"], cycles["time"] * 28 / (365.25 / 12))
    with pytest.raises(ValueError):
        select_analysis_data(small_endpoints, "ttp-treatment-policy", time_unit="days")


def test_group_column(small_endpoints):
    group = pd.Series({"A": "x", "B": "y", "C": "x", "D": "y", "E": "x"})
    data = select_analysis_data(small_endpoints, "ttp-hypothetical", group=group)
    assert data["group"].tolist() == ["x", "y", "x", "y", "x"]


def test_structured_array(small_endpoints):
    data = select_analysis_data(small_endpoints, "ttp-treatment-policy")
    arr = to_structured_array(data)
    assert arr.dtype.names == ("event", "time")
    assert arr["event"].sum() == 2

    competing = select_analysis_data(small_endpoints, "ttr-competing-risks-treatment-policy")
    with pytest.raises(ValueError):
        to_structured_array(competing)


@pytest.mark.parametrize("label", [
    "ttp-treatment-policy",
    "ttp-hypothetical",
    "ttr-substituted-treatment-policy",
])
def test_analysis_data_feeds_kaplan_meier(endpoints, label):
    data = select_analysis_data(endpoints, label)
    kmf = KaplanMeierFitter()
    kmf.fit(data["time"], event_observed=data["event"])
    surv = kmf.survival_function_.iloc[:, 0]
    assert surv.is_monotonic_decreasing
    assert 0 <= surv.iloc[-1] <= 1


def test_competing_risk_codes_on_cohort(endpoints):
    for label in ("ttr-competing-risks-treatment-policy", "while-using-therapy-competing-risks"):
        data = select_analysis_data(endpoints, label)
        assert set(data["event"].unique()).issubset({0, 1, 2})
        assert data["time"].notna().all()
        assert (data["time"] >= 0).all()


@pytest.mark.parametrize("label", [
    "ttr-competing-risks-treatment-policy",
    "ttr-competing-risks-hypothetical",
    "while-using-therapy-competing-risks",
])
def test_competing_risks_data_feeds_aalen_johansen(endpoints, label):
    data = select_analysis_data(endpoints, label)
    ajf = AalenJohansenFitter(seed=0)
    ajf.fit(data["time"], data["event"], event_of_interest=1)
    cif = ajf.cumulative_density_.iloc[:, 0].to_numpy()
    assert np.all(np.diff(cif) >= -1e-12)
    assert cif.min() >= 0
    assert cif.max() <= 1 + 1e-12


def test_structured_array_rejects_competing_estimand():
    data = pd.DataFrame({"subject_id": ["A", "B"], "time": [1.0, 2.0], "event": [1, 0]})
    with pytest.raises(ValueError, match="competing-risks"):
        to_structured_array(data, "ttr-competing-risks-treatment-policy")
    arr = to_structured_array(data, "ttp-treatment-policy")
    assert arr["event"].tolist() == [True, False]


def test_every_estimand_described():
    for spec in ESTIMANDS.values():
        assert spec.description
