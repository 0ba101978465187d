import pandas as pd
import pytest

from pancan_immune.data_processing import BarcodeScheme, build_matched_cohort, match_samples
from pancan_immune.errors import UnmatchedJoin


def _expression():
    return pd.DataFrame({
        "sample_id": [
            "TCGA-02-0001-01C-01D-0182-01",
            "TCGA-02-0001-01C-02D-0183-01",
            "TCGA-02-0003-01A-01D-0182-01",
        ],
        "feature_name": ["CD274", "CD274", "CD274"],
        "value": [5.0, 7.0, 1.0],
    })


def _subtypes():
    return pd.DataFrame({
        "sample_id": [
            "TCGA-02-0001-01C-01D-0190-07",
            "TCGA-02-0009-01A-01D-0190-07",
        ],
        "subtype": ["C3", "C1"],
    })


def test_match_requires_equal_portion():
    result = match_samples(_expression(), _subtypes())
    assert result.pair_keys() == {
        ("TCGA-02-0001-01C-01D-0182-01", "TCGA-02-0001-01C-01D-0190-07")
    }
    assert result.pairs.loc[0, "value"] == 5.0
    assert result.pairs.loc[0, "subtype"] == "C3"
    assert list(result.pairs.columns[:2]) == ["vial_id", "portion_id"]


def test_portion_mismatches_are_reported():
    result = match_samples(_expression(), _subtypes())
    mismatches = result.portion_mismatches
    assert len(mismatches) == 1
    assert mismatches.loc[0, "barcode_a"] == "TCGA-02-0001-01C-02D-0183-01"
    assert mismatches.loc[0, "portion_id_a"] == "TCGA-02-0001-01C-02D"
    assert mismatches.loc[0, "portion_id_b"] == "TCGA-02-0001-01C-01D"


def test_unmatched_vials_are_counted_not_fatal():
    result = match_samples(_expression(), _subtypes())
    assert result.unmatched_a == {"TCGA-02-0003-01A"}
    assert result.unmatched_b == {"TCGA-02-0009-01A"}
    assert result.summary() == {
        "pairs": 1, "portion_mismatches": 1, "unmatched_a": 1, "unmatched_b": 1
    }
    with pytest.raises(UnmatchedJoin):
        result.raise_for_unmatched()


def test_match_is_symmetric():
    forward = match_samples(_expression(), _subtypes())
    backward = match_samples(_subtypes(), _expression())
    assert forward.pair_keys() == {(b, a) for a, b in backward.pair_keys()}
    assert len(forward.portion_mismatches) == len(backward.portion_mismatches)


def test_duplicate_plates_are_not_deduplicated():
    expression = pd.DataFrame({
        "barcode": ["TCGA-02-0001-01C-01D-0182-01", "TCGA-02-0001-01C-01D-0182-01"],
        "value": [2.0, 4.0],
    })
    result = match_samples(expression, _subtypes(), barcode_col_a="barcode")
    assert len(result.pairs) == 2
    assert result.barcode_cols == ("barcode", "sample_id")
    assert sorted(result.pairs["value"]) == [2.0, 4.0]


def test_end_to_end_shared_vial_different_portion():
    scheme = BarcodeScheme(trailing_segments=1, portion_segments=3, min_segments=3)
    expression = pd.DataFrame({
        "sample_id": ["vial-001-A", "vial-001-B"],
        "feature_name": ["geneX", "geneX"],
        "value": [5.0, 7.0],
    })
    subtype = pd.DataFrame({"sample_id": ["vial-001-A"], "subtype": ["C3"]})
    result = match_samples(expression, subtype, scheme=scheme)
    assert len(result.pairs) == 1
    assert result.pairs.loc[0, "sample_id_a"] == "vial-001-A"
    assert result.pairs.loc[0, "value"] == 5.0
    assert result.portion_mismatches["barcode_a"].tolist() == ["vial-001-B"]


def test_build_matched_cohort_three_tables():
    leukocyte = pd.DataFrame({
        "SampleID": ["TCGA-02-0001-01C-01D-0200-01", "TCGA-02-0003-01A-01D-0200-01"],
        "leukocyte_fraction": [0.4, 0.1],
    })
    cohort, reports = build_matched_cohort(
        {"expression": _expression(), "subtype": _subtypes(), "leukocyte": leukocyte},
        {"expression": "sample_id", "subtype": "sample_id", "leukocyte": "SampleID"},
    )
    assert len(cohort) == 1
    row = cohort.iloc[0]
    assert row["expression_barcode"] == "TCGA-02-0001-01C-01D-0182-01"
    assert row["subtype_barcode"] == "TCGA-02-0001-01C-01D-0190-07"
    assert row["leukocyte_barcode"] == "TCGA-02-0001-01C-01D-0200-01"
    assert row["leukocyte_fraction"] == pytest.approx(0.4)
    assert row["subtype"] == "C3"
    assert set(reports) == {"subtype", "leukocyte"}
    assert len(reports["subtype"].portion_mismatches) == 1


def test_build_matched_cohort_needs_two_tables():
    with pytest.raises(ValueError):
        build_matched_cohort({"expression": _expression()}, "sample_id")
