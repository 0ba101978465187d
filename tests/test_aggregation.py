import numpy as np
import pandas as pd
import pytest

from pancan_immune.data_processing import missing_features, to_long, to_wide


def _long():
    return pd.DataFrame({
        "sample_id": ["S1", "S1", "S1", "S2", "S2", "S3"],
        "feature_name": ["PDCD1", "PDCD1", "CTLA4", "PDCD1", "CTLA4", "PDCD1"],
        "value": [2.0, 4.0, 1.0, 5.0, 3.0, 6.0],
    })


def test_duplicate_replicates_are_averaged():
    wide = to_wide(_long())
    assert wide.loc["S1", "PDCD1"] == 3.0
    assert wide.loc["S2", "PDCD1"] == 5.0


def test_columns_sorted_and_samples_in_first_appearance_order():
    wide = to_wide(_long())
    assert list(wide.columns) == ["CTLA4", "PDCD1"]
    assert list(wide.index) == ["S1", "S2", "S3"]
    assert wide.index.name == "sample_id"


def test_explicit_feature_order():
    long = pd.concat([_long(), pd.DataFrame({
        "sample_id": ["S1"], "feature_name": ["LAG3"], "value": [0.5]
    })], ignore_index=True)
    wide = to_wide(long, feature_order=["PDCD1", "TIGIT"])
    assert list(wide.columns) == ["PDCD1", "CTLA4", "LAG3"]


def test_non_strict_keeps_feature_with_one_null():
    wide = to_wide(_long())
    assert "CTLA4" in wide.columns
    assert wide["CTLA4"].isna().sum() == 1
    assert np.isnan(wide.loc["S3", "CTLA4"])


def test_strict_drops_feature_with_any_null():
    wide = to_wide(_long(), strict=True)
    assert list(wide.columns) == ["PDCD1"]
    assert len(wide) == 3


def test_round_trip_wide_long_wide():
    wide = pd.DataFrame(
        {"CD274": [1.0, np.nan, 3.0], "IDO1": [4.0, 5.0, 6.0], "LAG3": [0.0, 0.5, np.nan]},
        index=pd.Index(["TCGA-B", "TCGA-A", "TCGA-C"], name="sample_id"),
    )
    long = to_long(wide)
    assert list(long.columns) == ["sample_id", "feature_name", "value"]
    assert len(long) == 9
    pd.testing.assert_frame_equal(to_wide(long), wide)


def test_round_trip_keeps_unsorted_columns_with_feature_order():
    wide = pd.DataFrame(
        {"LAG3": [1, 2], "CD274": [3, np.nan], "IDO1": [5, 6]},
        index=pd.Index(["TCGA-A", "TCGA-B"], name="sample_id"),
    )
    long = to_long(wide)
    assert list(to_wide(long).columns) == ["CD274", "IDO1", "LAG3"]
    rebuilt = to_wide(long, feature_order=list(wide.columns))
    pd.testing.assert_frame_equal(rebuilt, wide.astype(float))


def test_custom_column_names():
    long = _long().rename(columns={"sample_id": "vial_id", "feature_name": "gene", "value": "tpm"})
    wide = to_wide(long, sample_col="vial_id", feature_col="gene", value_col="tpm")
    assert wide.index.name == "vial_id"
    back = to_long(wide, sample_col="vial_id", feature_col="gene", value_col="tpm")
    assert list(back.columns) == ["vial_id", "gene", "tpm"]


def test_null_keys_are_dropped():
    long = pd.DataFrame({
        "sample_id": ["S1", None, "S2"],
        "feature_name": ["PDCD1", "PDCD1", None],
        "value": [1.0, 2.0, 3.0],
    })
    wide = to_wide(long)
    assert list(wide.index) == ["S1"]
    assert list(wide.columns) == ["PDCD1"]


def test_missing_required_column():
    with pytest.raises(KeyError):
        to_wide(_long().drop(columns=["value"]))


def test_input_is_not_mutated():
    long = _long()
    before = long.copy()
    to_wide(long, strict=True)
    pd.testing.assert_frame_equal(long, before)


def test_missing_features():
    wide = to_wide(_long())
    assert missing_features(wide) == ["CTLA4"]
