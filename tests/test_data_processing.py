import sys
import pandas as pd
import pytest

from pancan_immune.data_processing import (
    build_exclusion_set,
    filter_excluded,
    load_table_with_logging,
)
from pancan_immune.data_processing.exclusion import parse_flag
from pancan_immune.data_processing.utils import create_barcode_map, load_csv, save_results


def test_create_barcode_map_basic(tmp_path):
    df = pd.DataFrame({
        "aliquot_barcode": ["TCGA-02-0001-01C-01D-0182-01", "TCGA-02-0003-01A-01D-0182-01"],
        "platform": ["RNASeqV2", "RNASeqV2"]
    })
    file = tmp_path / "samples.tsv"
    df.to_csv(file, sep="\t", index=False)
    mapping = create_barcode_map(str(file))
    assert mapping == {
        "TCGA-02-0001-01C-01D-0182-01": ("TCGA-02-0001-01C", "TCGA-02-0001-01C-01D"),
        "TCGA-02-0003-01A-01D-0182-01": ("TCGA-02-0003-01A", "TCGA-02-0003-01A-01D"),
    }


def test_create_barcode_map_dotted_ids(tmp_path):
    df = pd.DataFrame({"SampleBarcode": ["TCGA.02.0001.01C.01D.0182.01"]})
    file = tmp_path / "samples.csv"
    df.to_csv(file, index=False)
    mapping = create_barcode_map(str(file))
    assert list(mapping) == ["TCGA-02-0001-01C-01D-0182-01"]


def test_cli_harness(tmp_path, capsys, monkeypatch):
    df = pd.DataFrame({"sample_id": ["TCGA-02-0001-01C-01D-0182-01"]})
    file = tmp_path / "samples.tsv"
    df.to_csv(file, sep="\t", index=False)
    monkeypatch.setattr(sys, 'argv', [
        'utils.py', str(file)
    ])
    from pancan_immune.data_processing.utils import main
    main()
    captured = capsys.readouterr()
    assert "TCGA-02-0001-01C-01D-0182-01" in captured.out
    assert "TCGA-02-0001-01C\t" in captured.out


def test_load_csv_encoding(tmp_path):
    data = "\ufeffcol1,col2\n1,2\n"
    file = tmp_path / "bom.csv"
    file.write_text(data, encoding="utf-8")
    df = load_csv(str(file))
    assert list(df.columns) == ["col1", "col2"]
    assert df.loc[0, "col1"] == 1


def test_load_csv_tab_separated(tmp_path):
    file = tmp_path / "table.tsv"
    file.write_text("a\tb\nx\t2\n", encoding="utf-8")
    df = load_csv(str(file))
    assert list(df.columns) == ["a", "b"]


def test_load_table_with_logging_missing_columns(tmp_path):
    file = tmp_path / "table.tsv"
    file.write_text("sample_id\tvalue\nS1\t1\n", encoding="utf-8")
    with pytest.raises(ValueError, match="feature_name"):
        load_table_with_logging(str(file), ["sample_id", "feature_name", "value"])


def test_save_results_creates_directory(tmp_path):
    out_dir = tmp_path / "nested" / "out"
    path = save_results(pd.DataFrame({"a": [1]}), "a.csv", str(out_dir))
    assert pd.read_csv(path).loc[0, "a"] == 1


@pytest.mark.parametrize("value,expected", [
    (True, True), (False, False), (1, True), (0, False),
    ("True", True), ("false", False), ("YES", True), (" no ", False),
    (None, False), (float("nan"), False),
])
def test_parse_flag(value, expected):
    assert parse_flag(value) is expected


def test_parse_flag_rejects_unknown_string():
    with pytest.raises(ValueError):
        parse_flag("maybe")


def _qc_table():
    return pd.DataFrame({
        "aliquot_barcode": [
            "TCGA-02-0001-01C-01D-0182-01",
            "TCGA-02-0003-01A-01D-0182-01",
            "TCGA-02-0004-01A-01D-0182-01",
            "TCGA.02.0005.01A.01D.0182.01",
        ],
        "Do_not_use": ["True", "False", "False", "False"],
        "AWG_excluded_because_of_pathology": ["False", "False", "True", None],
    })


def test_build_exclusion_set():
    exclusion = build_exclusion_set(_qc_table())
    assert exclusion == frozenset({
        "TCGA-02-0001-01C-01D-0182-01",
        "TCGA-02-0004-01A-01D-0182-01",
    })


def test_build_exclusion_set_missing_column():
    qc = _qc_table().drop(columns=["Do_not_use"])
    with pytest.raises(KeyError):
        build_exclusion_set(qc)


def test_filter_excluded_returns_new_table():
    exclusion = build_exclusion_set(_qc_table())
    table = pd.DataFrame({
        "sample_id": [
            "TCGA.02.0001.01C.01D.0182.01",
            "TCGA-02-0003-01A-01D-0182-01",
            "TCGA-02-0004-01A-01D-0182-01",
        ],
        "value": [1.0, 2.0, 3.0],
    })
    filtered = filter_excluded(table, exclusion, "sample_id")
    assert filtered["sample_id"].tolist() == ["TCGA-02-0003-01A-01D-0182-01"]
    assert len(table) == 3
