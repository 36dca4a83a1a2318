import pytest
import numpy as np
import pandas as pd
from pathlib import Path

from modules.record_source import RecordSource
from modules.record_source.record_source import translate_expression, resolve_table_path
from utils.exceptions import ConfigurationError, ResourceError


@pytest.fixture
def sample_frame():
    return pd.DataFrame({
        'n_pfps': [0, 1, 2, 3, 4],
        'score': [0.1, 0.5, 0.9, 0.2, 0.7],
        'label': ['a', 'b', 'c', 'd', 'e'],
    })


@pytest.fixture
def sample_file(tmp_path, sample_frame):
    path = tmp_path / "sample.parquet"
    sample_frame.to_parquet(path, index=False)
    return path


@pytest.mark.parametrize("raw, expected", [
    ("a > 1 && b < 2", "a > 1  and  b < 2"),
    ("a > 1 || !flag", "a > 1  or   not flag"),
    ("a != 3", "a != 3"),
])
def test_translate_expression(raw, expected):
    assert translate_expression(raw) == expected


def test_open_is_lazy(tmp_path):
    source = RecordSource.open(tmp_path / "missing.parquet")
    with pytest.raises(ResourceError, match="Cannot open file"):
        source.count()


def test_open_and_count(sample_file):
    source = RecordSource.open(sample_file, "nuselection/NeutrinoSelectionFilter")
    assert source.count() == 5
    assert source.columns == ['n_pfps', 'score', 'label']


def test_dataset_directory_with_table(tmp_path, sample_frame):
    table_dir = tmp_path / "dataset" / "nuselection"
    table_dir.mkdir(parents=True)
    sample_frame.to_parquet(table_dir / "NeutrinoSelectionFilter.parquet", index=False)

    source = RecordSource.open(tmp_path / "dataset", "nuselection/NeutrinoSelectionFilter")
    assert source.count() == 5

    with pytest.raises(ResourceError, match="Cannot find tree"):
        resolve_table_path(tmp_path / "dataset", "other")
    with pytest.raises(ResourceError, match="Cannot find tree"):
        resolve_table_path(tmp_path / "dataset")


def test_csv_supported(tmp_path, sample_frame):
    path = tmp_path / "sample.csv"
    sample_frame.to_csv(path, index=False)
    assert RecordSource.open(path).count() == 5


def test_unsupported_extension(tmp_path):
    path = tmp_path / "sample.root"
    path.write_text("not a table")
    with pytest.raises(ResourceError):
        RecordSource.open(path).count()


def test_chain(sample_file):
    source = RecordSource.chain([sample_file, sample_file])
    assert source.count() == 10
    assert source.to_frame().index.tolist() == list(range(10))


def test_chain_requires_inputs():
    with pytest.raises(ConfigurationError):
        RecordSource.chain([])


def test_filter_sequence(sample_frame):
    source = RecordSource.from_frame(sample_frame)
    selected = source.filter("n_pfps > 0").filter("score > 0.3 && label != 'e'")
    assert selected.to_frame()['label'].tolist() == ['b', 'c']
    # The parent view is unchanged.
    assert source.count() == 5


def test_filter_unknown_column(sample_frame):
    source = RecordSource.from_frame(sample_frame).filter("missing > 1")
    with pytest.raises(ResourceError):
        source.count()


def test_filter_empty_expression(sample_frame):
    with pytest.raises(ConfigurationError):
        RecordSource.from_frame(sample_frame).filter("   ")


def test_select(sample_frame):
    source = RecordSource.from_frame(sample_frame)
    assert source.select(['score']).columns == ['score']
    with pytest.raises(ResourceError, match="Cannot find column"):
        source.select(['score', 'nope']).to_frame()
    assert source.has_columns(['score', 'nope']) == ['nope']


def test_range(sample_frame):
    source = RecordSource.from_frame(sample_frame)
    assert source.range(1, 3).to_frame()['n_pfps'].tolist() == [1, 2]
    assert source.range(3).count() == 2
    assert source.range(5, 5).count() == 0
    with pytest.raises(ConfigurationError):
        source.range(3, 1)


def test_define(sample_frame):
    source = RecordSource.from_frame(sample_frame)
    weighted = source.define('sample_weight', 0.5).define('double', lambda df: df['n_pfps'] * 2)
    frame = weighted.to_frame()
    assert (frame['sample_weight'] == 0.5).all()
    assert frame['double'].tolist() == [0, 2, 4, 6, 8]

    with pytest.raises(ConfigurationError):
        source.define('score', 1.0).to_frame()


def test_snapshot(tmp_path, sample_frame):
    out = tmp_path / "nested" / "out.parquet"
    RecordSource.from_frame(sample_frame).filter("n_pfps >= 3").snapshot(out, ['n_pfps', 'score'])

    written = pd.read_parquet(out)
    assert written.columns.tolist() == ['n_pfps', 'score']
    assert written['n_pfps'].tolist() == [3, 4]


def test_file_read_once(sample_file, monkeypatch):
    import modules.record_source.record_source as rs
    calls = []
    original = rs.read_dataframe

    def counting(path, columns=None):
        calls.append(path)
        return original(path, columns)

    monkeypatch.setattr(rs, "read_dataframe", counting)
    source = RecordSource.open(sample_file)
    node = source.filter("n_pfps > 0")
    node.count()
    node.filter("n_pfps > 1").count()
    source.count()
    assert len(calls) == 1
