import pytest
import logging
import numpy as np
import pandas as pd
from unittest.mock import MagicMock

from modules.dataset_partitioner import DatasetPartitioner, is_signal_label, split_counts
from modules.record_source import RecordSource
from utils.exceptions import ConfigurationError, ResourceError


@pytest.fixture
def mock_logger():
    return MagicMock(spec=logging.Logger)


def make_source(n, offset=0.0, name="sample"):
    df = pd.DataFrame({
        'x': np.arange(n, dtype=float) + offset,
        'y': np.linspace(0.0, 1.0, n),
        'unused': np.zeros(n),
    })
    return RecordSource.from_frame(df, description=name)


@pytest.fixture
def partitioner(tmp_path, mock_logger):
    return DatasetPartitioner(['x', 'y'], tmp_path / "partitions", mock_logger, temp_dir=tmp_path / "tmp")


@pytest.mark.parametrize("n, f, expected", [
    (100, 0.8, (80, 20)),
    (150, 0.8, (120, 30)),
    (5, 0.5, (3, 2)),       # 2.5 rounds away from zero
    (0, 0.8, (0, 0)),
    (7, 1.0, (7, 0)),
    (1, 0.49999999999999994, (0, 1)),  # just below a half stays down
    (3, 0.5, (2, 1)),
])
def test_split_counts(n, f, expected):
    assert split_counts(n, f) == expected


def test_signal_label_rule():
    assert is_signal_label("nue_signal")
    assert is_signal_label("signal")
    assert not is_signal_label("Signal")
    assert not is_signal_label("bnb_overlay")


def test_empty_keep_list_rejected(tmp_path, mock_logger):
    with pytest.raises(ConfigurationError):
        DatasetPartitioner([], tmp_path, mock_logger)


def test_weight_column_appended(partitioner):
    assert partitioner.keep_columns == ['x', 'y', 'sample_weight']


def test_end_to_end_split(partitioner, tmp_path):
    sources = [
        make_source(100, name="sig_a"),
        make_source(50, offset=500.0, name="sig_b"),
        make_source(200, offset=1000.0, name="bkg"),
    ]
    files = partitioner.partition(sources, ["nue_signal", "nue_signal_dirt", "bnb_overlay"],
                                  [0.5, 0.5, 2.0], 0.8, "run1")

    train_sig = pd.read_parquet(files.train_signal)
    test_sig = pd.read_parquet(files.test_signal)
    train_bkg = pd.read_parquet(files.train_background)
    test_bkg = pd.read_parquet(files.test_background)

    assert (len(train_sig), len(test_sig), len(train_bkg), len(test_bkg)) == (120, 30, 160, 40)
    assert files.counts == {'train_signal': 120, 'test_signal': 30, 'train_background': 160, 'test_background': 40}

    # Contiguous, order-preserving split: 80 + 40 train, 20 + 10 test.
    assert train_sig['x'].tolist() == list(np.arange(80, dtype=float)) + list(np.arange(40, dtype=float) + 500.0)
    assert test_sig['x'].tolist() == list(np.arange(80, 100, dtype=float)) + list(np.arange(40, 50, dtype=float) + 500.0)
    assert test_bkg['x'].iloc[-1] == 1199.0

    assert set(train_sig.columns) == {'x', 'y', 'sample_weight'}
    assert (train_sig['sample_weight'] == 0.5).all()
    assert (test_bkg['sample_weight'] == 2.0).all()

    assert files.train_signal.name == "bdt_train_signal.parquet"
    assert files.test_background.name == "bdt_test_bkg.parquet"
    # Temp files are gone after the merge.
    assert list((tmp_path / "tmp").glob("run1_*")) == []


def test_samples_of_one_class_are_concatenated(partitioner):
    sources = [make_source(10), make_source(20, offset=100.0), make_source(10, offset=500.0)]
    files = partitioner.partition(sources, ["signal_a", "signal_b", "bkg"], [1.0, 1.0, 1.0], 0.5, "run2")

    train_sig = pd.read_parquet(files.train_signal)
    assert len(train_sig) == 15
    assert train_sig['x'].tolist()[:5] == [0.0, 1.0, 2.0, 3.0, 4.0]
    assert train_sig['x'].tolist()[5:] == list(np.arange(10, dtype=float) + 100.0)


def test_rerun_is_idempotent(partitioner):
    args = ([make_source(33), make_source(17)], ["signal", "bkg"], [1.0, 1.0], 0.7)
    first = partitioner.partition(*args, run_id="a")
    second = partitioner.partition(*args, run_id="b")
    assert first.counts == second.counts
    assert len(pd.read_parquet(second.train_signal)) == first.counts['train_signal']


@pytest.mark.parametrize("labels, weights", [
    (["signal"], [1.0, 1.0]),
    (["signal", "bkg"], [1.0]),
])
def test_length_mismatch_writes_nothing(partitioner, tmp_path, labels, weights):
    with pytest.raises(ConfigurationError, match="Mismatch"):
        partitioner.partition([make_source(5), make_source(5)], labels, weights, 0.8, "run3")
    assert not (tmp_path / "partitions").exists()
    assert not (tmp_path / "tmp").exists()


@pytest.mark.parametrize("fraction", [0.0, -0.1, 1.5])
def test_bad_fraction_rejected(partitioner, fraction):
    with pytest.raises(ConfigurationError):
        partitioner.partition([make_source(5)], ["signal"], [1.0], fraction, "run4")


def test_missing_run_id_rejected(partitioner):
    with pytest.raises(ConfigurationError):
        partitioner.partition([make_source(5)], ["signal"], [1.0], 0.5, "")


def test_class_without_samples_gets_empty_file(partitioner, mock_logger):
    files = partitioner.partition([make_source(10)], ["signal"], [1.0], 0.8, "run5")

    train_bkg = pd.read_parquet(files.train_background)
    assert len(train_bkg) == 0
    assert list(train_bkg.columns) == ['x', 'y', 'sample_weight']
    assert files.counts['train_background'] == 0
    mock_logger.warning.assert_called()


def test_full_train_fraction_leaves_empty_test(partitioner):
    files = partitioner.partition([make_source(10), make_source(4)], ["signal", "bkg"], [1.0, 1.0], 1.0, "run6")
    assert files.counts['test_signal'] == 0
    assert files.counts['train_background'] == 4
    assert len(pd.read_parquet(files.test_signal)) == 0


def test_merge_promotes_int_to_float(tmp_path, mock_logger):
    partitioner = DatasetPartitioner(['x'], tmp_path / "partitions", mock_logger, temp_dir=tmp_path / "tmp")
    ints = RecordSource.from_frame(pd.DataFrame({'x': np.arange(10)}))
    floats = RecordSource.from_frame(pd.DataFrame({'x': np.arange(10) + 0.5}))
    files = partitioner.partition([ints, floats], ["signal_a", "signal_b"], [1.0, 1.0], 0.5, "run7")

    train_sig = pd.read_parquet(files.train_signal)
    assert train_sig['x'].tolist() == [0.0, 1.0, 2.0, 3.0, 4.0, 0.5, 1.5, 2.5, 3.5, 4.5]
    assert list((tmp_path / "tmp").glob("run7_*")) == []


def test_merge_incompatible_types(tmp_path, mock_logger):
    partitioner = DatasetPartitioner(['x'], tmp_path / "partitions", mock_logger, temp_dir=tmp_path / "tmp")
    numbers = RecordSource.from_frame(pd.DataFrame({'x': np.arange(4)}))
    words = RecordSource.from_frame(pd.DataFrame({'x': ["a", "b", "c", "d"]}))
    with pytest.raises(ResourceError, match="Cannot merge"):
        partitioner.partition([numbers, words], ["signal_a", "signal_b"], [1.0, 1.0], 0.5, "run8")
    assert list((tmp_path / "tmp").glob("run8_*")) == []
