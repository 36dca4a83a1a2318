"""
DatasetPartitioner for the BDT training stage.

Every input sample is split on its existing record order: the first
``round(N * train_fraction)`` rows go to training, the rest to testing. The
record order is assumed to be shuffled upstream. Per-sample slices are written
to temporary Parquet files named from an explicit run token, then merged per
class into four role files whose names never change.
"""
import math
import logging
import tempfile
import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from modules.record_source import RecordSource
from utils.exceptions import ConfigurationError, ResourceError
from utils.file_io import remove_files
from utils import constants


def is_signal_label(label: str) -> bool:
    """A sample is signal iff its label contains 'signal' (case-sensitive)."""
    return constants.SIGNAL_LABEL_TOKEN in label


def split_counts(n_entries: int, train_fraction: float) -> tuple:
    """
    Return (n_train, n_test) with n_train = round(N * f), halves rounded away
    from zero, and n_test = N - n_train.
    """
    if n_entries < 0:
        raise ValueError(f"Entry count must be non-negative, got {n_entries}")
    exact = n_entries * train_fraction
    n_train = int(math.floor(exact))
    if exact - n_train >= 0.5:
        n_train += 1
    n_train = min(max(n_train, 0), n_entries)
    return n_train, n_entries - n_train


@dataclass(frozen=True)
class Sample:
    """One labelled input record group."""
    label: str
    source: RecordSource
    weight: float = 1.0

    @property
    def is_signal(self) -> bool:
        return is_signal_label(self.label)


@dataclass(frozen=True)
class ClassPair:
    """Signal and background files for one split."""
    signal: Path
    background: Path


@dataclass(frozen=True)
class PartitionFiles:
    """The four class-aggregated partition files, addressed by role."""
    train_signal: Path
    train_background: Path
    test_signal: Path
    test_background: Path
    counts: Dict[str, int] = field(default_factory=dict, compare=False)

    @property
    def train(self) -> ClassPair:
        return ClassPair(self.train_signal, self.train_background)

    @property
    def test(self) -> ClassPair:
        return ClassPair(self.test_signal, self.test_background)

    def paths(self) -> List[Path]:
        return [self.train_signal, self.train_background, self.test_signal, self.test_background]


class DatasetPartitioner:
    """
    Splits labelled samples into per-class train/test partition files.
    """

    def __init__(self, keep_columns: Sequence[str], output_dir: Path, logger: logging.Logger,
                 temp_dir: Optional[Path] = None, compression: Optional[str] = "snappy"):
        keep = [c for c in keep_columns if c]
        if not keep:
            raise ConfigurationError("No variables to keep specified for partitioning!")
        if constants.SAMPLE_WEIGHT_COLUMN not in keep:
            keep.append(constants.SAMPLE_WEIGHT_COLUMN)
        self.keep_columns = keep
        self.output_dir = Path(output_dir)
        self.temp_dir = Path(temp_dir) if temp_dir else Path(tempfile.gettempdir())
        self.logger = logger
        self.compression = compression

    def role_paths(self) -> PartitionFiles:
        return PartitionFiles(
            train_signal=self.output_dir / constants.TRAIN_SIGNAL_FILE,
            train_background=self.output_dir / constants.TRAIN_BKG_FILE,
            test_signal=self.output_dir / constants.TEST_SIGNAL_FILE,
            test_background=self.output_dir / constants.TEST_BKG_FILE,
        )

    def partition(self, sources: Sequence[RecordSource], labels: Sequence[str],
                  weights: Sequence[float], train_fraction: float, run_id: str) -> PartitionFiles:
        """
        Build the four role files from parallel lists of sources, labels and weights.

        Args:
            sources: One record source per sample.
            labels: Free-text sample labels ('signal' substring marks signal).
            weights: Per-sample normalisation weights.
            train_fraction: Fraction of each sample used for training, in (0, 1].
            run_id: Run-scoped token used to name temporary files.

        Raises:
            ConfigurationError: On length mismatch or an invalid fraction,
                before anything is written.
        """
        if len(sources) != len(labels) or len(sources) != len(weights):
            raise ConfigurationError(
                f"Mismatch in sizes of input vectors: {len(sources)} sources, "
                f"{len(labels)} labels, {len(weights)} weights"
            )
        if not (0.0 < train_fraction <= 1.0):
            raise ConfigurationError(f"train_fraction must be in (0, 1], got {train_fraction}")
        if not run_id:
            raise ConfigurationError("A run id is required to name temporary partition files.")

        samples = [Sample(label=l, source=s, weight=float(w)) for s, l, w in zip(sources, labels, weights)]
        signal = [s for s in samples if s.is_signal]
        background = [s for s in samples if not s.is_signal]
        self.logger.info(
            f"Partitioning {len(samples)} samples ({len(signal)} signal, {len(background)} background), "
            f"train fraction {train_fraction}"
        )

        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.temp_dir.mkdir(parents=True, exist_ok=True)

        tmp_train_sig, tmp_test_sig = self._write_temp_slices(signal, train_fraction, run_id, "sig")
        tmp_train_bkg, tmp_test_bkg = self._write_temp_slices(background, train_fraction, run_id, "bkg")

        roles = self.role_paths()
        counts = {
            'train_signal': self._merge(tmp_train_sig, roles.train_signal),
            'test_signal': self._merge(tmp_test_sig, roles.test_signal),
            'train_background': self._merge(tmp_train_bkg, roles.train_background),
            'test_background': self._merge(tmp_test_bkg, roles.test_background),
        }
        self.logger.info(f"Partition row counts: {counts}")
        return PartitionFiles(
            train_signal=roles.train_signal,
            train_background=roles.train_background,
            test_signal=roles.test_signal,
            test_background=roles.test_background,
            counts=counts,
        )

    def _write_temp_slices(self, samples: List[Sample], train_fraction: float,
                           run_id: str, tag: str) -> tuple:
        tmp_train, tmp_test = [], []
        for i, sample in enumerate(samples):
            weighted = sample.source.define(constants.SAMPLE_WEIGHT_COLUMN, sample.weight)
            n_entries = weighted.count()
            n_train, n_test = split_counts(n_entries, train_fraction)
            self.logger.info(
                f"Sample {tag} {i} ({sample.label}): total entries = {n_entries}, "
                f"train = {n_train}, test = {n_test}"
            )

            train_name = self.temp_dir / f"{run_id}_{tag}_train_{i}.parquet"
            test_name = self.temp_dir / f"{run_id}_{tag}_test_{i}.parquet"
            weighted.range(0, n_train).snapshot(train_name, self.keep_columns, compression=self.compression)
            weighted.range(n_train, n_entries).snapshot(test_name, self.keep_columns, compression=self.compression)
            tmp_train.append(train_name)
            tmp_test.append(test_name)
        return tmp_train, tmp_test

    def _merge(self, inputs: List[Path], output: Path) -> int:
        """
        Concatenate temp files into ``output`` and delete them. Returns the
        merged row count.
        """
        if not inputs:
            self.logger.warning(f"No samples for {output.name}; writing an empty partition.")
            empty = pd.DataFrame({c: pd.Series(dtype="float64") for c in self.keep_columns})
            empty.to_parquet(output, index=False, compression=self.compression)
            return 0

        try:
            tables = [pq.read_table(p) for p in inputs]
            # Empty slices may carry null-typed columns; only rows decide the types.
            filled = [t for t in tables if t.num_rows > 0] or tables[:1]
            merged = pa.concat_tables(filled, promote_options="permissive")
            # Per-file pandas metadata may describe pre-promotion dtypes.
            merged = merged.replace_schema_metadata(None)
        except (pa.ArrowInvalid, pa.ArrowTypeError) as e:
            raise ResourceError(f"Cannot merge partition slices into {output.name}: {e}") from e
        finally:
            remove_files(inputs, self.logger)

        pq.write_table(merged, output, compression=self.compression)
        return merged.num_rows
