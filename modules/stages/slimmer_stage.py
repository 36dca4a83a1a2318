"""
Slimmer stage: chain the raw input files into one source, add fiducial
containment columns, keep only the configured columns and write a single
reduced file. A run-number histogram is saved alongside.
"""
import logging
import numpy as np
import pandas as pd
from typing import Any, Dict, Optional

from modules.base.base_stage import BaseStage
from modules.record_source import RecordSource
from modules.visualization import Plotter
from utils.config_parsing import split_list
from utils.error_handling import handle_stage_errors
from utils.exceptions import ConfigurationError, ResourceError
from utils import constants

# Track start/end points may be empty for slices without a neutrino candidate;
# those rows get extremes far outside any detector volume.
OUT_OF_VOLUME = 9999.0
FIDUCIAL_AXES = ("x", "y", "z")


def _fiducial_extreme(starts: pd.Series, ends: pd.Series, lowest: bool) -> np.ndarray:
    fallback = -OUT_OF_VOLUME if lowest else OUT_OF_VOLUME
    pick = np.min if lowest else np.max
    out = np.empty(len(starts), dtype=float)
    for i, (a, b) in enumerate(zip(starts, ends)):
        a_val = float(pick(a)) if a is not None and len(a) > 0 else fallback
        b_val = float(pick(b)) if b is not None and len(b) > 0 else fallback
        out[i] = min(a_val, b_val) if lowest else max(a_val, b_val)
    return out


def _track_extremes(df: pd.DataFrame, start: str, end: str, lowest: bool, where: str) -> np.ndarray:
    missing = [c for c in (start, end) if c not in df.columns]
    if missing:
        raise ResourceError(f"Cannot find column(s) {missing} in {where}")
    return _fiducial_extreme(df[start], df[end], lowest)


def add_fiducial_columns(source: RecordSource) -> RecordSource:
    """Define min_/max_{x,y,z} from the trk_sce_start/end_*_v vector columns."""
    where = source.description
    for axis in FIDUCIAL_AXES:
        start, end = f"trk_sce_start_{axis}_v", f"trk_sce_end_{axis}_v"
        source = source.define(f"min_{axis}", lambda df, s=start, e=end: _track_extremes(df, s, e, True, where))
        source = source.define(f"max_{axis}", lambda df, s=start, e=end: _track_extremes(df, s, e, False, where))
    return source


class SlimmerStage(BaseStage):
    """Reduces the chained input samples to a single slim file."""

    def __init__(self, config: Dict[str, Any], logger: logging.Logger):
        super().__init__(config, logger)
        cfg = config.get('slimmer', {})
        self.input_files = split_list(cfg.get('input_files'))
        self.keep_columns = split_list(cfg.get('keep_variables'))
        if not self.input_files:
            raise ConfigurationError("[Slimmer] No input files specified!")
        if not self.keep_columns:
            raise ConfigurationError("[Slimmer] No variables to keep specified!")
        self.tree_name = cfg.get('tree_name', constants.DEFAULT_TREE_NAME)
        self.output_file = self.output_dir / cfg.get('output_file', 'slimmed.parquet')
        self.run_column = cfg.get('run_column', 'sub')
        self.compression = cfg.get('compression', 'snappy')
        self.make_plots = cfg.get('make_plots', True)
        self.run_label = config.get('global', {}).get('run_label', 'run_x')
        self.source: Optional[RecordSource] = None

    @property
    def name(self) -> str:
        return "Slimmer"

    def _get_stage_directory_name(self) -> str:
        return constants.SLIMMER_DIR

    def entry_count(self) -> int:
        if self.source is None:
            return constants.UNKNOWN_ENTRY_COUNT
        return self.source.count()

    @handle_stage_errors("Slimmer initialise")
    def initialise(self) -> None:
        self._setup_directories()
        self.logger.info(f"[Slimmer] Chaining {len(self.input_files)} input file(s) into {self.output_file}")
        chain = RecordSource.chain(self.input_files, self.tree_name)
        if chain.count() == 0:
            raise ConfigurationError("[Slimmer] Input chain is empty!")

        self.source = add_fiducial_columns(chain)
        self.source.snapshot(self.output_file, self.keep_columns, compression=self.compression)
        self.logger.info(f"[Slimmer] Wrote {self.source.count()} rows with {len(self.keep_columns)} columns")

        if self.make_plots:
            plotter = Plotter(self.output_dir, self.logger)
            hist = plotter.create_histogram(self.source, "sub_hist", self.run_column,
                                            "run_number", "Count", 50, 0.0, 600.0)
            plotter.save_hist(hist, f"slimmer_{self.run_label}_run_histogram", style="prelim")
