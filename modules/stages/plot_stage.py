"""
Final score plot: logit-transformed BDT score for every sample, drawn as a
data/MC/signal comparison.
"""
import logging
import numpy as np
from typing import Any, Dict

from modules.base.base_stage import BaseStage
from modules.record_source import RecordSource
from modules.visualization import Plotter
from utils.config_parsing import split_list, split_floats
from utils.error_handling import handle_stage_errors
from utils.exceptions import ConfigurationError, ResourceError
from utils import constants

SCORE_EPSILON = 1e-6


def logit(scores) -> np.ndarray:
    """log(s / (1 - s)) with s clamped to [1e-6, 1 - 1e-6]."""
    s = np.clip(np.asarray(scores, dtype=float), SCORE_EPSILON, 1.0 - SCORE_EPSILON)
    return np.log(s / (1.0 - s))


class PlotStage(BaseStage):

    def __init__(self, config: Dict[str, Any], logger: logging.Logger):
        super().__init__(config, logger)
        cfg = config.get('plotter', {})
        self.input_files = split_list(cfg.get('input_files'))
        self.labels = split_list(cfg.get('sample_labels'))
        raw_weights = cfg.get('sample_weights')
        self.weights = split_floats(raw_weights) if raw_weights is not None else [1.0] * len(self.input_files)
        if not self.input_files:
            raise ConfigurationError("[Plotter] No input files specified!")
        if len(self.labels) != len(self.input_files):
            raise ConfigurationError(
                f"[Plotter] {len(self.input_files)} input files but {len(self.labels)} sample labels"
            )
        self.tree_name = cfg.get('tree_name', constants.DEFAULT_TREE_NAME)
        self.bins = int(cfg.get('bins', 11))
        self.low = float(cfg.get('low', -5.0))
        self.high = float(cfg.get('high', 6.0))
        self.logy = cfg.get('logy', False)
        self.basename = cfg.get('basename', 'bdt_score_full_hist')

    @property
    def name(self) -> str:
        return "Plotter"

    def _get_stage_directory_name(self) -> str:
        return constants.PLOTS_DIR

    def entry_count(self) -> int:
        return 1

    @handle_stage_errors("Plotter initialise")
    def initialise(self) -> None:
        self._setup_directories()
        plotter = Plotter(self.output_dir, self.logger)
        hists = []
        for path, label in zip(self.input_files, self.labels):
            self.logger.info(f"[Plotter] Adding input file: {path} ({label})")
            source = RecordSource.open(path, self.tree_name)
            if source.has_columns([constants.BDT_SCORE_COLUMN]):
                raise ResourceError(f"[Plotter] No {constants.BDT_SCORE_COLUMN} column in {path}; run BDTEval first.")
            source = source.define(
                constants.LOGIT_BDT_COLUMN, lambda df: logit(df[constants.BDT_SCORE_COLUMN])
            )
            hists.append(plotter.create_histogram(
                source, f"bdt_score_hist_{label}", constants.LOGIT_BDT_COLUMN,
                "logit(BDT score)", "Count", self.bins, self.low, self.high,
            ))
        plotter.full_data_mc_signal_plot(hists, self.labels, self.basename, logy=self.logy, weights=self.weights)
