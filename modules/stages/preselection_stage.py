"""
Preselection stage: apply a fixed sequence of cuts to every sample, write one
selected file per sample and draw the data/MC/signal comparison plots.
"""
import logging
from pathlib import Path
from typing import Any, Dict, List

from modules.base.base_stage import BaseStage
from modules.record_source import RecordSource
from modules.visualization import Plotter
from utils.config_parsing import split_list, split_floats, split_cuts
from utils.error_handling import handle_stage_errors
from utils.exceptions import ConfigurationError
from utils import constants

# (short name, column, x label, bins, low, high, first element only)
PRESELECTION_HISTOGRAMS = [
    ("npfps", "n_pfps", "Number of PFParticles", 5, 0.5, 5.5, False),
    ("NeutrinoEnergy2", "NeutrinoEnergy2", "Neutrino Energy [MeV]", 20, 0.0, 500.0, False),
    ("FlashMatchScore", "nu_flashmatch_score", "Flash Match Score", 20, 0.0, 15.0, False),
    ("TopologicalScore", "topological_score", "Topological Score", 30, 0.0, 1.0, False),
    ("ShrPhiv", "shr_phi_v", "Shr Phi [rad]", 20, -3.14, 3.14, True),
    ("ShrFitPzFrac", "shr_pz_v", "Shr Fit Pz Frac", 20, -1.0, 1.0, True),
    ("ShrFitTheta", "shr_theta_v", "Shr Fit Theta [rad]", 20, 0.0, 3.14, True),
]


class PreselectionStage(BaseStage):
    """
    Applies the configured cuts in order, logging per-sample counts before and
    after each one.
    """

    def __init__(self, config: Dict[str, Any], logger: logging.Logger):
        super().__init__(config, logger)
        cfg = config.get('preselection', {})
        self.cuts = split_cuts(cfg.get('cuts'))
        if not self.cuts:
            raise ConfigurationError("[Preselection] No cuts specified!")
        self.keep_columns = split_list(cfg.get('keep_variables'))
        if not self.keep_columns:
            raise ConfigurationError("[Preselection] No variables to keep specified!")

        self.input_files = split_list(cfg.get('input_files'))
        self.labels = split_list(cfg.get('sample_labels'))
        raw_weights = cfg.get('sample_weights')
        self.weights = split_floats(raw_weights) if raw_weights is not None else [1.0] * len(self.input_files)
        if not self.input_files:
            raise ConfigurationError("[Preselection] No input files specified!")
        if len(self.labels) != len(self.input_files) or len(self.weights) != len(self.input_files):
            raise ConfigurationError(
                f"[Preselection] Mismatch in sizes of input vectors: {len(self.input_files)} files, "
                f"{len(self.labels)} labels, {len(self.weights)} weights"
            )

        outputs = split_list(cfg.get('output_files'))
        if outputs and len(outputs) != len(self.input_files):
            raise ConfigurationError("[Preselection] output_files must match input_files in length.")
        self.output_files: List[Path] = (
            [self.output_dir / o for o in outputs] if outputs
            else [self.output_dir / f"{label}.parquet" for label in self.labels]
        )
        self.tree_name = cfg.get('tree_name', constants.DEFAULT_TREE_NAME)
        self.compression = cfg.get('compression', 'snappy')
        self.make_plots = cfg.get('make_plots', True)
        self.sources: List[RecordSource] = []
        self.selected: List[RecordSource] = []

    @property
    def name(self) -> str:
        return "Preselection"

    def _get_stage_directory_name(self) -> str:
        return constants.PRESELECTION_DIR

    def entry_count(self) -> int:
        if not self.sources:
            return constants.UNKNOWN_ENTRY_COUNT
        return sum(s.count() for s in self.sources)

    @handle_stage_errors("Preselection initialise")
    def initialise(self) -> None:
        self._setup_directories()
        self.sources = [RecordSource.open(f, self.tree_name) for f in self.input_files]
        nodes = list(self.sources)

        for cut in self.cuts:
            self.logger.info(f"[Preselection] Cut: {cut}")
            for i, node in enumerate(nodes):
                before = node.count()
                nodes[i] = node.filter(cut)
                after = nodes[i].count()
                self.logger.info(f"    {self.labels[i]} before: {before}")
                self.logger.info(f"    {self.labels[i]} after : {after}")
        self.selected = nodes

        for label, node, out in zip(self.labels, self.selected, self.output_files):
            self.logger.info(f"[Preselection] Writing output for sample: {label} to {out}")
            node.snapshot(out, self.keep_columns, compression=self.compression)

        if self.make_plots:
            self._plot()

    def _plot(self) -> None:
        plotter = Plotter(self.output_dir, self.logger)
        for short, column, x_label, bins, low, high, first_only in PRESELECTION_HISTOGRAMS:
            if any(column not in node.columns for node in self.selected):
                self.logger.debug(f"[Preselection] Skipping histogram of '{column}': not in every sample")
                continue
            hists = [
                plotter.create_histogram(node, f"preselection_hist_{short}_{label}", column,
                                         x_label, "Count", bins, low, high, first_element_only=first_only)
                for label, node in zip(self.labels, self.selected)
            ]
            plotter.full_data_mc_signal_plot(hists, self.labels, f"preselection_full_hist_{short}",
                                             logy=False, weights=self.weights)
