"""
Histogram helpers for the analysis stages.

Histograms are filled from record sources with numpy and drawn with
matplotlib; every figure is written as ``<basename>.png`` and ``.pdf``.
"""
import matplotlib
matplotlib.use("Agg")  # Ensure non-interactive backend
import matplotlib.pyplot as plt
import seaborn as sns
import numpy as np
import pandas as pd
import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import List, Optional, Sequence

from modules.record_source import RecordSource
from utils.exceptions import ResourceError
from utils import constants


@dataclass(frozen=True)
class Histogram:
    """Fixed-binning 1D histogram."""
    name: str
    counts: np.ndarray
    edges: np.ndarray
    x_label: str = ""
    y_label: str = "Count"
    entries: int = 0

    @property
    def centers(self) -> np.ndarray:
        return 0.5 * (self.edges[:-1] + self.edges[1:])

    def scaled(self, weight: float) -> 'Histogram':
        return replace(self, counts=self.counts * weight)


def column_values(frame: pd.DataFrame, column: str, first_element_only: bool = False) -> np.ndarray:
    """
    Flatten a column to a 1D float array. Vector-valued cells contribute every
    element, or only their first one when ``first_element_only`` is set.
    """
    if column not in frame.columns:
        raise ResourceError(f"Cannot find column '{column}' for histogram")
    series = frame[column]
    if series.dtype != object:
        values = series.to_numpy(dtype=float)
    else:
        out = []
        for cell in series:
            if cell is None:
                continue
            if np.ndim(cell) == 0:
                out.append(float(cell))
            elif first_element_only:
                if len(cell) > 0:
                    out.append(float(cell[0]))
            else:
                out.extend(float(v) for v in cell)
        values = np.asarray(out, dtype=float)
    return values[~np.isnan(values)]


class Plotter:
    """
    Draws and saves histograms into one output directory.
    """

    PALETTE = ["#e69f00", "#5664e9", "#009e73", "orange", "violet", "cyan", "magenta", "gold"]

    def __init__(self, output_dir: Path, logger: logging.Logger, formats: Sequence[str] = ("png", "pdf")):
        self.output_dir = Path(output_dir)
        self.logger = logger
        self.formats = tuple(formats)

    @staticmethod
    def create_histogram(source: RecordSource, name: str, column: str, x_label: str, y_label: str,
                         n_bins: int, low: float, high: float, first_element_only: bool = False) -> Histogram:
        """Fill a histogram from one column of a record source."""
        values = column_values(source.to_frame(), column, first_element_only)
        counts, edges = np.histogram(values, bins=n_bins, range=(low, high))
        return Histogram(name=name, counts=counts.astype(float), edges=edges,
                         x_label=x_label, y_label=y_label, entries=int(len(values)))

    @staticmethod
    def apply_style(style: str) -> None:
        if style == "mdh_nice":
            sns.set_theme(style="ticks", font="serif")
        elif style == "prelim":
            sns.set_theme(style="ticks")
        else:
            sns.set_theme(style="whitegrid")

    def _save(self, fig, basename: str) -> List[Path]:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        paths = []
        for fmt in self.formats:
            path = self.output_dir / f"{basename}.{fmt}"
            fig.savefig(path)
            paths.append(path)
        plt.close(fig)
        return paths

    def save_hist(self, hist: Histogram, basename: str, style: str = "default") -> List[Path]:
        """Draw a single histogram outline."""
        self.apply_style(style)
        fig, ax = plt.subplots(figsize=(8, 6))
        ax.stairs(hist.counts, hist.edges, linewidth=2)
        ax.set_xlabel(hist.x_label)
        ax.set_ylabel(hist.y_label)
        ax.set_title(hist.name)
        return self._save(fig, basename)

    def stacked_hist(self, hists: Sequence[Histogram], labels: Sequence[str], basename: str,
                     logy: bool = False, weights: Optional[Sequence[float]] = None) -> List[Path]:
        """Stack all histograms, each scaled by its weight."""
        if not hists or len(hists) != len(labels):
            self.logger.warning(f"Skipping stacked plot {basename}: {len(hists)} histograms for {len(labels)} labels")
            return []
        self.logger.info(f"Creating stacked histogram: {basename}")
        scaled = self._scale(hists, weights)

        self.apply_style("mdh_nice")
        fig, ax = plt.subplots(figsize=(8, 6))
        self._draw_stack(ax, scaled, labels)
        self._finish_axes(ax, scaled[0], logy, f"Stacked Histogram: {basename}")
        return self._save(fig, basename)

    def full_data_mc_signal_plot(self, hists: Sequence[Histogram], labels: Sequence[str], basename: str,
                                 logy: bool = False, weights: Optional[Sequence[float]] = None) -> List[Path]:
        """
        Data as points with statistical errors, simulated backgrounds stacked,
        signal overlaid as a line. Labels decide the role of each histogram.
        """
        if not hists or len(hists) != len(labels):
            self.logger.warning(f"Skipping data/MC plot {basename}: {len(hists)} histograms for {len(labels)} labels")
            return []
        self.logger.info(f"Creating data/MC/signal plot: {basename}")
        scaled = self._scale(hists, weights)

        data, mc, mc_labels, signal, signal_labels = [], [], [], [], []
        for hist, label in zip(scaled, labels):
            if constants.DATA_LABEL_TOKEN in label:
                data.append(hist)
            elif constants.SIGNAL_LABEL_TOKEN in label:
                signal.append(hist)
                signal_labels.append(label)
            else:
                mc.append(hist)
                mc_labels.append(label)

        self.apply_style("mdh_nice")
        fig, ax = plt.subplots(figsize=(8, 6))
        if mc:
            self._draw_stack(ax, mc, mc_labels)
        for i, (hist, label) in enumerate(zip(signal, signal_labels)):
            ax.stairs(hist.counts, hist.edges, color="red", linestyle="--" if i else "-", linewidth=2, label=label)
        if data:
            counts = np.sum([h.counts for h in data], axis=0)
            ax.errorbar(data[0].centers, counts, yerr=np.sqrt(np.clip(counts, 0, None)),
                        fmt="o", color="black", markersize=4, label="data")
        self._finish_axes(ax, scaled[0], logy, basename)
        return self._save(fig, basename)

    def _scale(self, hists: Sequence[Histogram], weights: Optional[Sequence[float]]) -> List[Histogram]:
        weights = list(weights or [])
        out = []
        for i, hist in enumerate(hists):
            if i < len(weights) and weights[i] != 1.0:
                self.logger.debug(f"Scaling {hist.name} by weight {weights[i]}")
                hist = hist.scaled(weights[i])
            out.append(hist)
        return out

    def _draw_stack(self, ax, hists: Sequence[Histogram], labels: Sequence[str]) -> None:
        bottom = np.zeros_like(hists[0].counts)
        for i, (hist, label) in enumerate(zip(hists, labels)):
            color = self.PALETTE[i % len(self.PALETTE)]
            ax.stairs(bottom + hist.counts, hist.edges, baseline=bottom, fill=True, color=color, label=label)
            bottom = bottom + hist.counts

    @staticmethod
    def _finish_axes(ax, reference: Histogram, logy: bool, title: str) -> None:
        ax.set_xlabel(reference.x_label)
        ax.set_ylabel(reference.y_label)
        ax.set_title(title)
        if logy:
            ax.set_yscale("log")
        ax.legend(loc="upper right")
