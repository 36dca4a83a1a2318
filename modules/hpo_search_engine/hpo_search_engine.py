import abc
import json
import math
import logging
import itertools
import datetime
import numpy as np
import pandas as pd
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence
from sklearn.model_selection import ParameterGrid

from modules.hpo_search_engine.method_string import build_method_string, PERCENT_OPTIONS, DEFAULT_FLAGS
from utils.exceptions import ConfigurationError, ModelTrainingError


class NumpyEncoder(json.JSONEncoder):
    """Handles serialization of NumPy types to JSON."""
    def default(self, obj):
        if isinstance(obj, np.integer):
            return int(obj)
        elif isinstance(obj, np.floating):
            return float(obj)
        elif isinstance(obj, (np.ndarray,)):
            return obj.tolist()
        elif isinstance(obj, Path):
            return str(obj)
        return json.JSONEncoder.default(self, obj)


class Trainer(abc.ABC):
    """
    Trains a model from scratch on the train split and returns a held-out
    figure of merit (higher is better). Must be deterministic for identical
    inputs.
    """

    @abc.abstractmethod
    def train(self, train, test, descriptor: str) -> float:
        raise NotImplementedError


@dataclass
class SearchResult:
    """Outcome of a full grid search."""
    best_combination: Dict[str, Any]
    best_descriptor: str
    best_score: float
    boundary: Dict[str, Dict[str, bool]]
    trials: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def n_trials(self) -> int:
        return len(self.trials)

    def at_boundary(self) -> List[str]:
        """Axes whose winning value sits on either end of its range."""
        return [axis for axis, flags in self.boundary.items() if flags['lower'] or flags['upper']]


def _validate_axes(axes: Mapping[str, Sequence[Any]]) -> None:
    if not axes:
        raise ConfigurationError("Hyperparameter axes cannot be empty.")
    for name, values in axes.items():
        if isinstance(values, (str, bytes)) or len(values) == 0:
            raise ConfigurationError(f"Hyperparameter axis '{name}' must be a non-empty list of values.")


def grid_size(axes: Mapping[str, Sequence[Any]]) -> int:
    """Number of grid points, i.e. trainer calls a search will make."""
    _validate_axes(axes)
    return len(ParameterGrid({name: list(values) for name, values in axes.items()}))


def iterate_grid(axes: Mapping[str, Sequence[Any]]) -> Iterator[Dict[str, Any]]:
    """
    Yield every combination as an ordered dict, first axis outermost.
    """
    _validate_axes(axes)
    names = list(axes.keys())
    for values in itertools.product(*(list(axes[n]) for n in names)):
        yield dict(zip(names, values))


def boundary_flags(combination: Mapping[str, Any], axes: Mapping[str, Sequence[Any]]) -> Dict[str, Dict[str, bool]]:
    """Per axis, whether the value equals the first / last configured value."""
    flags = {}
    for name, value in combination.items():
        values = list(axes[name])
        flags[name] = {'lower': value == values[0], 'upper': value == values[-1]}
    return flags


class HyperparameterSearch:
    """
    Exhaustive grid search over ordered hyperparameter axes.

    Every grid point is trained from scratch exactly once, in nested axis
    order. The first combination to reach the maximum score wins; later equal
    scores never replace it. For every grid point (not only the winner) a log
    line is written for each axis whose value sits on the edge of its range,
    so an operator can see when the range should be widened.
    """

    def __init__(self, logger: logging.Logger, output_dir: Optional[Path] = None,
                 fixed_options: Optional[Mapping[str, Any]] = None,
                 percent_options: Sequence[str] = PERCENT_OPTIONS,
                 flags: Sequence[str] = DEFAULT_FLAGS):
        self.logger = logger
        self.output_dir = Path(output_dir) if output_dir else None
        self.fixed_options = dict(fixed_options or {})
        self.percent_options = tuple(percent_options)
        self.flags = tuple(flags)
        self.progress_file: Optional[Path] = None

    def describe(self, combination: Mapping[str, Any]) -> str:
        return build_method_string(combination, self.fixed_options, self.percent_options, self.flags)

    def search(self, partitions, axes: Mapping[str, Sequence[Any]], trainer: Trainer) -> SearchResult:
        """
        Run the grid search.

        Args:
            partitions: Object exposing ``train`` and ``test`` class pairs.
            axes: Ordered mapping axis name -> ordered candidate values.
            trainer: Called once per grid point.

        Returns:
            SearchResult: Winning combination, descriptor, score and boundary flags.

        Raises:
            ConfigurationError: If the grid is empty.
            ModelTrainingError: If no grid point produced a usable score.
        """
        n_points = grid_size(axes)
        self.logger.info(f"Starting grid search over {n_points} combinations: {list(axes.keys())}")
        self._setup_progress()

        best_score = None
        best_combination: Dict[str, Any] = {}
        best_descriptor = ""
        trials = []

        for trial_id, combination in enumerate(iterate_grid(axes), start=1):
            descriptor = self.describe(combination)
            score = float(trainer.train(partitions.train, partitions.test, descriptor))

            if math.isnan(score):
                self.logger.warning(f"Trial {trial_id} returned NaN score for method: {descriptor}")
            elif best_score is None or score > best_score:
                best_score = score
                best_combination = dict(combination)
                best_descriptor = descriptor
                self.logger.info(f"New best score: {best_score} with method: {best_descriptor}")

            tested = ", ".join(f"{k}={v}" for k, v in combination.items())
            self.logger.info(f"Tested {tested} => score: {score}")

            flags = boundary_flags(combination, axes)
            self._log_boundaries(combination, flags)

            entry = {
                'trial_id': trial_id,
                'descriptor': descriptor,
                'score': score,
                'params': dict(combination),
                'boundary': flags,
                'timestamp': datetime.datetime.now().isoformat(),
            }
            trials.append(entry)
            self._save_progress(entry)

        if best_score is None:
            raise ModelTrainingError("Grid search produced no usable score.")

        self.logger.info(f"Optimal method string: {best_descriptor}")
        result = SearchResult(
            best_combination=best_combination,
            best_descriptor=best_descriptor,
            best_score=best_score,
            boundary=boundary_flags(best_combination, axes),
            trials=trials,
        )
        self._finalize_results(result)
        return result

    def _log_boundaries(self, combination: Mapping[str, Any], flags: Mapping[str, Mapping[str, bool]]) -> None:
        # Emitted for every grid point; a winner on the edge means the range may need widening.
        for name, value in combination.items():
            if flags[name]['lower']:
                self.logger.info(f"Best {name} at lower boundary: {value}")
            if flags[name]['upper']:
                self.logger.info(f"Best {name} at upper boundary: {value}")

    def _setup_progress(self) -> None:
        if self.output_dir is None:
            return
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.progress_file = self.output_dir / "search_progress.jsonl"
        # Each search starts a fresh log; results are never resumed.
        if self.progress_file.exists():
            self.progress_file.unlink()

    def _save_progress(self, entry: dict) -> None:
        if self.progress_file is None:
            return
        with open(self.progress_file, 'a') as f:
            f.write(json.dumps(entry, cls=NumpyEncoder) + "\n")

    def _finalize_results(self, result: SearchResult) -> None:
        if self.output_dir is None:
            return
        rows = []
        for trial in result.trials:
            row = {'trial_id': trial['trial_id'], 'descriptor': trial['descriptor'], 'score': trial['score']}
            row.update({f"param_{k}": v for k, v in trial['params'].items()})
            rows.append(row)
        pd.DataFrame(rows).to_parquet(self.output_dir / "all_configurations.parquet", index=False)

        formatted_best = {
            'descriptor': result.best_descriptor,
            'params': result.best_combination,
            'score': result.best_score,
            'boundary': result.boundary,
            'n_trials': result.n_trials,
        }
        with open(self.output_dir / "best_configuration.json", 'w') as f:
            json.dump(formatted_best, f, indent=2, cls=NumpyEncoder)
        self.logger.info(f"Best configuration saved to {self.output_dir / 'best_configuration.json'}")
