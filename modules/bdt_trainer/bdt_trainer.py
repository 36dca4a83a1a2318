import math
import logging
import numpy as np
import pandas as pd
from pathlib import Path
from typing import Any, Dict, Sequence, Tuple
from sklearn.ensemble import HistGradientBoostingClassifier
from sklearn.metrics import roc_auc_score

from modules.hpo_search_engine.hpo_search_engine import Trainer
from modules.hpo_search_engine.method_string import parse_method_string
from utils.exceptions import ConfigurationError, ModelTrainingError, ResourceError
from utils.file_io import read_dataframe
from utils import constants


class BDTTrainer(Trainer):
    """
    Gradient-boosted decision tree classifier (signal vs background).

    Descriptor options map onto HistGradientBoostingClassifier:
    NTrees -> max_iter, MaxDepth -> max_depth, Shrinkage -> learning_rate,
    MinNodeSize (% of training rows) -> min_samples_leaf, nCuts -> max_bins.
    """

    MAX_BINS_RANGE = (2, 255)
    IGNORED_OPTIONS = {'H', 'V'}

    def __init__(self, train_vars: Sequence[str], logger: logging.Logger, random_state: int = 0,
                 weight_column: str = constants.SAMPLE_WEIGHT_COLUMN):
        self.train_vars = [v for v in train_vars if v]
        if not self.train_vars:
            raise ConfigurationError("No training variables specified!")
        self.logger = logger
        self.random_state = random_state
        self.weight_column = weight_column

    # ------------------------------------------------------------------
    # Data
    # ------------------------------------------------------------------
    def load_split(self, pair) -> Tuple[pd.DataFrame, np.ndarray, np.ndarray]:
        """Load (X, y, w) for one split; signal rows get y = 1."""
        sig = self._read_checked(pair.signal, "SIGNAL")
        bkg = self._read_checked(pair.background, "BACKGROUND")
        X = pd.concat([sig[self.train_vars], bkg[self.train_vars]], ignore_index=True)
        y = np.concatenate([np.ones(len(sig), dtype=int), np.zeros(len(bkg), dtype=int)])
        w = np.concatenate([self._weights(sig), self._weights(bkg)])
        return X, y, w

    def _read_checked(self, path: Path, role: str) -> pd.DataFrame:
        path = Path(path)
        if not path.exists():
            raise ResourceError(f"Cannot open {path}")
        df = read_dataframe(path)
        missing = [v for v in self.train_vars if v not in df.columns]
        if missing:
            raise ResourceError(f"{role} MISSING branch(es) {missing} in {path}")
        return df

    def _weights(self, df: pd.DataFrame) -> np.ndarray:
        if self.weight_column in df.columns:
            return df[self.weight_column].to_numpy(dtype=float)
        return np.ones(len(df), dtype=float)

    # ------------------------------------------------------------------
    # Model
    # ------------------------------------------------------------------
    def model_params(self, descriptor: str, n_train_rows: int) -> Dict[str, Any]:
        """Translate a descriptor into estimator keyword arguments."""
        options = parse_method_string(descriptor)
        boost = options.get('BoostType', 'Grad')
        if boost != 'Grad':
            raise ConfigurationError(f"Unsupported BoostType '{boost}', only 'Grad' is available.")

        params: Dict[str, Any] = {
            'early_stopping': False,
            'random_state': self.random_state,
        }
        if 'NTrees' in options:
            params['max_iter'] = int(options['NTrees'])
        if 'MaxDepth' in options:
            params['max_depth'] = int(options['MaxDepth'])
        if 'Shrinkage' in options:
            params['learning_rate'] = float(options['Shrinkage'])
        if 'MinNodeSize' in options:
            leaf = float(options['MinNodeSize']) * n_train_rows / 100.0
            params['min_samples_leaf'] = max(1, int(math.ceil(leaf)))
        if 'nCuts' in options:
            lo, hi = self.MAX_BINS_RANGE
            params['max_bins'] = min(max(int(options['nCuts']), lo), hi)

        unknown = set(options) - {'NTrees', 'MaxDepth', 'Shrinkage', 'MinNodeSize', 'nCuts', 'BoostType'} - self.IGNORED_OPTIONS
        if unknown:
            self.logger.debug(f"Ignoring descriptor options: {sorted(unknown)}")
        return params

    def fit(self, train, descriptor: str) -> HistGradientBoostingClassifier:
        X, y, w = self.load_split(train)
        if len(np.unique(y)) < 2:
            raise ModelTrainingError("Training partitions must contain both signal and background rows.")
        params = self.model_params(descriptor, len(X))
        model = HistGradientBoostingClassifier(**params)
        try:
            model.fit(X, y, sample_weight=w)
        except ValueError as e:
            raise ModelTrainingError(f"Failed to train model with '{descriptor}': {e}") from e
        return model

    def score(self, model, pair) -> float:
        """Weighted ROC AUC on one split."""
        X, y, w = self.load_split(pair)
        if len(np.unique(y)) < 2:
            raise ModelTrainingError("Test partitions must contain both signal and background rows.")
        proba = model.predict_proba(X)[:, 1]
        return float(roc_auc_score(y, proba, sample_weight=w))

    def train(self, train, test, descriptor: str) -> float:
        model = self.fit(train, descriptor)
        fom = self.score(model, test)
        self.logger.debug(f"ROC integral {fom:.6f} for {descriptor}")
        return fom
