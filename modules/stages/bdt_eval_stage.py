"""
BDT evaluation stage: score every configured input file with the persisted
classifier and write a copy of it with an extra ``bdt_score`` column.
"""
import json
import logging
import joblib
import numpy as np
import pandas as pd
from pathlib import Path
from typing import Any, Dict, List

from modules.base.base_stage import BaseStage
from modules.record_source import RecordSource
from utils.config_parsing import split_list
from utils.error_handling import handle_stage_errors
from utils.exceptions import ConfigurationError, ResourceError
from utils import constants


def first_element(series: pd.Series) -> np.ndarray:
    """Scalars pass through; vector cells contribute their first element (NaN if empty)."""
    if series.dtype != object:
        return series.to_numpy(dtype=float)
    out = np.empty(len(series), dtype=float)
    for i, cell in enumerate(series):
        if cell is None:
            out[i] = np.nan
        elif np.ndim(cell) == 0:
            out[i] = float(cell)
        else:
            out[i] = float(cell[0]) if len(cell) > 0 else np.nan
    return out


def tagged_output_name(path: Path, tag: str) -> str:
    """input.parquet -> input<tag>.parquet"""
    return f"{path.stem}{tag}.parquet"


class BDTEvalStage(BaseStage):
    """Applies a trained model to new files."""

    def __init__(self, config: Dict[str, Any], logger: logging.Logger):
        super().__init__(config, logger)
        cfg = config.get('bdt_eval', {})
        self.input_files = split_list(cfg.get('input_files'))
        self.eval_vars = split_list(cfg.get('eval_vars'))
        if not self.input_files:
            raise ConfigurationError("[BDTEval] No input files provided (bdt_eval.input_files).")
        if not self.eval_vars:
            raise ConfigurationError("[BDTEval] No eval_vars provided, they must match the training variables.")

        default_model = self.base_dir / constants.BDT_TRAIN_DIR / constants.MODEL_DIR / constants.MODEL_FILE
        self.model_file = Path(cfg.get('model_file') or default_model)
        self.method_name = cfg.get('method_name', constants.DEFAULT_METHOD_NAME)
        self.output_tag = cfg.get('output_tag', constants.DEFAULT_OUTPUT_TAG)
        self.tree_name = cfg.get('tree_name', constants.DEFAULT_TREE_NAME)
        self.written: List[Path] = []

    @property
    def name(self) -> str:
        return "BDTEval"

    def _get_stage_directory_name(self) -> str:
        return constants.BDT_EVAL_DIR

    def entry_count(self) -> int:
        return 1

    def _load_model(self):
        if not self.model_file.exists():
            raise ResourceError(f"[BDTEval] Cannot open model file: {self.model_file}")
        model = joblib.load(self.model_file)
        metadata_path = self.model_file.parent / constants.MODEL_METADATA_FILE
        if metadata_path.exists():
            with open(metadata_path, 'r') as f:
                trained_vars = json.load(f).get('train_vars', [])
            if trained_vars and trained_vars != self.eval_vars:
                raise ConfigurationError(
                    f"[BDTEval] eval_vars {self.eval_vars} do not match the training variables {trained_vars}"
                )
        return model

    @handle_stage_errors("BDTEval initialise")
    def initialise(self) -> None:
        self._setup_directories()
        self.logger.info(f"[BDTEval] Using model: {self.model_file}")
        self.logger.info(f"[BDTEval] Method: {self.method_name}")
        self.logger.info(f"[BDTEval] Variables ({len(self.eval_vars)}): {' '.join(self.eval_vars)}")
        model = self._load_model()

        for path in self.input_files:
            self.logger.info(f"[BDTEval] Processing: {path}")
            self.written.append(self._process_one(model, Path(path)))
        self.logger.info("[BDTEval] Done.")

    def _process_one(self, model, path: Path) -> Path:
        source = RecordSource.open(path, self.tree_name)
        missing = source.has_columns(self.eval_vars)
        if missing:
            raise ResourceError(
                f"[BDTEval] Missing variable(s) {missing} in tree '{self.tree_name}' (file {path})."
            )

        frame = source.to_frame()
        X = pd.DataFrame({v: first_element(frame[v]) for v in self.eval_vars})
        scores = model.predict_proba(X)[:, 1] if len(X) else np.empty(0)

        out_path = self.output_dir / tagged_output_name(path, self.output_tag)
        scored = source.define(constants.BDT_SCORE_COLUMN, scores.astype(np.float32))
        scored.snapshot(out_path)
        self.logger.info(f"[BDTEval] Wrote: {out_path}  (entries: {len(frame)})")
        return out_path
