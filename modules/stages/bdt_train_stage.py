"""
BDT training stage.

Partitions the labelled samples into train/test files per class, runs the
hyperparameter grid search, retrains with the winning descriptor and
persists the model with joblib next to a JSON metadata file. The partition
files live until ``finalise`` so later inspection can reuse them when
``bdt_train.keep_partitions`` is set.
"""
import json
import logging
import joblib
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from modules.base.base_stage import BaseStage
from modules.bdt_trainer import BDTTrainer
from modules.dataset_partitioner import DatasetPartitioner, PartitionFiles
from modules.hpo_search_engine import HyperparameterSearch, SearchResult
from modules.hpo_search_engine.hpo_search_engine import NumpyEncoder
from modules.pipeline_driver import generate_run_id
from modules.record_source import RecordSource
from utils.config_parsing import split_list, split_floats
from utils.error_handling import handle_stage_errors
from utils.exceptions import ConfigurationError
from utils.file_io import remove_files
from utils import constants


class BDTTrainStage(BaseStage):
    """Trains the signal/background classifier."""

    def __init__(self, config: Dict[str, Any], logger: logging.Logger):
        super().__init__(config, logger)
        cfg = config.get('bdt_train', {})
        self.input_files = split_list(cfg.get('input_files'))
        self.labels = split_list(cfg.get('sample_labels'))
        raw_weights = cfg.get('sample_weights')
        self.weights = split_floats(raw_weights) if raw_weights is not None else [1.0] * len(self.input_files)
        if not self.input_files:
            raise ConfigurationError("[BDTTrain] No input files specified!")
        if len(self.labels) != len(self.input_files) or len(self.weights) != len(self.input_files):
            raise ConfigurationError(
                f"[BDTTrain] Mismatch in sizes of input vectors: {len(self.input_files)} files, "
                f"{len(self.labels)} labels, {len(self.weights)} weights"
            )

        self.train_vars = split_list(cfg.get('train_vars'))
        if not self.train_vars:
            raise ConfigurationError("[BDTTrain] No training variables specified!")
        self.keep_columns = split_list(cfg.get('keep_variables')) or list(self.train_vars)
        missing = [v for v in self.train_vars if v not in self.keep_columns]
        if missing:
            raise ConfigurationError(f"[BDTTrain] Training variables {missing} are not in keep_variables.")

        self.train_fraction = float(cfg.get('train_fraction', constants.DEFAULT_TRAIN_FRACTION))
        if not (0.0 < self.train_fraction <= 1.0):
            raise ConfigurationError(f"[BDTTrain] train_fraction must be in (0, 1], got {self.train_fraction}")
        if self.train_fraction == 1.0:
            raise ConfigurationError(
                "[BDTTrain] train_fraction of 1.0 leaves no test rows; the search is scored on held-out data."
            )

        self.axes: Dict[str, List[Any]] = dict(cfg.get('search_axes', constants.DEFAULT_SEARCH_AXES))
        self.fixed_options = dict(cfg.get('fixed_options', constants.DEFAULT_FIXED_OPTIONS))
        self.method_name = cfg.get('method_name', constants.DEFAULT_METHOD_NAME)
        self.tree_name = cfg.get('tree_name', constants.DEFAULT_TREE_NAME)
        self.keep_partitions = cfg.get('keep_partitions', False)
        self.temp_dir = Path(cfg['temp_dir']) if cfg.get('temp_dir') else None
        self.random_state = config.get('_internal_seeds', {}).get('model', 0)

        self.partitions: Optional[PartitionFiles] = None
        self.result: Optional[SearchResult] = None
        self.model_path = self.output_dir / constants.MODEL_DIR / constants.MODEL_FILE

    @property
    def name(self) -> str:
        return "BDTTrain"

    def _get_stage_directory_name(self) -> str:
        return constants.BDT_TRAIN_DIR

    def entry_count(self) -> int:
        return 1

    @handle_stage_errors("BDTTrain initialise")
    def initialise(self) -> None:
        self._setup_directories()
        run_id = self.run_id or generate_run_id()
        sources = [RecordSource.open(f, self.tree_name) for f in self.input_files]

        self.logger.info(f"[BDTTrain] Training fraction: {self.train_fraction}")
        partitioner = DatasetPartitioner(
            self.keep_columns,
            self.output_dir / constants.PARTITIONS_DIR,
            self.logger,
            temp_dir=self.temp_dir,
        )
        self.partitions = partitioner.partition(sources, self.labels, self.weights, self.train_fraction, run_id)
        self.logger.info("[BDTTrain] Created training and testing samples")

        trainer = BDTTrainer(self.train_vars, self.logger, random_state=self.random_state)
        search = HyperparameterSearch(
            self.logger,
            output_dir=self.output_dir / constants.GRID_SEARCH_DIR,
            fixed_options=self.fixed_options,
        )
        self.result = search.search(self.partitions, self.axes, trainer)

        model = trainer.fit(self.partitions.train, self.result.best_descriptor)
        test_score = trainer.score(model, self.partitions.test)
        self._save_model(model, test_score, run_id)

    def _save_model(self, model, test_score: float, run_id: str) -> None:
        self.model_path.parent.mkdir(parents=True, exist_ok=True)
        joblib.dump(model, self.model_path)

        metadata = {
            'method_name': self.method_name,
            'descriptor': self.result.best_descriptor,
            'params': self.result.best_combination,
            'search_score': self.result.best_score,
            'test_score': test_score,
            'boundary': self.result.boundary,
            'train_vars': self.train_vars,
            'train_fraction': self.train_fraction,
            'partition_counts': self.partitions.counts,
            'run_id': run_id,
            'trained_at': datetime.now().isoformat(),
        }
        with open(self.model_path.parent / constants.MODEL_METADATA_FILE, 'w') as f:
            json.dump(metadata, f, indent=2, cls=NumpyEncoder)
        self.logger.info(f"[BDTTrain] Model saved to {self.model_path} (ROC integral {test_score:.4f})")

    @handle_stage_errors("BDTTrain finalise")
    def finalise(self) -> None:
        if self.partitions is None or self.keep_partitions:
            return
        removed = remove_files(self.partitions.paths(), self.logger)
        self.logger.info(f"[BDTTrain] Removed {removed} partition file(s)")
