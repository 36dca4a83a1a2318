import json
import os
import hashlib
import sys
import logging
import jsonschema
import psutil  # Required for memory awareness
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional, List
from sklearn.model_selection import ParameterGrid

from modules.pipeline_driver import generate_run_id
from utils.exceptions import ConfigurationError
from utils.config_parsing import split_list, split_floats, split_cuts
from utils import constants

class ConfigurationManager:
    """
    Manages system configuration loading, validation, and access.
    Acts as the single source of truth and safety guard for the pipeline.

    Stage sections are optional at this level; a stage that is actually
    constructed re-checks the keys it needs.
    """

    # Default Resource Limits (Safety Guardrails)
    DEFAULT_MAX_HPO_CONFIGS = 1000  # Prevent accidental combinatoric explosions

    # Parallel per-sample lists that must line up within a section.
    SAMPLE_LIST_KEYS = ('input_files', 'sample_labels', 'sample_weights')

    def __init__(self, config_path: str = "config/config.json",
                 schema_path: str = "config/schema.json"):
        """
        Initialize the ConfigurationManager.

        Args:
            config_path (str): Path to the user configuration JSON.
            schema_path (str): Path to the JSON schema definition.
        """
        self.config_path = config_path
        self.schema_path = schema_path
        self.config: Dict[str, Any] = {}
        self.schema: Dict[str, Any] = {}
        self.run_id: Optional[str] = None
        self.logger = logging.getLogger("config_manager")

    def load_and_validate(self) -> Dict[str, Any]:
        """
        Main entry point. Loads config, validates schema/logic/resources,
        and propagates seeds.

        Returns:
            Dict[str, Any]: The fully validated configuration.

        Raises:
            ConfigurationError: If any validation step fails.
        """
        # 1. Load Files
        self.config = self._load_json(self.config_path)
        self.schema = self._load_json(self.schema_path)

        # 2. Structural Validation (Schema)
        self._validate_schema()

        # 3. Logical Validation (Business Rules & Bounds)
        self._validate_logic()

        # 4. Resource Validation (grid size, memory)
        self._validate_resources()

        # 5. Internal Seed Propagation (Reproducibility)
        self._propagate_seeds()

        return self.config

    def generate_run_id(self) -> str:
        """
        Generate or retrieve the run token: timestamp plus a short random suffix.
        """
        if not self.run_id:
            self.run_id = generate_run_id()
        return self.run_id

    def save_artifacts(self, output_dir: str) -> None:
        """
        Save configuration artifacts to the run directory for full reproducibility.

        Saves:
        1. config_used.json: The exact config object in memory.
        2. config_hash.txt: SHA256 hash for versioning.
        3. run_metadata.json: Environment details (Python version, Platform, etc.).
        """
        config_dir = Path(output_dir) / constants.CONFIG_DIR
        config_dir.mkdir(parents=True, exist_ok=True)

        # 1. Save Config
        with open(config_dir / "config_used.json", 'w') as f:
            json.dump(self.config, f, indent=2)

        # 2. Calculate and Save Hash
        config_str = json.dumps(self.config, sort_keys=True)
        config_hash = hashlib.sha256(config_str.encode()).hexdigest()

        with open(config_dir / "config_hash.txt", 'w') as f:
            f.write(config_hash)

        # 3. Save Metadata (Environment Capture)
        metadata = {
            'run_id': self.run_id,
            'run_label': self.config.get('global', {}).get('run_label'),
            'start_time': datetime.now().isoformat(),
            'python_version': sys.version,
            'platform': sys.platform,
            'config_hash': config_hash,
            'working_directory': os.getcwd()
        }

        with open(config_dir / "run_metadata.json", 'w') as f:
            json.dump(metadata, f, indent=2)

    def _load_json(self, path: str) -> Dict[str, Any]:
        """Safely load a JSON file."""
        if not os.path.exists(path):
            raise ConfigurationError(f"File not found: {path}")
        try:
            with open(path, 'r') as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {path}: {str(e)}")

    def _validate_schema(self) -> None:
        """Validate config structure against JSON schema."""
        try:
            jsonschema.validate(instance=self.config, schema=self.schema)
        except jsonschema.ValidationError as e:
            raise ConfigurationError(f"Schema validation failed: {e.message}")

    def _validate_logic(self) -> None:
        """Cross-field checks the schema cannot express."""
        # --- Slimmer ---
        slimmer = self.config.get('slimmer')
        if slimmer is not None:
            if not split_list(slimmer.get('input_files')):
                raise ConfigurationError("slimmer.input_files must list at least one file.")
            if not split_list(slimmer.get('keep_variables')):
                raise ConfigurationError("slimmer.keep_variables must not be empty.")

        # --- Preselection ---
        presel = self.config.get('preselection')
        if presel is not None:
            self._check_sample_lists('preselection', presel)
            if not split_cuts(presel.get('cuts')):
                raise ConfigurationError("No cuts specified in preselection!")
            if not split_list(presel.get('keep_variables')):
                raise ConfigurationError("No variables to keep specified in preselection!")

        # --- BDT Training ---
        train = self.config.get('bdt_train')
        if train is not None:
            self._check_sample_lists('bdt_train', train)
            if not split_list(train.get('train_vars')):
                raise ConfigurationError("bdt_train.train_vars must not be empty.")
            fraction = train.get('train_fraction', constants.DEFAULT_TRAIN_FRACTION)
            if not (0.0 < fraction <= 1.0):
                raise ConfigurationError(f"train_fraction must be in (0, 1], got {fraction}")
            if fraction == 1.0:
                raise ConfigurationError(
                    "bdt_train.train_fraction of 1.0 leaves no test rows to score the search on."
                )
            axes = train.get('search_axes', constants.DEFAULT_SEARCH_AXES)
            if not axes:
                raise ConfigurationError("bdt_train.search_axes cannot be empty.")
            for name, values in axes.items():
                if not values:
                    raise ConfigurationError(f"Search axis '{name}' must have at least one value.")

        # --- BDT Evaluation ---
        evaluation = self.config.get('bdt_eval')
        if evaluation is not None:
            if not split_list(evaluation.get('input_files')):
                raise ConfigurationError("InputFiles must be specified in the bdt_eval configuration")
            if not split_list(evaluation.get('eval_vars')):
                raise ConfigurationError("EvalVars must be specified in the bdt_eval configuration")

        # --- Plotter ---
        plotter = self.config.get('plotter')
        if plotter is not None:
            self._check_sample_lists('plotter', plotter)
            if plotter.get('bins', 11) <= 0:
                raise ConfigurationError(f"plotter.bins must be > 0, got {plotter.get('bins')}")
            if plotter.get('low', -5.0) >= plotter.get('high', 6.0):
                raise ConfigurationError("plotter.low must be below plotter.high.")

    def _check_sample_lists(self, section: str, cfg: Dict[str, Any]) -> None:
        files = split_list(cfg.get('input_files'))
        labels = split_list(cfg.get('sample_labels'))
        weights = split_floats(cfg.get('sample_weights')) if cfg.get('sample_weights') is not None else [1.0] * len(files)
        if not files:
            raise ConfigurationError(f"{section}.input_files must list at least one file.")
        if len(files) != len(labels) or len(files) != len(weights):
            raise ConfigurationError(
                f"Mismatch in sizes of {section} sample lists: {len(files)} files, "
                f"{len(labels)} labels, {len(weights)} weights"
            )

    def _validate_resources(self) -> None:
        """
        Validate against system resources.
        Calculates total grid size and ensures it fits within safe limits.
        """
        resources = self.config.get('resources', {})

        # 1. Grid Explosion Check
        train = self.config.get('bdt_train')
        if train is not None:
            axes = train.get('search_axes', constants.DEFAULT_SEARCH_AXES)
            try:
                total_configs = len(ParameterGrid({k: list(v) for k, v in axes.items()}))
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f"Invalid search grid: {str(e)}")

            max_configs = resources.get('max_hpo_configs', self.DEFAULT_MAX_HPO_CONFIGS)

            if total_configs > max_configs:
                raise ConfigurationError(
                    f"HPO Grid Explosion Detected! Total configurations ({total_configs}) exceeds "
                    f"safety limit ({max_configs}). Reduce the search axes or increase 'resources.max_hpo_configs'."
                )

            logging.info(f"HPO Grid Size validated: {total_configs} combinations (Limit: {max_configs})")

        # 2. Memory Limits Check
        system_ram_mb = int(psutil.virtual_memory().total / (1024 * 1024))
        # Default safety buffer: 80% of system RAM
        safe_ram_limit = int(system_ram_mb * 0.8)

        config_max_ram = resources.get('max_memory_mb', safe_ram_limit)

        if config_max_ram > system_ram_mb:
            logging.warning(
                f"Configured max_memory_mb ({config_max_ram}MB) exceeds physical system RAM ({system_ram_mb}MB). "
                "This may lead to instability."
            )

        if 'resources' not in self.config:
            self.config['resources'] = {}
        self.config['resources']['max_memory_mb'] = config_max_ram

    def _propagate_seeds(self) -> None:
        """Derive per-component seeds from the master seed."""
        master_seed = self.config.get('global', {}).get('seed', 0)

        self.config['_internal_seeds'] = {
            'model': master_seed,
        }
        logging.debug(f"Seeds propagated from master ({master_seed}): {self.config['_internal_seeds']}")
