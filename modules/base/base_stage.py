import abc
import enum
import logging
from pathlib import Path
from typing import Dict, Any, Optional
from utils import constants

class StageState(enum.Enum):
    """Lifecycle states a stage moves through under the driver."""
    CREATED = "created"
    INITIALISED = "initialised"
    RUNNING = "running"
    FINALISED = "finalised"


class BaseStage(abc.ABC):
    """
    Abstract base class for all pipeline stages.

    The driver calls ``initialise()`` once, ``execute(i)`` for each unit of
    work, then ``finalise()`` once. Stages with no per-unit work report
    ``entry_count() == 1``, keep ``execute`` a no-op and do everything in
    ``initialise``.

    Provides common functionality for:
    - Configuration and logger attachment.
    - Standardized output directory management with sequential numbering.
    """

    def __init__(self, config: Dict[str, Any], logger: logging.Logger):
        self.config = config
        self.logger = logger
        self.state = StageState.CREATED
        self.run_id: Optional[str] = None
        self.base_dir = Path(self.config.get('outputs', {}).get('base_results_dir', 'results'))
        self.output_dir = self.base_dir / self._get_stage_directory_name()

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Human-readable stage name used in logs and error reports."""

    @abc.abstractmethod
    def _get_stage_directory_name(self) -> str:
        """
        Determines the directory name for the stage's output.
        e.g., '01_Slimmer', '03_BDTTraining'
        """
        raise NotImplementedError("Subclasses must implement _get_stage_directory_name.")

    def _setup_directories(self) -> None:
        """
        Creates the stage output directory. Called from ``initialise`` so that
        building a pipeline never touches the filesystem.
        """
        if self.config.get('outputs', {}).get('skip_dir_creation', False):
            return
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.logger.info(f"Output directory for {self.name}: {self.output_dir}")

    @abc.abstractmethod
    def initialise(self) -> None:
        """Load or derive working data. May be long-running and write files."""

    def execute(self, entry: int) -> None:
        """Process one unit of work. Default is a no-op."""

    def finalise(self) -> None:
        """Release resources and write closing artifacts. Default is a no-op."""

    def entry_count(self) -> int:
        """Number of work units, or -1 if unknown."""
        return constants.UNKNOWN_ENTRY_COUNT

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, state={self.state.value})"
