"""
PipelineDriver for the staged analysis pipeline.

Runs a fixed, ordered list of stages once. Each stage is initialised, its
execute loop is sized by polling *all* registered stages for an entry count,
the loop runs single-threaded, and the stage is finalised before the next one
starts. Any exception aborts the whole run; there is no retry or isolation.
"""
import time
import uuid
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from modules.base.base_stage import BaseStage, StageState
from utils.exceptions import ConfigurationError, DeterminacyError, PipelineError
from utils import constants


@dataclass
class StageReport:
    """Timing summary for one stage's execute loop."""
    name: str
    entries: int
    wall_seconds: float
    cpu_seconds: float

    @property
    def ms_per_entry(self) -> Optional[float]:
        if self.entries <= 0:
            return None
        return self.cpu_seconds / self.entries * 1e3


def generate_run_id() -> str:
    """Timestamp plus a random suffix, unique per run."""
    return f"{datetime.now().strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:8]}"


def resolve_entry_count(stages: Sequence[BaseStage]) -> int:
    """
    Ask every registered stage, in registration order, for its entry count and
    return the first positive one.

    Some stages only know their size once an earlier stage has built a shared
    resource, so the answer may come from a stage other than the one about to
    run.

    Raises:
        DeterminacyError: If no stage reports a positive count.
    """
    for stage in stages:
        n = stage.entry_count()
        if n > 0:
            return int(n)
    raise DeterminacyError(
        "Could not determine number of entries - "
        "no registered stage returned a valid entry_count()."
    )


class PipelineDriver:
    """
    Orchestrates a list of stages: initialise -> entry loop -> finalise.
    """

    def __init__(self, stages: Iterable[BaseStage], logger: Optional[logging.Logger] = None,
                 run_id: Optional[str] = None):
        self._stages: List[BaseStage] = list(stages)
        if not self._stages:
            raise ConfigurationError("No stages registered!")
        self.logger = logger or logging.getLogger("pipeline_driver")
        self.run_id = run_id or generate_run_id()
        self.failed_stage: Optional[str] = None
        self._started = False

    @property
    def stages(self) -> tuple:
        return tuple(self._stages)

    def add(self, stage: BaseStage) -> None:
        """Append another stage after construction."""
        if self._started:
            raise PipelineError("Cannot add stages once the pipeline has started.")
        self._stages.append(stage)

    def run(self) -> List[StageReport]:
        """
        Run the full life-cycle for all registered stages, once.

        Returns:
            List[StageReport]: One timing report per completed stage.
        """
        if self._started:
            raise PipelineError("PipelineDriver.run() may only be called once per driver.")
        self._started = True

        self.logger.info(f"Running {len(self._stages)} stage(s), run id {self.run_id}")
        reports = []
        for stage in self._stages:
            try:
                reports.append(self._run_stage(stage))
            except Exception as e:
                self.failed_stage = stage.name
                self.logger.error(f"Stage '{stage.name}' failed: {e}")
                raise
        return reports

    def _run_stage(self, stage: BaseStage) -> StageReport:
        # 1. Initialise
        stage.run_id = self.run_id
        self.logger.info(f"  -> Initialising {stage.name} ...")
        stage.initialise()
        stage.state = StageState.INITIALISED

        # Resolved after initialise(): some stages only know their size once
        # their inputs are open.
        n_entries = resolve_entry_count(self._stages)
        self.logger.info(f"Will process {n_entries} entries.")

        # 2. Entry loop
        stage.state = StageState.RUNNING
        wall_start = time.perf_counter()
        cpu_start = time.process_time()
        for i in range(n_entries):
            if i % constants.PROGRESS_EVERY == 0:
                self.logger.info(f"{i:>7} / {n_entries}")
            stage.execute(i)
        report = StageReport(
            name=stage.name,
            entries=n_entries,
            wall_seconds=time.perf_counter() - wall_start,
            cpu_seconds=time.process_time() - cpu_start,
        )
        per_entry = report.ms_per_entry
        rate = f"{per_entry:.3f} ms / entry" if per_entry is not None else "n/a"
        self.logger.info(
            f"Finished loop in {report.cpu_seconds:.3f} s CPU, "
            f"{report.wall_seconds:.3f} s wall ({rate})"
        )

        # 3. Finalise
        self.logger.info(f"  -> Finalising {stage.name} ...")
        stage.finalise()
        stage.state = StageState.FINALISED
        return report
