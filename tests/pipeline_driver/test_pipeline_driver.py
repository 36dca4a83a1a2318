import re
import pytest
import logging
from unittest.mock import MagicMock

from modules.base.base_stage import BaseStage, StageState
from modules.pipeline_driver import PipelineDriver, StageReport, resolve_entry_count, generate_run_id
from utils.exceptions import ConfigurationError, DeterminacyError, PipelineError


class RecordingStage(BaseStage):
    """Stage that records every lifecycle call into a shared journal."""

    def __init__(self, name, journal, count=-1, count_after_init=None, fail_in=None):
        self._name = name
        self.journal = journal
        self._count = count
        self._count_after_init = count_after_init
        self.fail_in = fail_in
        self.executed = []
        super().__init__({'outputs': {'skip_dir_creation': True}}, MagicMock(spec=logging.Logger))

    @property
    def name(self):
        return self._name

    def _get_stage_directory_name(self):
        return self._name

    def initialise(self):
        self.journal.append((self._name, 'initialise'))
        if self.fail_in == 'initialise':
            raise RuntimeError(f"{self._name} broke")
        if self._count_after_init is not None:
            self._count = self._count_after_init

    def execute(self, entry):
        self.executed.append(entry)
        if self.fail_in == 'execute':
            raise RuntimeError(f"{self._name} broke in execute")

    def finalise(self):
        self.journal.append((self._name, 'finalise'))

    def entry_count(self):
        return self._count


@pytest.fixture
def mock_logger():
    return MagicMock(spec=logging.Logger)


def test_empty_stage_list_rejected(mock_logger):
    with pytest.raises(ConfigurationError, match="No stages registered"):
        PipelineDriver([], logger=mock_logger)


def test_resolve_entry_count_takes_first_positive():
    journal = []
    stages = [RecordingStage(n, journal, count=c) for n, c in zip("ABCD", [-1, -1, 5, 7])]
    assert resolve_entry_count(stages) == 5


def test_resolve_entry_count_ignores_zero():
    journal = []
    stages = [RecordingStage("A", journal, count=0), RecordingStage("B", journal, count=3)]
    assert resolve_entry_count(stages) == 3


def test_resolve_entry_count_raises_when_unknown():
    journal = []
    stages = [RecordingStage("A", journal, count=-1), RecordingStage("B", journal, count=0)]
    with pytest.raises(DeterminacyError):
        resolve_entry_count(stages)


def test_run_lifecycle_order(mock_logger):
    journal = []
    a = RecordingStage("A", journal, count=3)
    b = RecordingStage("B", journal, count=1)
    driver = PipelineDriver([a, b], logger=mock_logger, run_id="run42")

    reports = driver.run()

    assert journal == [('A', 'initialise'), ('A', 'finalise'), ('B', 'initialise'), ('B', 'finalise')]
    assert a.executed == [0, 1, 2]
    # B is sized by the first registered stage with a positive count.
    assert b.executed == [0, 1, 2]
    assert [r.name for r in reports] == ["A", "B"]
    assert all(isinstance(r, StageReport) for r in reports)
    assert a.state == StageState.FINALISED and b.state == StageState.FINALISED
    assert a.run_id == "run42" and b.run_id == "run42"


def test_count_resolved_after_initialise(mock_logger):
    journal = []
    stage = RecordingStage("A", journal, count=-1, count_after_init=4)
    PipelineDriver([stage], logger=mock_logger).run()
    assert stage.executed == [0, 1, 2, 3]


def test_undeterminable_count_aborts(mock_logger):
    journal = []
    stage = RecordingStage("A", journal, count=-1)
    driver = PipelineDriver([stage], logger=mock_logger)

    with pytest.raises(DeterminacyError):
        driver.run()
    assert stage.executed == []
    assert ('A', 'finalise') not in journal


def test_failure_stops_later_stages(mock_logger):
    journal = []
    a = RecordingStage("A", journal, count=1)
    b = RecordingStage("B", journal, count=1, fail_in='initialise')
    c = RecordingStage("C", journal, count=1)
    driver = PipelineDriver([a, b, c], logger=mock_logger)

    with pytest.raises(RuntimeError, match="B broke"):
        driver.run()

    assert driver.failed_stage == "B"
    assert ('C', 'initialise') not in journal
    assert ('A', 'finalise') in journal
    mock_logger.error.assert_called_once()
    assert "B" in mock_logger.error.call_args[0][0]


def test_failure_in_execute_skips_finalise(mock_logger):
    journal = []
    a = RecordingStage("A", journal, count=2, fail_in='execute')
    driver = PipelineDriver([a], logger=mock_logger)

    with pytest.raises(RuntimeError):
        driver.run()
    assert a.executed == [0]
    assert ('A', 'finalise') not in journal


def test_second_run_rejected(mock_logger):
    driver = PipelineDriver([RecordingStage("A", [], count=1)], logger=mock_logger)
    driver.run()
    with pytest.raises(PipelineError):
        driver.run()


def test_add_before_run(mock_logger):
    journal = []
    driver = PipelineDriver([RecordingStage("A", journal, count=1)], logger=mock_logger)
    driver.add(RecordingStage("B", journal, count=1))

    assert [s.name for s in driver.stages] == ["A", "B"]
    driver.run()
    assert ('B', 'finalise') in journal

    with pytest.raises(PipelineError):
        driver.add(RecordingStage("C", journal, count=1))


def test_progress_logged_every_10000(mock_logger):
    stage = RecordingStage("A", [], count=20001)
    PipelineDriver([stage], logger=mock_logger).run()

    progress = [c[0][0] for c in mock_logger.info.call_args_list if " / 20001" in c[0][0]]
    assert len(progress) == 3
    assert progress[0].strip().startswith("0 /")


def test_stage_report_throughput_guard():
    assert StageReport("A", 0, 1.0, 1.0).ms_per_entry is None
    assert StageReport("A", 4, 1.0, 2.0).ms_per_entry == pytest.approx(500.0)


def test_generate_run_id_format():
    run_id = generate_run_id()
    assert re.fullmatch(r"\d{8}_\d{6}_[0-9a-f]{8}", run_id)
    assert generate_run_id() != run_id
