import pytest
from utils.exceptions import (
    PipelineException,
    ConfigurationError,
    ResourceError,
    DeterminacyError,
    ModelTrainingError,
    PipelineError,
)

@pytest.mark.parametrize("cls", [ConfigurationError, ResourceError, DeterminacyError, ModelTrainingError, PipelineError])
def test_exception_inheritance(cls):
    err = cls("Test error")
    assert isinstance(err, PipelineException)
    assert isinstance(err, Exception)
    assert str(err) == "Test error"
