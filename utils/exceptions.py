"""
Custom exception hierarchy for the staged analysis pipeline.
"""

class PipelineException(Exception):
    """Base exception for all system errors."""
    pass

class ConfigurationError(PipelineException):
    """Configuration validation failed."""
    pass

class ResourceError(PipelineException):
    """A file, table or column could not be found or opened."""
    pass

class DeterminacyError(PipelineException):
    """No registered stage reported a usable entry count."""
    pass

class ModelTrainingError(PipelineException):
    """Model training failed."""
    pass

class PipelineError(PipelineException):
    """Pipeline execution failed or the driver was misused."""
    pass
