import functools
import logging
from utils.exceptions import PipelineException, PipelineError

def handle_stage_errors(operation_name: str):
    """Decorator for consistent error handling in stage phases."""
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except PipelineException:
                # Re-raise our custom exceptions
                raise
            except Exception as e:
                # Wrap unexpected errors
                logger = args[0].logger if args and hasattr(args[0], 'logger') else logging.getLogger()
                # The traceback is logged once, by the entry point.
                logger.error(f"{operation_name} failed: {e}")
                raise PipelineError(f"{operation_name} failed: {str(e)}") from e
        return wrapper
    return decorator
