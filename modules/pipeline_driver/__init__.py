"""
Pipeline Driver Module
======================

Responsibility:
- Owns the ordered list of stages for one run.
- Drives each stage through initialise -> execute loop -> finalise.
- Resolves the execute-loop size by polling every registered stage.
- Reports progress and per-stage timing.
"""

from .pipeline_driver import PipelineDriver, StageReport, resolve_entry_count, generate_run_id

__all__ = ['PipelineDriver', 'StageReport', 'resolve_entry_count', 'generate_run_id']
