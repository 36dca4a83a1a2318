"""
Record Source Module
====================

Responsibility:
- Lazy, pandas-backed access to tabular sample files (Parquet/CSV).
- Column projection, row filtering by expression, contiguous ranges.
- Derived columns and snapshots to new Parquet files.
"""

from .record_source import RecordSource

__all__ = ['RecordSource']
