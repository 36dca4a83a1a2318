"""
Visualization Module.

Responsible for filling histograms from record sources and writing the
static plots produced by the pipeline stages.
"""

from .plotter import Plotter, Histogram, column_values

__all__ = [
    'Plotter',
    'Histogram',
    'column_values',
]
