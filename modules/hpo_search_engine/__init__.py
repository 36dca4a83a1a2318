"""
HPO Search Engine
=================

Responsibility:
- Exhaustive grid search over ordered hyperparameter axes.
- One trainer call per grid point, first maximum wins ties.
- Boundary diagnostics logged for every grid point.
- Trial log and best-configuration artifacts.
"""

from .hpo_search_engine import HyperparameterSearch, SearchResult, Trainer, iterate_grid, grid_size, boundary_flags
from .method_string import build_method_string, parse_method_string

__all__ = [
    'HyperparameterSearch',
    'SearchResult',
    'Trainer',
    'iterate_grid',
    'grid_size',
    'boundary_flags',
    'build_method_string',
    'parse_method_string',
]
