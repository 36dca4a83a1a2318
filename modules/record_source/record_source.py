"""
RecordSource: a lazily evaluated view over one or more tabular sample files.

Nothing is read from disk until the first call that needs rows (``count``,
``columns``, ``to_frame`` or ``snapshot``). Every transformation returns a new
view that shares its parent's cached frame, so a chain of cuts over one file
reads that file once.
"""
import re
import logging
import pandas as pd
from pathlib import Path
from typing import Any, Callable, Iterable, List, Optional, Union

from utils.exceptions import ConfigurationError, ResourceError
from utils.file_io import read_dataframe, save_dataframe

PathLike = Union[str, Path]

# C-style operators that older cut strings use.
_CUT_REPLACEMENTS = [
    (re.compile(r"&&"), " and "),
    (re.compile(r"\|\|"), " or "),
    (re.compile(r"!(?!=)"), " not "),
]


def translate_expression(expression: str) -> str:
    """Rewrite C-style boolean operators into pandas query syntax."""
    out = expression
    for pattern, repl in _CUT_REPLACEMENTS:
        out = pattern.sub(repl, out)
    return out.strip()


def resolve_table_path(path: PathLike, table: Optional[str] = None) -> Path:
    """
    Map (path, table) to a concrete file.

    A directory is treated as a dataset: ``table`` names ``<dir>/<table>.parquet``.
    A plain file is used as is and ``table`` is informational only.
    """
    path = Path(path)
    if path.is_dir():
        if not table:
            raise ResourceError(f"Cannot find tree: no table name given for dataset directory {path}")
        candidate = path / f"{table}.parquet"
        if not candidate.exists():
            raise ResourceError(f"Cannot find tree: {table} in {path}")
        return candidate
    if not path.exists():
        raise ResourceError(f"Cannot open file: {path}")
    return path


class RecordSource:
    """
    Lazy row source with projection, filtering, counting and range selection.
    """

    def __init__(self, loader: Callable[[], pd.DataFrame], description: str):
        self._loader = loader
        self._frame: Optional[pd.DataFrame] = None
        self.description = description

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------
    @classmethod
    def open(cls, path: PathLike, table: Optional[str] = None) -> 'RecordSource':
        """Open a single file (or a table inside a dataset directory)."""
        def load() -> pd.DataFrame:
            resolved = resolve_table_path(path, table)
            return _read(resolved)
        return cls(load, description=f"{path}" + (f":{table}" if table else ""))

    @classmethod
    def chain(cls, paths: Iterable[PathLike], table: Optional[str] = None) -> 'RecordSource':
        """Concatenate several files with the same schema into one source."""
        paths = list(paths)
        if not paths:
            raise ConfigurationError("No input files given for chained source.")

        def load() -> pd.DataFrame:
            frames = [_read(resolve_table_path(p, table)) for p in paths]
            return pd.concat(frames, ignore_index=True)
        return cls(load, description="chain[" + ", ".join(str(p) for p in paths) + "]")

    @classmethod
    def from_frame(cls, df: pd.DataFrame, description: str = "in-memory") -> 'RecordSource':
        frame = df.reset_index(drop=True)
        return cls(lambda: frame, description=description)

    # ------------------------------------------------------------------
    # Materialisation
    # ------------------------------------------------------------------
    def to_frame(self) -> pd.DataFrame:
        if self._frame is None:
            self._frame = self._loader()
        return self._frame

    @property
    def columns(self) -> List[str]:
        return list(self.to_frame().columns)

    def count(self) -> int:
        return int(len(self.to_frame()))

    def has_columns(self, columns: Iterable[str]) -> List[str]:
        """Return the subset of ``columns`` missing from this source."""
        present = set(self.columns)
        return [c for c in columns if c not in present]

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------
    def _derive(self, transform: Callable[[pd.DataFrame], pd.DataFrame], what: str) -> 'RecordSource':
        parent = self
        return RecordSource(lambda: transform(parent.to_frame()), description=f"{self.description}|{what}")

    def select(self, columns: Iterable[str]) -> 'RecordSource':
        columns = list(columns)

        def project(df: pd.DataFrame) -> pd.DataFrame:
            missing = [c for c in columns if c not in df.columns]
            if missing:
                raise ResourceError(f"Cannot find column(s) {missing} in {self.description}")
            return df[columns]
        return self._derive(project, "select")

    def filter(self, expression: str) -> 'RecordSource':
        query = translate_expression(expression)
        if not query:
            raise ConfigurationError("Empty filter expression.")

        def apply(df: pd.DataFrame) -> pd.DataFrame:
            try:
                mask = df.eval(query, engine="python")
            except pd.errors.UndefinedVariableError as e:
                raise ResourceError(f"Cannot find column used in cut '{expression}': {e}") from e
            except SyntaxError as e:
                raise ConfigurationError(f"Invalid cut expression '{expression}': {e}") from e
            if not isinstance(mask, pd.Series):
                mask = pd.Series(bool(mask), index=df.index)
            return df[mask.fillna(False).astype(bool)].reset_index(drop=True)
        return self._derive(apply, f"filter({expression})")

    def range(self, start: int, stop: Optional[int] = None) -> 'RecordSource':
        if start < 0 or (stop is not None and stop < start):
            raise ConfigurationError(f"Invalid range [{start}, {stop})")
        return self._derive(lambda df: df.iloc[start:stop].reset_index(drop=True), f"range({start},{stop})")

    def define(self, name: str, expression: Union[Callable[[pd.DataFrame], Any], Any]) -> 'RecordSource':
        """
        Add a column. ``expression`` is either a callable taking the frame or a
        constant broadcast to every row.
        """
        def add(df: pd.DataFrame) -> pd.DataFrame:
            if name in df.columns:
                raise ConfigurationError(f"Column '{name}' already exists in {self.description}")
            value = expression(df) if callable(expression) else expression
            return df.assign(**{name: value})
        return self._derive(add, f"define({name})")

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------
    def snapshot(self, path: PathLike, columns: Optional[Iterable[str]] = None,
                 compression: Optional[str] = "snappy") -> Path:
        """Write (optionally projected) rows to a new Parquet file, replacing it."""
        view = self.select(columns) if columns is not None else self
        return save_dataframe(view.to_frame(), Path(path), compression=compression, index=False)

    def __repr__(self) -> str:
        return f"RecordSource({self.description})"


def _read(path: Path) -> pd.DataFrame:
    try:
        return read_dataframe(path).reset_index(drop=True)
    except (OSError, ValueError) as e:
        raise ResourceError(f"Cannot open file: {path} ({e})") from e
