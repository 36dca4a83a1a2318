import logging
import pandas as pd
from pathlib import Path
from typing import Iterable, Optional

def save_dataframe(df: pd.DataFrame, path: Path, *, compression: Optional[str] = "snappy", index: bool = False) -> Path:
    """
    Save a DataFrame to Parquet, creating the parent directory if needed.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_parquet(path, index=index, compression=compression)
    return path


def read_dataframe(path: Path, columns: Optional[list] = None) -> pd.DataFrame:
    """
    Load a DataFrame from Parquet/CSV based on file extension.
    """
    path = Path(path)
    suffix = path.suffix.lower()

    if suffix == ".parquet":
        return pd.read_parquet(path, columns=columns)
    if suffix == ".csv":
        return pd.read_csv(path, usecols=columns)

    raise ValueError(f"Unsupported file extension for reading: {suffix}")


def remove_files(paths: Iterable[Path], logger: logging.Logger) -> int:
    """
    Best-effort deletion. Failures are logged and never raised.

    Returns:
        int: Number of files actually removed.
    """
    removed = 0
    for p in paths:
        try:
            Path(p).unlink()
            removed += 1
        except FileNotFoundError:
            logger.warning(f"Cleanup skipped, file already gone: {p}")
        except OSError as e:
            logger.warning(f"Could not delete temporary file {p}: {e}")
    return removed
