"""
Helpers for reading list-valued configuration entries.

Stage sections accept either JSON arrays or the legacy flat strings
("a.parquet, b.parquet" or "a b c"), so older config files keep working.
"""

from typing import Any, List


def split_list(raw: Any) -> List[str]:
    """Split a whitespace and/or comma separated string into tokens."""
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        return [str(item).strip() for item in raw if str(item).strip()]
    tokens = []
    for chunk in str(raw).replace(",", " ").split():
        if chunk:
            tokens.append(chunk)
    return tokens


def split_floats(raw: Any) -> List[float]:
    """Like split_list, but every token must parse as a float."""
    if raw is None:
        return []
    if isinstance(raw, (int, float)):
        return [float(raw)]
    return [float(tok) for tok in split_list(raw)]


def split_cuts(raw: Any) -> List[str]:
    """
    Split cut expressions on commas only (expressions may contain spaces),
    trimming whitespace and one layer of surrounding quotes.
    """
    if raw is None:
        return []
    items = list(raw) if isinstance(raw, (list, tuple)) else str(raw).split(",")
    cuts = []
    for item in items:
        cut = str(item).strip()
        if len(cut) >= 2 and cut[0] == cut[-1] and cut[0] in ("'", '"'):
            cut = cut[1:-1].strip()
        if cut:
            cuts.append(cut)
    return cuts
