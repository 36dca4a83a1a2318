"""
Method descriptor strings.

A descriptor is a colon-separated option list in the TMVA booking style,
e.g. ``!H:!V:NTrees=200:MaxDepth=3:MinNodeSize=2.5%:BoostType=Grad``.
The same combination always formats to the same string.
"""
import numbers
from typing import Any, Dict, Iterable, Mapping, Optional

DEFAULT_FLAGS = ("!H", "!V")
PERCENT_OPTIONS = ("MinNodeSize",)


def format_value(value: Any) -> str:
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, numbers.Integral):
        return str(int(value))
    if isinstance(value, numbers.Real):
        return f"{float(value):g}"
    return str(value)


def build_method_string(combination: Mapping[str, Any],
                        fixed_options: Optional[Mapping[str, Any]] = None,
                        percent_options: Iterable[str] = PERCENT_OPTIONS,
                        flags: Iterable[str] = DEFAULT_FLAGS) -> str:
    """Format a grid point (in axis order) followed by fixed options."""
    percent = set(percent_options)
    parts = list(flags)
    for key, value in combination.items():
        suffix = "%" if key in percent else ""
        parts.append(f"{key}={format_value(value)}{suffix}")
    for key, value in (fixed_options or {}).items():
        parts.append(f"{key}={format_value(value)}")
    return ":".join(parts)


def _parse_scalar(raw: str) -> Any:
    for cast in (int, float):
        try:
            return cast(raw)
        except ValueError:
            continue
    return raw


def parse_method_string(descriptor: str) -> Dict[str, Any]:
    """
    Inverse of build_method_string. ``!X`` becomes ``{'X': False}``, a bare
    ``X`` becomes ``{'X': True}``, and a trailing '%' is dropped.
    """
    options: Dict[str, Any] = {}
    for token in descriptor.split(":"):
        token = token.strip()
        if not token:
            continue
        if "=" not in token:
            if token.startswith("!"):
                options[token[1:]] = False
            else:
                options[token] = True
            continue
        key, raw = token.split("=", 1)
        options[key.strip()] = _parse_scalar(raw.strip().rstrip("%"))
    return options
