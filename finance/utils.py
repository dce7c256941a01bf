"""Consolidated utility functions for the finance and simulation modules."""
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple


def get_nested(d: Any, path: Iterable[str], default: Any = None) -> Any:
    """Walk a nested mapping or attribute tree by path segments.

    Mappings are traversed by key, any other object by attribute, so the same
    path works for raw JSON settings and for the typed settings dataclasses.
    """
    result = d
    for key in path:
        if isinstance(result, Mapping):
            if key not in result:
                return default
            result = result[key]
        elif result is not None and hasattr(result, key):
            result = getattr(result, key)
        else:
            return default
    return result


def as_float(v: Any, default: Optional[float] = None) -> Optional[float]:
    """Safely convert value to float with fallback."""
    if v is None:
        return default
    try:
        return float(v)
    except (ValueError, TypeError):
        return default


def parse_flag(value: Any) -> bool:
    """Strict boolean parse for JSON settings.

    Accepts real booleans, the strings ``"true"``/``"false"`` (any case) and
    the numbers 0 and 1. Anything else raises TypeError, so a stray string
    such as ``"false"`` never turns into a truthy flag.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    raise TypeError("must be a boolean")


def normalize_points(series: Any) -> List[Tuple[int, float]]:
    """Coerce a ``[{year, value}]`` list or ``(year, value)`` pairs into sorted tuples."""
    points: List[Tuple[int, float]] = []
    for item in series or []:
        if isinstance(item, Mapping):
            year, value = item.get("year"), item.get("value")
        else:
            year, value = item
        points.append((int(year), float(value)))
    points.sort(key=lambda p: p[0])
    return points


def points_to_dicts(years: Sequence[int], values: Sequence[float]) -> List[Dict[str, float]]:
    """Zip year and value sequences into ``[{year, value}]`` rows."""
    return [{"year": int(y), "value": float(v)} for y, v in zip(years, values)]
