"""Utility functions shared by the search methods.

This module provides numeric and serialization helpers used by the
searcher components.
"""

import json
import math
from typing import Any

import numpy as np


def convert_numpy_types(obj: Any) -> Any:
    """Convert numpy values in a snapshot or preview payload to JSON-native types.

    Dictionaries and sequences are traversed recursively; tuples become
    lists, matching what a JSON round trip returns, so a restored state
    re-encodes to the same bytes.

    Args:
        obj: Payload (dict, list, tuple, scalar, or numpy value)

    Returns:
        Payload built only from dict, list, str, int, float, bool and None

    Examples:
        >>> convert_numpy_types({"x": np.float64(0.5), "layers": np.int64(3)})
        {'x': 0.5, 'layers': 3}
        >>> convert_numpy_types([("trial-a", np.float32(0.25))])
        [['trial-a', 0.25]]
    """
    if isinstance(obj, dict):
        return {key: convert_numpy_types(value) for key, value in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [convert_numpy_types(item) for item in obj]
    if isinstance(obj, np.bool_):
        return bool(obj)
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, np.floating):
        return float(obj)
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    return obj


def metric_sort_key(value: float | None, smaller_is_better: bool) -> float:
    """Map a metric onto an ascending sort key where lower ranks better.

    Missing and non-finite metrics rank worst.
    """
    if value is None or not math.isfinite(value):
        return math.inf
    return value if smaller_is_better else -value


def dumps_state(payload: dict[str, Any]) -> bytes:
    """Encode a snapshot payload as UTF-8 JSON."""
    return json.dumps(convert_numpy_types(payload), sort_keys=True).encode("utf-8")


def loads_state(blob: bytes | str) -> dict[str, Any]:
    """Decode a snapshot payload produced by :func:`dumps_state`."""
    if isinstance(blob, bytes):
        blob = blob.decode("utf-8")
    return json.loads(blob)
