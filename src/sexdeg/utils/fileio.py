"""
Atomic output writers.

Batch runs write several result files into one directory. Each file goes to
a temporary sibling first and is moved into place with ``os.replace()``, so
an interrupted run never leaves a half-written table that looks complete.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, TextIO

import numpy as np
import pandas as pd

__all__ = ['atomic_write_json', 'atomic_write_frame']


def _atomic_write(path: str | os.PathLike, write: Callable[[TextIO], None]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path: str | None = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w", dir=path.parent, suffix=".tmp", delete=False, newline=""
        ) as tmp:
            tmp_path = tmp.name
            write(tmp)
        os.replace(tmp_path, path)
    except BaseException:
        if tmp_path is not None and os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise
    return path


def _finite(obj: Any) -> Any:
    """Replace non-finite floats (NaN, inf) with None, recursing into containers."""
    if isinstance(obj, dict):
        return {key: _finite(value) for key, value in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_finite(value) for value in obj]
    if isinstance(obj, np.ndarray):
        return _finite(obj.tolist())
    if isinstance(obj, (float, np.floating)):
        return float(obj) if np.isfinite(obj) else None
    return obj


def _json_default(obj: Any) -> Any:
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, np.bool_):
        return bool(obj)
    if isinstance(obj, Path):
        return str(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def atomic_write_json(path: str | os.PathLike, data: Any, *, indent: int = 2) -> Path:
    """Write *data* as JSON atomically.

    NumPy scalars and arrays are converted to plain Python values; NaN and
    infinite floats become ``null``.
    """
    data = _finite(data)
    return _atomic_write(
        path, lambda fh: json.dump(data, fh, indent=indent, default=_json_default, allow_nan=False)
    )


def atomic_write_frame(path: str | os.PathLike, frame: pd.DataFrame, *, index: bool = False) -> Path:
    """Write a DataFrame as CSV atomically."""
    return _atomic_write(path, lambda fh: frame.to_csv(fh, index=index))
