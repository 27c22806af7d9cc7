"""
Writers for analysis outputs.

Each result type has one CSV layout that opens cleanly in R, Excel and
pandas. Everything goes through the atomic writers in sexdeg.utils.fileio,
so a run that dies mid-way leaves either the previous file or none.

Output files (batch CLI):
    deg_<sex>.csv            passing genes (or every gene with all_genes=True)
    summary.csv              cross-sex summary, metrics × sexes
    <workflow>_<sex>.csv     features selected by an ML workflow
    run_summary.json         parameters, counts and file list of the run

Examples:
    >>> from sexdeg.io.writers import write_deg_table
    >>> write_deg_table(result, Path("out/deg_female.csv"))
    PosixPath('out/deg_female.csv')
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Protocol

import pandas as pd

from sexdeg.stats.differential import DEGResult
from sexdeg.utils.fileio import atomic_write_frame, atomic_write_json

__all__ = ['write_deg_table', 'write_summary', 'write_selection', 'write_run_summary']

logger = logging.getLogger(__name__)


class SelectionTable(Protocol):
    """Any ML workflow result that can render its selected features as a table."""

    def to_frame(self) -> pd.DataFrame: ...


def write_deg_table(result: DEGResult, path: Path, all_genes: bool = False) -> Path:
    """
    Write a DEG table as CSV.

    Args:
        result: DEGResult for one stratum
        path: Destination file
        all_genes: Write statistics for every gene instead of passing genes only
    """
    frame = result.all_genes if all_genes else result.table
    written = atomic_write_frame(path, frame)
    logger.info(f"Wrote {len(frame)} rows to {written}")
    return written


def write_summary(summary: pd.DataFrame, path: Path) -> Path:
    """Write the cross-sex summary (metric rows, one column per sex)."""
    written = atomic_write_frame(path, summary, index=True)
    logger.info(f"Wrote summary to {written}")
    return written


def write_selection(result: SelectionTable, path: Path) -> Path:
    """Write the features chosen by an ML workflow."""
    frame = result.to_frame()
    written = atomic_write_frame(path, frame)
    logger.info(f"Wrote {len(frame)} selected features to {written}")
    return written


def write_run_summary(payload: dict[str, Any], path: Path) -> Path:
    """Write the run manifest as JSON."""
    written = atomic_write_json(path, payload)
    logger.info(f"Wrote run summary to {written}")
    return written
