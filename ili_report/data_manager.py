"""Data manager for locating inputs and holding pipeline results.

This module resolves where the report's input files live, runs
``pipeline.run_pipeline`` at most once per process for the interactive
app, and writes the rate tables to CSV on request.  It uses ``logging``
instead of printing directly to stdout.
"""

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Dict, List

import pandas as pd

from . import pipeline
from .config import DATA_DIR_ENV

logger = logging.getLogger(__name__)

EXPORTED_TABLES = ("national", "city", "overall", "decade_means", "minimum_years")


def resolve_data_dir() -> Path:
    """Select the directory holding the input files.

    The lookup order is:

    1. The ``ILI_DATA_DIR`` environment variable, if set.
    2. A ``data`` folder at the repository root.
    """
    env = os.getenv(DATA_DIR_ENV)
    if env:
        # Expand relative or user paths to absolute
        return Path(env).expanduser().resolve()
    return Path(__file__).resolve().parent.parent / "data"


def _atomic_to_csv(df: pd.DataFrame, path: Path) -> None:
    """Write a DataFrame to CSV atomically.

    The CSV is first written to a temporary file in the same directory
    and then renamed to the final location.  This avoids leaving a
    partially written file if the process is interrupted mid‑write.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    df.to_csv(tmp_path, index=False)
    tmp_path.replace(path)


def export_rate_tables(payload: Dict[str, object], directory: str | Path) -> List[Path]:
    """Write the rate and summary tables of ``payload`` as CSV files."""
    directory = Path(directory)
    written: List[Path] = []
    for name in EXPORTED_TABLES:
        path = directory / f"ili_{name}.csv"
        _atomic_to_csv(payload[name], path)
        written.append(path)
    logger.info("Exported %d tables to %s", len(written), directory)
    return written


@lru_cache(maxsize=1)
def _compute_pipeline_payload(data_dir: Path) -> Dict[str, object]:
    """Runs the pipeline calculation."""
    return pipeline.run_pipeline(data_dir)


def load_payload(force_recompute: bool = False) -> Dict[str, object]:
    """
    Return the report payload, computing it on first use.

    Parameters
    ----------
    force_recompute : bool, optional
        If ``True``, rerun the pipeline even if a payload is held.

    Returns
    -------
    Dict[str, object]
        The dictionary returned by :func:`ili_report.pipeline.run_pipeline`.
    """
    if force_recompute:
        _compute_pipeline_payload.cache_clear()

    data_dir = resolve_data_dir()
    logger.info("Loading report inputs from %s", data_dir)
    return _compute_pipeline_payload(data_dir)
