"""
Reading the original CSV extract and saving derived tables.

Derived tables are pickled lists of rows with a ``.bin`` extension, stored
under the configured output directory.
"""

from __future__ import annotations

import logging
import pickle
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import pandas as pd

from ..config import orig_path, output_path
from ..errors import with_context

logger = logging.getLogger(__name__)

BINARY_EXTENSION = ".bin"


def check_extension(path: Path, ext: str = BINARY_EXTENSION) -> None:
    if path.suffix != ext:
        raise ValueError(f"filename should end with `{ext}`, got {path.name!r}")


def save_table(
    rows: Sequence[Any],
    path: Union[str, Path],
    config: Optional[Dict[str, Any]] = None,
) -> Path:
    """Pickle *rows* to *path*, resolved under the output directory.

    Returns:
        The path written to.
    """
    path = output_path(path, config)
    check_extension(path)
    with with_context(f'unable to save data to "{path}"'):
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.exists():
            logger.warning('overwriting existing file at "%s"', path)
        with open(path, "wb") as fh:
            pickle.dump(list(rows), fh, protocol=pickle.HIGHEST_PROTOCOL)
    logger.info("Saved %d rows to %s", len(rows), path)
    return path


def load_table(path: Union[str, Path], config: Optional[Dict[str, Any]] = None) -> List[Any]:
    """Load a table written by :func:`save_table`."""
    path = output_path(path, config)
    check_extension(path)
    with with_context(f'unable to load data from "{path}"'):
        with open(path, "rb") as fh:
            rows = pickle.load(fh)
    if not isinstance(rows, list):
        raise ValueError(f'unable to load data from "{path}": expected a list of rows')
    return rows


def read_orig_csv(
    path: Union[str, Path],
    columns: Sequence[str],
    config: Optional[Dict[str, Any]] = None,
) -> pd.DataFrame:
    """Read a CSV file of the original extract as trimmed strings.

    Raises:
        ValueError: One of *columns* is not in the header.
    """
    path = orig_path(path, config)
    with with_context(f'while loading "{path}"'):
        df = pd.read_csv(path, dtype=str, keep_default_na=False, skipinitialspace=True)
    df.columns = [c.strip() for c in df.columns]
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise ValueError(f'while loading "{path}": missing columns {missing}')
    df = df[list(columns)]
    return df.apply(lambda column: column.str.strip())


def optional_string(value: str) -> Optional[str]:
    """Empty and ``null`` cells are missing."""
    if value == "" or value.lower() == "null":
        return None
    return value
