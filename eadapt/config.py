"""
Run configuration: where the data lives and the fixed study parameters.

Every component that touches the filesystem takes an optional ``config``
dict. Missing keys fall back to :data:`DEFAULT_CONFIG`; relative directory
entries resolve against ``data_root``.
"""

from __future__ import annotations

import os
from datetime import date
from pathlib import Path
from typing import Any, Dict, Optional, Union

# Default configuration, laid out like the study's ``data`` directory
DEFAULT_CONFIG: Dict[str, Any] = {
    "data_root": "../data",
    "orig_dir": "sir_data",
    "output_dir": "output",
    "termsets_dir": "termsets",
    "camb_codesets_dir": "camb_codesets",
    "thesaurus_path": "read_db/all.bin",
    "read_db_dir": "read_db",
    "subtype_workbook": "code_subtype_mapping.xlsx",
    "extract_date": date(2021, 11, 17),
    "lemp": {
        "blood_pressure": "blood_pressure_measurement",
        "cholesterol": "cholesterol_measurement",
        "influenza_vaccination": "influenza_vaccination",
        "breast_cancer_screening": "breast_cancer_screening",
        "thyroid_function": "thyroid_function_measurement",
        "renal_function": "renal_function_measurement",
    },
    "ltc": {
        "error": 0.05,
        "min_count": 10,
        "bonferroni": True,
    },
}

DATA_ROOT_ENV = "EADAPT_DATA_ROOT"


def _deep_merge(default: Dict, override: Dict) -> Dict:
    """Recursively merge *override* into *default*."""
    result = default.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Build a full config from the defaults, the environment and *overrides*."""
    config = dict(DEFAULT_CONFIG)
    env_root = os.environ.get(DATA_ROOT_ENV)
    if env_root:
        config["data_root"] = env_root
    return _deep_merge(config, overrides or {})


def resolve_path(config: Optional[Dict[str, Any]], key: str) -> Path:
    """Return the directory or file configured under *key*.

    Args:
        config: Partial or full config; ``None`` means defaults.
        key: One of the path entries of :data:`DEFAULT_CONFIG`.

    Returns:
        An absolute path when ``data_root`` is absolute, otherwise a path
        relative to the working directory.
    """
    config = load_config(config)
    value = Path(config[key])
    if key == "data_root" or value.is_absolute():
        return value
    return Path(config["data_root"]) / value


def extract_date(config: Optional[Dict[str, Any]] = None) -> date:
    """The date the record extract was taken."""
    value: Union[date, str] = load_config(config)["extract_date"]
    if isinstance(value, str):
        return date.fromisoformat(value)
    return value


def orig_path(name: Union[str, Path], config: Optional[Dict[str, Any]] = None) -> Path:
    """Location of a file from the original database extract."""
    return resolve_path(config, "orig_dir") / name


def output_path(name: Union[str, Path], config: Optional[Dict[str, Any]] = None) -> Path:
    """Location of a derived binary table."""
    path = Path(name)
    if path.is_absolute():
        return path
    return resolve_path(config, "output_dir") / path


def termset_path(name: Union[str, Path], config: Optional[Dict[str, Any]] = None) -> Path:
    """Directory holding the ``meta.json``/``codes.txt`` pair of a named term set."""
    path = Path(name)
    if path.is_absolute():
        return path
    return resolve_path(config, "termsets_dir") / path
