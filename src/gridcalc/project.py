"""Project-level configuration and scaffolding."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Callable

import yaml

from gridcalc.spreadsheet import Spreadsheet

CONFIG_FILENAME = "gridcalc.yaml"

DEFAULT_CONFIG: dict[str, Any] = {
    "version": "default",
    "normalize": "none",
    "name_pattern": None,
    "file_extension": ".sprd",
    "logging_fsync": False,
    "logging_tail_bytes": 2_097_152,  # 2 MB
}

_NORMALIZERS: dict[str, Callable[[str], str] | None] = {
    "none": None,
    "upper": str.upper,
    "lower": str.lower,
}

DEFAULT_PROJECT_CONFIG = """\
# gridcalc project configuration
version: default
# Cell-name normalization: none | upper | lower
normalize: none
# Extra regex every (normalized) cell name must fully match, e.g. "[A-Z][1-9][0-9]?"
# name_pattern: null
file_extension: .sprd
logging_fsync: false
logging_tail_bytes: 2097152
"""


def load_project_config(project_dir: Path) -> dict[str, Any]:
    """Load project configuration from ``gridcalc.yaml``, with defaults.

    Args:
        project_dir: Root of the gridcalc project.

    Returns:
        Merged configuration dict.
    """
    config = dict(DEFAULT_CONFIG)
    config_path = project_dir / CONFIG_FILENAME
    if config_path.exists():
        try:
            user_config = yaml.safe_load(config_path.read_text()) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Cannot parse {config_path}: {exc}") from exc
        if not isinstance(user_config, dict):
            raise ValueError(f"{config_path} must contain a mapping")
        config.update(user_config)
    config["version"] = str(config["version"])
    return config


def make_normalizer(config: dict[str, Any]) -> Callable[[str], str] | None:
    """Return the cell-name normalizer selected by ``config["normalize"]``.

    Raises:
        ValueError: If the setting is not ``none``, ``upper`` or ``lower``.
    """
    mode = str(config.get("normalize") or "none").lower()
    if mode not in _NORMALIZERS:
        raise ValueError(
            f"Unknown normalize setting {config.get('normalize')!r}; "
            f"expected one of {sorted(_NORMALIZERS)}"
        )
    return _NORMALIZERS[mode]


def make_validator(config: dict[str, Any]) -> Callable[[str], bool] | None:
    """Return a validator built from ``config["name_pattern"]``, if any.

    Raises:
        ValueError: If the pattern is not a valid regular expression.
    """
    pattern = config.get("name_pattern")
    if not pattern:
        return None
    try:
        compiled = re.compile(str(pattern))
    except re.error as exc:
        raise ValueError(f"Invalid name_pattern {pattern!r}: {exc}") from exc

    def is_valid(name: str) -> bool:
        return compiled.fullmatch(name) is not None

    return is_valid


def open_spreadsheet(path: Path, config: dict[str, Any]) -> Spreadsheet:
    """Load the sheet at *path* if it exists, otherwise start an empty one.

    The validator, normalizer and version come from *config*.
    """
    kwargs: dict[str, Any] = {
        "is_valid": make_validator(config),
        "normalize": make_normalizer(config),
        "version": config["version"],
    }
    if path.exists():
        return Spreadsheet.load(path, **kwargs)
    return Spreadsheet(**kwargs)


def scaffold_project(target_dir: Path, sheet_name: str = "sheet") -> Path:
    """Create a new project with a default config and an empty sheet.

    Args:
        target_dir: Directory to create.  Must not exist or be empty.
        sheet_name: Stem of the initial sheet file.

    Returns:
        The path of the created project.

    Raises:
        FileExistsError: If *target_dir* exists and is not empty.
    """
    target_dir = target_dir.resolve()
    if target_dir.exists() and any(target_dir.iterdir()):
        raise FileExistsError(f"Directory is not empty: {target_dir}")

    target_dir.mkdir(parents=True, exist_ok=True)
    (target_dir / CONFIG_FILENAME).write_text(DEFAULT_PROJECT_CONFIG)

    config = load_project_config(target_dir)
    sheet_path = target_dir / f"{sheet_name}{config['file_extension']}"
    open_spreadsheet(sheet_path, config).save(sheet_path)
    return target_dir
