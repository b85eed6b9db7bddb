"""Project-level configuration and scaffolding."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml


CONFIG_FILENAME = "sheetcalc.yaml"
SHEET_FILENAME = "sheet.yaml"

DEFAULT_CONFIG = {
    "max_rows": 100,
    "max_cols": 26,
    "max_paren_depth": 100,
    "logging_fsync": False,
    "logging_tail_bytes": 2_097_152,  # 2 MB
}

DEMO_CONFIG = """\
# sheetcalc project configuration
max_rows: 100
max_cols: 26
max_paren_depth: 100
logging_fsync: false
"""

DEMO_SHEET = """\
# sheetcalc sheet v1
rows: 10
cols: 5
cells:
  A1: "10"
  A2: "5"
  A3: "=A1 * A2"
  B1: "=(A1 + A2) / 3"
  B2: "=A3 / (A1 - 10)"
  B3: "=B2 + 1"
"""


def load_project_config(project_dir: Path) -> dict[str, Any]:
    """Load project configuration from ``sheetcalc.yaml``, with defaults.

    Args:
        project_dir: Root of the sheetcalc project.

    Returns:
        Merged configuration dict.

    Raises:
        ValueError: If the config file is not a YAML mapping.
    """
    config = dict(DEFAULT_CONFIG)
    config_path = project_dir / CONFIG_FILENAME
    if config_path.exists():
        user_config = yaml.safe_load(config_path.read_text()) or {}
        if not isinstance(user_config, dict):
            raise ValueError(f"{config_path} must contain a YAML mapping")
        config.update(user_config)
    return config


def scaffold_project(target: Path) -> Path:
    """Create a new project directory with a config and a demo sheet.

    Args:
        target: Directory to create.

    Returns:
        The created project directory.

    Raises:
        FileExistsError: If *target* exists and is not empty.
    """
    if target.exists() and any(target.iterdir()):
        raise FileExistsError(f"Directory already exists and is not empty: {target}")
    target.mkdir(parents=True, exist_ok=True)
    (target / CONFIG_FILENAME).write_text(DEMO_CONFIG)
    (target / SHEET_FILENAME).write_text(DEMO_SHEET)
    (target / "logs").mkdir(exist_ok=True)
    return target
