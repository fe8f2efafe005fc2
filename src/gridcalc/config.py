"""Configuration loaded from ``gridcalc.yaml``, with defaults."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

CONFIG_FILE = "gridcalc.yaml"

DEFAULT_CONFIG = {
    "max_content_length": 4096,
    "display_precision": 6,
    "log_dir": None,
    "logging_fsync": False,
    "logging_tail_bytes": 2_097_152,  # 2 MB
}

DEFAULT_CONFIG_TEMPLATE = """\
# gridcalc configuration
#
# Largest content accepted by the ingest protocol, in bytes:
# max_content_length: 4096
#
# Decimal places shown for numbers:
# display_precision: 6
#
# Structured event log (NDJSON); disabled when unset:
# log_dir: logs
# logging_fsync: false
"""


def load_config(directory: Path) -> dict[str, Any]:
    """Load configuration from ``gridcalc.yaml`` in *directory*, with defaults.

    A relative ``log_dir`` is resolved against *directory*.

    Args:
        directory: Directory that may contain ``gridcalc.yaml``.

    Returns:
        Merged configuration dict.

    Raises:
        ValueError: The file is not a YAML mapping or a numeric setting is
            out of range.
    """
    config = dict(DEFAULT_CONFIG)
    config_path = directory / CONFIG_FILE
    if config_path.exists():
        user_config = yaml.safe_load(config_path.read_text()) or {}
        if not isinstance(user_config, dict):
            raise ValueError(f"{config_path} must contain a mapping")
        config.update(user_config)

    config["max_content_length"] = int(config["max_content_length"])
    config["display_precision"] = int(config["display_precision"])
    if config["max_content_length"] < 0:
        raise ValueError("max_content_length must be >= 0")
    if not 0 <= config["display_precision"] <= 20:
        raise ValueError("display_precision must be between 0 and 20")

    if config.get("log_dir"):
        log_dir = Path(config["log_dir"])
        if not log_dir.is_absolute():
            log_dir = directory / log_dir
        config["log_dir"] = log_dir
    return config


def write_default_config(directory: Path) -> Path:
    """Write a commented ``gridcalc.yaml`` into *directory*.

    Raises:
        FileExistsError: If the file already exists.
    """
    path = directory / CONFIG_FILE
    if path.exists():
        raise FileExistsError(f"{path} already exists")
    path.write_text(DEFAULT_CONFIG_TEMPLATE)
    return path
