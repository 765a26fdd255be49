"""Configuration file loading for the typestest CLI.

Kept out of typestest.py to keep the entrypoint slim. The file supplies
defaults for TesterConfig; CLI flags still take precedence.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Optional

import yaml

from common.errors import TesterError
from constants import Constants

logger = logging.getLogger(__name__)


def load_config_file(config_path: Optional[str]) -> Dict[str, Any]:
    """Load the tester configuration mapping from a YAML or JSON file.

    Args:
        config_path: Path to a .yml/.yaml/.json file, or None.

    Returns:
        The ``tester`` section if present, otherwise the whole mapping.

    Raises:
        TesterError: the file is missing, unreadable or not a mapping.
    """
    if not config_path:
        return {}
    if not os.path.isfile(config_path):
        raise TesterError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as fh:
            if config_path.lower().endswith(".json"):
                data = json.load(fh)
            else:
                data = yaml.safe_load(fh)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise TesterError(f"Failed to load config {config_path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise TesterError(f"Config {config_path} must contain a mapping, got {type(data).__name__}")
    section = data.get(Constants.CONFIG_SECTION, data)
    if not isinstance(section, dict):
        raise TesterError(f"'{Constants.CONFIG_SECTION}' in {config_path} must be a mapping")
    logger.debug("Loaded %d config keys from %s", len(section), config_path)
    return section
