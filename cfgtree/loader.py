"""
Local payload parsing for cfgtree.

Turns JSON and YAML text (or YAML files) into plain mappings that
Setting.load_from_dict() and Configuration.configure() consume. All parse
failures are reported as LoadDataError.

Invariants:
    - Loaders return a mapping or raise; a top-level list or scalar is rejected
    - YAML is always parsed with yaml.safe_load
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .errors import LoadDataError

logger = logging.getLogger(__name__)

JSON_EXTENSIONS = ("", ".json")
YAML_EXTENSIONS = (".yaml", ".yml")


def load_json(text: Union[str, bytes], source: Optional[str] = None) -> Dict[str, Any]:
    """Parse JSON text into a mapping.

    Raises:
        LoadDataError: "Invalid JSON format" on malformed input
    """
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as e:
        raise LoadDataError("Invalid JSON format", source=source) from e
    return _require_mapping(data, source)


def load_yaml(text: Union[str, bytes], source: Optional[str] = None) -> Dict[str, Any]:
    """Parse YAML text into a mapping.

    An empty document yields an empty mapping.

    Raises:
        LoadDataError: "Invalid YAML format" on malformed input
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise LoadDataError("Invalid YAML format", source=source) from e
    if data is None:
        return {}
    return _require_mapping(data, source)


def load_yaml_file(path: Union[str, Path]) -> Dict[str, Any]:
    """Read and parse a YAML file.

    Raises:
        LoadDataError: "YAML file not found" or "Invalid YAML format"
    """
    file_path = Path(path)
    if not file_path.is_file():
        raise LoadDataError("YAML file not found", source=str(file_path))
    text = file_path.read_text(encoding="utf-8")
    logger.debug(f"Loaded YAML file {file_path}")
    return load_yaml(text, source=str(file_path))


def parse_payload(text: Union[str, bytes], extension: str = "", source: Optional[str] = None) -> Dict[str, Any]:
    """Parse a payload by file extension.

    ``.json`` (or no extension) is JSON; ``.yaml``/``.yml`` is YAML.

    Raises:
        LoadDataError: For an unsupported extension or malformed payload
    """
    ext = extension.lower()
    if ext and not ext.startswith("."):
        ext = f".{ext}"
    if ext in JSON_EXTENSIONS:
        return load_json(text, source=source)
    if ext in YAML_EXTENSIONS:
        return load_yaml(text, source=source)
    raise LoadDataError(f"Unsupported file format: {extension}", source=source)


def _require_mapping(data: Any, source: Optional[str]) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise LoadDataError(
            f"Configuration payload must be a mapping, got {type(data).__name__}",
            source=source,
        )
    return data
