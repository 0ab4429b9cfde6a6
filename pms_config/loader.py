"""
Configuration Loader (``pms_config.loader``).

Responsibility
--------------
Loads a YAML configuration document and parses it into the frozen
``pms_config.schema`` dataclasses.  The runtime entry point is
``pms_config.get_active_config()``; this module is its parsing half.

Architecture position
---------------------
**Config layer**.  Depends on ``pms_kernel.domain`` for the sequence
types only; the kernel never imports this package.

Invariants enforced
-------------------
* No silent defaults for required fields: ``database.url`` and
  ``sequence_formats`` must be present.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` is deterministic for identical documents.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Values of the wrong shape  -> ``ValueError`` naming the key.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from pms_config.schema import DatabaseConfig, LoggingConfig, PmsConfig, WorkflowConfig
from pms_kernel.domain.sequence import CodeFormat, ConcatPosition, SequenceType

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def _as_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ValueError(f"{key} must be true or false, got {value!r}")


def _as_positive_int(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{key} must be a non-negative integer, got {value!r}")
    return value


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    url = data["url"]
    if not isinstance(url, str) or not url:
        raise ValueError(f"database.url must be a non-empty string, got {url!r}")
    return DatabaseConfig(
        url=url,
        echo=_as_bool(data.get("echo", False), "database.echo"),
        pool_size=_as_positive_int(data.get("pool_size", 20), "database.pool_size"),
        max_overflow=_as_positive_int(
            data.get("max_overflow", 10), "database.max_overflow"
        ),
    )


def parse_logging(data: dict[str, Any]) -> LoggingConfig:
    level = str(data.get("level", "INFO")).upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"logging.level must be one of {sorted(_LOG_LEVELS)}, got {level!r}")
    return LoggingConfig(level=level)


def parse_workflow(data: dict[str, Any]) -> WorkflowConfig:
    return WorkflowConfig(
        legacy_work_product_fallback=_as_bool(
            data.get("legacy_work_product_fallback", False),
            "workflow.legacy_work_product_fallback",
        ),
    )


def parse_code_format(data: dict[str, Any], key: str) -> CodeFormat:
    digit_width = data["digit_width"]
    if isinstance(digit_width, bool) or not isinstance(digit_width, int) or digit_width < 1:
        raise ValueError(f"{key}.digit_width must be a positive integer, got {digit_width!r}")
    try:
        position = ConcatPosition(str(data.get("position", "before")).lower())
    except ValueError:
        raise ValueError(
            f"{key}.position must be 'before' or 'after', got {data.get('position')!r}"
        ) from None
    return CodeFormat(
        digit_width=digit_width,
        concat=str(data.get("concat") or ""),
        position=position,
    )


def parse_sequence_formats(data: dict[str, Any]) -> dict[SequenceType, CodeFormat]:
    """Parse ``{SEQUENCE_TYPE_NAME: {digit_width, concat, position}}``."""
    formats: dict[SequenceType, CodeFormat] = {}
    for name, spec in data.items():
        key = f"sequence_formats.{name}"
        try:
            seq_type = SequenceType[str(name).upper()]
        except KeyError:
            raise ValueError(f"{key}: unknown sequence type") from None
        if not isinstance(spec, dict):
            raise ValueError(f"{key} must be a mapping")
        formats[seq_type] = parse_code_format(spec, key)
    return formats


def parse_config(data: dict[str, Any]) -> PmsConfig:
    """Parse a whole configuration document."""
    return PmsConfig(
        database=parse_database(data["database"]),
        logging=parse_logging(data.get("logging") or {}),
        workflow=parse_workflow(data.get("workflow") or {}),
        sequence_formats=parse_sequence_formats(data["sequence_formats"]),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Postconditions:
        - Identical ``data`` always produces identical checksums, whatever
          the key order of the source document.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()

