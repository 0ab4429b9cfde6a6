"""
pms_config -- single public entrypoint for PMS configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``PmsConfig``; YAML parsing
    lives in ``pms_config.loader`` and is never needed by callers.

Architecture position:
    Configuration -- sits above ``pms_kernel`` and beside ``pms_services``.
    The kernel and the engines MUST NEVER import from ``pms_config``;
    callers pass the relevant pieces (a database URL, a ``CodeFormat``
    table, a ``WorkflowConfig``) down explicitly.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Deterministic identity: the same document always yields the same
      ``checksum``.

Failure modes:
    - ``FileNotFoundError`` -- the requested document does not exist.
    - ``yaml.YAMLError`` -- the document is not valid YAML.
    - ``KeyError`` -- a required key is missing.
    - ``ValueError`` -- a value has the wrong shape; the message names the key.

Audit relevance:
    Every successful call emits a ``PMS_CONFIG_TRACE`` log entry with the
    source path, checksum and the number of configured sequence formats.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pms_config.loader import compute_checksum, load_yaml_file, parse_config
from pms_config.schema import DatabaseConfig, LoggingConfig, PmsConfig, WorkflowConfig

_logger = logging.getLogger("pms_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(path: Path | str | None = None) -> PmsConfig:
    """The ONLY public configuration entrypoint.

    Args:
        path: Configuration document to load.  Defaults to the packaged
            ``defaults.yaml``.

    Returns:
        A frozen ``PmsConfig``.  Not cached; callers hold on to it.
    """
    source = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    config = parse_config(load_yaml_file(source))

    _logger.info(
        "PMS_CONFIG_TRACE",
        extra={
            "trace_type": "PMS_CONFIG_TRACE",
            "config_path": str(source),
            "checksum": config.checksum,
            "sequence_format_count": len(config.sequence_formats),
            "legacy_work_product_fallback": config.workflow.legacy_work_product_fallback,
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "DatabaseConfig",
    "LoggingConfig",
    "PmsConfig",
    "WorkflowConfig",
    "compute_checksum",
    "get_active_config",
]
