"""
PMS configuration schema.

The loaded, validated form of a configuration document.  YAML is parsed
into these frozen types by ``pms_config.loader``; nothing downstream reads
YAML or environment variables itself.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from pms_kernel.domain.sequence import CodeFormat, SequenceType


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings handed to ``pms_kernel.db.engine.init_engine_from_url``."""

    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class WorkflowConfig:
    """Workflow dispatch switches.

    ``legacy_work_product_fallback`` treats unrecognized work-product
    operation codes as Add instead of rejecting them.
    """

    legacy_work_product_fallback: bool = False


@dataclass(frozen=True)
class PmsConfig:
    """A complete, validated configuration.  ``checksum`` identifies the source document."""

    database: DatabaseConfig
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    workflow: WorkflowConfig = field(default_factory=WorkflowConfig)
    sequence_formats: dict[SequenceType, CodeFormat] = field(default_factory=dict)
    checksum: str = ""
