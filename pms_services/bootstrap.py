"""
pms_services.bootstrap -- Process start-up from a configuration document.

Loads the active configuration, applies its logging settings and opens the
database engine, in that order, so the engine's start-up line is already
structured JSON.  ``configure_logging`` is idempotent: when the host
process configured logging first, its level stands.
"""

from __future__ import annotations

from pathlib import Path

from pms_config import PmsConfig, get_active_config
from pms_kernel.db.engine import create_tables, init_engine_from_url
from pms_kernel.logging_config import configure_logging, get_logger

logger = get_logger("services.bootstrap")


def bootstrap(
    config_path: Path | str | None = None,
    *,
    create_schema: bool = False,
) -> PmsConfig:
    """Configure logging and the database from one configuration document.

    Args:
        config_path: Document to load; the packaged defaults when omitted.
        create_schema: Create missing tables (the sequence counter table).

    Returns:
        The loaded ``PmsConfig`` for the caller to hand to services.
    """
    config = get_active_config(config_path)

    configure_logging(level=config.logging.level)

    db = config.database
    init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
    )
    if create_schema:
        create_tables()

    logger.info(
        "pms_bootstrapped",
        extra={
            "checksum": config.checksum,
            "logging_level": config.logging.level,
            "schema_created": create_schema,
        },
    )
    return config
