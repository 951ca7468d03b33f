from __future__ import annotations

import logging
from pathlib import Path

from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from app.core.config import (
    APP_PUBLIC_URL,
    DATABASE_URL,
    ENV_NORMALIZED,
    IDENTITY_JWT_SECRET,
    IS_PROD,
    SHOPIFY_ADMIN_ACCESS_TOKEN,
)

logger = logging.getLogger(__name__)
MIGRATIONS_PREFIX = "[MIGRATIONS]"
CONFIG_PREFIX = "[CONFIG]"


def validate_database_environment() -> None:
    if IS_PROD and DATABASE_URL.startswith("sqlite"):
        logger.critical("%s SQLite is forbidden in production", MIGRATIONS_PREFIX)
        raise RuntimeError("SQLite is forbidden in production environment")


def validate_runtime_settings() -> None:
    """Settings without which staff auth or rider links break in production."""
    if not IS_PROD:
        return
    if not IDENTITY_JWT_SECRET:
        logger.critical("%s IDENTITY_JWT_SECRET is not set", CONFIG_PREFIX)
        raise RuntimeError("IDENTITY_JWT_SECRET is required in production")
    if APP_PUBLIC_URL.startswith("http://"):
        logger.critical("%s APP_PUBLIC_URL must be https url=%s", CONFIG_PREFIX, APP_PUBLIC_URL)
        raise RuntimeError("APP_PUBLIC_URL must use https in production")
    if not SHOPIFY_ADMIN_ACCESS_TOKEN:
        logger.warning("%s SHOPIFY_ADMIN_ACCESS_TOKEN not set, invoice sync to Shopify disabled", CONFIG_PREFIX)


def ensure_migrations_applied(*, engine: Engine, alembic_config_path: Path) -> None:
    """Refuse to start when the database is not at the Alembic head revision."""
    if ENV_NORMALIZED in {"test", "dev", "development", "local"}:
        logger.info("%s skipped migration check env=%s", MIGRATIONS_PREFIX, ENV_NORMALIZED)
        return

    if not alembic_config_path.exists():
        logger.critical("%s alembic config not found path=%s", MIGRATIONS_PREFIX, alembic_config_path)
        raise RuntimeError("alembic config not found")

    alembic_cfg = Config(str(alembic_config_path))
    script_directory = ScriptDirectory.from_config(alembic_cfg)
    expected_heads = set(script_directory.get_heads())

    with engine.connect() as connection:
        inspector = inspect(connection)
        if "alembic_version" not in inspector.get_table_names():
            logger.critical("%s alembic_version table missing", MIGRATIONS_PREFIX)
            raise RuntimeError("Database has no migration state")

        current_rows = connection.exec_driver_sql("SELECT version_num FROM alembic_version").fetchall()

    current_heads = {row[0] for row in current_rows if row and row[0]}
    if current_heads != expected_heads:
        logger.critical(
            "%s pending migration detected current=%s expected=%s",
            MIGRATIONS_PREFIX,
            sorted(current_heads),
            sorted(expected_heads),
        )
        raise RuntimeError("Pending migrations detected")

    logger.info("%s migration state verified", MIGRATIONS_PREFIX)
