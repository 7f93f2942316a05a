"""
Migration Runner - Runs Alembic migrations at application startup.

Pending migrations are applied before the service accepts requests.
"""

from dataclasses import dataclass
from pathlib import Path

from sqlalchemy import Engine, create_engine
from structlog import get_logger

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from app.config import settings

logger = get_logger(__name__)

# Path to alembic.ini relative to project root
ALEMBIC_INI_PATH = Path(__file__).parent.parent.parent / "alembic.ini"


@dataclass(frozen=True)
class MigrationStatus:
    """Current vs head revision of the database schema."""

    current_revision: str | None
    head_revision: str | None

    @property
    def pending(self) -> bool:
        return self.current_revision != self.head_revision


def _get_sync_database_url() -> str:
    """Get synchronous database URL for migrations.

    Alembic's command API uses synchronous connections, so asyncpg URLs
    are converted to psycopg2 URLs.
    """
    return settings.database_url.replace("asyncpg", "psycopg2")


def _build_config() -> Config:
    alembic_cfg = Config(str(ALEMBIC_INI_PATH))
    alembic_cfg.set_main_option("sqlalchemy.url", _get_sync_database_url().replace("%", "%%"))
    return alembic_cfg


def _get_current_revision(engine: Engine) -> str | None:
    """Get the current database revision."""
    with engine.connect() as conn:
        context = MigrationContext.configure(conn)
        return context.get_current_revision()


def _get_head_revision(alembic_cfg: Config) -> str | None:
    """Get the head revision from migration scripts."""
    script = ScriptDirectory.from_config(alembic_cfg)
    return script.get_current_head()


def run_migrations() -> None:
    """
    Run pending Alembic migrations.

    Only runs migrations if there are pending ones.

    Raises:
        RuntimeError: Migration failed
    """
    if not ALEMBIC_INI_PATH.exists():
        logger.warning("alembic_config_missing", path=str(ALEMBIC_INI_PATH))
        return

    try:
        alembic_cfg = _build_config()
        engine = create_engine(_get_sync_database_url())

        try:
            current = _get_current_revision(engine)
            head = _get_head_revision(alembic_cfg)

            if current == head:
                logger.info("database_schema_up_to_date", revision=current)
                return

            logger.info("database_migrations_running", from_revision=current, to_revision=head)
            command.upgrade(alembic_cfg, "head")

            logger.info(
                "database_migrations_complete", revision=_get_current_revision(engine)
            )

        finally:
            engine.dispose()

    except Exception as e:
        logger.error("database_migration_failed", error=str(e))
        raise RuntimeError(f"Database migration failed: {e}") from e


def check_migrations_status() -> MigrationStatus:
    """Check migration status without applying them."""
    alembic_cfg = _build_config()
    engine = create_engine(_get_sync_database_url())
    try:
        return MigrationStatus(
            current_revision=_get_current_revision(engine),
            head_revision=_get_head_revision(alembic_cfg),
        )
    finally:
        engine.dispose()
