"""
Schema upkeep for the document store.

``create_all`` only creates missing tables; anything beyond that (extra
indexes, later column changes) is listed in ``MIGRATIONS`` and replayed on
every startup, so each statement has to be a no-op the second time.
"""

import logging

from sqlalchemy import text

from sensorwatch.backend.database import engine

logger = logging.getLogger(__name__)


MIGRATIONS = [
    {
        "version": "001",
        "description": "documents: index on (collection, updated_at) for per-collection scans",
        "sql": """
            CREATE INDEX IF NOT EXISTS ix_documents_collection_updated_at
            ON documents (collection, updated_at);
        """
    },
]


def run_migrations(bind=None):
    """Replay ``MIGRATIONS`` in version order; stops at the first failure."""
    target = bind or engine
    with target.connect() as conn:
        for migration in MIGRATIONS:
            logger.info(f"Migration {migration['version']}: {migration['description']}")
            try:
                conn.execute(text(migration["sql"]))
                conn.commit()
            except Exception as e:
                logger.error(f"Migration {migration['version']} failed: {e}")
                raise

    logger.info(f"Schema up to date ({len(MIGRATIONS)} migrations checked)")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run_migrations()
