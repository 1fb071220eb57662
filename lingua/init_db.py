"""Create the database tables and report the current recording statistics."""

import logging
import sys

from lingua.config import get_settings
from lingua.database import Database
from lingua.services.recording import get_recording_registry

logger = logging.getLogger("lingua")


def init_database(database: Database) -> None:
    """Open the database (creating missing tables) and log what it holds."""
    database.open()
    try:
        db = database.session()
        try:
            stats = get_recording_registry().stats(db)
        finally:
            db.close()

        logger.info("Database ready: %s", database.url)
        logger.info("Recordings: %d, total size: %d bytes", stats.count, stats.total_bytes)
        if stats.earliest_created_at:
            logger.info("First recording: %s", stats.earliest_created_at.isoformat())
            logger.info("Last recording: %s", stats.latest_created_at.isoformat())
    finally:
        database.close()


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    settings = get_settings()
    try:
        init_database(Database(settings.DATABASE_URL))
    except Exception:
        logger.exception("Database initialization failed")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
