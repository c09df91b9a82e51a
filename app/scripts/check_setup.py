"""
Pre-flight check for a new deployment. Run from project root:

  python -m app.scripts.check_setup

Creates the upload directories, verifies the database is reachable and that
JWT_SECRET is long enough. Exits 1 if any check fails.
"""

import logging
import sys

from app.core.config import get_settings
from app.core.database import check_db_connected, session_scope
from app.services.storage import FileStorage

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)

MIN_JWT_SECRET_LENGTH = 32


def main() -> int:
    settings = get_settings()
    ok = True

    storage = FileStorage.from_settings(settings)
    try:
        storage.ensure_directories()
        logger.info("Upload directories ready: %s", storage.upload_dir)
    except OSError as e:
        logger.error("Cannot create upload directories under %s: %s", storage.upload_dir, e)
        ok = False

    if len(settings.JWT_SECRET.get_secret_value()) < MIN_JWT_SECRET_LENGTH:
        logger.error("JWT_SECRET must be at least %s characters long", MIN_JWT_SECRET_LENGTH)
        ok = False
    else:
        logger.info("JWT secret length ok")

    with session_scope() as db:
        if check_db_connected(db):
            logger.info("Database connection ok")
        else:
            logger.error("Database is not reachable")
            ok = False

    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
