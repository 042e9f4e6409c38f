#!/usr/bin/env python3
"""Setup script for the court booking API: applies database migrations."""

import logging
import sys
from pathlib import Path

# Add the server directory to the Python path
server_dir = Path(__file__).parent.parent / "server"
sys.path.insert(0, str(server_dir))

from alembic import command
from alembic.config import Config

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def setup_database() -> None:
    """Bring the database schema up to the latest migration."""
    logger.info("Setting up database...")

    alembic_cfg = Config(str(server_dir / "db" / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(server_dir / "db" / "alembic"))

    logger.info("Running database migrations...")
    command.upgrade(alembic_cfg, "head")
    logger.info("Database migrations completed")


def main() -> None:
    """Main setup function."""
    logger.info("Starting court booking API setup...")

    try:
        setup_database()
    except Exception as e:
        logger.error(f"Database setup failed: {e}")
        raise

    logger.info("Setup completed successfully!")
    logger.info("You can now start the API server with: cd server && uvicorn courtbook.main:app --reload")


if __name__ == "__main__":
    main()
