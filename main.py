#!/usr/bin/env python3
"""
Flashcard rating engine
Database setup entry point
"""

import logging

from flashcard_elo.config import get_settings
from flashcard_elo.database import init_db


def main(db_path: str | None = None):
    """Main application entry point"""
    # Load configuration
    settings = get_settings()

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    logger = logging.getLogger(__name__)
    logger.info("Initializing flashcard rating database...")

    try:
        db_manager = init_db(db_path)
    except Exception as e:
        logger.error(f"Unexpected error: {e}")
        raise

    logger.info(
        f"Database ready at {db_manager.db_connection.db_path} "
        f"(bounds={settings.dampening_curve}, streak={settings.streak_curve}, "
        f"recency={settings.recency_curve})"
    )
    return db_manager


if __name__ == "__main__":
    main()
