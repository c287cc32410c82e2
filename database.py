"""
MongoDB connection. ``db`` stays None when DATABASE_URL / DATABASE_NAME are not set,
and the API answers "Database not configured" in that case.
"""

import logging

from pymongo import MongoClient

import config

logger = logging.getLogger(__name__)

client = None
db = None

if config.DATABASE_URL and config.DATABASE_NAME:
    # tz_aware so stored UTC instants come back as aware datetimes
    client = MongoClient(config.DATABASE_URL, tz_aware=True)
    db = client[config.DATABASE_NAME]
    logger.info("MongoDB configured for database %s", config.DATABASE_NAME)
else:
    logger.warning("DATABASE_URL or DATABASE_NAME not set; running without a database")
