# SPDX-License-Identifier: GPL-3.0-only
"""Database connection module."""

from peewee import DatabaseError, SqliteDatabase
from playhouse.mysql_ext import MySQLConnectorDatabase

from base_logger import get_logger
from marketplace_otp.utils import ensure_database_exists, get_configs

logger = get_logger(__name__)

MYSQL_DATABASE = get_configs("MYSQL_DATABASE")
MYSQL_HOST = get_configs("MYSQL_HOST")
MYSQL_PASSWORD = get_configs("MYSQL_PASSWORD")
MYSQL_USER = get_configs("MYSQL_USER")
SQLITE_DATABASE_PATH = get_configs(
    "SQLITE_DATABASE_PATH", default_value="marketplace_otp.db"
)


def connect():
    """Connect to the configured database.

    MySQL is used when MYSQL_HOST and MYSQL_DATABASE are set, otherwise
    SQLite at SQLITE_DATABASE_PATH.
    """
    if MYSQL_HOST and MYSQL_DATABASE:
        return connect_to_mysql()
    return connect_to_sqlite()


@ensure_database_exists(MYSQL_HOST, MYSQL_USER, MYSQL_PASSWORD, MYSQL_DATABASE)
def connect_to_mysql():
    """Connect to the MySQL database."""
    try:
        db = MySQLConnectorDatabase(
            MYSQL_DATABASE,
            user=MYSQL_USER,
            password=MYSQL_PASSWORD,
            host=MYSQL_HOST,
            charset="utf8mb4",
            collation="utf8mb4_unicode_ci",
        )
        logger.info("Connected to MySQL database successfully.")
        return db
    except DatabaseError as error:
        logger.error("Failed to connect to MySQL database: %s", error)
        raise


def connect_to_sqlite(db_path: str = None):
    """Connect to the SQLite database."""
    db_path = db_path or SQLITE_DATABASE_PATH
    db = SqliteDatabase(db_path, pragmas={"journal_mode": "wal", "busy_timeout": 5000})
    logger.debug("Using SQLite database at %s", db_path)
    return db
