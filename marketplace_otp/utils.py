# SPDX-License-Identifier: GPL-3.0-only
"""Utilities module."""

import hashlib
import hmac
import os
import uuid
from functools import wraps
from typing import Any, Callable, List, Optional

import mysql.connector
from peewee import DatabaseError

from base_logger import get_logger

logger = get_logger(__name__)


def load_key(filepath: str, key_length: int) -> bytes:
    """Load key from file and return first key_length characters as bytes.

    Args:
        filepath: Path to the key file.
        key_length: Number of characters to load.

    Returns:
        Key bytes.

    Raises:
        FileNotFoundError: If file doesn't exist.
        ValueError: If the key is shorter than key_length.
    """
    try:
        with open(filepath, "r", encoding="utf-8") as f:
            key = f.readline().strip()[:key_length]
    except FileNotFoundError:
        logger.error(
            "Key file not found at %s. Please check the configuration.",
            filepath,
        )
        raise

    if len(key) != key_length:
        logger.error(
            "Invalid key length in file %s: expected %d characters, got %d.",
            filepath,
            key_length,
            len(key),
        )
        raise ValueError("Invalid key length.")

    return key.encode("utf-8")


def create_tables(models: List[Any]) -> None:
    """Create tables for given Peewee models if they don't exist.

    Args:
        models: List of Peewee Model classes.
    """
    if not models:
        logger.warning("No models provided for table creation.")
        return

    try:
        databases = {}
        for model in models:
            databases.setdefault(model._meta.database, []).append(model)

        for database, db_models in databases.items():
            with database.atomic():
                existing_tables = set(database.get_tables())
                tables_to_create = [
                    model
                    for model in db_models
                    if model._meta.table_name not in existing_tables
                ]

                if tables_to_create:
                    database.create_tables(tables_to_create)
                    logger.info(
                        "Created tables: %s",
                        [model._meta.table_name for model in tables_to_create],
                    )
                else:
                    logger.debug("No new tables to create.")

    except DatabaseError as e:
        logger.error("An error occurred while creating tables: %s", e)
        raise


def ensure_database_exists(
    host: str, user: str, password: str, database_name: str
) -> Callable:
    """Decorator to ensure MySQL database exists before function execution.

    Args:
        host: MySQL server host address.
        user: MySQL username.
        password: MySQL password.
        database_name: Database name.

    Returns:
        Decorated function.
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                with mysql.connector.connect(
                    host=host,
                    user=user,
                    password=password,
                    charset="utf8mb4",
                    collation="utf8mb4_unicode_ci",
                ) as connection:
                    with connection.cursor() as cursor:
                        cursor.execute(
                            "CREATE DATABASE IF NOT EXISTS `%s`"
                            % database_name.replace("`", "")
                        )

            except mysql.connector.Error as error:
                logger.error("Failed to create database: %s", error)

            return func(*args, **kwargs)

        return wrapper

    return decorator


def get_configs(config_name: str, strict: bool = False, default_value: str = "") -> str:
    """Retrieve configuration from environment variables.

    Args:
        config_name: Configuration name.
        strict: If True, raises error if not found.
        default_value: Default value if not found and not strict.

    Returns:
        Configuration value.

    Raises:
        KeyError: If strict is True and config not found.
        ValueError: If strict is True and value is empty.
    """
    try:
        value = (
            os.environ[config_name]
            if strict
            else os.environ.get(config_name) or default_value
        )
        if strict and (value is None or value.strip() == ""):
            raise ValueError(f"Configuration '{config_name}' is missing or empty.")
        return value
    except KeyError as error:
        logger.error(
            "Configuration '%s' not found in environment variables: %s",
            config_name,
            error,
        )
        raise
    except ValueError as error:
        logger.error("Configuration '%s' is empty: %s", config_name, error)
        raise


def get_bool_config(key: str, default_value: bool = False) -> bool:
    """Retrieve config value as boolean.

    Args:
        key: Configuration key.
        default_value: Default if missing or invalid.

    Returns:
        Boolean value.
    """
    value = get_configs(key)
    if not value:
        return default_value

    value = value.strip().lower()
    if value in {"true", "1", "yes", "on"}:
        return True
    if value in {"false", "0", "no", "off"}:
        return False
    return default_value


def get_list_config(key: str, default_value: Optional[List[str]] = None) -> List[str]:
    """Retrieve config value as list of upper-cased strings.

    Args:
        key: Configuration key.
        default_value: Default if missing.

    Returns:
        List of strings.
    """
    value = get_configs(key)
    if not value:
        return default_value or []

    items = value.strip("[]")
    return [c.strip().strip("'\"").upper() for c in items.split(",") if c.strip()]


def set_configs(config_name: str, config_value: Any) -> None:
    """Set environment variable configuration.

    Args:
        config_name: Configuration name.
        config_value: Configuration value.

    Raises:
        ValueError: If config_name is empty.
    """
    if not config_name:
        error_message = (
            f"Cannot set configuration. Invalid config_name '{config_name}'."
        )
        logger.error(error_message)
        raise ValueError(error_message)

    if isinstance(config_value, bool):
        config_value = str(config_value).lower()
    os.environ[config_name] = str(config_value)


def generate_eid(
    identifier_hash: str, namespace: uuid.UUID = uuid.NAMESPACE_DNS
) -> str:
    """Generate UUID5 from identifier hash.

    Args:
        identifier_hash: Hash of the phone number.
        namespace: UUID namespace.

    Returns:
        Hex representation of generated UUID.
    """
    return uuid.uuid5(namespace, identifier_hash).hex


def hash_data(data: str) -> str:
    """Generate HMAC-SHA512 hash of data with the configured key.

    Args:
        data: Data to hash.

    Returns:
        Hex encoded HMAC.
    """
    hashing_key = load_key(get_configs("HMAC_KEY_FILE", strict=True), 32)
    return hmac.new(hashing_key, data.encode("utf-8"), hashlib.sha512).hexdigest()


def verify_hash(data: str, expected_hash: str) -> bool:
    """Verify HMAC hash of data in constant time.

    Args:
        data: Data to verify.
        expected_hash: Expected HMAC hash.

    Returns:
        Boolean indicating if hash matches.
    """
    return hmac.compare_digest(hash_data(data), expected_hash)
