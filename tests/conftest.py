"""Shared fixtures for OTP vault tests."""

from datetime import datetime, timedelta

import pytest
from peewee import SqliteDatabase

from marketplace_otp.utils import create_tables, set_configs

DESTINATION = "+919876543210"


class FakeClock:
    """Controllable clock."""

    def __init__(self, start=None):
        self.now = start or datetime(2026, 1, 1, 12, 0, 0)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeDelivery:
    """Delivery method that records sent codes."""

    def __init__(self):
        self.sent = []
        self.fail = False
        self.error = None

    def send(self, destination, code, channel):
        if self.error:
            raise self.error
        if self.fail:
            return False, "Provider rejected the message."
        self.sent.append((destination, code, channel))
        return True, "OTP sent."

    @property
    def last_code(self):
        return self.sent[-1][1]


class FakeIdentityResolver:
    """Identity resolver returning a fixed id per destination."""

    def __init__(self):
        self.resolved = []

    def resolve(self, destination):
        self.resolved.append(destination)
        return f"eid-{destination}"


@pytest.fixture()
def set_testing_mode(tmp_path):
    """Set test mode."""
    key_file = tmp_path / "hashing.key"
    key_file.write_text("k" * 32, encoding="utf-8")

    set_configs("HMAC_KEY_FILE", str(key_file))
    set_configs("OTP_LENGTH", "6")
    set_configs("OTP_EXPIRY_MINUTES", "10")
    set_configs("OTP_MAX_VERIFY_ATTEMPTS", "3")
    set_configs("OTP_RESEND_COOLDOWN_SECONDS", "60")
    set_configs("OTP_MAX_REQUESTS", "5")
    set_configs("OTP_RATE_LIMIT_WINDOW_MINUTES", "60")
    set_configs("OTP_DEFAULT_REGION", "IN")
    set_configs("OTP_ALLOWED_REGIONS", "")
    set_configs("OTP_DEBUG_ECHO", "false")


@pytest.fixture(autouse=True)
def setup_teardown_database(tmp_path, set_testing_mode):
    """Setup and teardown test database."""
    from marketplace_otp.db_models import MODELS

    db_path = tmp_path / "test.db"
    test_db = SqliteDatabase(db_path)
    test_db.bind(MODELS)
    test_db.connect()
    create_tables(MODELS)

    yield test_db

    test_db.drop_tables(MODELS)
    test_db.close()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def delivery():
    return FakeDelivery()


@pytest.fixture()
def identity_resolver():
    return FakeIdentityResolver()
