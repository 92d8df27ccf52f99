"""Test module for pending OTP stores."""

import dataclasses
from datetime import datetime, timedelta

import pytest

from conftest import DESTINATION
from marketplace_otp.db_models import OTP
from marketplace_otp.store import InMemoryOTPStore, PeeweeOTPStore
from marketplace_otp.types import Channel, PendingOTP

ISSUED_AT = datetime(2026, 1, 1, 12, 0, 0)


def make_record(issue_id="a" * 32, attempts=0, destination=DESTINATION):
    return PendingOTP(
        destination=destination,
        issue_id=issue_id,
        code_digest="digest-" + issue_id,
        issued_at=ISSUED_AT,
        expires_at=ISSUED_AT + timedelta(minutes=10),
        attempts=attempts,
        max_attempts=3,
        channel=Channel.WHATSAPP,
    )


@pytest.fixture(params=["peewee", "memory"])
def store(request):
    if request.param == "peewee":
        return PeeweeOTPStore()
    return InMemoryOTPStore()


def test_put_and_get(store):
    record = make_record()
    store.put(record)

    assert store.get(DESTINATION) == record
    assert store.get("+919876500000") is None


def test_put_replaces_existing(store):
    store.put(make_record(issue_id="a" * 32))
    store.put(make_record(issue_id="b" * 32))

    assert store.get(DESTINATION).issue_id == "b" * 32


def test_put_keeps_one_row_per_destination():
    store = PeeweeOTPStore()
    store.put(make_record(issue_id="a" * 32))
    store.put(make_record(issue_id="b" * 32))

    assert OTP.select().where(OTP.destination == DESTINATION).count() == 1


def test_put_if_current_inserts_only_when_absent(store):
    first = make_record(issue_id="a" * 32)
    second = make_record(issue_id="b" * 32)

    assert store.put_if_current(first, None) is True
    assert store.put_if_current(second, None) is False
    assert store.get(DESTINATION) == first


def test_put_if_current_replaces_read_version(store):
    first = make_record(issue_id="a" * 32)
    store.put(first)
    bumped = dataclasses.replace(first, attempts=1)
    store.compare_and_swap(DESTINATION, first, bumped)

    assert store.put_if_current(make_record(issue_id="b" * 32), first) is False
    assert store.put_if_current(make_record(issue_id="c" * 32), bumped) is True
    assert store.get(DESTINATION).issue_id == "c" * 32
    assert store.get(DESTINATION).attempts == 0


def test_delete(store):
    store.put(make_record())

    assert store.delete(DESTINATION) is True
    assert store.delete(DESTINATION) is False
    assert store.get(DESTINATION) is None


def test_compare_and_swap_update(store):
    record = make_record()
    store.put(record)
    updated = dataclasses.replace(record, attempts=1)

    assert store.compare_and_swap(DESTINATION, record, updated) is True
    assert store.get(DESTINATION).attempts == 1


def test_compare_and_swap_rejects_stale_attempts(store):
    record = make_record()
    store.put(record)
    store.compare_and_swap(DESTINATION, record, dataclasses.replace(record, attempts=1))

    assert (
        store.compare_and_swap(
            DESTINATION, record, dataclasses.replace(record, attempts=1)
        )
        is False
    )
    assert store.compare_and_swap(DESTINATION, record, None) is False
    assert store.get(DESTINATION).attempts == 1


def test_compare_and_swap_rejects_superseded_record(store):
    old = make_record(issue_id="a" * 32)
    store.put(old)
    store.put(make_record(issue_id="b" * 32))

    assert store.compare_and_swap(DESTINATION, old, None) is False
    assert store.get(DESTINATION).issue_id == "b" * 32


def test_compare_and_swap_delete_once(store):
    record = make_record()
    store.put(record)

    assert store.compare_and_swap(DESTINATION, record, None) is True
    assert store.compare_and_swap(DESTINATION, record, None) is False
    assert store.get(DESTINATION) is None


def test_purge_expired(store):
    store.put(make_record())
    store.put(make_record(destination="+919876500000"))

    assert store.purge_expired(ISSUED_AT + timedelta(minutes=5)) == 0
    assert store.purge_expired(ISSUED_AT + timedelta(minutes=11)) == 2
    assert store.get(DESTINATION) is None


def test_record_expiry_and_remaining():
    record = make_record(attempts=2)

    assert record.attempts_remaining == 1
    assert record.is_expired(ISSUED_AT + timedelta(minutes=10)) is False
    assert record.is_expired(ISSUED_AT + timedelta(minutes=10, seconds=1)) is True
