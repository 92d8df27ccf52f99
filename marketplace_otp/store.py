# SPDX-License-Identifier: GPL-3.0-only
"""Pending OTP storage.

Records are keyed by destination. The issuer writes through
:meth:`OTPStore.put_if_current` and the verifier through
:meth:`OTPStore.compare_and_swap`; both only apply when the stored record is
still the version the caller read.
"""

import threading
import weakref
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Optional

from peewee import IntegrityError

from base_logger import get_logger
from marketplace_otp.db_models import OTP
from marketplace_otp.types import Channel, PendingOTP

logger = get_logger(__name__)


class OTPStore(ABC):
    """Keyed store for pending OTP records."""

    @abstractmethod
    def get(self, destination: str) -> Optional[PendingOTP]:
        """Return the pending record for a destination, if any."""

    @abstractmethod
    def put(self, record: PendingOTP) -> None:
        """Insert a record, replacing any existing one for its destination."""

    @abstractmethod
    def put_if_current(
        self, record: PendingOTP, expected: Optional[PendingOTP]
    ) -> bool:
        """Write ``record`` only if the stored record is still ``expected``.

        With ``expected`` None the write only succeeds when no record exists
        for the destination. Returns False when another writer got there first.
        """

    @abstractmethod
    def delete(self, destination: str) -> bool:
        """Delete the record for a destination. Returns True if one existed."""

    @abstractmethod
    def compare_and_swap(
        self, destination: str, expected: PendingOTP, new: Optional[PendingOTP]
    ) -> bool:
        """Atomically replace ``expected`` with ``new`` (or delete when None).

        Returns:
            True if the stored record still matched ``expected`` and was
            swapped, False otherwise.
        """

    @abstractmethod
    def purge_expired(self, now: datetime) -> int:
        """Delete every record whose expiry is before ``now``."""


class PeeweeOTPStore(OTPStore):
    """Store backed by the ``otp`` table."""

    @staticmethod
    def _to_record(otp_entry: OTP) -> PendingOTP:
        return PendingOTP(
            destination=otp_entry.destination,
            issue_id=otp_entry.issue_id,
            code_digest=otp_entry.code_digest,
            issued_at=otp_entry.date_issued,
            expires_at=otp_entry.date_expires,
            attempts=otp_entry.attempt_count,
            max_attempts=otp_entry.max_attempts,
            channel=Channel(otp_entry.channel),
        )

    @staticmethod
    def _columns(record: PendingOTP) -> dict:
        return {
            "issue_id": record.issue_id,
            "code_digest": record.code_digest,
            "channel": record.channel.value,
            "attempt_count": record.attempts,
            "max_attempts": record.max_attempts,
            "date_issued": record.issued_at,
            "date_expires": record.expires_at,
        }

    @staticmethod
    def _version_filter(destination: str, expected: PendingOTP):
        return [
            OTP.destination == destination,
            OTP.issue_id == expected.issue_id,
            OTP.attempt_count == expected.attempts,
        ]

    def get(self, destination: str) -> Optional[PendingOTP]:
        otp_entry = OTP.get_or_none(OTP.destination == destination)
        return self._to_record(otp_entry) if otp_entry else None

    def put(self, record: PendingOTP) -> None:
        OTP.replace(destination=record.destination, **self._columns(record)).execute()
        logger.debug("OTP record stored")

    def put_if_current(
        self, record: PendingOTP, expected: Optional[PendingOTP]
    ) -> bool:
        if expected is not None:
            return self.compare_and_swap(record.destination, expected, record)

        try:
            with OTP._meta.database.atomic():
                OTP.insert(
                    destination=record.destination, **self._columns(record)
                ).execute()
        except IntegrityError:
            logger.debug("OTP record already exists, insert skipped")
            return False

        logger.debug("OTP record stored")
        return True

    def delete(self, destination: str) -> bool:
        rows = OTP.delete().where(OTP.destination == destination).execute()
        return rows > 0

    def compare_and_swap(
        self, destination: str, expected: PendingOTP, new: Optional[PendingOTP]
    ) -> bool:
        conditions = self._version_filter(destination, expected)

        with OTP._meta.database.atomic():
            if new is None:
                rows = OTP.delete().where(*conditions).execute()
            else:
                rows = OTP.update(**self._columns(new)).where(*conditions).execute()

        if rows == 0:
            logger.debug("OTP record changed concurrently, swap skipped")
        return rows == 1

    def purge_expired(self, now: datetime) -> int:
        rows = OTP.delete().where(OTP.date_expires < now).execute()
        logger.info("Purged %d expired OTP records", rows)
        return rows


class InMemoryOTPStore(OTPStore):
    """Process-local store guarded by one lock per destination."""

    def __init__(self):
        self._records: Dict[str, PendingOTP] = {}
        self._destination_locks: "weakref.WeakValueDictionary[str, threading.Lock]" = (
            weakref.WeakValueDictionary()
        )
        self._locks_lock = threading.Lock()

    def _get_destination_lock(self, destination: str) -> threading.Lock:
        """Get or create a lock for a destination."""
        with self._locks_lock:
            lock = self._destination_locks.get(destination)
            if lock is None:
                lock = threading.Lock()
                self._destination_locks[destination] = lock
            return lock

    @staticmethod
    def _matches(
        current: Optional[PendingOTP], expected: Optional[PendingOTP]
    ) -> bool:
        if current is None or expected is None:
            return current is expected
        return (
            current.issue_id == expected.issue_id
            and current.attempts == expected.attempts
        )

    def get(self, destination: str) -> Optional[PendingOTP]:
        with self._get_destination_lock(destination):
            return self._records.get(destination)

    def put(self, record: PendingOTP) -> None:
        with self._get_destination_lock(record.destination):
            self._records[record.destination] = record

    def put_if_current(
        self, record: PendingOTP, expected: Optional[PendingOTP]
    ) -> bool:
        with self._get_destination_lock(record.destination):
            if not self._matches(self._records.get(record.destination), expected):
                return False
            self._records[record.destination] = record
            return True

    def delete(self, destination: str) -> bool:
        with self._get_destination_lock(destination):
            return self._records.pop(destination, None) is not None

    def compare_and_swap(
        self, destination: str, expected: PendingOTP, new: Optional[PendingOTP]
    ) -> bool:
        with self._get_destination_lock(destination):
            if not self._matches(self._records.get(destination), expected):
                return False

            if new is None:
                del self._records[destination]
            else:
                self._records[destination] = new
            return True

    def purge_expired(self, now: datetime) -> int:
        purged = 0
        for destination in list(self._records):
            with self._get_destination_lock(destination):
                record = self._records.get(destination)
                if record is not None and record.is_expired(now):
                    del self._records[destination]
                    purged += 1
        logger.info("Purged %d expired OTP records", purged)
        return purged
