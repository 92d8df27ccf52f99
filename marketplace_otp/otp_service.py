# SPDX-License-Identifier: GPL-3.0-only
"""OTP Service Module - issues and verifies phone OTP codes."""

import dataclasses
import datetime
import math
import re
import secrets
import string
from typing import Callable, Optional, Union

from base_logger import get_logger
from marketplace_otp.delivery import DeliveryMethod
from marketplace_otp.destination import (
    InvalidDestinationError,
    mask_destination,
    normalize_destination,
)
from marketplace_otp.identity import IdentityResolver
from marketplace_otp.rate_limit import OTPRateLimiter
from marketplace_otp.settings import OTPSettings
from marketplace_otp.store import OTPStore
from marketplace_otp.types import (
    Channel,
    IssueResult,
    OTPError,
    PendingOTP,
    VerifyResult,
)
from marketplace_otp.utils import hash_data, verify_hash

logger = get_logger(__name__)

CODE_SEPARATORS = re.compile(r"[\s-]")

MESSAGES = {
    OTPError.INVALID_DESTINATION: "Enter a valid mobile number.",
    OTPError.DELIVERY_FAILED: "Failed to send OTP. Try again.",
    OTPError.TOO_SOON: "Please wait before requesting a new OTP.",
    OTPError.RATE_LIMITED: "Too many OTP requests. Wait and try again.",
    OTPError.NOT_FOUND: "No OTP found. Request a new one.",
    OTPError.EXPIRED: "OTP expired. Request a new one.",
    OTPError.INVALID_CODE: "Incorrect OTP. Try again.",
    OTPError.MAX_ATTEMPTS_EXCEEDED: (
        "Too many incorrect attempts. OTP invalidated. Request a new one."
    ),
}


def generate_otp(length: int = 6) -> str:
    """Generate random numeric OTP."""
    return "".join(secrets.choice(string.digits) for _ in range(length))


def hash_code(destination: str, code: str) -> str:
    """Digest of a code bound to its destination."""
    return hash_data(f"{destination}:{code}")


def normalize_code(submitted_code: Optional[str]) -> str:
    """Strip whitespace and separators from user input."""
    return CODE_SEPARATORS.sub("", submitted_code or "")


class OTPService:
    """Issues and verifies one-time passcodes for phone numbers.

    Args:
        store: Pending OTP storage.
        delivery: Provider used to send codes.
        identity_resolver: Resolves a verified number to an identity.
        rate_limiter: Optional issuance limiter. No limit when None.
        settings: Policy settings, read from the environment when omitted.
        clock: Callable returning the current time.
    """

    def __init__(
        self,
        store: OTPStore,
        delivery: DeliveryMethod,
        identity_resolver: IdentityResolver,
        rate_limiter: Optional[OTPRateLimiter] = None,
        settings: Optional[OTPSettings] = None,
        clock: Optional[Callable[[], datetime.datetime]] = None,
    ):
        self.store = store
        self.delivery = delivery
        self.identity_resolver = identity_resolver
        self.rate_limiter = rate_limiter
        self.settings = settings or OTPSettings.from_env()
        self.clock = clock or datetime.datetime.now

    def normalize_destination(self, destination: str) -> str:
        """Validate a destination with the configured regions."""
        return normalize_destination(
            destination,
            default_region=self.settings.default_region,
            allowed_regions=self.settings.allowed_regions,
        )

    def issue(
        self, destination: str, channel: Union[Channel, str] = Channel.SMS
    ) -> IssueResult:
        """Generate, store and deliver a new code for a destination."""
        logger.debug("Issuing OTP")

        try:
            destination = self.normalize_destination(destination)
        except InvalidDestinationError as e:
            logger.info("OTP issue rejected: %s", e)
            return self._issue_failure(OTPError.INVALID_DESTINATION, message=str(e))

        channel = Channel(channel)
        now = self.clock()

        existing = self.store.get(destination)
        if existing and not existing.is_expired(now):
            ready_at = existing.issued_at + datetime.timedelta(
                seconds=self.settings.resend_cooldown_seconds
            )
            if now < ready_at:
                retry_after = math.ceil((ready_at - now).total_seconds())
                logger.info("OTP resend requested within cooldown")
                return self._issue_failure(OTPError.TOO_SOON, retry_after=retry_after)

        if self.rate_limiter:
            retry_after = self.rate_limiter.retry_after(destination)
            if retry_after is not None:
                return self._issue_failure(
                    OTPError.RATE_LIMITED, retry_after=retry_after
                )

        code = generate_otp(self.settings.code_length)
        record = PendingOTP(
            destination=destination,
            issue_id=secrets.token_hex(16),
            code_digest=hash_code(destination, code),
            issued_at=now,
            expires_at=now + datetime.timedelta(minutes=self.settings.expiry_minutes),
            attempts=0,
            max_attempts=self.settings.max_verify_attempts,
            channel=channel,
        )
        if not self.store.put_if_current(record, existing):
            logger.info("Concurrent OTP issuance won by another request")
            return self._issue_failure(
                OTPError.TOO_SOON, retry_after=self.settings.resend_cooldown_seconds
            )
        logger.info("OTP record created for %s", mask_destination(destination))

        if self.rate_limiter:
            self.rate_limiter.increment(destination)

        try:
            delivered, provider_message = self.delivery.send(destination, code, channel)
        except Exception as e:
            logger.error("Delivery provider error: %s", e)
            delivered, provider_message = False, str(e)

        if not delivered:
            self.store.compare_and_swap(destination, record, None)
            logger.warning("OTP delivery failed, record removed: %s", provider_message)
            return self._issue_failure(OTPError.DELIVERY_FAILED)

        via = "WhatsApp" if channel == Channel.WHATSAPP else "SMS"
        return IssueResult(
            success=True,
            message=f"OTP sent via {via}. Check your phone.",
            expires_at=record.expires_at,
            debug_code=code if self.settings.debug_echo else None,
        )

    def verify(self, destination: str, submitted_code: str) -> VerifyResult:
        """Check a submitted code against the pending record for a destination."""
        logger.debug("Verifying OTP")

        try:
            destination = self.normalize_destination(destination)
        except InvalidDestinationError as e:
            logger.info("OTP verify rejected: %s", e)
            return self._verify_failure(OTPError.INVALID_DESTINATION, message=str(e))

        code = normalize_code(submitted_code)

        # A lost swap means another request advanced or removed the record,
        # so the number of passes is bounded by the attempt budget.
        while True:
            record = self.store.get(destination)

            if record is None:
                return self._verify_failure(OTPError.NOT_FOUND)

            if record.is_expired(self.clock()):
                self.store.compare_and_swap(destination, record, None)
                logger.info("Expired OTP removed")
                return self._verify_failure(OTPError.EXPIRED)

            if verify_hash(f"{destination}:{code}", record.code_digest):
                if not self.store.compare_and_swap(destination, record, None):
                    continue
                return self._verified(destination)

            attempts = record.attempts + 1
            if attempts >= record.max_attempts:
                if not self.store.compare_and_swap(destination, record, None):
                    continue
                logger.info("OTP invalidated after %d failed attempts", attempts)
                return self._verify_failure(
                    OTPError.MAX_ATTEMPTS_EXCEEDED, attempts_remaining=0
                )

            updated = dataclasses.replace(record, attempts=attempts)
            if not self.store.compare_and_swap(destination, record, updated):
                continue
            logger.info(
                "Incorrect OTP, attempt %d of %d", attempts, record.max_attempts
            )
            return self._verify_failure(
                OTPError.INVALID_CODE, attempts_remaining=updated.attempts_remaining
            )

    def purge_expired(self) -> int:
        """Remove pending records whose validity window has passed."""
        return self.store.purge_expired(self.clock())

    def _verified(self, destination: str) -> VerifyResult:
        identity = self.identity_resolver.resolve(destination)
        if self.rate_limiter:
            self.rate_limiter.clear(destination)
        logger.info("OTP verified successfully")
        return VerifyResult(
            success=True, message="OTP verified successfully.", identity=identity
        )

    @staticmethod
    def _issue_failure(
        error: OTPError,
        message: Optional[str] = None,
        retry_after: Optional[int] = None,
    ) -> IssueResult:
        return IssueResult(
            success=False,
            message=message or MESSAGES[error],
            error=error,
            retry_after=retry_after,
        )

    @staticmethod
    def _verify_failure(
        error: OTPError,
        message: Optional[str] = None,
        attempts_remaining: Optional[int] = None,
    ) -> VerifyResult:
        return VerifyResult(
            success=False,
            message=message or MESSAGES[error],
            error=error,
            attempts_remaining=attempts_remaining,
        )
