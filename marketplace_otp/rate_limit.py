# SPDX-License-Identifier: GPL-3.0-only
"""Per-destination issuance rate limiting.

Each destination gets a fixed window that opens with its first issuance.
Once ``max_requests`` codes have been issued inside the window, further
issuance is refused until the window expires.
"""

import datetime
from typing import Callable, Optional

from base_logger import get_logger
from marketplace_otp.db_models import OTPRateLimit

logger = get_logger(__name__)


class OTPRateLimiter:
    """Issuance counter backed by the ``otp_rate_limit`` table."""

    def __init__(
        self,
        max_requests: int = 5,
        window_minutes: int = 60,
        clock: Optional[Callable[[], datetime.datetime]] = None,
    ):
        self.max_requests = max_requests
        self.window = datetime.timedelta(minutes=window_minutes)
        self.clock = clock or datetime.datetime.now

    def retry_after(self, destination: str) -> Optional[int]:
        """Seconds until the destination may request again, None if allowed."""
        logger.debug("Checking rate limit")

        rate_limit = OTPRateLimit.get_or_none(OTPRateLimit.destination == destination)
        if not rate_limit:
            return None

        now = self.clock()
        if rate_limit.date_expires <= now:
            logger.debug("Rate limit window expired, allowing request")
            return None

        if rate_limit.attempt_count < self.max_requests:
            return None

        logger.info(
            "Rate limit active: %d requests, expires at %s",
            rate_limit.attempt_count,
            rate_limit.date_expires,
        )
        return max(int((rate_limit.date_expires - now).total_seconds()), 1)

    def is_rate_limited(self, destination: str) -> bool:
        """Check if a destination is rate limited."""
        return self.retry_after(destination) is not None

    def increment(self, destination: str) -> OTPRateLimit:
        """Count one issuance, opening a new window if the last one expired."""
        logger.debug("Incrementing rate limit")

        now = self.clock()
        database = OTPRateLimit._meta.database

        with database.atomic():
            rate_limit, created = OTPRateLimit.get_or_create(
                destination=destination,
                defaults={"date_expires": now + self.window, "attempt_count": 1},
            )

            if not created:
                if rate_limit.date_expires <= now:
                    OTPRateLimit.update(
                        attempt_count=1, date_expires=now + self.window
                    ).where(OTPRateLimit.destination == destination).execute()
                else:
                    OTPRateLimit.update(
                        attempt_count=OTPRateLimit.attempt_count + 1
                    ).where(OTPRateLimit.destination == destination).execute()
                rate_limit = OTPRateLimit.get(OTPRateLimit.destination == destination)

        logger.info(
            "Rate limit: requests=%d expires=%s",
            rate_limit.attempt_count,
            rate_limit.date_expires,
        )
        return rate_limit

    def clear(self, destination: str) -> None:
        """Clear the counter for a destination."""
        logger.debug("Clearing rate limit")
        OTPRateLimit.delete().where(OTPRateLimit.destination == destination).execute()
