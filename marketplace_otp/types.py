# SPDX-License-Identifier: GPL-3.0-only
"""Common type definitions for the OTP vault."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class Channel(Enum):
    """Delivery channels for OTP codes."""

    SMS = "sms"
    WHATSAPP = "whatsapp"


class OTPError(Enum):
    """Reasons an issue or verify request did not succeed."""

    INVALID_DESTINATION = "invalid_destination"
    DELIVERY_FAILED = "delivery_failed"
    TOO_SOON = "too_soon"
    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    INVALID_CODE = "invalid_code"
    MAX_ATTEMPTS_EXCEEDED = "max_attempts_exceeded"


@dataclass(frozen=True)
class PendingOTP:
    """An issued code awaiting verification.

    ``issue_id`` changes on every issuance and, together with ``attempts``,
    identifies the exact version of the record for compare-and-swap.
    Only an HMAC digest of the code is kept.
    """

    destination: str
    issue_id: str
    code_digest: str
    issued_at: datetime
    expires_at: datetime
    attempts: int = 0
    max_attempts: int = 3
    channel: Channel = Channel.SMS

    def is_expired(self, now: datetime) -> bool:
        """Check whether the validity window has elapsed."""
        return now > self.expires_at

    @property
    def attempts_remaining(self) -> int:
        return max(self.max_attempts - self.attempts, 0)


@dataclass(frozen=True)
class IssueResult:
    """Outcome of an issue request."""

    success: bool
    message: str
    error: Optional[OTPError] = None
    expires_at: Optional[datetime] = None
    retry_after: Optional[int] = None
    debug_code: Optional[str] = None


@dataclass(frozen=True)
class VerifyResult:
    """Outcome of a verify request."""

    success: bool
    message: str
    error: Optional[OTPError] = None
    identity: Optional[str] = None
    attempts_remaining: Optional[int] = None
