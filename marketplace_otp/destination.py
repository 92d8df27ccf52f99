# SPDX-License-Identifier: GPL-3.0-only
"""Destination (phone number) validation.

Every entry point that accepts a phone number runs it through
:func:`normalize_destination`, so the Issuer, the Verifier and any caller-side
pre-check agree on what a valid destination is.
"""

from typing import Iterable, Optional

import phonenumbers
from phonenumbers import PhoneNumberType, geocoder

from base_logger import get_logger

logger = get_logger(__name__)

MOBILE_NUMBER_TYPES = (PhoneNumberType.MOBILE, PhoneNumberType.FIXED_LINE_OR_MOBILE)


class InvalidDestinationError(ValueError):
    """Raised when a phone number cannot be used as an OTP destination."""


def normalize_destination(
    raw_number: str,
    default_region: str = "IN",
    allowed_regions: Optional[Iterable[str]] = None,
) -> str:
    """Parse a user supplied phone number and return it in E.164 format.

    Args:
        raw_number: Phone number as typed by the user. National numbers are
            interpreted in ``default_region``.
        default_region: ISO 3166 region used for numbers without a ``+`` prefix.
        allowed_regions: Optional region codes the number must belong to.

    Returns:
        The number in E.164 format, e.g. ``+919876543210``.

    Raises:
        InvalidDestinationError: If the number is malformed, not a mobile
            number, or outside the allowed regions.
    """
    if not raw_number or not raw_number.strip():
        raise InvalidDestinationError("Phone number is required.")

    try:
        parsed_number = phonenumbers.parse(raw_number.strip(), default_region)
    except phonenumbers.NumberParseException as e:
        raise InvalidDestinationError(f"The phone number is invalid. {e}") from e

    if not phonenumbers.is_valid_number(parsed_number):
        raise InvalidDestinationError("The phone number is invalid.")

    if phonenumbers.number_type(parsed_number) not in MOBILE_NUMBER_TYPES:
        raise InvalidDestinationError("The phone number is not a mobile number.")

    allowed = {region.upper() for region in allowed_regions or ()}
    if allowed:
        region_code = phonenumbers.region_code_for_number(parsed_number)
        if region_code not in allowed:
            logger.info(
                "Destination rejected for country: %s with region: %s",
                geocoder.description_for_number(parsed_number, "en"),
                region_code,
            )
            raise InvalidDestinationError(
                "Verification codes are not available for your region."
            )

    return phonenumbers.format_number(
        parsed_number, phonenumbers.PhoneNumberFormat.E164
    )


def is_valid_destination(
    raw_number: str,
    default_region: str = "IN",
    allowed_regions: Optional[Iterable[str]] = None,
) -> bool:
    """Return True if ``raw_number`` passes :func:`normalize_destination`."""
    try:
        normalize_destination(raw_number, default_region, allowed_regions)
    except InvalidDestinationError:
        return False
    return True


def mask_destination(destination: str) -> str:
    """Mask all but the last four digits of a number for logging."""
    if len(destination) <= 4:
        return "****"
    return "*" * (len(destination) - 4) + destination[-4:]
