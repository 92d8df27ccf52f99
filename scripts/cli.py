# SPDX-License-Identifier: GPL-3.0-only
"""OTP Vault CLI"""

import argparse
import sys

from base_logger import get_logger
from marketplace_otp.db_models import MODELS
from marketplace_otp.delivery import get_delivery_method
from marketplace_otp.identity import EntityIdentityResolver
from marketplace_otp.otp_service import OTPService
from marketplace_otp.rate_limit import OTPRateLimiter
from marketplace_otp.settings import OTPSettings
from marketplace_otp.store import PeeweeOTPStore
from marketplace_otp.types import Channel
from marketplace_otp.utils import create_tables

logger = get_logger("otp_vault.cli")


def build_service(provider=None):
    """Create an OTP service wired to the configured database and provider."""
    create_tables(MODELS)
    settings = OTPSettings.from_env()
    return OTPService(
        store=PeeweeOTPStore(),
        delivery=get_delivery_method(provider, expiry_minutes=settings.expiry_minutes),
        identity_resolver=EntityIdentityResolver(),
        rate_limiter=OTPRateLimiter(
            max_requests=settings.max_requests,
            window_minutes=settings.rate_limit_window_minutes,
        ),
        settings=settings,
    )


def issue(service, phonenumber, channel):
    """Issue an OTP to a phone number."""
    result = service.issue(phonenumber, Channel(channel))
    if not result.success:
        logger.error("%s (%s)", result.message, result.error.value)
        if result.retry_after:
            logger.info("Retry after %d seconds.", result.retry_after)
        sys.exit(1)

    logger.info("%s Expires at %s.", result.message, result.expires_at)
    if result.debug_code:
        logger.info("Debug code: %s", result.debug_code)
    sys.exit(0)


def verify(service, phonenumber, otp_code):
    """Verify an OTP for a phone number."""
    result = service.verify(phonenumber, otp_code)
    if not result.success:
        logger.error("%s (%s)", result.message, result.error.value)
        sys.exit(1)

    logger.info("%s Identity: %s", result.message, result.identity)
    sys.exit(0)


def purge(service):
    """Delete expired pending OTPs."""
    purged = service.purge_expired()
    logger.info("Purged %d expired OTP records.", purged)
    sys.exit(0)


def main():
    """Entry function"""

    parser = argparse.ArgumentParser(description="OTP Vault CLI")
    parser.add_argument(
        "-p",
        "--provider",
        type=str,
        choices=["twilio", "msg91", "log"],
        help="Delivery provider. Defaults to OTP_DELIVERY_PROVIDER.",
    )
    subparsers = parser.add_subparsers(dest="command", description="Expected commands")

    issue_parser = subparsers.add_parser("issue", help="Sends an OTP.")
    issue_parser.add_argument(
        "-n", "--phonenumber", type=str, help="Destination phone number.", required=True
    )
    issue_parser.add_argument(
        "-c",
        "--channel",
        type=str,
        choices=[channel.value for channel in Channel],
        default=Channel.SMS.value,
        help="Delivery channel.",
    )

    verify_parser = subparsers.add_parser("verify", help="Verifies an OTP.")
    verify_parser.add_argument(
        "-n", "--phonenumber", type=str, help="Destination phone number.", required=True
    )
    verify_parser.add_argument(
        "-o", "--otp", type=str, help="Code received by the user.", required=True
    )

    subparsers.add_parser("purge", help="Deletes expired OTP records.")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(2)

    service = build_service(args.provider)

    if args.command == "issue":
        issue(service, args.phonenumber, args.channel)
    elif args.command == "verify":
        verify(service, args.phonenumber, args.otp)
    elif args.command == "purge":
        purge(service)


if __name__ == "__main__":
    main()
