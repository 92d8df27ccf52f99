# SPDX-License-Identifier: GPL-3.0-only
"""OTP policy settings read from the environment."""

from dataclasses import dataclass, field
from typing import List

from marketplace_otp.utils import get_bool_config, get_configs, get_list_config


@dataclass(frozen=True)
class OTPSettings:
    """Snapshot of the OTP policy configuration."""

    code_length: int = 6
    expiry_minutes: int = 10
    max_verify_attempts: int = 3
    resend_cooldown_seconds: int = 60
    max_requests: int = 5
    rate_limit_window_minutes: int = 60
    default_region: str = "IN"
    allowed_regions: List[str] = field(default_factory=list)
    debug_echo: bool = False

    @classmethod
    def from_env(cls) -> "OTPSettings":
        """Build settings from environment variables."""
        return cls(
            code_length=int(get_configs("OTP_LENGTH", default_value="6")),
            expiry_minutes=int(get_configs("OTP_EXPIRY_MINUTES", default_value="10")),
            max_verify_attempts=int(
                get_configs("OTP_MAX_VERIFY_ATTEMPTS", default_value="3")
            ),
            resend_cooldown_seconds=int(
                get_configs("OTP_RESEND_COOLDOWN_SECONDS", default_value="60")
            ),
            max_requests=int(get_configs("OTP_MAX_REQUESTS", default_value="5")),
            rate_limit_window_minutes=int(
                get_configs("OTP_RATE_LIMIT_WINDOW_MINUTES", default_value="60")
            ),
            default_region=get_configs(
                "OTP_DEFAULT_REGION", default_value="IN"
            ).upper(),
            allowed_regions=get_list_config("OTP_ALLOWED_REGIONS"),
            debug_echo=get_bool_config("OTP_DEBUG_ECHO"),
        )
