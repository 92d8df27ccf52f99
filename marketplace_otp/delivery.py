# SPDX-License-Identifier: GPL-3.0-only
"""OTP delivery providers for SMS and WhatsApp."""

from abc import ABC, abstractmethod
from typing import Optional, Tuple

import requests
from twilio.base.exceptions import TwilioRestException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client

from base_logger import get_logger
from marketplace_otp.destination import mask_destination
from marketplace_otp.settings import OTPSettings
from marketplace_otp.types import Channel
from marketplace_otp.utils import get_configs

logger = get_logger(__name__)

OTP_PROJECT_NAME = get_configs("OTP_PROJECT_NAME", default_value="Marketplace")
OTP_DELIVERY_TIMEOUT = int(get_configs("OTP_DELIVERY_TIMEOUT", default_value="10"))

TWILIO_ACCOUNT_SID = get_configs("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = get_configs("TWILIO_AUTH_TOKEN")
TWILIO_PHONE_NUMBER = get_configs("TWILIO_PHONE_NUMBER")
TWILIO_WHATSAPP_NUMBER = get_configs("TWILIO_WHATSAPP_NUMBER")

MSG91_API_URL = get_configs(
    "MSG91_API_URL", default_value="https://api.msg91.com/api/v5/flow/"
)
MSG91_AUTH_KEY = get_configs("MSG91_AUTH_KEY")
MSG91_FLOW_ID = get_configs("MSG91_FLOW_ID")
MSG91_SENDER_ID = get_configs("MSG91_SENDER_ID")

TWILIO_ACCEPTED_STATUSES = ("accepted", "queued", "sending", "sent", "delivered")


def build_message_body(code: str, expiry_minutes: int) -> str:
    """Render the text sent to the user."""
    return (
        f"Your {OTP_PROJECT_NAME} verification code is: {code}. "
        f"It expires in {expiry_minutes} minutes."
    )


class DeliveryMethod(ABC):
    """Base class for OTP delivery methods."""

    def __init__(self, expiry_minutes: Optional[int] = None):
        self.expiry_minutes = expiry_minutes or OTPSettings.from_env().expiry_minutes

    @abstractmethod
    def send(self, destination: str, code: str, channel: Channel) -> Tuple[bool, str]:
        """Send a code to a destination over the given channel."""


class TwilioDeliveryMethod(DeliveryMethod):
    """SMS and WhatsApp delivery via the Twilio messaging API."""

    def __init__(
        self,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        phone_number: Optional[str] = None,
        whatsapp_number: Optional[str] = None,
        timeout: int = OTP_DELIVERY_TIMEOUT,
        client: Optional[Client] = None,
        expiry_minutes: Optional[int] = None,
    ):
        super().__init__(expiry_minutes)
        self.phone_number = phone_number or TWILIO_PHONE_NUMBER
        self.whatsapp_number = (
            whatsapp_number or TWILIO_WHATSAPP_NUMBER or self.phone_number
        )
        self.client = client or Client(
            account_sid or TWILIO_ACCOUNT_SID,
            auth_token or TWILIO_AUTH_TOKEN,
            http_client=TwilioHttpClient(timeout=timeout),
        )

    def _addresses(self, destination: str, channel: Channel) -> Tuple[str, str]:
        if channel == Channel.WHATSAPP:
            return f"whatsapp:{self.whatsapp_number}", f"whatsapp:{destination}"
        return self.phone_number, destination

    def send(self, destination: str, code: str, channel: Channel) -> Tuple[bool, str]:
        logger.debug("Sending OTP via Twilio %s", channel.value)
        from_, to = self._addresses(destination, channel)

        try:
            message = self.client.messages.create(
                body=build_message_body(code, self.expiry_minutes),
                from_=from_,
                to=to,
            )
        except TwilioRestException as e:
            logger.error("Twilio error: %s", e)
            return False, "Failed to send OTP. Try again."
        except requests.exceptions.RequestException as e:
            logger.error("Twilio request error: %s", e)
            return False, "Failed to send OTP. Try again."

        if message.status in TWILIO_ACCEPTED_STATUSES:
            logger.info("OTP sent via Twilio %s", channel.value)
            return True, "OTP sent."

        logger.error("Twilio send failed: %s", message.status)
        return False, "Failed to send OTP. Check your number and try again."


class MSG91DeliveryMethod(DeliveryMethod):
    """SMS and WhatsApp delivery via an MSG91 flow."""

    def __init__(
        self,
        api_url: Optional[str] = None,
        auth_key: Optional[str] = None,
        flow_id: Optional[str] = None,
        sender_id: Optional[str] = None,
        timeout: int = OTP_DELIVERY_TIMEOUT,
        expiry_minutes: Optional[int] = None,
    ):
        super().__init__(expiry_minutes)
        self.api_url = api_url or MSG91_API_URL
        self.auth_key = auth_key or MSG91_AUTH_KEY
        self.flow_id = flow_id or MSG91_FLOW_ID
        self.sender_id = sender_id or MSG91_SENDER_ID
        self.timeout = timeout

    def send(self, destination: str, code: str, channel: Channel) -> Tuple[bool, str]:
        logger.debug("Sending OTP via MSG91 %s", channel.value)

        if not self.auth_key or not self.flow_id:
            logger.error("MSG91 not configured")
            return False, "OTP service unavailable. Contact support."

        payload = {
            "flow_id": self.flow_id,
            "sender": self.sender_id,
            "mobiles": destination.lstrip("+"),
            "VAR1": code,
            "VAR2": str(self.expiry_minutes),
        }
        headers = {"authkey": self.auth_key, "Content-Type": "application/json"}

        try:
            response = requests.post(
                self.api_url, json=payload, headers=headers, timeout=self.timeout
            )
            response.raise_for_status()
            response_data = response.json()
        except requests.exceptions.RequestException as e:
            logger.error("MSG91 request error: %s", e)
            return False, "Failed to send OTP. Try again."
        except ValueError as e:
            logger.error("MSG91 returned an invalid response: %s", e)
            return False, "Failed to send OTP. Try again."

        if response_data.get("type") == "success":
            logger.info("OTP sent via MSG91 %s", channel.value)
            return True, "OTP sent."

        logger.error("MSG91 returned error: %s", response_data.get("message", ""))
        return False, "Failed to send OTP. Try again."


class LogDeliveryMethod(DeliveryMethod):
    """Development delivery that writes the code to the log instead of sending it."""

    def send(self, destination: str, code: str, channel: Channel) -> Tuple[bool, str]:
        logger.warning(
            "DEV MODE: %s OTP for %s: %s",
            channel.value,
            mask_destination(destination),
            code,
        )
        return True, "OTP logged."


DELIVERY_METHODS = {
    "twilio": TwilioDeliveryMethod,
    "msg91": MSG91DeliveryMethod,
    "log": LogDeliveryMethod,
}


def get_delivery_method(
    provider: Optional[str] = None, expiry_minutes: Optional[int] = None
) -> DeliveryMethod:
    """Create the delivery method named by ``provider`` or OTP_DELIVERY_PROVIDER.

    ``expiry_minutes`` is the validity window quoted in the message text and
    should match the issuing service's settings.
    """
    provider = (
        provider or get_configs("OTP_DELIVERY_PROVIDER", default_value="twilio")
    ).lower()

    if provider not in DELIVERY_METHODS:
        raise ValueError(f"Unsupported delivery provider: {provider}")

    return DELIVERY_METHODS[provider](expiry_minutes=expiry_minutes)
