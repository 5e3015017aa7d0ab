"""WhatsApp delivery through Twilio's Messages REST endpoint."""

import logging
import re

import httpx

from backend.core import config
from backend.services.delivery import DeliveryResult

logger = logging.getLogger(__name__)

E164_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")


def format_phone_number(phone_number: str) -> str | None:
    """Normalize to E.164; numbers without a country code get the clinic default."""
    cleaned = re.sub(r"[\s\-()]", "", phone_number or "")
    country_code = config.WHATSAPP_DEFAULT_COUNTRY_CODE

    if not cleaned.startswith("+"):
        if cleaned.startswith(country_code):
            cleaned = "+" + cleaned
        elif cleaned.startswith("9"):
            # Mobile number written without the country code.
            cleaned = f"+{country_code}9{cleaned[1:]}"
        else:
            cleaned = f"+{country_code}{cleaned}"

    if not E164_PATTERN.match(cleaned):
        logger.warning("Invalid phone number format: %s", phone_number)
        return None
    return cleaned


class WhatsAppService:
    def __init__(self, account_sid: str, auth_token: str, from_number: str, base_url: str):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.base_url = base_url.rstrip("/")

    @property
    def is_enabled(self) -> bool:
        return bool(self.account_sid and self.auth_token)

    @property
    def is_configured(self) -> bool:
        return self.is_enabled and bool(self.from_number)

    def send_message(self, to: str, message: str) -> DeliveryResult:
        if not self.is_configured:
            logger.warning("WhatsApp service not available")
            return DeliveryResult(success=False, error="WhatsApp service not available")

        formatted = format_phone_number(to)
        if formatted is None:
            return DeliveryResult(success=False, error="Invalid phone number format")

        sender = self.from_number if self.from_number.startswith("whatsapp:") else f"whatsapp:{self.from_number}"
        try:
            with httpx.Client(timeout=10.0) as client:
                response = client.post(
                    f"{self.base_url}/Accounts/{self.account_sid}/Messages.json",
                    auth=(self.account_sid, self.auth_token),
                    data={"From": sender, "To": f"whatsapp:{formatted}", "Body": message},
                )
        except httpx.HTTPError as exc:
            logger.error("Error sending WhatsApp message: %s", exc)
            return DeliveryResult(success=False, error=str(exc))

        if response.status_code in (200, 201):
            message_sid = response.json().get("sid")
            logger.info("WhatsApp message sent: %s", message_sid)
            return DeliveryResult(success=True, message_id=message_sid)

        error_message = _error_message(response)
        logger.error("Twilio rejected WhatsApp message (%s): %s", response.status_code, error_message)
        return DeliveryResult(success=False, error=error_message)

    def get_message_status(self, message_id: str) -> str | None:
        if not self.is_enabled:
            return None
        try:
            with httpx.Client(timeout=10.0) as client:
                response = client.get(
                    f"{self.base_url}/Accounts/{self.account_sid}/Messages/{message_id}.json",
                    auth=(self.account_sid, self.auth_token),
                )
        except httpx.HTTPError as exc:
            logger.error("Error fetching WhatsApp message status: %s", exc)
            return None
        if response.status_code != 200:
            return None
        return response.json().get("status")

    def status(self) -> dict:
        return {
            "enabled": self.is_enabled,
            "configured": self.is_configured,
            "account_sid": f"{self.account_sid[:8]}..." if self.account_sid else None,
        }


def _error_message(response: httpx.Response) -> str:
    try:
        return response.json().get("message", "Unknown error")
    except ValueError:
        return response.text or "Unknown error"


whatsapp_service = WhatsAppService(
    account_sid=config.TWILIO_ACCOUNT_SID,
    auth_token=config.TWILIO_AUTH_TOKEN,
    from_number=config.TWILIO_WHATSAPP_NUMBER,
    base_url=config.TWILIO_API_BASE_URL,
)
