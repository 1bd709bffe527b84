"""WhatsApp messaging through the Twilio Messages API."""

import re
from typing import Any, Dict, Optional

import httpx

from cospec_claims.core.config import WhatsAppSettings, settings
from cospec_claims.core.exceptions import ConfigurationError, DispatchError
from cospec_claims.utils.logging import get_logger

LOGGER = get_logger(__name__)

_PHONE_NOISE = re.compile(r"[\s+\-().]")


def normalize_phone(phone: str, default_country_code: str = "54") -> str:
    """Strip formatting and make sure the number carries a country code.

    ``"+54 11 1234-5678"`` and ``"11 1234 5678"`` both become ``"+541112345678"``.
    """
    digits = _PHONE_NOISE.sub("", phone or "")
    if not digits.isdigit():
        raise DispatchError(f"Invalid phone number: {phone!r}", channel="whatsapp")
    if default_country_code and not digits.startswith(default_country_code):
        digits = f"{default_country_code}{digits}"
    return f"+{digits}"


class WhatsAppClient:
    """Sends WhatsApp text messages."""

    def __init__(self, config: Optional[WhatsAppSettings] = None, timeout: Optional[float] = None):
        self.config = config or settings.whatsapp
        self.timeout = timeout or settings.http_timeout

    @property
    def messages_url(self) -> str:
        return f"{self.config.api_url}/Accounts/{self.config.account_sid}/Messages.json"

    def _check_credentials(self) -> None:
        if not (self.config.account_sid and self.config.auth_token and self.config.from_number):
            raise ConfigurationError("Twilio WhatsApp credentials are not configured")

    async def send_message(self, to: str, body: str) -> Dict[str, Any]:
        """Send a WhatsApp message.

        Args:
            to: Destination phone in any common format
            body: Message text

        Returns:
            The provider's message resource

        Raises:
            DispatchError: If the message could not be handed to the provider
        """
        try:
            self._check_credentials()
        except ConfigurationError as e:
            raise DispatchError(str(e), channel="whatsapp", original_error=e) from e

        destination = normalize_phone(to, self.config.default_country_code)
        form = {
            "To": f"whatsapp:{destination}",
            "From": f"whatsapp:{self.config.from_number}",
            "Body": body,
        }

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self.messages_url,
                    data=form,
                    auth=(self.config.account_sid, self.config.auth_token),
                    timeout=self.timeout,
                )
        except httpx.HTTPError as e:
            LOGGER.error(f"Error sending WhatsApp message: {str(e)}", exc_info=True)
            raise DispatchError(f"WhatsApp transport error: {str(e)}", channel="whatsapp", original_error=e) from e

        if response.status_code not in (200, 201):
            LOGGER.error(
                f"WhatsApp provider rejected message: {response.text}",
                extra={"status_code": response.status_code, "to": destination},
            )
            raise DispatchError(f"WhatsApp send failed: {response.text}", channel="whatsapp")

        data = response.json()
        LOGGER.info(f"WhatsApp message sent to {destination}: {data.get('sid')}")
        return data
