"""Browser push notifications through the push function endpoint."""

from typing import Any, Dict, Optional

import httpx

from cospec_claims.core.config import PushSettings, settings
from cospec_claims.core.exceptions import DispatchError
from cospec_claims.utils.logging import get_logger

LOGGER = get_logger(__name__)


class PushClient:
    """Hands ``{notification, data, token}`` payloads to the push function."""

    def __init__(self, config: Optional[PushSettings] = None, timeout: Optional[float] = None):
        self.config = config or settings.push
        self.timeout = timeout or settings.http_timeout

    async def send(
        self,
        token: str,
        title: str,
        body: str,
        data: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """Send one push notification. Delivery itself is fire-and-forget.

        Raises:
            DispatchError: If the endpoint is not configured or rejects the payload
        """
        if not self.config.endpoint_url:
            raise DispatchError("Push endpoint is not configured", channel="push")
        if not token:
            raise DispatchError("Missing push registration token", channel="push")

        payload = {
            "notification": {"title": title, "body": body},
            "data": data or {},
            "token": token,
        }
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self.config.endpoint_url,
                    json=payload,
                    headers=headers,
                    timeout=self.timeout,
                )
        except httpx.HTTPError as e:
            LOGGER.error(f"Error sending push notification: {str(e)}", exc_info=True)
            raise DispatchError(f"Push transport error: {str(e)}", channel="push", original_error=e) from e

        if response.status_code != 200:
            raise DispatchError(f"Push send failed: {response.text}", channel="push")

        result = response.json()
        if not result.get("success", False):
            raise DispatchError(f"Push send failed: {result.get('error', 'unknown error')}", channel="push")
        return result
