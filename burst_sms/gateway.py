"""
Telnyx messaging gateway client.

Sends SMS/MMS through the Telnyx v2 Messages API and normalizes the reply
into a GatewayResponse. Network-level problems (timeouts, refused
connections, non-2xx replies without a JSON body) raise
GatewayTransportError; everything the carrier answers with a readable body
comes back as a GatewayResponse with ok set accordingly.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import requests

from burst_sms.exceptions import GatewayTransportError

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://api.telnyx.com/v2"
DEFAULT_TIMEOUT_SECONDS = 15.0

# spacing between per-recipient calls in a multi-recipient send
RECIPIENT_DELAY_SECONDS = 0.12

GROUP_MMS_MAX_RECIPIENTS = 8

UNAUTHORIZED_MESSAGE = "Telnyx rejected the API key (invalid, expired, or wrong format)"


@dataclass
class GatewayResponse:
    ok: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    status_code: Optional[int] = None


def _error_from_body(body: Any, status_code: int) -> str:
    """Best error string from a Telnyx error body: errors[0].detail, then title."""
    if isinstance(body, dict):
        errors = body.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            first = errors[0]
            if first.get("detail") or first.get("title"):
                return first.get("detail") or first.get("title")
        if body.get("error"):
            return str(body["error"])
    return f"HTTP {status_code}"


class TelnyxClient:
    """
    Minimal Telnyx messaging client.

    Args:
        api_key: Telnyx API v2 key
        base_url: API root, without trailing slash
        timeout: per-call timeout in seconds
        session: requests-compatible session (tests inject a fake)
        sleep: delay function for multi-recipient sends
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_API_BASE,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self._sleep = sleep

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _post(self, path: str, body: Dict[str, Any]) -> GatewayResponse:
        url = f"{self.base_url}/messages{path}"
        try:
            resp = self.session.post(url, json=body, headers=self._headers(), timeout=self.timeout)
        except requests.Timeout as e:
            raise GatewayTransportError(f"Gateway request timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise GatewayTransportError(str(e) or "Request failed") from e

        try:
            data = resp.json()
        except ValueError:
            data = None

        if 200 <= resp.status_code < 300:
            return GatewayResponse(ok=True, data=data if isinstance(data, dict) else {}, status_code=resp.status_code)

        if resp.status_code == 401:
            logger.error("Gateway rejected API key")
            return GatewayResponse(ok=False, data=data, error=UNAUTHORIZED_MESSAGE, status_code=401)

        if data is None:
            raise GatewayTransportError(f"Gateway returned HTTP {resp.status_code}", status_code=resp.status_code)

        error = _error_from_body(data, resp.status_code)
        logger.warning("Gateway send rejected", extra={"status": resp.status_code, "error": error})
        return GatewayResponse(ok=False, data=data, error=error, status_code=resp.status_code)

    @staticmethod
    def _build_body(to, from_: str, text: str, media_urls: Optional[Sequence[str]],
                    webhook_url: Optional[str] = None,
                    webhook_failover_url: Optional[str] = None) -> Dict[str, Any]:
        body: Dict[str, Any] = {"to": to, "from": from_, "text": text}
        if media_urls:
            body["media_urls"] = list(media_urls)
        if webhook_url:
            body["webhook_url"] = webhook_url
        if webhook_failover_url:
            body["webhook_failover_url"] = webhook_failover_url
        return body

    def send(
        self,
        to: Union[str, List[str]],
        from_: str,
        text: str,
        media_urls: Optional[Sequence[str]] = None,
        webhook_url: Optional[str] = None,
        webhook_failover_url: Optional[str] = None,
    ) -> GatewayResponse:
        """
        Send one message. A list of recipients is sent as separate messages,
        one call each, spaced RECIPIENT_DELAY_SECONDS apart; the first
        rejected call stops the run and is returned.
        """
        recipients = to if isinstance(to, list) else [to]

        if len(recipients) == 1:
            return self._post("", self._build_body(
                recipients[0], from_, text, media_urls, webhook_url, webhook_failover_url))

        results = []
        for i, recipient in enumerate(recipients):
            resp = self._post("", self._build_body(
                recipient, from_, text, media_urls, webhook_url, webhook_failover_url))
            if not resp.ok:
                return resp
            results.append((resp.data or {}).get("data", resp.data))
            if i < len(recipients) - 1:
                self._sleep(RECIPIENT_DELAY_SECONDS)

        return GatewayResponse(ok=True, data={"messages": results, "count": len(results)}, status_code=200)

    def send_group_mms(
        self,
        to: List[str],
        from_: str,
        text: str,
        media_urls: Optional[Sequence[str]] = None,
    ) -> GatewayResponse:
        """Group MMS: one call, one outcome, up to 8 US/CAN recipients."""
        if not to or len(to) > GROUP_MMS_MAX_RECIPIENTS:
            raise ValueError(f"group MMS needs 1-{GROUP_MMS_MAX_RECIPIENTS} recipients, got {len(to or [])}")
        return self._post("/group_mms", self._build_body(list(to), from_, text, media_urls))


def client_from_settings(settings, key_provider) -> TelnyxClient:
    """
    Build a client from application settings.

    Raises:
        ConfigurationError: if no API key can be resolved
    """
    return TelnyxClient(
        api_key=key_provider.get_api_key(),
        base_url=settings.TELNYX_API_BASE,
        timeout=settings.GATEWAY_TIMEOUT_SECONDS,
    )
