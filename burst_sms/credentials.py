"""
Gateway API key retrieval.

The key comes either straight from settings (TELNYX_API_KEY) or from AWS
Secrets Manager (TELNYX_SECRET_ID). Secrets Manager values are cached for a
short TTL so a burst does not hit AWS once per message.
"""

import json
import logging
import threading
import time
from typing import Callable, Optional

import boto3

from burst_sms.config import Settings
from burst_sms.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

SECRET_TTL_SECONDS = 60.0
API_KEY_FIELD = "TELNYX_API_KEY"


class ApiKeyProvider:
    """
    Returns the Telnyx API key, caching Secrets Manager lookups.

    Args:
        settings: application settings
        client: optional pre-built secretsmanager client (tests pass a fake)
        clock: monotonic clock, injectable for tests
    """

    def __init__(
        self,
        settings: Settings,
        client=None,
        ttl_seconds: float = SECRET_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._settings = settings
        self._client = client
        self._ttl = ttl_seconds
        self._clock = clock
        self._cached: Optional[str] = None
        self._expires_at = 0.0
        self._lock = threading.Lock()

    def _secrets_client(self):
        if self._client is None:
            self._client = boto3.client("secretsmanager", region_name=self._settings.AWS_REGION)
        return self._client

    def _fetch_secret(self) -> str:
        resp = self._secrets_client().get_secret_value(SecretId=self._settings.TELNYX_SECRET_ID)
        secret_string = resp.get("SecretString") or "{}"
        try:
            secret = json.loads(secret_string)
        except json.JSONDecodeError:
            # plain string secrets are the key itself
            secret = {API_KEY_FIELD: secret_string}
        if not isinstance(secret, dict) or not secret.get(API_KEY_FIELD):
            raise ConfigurationError(f"Missing {API_KEY_FIELD} in Secrets Manager")
        return secret[API_KEY_FIELD]

    def get_api_key(self) -> str:
        if self._settings.TELNYX_API_KEY:
            return self._settings.TELNYX_API_KEY
        if not self._settings.TELNYX_SECRET_ID:
            raise ConfigurationError("Neither TELNYX_API_KEY nor TELNYX_SECRET_ID is set")

        with self._lock:
            now = self._clock()
            if self._cached and now < self._expires_at:
                return self._cached
            logger.debug("Fetching gateway API key from Secrets Manager")
            self._cached = self._fetch_secret()
            self._expires_at = now + self._ttl
            return self._cached
