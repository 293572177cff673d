"""
Utility functions for the burst SMS API.
"""

import hmac
import logging
from typing import Mapping, Optional

from burst_sms.exceptions import AuthenticationError, ConfigurationError

logger = logging.getLogger(__name__)


def extract_bearer_token(headers: Mapping[str, str]) -> str:
    """Return the token from an 'Authorization: Bearer <token>' header, or ''."""
    auth = headers.get("authorization") or headers.get("Authorization") or ""
    return auth[7:] if auth.startswith("Bearer ") else ""


def verify_bearer_token(token: Optional[str], expected: str) -> None:
    """
    Check an internal bearer token.

    Args:
        token: Token presented by the caller
        expected: INTERNAL_GATEWAY_TOKEN

    Raises:
        ConfigurationError: if the server has no token configured
        AuthenticationError: if the token is missing or does not match
    """
    if not expected:
        raise ConfigurationError("INTERNAL_GATEWAY_TOKEN not set")

    # Use constant-time comparison to prevent timing attacks
    if not token or not hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
        logger.warning("Rejected request with invalid bearer token")
        raise AuthenticationError("Unauthorized")
