"""
Error taxonomy for the burst SMS service.

Fatal errors (configuration, store) abort the current invocation and are
mapped to HTTP responses in main.py. Gateway transport errors are local to
a single message and are captured into the message record by sending.py.
"""


class BurstSmsError(Exception):
    """Base class for all service errors."""


class ConfigurationError(BurstSmsError):
    """Required connection parameters are missing."""


class StoreError(BurstSmsError):
    """A query, insert or lookup against the database failed."""


class AuthenticationError(BurstSmsError):
    """Bearer token missing or invalid."""


class GatewayTransportError(BurstSmsError):
    """
    The messaging gateway could not be reached or returned an unusable reply
    (timeout, connection error, non-2xx without a JSON body).
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
