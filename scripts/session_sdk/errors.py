"""
Error types for the session SDK.

All errors raised by the SDK derive from SessionSDKError so host code can
catch them with a single handler.
"""

from typing import Optional


class SessionSDKError(Exception):
    """Base class for all SDK errors."""


class ConfigurationError(SessionSDKError):
    """Missing or invalid configuration passed to init()."""


class InvalidStateError(SessionSDKError):
    """Operation is not legal in the current lifecycle state."""


class DestroyedError(InvalidStateError):
    """The SDK instance was destroyed and can no longer be used."""


class CapabilityError(SessionSDKError):
    """The event producer cannot run in this host environment."""


class DeliveryError(SessionSDKError):
    """
    A batch could not be delivered after exhausting all retries.

    Never raised into the session; passed to the on_delivery_error callback.
    """

    def __init__(
        self,
        message: str,
        attempts: int = 0,
        session_id: Optional[str] = None,
        event_count: int = 0
    ):
        super().__init__(message)
        self.attempts = attempts
        self.session_id = session_id
        self.event_count = event_count


class PayloadError(SessionSDKError):
    """A batch document cannot be encoded for the wire; retrying cannot help."""
