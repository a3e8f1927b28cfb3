"""
Session recording SDK.

Captures interaction events, console output and network activity for a
session, applies privacy redaction, and relays batches to a remote
collector on a fixed upload interval with bounded retries.
"""

__version__ = '1.0.0'

from .errors import (
    SessionSDKError,
    ConfigurationError,
    InvalidStateError,
    DestroyedError,
    CapabilityError,
    DeliveryError,
    PayloadError
)

from .config import SDKConfig, DEFAULTS
from .schema import Event, SessionMetadata, Batch
from .context import HostEnvironment
from .privacy import PrivacyGate, MASK_MARKER
from .redaction import SecretRedactor
from .buffer import EventBuffer
from .delivery import HttpTransport, DeliveryClient, DeliveryResult
from .scheduler import UploadScheduler
from .producer import EventProducer, ManualProducer, LoggingProducer, ReplayProducer
from .session import SessionSDK, SessionState, init, get_instance

__all__ = [
    # Errors
    'SessionSDKError',
    'ConfigurationError',
    'InvalidStateError',
    'DestroyedError',
    'CapabilityError',
    'DeliveryError',
    'PayloadError',
    # Configuration
    'SDKConfig',
    'DEFAULTS',
    # Schemas
    'Event',
    'SessionMetadata',
    'Batch',
    'HostEnvironment',
    # Pipeline
    'PrivacyGate',
    'MASK_MARKER',
    'SecretRedactor',
    'EventBuffer',
    'HttpTransport',
    'DeliveryClient',
    'DeliveryResult',
    'UploadScheduler',
    # Producers
    'EventProducer',
    'ManualProducer',
    'LoggingProducer',
    'ReplayProducer',
    # Session
    'SessionSDK',
    'SessionState',
    'init',
    'get_instance',
]
