"""
Session manager and process-wide registry.

SessionSDK is the public entry point. It owns the lifecycle

    uninitialized -> idle -> recording -> stopped -> destroyed

together with the session identity, metadata, user id and attributes, and
wires producer -> privacy gate -> event buffer -> upload scheduler ->
delivery client.

Usage:
    import session_sdk

    sdk = session_sdk.init({"apiKey": "pk_live_123"}, producer=producer)
    await sdk.start_recording()
    sdk.set_user_id("user-42")
    sdk.set_attributes({"plan": "pro"})
    ...
    await sdk.stop()
    sdk.destroy()
"""

import copy
import random
import sys
import threading
import uuid
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union

from .buffer import EventBuffer
from .config import SDKConfig
from .context import HostEnvironment, now_ms
from .delivery import DeliveryClient, DeliveryResult, HttpTransport
from .errors import CapabilityError, DeliveryError, DestroyedError, InvalidStateError
from .privacy import PrivacyGate
from .producer import EventProducer, ManualProducer
from .scheduler import UploadScheduler
from .schema import Batch, Event, SessionMetadata


class SessionState(Enum):
    UNINITIALIZED = "uninitialized"
    IDLE = "idle"
    RECORDING = "recording"
    STOPPED = "stopped"
    DESTROYED = "destroyed"


class SessionSDK:
    """
    Session manager: lifecycle state machine and public API.

    Collaborators are injectable for hosts and tests:
    - producer: capture collaborator (default: ManualProducer)
    - environment: HostEnvironment for metadata and Do-Not-Track
    - transport: object with send(payload) -> status (default: HttpTransport)
    - clock: callable returning epoch milliseconds
    - rng: random.Random used for mouse movement sampling
    - on_delivery_error: callback receiving DeliveryError for dropped batches
    """

    def __init__(
        self,
        producer: Optional[EventProducer] = None,
        environment: Optional[HostEnvironment] = None,
        transport=None,
        clock: Optional[Callable[[], float]] = None,
        rng: Optional[random.Random] = None,
        on_delivery_error: Optional[Callable[[DeliveryError], Any]] = None
    ):
        self.producer = producer or ManualProducer()
        self.environment = environment or HostEnvironment()
        self.transport = transport
        self.clock = clock or now_ms
        self.rng = rng
        self.on_delivery_error = on_delivery_error

        self.config: Optional[SDKConfig] = None
        self._state = SessionState.UNINITIALIZED
        self._user_id: Optional[str] = None
        self._attributes: Mapping[str, Any] = MappingProxyType({})
        self._reset_session()

    def _reset_session(self):
        self._session_id: Optional[str] = None
        self._started_at: Optional[float] = None
        self._metadata: Optional[SessionMetadata] = None
        self._buffer: Optional[EventBuffer] = None
        self._gate: Optional[PrivacyGate] = None
        self._delivery: Optional[DeliveryClient] = None
        self._scheduler: Optional[UploadScheduler] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def init(self, config: Union[SDKConfig, Mapping[str, Any]]) -> "SessionSDK":
        """
        Validate and install configuration.

        Legal while uninitialized or idle; re-init while idle replaces the
        configuration.

        Args:
            config: SDKConfig or raw options (apiKey required)

        Returns:
            self

        Raises:
            ConfigurationError: If apiKey is missing or an option is invalid
            InvalidStateError: If recording or stopped
            DestroyedError: After destroy()
        """
        self._check_not_destroyed()
        if self._state not in (SessionState.UNINITIALIZED, SessionState.IDLE):
            raise InvalidStateError(f"init() is not allowed while {self._state.value}")

        self.config = config if isinstance(config, SDKConfig) else SDKConfig(config)
        self._state = SessionState.IDLE
        self._debug(f"Initialized ({self.config!r})")
        return self

    async def start_recording(self) -> bool:
        """
        Start a recording session.

        Honors Do-Not-Track: when the signal is set nothing is captured,
        no session id is allocated and nothing is sent.

        Returns:
            True if recording, False if suppressed by Do-Not-Track

        Raises:
            InvalidStateError: If init() was never called
            CapabilityError: If the producer cannot start
            DestroyedError: After destroy()
        """
        self._check_not_destroyed()
        if self._state == SessionState.RECORDING:
            return True
        if self._state == SessionState.UNINITIALIZED:
            raise InvalidStateError("init() must be called before start_recording()")

        if self.environment.is_do_not_track():
            self._debug("Do-Not-Track is enabled; recording suppressed")
            return False

        previous_state = self._state
        config = self.config
        self._session_id = str(uuid.uuid4())
        self._started_at = self.clock()
        self._metadata = self.environment.capture_metadata(self._started_at)
        self._buffer = EventBuffer(config.max_buffer_size, config.overflow_policy)
        self._gate = PrivacyGate(config.recording_options, rng=self.rng, clock=self.clock)
        self._delivery = DeliveryClient(
            self.transport or HttpTransport(
                config.endpoint,
                config.api_key,
                api_key_header=config.api_key_header,
                headers=config.headers,
                timeout=config.request_timeout
            ),
            max_retries=config.max_retries,
            retry_delay=config.retry_delay,
            on_error=self.on_delivery_error,
            failed_batch_log=config.failed_batch_log,
            debug=config.debug
        )
        self._scheduler = UploadScheduler(
            self._buffer,
            self._delivery,
            self._build_batch,
            interval=config.upload_interval,
            debug=config.debug
        )

        # Producers may emit synchronously from start()
        self._state = SessionState.RECORDING
        self._scheduler.start()
        try:
            self.producer.start(config.get_all()["recordingOptions"], self._on_event)
        except Exception as e:
            self._scheduler.cancel()
            if self.transport is None:
                self._delivery.close()
            self._reset_session()
            self._state = previous_state
            if isinstance(e, CapabilityError):
                raise
            raise CapabilityError(f"Event producer failed to start: {e}") from e

        self._debug(f"Recording session {self._session_id}")
        return True

    async def stop(self) -> Optional[DeliveryResult]:
        """
        Stop recording and flush everything captured so far.

        Waits for the final delivery (bounded by the retry budget) before
        returning. A no-op unless recording.

        Returns:
            Result of the final flush, or None if nothing was sent
        """
        self._check_not_destroyed()
        if self._state != SessionState.RECORDING:
            return None

        self.producer.stop()
        self._state = SessionState.STOPPED
        result = await self._scheduler.stop()
        if self.transport is None and self._delivery is not None:
            self._delivery.close()

        self._debug(f"Stopped session {self._session_id}")
        return result

    def destroy(self):
        """
        Tear down immediately.

        Stops capture and the timer, abandons deliveries in flight and
        discards buffered events without sending them. Idempotent.
        """
        if self._state == SessionState.DESTROYED:
            return

        if self._state == SessionState.RECORDING:
            try:
                self.producer.stop()
            except Exception as e:
                print(f"Warning: Event producer failed to stop: {e}", file=sys.stderr)

        if self._scheduler is not None:
            self._scheduler.cancel()
        if self._buffer is not None:
            discarded = self._buffer.clear()
            if discarded:
                self._debug(f"Discarded {discarded} unsent event(s)")
        if self.transport is None and self._delivery is not None:
            self._delivery.close()

        self._reset_session()
        self._user_id = None
        self._attributes = MappingProxyType({})
        self._state = SessionState.DESTROYED
        _unregister(self)

    # ------------------------------------------------------------------
    # Session state
    # ------------------------------------------------------------------

    def set_user_id(self, user_id: Optional[str]):
        """
        Set the user id attached to subsequent batches.

        Raises:
            DestroyedError: After destroy()
            InvalidStateError: Before init()
        """
        self._check_mutable()
        if user_id is not None and not isinstance(user_id, str):
            raise TypeError("user_id must be a string or None")
        self._user_id = user_id

    def set_attributes(self, attributes: Mapping[str, Any]):
        """
        Shallow-merge attributes; new keys override existing ones.

        Batches already built keep the attributes they were built with.

        Raises:
            DestroyedError: After destroy()
            InvalidStateError: Before init()
        """
        self._check_mutable()
        if not isinstance(attributes, Mapping):
            raise TypeError("attributes must be a mapping")
        merged = dict(self._attributes)
        merged.update(copy.deepcopy(dict(attributes)))
        self._attributes = MappingProxyType(merged)

    def get_user_id(self) -> Optional[str]:
        return self._user_id

    def get_attributes(self) -> Dict[str, Any]:
        return copy.deepcopy(dict(self._attributes))

    def get_session_id(self) -> Optional[str]:
        return self._session_id

    def get_session_duration(self) -> float:
        """Milliseconds since recording started, 0 if never started."""
        if self._started_at is None:
            return 0
        return max(0, self.clock() - self._started_at)

    def is_active(self) -> bool:
        return self._state == SessionState.RECORDING

    def get_state(self) -> SessionState:
        return self._state

    @property
    def dropped_events(self) -> int:
        """Events discarded by the buffer overflow policy this session."""
        return self._buffer.dropped if self._buffer is not None else 0

    @property
    def buffered_events(self) -> int:
        return len(self._buffer) if self._buffer is not None else 0

    async def flush(self) -> Optional[DeliveryResult]:
        """
        Send buffered events now instead of waiting for the next tick.

        Returns:
            DeliveryResult, or None if nothing was buffered
        """
        self._check_not_destroyed()
        if self._state != SessionState.RECORDING:
            raise InvalidStateError("flush() requires an active recording")
        return await self._scheduler.force_flush()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _on_event(self, raw: Dict[str, Any]):
        """Producer callback: gate the raw record and buffer it."""
        gate, buffer = self._gate, self._buffer
        if self._state != SessionState.RECORDING or gate is None or buffer is None:
            return

        try:
            event = gate.process(raw)
        except Exception as e:
            print(f"Warning: Dropping unprocessable event: {e}", file=sys.stderr)
            return

        if event is not None:
            buffer.append(event)

    def _build_batch(self, events: Tuple[Event, ...]) -> Batch:
        return Batch.create(
            session_id=self._session_id,
            user_id=self._user_id,
            attributes=self._attributes,
            metadata=self._metadata,
            events=events,
            timestamp=self.clock(),
            duration=self.get_session_duration()
        )

    def _check_not_destroyed(self):
        if self._state == SessionState.DESTROYED:
            raise DestroyedError("SDK instance has been destroyed")

    def _check_mutable(self):
        self._check_not_destroyed()
        if self._state == SessionState.UNINITIALIZED:
            raise InvalidStateError("init() must be called first")

    def _debug(self, message: str):
        if self.config is not None and self.config.debug:
            print(f"[session-sdk] {message}", file=sys.stderr)

    @classmethod
    def get_instance(cls) -> Optional["SessionSDK"]:
        """Return the process-wide instance created by init(), if any."""
        return get_instance()


# Process-wide registry: at most one live instance
_instance: Optional[SessionSDK] = None
_registry_lock = threading.Lock()


def init(config: Union[SDKConfig, Mapping[str, Any]], **collaborators) -> SessionSDK:
    """
    Create or re-initialize the process-wide SDK instance.

    Args:
        config: SDKConfig or raw options
        **collaborators: SessionSDK constructor arguments, only accepted
            when the instance is first created

    Returns:
        The registered SessionSDK

    Raises:
        ConfigurationError: On invalid configuration (nothing is registered)
        InvalidStateError: If the instance is recording, or collaborators
            are passed for an existing instance
    """
    global _instance

    with _registry_lock:
        if _instance is not None:
            if collaborators:
                raise InvalidStateError(
                    "SDK instance already exists; destroy() it to change collaborators"
                )
            return _instance.init(config)

        sdk = SessionSDK(**collaborators).init(config)
        _instance = sdk
        return sdk


def get_instance() -> Optional[SessionSDK]:
    """
    Get the process-wide SDK instance.

    Returns:
        SessionSDK created by init(), or None
    """
    return _instance


def _unregister(sdk: SessionSDK):
    global _instance

    with _registry_lock:
        if _instance is sdk:
            _instance = None
