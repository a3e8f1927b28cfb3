"""
Event producers.

A producer captures raw records and pushes them to the SDK through the
on_event callback given to start(). The SDK never pulls from a producer
and never restarts one after stop().

Included producers:
- ManualProducer: host code pushes interaction/console/network records
- LoggingProducer: forwards Python logging records as console entries
- ReplayProducer: replays raw records from a JSONL file
"""

import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

from .errors import CapabilityError
from .jsonl_utils import JSONLReader
from .schema import CONSOLE, INTERACTION, NETWORK


EventCallback = Callable[[Dict[str, Any]], None]


class EventProducer:
    """Contract for capture collaborators."""

    def start(self, options: Mapping[str, Any], on_event: EventCallback):
        """
        Begin capturing.

        Args:
            options: recordingOptions table (capture toggles, privacy rules)
            on_event: Callback receiving each raw record

        Raises:
            CapabilityError: If capture is not possible in this host
        """
        raise NotImplementedError

    def stop(self):
        """Stop capturing; no callbacks are made afterwards."""
        raise NotImplementedError


class ManualProducer(EventProducer):
    """
    Producer driven by host code.

    Usage:
        producer = ManualProducer()
        sdk = SessionSDK(producer=producer)
        ...
        producer.interaction("click", target={"tag": "button", "id": "buy"})
        producer.console("error", "checkout failed", code=502)
    """

    def __init__(self):
        self.options: Mapping[str, Any] = {}
        self._on_event: Optional[EventCallback] = None

    @property
    def running(self) -> bool:
        return self._on_event is not None

    def start(self, options: Mapping[str, Any], on_event: EventCallback):
        self.options = options
        self._on_event = on_event

    def stop(self):
        self._on_event = None

    def emit(self, raw: Dict[str, Any]) -> bool:
        """
        Push one raw record.

        Returns:
            False if the producer is not running
        """
        callback = self._on_event
        if callback is None:
            return False
        callback(raw)
        return True

    def interaction(
        self,
        event_type: str,
        target: Optional[Dict[str, Any]] = None,
        timestamp: Optional[float] = None,
        **data
    ) -> bool:
        raw = {"kind": INTERACTION, "type": event_type, "data": data}
        if target is not None:
            raw["target"] = target
        if timestamp is not None:
            raw["timestamp"] = timestamp
        return self.emit(raw)

    def console(self, level: str, message: str, *args, timestamp: Optional[float] = None) -> bool:
        raw = {
            "kind": CONSOLE,
            "type": level,
            "data": {"level": level, "message": message, "args": list(args)},
        }
        if timestamp is not None:
            raw["timestamp"] = timestamp
        return self.emit(raw)

    def network(
        self,
        method: str,
        url: str,
        status: Optional[int] = None,
        duration: Optional[float] = None,
        timestamp: Optional[float] = None,
        **data
    ) -> bool:
        raw = {
            "kind": NETWORK,
            "type": "request",
            "data": {"method": method.upper(), "url": url, "status": status,
                     "duration": duration, **data},
        }
        if timestamp is not None:
            raw["timestamp"] = timestamp
        return self.emit(raw)


class _ForwardingHandler(logging.Handler):
    def __init__(self, producer: "LoggingProducer", level: int):
        super().__init__(level)
        self.producer = producer

    def emit(self, record: logging.LogRecord):
        try:
            message = record.getMessage()
        except Exception:
            self.handleError(record)
            return

        data = {
            "level": record.levelname.lower(),
            "message": message,
            "logger": record.name,
            "args": [],
        }
        if record.exc_info:
            data["trace"] = self.format(record).splitlines()[1:]
        self.producer._forward({
            "kind": CONSOLE,
            "type": data["level"],
            "timestamp": record.created * 1000,
            "data": data,
        })


class LoggingProducer(EventProducer):
    """
    Captures Python logging output as console entries.

    Attaches a handler to the given logger (root by default) on start()
    and detaches it on stop(). Only console capture is provided.
    """

    def __init__(self, logger: Optional[logging.Logger] = None, level: int = logging.INFO):
        self.logger = logger or logging.getLogger()
        self._handler = _ForwardingHandler(self, level)
        self._on_event: Optional[EventCallback] = None
        self._local = threading.local()

    def start(self, options: Mapping[str, Any], on_event: EventCallback):
        if not options.get("console", True):
            raise CapabilityError("LoggingProducer only captures console output")
        self._on_event = on_event
        self.logger.addHandler(self._handler)

    def stop(self):
        self.logger.removeHandler(self._handler)
        self._on_event = None

    def _forward(self, raw: Dict[str, Any]):
        callback = self._on_event
        # Ignore records logged while forwarding
        if callback is None or getattr(self._local, "active", False):
            return
        self._local.active = True
        try:
            callback(raw)
        finally:
            self._local.active = False


class ReplayProducer(EventProducer):
    """
    Replays raw records from a JSONL file.

    The whole file is emitted synchronously from start(), so by the time
    start_recording() returns every record has passed through the gate.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self.replayed = 0

    def start(self, options: Mapping[str, Any], on_event: EventCallback):
        if not self.path.exists():
            raise CapabilityError(f"Replay file not found: {self.path}")

        for raw in JSONLReader.iter_log(self.path):
            on_event(raw)
            self.replayed += 1

    def stop(self):
        pass
