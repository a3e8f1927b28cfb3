"""
Data schemas for captured events and upload batches.

Defines frozen dataclasses for events, session metadata and the batch
document delivered to the collector.
"""

import copy
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple


INTERACTION = "interaction"
CONSOLE = "console"
NETWORK = "network"

EVENT_KINDS = (INTERACTION, CONSOLE, NETWORK)


@dataclass(frozen=True)
class Event:
    """A captured event that passed the privacy gate."""
    kind: str  # "interaction", "console", "network"
    type: str  # "click", "input", "log", "request", ...
    timestamp: float  # epoch ms
    data: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the wire representation."""
        return {
            "type": self.type,
            "timestamp": self.timestamp,
            "data": copy.deepcopy(dict(self.data)),
        }


@dataclass(frozen=True)
class SessionMetadata:
    """Host environment snapshot taken once when recording starts."""
    user_agent: str
    url: str
    referrer: str
    viewport: Tuple[int, int]
    timestamp: float  # epoch ms
    timezone: str
    language: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary with wire field names."""
        width, height = self.viewport
        return {
            "userAgent": self.user_agent,
            "url": self.url,
            "referrer": self.referrer,
            "viewport": {"width": width, "height": height},
            "timestamp": self.timestamp,
            "timezone": self.timezone,
            "language": self.language,
        }


@dataclass(frozen=True)
class Batch:
    """
    Immutable snapshot of buffered events plus session state.

    Built by the upload scheduler from one drain of the event buffer.
    Attributes are copied at construction so later set_attributes() calls
    never leak into a batch that is already in flight.
    """
    session_id: str
    user_id: Optional[str]
    attributes: Mapping[str, Any]
    metadata: SessionMetadata
    events: Tuple[Event, ...]
    timestamp: float  # batch send time, epoch ms
    duration: float  # session duration at send time, ms

    @classmethod
    def create(
        cls,
        session_id: str,
        user_id: Optional[str],
        attributes: Mapping[str, Any],
        metadata: SessionMetadata,
        events,
        timestamp: float,
        duration: float
    ) -> "Batch":
        """Create a batch, copying mutable inputs."""
        return cls(
            session_id=session_id,
            user_id=user_id,
            attributes=MappingProxyType(copy.deepcopy(dict(attributes))),
            metadata=metadata,
            events=tuple(events),
            timestamp=timestamp,
            duration=duration
        )

    def __len__(self) -> int:
        return len(self.events)

    def _events_of(self, kind: str) -> List[Dict[str, Any]]:
        return [event.to_dict() for event in self.events if event.kind == kind]

    def to_payload(self) -> Dict[str, Any]:
        """
        Build the JSON document sent to the collector.

        Events are split per category; capture order is preserved within
        each list.
        """
        return {
            "sessionId": self.session_id,
            "userId": self.user_id,
            "attributes": copy.deepcopy(dict(self.attributes)),
            "metadata": self.metadata.to_dict(),
            "events": self._events_of(INTERACTION),
            "consoleLogs": self._events_of(CONSOLE),
            "networkRequests": self._events_of(NETWORK),
            "timestamp": self.timestamp,
            "duration": self.duration,
        }
