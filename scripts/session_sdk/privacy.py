"""
Privacy gate applied to raw events before they reach the event buffer.

Decides whether a raw event is recordable and redacts what is kept:
- Capture toggles: categories switched off in recordingOptions are dropped
- Blocking: events whose target (or any ancestor) carries the block class
  or matches the block selector are dropped
- Masking: input values of masked field types are replaced by a fixed
  marker
- Sampling: mouse-movement events are admitted at mousemoveSampling
- Secret scrubbing: console output and network records are passed
  through SecretRedactor

Blocking and masking are policy, never errors: process() returns None for
anything that must not be recorded.
"""

import json
import random
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .context import now_ms
from .redaction import SecretRedactor
from .schema import CONSOLE, EVENT_KINDS, INTERACTION, NETWORK, Event


MASK_MARKER = "********"

# Interaction event type -> recordingOptions toggle
CAPTURE_TOGGLES = {
    "mousemove": "mousemove",
    "touchmove": "mousemove",
    "drag": "mousemove",
    "click": "mouseInteraction",
    "dblclick": "mouseInteraction",
    "contextmenu": "mouseInteraction",
    "mousedown": "mouseInteraction",
    "mouseup": "mouseInteraction",
    "focus": "mouseInteraction",
    "blur": "mouseInteraction",
    "touchstart": "mouseInteraction",
    "touchend": "mouseInteraction",
    "scroll": "scroll",
    "input": "input",
    "change": "input",
    "resize": "viewportResize",
    "viewportResize": "viewportResize",
    "canvas": "canvas",
}

MOUSE_MOVEMENT_TYPES = frozenset({"mousemove", "touchmove", "drag"})
INPUT_TYPES = frozenset({"input", "change"})

_ATTR_RE = re.compile(
    r'#(?P<id>[\w-]+)'
    r'|\.(?P<cls>[\w-]+)'
    r'|\[\s*(?P<attr>[\w-]+)\s*(?:(?P<op>[~^$*]?=)\s*(?P<val>"[^"]*"|\'[^\']*\'|[^\]\s]+))?\s*\]'
)
_TAG_RE = re.compile(r'^(?P<tag>\*|[a-zA-Z][\w-]*)')
_TOKEN_RE = re.compile(r'(?:\[[^\]]*\]|[^\s>\[])+|>')
_WHITESPACE_RE = re.compile(r'\s+')


def _json_safe(value: Dict[str, Any]) -> Dict[str, Any]:
    """
    Return an independent, JSON-encodable copy of event data.

    Values JSON cannot represent (datetimes, sets, custom objects) are
    stored as their str().

    Raises:
        ValueError: On NaN/infinite floats or circular references
    """
    return json.loads(json.dumps(value, default=str, allow_nan=False))


@dataclass(frozen=True)
class Element:
    """A DOM element as described by the event producer."""
    tag: str = ""
    id: Optional[str] = None
    classes: Tuple[str, ...] = ()
    attributes: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Element":
        classes = data.get("classes") or ()
        if isinstance(classes, str):
            classes = classes.split()
        return cls(
            tag=str(data.get("tag", "")).lower(),
            id=data.get("id"),
            classes=tuple(classes),
            attributes=dict(data.get("attributes") or {})
        )


@dataclass
class _Compound:
    """One compound selector, e.g. div.nav[data-private]."""
    tag: Optional[str] = None
    ids: List[str] = field(default_factory=list)
    classes: List[str] = field(default_factory=list)
    attributes: List[Tuple[str, Optional[str], Optional[str]]] = field(default_factory=list)
    combinator: str = " "  # relation to the compound on its left

    def matches(self, element: Element) -> bool:
        if self.tag and self.tag != "*" and self.tag != element.tag:
            return False
        if any(element.id != i for i in self.ids):
            return False
        if any(c not in element.classes for c in self.classes):
            return False
        for name, op, expected in self.attributes:
            if name not in element.attributes:
                return False
            if op is None:
                continue
            actual = str(element.attributes[name])
            if op == "=" and actual != expected:
                return False
            if op == "~=" and expected not in actual.split():
                return False
            if op == "^=" and not actual.startswith(expected):
                return False
            if op == "$=" and not actual.endswith(expected):
                return False
            if op == "*=" and expected not in actual:
                return False
        return True


def _parse_compound(token: str) -> _Compound:
    """
    Parse one compound selector.

    Raises:
        ValueError: If any part of the token is not a supported selector
    """
    compound = _Compound()
    pos = 0
    tag_match = _TAG_RE.match(token)
    if tag_match:
        compound.tag = tag_match.group("tag").lower()
        pos = tag_match.end()

    while pos < len(token):
        match = _ATTR_RE.match(token, pos)
        if not match:
            raise ValueError(f"Unsupported selector syntax at '{token[pos:]}'")
        if match.group("id"):
            compound.ids.append(match.group("id"))
        elif match.group("cls"):
            compound.classes.append(match.group("cls"))
        else:
            value = match.group("val")
            if value and value[0] in "\"'":
                value = value[1:-1]
            compound.attributes.append((match.group("attr"), match.group("op"), value))
        pos = match.end()

    if pos == 0:
        raise ValueError(f"Unsupported selector syntax at '{token}'")
    return compound


class Selector:
    """
    Minimal CSS selector matcher for block rules.

    Supports selector lists, type/id/class/attribute selectors and the
    descendant and child combinators. Anything else (pseudo-classes, the
    sibling combinators, namespaces) is rejected rather than approximated.

    Raises:
        ValueError: If the selector uses unsupported syntax
    """

    def __init__(self, selector: str):
        self.selector = selector
        # Each group is stored right-to-left
        self._groups: List[List[_Compound]] = []
        for group in selector.split(","):
            tokens = _TOKEN_RE.findall(group)
            if _WHITESPACE_RE.sub("", "".join(tokens)) != _WHITESPACE_RE.sub("", group):
                raise ValueError(f"Unsupported selector: {group.strip()!r}")
            if not tokens:
                raise ValueError(f"Empty selector in list: {selector!r}")
            if tokens[0] == ">" or tokens[-1] == ">":
                raise ValueError(f"Dangling '>' combinator in {group.strip()!r}")

            steps: List[_Compound] = []
            pending = None
            for token in reversed(tokens):
                if token == ">":
                    if pending == ">":
                        raise ValueError(f"Repeated '>' combinator in {group.strip()!r}")
                    pending = ">"
                    continue
                if steps:
                    steps[-1].combinator = pending or " "
                steps.append(_parse_compound(token))
                pending = None
            self._groups.append(steps)

    def _match_from(self, steps: List[_Compound], i: int, chain: List[Element], j: int) -> bool:
        if not steps[i].matches(chain[j]):
            return False
        if i == len(steps) - 1:
            return True
        if steps[i].combinator == ">":
            return j + 1 < len(chain) and self._match_from(steps, i + 1, chain, j + 1)
        return any(self._match_from(steps, i + 1, chain, k) for k in range(j + 1, len(chain)))

    def matches(self, chain: List[Element]) -> bool:
        """
        Check the first element of chain against the selector.

        Args:
            chain: Element followed by its ancestors, nearest first
        """
        return any(self._match_from(steps, 0, chain, 0) for steps in self._groups)


class PrivacyGate:
    """
    Stateless filter/transform from raw producer records to Events.

    Raw record shape:
        {
            "kind": "interaction" | "console" | "network",   # optional
            "type": "click",
            "timestamp": 1700000000000,                       # optional
            "target": {"tag": "input", "id": "pw", "classes": [...],
                       "attributes": {...}, "ancestors": [{...}, ...]},
            "data": {...}
        }
    """

    def __init__(
        self,
        recording_options: Mapping[str, Any],
        rng: Optional[random.Random] = None,
        redactor: Optional[SecretRedactor] = None,
        clock=None
    ):
        """
        Initialize the gate from recordingOptions.

        Args:
            recording_options: Validated recordingOptions table
            rng: Random source for sampling (default: module random)
            redactor: Secret redactor for console/network records
            clock: Callable returning epoch ms, for records without a timestamp
        """
        self.options = recording_options
        self.block_class = recording_options.get("blockClass")
        selector = recording_options.get("blockSelector")
        self.block_selector = Selector(selector) if selector else None
        self.mask_all_inputs = recording_options.get("maskAllInputs", False)
        self.mask_input_options = dict(recording_options.get("maskInputOptions") or {})
        self.sampling_rate = float(recording_options.get("mousemoveSampling", 1.0))
        self.rng = rng or random.Random()
        self.clock = clock or now_ms

        self.redactor = None
        if recording_options.get("redactSecrets", True):
            self.redactor = redactor or SecretRedactor()

    def process(self, raw: Any) -> Optional[Event]:
        """
        Filter and redact one raw record.

        Args:
            raw: Record emitted by the event producer

        Returns:
            Event ready for the buffer, or None if it must not be recorded

        Raises:
            ValueError: If the record data cannot be represented as JSON
        """
        if not isinstance(raw, Mapping) or not raw.get("type"):
            return None

        event_type = str(raw["type"])
        kind = raw.get("kind") or INTERACTION
        if kind not in EVENT_KINDS:
            return None

        if not self.is_captured(kind, event_type):
            return None

        target = raw.get("target")
        if kind == INTERACTION and target and self.is_blocked(target):
            return None

        if kind == INTERACTION and event_type in MOUSE_MOVEMENT_TYPES and not self.sample():
            return None

        data = _json_safe(dict(raw.get("data") or {}))
        if target:
            data["target"] = _json_safe(
                {k: v for k, v in target.items() if k != "ancestors"}
            )

        if kind == INTERACTION and event_type in INPUT_TYPES:
            self.mask_input(data)
        elif kind == CONSOLE:
            self._scrub_console(data)
        elif kind == NETWORK:
            self._scrub_network(data)

        timestamp = raw.get("timestamp")
        if timestamp is None:
            timestamp = self.clock()

        return Event(kind=kind, type=event_type, timestamp=timestamp, data=data)

    def is_captured(self, kind: str, event_type: str) -> bool:
        """Check the capture toggle for an event category."""
        if kind == CONSOLE:
            return self.options.get("console", True)
        if kind == NETWORK:
            return self.options.get("network", True)

        toggle = CAPTURE_TOGGLES.get(event_type)
        if toggle is None:
            return True
        return bool(self.options.get(toggle, True))

    def is_blocked(self, target: Mapping[str, Any]) -> bool:
        """
        Check whether the target element or any ancestor is blocked.

        Args:
            target: Element dictionary with optional "ancestors" list
        """
        chain = [Element.from_dict(target)]
        chain.extend(Element.from_dict(a) for a in target.get("ancestors") or ())

        for i, element in enumerate(chain):
            if self.block_class and self.block_class in element.classes:
                return True
            if self.block_selector and self.block_selector.matches(chain[i:]):
                return True
        return False

    def sample(self) -> bool:
        """Per-event sampling decision for mouse movement."""
        if self.sampling_rate >= 1:
            return True
        return self.rng.random() < self.sampling_rate

    def input_type(self, data: Mapping[str, Any]) -> str:
        """Resolve the field type of an input event."""
        input_type = data.get("inputType")
        if input_type:
            return str(input_type).lower()

        target = data.get("target") or {}
        tag = str(target.get("tag", "")).lower()
        if tag in ("textarea", "select"):
            return tag
        attributes = target.get("attributes") or {}
        return str(attributes.get("type") or "text").lower()

    def mask_input(self, data: Dict[str, Any]):
        """
        Replace the value of a masked input field in place.

        Args:
            data: Event data copied from the raw record
        """
        if not (self.mask_all_inputs or self.mask_input_options.get(self.input_type(data), False)):
            return

        data["value"] = MASK_MARKER
        attributes = (data.get("target") or {}).get("attributes")
        if attributes and "value" in attributes:
            attributes["value"] = MASK_MARKER

    def _scrub_console(self, data: Dict[str, Any]):
        if not self.redactor:
            return
        for key in ("message", "args", "trace"):
            if key in data:
                data[key] = self.redactor.redact_value(data[key])

    def _scrub_network(self, data: Dict[str, Any]):
        if not self.redactor:
            return
        if "url" in data:
            data["url"] = self.redactor.redact_value(data["url"])
        for key in ("requestHeaders", "responseHeaders"):
            if key in data:
                data[key] = self.redactor.redact_headers(data[key])
        for key in ("requestBody", "responseBody"):
            if key in data:
                data[key] = self.redactor.redact_value(data[key])
