"""
Secret scrubbing for console output and network request records.

Console messages and request URLs routinely carry credentials (bearer
tokens, API keys, passwords embedded in URLs). This module detects and
replaces them before a record enters the event buffer, using:
1. Regex-based pattern matching (high confidence)
2. Shannon entropy analysis (medium confidence) for long random tokens
3. Whitelist filtering to reduce false positives (UUIDs, hashes, placeholders)

Usage:
    from session_sdk.redaction import SecretRedactor
    redactor = SecretRedactor()
    redacted_text, report = redactor.redact(text)
"""

import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple


# Patterns may define a "secret" group; only that group is replaced.
SECRET_PATTERNS = [
    ("Bearer Token", "high", r"\bBearer\s+(?P<secret>[A-Za-z0-9\-._~+/]{8,}=*)"),
    ("JSON Web Token", "high", r"\beyJ[A-Za-z0-9_-]{8,}\.[A-Za-z0-9_-]{8,}\.[A-Za-z0-9_-]{8,}"),
    ("Prefixed API Key", "high", r"\b(?:sk|pk|rk)[-_](?:live|test|proj|ant)[-_][A-Za-z0-9_-]{8,}"),
    ("GitHub Token", "high", r"\bgh[pousr]_[A-Za-z0-9]{20,}"),
    ("AWS Access Key ID", "high", r"\bAKIA[0-9A-Z]{16}\b"),
    ("URL Credentials", "high", r"://[^/\s:@]+:(?P<secret>[^/\s@]+)@"),
    (
        "Secret Query Parameter", "high",
        r"(?i)[?&](?:access_token|token|api_key|apikey|key|secret|password|auth|sig|signature)"
        r"=(?P<secret>[^&#\s]+)"
    ),
    (
        "Secret Assignment", "medium",
        r"(?i)\b(?:password|passwd|secret|api[_-]?key|auth[_-]?token)\b\s*[:=]\s*[\"']?"
        r"(?P<secret>[^\s\"',;&]{6,})"
    ),
]

WHITELIST_PATTERNS = [
    ("UUID", r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"),
    ("Hex Digest", r"[0-9a-f]{32}|[0-9a-f]{40}|[0-9a-f]{64}"),
    ("Placeholder", r"(?i).*(?:your[-_]|example|placeholder|replace[-_]?me|<[^>]+>|x{6,}).*"),
]

SENSITIVE_HEADERS = frozenset({
    "authorization",
    "proxy-authorization",
    "cookie",
    "set-cookie",
    "x-api-key",
    "x-auth-token",
})

REDACTION_TEMPLATE = "[REDACTED:{name}]"


@dataclass
class Finding:
    """A single secret detection."""
    pattern_name: str
    confidence: str
    char_start: int = 0
    char_end: int = 0


@dataclass
class RedactionReport:
    """Summary of redaction results for a single text value."""
    findings: List[Finding] = field(default_factory=list)
    whitelisted_skips: int = 0
    text_length: int = 0

    @property
    def total_findings(self) -> int:
        return len(self.findings)


def _shannon_entropy(text: str) -> float:
    """
    Calculate Shannon entropy of a string in bits per character.

    Random alphanumeric tokens score ~5.5-6.0, English text ~3.5-4.0.
    """
    if not text:
        return 0.0

    freq = {}
    for char in text:
        freq[char] = freq.get(char, 0) + 1

    length = len(text)
    entropy = 0.0
    for count in freq.values():
        prob = count / length
        entropy -= prob * math.log2(prob)

    return entropy


class SecretRedactor:
    """
    Detects and redacts secrets in strings, header maps and nested values.

    Stateless after construction; safe to share between event sources.
    """

    _TOKEN_CANDIDATE_RE = re.compile(r'[A-Za-z0-9_/+=-]{32,}')

    def __init__(
        self,
        entropy_enabled: bool = True,
        entropy_threshold: float = 4.5
    ):
        """
        Initialize the redactor.

        Args:
            entropy_enabled: Also flag long high-entropy tokens
            entropy_threshold: Minimum bits per character to flag a token
        """
        self.entropy_enabled = entropy_enabled
        self.entropy_threshold = entropy_threshold
        self._patterns = [
            (name, confidence, re.compile(regex))
            for name, confidence, regex in SECRET_PATTERNS
        ]
        self._whitelist = [re.compile(regex) for _, regex in WHITELIST_PATTERNS]

    def _is_whitelisted(self, match_text: str) -> bool:
        return any(w.fullmatch(match_text) for w in self._whitelist)

    def _detect(self, text: str, report: RedactionReport) -> List[Tuple[int, int, str, str]]:
        """
        Run regex and entropy detection.

        Returns:
            List of (start, end, name, confidence) spans
        """
        detections = []
        for name, confidence, regex in self._patterns:
            for match in regex.finditer(text):
                span = match.span("secret") if "secret" in regex.groupindex else match.span()
                if self._is_whitelisted(text[span[0]:span[1]]):
                    report.whitelisted_skips += 1
                    continue
                detections.append((span[0], span[1], name, confidence))

        if self.entropy_enabled:
            for match in self._TOKEN_CANDIDATE_RE.finditer(text):
                candidate = match.group(0)
                if self._is_whitelisted(candidate):
                    report.whitelisted_skips += 1
                    continue
                if _shannon_entropy(candidate) >= self.entropy_threshold:
                    detections.append((match.start(), match.end(), "High-Entropy String", "medium"))

        return detections

    def redact(self, text: str) -> Tuple[str, RedactionReport]:
        """
        Detect and redact secrets from the given text.

        Overlapping detections are merged, keeping the earliest span.

        Args:
            text: The input text to scan

        Returns:
            Tuple of (redacted_text, report)
        """
        report = RedactionReport(text_length=len(text) if text else 0)
        if not text:
            return text, report

        detections = sorted(self._detect(text, report), key=lambda d: (d[0], -d[1]))

        # Replace from the end so earlier offsets stay valid
        kept = []
        covered_to = -1
        for start, end, name, confidence in detections:
            if start >= covered_to:
                kept.append((start, end, name, confidence))
                covered_to = end

        redacted = text
        for start, end, name, confidence in reversed(kept):
            redacted = redacted[:start] + REDACTION_TEMPLATE.format(name=name) + redacted[end:]
            report.findings.append(Finding(name, confidence, start, end))

        report.findings.reverse()
        return redacted, report

    def redact_headers(self, headers: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        """
        Redact a header map.

        Credential-bearing headers are replaced wholesale; other values are
        scanned like free text.
        """
        if not headers:
            return {}

        result = {}
        for name, value in headers.items():
            if str(name).lower() in SENSITIVE_HEADERS:
                result[name] = REDACTION_TEMPLATE.format(name="header")
            else:
                result[name] = self.redact_value(value)
        return result

    def redact_value(self, value: Any) -> Any:
        """Redact strings inside arbitrarily nested lists and dicts."""
        if isinstance(value, str):
            return self.redact(value)[0]
        if isinstance(value, Mapping):
            return {k: self.redact_value(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self.redact_value(v) for v in value]
        return value
