"""
Batch delivery to the collector.

HttpTransport posts one JSON document per batch using requests.
DeliveryClient wraps a transport with the fixed-delay retry policy:
1 initial attempt plus up to maxRetries retries, retryDelay apart. A batch
that still fails is discarded and reported; it never aborts the session.
"""

import asyncio
import json
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

import requests

from .errors import DeliveryError, PayloadError
from .jsonl_utils import JSONLWriter
from .schema import Batch


class HttpTransport:
    """HTTP transport for batch documents (POST)."""

    def __init__(
        self,
        endpoint: str,
        api_key: str,
        api_key_header: str = "X-API-Key",
        headers: Optional[Mapping[str, str]] = None,
        timeout: float = 10000
    ):
        """
        Initialize transport.

        Args:
            endpoint: Collector URL
            api_key: Credential sent in api_key_header
            api_key_header: Header name carrying the API key
            headers: Extra headers sent with every request
            timeout: Request timeout in milliseconds
        """
        self.endpoint = endpoint
        self.timeout = timeout / 1000
        self._session = requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})
        if headers:
            self._session.headers.update(dict(headers))
        self._session.headers[api_key_header] = api_key

    def send(self, payload: Dict[str, Any]) -> int:
        """
        POST one batch document.

        Args:
            payload: JSON-serializable batch document

        Returns:
            HTTP status code

        Raises:
            PayloadError: If the document cannot be encoded as JSON
            requests.RequestException: On network failure
        """
        try:
            body = json.dumps(payload, allow_nan=False)
        except (TypeError, ValueError) as e:
            raise PayloadError(f"Batch is not JSON-serializable: {e}") from e

        response = self._session.post(self.endpoint, data=body, timeout=self.timeout)
        return response.status_code

    def close(self):
        self._session.close()


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of delivering one batch."""
    success: bool
    attempts: int
    error: Optional[DeliveryError] = None


class DeliveryClient:
    """
    Sends batches with bounded fixed-delay retries.

    The transport is any object with send(payload) -> status code that
    raises on network failure. Blocking sends run in the event loop's
    default executor.
    """

    def __init__(
        self,
        transport,
        max_retries: int = 3,
        retry_delay: float = 1000,
        on_error: Optional[Callable[[DeliveryError], Any]] = None,
        failed_batch_log: Optional[Path] = None,
        debug: bool = False
    ):
        """
        Initialize delivery client.

        Args:
            transport: Object with send(payload) -> int
            max_retries: Additional attempts after the first failure
            retry_delay: Fixed delay between attempts in milliseconds
            on_error: Callback receiving DeliveryError for dropped batches
            failed_batch_log: Optional JSONL path recording dropped batches
            debug: Print each attempt to stderr
        """
        self.transport = transport
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.on_error = on_error
        self.debug = debug
        self.failed_writer = JSONLWriter(failed_batch_log) if failed_batch_log else None

    async def send(self, batch: Batch) -> DeliveryResult:
        """
        Deliver a batch, retrying on failure.

        Args:
            batch: Immutable batch to deliver

        Returns:
            DeliveryResult; failures are also reported via on_error
        """
        payload = batch.to_payload()
        loop = asyncio.get_running_loop()
        total_attempts = self.max_retries + 1
        last_error = None

        for attempt in range(1, total_attempts + 1):
            if self.debug:
                print(f"[session-sdk] Delivering {len(batch)} event(s) for session "
                      f"{batch.session_id} (attempt {attempt}/{total_attempts})",
                      file=sys.stderr)
            try:
                status = await loop.run_in_executor(None, self.transport.send, payload)
                if 200 <= status < 300:
                    return DeliveryResult(success=True, attempts=attempt)
                last_error = Exception(f"collector responded with HTTP {status}")
            except PayloadError as e:
                # Encoding fails the same way on every attempt
                last_error = e
                break
            except Exception as e:
                last_error = e

            if attempt < total_attempts:
                await asyncio.sleep(self.retry_delay / 1000)

        error = DeliveryError(
            f"Batch of {len(batch)} event(s) dropped after {attempt} attempt(s): {last_error}",
            attempts=attempt,
            session_id=batch.session_id,
            event_count=len(batch)
        )
        error.__cause__ = last_error
        self._report_failure(payload, error)
        return DeliveryResult(success=False, attempts=attempt, error=error)

    def _report_failure(self, payload: Dict[str, Any], error: DeliveryError):
        """Report a dropped batch on stderr, the failed-batch log and the callback."""
        print(f"Warning: {error}", file=sys.stderr)

        if self.failed_writer:
            try:
                self.failed_writer.append({
                    "failed_at": datetime.now(timezone.utc).isoformat(),
                    "attempts": error.attempts,
                    "error": str(error.__cause__),
                    "batch": payload,
                })
            except OSError as e:
                print(f"Warning: Failed to write dropped batch to "
                      f"{self.failed_writer.path}: {e}", file=sys.stderr)

        if self.on_error:
            try:
                self.on_error(error)
            except Exception as e:
                print(f"Warning: on_delivery_error callback failed: {e}", file=sys.stderr)

    def close(self):
        close = getattr(self.transport, "close", None)
        if close:
            close()
