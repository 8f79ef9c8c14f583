"""
APImetrics Client
=================
Queue, batch and send API call events to the backend.
"""

import atexit
import logging
import threading
from collections import deque
from typing import Any, Optional

import httpx
from tenacity import (
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from apimetrics.config import APImetricsConfig
from apimetrics.models import (
    TrackingOptions,
    TrackResponse,
    UsageEvent,
    generate_call_id,
    now_ms,
)
from apimetrics.pricing import calculate_cost

logger = logging.getLogger(__name__)

TRACK_BATCH_PATH = "/v1/track/batch"


def _is_retryable(exc: BaseException) -> bool:
    """Transport errors, timeouts, 5xx, 408 and 429 are worth another try."""
    if isinstance(exc, httpx.HTTPStatusError):
        code = exc.response.status_code
        return code >= 500 or code in (408, 429)
    return isinstance(exc, httpx.HTTPError)


class APImetricsClient:
    """
    Client for sending API call events to the APImetrics backend.

    Features:
    - Non-blocking tracking with a bounded local queue
    - Flush when the queue reaches ``batch_size`` and every ``flush_interval``
    - Retry with exponential backoff, then requeue at the front
    - One flush at a time; tracking continues while a flush is in flight
    """

    def __init__(
        self,
        config: Optional[APImetricsConfig] = None,
        http_client: Optional[httpx.Client] = None,
    ):
        """
        Initialize the APImetrics client.

        Args:
            config: Configuration object (uses defaults if not provided)
            http_client: Preconfigured HTTP client (built from config if not provided)
        """
        self.config = config or APImetricsConfig()

        # Event queue; the flush lock serializes whole flushes
        self._queue: deque[UsageEvent] = deque()
        self._queue_lock = threading.Lock()
        self._flush_lock = threading.Lock()
        self._size_flush_pending = False
        self.dropped_events = 0

        # HTTP client
        self._client = http_client or httpx.Client(
            base_url=self.config.endpoint,
            timeout=self.config.timeout,
            headers=self._get_headers(),
        )
        self._retrying = Retrying(
            stop=stop_after_attempt(self.config.retry_attempts),
            wait=wait_exponential(multiplier=self.config.retry_backoff, max=10),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        )

        # Background flush thread
        self._stop_event = threading.Event()
        self._flush_thread: Optional[threading.Thread] = None
        self._closed = False

        if self.config.async_mode:
            self.start()

        # Register cleanup on exit
        atexit.register(self.shutdown)

    def _get_headers(self) -> dict[str, str]:
        """Get HTTP headers for API requests."""
        headers = {
            "Content-Type": "application/json",
            "User-Agent": "apimetrics-sdk-python/1.0.0",
        }
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    @property
    def queue_size(self) -> int:
        with self._queue_lock:
            return len(self._queue)

    def start(self) -> None:
        """Start the background thread for periodic flushing."""
        if self._flush_thread and self._flush_thread.is_alive():
            return

        def flush_worker():
            while not self._stop_event.wait(self.config.flush_interval):
                try:
                    self.flush()
                except Exception as e:
                    logger.error(f"Background flush failed: {e}")

        self._stop_event.clear()
        self._flush_thread = threading.Thread(
            target=flush_worker,
            name="apimetrics-flush",
            daemon=True,
        )
        self._flush_thread.start()

    def track(self, event: UsageEvent, options: Optional[TrackingOptions] = None) -> None:
        """
        Queue an event.

        ``options`` are merged into the event metadata, overriding keys
        the event already carries.
        """
        if options is not None:
            event = event.model_copy(
                update={"metadata": {**event.metadata, **options.to_metadata()}}
            )

        with self._queue_lock:
            if len(self._queue) >= self.config.max_queue_size:
                self._queue.popleft()
                self.dropped_events += 1
            self._queue.append(event)
            size = len(self._queue)

        if self.config.enable_logging:
            logger.info(f"Tracked call {event.id} ${event.cost:.4f}")

        if size >= self.config.batch_size:
            if self.config.async_mode:
                self._schedule_size_flush()
            else:
                self.flush()

    def _schedule_size_flush(self) -> None:
        """Start a size-triggered flush unless one is already running or queued."""
        with self._queue_lock:
            if self._size_flush_pending or self._closed:
                return
            self._size_flush_pending = True

        threading.Thread(
            target=self._size_flush_worker,
            name="apimetrics-size-flush",
            daemon=True,
        ).start()

    def _size_flush_worker(self) -> None:
        # Keeps draining full batches until a send fails
        try:
            while self.flush() is not None and self.queue_size >= self.config.batch_size:
                pass
        except Exception as e:
            logger.error(f"Size-triggered flush failed: {e}")
        finally:
            with self._queue_lock:
                self._size_flush_pending = False

    def record(
        self,
        provider: str,
        model: str,
        endpoint: str,
        input_tokens: Optional[int] = None,
        output_tokens: Optional[int] = None,
        latency_ms: int = 0,
        status: str = "success",
        error_message: Optional[str] = None,
        cost: Optional[float] = None,
        metadata: Optional[dict[str, Any]] = None,
        options: Optional[TrackingOptions] = None,
        timestamp: Optional[int] = None,
    ) -> UsageEvent:
        """
        Build an event and queue it.

        Args:
            provider: openai, anthropic, google, moonshot or other
            model: Model identifier
            endpoint: Provider endpoint, e.g. ``chat.completions``
            input_tokens: Number of input tokens
            output_tokens: Number of output tokens
            latency_ms: Request latency in milliseconds
            status: ``success`` or ``error``
            error_message: Error text for failed calls
            cost: Cost in USD (looked up from the pricing table if not given)
            metadata: Additional metadata
            options: Tracking context merged into metadata
            timestamp: Epoch milliseconds (defaults to now)

        Returns:
            The queued event
        """
        if cost is None:
            cost = float(
                calculate_cost(provider, model, input_tokens or 0, output_tokens or 0).total_cost
            )

        total_tokens = None
        if input_tokens is not None or output_tokens is not None:
            total_tokens = (input_tokens or 0) + (output_tokens or 0)

        event = UsageEvent(
            id=generate_call_id(provider),
            timestamp=timestamp if timestamp is not None else now_ms(),
            provider=provider,
            model=model,
            endpoint=endpoint,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=total_tokens,
            cost=cost,
            latency=latency_ms,
            status=status,
            error_message=error_message,
            metadata=metadata or {},
        )
        self.track(event, options)
        return event

    def flush(self) -> Optional[TrackResponse]:
        """
        Send everything queued as one batch.

        Events tracked while the request is in flight wait for the next
        flush. On final failure the batch goes back to the front of the
        queue; nothing is raised.

        Returns:
            The backend response, or None if nothing was sent
        """
        with self._flush_lock:
            with self._queue_lock:
                if not self._queue:
                    return None
                batch = list(self._queue)
                self._queue.clear()

            try:
                response = self._retrying(self._send_batch, batch)
            except httpx.HTTPStatusError as e:
                if _is_retryable(e):
                    logger.error(f"Failed to send {len(batch)} events: {e}")
                    self._requeue(batch)
                else:
                    # The backend rejected the batch itself; resending cannot succeed
                    logger.error(f"Backend rejected {len(batch)} events: {e}")
                    with self._queue_lock:
                        self.dropped_events += len(batch)
                return None
            except Exception as e:
                logger.error(f"Failed to send {len(batch)} events: {e}")
                self._requeue(batch)
                return None

            if self.config.enable_logging:
                logger.info(f"Flushed {len(batch)} calls")
            return response

    def _send_batch(self, batch: list[UsageEvent]) -> TrackResponse:
        response = self._client.post(
            TRACK_BATCH_PATH,
            json={"calls": [event.to_wire() for event in batch]},
        )
        response.raise_for_status()
        return TrackResponse.model_validate(response.json())

    def _requeue(self, batch: list[UsageEvent]) -> None:
        """Put a failed batch back in front, dropping the oldest beyond the cap."""
        with self._queue_lock:
            combined = batch + list(self._queue)
            overflow = len(combined) - self.config.max_queue_size
            if overflow > 0:
                combined = combined[overflow:]
                self.dropped_events += overflow
            self._queue = deque(combined)

        if overflow > 0:
            logger.warning(f"Queue full, dropped {overflow} oldest events")

    def shutdown(self) -> None:
        """Stop the timer, flush remaining events and close the client."""
        if self._closed:
            return
        self._closed = True
        self._stop_event.set()

        if self._flush_thread and self._flush_thread.is_alive():
            self._flush_thread.join(timeout=self.config.timeout)

        # Final flush
        try:
            self.flush()
        except Exception as e:
            logger.error(f"Final flush failed: {e}")

        self._client.close()
        atexit.unregister(self.shutdown)

    def __enter__(self) -> "APImetricsClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.shutdown()


# Global client instance
_global_client: Optional[APImetricsClient] = None
_global_lock = threading.Lock()


def get_client() -> APImetricsClient:
    """Get or create the global client instance."""
    global _global_client
    with _global_lock:
        if _global_client is None:
            _global_client = APImetricsClient()
        return _global_client


def record(
    provider: str,
    model: str,
    endpoint: str,
    input_tokens: Optional[int] = None,
    output_tokens: Optional[int] = None,
    **kwargs: Any,
) -> UsageEvent:
    """Record a call using the global client."""
    return get_client().record(
        provider=provider,
        model=model,
        endpoint=endpoint,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        **kwargs,
    )
