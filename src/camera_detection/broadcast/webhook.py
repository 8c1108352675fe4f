"""
Webhook Sink - Generic HTTP webhook broadcasting.

Posts JSON payloads for new objects (and optionally per-frame detections)
to a configured endpoint. Requests are sent from a daemon worker thread
so the detection loop never waits on the network; when the queue is full
the payload is dropped.
"""

import logging
import queue
import threading
import time
from collections.abc import Callable
from typing import Any

import requests

from ..models import DetectionEvent, FrameDetection

logger = logging.getLogger(__name__)

# Retry configuration
DEFAULT_MAX_RETRIES = 2
DEFAULT_BASE_DELAY = 1.0  # seconds


def with_retry(
    func: Callable[[], requests.Response],
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_BASE_DELAY,
) -> requests.Response:
    """
    Execute a request function with exponential backoff retry.

    Retries on transient network errors (timeout, connection error) and 5xx.
    Does NOT retry on 4xx client errors.

    Args:
        func: Callable that performs the request and returns Response
        max_retries: Maximum number of retry attempts (default: 2)
        base_delay: Initial delay in seconds, doubles each retry (default: 1.0)

    Returns:
        The last Response object

    Raises:
        requests.RequestException: If all retries exhausted on network errors
    """
    for attempt in range(max_retries + 1):
        try:
            response = func()
            if response.status_code < 500 or attempt >= max_retries:
                return response
            delay = base_delay * (2**attempt)
            logger.warning(
                f"Server error {response.status_code}, retry {attempt + 1}/{max_retries} in {delay}s"
            )
            time.sleep(delay)

        except (requests.Timeout, requests.ConnectionError) as e:
            if attempt >= max_retries:
                raise
            delay = base_delay * (2**attempt)
            logger.warning(
                f"Network error, retry {attempt + 1}/{max_retries} in {delay}s: {e}"
            )
            time.sleep(delay)

    raise requests.RequestException("Retry exhausted")


class WebhookSink:
    """
    Sink that POSTs JSON payloads to an HTTP endpoint.

    Payloads:
        {"type": "detection", "event": {...}}
        {"type": "frame-detections", "detections": [...]}
    """

    def __init__(
        self,
        url: str,
        include_frame_detections: bool = False,
        timeout: float = 5.0,
        queue_size: int = 100,
        session: requests.Session | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = DEFAULT_BASE_DELAY,
    ):
        self.url = url
        self.include_frame_detections = include_frame_detections
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._session = session or requests.Session()
        self._queue: queue.Queue[dict[str, Any] | None] = queue.Queue(maxsize=queue_size)
        self._worker: threading.Thread | None = None
        self.dropped = 0

        logger.debug(f"WebhookSink initialized -> {self.url}")

    def start(self) -> None:
        if self._worker is not None:
            return
        self._worker = threading.Thread(
            target=self._run, name="webhook-sink", daemon=True
        )
        self._worker.start()

    def stop(self, timeout: float = 5.0) -> None:
        """Flush queued payloads (bounded by timeout) and stop the worker."""
        if self._worker is None:
            return
        try:
            self._queue.put(None, timeout=timeout)
        except queue.Full:
            logger.warning("Webhook queue full on shutdown, dropping pending payloads")
        self._worker.join(timeout=timeout)
        self._worker = None

    def emit_new_object(self, event: DetectionEvent) -> None:
        self._enqueue({"type": "detection", "event": event.to_dict()})

    def emit_frame_detections(self, detections: list[FrameDetection]) -> None:
        if not self.include_frame_detections:
            return
        self._enqueue(
            {"type": "frame-detections", "detections": [d.to_dict() for d in detections]}
        )

    def send(self, payload: dict[str, Any]) -> bool:
        """
        POST one payload synchronously.

        Returns:
            True if the endpoint accepted it (2xx)
        """
        try:
            response = with_retry(
                lambda: self._session.post(self.url, json=payload, timeout=self.timeout),
                max_retries=self.max_retries,
                base_delay=self.base_delay,
            )
        except requests.RequestException as e:
            logger.error(f"Webhook failed: {e}")
            return False

        if not response.ok:
            logger.error(f"Webhook rejected payload: HTTP {response.status_code}")
            return False
        return True

    def _enqueue(self, payload: dict[str, Any]) -> None:
        try:
            self._queue.put_nowait(payload)
        except queue.Full:
            self.dropped += 1
            logger.debug(f"Webhook queue full, dropped {payload['type']} payload")

    def _run(self) -> None:
        while True:
            payload = self._queue.get()
            if payload is None:
                break
            self.send(payload)
