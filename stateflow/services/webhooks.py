"""Webhook delivery of transition events.

``WebhookSubscriber`` is a notification bus listener. It is meant for the
after-transition events: delivery failures are logged and never raised, so
a dead endpoint cannot affect a transition that has already committed.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import httpx

from stateflow.core.engine import EventKind, TransitionEngine, TransitionEvent

logger = logging.getLogger(__name__)


class WebhookSubscriber:
    """POSTs transition events as JSON to a list of URLs."""

    def __init__(
        self,
        urls: Iterable[str],
        *,
        timeout: float = 30,
        max_retries: int = 3,
        retry_delay: float = 2,
        client: Optional[httpx.Client] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Args:
            urls: Endpoints every event is delivered to
            timeout: Per-request timeout in seconds
            max_retries: Extra attempts after a transport error or 5xx
            retry_delay: Seconds before the first retry (doubles each retry)
            client: Optional preconfigured client (tests pass a mock transport)
            headers: Extra request headers
        """
        self.urls: List[str] = [u for u in urls if u]
        self.timeout = timeout
        self.max_retries = max(max_retries, 0)
        self.retry_delay = max(retry_delay, 0)
        self.headers = dict(headers or {})
        self._client = client

    def __call__(self, event: TransitionEvent) -> None:
        payload = self.build_payload(event)
        for url in self.urls:
            self.deliver(url, payload)

    def attach(self, engine: TransitionEngine) -> None:
        """Subscribe to an engine's after-success and after-failure events."""
        engine.subscribe(EventKind.AFTER_SUCCESS, self)
        engine.subscribe(EventKind.AFTER_FAILURE, self)

    def detach(self, engine: TransitionEngine) -> None:
        engine.unsubscribe(EventKind.AFTER_SUCCESS, self)
        engine.unsubscribe(EventKind.AFTER_FAILURE, self)

    @staticmethod
    def build_payload(event: TransitionEvent) -> Dict[str, Any]:
        return {
            "event": event.kind.value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "data": event.to_dict(),
        }

    def deliver(self, url: str, payload: Dict[str, Any]) -> bool:
        """POST ``payload`` to ``url``, retrying transient failures.

        Returns:
            True if an attempt got a non-error response
        """
        headers = {"Content-Type": "application/json", **self.headers}
        attempts = self.max_retries + 1
        delay = self.retry_delay

        for attempt in range(1, attempts + 1):
            try:
                response = self._post(url, payload, headers)
                if response.status_code >= 500:
                    raise httpx.HTTPStatusError(
                        f"Server error {response.status_code}",
                        request=response.request,
                        response=response,
                    )
                response.raise_for_status()
                logger.debug(f"Delivered {payload['event']} to {url} (attempt {attempt})")
                return True
            except httpx.HTTPStatusError as e:
                if e.response.status_code < 500:
                    logger.error(f"Webhook {url} rejected {payload['event']}: {e.response.status_code}")
                    return False
                logger.warning(f"Webhook {url} attempt {attempt}/{attempts} failed: {e}")
            except httpx.TransportError as e:
                logger.warning(f"Webhook {url} attempt {attempt}/{attempts} failed: {e}")

            # Exponential backoff
            if attempt < attempts and delay:
                time.sleep(delay)
                delay *= 2

        logger.error(f"Giving up on webhook {url} for {payload['event']} after {attempts} attempts")
        return False

    def _post(self, url: str, payload: Dict[str, Any], headers: Dict[str, str]) -> httpx.Response:
        if self._client is not None:
            return self._client.post(url, json=payload, headers=headers, timeout=self.timeout)
        with httpx.Client(timeout=self.timeout) as client:
            return client.post(url, json=payload, headers=headers)


def subscriber_from_settings(settings) -> Optional[WebhookSubscriber]:
    """Build a subscriber from ``Settings``; None when no URLs are configured."""
    urls = settings.webhook_urls_list
    if not urls:
        return None
    return WebhookSubscriber(
        urls,
        timeout=settings.webhook_timeout,
        max_retries=settings.webhook_max_retries,
        retry_delay=settings.webhook_retry_delay,
    )
