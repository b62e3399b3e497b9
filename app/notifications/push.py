"""
Push delivery side channel.

``deliver`` is best-effort: it never raises and never blocks the domain
operation that produced the notification. Failures are logged and dropped;
there are no retries.
"""
import logging
from typing import Any, Dict, Iterable, Optional

import requests

from app.core.config import PUSH_GATEWAY_KEY, PUSH_GATEWAY_URL, PUSH_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


class PushChannel:
    """Base channel: subclasses implement ``send`` and may raise freely."""

    def send(self, tokens: list[str], payload: Dict[str, Any]) -> None:
        raise NotImplementedError

    def get_name(self) -> str:
        return type(self).__name__

    def is_available(self) -> bool:
        return True

    def deliver(self, tokens: Iterable[str], title: str, body: str, data: Optional[Dict[str, str]] = None) -> bool:
        """Send and swallow every failure. Returns True only if the gateway accepted it."""
        token_list = [t for t in tokens if t]
        if not token_list or not self.is_available():
            return False
        payload = {"title": title, "body": body, "data": data or {}}
        try:
            self.send(token_list, payload)
        except Exception as exc:
            logger.warning("[PUSH] %s delivery failed for %d token(s): %r", self.get_name(), len(token_list), exc)
            return False
        logger.info("[PUSH] %s delivered to %d token(s): %s", self.get_name(), len(token_list), title)
        return True


class NullPushChannel(PushChannel):
    """Used when no gateway is configured."""

    def send(self, tokens: list[str], payload: Dict[str, Any]) -> None:
        return None

    def is_available(self) -> bool:
        return False


class HttpPushChannel(PushChannel):
    """POSTs ``{"tokens": [...], "notification": {...}}`` to a push relay."""

    def __init__(self, url: str, api_key: str = "", timeout: float = 5.0):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout

    def send(self, tokens: list[str], payload: Dict[str, Any]) -> None:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        response = requests.post(
            self.url,
            json={"tokens": tokens, "notification": payload},
            headers=headers,
            timeout=self.timeout,
        )
        response.raise_for_status()

    def get_name(self) -> str:
        return "http"

    def is_available(self) -> bool:
        return bool(self.url)


def build_push_channel() -> PushChannel:
    if PUSH_GATEWAY_URL:
        return HttpPushChannel(PUSH_GATEWAY_URL, PUSH_GATEWAY_KEY, float(PUSH_TIMEOUT_SECONDS))
    return NullPushChannel()
