# Overview: Outbound WhatsApp/SMS notifier sessions owned by the app factory.

"""
Notifier sessions

The core only needs send(phone, message) -> NotifyResult. Connection state
lives on an explicit session object that create_app builds, connects and
disconnects; services receive it by reference instead of importing a
module-level client.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from ..errors import NotifierFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotifyResult:
    success: bool
    message_id: str | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        return {"success": self.success, "message_id": self.message_id, "error": self.error}


class NotifierSession:
    """Base session. Subclasses implement _send."""

    def __init__(self):
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    def connect(self) -> None:
        self._connected = True

    def disconnect(self) -> None:
        self._connected = False

    def send(self, phone_number: str, message: str) -> NotifyResult:
        if not self._connected:
            return NotifyResult(success=False, error="Notifier is not connected")
        try:
            return self._send(phone_number, message)
        except NotifierFailure as exc:
            logger.warning("Notification to %s failed: %s", phone_number, exc)
            return NotifyResult(success=False, error=str(exc))

    def _send(self, phone_number: str, message: str) -> NotifyResult:
        raise NotImplementedError


class LogNotifier(NotifierSession):
    """Writes messages to the log instead of a provider. Used in development."""

    def __init__(self):
        super().__init__()
        self._sequence = 0

    def _send(self, phone_number: str, message: str) -> NotifyResult:
        self._sequence += 1
        logger.info("Notification to %s: %s", phone_number, message)
        return NotifyResult(success=True, message_id=f"log-{self._sequence}")


class HttpNotifier(NotifierSession):
    """
    Posts {"phone", "message"} JSON to a messaging gateway.

    One attempt per message with a short timeout; transport and HTTP
    errors come back as failed results.
    """

    def __init__(self, url: str, token: str | None = None, timeout: float = 5.0, transport: httpx.BaseTransport | None = None):
        super().__init__()
        if not url:
            raise ValueError("HttpNotifier requires a URL")
        self.url = url
        self.token = token
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.Client | None = None

    def connect(self) -> None:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        self._client = httpx.Client(timeout=self.timeout, headers=headers, transport=self._transport)
        super().connect()

    def disconnect(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
        super().disconnect()

    def _send(self, phone_number: str, message: str) -> NotifyResult:
        try:
            response = self._client.post(self.url, json={"phone": phone_number, "message": message})
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise NotifierFailure(f"Gateway returned {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise NotifierFailure(f"Gateway unreachable: {exc}") from exc

        message_id = None
        if response.content:
            try:
                body = response.json()
            except ValueError:
                body = {}
            if isinstance(body, dict):
                message_id = body.get("messageId") or body.get("id")
        return NotifyResult(success=True, message_id=str(message_id) if message_id is not None else None)


def build_notifier(config) -> NotifierSession:
    backend = (config.get("NOTIFIER_BACKEND") or "log").lower()
    if backend == "http":
        return HttpNotifier(
            url=config.get("NOTIFIER_URL"),
            token=config.get("NOTIFIER_TOKEN"),
            timeout=config.get("NOTIFIER_TIMEOUT_SECONDS", 5.0),
        )
    if backend == "log":
        return LogNotifier()
    raise ValueError(f"Unknown NOTIFIER_BACKEND: {backend}")
