# Overview: Test doubles for outbound messaging.

import threading

from refpoints.errors import NotifierFailure
from refpoints.services.notifier import NotifierSession, NotifyResult


class FakeNotifier(NotifierSession):
    """Records every message; phones in `failing` get a NotifierFailure."""

    def __init__(self):
        super().__init__()
        self.sent = []
        self.failing = set()
        self.raising = set()
        self._lock = threading.Lock()

    def reset(self):
        with self._lock:
            self.sent.clear()
        self.failing.clear()
        self.raising.clear()

    def messages_to(self, phone_number):
        return [m for p, m in self.sent if p == phone_number]

    def _send(self, phone_number, message):
        if phone_number in self.raising:
            raise RuntimeError("provider exploded")
        if phone_number in self.failing:
            raise NotifierFailure("Gateway returned 500")
        with self._lock:
            self.sent.append((phone_number, message))
            return NotifyResult(success=True, message_id=f"fake-{len(self.sent)}")


class SleepRecorder:
    """Stands in for time.sleep in the broadcast queue."""

    def __init__(self):
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, seconds):
        with self._lock:
            self.calls.append(seconds)

    def reset(self):
        with self._lock:
            self.calls.clear()
