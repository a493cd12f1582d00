"""
Inbox notifications.

Committed state changes are announced to subscribers after the change is in
place. Listeners observe; they cannot veto or undo a write, and a listener
that raises is logged and skipped.

    inbox.subscribe(lambda event: print(event.name, event.to_dict()))
"""

import json
import os
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from .gating import GateReason

logger = logging.getLogger("cipher_inbox")


def _now() -> str:
    return datetime.now().isoformat()


class InboxEvent:
    """Base class; subclasses set ``name`` and ``__slots__``."""

    name = "InboxEvent"
    __slots__ = ("timestamp",)

    def to_dict(self) -> Dict:
        d = {"event": self.name}
        for cls in reversed(type(self).__mro__):
            for slot in getattr(cls, "__slots__", ()):
                value = getattr(self, slot)
                d[slot] = value.value if isinstance(value, GateReason) else value
        return d

    def __repr__(self) -> str:
        fields = " ".join(f"{k}={v!r}" for k, v in self.to_dict().items() if k != "event")
        return f"<{self.name} {fields}>"


class MessageAccepted(InboxEvent):
    name = "MessageAccepted"
    __slots__ = ("caller", "topic", "index")

    def __init__(self, caller, topic: str, index: int, timestamp: str = None):
        self.caller = caller
        self.topic = topic
        self.index = index
        self.timestamp = timestamp or _now()


class MessageRejected(InboxEvent):
    name = "MessageRejected"
    __slots__ = ("caller", "topic", "reason")

    def __init__(self, caller, topic: str, reason: GateReason, timestamp: str = None):
        self.caller = caller
        self.topic = topic
        self.reason = reason
        self.timestamp = timestamp or _now()


class KeyMaterialChanged(InboxEvent):
    name = "KeyMaterialChanged"
    __slots__ = ("caller",)

    def __init__(self, caller, timestamp: str = None):
        self.caller = caller
        self.timestamp = timestamp or _now()


class AdministratorTransferred(InboxEvent):
    name = "AdministratorTransferred"
    __slots__ = ("previous", "current")

    def __init__(self, previous, current, timestamp: str = None):
        self.previous = previous
        self.current = current
        self.timestamp = timestamp or _now()


Listener = Callable[[InboxEvent], None]


class EventBus:
    """Fan-out of inbox events to listeners, with an optional audit journal.

    Args:
        audit_path: When set, every published event is appended to this
            JSON-lines file.
    """

    def __init__(self, audit_path: Optional[str] = None):
        self.audit_path = audit_path
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def publish(self, event: InboxEvent) -> None:
        if self.audit_path:
            self._audit(event)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Listener {listener!r} failed on {event.name}")

    def _audit(self, event: InboxEvent) -> None:
        line = json.dumps(event.to_dict(), ensure_ascii=False) + "\n"
        try:
            with open(self.audit_path, "a", encoding="utf-8") as fh:
                fh.write(line)
        except OSError as e:
            # The write it describes is already committed
            logger.warning(f"Could not append to audit log {self.audit_path}: {e}")

    def read_audit(self) -> List[Dict]:
        """Return audit records in order; torn lines are skipped."""
        if not self.audit_path or not os.path.exists(self.audit_path):
            return []
        records = []
        with open(self.audit_path, encoding="utf-8") as fh:
            for line in fh:
                stripped = line.strip()
                if not stripped:
                    continue
                try:
                    records.append(json.loads(stripped))
                except json.JSONDecodeError:
                    logger.warning(f"Skipping torn audit line in {self.audit_path}")
        return records
