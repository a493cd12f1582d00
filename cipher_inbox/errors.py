"""Exceptions raised by the inbox store."""

from .gating import GateReason


class InboxError(Exception):
    """Base class for every error the store raises."""
    pass


class Rejected(InboxError):
    """Raised when the content gate refuses a payload."""

    def __init__(self, reason: GateReason, caller=None, topic=None):
        self.reason = reason
        self.caller = caller
        self.topic = topic
        super().__init__(f"Payload rejected: {reason.value}")


class IndexOutOfBounds(InboxError, IndexError):
    """Raised when reading at or past the end of a (owner, topic) sequence."""

    def __init__(self, owner, topic, index: int, count: int):
        self.owner = owner
        self.topic = topic
        self.index = index
        self.count = count
        super().__init__(
            f"Index {index} out of bounds for ({owner!r}, {topic!r}) "
            f"holding {count} message(s)"
        )


class Unauthorized(InboxError, PermissionError):
    """Raised when a non-administrator calls an administrator-only operation."""

    def __init__(self, caller, action: str):
        self.caller = caller
        self.action = action
        super().__init__(f"{caller!r} is not authorized to {action}")


class InvalidTarget(InboxError, ValueError):
    """Raised when the administrator role would be handed to the null identity."""

    def __init__(self, target):
        self.target = target
        super().__init__(f"Invalid administrator target: {target!r}")
