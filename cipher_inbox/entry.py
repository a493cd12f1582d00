"""Message entry — the atomic unit of the inbox log."""

import hashlib
from datetime import datetime
from typing import Dict

from .utils import decode_payload, encode_payload


class MessageEntry:
    """One accepted payload at a fixed position of an (owner, topic) sequence.

    The payload is held as immutable ``bytes`` and never rewritten. ``hash``
    is a BLAKE2b-128 digest over owner, topic, index and payload, used to
    spot damaged journal records on replay.
    """

    __slots__ = ("owner", "topic", "index", "payload", "created", "hash")

    def __init__(self, owner, topic: str, index: int, payload: bytes,
                 created: str = None):
        self.owner = owner
        self.topic = topic
        self.index = index
        self.payload = bytes(payload)
        self.created = created or datetime.now().isoformat()
        self.hash = self.compute_hash(owner, topic, index, self.payload)

    @staticmethod
    def compute_hash(owner, topic: str, index: int, payload: bytes) -> str:
        h = hashlib.blake2b(digest_size=16)
        h.update(f"{owner}\x00{topic}\x00{index}\x00".encode("utf-8"))
        h.update(payload)
        return h.hexdigest()

    @property
    def size(self) -> int:
        return len(self.payload)

    # -- serialisation --------------------------------------------------------

    def to_dict(self) -> Dict:
        return {
            "hash": self.hash,
            "owner": self.owner,
            "topic": self.topic,
            "index": self.index,
            "payload": encode_payload(self.payload),
            "created": self.created,
        }

    @classmethod
    def from_dict(cls, d: Dict) -> "MessageEntry":
        """Rebuild an entry.

        Raises:
            ValueError: if the stored hash does not match the decoded record.
        """
        m = cls(d["owner"], d["topic"], int(d["index"]),
                decode_payload(d["payload"]), d.get("created"))
        stored = d.get("hash")
        if stored and stored != m.hash:
            raise ValueError(
                f"Hash mismatch for ({m.owner!r}, {m.topic!r})[{m.index}]"
            )
        return m

    def __repr__(self) -> str:
        return (
            f"<Message {self.hash} owner={self.owner!r} topic={self.topic!r} "
            f"index={self.index} size={self.size}>"
        )
