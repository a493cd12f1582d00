"""
Inbox — gated, append-only, multi-tenant message log.

Messages are partitioned by (owner identity, topic). Each partition is an
append-only sequence with contiguous indices starting at 0. Writes pass the
content gate first; reads never touch it.

A single administrator may rotate the published public key and hand the
role to another non-null identity.

Identities are ``str`` or ``int`` (the types that persist exactly); topics
are ``str``; payloads are bytes-like.

Usage:
    from cipher_inbox import Inbox

    inbox = Inbox(administrator="0xA11CE", key_material=pub_b64,
                  profile="light", workspace="./store")
    inbox.submit("0xB0B", "greetings", ciphertext)
    inbox.count("0xB0B", "greetings")      # 1
    inbox.read("0xB0B", "greetings", 0)    # ciphertext

Several ``Inbox`` objects, in one process or many, may open the same
workspace. Each write first picks up what the others committed, so indices
stay contiguous; ``refresh()`` does the same for a reader.
"""

import json
import os
import threading
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from .admin import AdminState, check_identity, is_identity, is_null_identity
from .entry import MessageEntry
from .errors import IndexOutOfBounds, InvalidTarget, Rejected, Unauthorized
from .events import (
    AdministratorTransferred,
    EventBus,
    KeyMaterialChanged,
    MessageAccepted,
    MessageRejected,
)
from .gating import GateDecision, as_bytes_view, get_gate
from .journal import MessageJournal
from .locking import FileLock
from .utils import atomic_write_json, locked_read_json

logger = logging.getLogger("cipher_inbox")

STATE_VERSION = "1.0"


class Inbox:
    """Gated message store.

    Parameters
    ----------
    administrator :
        Initial administrator identity (str or int). Must not be the null
        identity.
    key_material : str
        Initial public key string, stored verbatim.
    profile : str
        Gate profile: "none", "light" or "full" ("unsafe" = "none").
    workspace : str | None
        Directory for durable storage. ``None`` keeps everything in memory.
        An existing workspace is loaded on construction and its stored
        administrator and key take precedence over the arguments.
    gate :
        Explicit gate instance; overrides *profile*.
    """

    STATE_FILENAME = "inbox_state.json"
    AUDIT_FILENAME = "inbox_audit.jsonl"

    def __init__(
        self,
        administrator,
        key_material: str = "",
        profile: str = "full",
        workspace: Optional[str] = None,
        gate=None,
    ):
        self.gate = gate if gate is not None else get_gate(profile)
        self.workspace = os.path.abspath(workspace) if workspace else None

        # Serializes every mutating call; reads go without it
        self._lock = threading.RLock()
        self._log: Dict[Tuple, List[MessageEntry]] = {}
        self._topics: Dict[object, List[str]] = {}
        self._admin = AdminState(administrator, _check_key(key_material))

        if self.workspace:
            os.makedirs(self.workspace, exist_ok=True)
            self.state_path = os.path.join(self.workspace, self.STATE_FILENAME)
            self._journal: Optional[MessageJournal] = MessageJournal(self.workspace)
            self.events = EventBus(os.path.join(self.workspace, self.AUDIT_FILENAME))
        else:
            self.state_path = None
            self._journal = None
            self.events = EventBus()

        self._initialize()

    def _initialize(self) -> None:
        if not self.workspace:
            return
        with FileLock(self.state_path):
            if not os.path.exists(self.state_path):
                self._write_state(self._admin, lock=False)
                logger.info(
                    f"Initialized inbox at {self.workspace} "
                    f"(profile={self.profile}, administrator={self._admin.administrator!r})"
                )
        self.load()

    # ── properties ──────────────────────────────────────────────────────

    @property
    def profile(self) -> str:
        return self.gate.profile

    @property
    def administrator(self):
        return self._admin.administrator

    @property
    def key_material(self) -> str:
        return self._admin.key_material

    @property
    def persistent(self) -> bool:
        return self.workspace is not None

    # ── writes ──────────────────────────────────────────────────────────

    def submit(self, caller, topic: str, payload) -> MessageEntry:
        """Admit *payload* into the (caller, topic) sequence.

        Returns:
            The stored MessageEntry (its ``index`` is the new position).

        Raises:
            Rejected: the gate refused the payload; nothing was stored.
            TypeError: *caller* is not a str/int identity, *topic* is not a
                str, or *payload* is not bytes-like.
        """
        check_identity(caller, "caller")
        _check_topic(topic)
        data = as_bytes_view(payload).tobytes()

        with self._lock:
            if self.gate.validates:
                decision = self.gate.evaluate(data)
                if not decision.accepted:
                    logger.warning(
                        f"Rejected {len(data)}-byte payload from {caller!r} "
                        f"on {topic!r}: {decision.reason.value}"
                    )
                    self.events.publish(MessageRejected(caller, topic, decision.reason))
                    raise Rejected(decision.reason, caller, topic)

            if self._journal is None:
                entry = MessageEntry(caller, topic, self.count(caller, topic), data)
            else:
                with self._journal.exclusive():
                    # Number after whatever other handles committed meanwhile
                    self._catch_up()
                    entry = MessageEntry(caller, topic, self.count(caller, topic), data)
                    self._journal.append(entry.to_dict())
            self._append(entry)

            logger.info(
                f"Accepted message {entry.index} for ({caller!r}, {topic!r}), "
                f"{entry.size} bytes"
            )
            self.events.publish(
                MessageAccepted(caller, topic, entry.index, timestamp=entry.created)
            )
            return entry

    def _append(self, entry: MessageEntry, log=None, topics=None) -> None:
        log = self._log if log is None else log
        topics = self._topics if topics is None else topics
        key = (entry.owner, entry.topic)
        seq = log.get(key)
        if seq is None:
            seq = []
            topics.setdefault(entry.owner, []).append(entry.topic)
        seq.append(entry)
        log[key] = seq

    def _apply_record(self, record: Dict, log, topics) -> bool:
        """Append one journal record if it is intact and next in its sequence."""
        try:
            entry = MessageEntry.from_dict(record)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping unreadable journal record: {e}")
            return False
        if not is_identity(entry.owner) or not isinstance(entry.topic, str):
            logger.warning(f"Skipping journal record with invalid key ({entry.owner!r}, {entry.topic!r})")
            return False
        expected = len(log.get((entry.owner, entry.topic), ()))
        if entry.index != expected:
            logger.warning(
                f"Skipping journal record for ({entry.owner!r}, {entry.topic!r}) "
                f"at index {entry.index}; expected {expected}"
            )
            return False
        self._append(entry, log, topics)
        return True

    def _catch_up(self) -> int:
        applied = 0
        for record in self._journal.read_new():
            if self._apply_record(record, self._log, self._topics):
                applied += 1
        if applied:
            logger.debug(f"Picked up {applied} message(s) written by other handles")
        return applied

    def set_key_material(self, caller, new_key: str) -> None:
        """Replace the published key. Administrator only.

        Raises:
            Unauthorized: *caller* is not the administrator.
        """
        _check_key(new_key)
        with self._lock, self._admin_guard():
            if not self._admin.is_administrator(caller):
                raise Unauthorized(caller, "set key material")
            updated = AdminState(self._admin.administrator, self._admin.key_material)
            updated.replace_key(new_key)
            self._commit_admin(updated)
            logger.info(f"Key material rotated by {caller!r}")
            self.events.publish(KeyMaterialChanged(caller, timestamp=updated.updated_at))

    def transfer_administrator(self, caller, new_admin) -> None:
        """Hand the administrator role to *new_admin*.

        Raises:
            InvalidTarget: *new_admin* is the null identity, whoever calls.
            Unauthorized: *caller* is not the administrator.
            TypeError: *new_admin* is not a str/int identity.
        """
        if is_null_identity(new_admin):
            raise InvalidTarget(new_admin)
        with self._lock, self._admin_guard():
            if not self._admin.is_administrator(caller):
                raise Unauthorized(caller, "transfer the administrator role")
            check_identity(new_admin, "administrator")
            previous = self._admin.administrator
            updated = AdminState(previous, self._admin.key_material)
            updated.transfer(new_admin)
            self._commit_admin(updated)
            logger.info(f"Administrator transferred from {previous!r} to {new_admin!r}")
            self.events.publish(
                AdministratorTransferred(previous, new_admin, timestamp=updated.updated_at)
            )

    @contextmanager
    def _admin_guard(self):
        """Hold the state-file lock and start from the stored record."""
        if not self.persistent:
            yield
            return
        with FileLock(self.state_path):
            state = _read_state(self.state_path)
            if state:
                self._admin = AdminState.from_dict(state)
            yield

    def _commit_admin(self, updated: AdminState) -> None:
        # Disk first: a failed write leaves the in-memory record untouched
        if self.persistent:
            self._write_state(updated, lock=False)
        self._admin = updated

    # ── reads ───────────────────────────────────────────────────────────

    def count(self, identity, topic: str) -> int:
        """Number of messages in (identity, topic); 0 if never written."""
        return len(self._partition(identity, topic))

    def read(self, identity, topic: str, index: int) -> bytes:
        """Return the payload at *index*.

        Raises:
            IndexOutOfBounds: unless ``0 <= index < count(identity, topic)``.
        """
        seq = self._partition(identity, topic)
        size = len(seq)
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < size:
            raise IndexOutOfBounds(identity, topic, index, size)
        return seq[index].payload

    def _partition(self, identity, topic):
        # Keys that can never have been written (wrong types) hold nothing
        if not is_identity(identity) or not isinstance(topic, str):
            return ()
        return self._log.get((identity, topic)) or ()

    def entries(self, identity, topic: str) -> List[MessageEntry]:
        """Snapshot of the (identity, topic) sequence."""
        return list(self._partition(identity, topic))

    def topics(self, identity) -> List[str]:
        """Topics *identity* has written to, in first-write order."""
        if not is_identity(identity):
            return []
        return list(self._topics.get(identity, ()))

    def preview(self, payload) -> GateDecision:
        """Run the gate without storing anything."""
        return self.gate.evaluate(payload)

    def subscribe(self, listener: Callable) -> Callable[[], None]:
        """Register an event listener; returns its unsubscribe callable."""
        return self.events.subscribe(listener)

    def __len__(self) -> int:
        return sum(len(seq) for seq in list(self._log.values()))

    def stats(self) -> Dict:
        partitions = list(self._log.items())
        return {
            "profile": self.profile,
            "total_messages": sum(len(seq) for _, seq in partitions),
            "partitions": len(partitions),
            "identities": len(self._topics),
            "total_bytes": sum(e.size for _, seq in partitions for e in seq),
            "administrator": self._admin.administrator,
            "persistent": self.persistent,
            "workspace": self.workspace,
        }

    # ── persistence ─────────────────────────────────────────────────────

    def save(self) -> str:
        """Write the administrator record to ``inbox_state.json``.

        Messages are already durable in the journal. Returns the state path.
        """
        if not self.persistent:
            raise RuntimeError("In-memory inbox has no workspace to save to")
        with self._lock:
            self._write_state(self._admin)
        return self.state_path

    def _write_state(self, admin: AdminState, lock: bool = True) -> None:
        state = {
            "version": STATE_VERSION,
            "profile": self.profile,
            "saved_at": datetime.now().isoformat(),
            **admin.to_dict(),
        }
        atomic_write_json(self.state_path, state, lock=lock)

    def refresh(self) -> int:
        """Pick up messages and administrator changes made by other handles.

        Returns the number of new messages. In-memory inboxes return 0.
        """
        if not self.persistent:
            return 0
        with self._lock:
            state = locked_read_json(self.state_path, default=None)
            if state:
                self._admin = AdminState.from_dict(state)
            return self._catch_up()

    def load(self) -> int:
        """Rebuild state from the workspace. Returns messages replayed."""
        if not self.persistent:
            raise RuntimeError("In-memory inbox has no workspace to load from")
        with self._lock:
            state = locked_read_json(self.state_path, default=None)
            if state:
                self._admin = AdminState.from_dict(state)
                stored_profile = state.get("profile")
                if stored_profile and stored_profile != self.profile:
                    logger.warning(
                        f"Workspace {self.workspace} was created with profile "
                        f"{stored_profile!r}; now gating with {self.profile!r}"
                    )

            # Built aside, then swapped in whole
            log: Dict[Tuple, List[MessageEntry]] = {}
            topics: Dict[object, List[str]] = {}
            loaded = 0
            self._journal.rewind()
            for record in self._journal.read_new():
                if self._apply_record(record, log, topics):
                    loaded += 1
            self._log = log
            self._topics = topics
            logger.debug(f"Loaded {loaded} message(s) from {self._journal.path}")
            return loaded

    def audit_log(self) -> List[Dict]:
        """Persisted event history (empty for in-memory inboxes)."""
        return self.events.read_audit()

    def __repr__(self) -> str:
        return (
            f"<Inbox profile={self.profile} messages={len(self)} "
            f"workspace={self.workspace!r}>"
        )


def _read_state(path: str) -> Optional[Dict]:
    # Caller holds the state lock
    if not os.path.exists(path):
        return None
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def _check_topic(topic) -> None:
    if not isinstance(topic, str):
        raise TypeError(f"topic must be a str, got {type(topic).__name__}")


def _check_key(key) -> str:
    if not isinstance(key, str):
        raise TypeError(f"key material must be a str, got {type(key).__name__}")
    return key
