"""
Message journal — the durable form of the append-only inbox log.

One accepted message is one JSON line in ``{workspace}/messages.jsonl``.
Lines are only ever appended; nothing is rewritten or compacted, so the
file order is the commit order.

Safety: each append is written, flushed and fsynced under the journal's
``FileLock`` before the in-memory log is extended. A crash mid-append can
leave a torn final line; ``replay()`` skips it.

Several handles (processes, or ``Inbox`` objects) may share one journal.
Each remembers how far it has read. A writer that needs the current tail,
for instance to number the next message, does so inside ``exclusive()``:

    with journal.exclusive():
        for record in journal.read_new():
            ...                     # records other handles appended
        journal.append(record)      # lands directly after them
"""

import json
import os
import logging
from contextlib import contextmanager
from typing import Dict, Iterator, List

from .locking import FileLock

logger = logging.getLogger("cipher_inbox")


class MessageJournal:
    """Append-only JSON-lines journal.

    Args:
        workspace: Directory holding ``messages.jsonl``.
        lock_timeout: Seconds to wait for the cross-process lock.
    """

    FILENAME = "messages.jsonl"

    def __init__(self, workspace: str, lock_timeout: float = 30.0):
        self.workspace = workspace
        self.path = os.path.join(workspace, self.FILENAME)
        self.lock_timeout = lock_timeout
        # Byte offset just past the last complete line this handle has read
        self._offset = 0
        self._exclusive = False
        os.makedirs(workspace, exist_ok=True)

    # ── write path ──────────────────────────────────────────────────────

    @contextmanager
    def exclusive(self):
        """Hold the journal lock across ``read_new()`` and ``append()``."""
        with FileLock(self.path, timeout=self.lock_timeout):
            self._exclusive = True
            try:
                yield self
            finally:
                self._exclusive = False

    def append(self, record: Dict) -> None:
        """Durably append one record as a JSON line.

        A torn final line left by a crash is terminated first so the new
        record always starts on its own line. Inside ``exclusive()`` the
        read offset moves past the new line, since nothing can precede it
        unseen.
        """
        data = (json.dumps(record, ensure_ascii=False) + "\n").encode("utf-8")
        if self._exclusive:
            end = self._write(data)
            self._offset = end
        else:
            with FileLock(self.path, timeout=self.lock_timeout):
                self._write(data)
        logger.debug(f"Journal append: {record.get('hash')} -> {self.path}")

    def _write(self, data: bytes) -> int:
        with open(self.path, "ab+") as fh:
            fh.seek(0, os.SEEK_END)
            if fh.tell() > 0:
                fh.seek(-1, os.SEEK_END)
                if fh.read(1) != b"\n":
                    data = b"\n" + data
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
            return fh.tell()

    # ── read path ───────────────────────────────────────────────────────

    def read_new(self) -> List[Dict]:
        """Return records appended since this handle last read, in order.

        Only newline-terminated lines are consumed; an unterminated tail is
        either a write still in flight or a torn line and is left for later.
        Complete lines that do not decode are skipped with a warning.
        """
        if not os.path.exists(self.path):
            return []
        with open(self.path, "rb") as fh:
            fh.seek(self._offset)
            chunk = fh.read()
        consumed = chunk.rfind(b"\n") + 1
        if consumed == 0:
            return []

        records = []
        for raw in chunk[:consumed].split(b"\n"):
            stripped = raw.strip()
            if not stripped:
                continue
            try:
                records.append(json.loads(stripped.decode("utf-8")))
            except (UnicodeDecodeError, json.JSONDecodeError):
                logger.warning(f"Skipping torn journal line in {self.path}")
        self._offset += consumed
        return records

    def rewind(self) -> None:
        """Forget the read position; the next ``read_new()`` starts at the top."""
        self._offset = 0

    def replay(self) -> Iterator[Dict]:
        """Yield every decodable record in write order."""
        if not os.path.exists(self.path):
            return
        with open(self.path, encoding="utf-8", errors="replace") as fh:
            for lineno, line in enumerate(fh, 1):
                stripped = line.strip()
                if not stripped:
                    continue
                try:
                    yield json.loads(stripped)
                except json.JSONDecodeError:
                    logger.warning(f"Skipping torn journal line {lineno} in {self.path}")

    # ── introspection ───────────────────────────────────────────────────

    def exists(self) -> bool:
        return os.path.exists(self.path)

    def size_bytes(self) -> int:
        if not os.path.exists(self.path):
            return 0
        return os.path.getsize(self.path)

    def line_count(self) -> int:
        return sum(1 for _ in self.replay())
