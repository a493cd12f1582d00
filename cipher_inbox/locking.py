"""
Cross-process locking for inbox files.

``os.mkdir`` either creates the directory or fails, atomically, on POSIX,
Windows and network filesystems alike, so a ``<path>.lock`` directory is
used as the lock token. A ``holder.json`` inside it records who holds it.

Usage:
    with FileLock(journal_path):
        append_line(journal_path, record)

    lock = FileLock(state_path, timeout=5.0)
    if lock.acquire(blocking=False):
        try:
            ...
        finally:
            lock.release()
"""

import json
import os
import time
import logging
from datetime import datetime, timezone

logger = logging.getLogger("cipher_inbox")

# A lock older than this is assumed to belong to a crashed writer
STALE_LOCK_SECONDS = 300


class LockTimeout(Exception):
    """Raised when a lock cannot be acquired within the timeout."""

    def __init__(self, path: str, timeout: float, holder: str):
        self.path = path
        self.timeout = timeout
        self.holder = holder
        super().__init__(
            f"Could not lock {path} within {timeout:.1f}s (holder: {holder})"
        )


class FileLock:
    """Directory-based lock on *path*.

    Args:
        path: Resource to guard; the lock lives at ``path + ".lock"``.
        timeout: Seconds to wait in ``acquire()`` (None waits forever).
        poll_interval: Seconds between attempts.
        stale_threshold: Age in seconds after which a held lock is broken.
    """

    def __init__(self, path: str, timeout: float = 30.0,
                 poll_interval: float = 0.05,
                 stale_threshold: float = STALE_LOCK_SECONDS):
        self.path = path
        self.lock_dir = path + ".lock"
        self.meta_path = os.path.join(self.lock_dir, "holder.json")
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.stale_threshold = stale_threshold
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def acquire(self, blocking: bool = True) -> bool:
        """Take the lock.

        Returns:
            True once held; False only when ``blocking=False`` and busy.

        Raises:
            LockTimeout: blocking and ``timeout`` elapsed.
        """
        start = time.monotonic()
        while True:
            try:
                os.mkdir(self.lock_dir)
            except FileExistsError:
                if self._break_if_stale():
                    continue
                if not blocking:
                    return False
                if self.timeout is not None and time.monotonic() - start >= self.timeout:
                    raise LockTimeout(self.path, self.timeout, self._describe_holder())
                time.sleep(self.poll_interval)
                continue
            self._write_holder()
            self._held = True
            logger.debug(f"Lock acquired: {self.lock_dir}")
            return True

    def release(self) -> None:
        if not self._held:
            return
        try:
            self._remove_lock_dir()
            logger.debug(f"Lock released: {self.lock_dir}")
        except OSError as e:
            logger.warning(f"Error releasing lock {self.lock_dir}: {e}")
        finally:
            self._held = False

    # -- holder metadata ------------------------------------------------------

    def _write_holder(self) -> None:
        now = time.time()
        meta = {
            "pid": os.getpid(),
            "acquired_at": datetime.fromtimestamp(now, tz=timezone.utc).isoformat(),
            "acquired_at_ts": now,
            "path": self.path,
        }
        try:
            with open(self.meta_path, "w", encoding="utf-8") as f:
                json.dump(meta, f)
        except OSError as e:
            # The lock is held either way; metadata only helps stale detection
            logger.debug(f"Could not write lock metadata {self.meta_path}: {e}")

    def _read_holder(self):
        try:
            with open(self.meta_path, encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError):
            return None

    def _describe_holder(self) -> str:
        meta = self._read_holder()
        if not meta:
            return "unknown"
        return f"pid={meta.get('pid')}, acquired={meta.get('acquired_at')}"

    # -- stale detection ------------------------------------------------------

    def _break_if_stale(self) -> bool:
        """Remove the lock if its holder died or it outlived the threshold."""
        meta = self._read_holder()
        try:
            if meta is None:
                # Holder crashed between mkdir and writing metadata
                age = time.time() - os.path.getmtime(self.lock_dir)
                if age <= self.stale_threshold:
                    return False
                logger.warning(f"Breaking lock without holder on {self.path} ({age:.0f}s old)")
                self._remove_lock_dir()
                return True

            pid = meta.get("pid")
            if pid and pid != os.getpid() and not _pid_alive(pid):
                logger.warning(f"Breaking orphaned lock on {self.path} (pid={pid} is gone)")
                self._remove_lock_dir()
                return True

            acquired = meta.get("acquired_at_ts")
            if not isinstance(acquired, (int, float)):
                acquired = meta.get("acquired_at")
                if not isinstance(acquired, (int, float)):
                    return False
            age = time.time() - acquired
            if age > self.stale_threshold:
                logger.warning(f"Breaking stale lock on {self.path} (pid={pid}, {age:.0f}s old)")
                self._remove_lock_dir()
                return True
            return False
        except OSError:
            # Another process released or broke it first; retry mkdir
            return True

    def _remove_lock_dir(self) -> None:
        if os.path.exists(self.meta_path):
            os.unlink(self.meta_path)
        os.rmdir(self.lock_dir)

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, *exc):
        self.release()
        return False

    def __del__(self):
        if getattr(self, "_held", False):
            self.release()


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except OSError:
        return True  # exists but owned by someone else
    return True
