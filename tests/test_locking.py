"""Tests for cross-process locking and the files written under it."""

import os
import json
import time
import shutil
import tempfile
import threading
import unittest

from cipher_inbox.journal import MessageJournal
from cipher_inbox.locking import FileLock, LockTimeout
from cipher_inbox.utils import atomic_write_json, locked_read_json


class TestFileLock(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.resource = os.path.join(self.tmpdir, "inbox_state.json")
        self.lock_dir = self.resource + ".lock"

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def _plant_lock(self, meta=None, age=0):
        os.mkdir(self.lock_dir)
        if meta is not None:
            with open(os.path.join(self.lock_dir, "holder.json"), "w") as f:
                json.dump(meta, f)
        if age:
            past = time.time() - age
            os.utime(self.lock_dir, (past, past))

    def test_acquire_release(self):
        lock = FileLock(self.resource)
        self.assertTrue(lock.acquire())
        self.assertTrue(lock.held)
        self.assertTrue(os.path.isdir(self.lock_dir))
        lock.release()
        self.assertFalse(lock.held)
        self.assertFalse(os.path.exists(self.lock_dir))

    def test_release_without_acquire_is_noop(self):
        FileLock(self.resource).release()
        self.assertFalse(os.path.exists(self.lock_dir))

    def test_context_manager(self):
        with FileLock(self.resource) as lock:
            self.assertTrue(lock.held)
        self.assertFalse(os.path.exists(self.lock_dir))

    def test_non_blocking_returns_false_when_held(self):
        with FileLock(self.resource):
            self.assertFalse(FileLock(self.resource).acquire(blocking=False))

    def test_timeout_names_holder(self):
        with FileLock(self.resource):
            with self.assertRaises(LockTimeout) as ctx:
                FileLock(self.resource, timeout=0.2).acquire()
        self.assertIn(f"pid={os.getpid()}", str(ctx.exception))
        self.assertEqual(ctx.exception.path, self.resource)

    def test_holder_metadata(self):
        with FileLock(self.resource):
            with open(os.path.join(self.lock_dir, "holder.json")) as f:
                meta = json.load(f)
        self.assertEqual(meta["pid"], os.getpid())
        self.assertEqual(meta["path"], self.resource)
        self.assertIn("acquired_at", meta)

    def test_dead_holder_is_broken(self):
        self._plant_lock({"pid": 99999999, "acquired_at_ts": time.time()})
        lock = FileLock(self.resource)
        self.assertTrue(lock.acquire(blocking=False))
        lock.release()

    def test_old_holder_is_broken(self):
        self._plant_lock({"pid": os.getpid(), "acquired_at_ts": time.time() - 600})
        lock = FileLock(self.resource, stale_threshold=60)
        self.assertTrue(lock.acquire(blocking=False))
        lock.release()

    def test_lock_without_metadata(self):
        # Fresh: a writer may be between mkdir and writing holder.json
        self._plant_lock()
        self.assertFalse(FileLock(self.resource, stale_threshold=60).acquire(blocking=False))
        shutil.rmtree(self.lock_dir)

        # Old: the writer crashed there
        self._plant_lock(age=600)
        lock = FileLock(self.resource, stale_threshold=60)
        self.assertTrue(lock.acquire(blocking=False))
        lock.release()


class TestLockedFiles(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_atomic_write_releases_lock(self):
        path = os.path.join(self.tmpdir, "state.json")
        atomic_write_json(path, {"administrator": "0xadmin"})
        self.assertEqual(locked_read_json(path), {"administrator": "0xadmin"})
        self.assertFalse(os.path.exists(path + ".lock"))

    def test_atomic_write_without_lock(self):
        path = os.path.join(self.tmpdir, "state.json")
        atomic_write_json(path, {"k": 1}, lock=False)
        self.assertEqual(locked_read_json(path), {"k": 1})

    def test_locked_read_default(self):
        path = os.path.join(self.tmpdir, "missing.json")
        self.assertEqual(locked_read_json(path, default={}), {})

    def test_concurrent_journal_appends(self):
        """Separate journal handles appending at once lose no lines."""
        errors = []
        per_thread = 25

        def writer(n):
            journal = MessageJournal(self.tmpdir)
            try:
                for i in range(per_thread):
                    journal.append({"writer": n, "seq": i})
            except Exception as e:
                errors.append(str(e))

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        self.assertEqual(errors, [])
        records = list(MessageJournal(self.tmpdir).replay())
        self.assertEqual(len(records), 4 * per_thread)
        for n in range(4):
            seqs = [r["seq"] for r in records if r["writer"] == n]
            self.assertEqual(seqs, list(range(per_thread)))


if __name__ == "__main__":
    unittest.main()
