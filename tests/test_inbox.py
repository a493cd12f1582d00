"""Tests for Inbox — admission, ordering, partitioning and administration."""

import os
import threading
import unittest

from cipher_inbox import (
    Inbox,
    IndexOutOfBounds,
    InvalidTarget,
    NULL_IDENTITY,
    Rejected,
    Unauthorized,
)
from cipher_inbox.gating import GateReason, LightGate

ADMIN = "0x00000000000000000000000000000000000000a1"
ALICE = "0x000000000000000000000000000000000000a11c"
BOB = "0x0000000000000000000000000000000000000b0b"

PLAINTEXT = b"Meet me at the usual place at nine tonight, bring the documents."


def ciphertext(size: int = 128) -> bytes:
    return os.urandom(size)


class TestSubmitAndRead(unittest.TestCase):

    def setUp(self):
        self.inbox = Inbox(ADMIN, "pk-initial", profile="full")

    def test_submit_appends_in_order(self):
        m1, m2 = ciphertext(), ciphertext()
        first = self.inbox.submit(ALICE, "t", m1)
        second = self.inbox.submit(ALICE, "t", m2)

        self.assertEqual(first.index, 0)
        self.assertEqual(second.index, 1)
        self.assertEqual(self.inbox.count(ALICE, "t"), 2)
        self.assertEqual(self.inbox.read(ALICE, "t", 0), m1)
        self.assertEqual(self.inbox.read(ALICE, "t", 1), m2)

    def test_partitions_are_isolated(self):
        self.inbox.submit(ALICE, "t", ciphertext())
        self.inbox.submit(ALICE, "t", ciphertext())
        other_topic = ciphertext()
        other_owner = ciphertext()
        self.inbox.submit(ALICE, "t2", other_topic)
        self.inbox.submit(BOB, "t", other_owner)

        self.assertEqual(self.inbox.count(ALICE, "t"), 2)
        self.assertEqual(self.inbox.count(ALICE, "t2"), 1)
        self.assertEqual(self.inbox.count(BOB, "t"), 1)
        self.assertEqual(self.inbox.read(ALICE, "t2", 0), other_topic)
        self.assertEqual(self.inbox.read(BOB, "t", 0), other_owner)

    def test_count_untouched_pair_is_zero(self):
        self.assertEqual(self.inbox.count(BOB, "never-written"), 0)
        self.inbox.submit(ALICE, "t", ciphertext())
        self.assertEqual(self.inbox.count(ALICE, "other"), 0)
        self.assertEqual(self.inbox.count(BOB, "t"), 0)

    def test_read_at_count_is_out_of_bounds(self):
        with self.assertRaises(IndexOutOfBounds):
            self.inbox.read(ALICE, "t", 0)
        self.inbox.submit(ALICE, "t", ciphertext())
        with self.assertRaises(IndexOutOfBounds) as ctx:
            self.inbox.read(ALICE, "t", self.inbox.count(ALICE, "t"))
        self.assertEqual(ctx.exception.index, 1)
        self.assertEqual(ctx.exception.count, 1)
        self.assertIsInstance(ctx.exception, IndexError)

    def test_negative_index_is_out_of_bounds(self):
        self.inbox.submit(ALICE, "t", ciphertext())
        with self.assertRaises(IndexOutOfBounds):
            self.inbox.read(ALICE, "t", -1)

    def test_topics_are_not_normalized(self):
        self.inbox.submit(ALICE, "Topic", ciphertext())
        self.assertEqual(self.inbox.count(ALICE, "topic"), 0)
        self.assertEqual(self.inbox.count(ALICE, "Topic "), 0)
        self.assertEqual(self.inbox.count(ALICE, "Topic"), 1)

    def test_stored_bytes_are_immutable(self):
        buf = bytearray(ciphertext())
        original = bytes(buf)
        self.inbox.submit(ALICE, "t", buf)
        buf[:] = b"\x00" * len(buf)
        self.assertEqual(self.inbox.read(ALICE, "t", 0), original)
        self.assertIsInstance(self.inbox.read(ALICE, "t", 0), bytes)

    def test_str_payload_and_topic_rejected_with_type_error(self):
        with self.assertRaises(TypeError):
            self.inbox.submit(ALICE, "t", "not bytes " * 10)
        with self.assertRaises(TypeError):
            self.inbox.submit(ALICE, b"t", ciphertext())

    def test_non_bytes_payload_rejected_with_type_error(self):
        for payload in (128, None, [1, 2, 3]):
            with self.assertRaises(TypeError):
                self.inbox.submit(ALICE, "t", payload)
        self.assertEqual(self.inbox.count(ALICE, "t"), 0)

    def test_reads_never_fail_on_odd_keys(self):
        self.inbox.submit(ALICE, "t", ciphertext())
        for identity, topic in [(["acct"], "t"), ({"a": 1}, "t"), (ALICE, ["t"]), (b"\x01", "t")]:
            self.assertEqual(self.inbox.count(identity, topic), 0)
            self.assertEqual(self.inbox.entries(identity, topic), [])
            with self.assertRaises(IndexOutOfBounds):
                self.inbox.read(identity, topic, 0)
        self.assertEqual(self.inbox.topics(["acct"]), [])

    def test_int_identity(self):
        payload = ciphertext()
        self.inbox.submit(7, "t", payload)
        self.assertEqual(self.inbox.read(7, "t", 0), payload)
        self.assertEqual(self.inbox.count("7", "t"), 0)

    def test_entries_topics_and_stats(self):
        self.inbox.submit(ALICE, "b", ciphertext(64))
        self.inbox.submit(ALICE, "a", ciphertext(64))
        self.inbox.submit(BOB, "a", ciphertext(64))

        self.assertEqual(self.inbox.topics(ALICE), ["b", "a"])
        self.assertEqual(self.inbox.topics("nobody"), [])
        entries = self.inbox.entries(ALICE, "a")
        self.assertEqual([e.index for e in entries], [0])

        stats = self.inbox.stats()
        self.assertEqual(stats["total_messages"], 3)
        self.assertEqual(stats["partitions"], 3)
        self.assertEqual(stats["identities"], 2)
        self.assertEqual(stats["total_bytes"], 192)
        self.assertEqual(stats["profile"], "full")
        self.assertFalse(stats["persistent"])
        self.assertEqual(len(self.inbox), 3)


class TestAdmission(unittest.TestCase):

    def test_rejection_leaves_log_unchanged(self):
        inbox = Inbox(ADMIN, profile="full")
        inbox.submit(ALICE, "t", ciphertext())
        for payload, reason in [
            (b"short", GateReason.TOO_SHORT),
            (PLAINTEXT, GateReason.LOOKS_LIKE_PLAINTEXT),
            (b"\xff" * 100, GateReason.LOW_ENTROPY),
        ]:
            with self.assertRaises(Rejected) as ctx:
                inbox.submit(ALICE, "t", payload)
            self.assertIs(ctx.exception.reason, reason)
            self.assertEqual(inbox.count(ALICE, "t"), 1)

    def test_light_profile_rejects_plaintext(self):
        inbox = Inbox(ADMIN, profile="light")
        with self.assertRaises(Rejected):
            inbox.submit(ALICE, "t", PLAINTEXT)
        self.assertEqual(inbox.count(ALICE, "t"), 0)

    def test_none_profile_accepts_anything(self):
        inbox = Inbox(ADMIN, profile="none")
        inbox.submit(ALICE, "t", b"")
        inbox.submit(ALICE, "t", PLAINTEXT)
        self.assertEqual(inbox.count(ALICE, "t"), 2)
        self.assertEqual(inbox.read(ALICE, "t", 1), PLAINTEXT)

    def test_none_profile_skips_gate(self):
        class ExplodingGate:
            profile = "none"
            validates = False

            def evaluate(self, payload):
                raise AssertionError("gate must not be called")

        inbox = Inbox(ADMIN, gate=ExplodingGate())
        inbox.submit(ALICE, "t", b"anything")
        self.assertEqual(inbox.count(ALICE, "t"), 1)

    def test_explicit_gate_overrides_profile(self):
        inbox = Inbox(ADMIN, profile="none", gate=LightGate())
        self.assertEqual(inbox.profile, "light")

    def test_reads_never_call_gate(self):
        calls = []

        class CountingGate(LightGate):
            def evaluate(self, payload):
                calls.append(len(payload))
                return super().evaluate(payload)

        inbox = Inbox(ADMIN, gate=CountingGate())
        inbox.submit(ALICE, "t", ciphertext())
        inbox.read(ALICE, "t", 0)
        inbox.count(ALICE, "t")
        inbox.entries(ALICE, "t")
        self.assertEqual(calls, [128])

    def test_preview_stores_nothing(self):
        inbox = Inbox(ADMIN, profile="full")
        self.assertFalse(inbox.preview(PLAINTEXT).accepted)
        self.assertTrue(inbox.preview(ciphertext()).accepted)
        self.assertEqual(len(inbox), 0)


class TestAdministration(unittest.TestCase):

    def setUp(self):
        self.inbox = Inbox(ADMIN, "pk-initial")

    def test_initial_state(self):
        self.assertEqual(self.inbox.administrator, ADMIN)
        self.assertEqual(self.inbox.key_material, "pk-initial")

    def test_null_initial_administrator(self):
        for null in (None, "", NULL_IDENTITY, "0x0", 0):
            with self.assertRaises(InvalidTarget):
                Inbox(null, "pk")

    def test_admin_sets_key(self):
        self.inbox.set_key_material(ADMIN, "pk-rotated")
        self.assertEqual(self.inbox.key_material, "pk-rotated")

    def test_non_admin_cannot_set_key(self):
        with self.assertRaises(Unauthorized) as ctx:
            self.inbox.set_key_material(ALICE, "pk-evil")
        self.assertEqual(ctx.exception.caller, ALICE)
        self.assertIsInstance(ctx.exception, PermissionError)
        self.assertEqual(self.inbox.key_material, "pk-initial")

    def test_key_must_be_str(self):
        with self.assertRaises(TypeError):
            self.inbox.set_key_material(ADMIN, b"bytes-key")
        self.assertEqual(self.inbox.key_material, "pk-initial")

    def test_transfer_moves_authority(self):
        self.inbox.transfer_administrator(ADMIN, BOB)
        self.assertEqual(self.inbox.administrator, BOB)

        with self.assertRaises(Unauthorized):
            self.inbox.set_key_material(ADMIN, "pk-old-admin")
        self.inbox.set_key_material(BOB, "pk-new-admin")
        self.assertEqual(self.inbox.key_material, "pk-new-admin")

    def test_non_admin_cannot_transfer(self):
        with self.assertRaises(Unauthorized):
            self.inbox.transfer_administrator(ALICE, ALICE)
        self.assertEqual(self.inbox.administrator, ADMIN)

    def test_transfer_to_null_always_invalid(self):
        for caller in (ADMIN, ALICE, None):
            for null in (None, "", NULL_IDENTITY, "0X0000"):
                with self.assertRaises(InvalidTarget):
                    self.inbox.transfer_administrator(caller, null)
        self.assertEqual(self.inbox.administrator, ADMIN)

    def test_transfer_to_non_identity_type(self):
        with self.assertRaises(TypeError):
            self.inbox.transfer_administrator(ADMIN, ("acct", 7))
        self.assertEqual(self.inbox.administrator, ADMIN)

    def test_transfer_to_self_is_allowed(self):
        self.inbox.transfer_administrator(ADMIN, ADMIN)
        self.assertEqual(self.inbox.administrator, ADMIN)

    def test_key_survives_transfer(self):
        self.inbox.transfer_administrator(ADMIN, BOB)
        self.assertEqual(self.inbox.key_material, "pk-initial")


class TestConcurrency(unittest.TestCase):

    def test_concurrent_submits_stay_contiguous(self):
        inbox = Inbox(ADMIN, profile="light")
        errors = []
        per_thread = 50

        def writer(name):
            try:
                for _ in range(per_thread):
                    inbox.submit(ALICE, "shared", ciphertext(96))
                    inbox.submit(name, "own", ciphertext(96))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=writer, args=(f"writer-{i}",)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        self.assertEqual(errors, [])
        self.assertEqual(inbox.count(ALICE, "shared"), 4 * per_thread)
        indices = [e.index for e in inbox.entries(ALICE, "shared")]
        self.assertEqual(indices, list(range(4 * per_thread)))
        for i in range(4):
            self.assertEqual(inbox.count(f"writer-{i}", "own"), per_thread)


if __name__ == "__main__":
    unittest.main()
