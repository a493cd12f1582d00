#!/usr/bin/env python3
"""
Cipher Inbox Quickstart Example

This example shows basic usage of the cipher-inbox package:
- Creating a persistent inbox with an administrator and public key
- Submitting encrypted payloads and reading them back
- Watching the gate refuse readable plaintext
- Rotating the key and handing over the administrator role
"""

import os
import tempfile

from cipher_inbox import Inbox, Rejected, Unauthorized

ADMIN = "0x00000000000000000000000000000000000000a1"
ALICE = "0x000000000000000000000000000000000000a11c"
BOB = "0x0000000000000000000000000000000000000b0b"


def main():
    print("🔐 Cipher Inbox Quickstart Example")
    print("=" * 40)

    workspace = tempfile.mkdtemp()
    print(f"💾 Using workspace: {workspace}")

    inbox = Inbox(ADMIN, key_material="pk-demo-1", profile="light", workspace=workspace)
    inbox.subscribe(lambda event: print(f"   📣 {event.name}"))
    print(f"✅ Inbox initialized ({inbox.profile} profile), key={inbox.key_material}")

    # Real clients encrypt to inbox.key_material; random bytes stand in here
    print("\n📝 Submitting ciphertext...")
    for _ in range(3):
        entry = inbox.submit(ALICE, "greetings", os.urandom(96))
        print(f"➕ Stored message {entry.index} ({entry.size} bytes)")
    print(f"📊 ({ALICE[:8]}…, greetings) holds {inbox.count(ALICE, 'greetings')} messages")

    print("\n🚫 Submitting plaintext...")
    try:
        inbox.submit(ALICE, "greetings", b"Meet me at the usual place at nine tonight, bring the documents.")
    except Rejected as e:
        print(f"❌ Refused: {e.reason.value}")

    print("\n🔑 Administration...")
    inbox.set_key_material(ADMIN, "pk-demo-2")
    print(f"🔄 Key rotated to {inbox.key_material}")
    inbox.transfer_administrator(ADMIN, BOB)
    print(f"👤 Administrator is now {inbox.administrator[:8]}…")
    try:
        inbox.set_key_material(ADMIN, "pk-demo-3")
    except Unauthorized:
        print("❌ Former administrator can no longer rotate the key")

    print("\n♻️  Reopening workspace...")
    reopened = Inbox(BOB, workspace=workspace)
    print(f"📊 {len(reopened)} messages, administrator {reopened.administrator[:8]}…")
    print(f"📜 Audit trail: {[r['event'] for r in reopened.audit_log()]}")


if __name__ == "__main__":
    main()
