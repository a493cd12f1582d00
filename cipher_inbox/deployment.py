#!/usr/bin/env python3
"""
Deployment — initialize a persistent inbox and record it.

Creates (or reopens) an inbox workspace, then writes a JSON artifact
describing the instance so that clients can find it and know which gate
profile guards it:

    {workspace}/deployments/latest-deployment.json
    {workspace}/deployments/deployment-<instance_id>.json

Usage:
    python -m cipher_inbox.deployment --admin 0xA11CE --public-key <b64> --profile light
    python -m cipher_inbox.deployment --smoke-test

Defaults come from the environment (see ``cipher_inbox.config``).
"""

import argparse
import json
import os
import sys
import uuid
import logging
from datetime import datetime
from typing import Dict, Optional

from .config import InboxConfig
from .errors import InboxError
from .inbox import Inbox
from .utils import atomic_write_json

logger = logging.getLogger("cipher_inbox")

LATEST_FILENAME = "latest-deployment.json"
SMOKE_TOPIC = "smoke-test"
SMOKE_PLAINTEXT = b"This is a plain readable sentence that must never be admitted."


class DeploymentRecord:
    """Metadata describing one initialized inbox instance."""

    __slots__ = ("instance_id", "instance_path", "deployer", "profile",
                 "key_material", "deployed_at", "package_version")

    def __init__(self, instance_id: str, instance_path: str, deployer,
                 profile: str, key_material: str = "", deployed_at: str = None,
                 package_version: str = None):
        self.instance_id = instance_id
        self.instance_path = instance_path
        self.deployer = deployer
        self.profile = profile
        self.key_material = key_material
        self.deployed_at = deployed_at or datetime.now().isoformat()
        if package_version is None:
            from . import __version__
            package_version = __version__
        self.package_version = package_version

    def to_dict(self) -> Dict:
        return {slot: getattr(self, slot) for slot in self.__slots__}

    @classmethod
    def from_dict(cls, d: Dict) -> "DeploymentRecord":
        return cls(
            d["instance_id"], d["instance_path"], d.get("deployer"),
            d.get("profile", "full"), d.get("key_material", ""),
            d.get("deployed_at"), d.get("package_version"),
        )

    def __repr__(self) -> str:
        return f"<DeploymentRecord {self.instance_id} profile={self.profile}>"


def deploy(workspace: str, administrator, key_material: str = "",
           profile: str = "full", artifact_dir: Optional[str] = None) -> DeploymentRecord:
    """Initialize the inbox at *workspace* and write its deployment artifact.

    Reopening an existing workspace keeps its stored administrator and key;
    the artifact reflects what is actually stored.

    Raises:
        InvalidTarget: *administrator* is the null identity.
        ValueError: unknown *profile*.
    """
    inbox = Inbox(administrator, key_material, profile=profile, workspace=workspace)
    inbox.save()

    record = DeploymentRecord(
        instance_id=uuid.uuid4().hex,
        instance_path=inbox.workspace,
        deployer=inbox.administrator,
        profile=inbox.profile,
        key_material=inbox.key_material,
    )
    out_dir = artifact_dir or os.path.join(inbox.workspace, "deployments")
    data = record.to_dict()
    atomic_write_json(os.path.join(out_dir, f"deployment-{record.instance_id}.json"), data)
    atomic_write_json(os.path.join(out_dir, LATEST_FILENAME), data)
    logger.info(f"Deployed inbox {record.instance_id} at {inbox.workspace} ({inbox.profile})")
    return record


def load_deployment(path: str) -> DeploymentRecord:
    """Read a deployment artifact (file path, or a directory holding the latest one)."""
    if os.path.isdir(path):
        path = os.path.join(path, LATEST_FILENAME)
    with open(path, encoding="utf-8") as f:
        return DeploymentRecord.from_dict(json.load(f))


def smoke_test(inbox: Inbox) -> Dict:
    """Submit and read back a random payload as the administrator.

    The payload stays in the log (it is append-only). When the inbox
    validates, also confirm a readable sentence would be refused.

    Raises:
        InboxError: the store refused the random payload.
        RuntimeError: the read-back differs from what was submitted.
    """
    payload = os.urandom(128)
    entry = inbox.submit(inbox.administrator, SMOKE_TOPIC, payload)
    if inbox.read(inbox.administrator, SMOKE_TOPIC, entry.index) != payload:
        raise RuntimeError("Smoke test read-back does not match the submitted payload")

    plaintext_rejected = None
    if inbox.gate.validates:
        plaintext_rejected = not inbox.preview(SMOKE_PLAINTEXT).accepted

    return {
        "topic": SMOKE_TOPIC,
        "index": entry.index,
        "read_back": True,
        "plaintext_rejected": plaintext_rejected,
        "profile": inbox.profile,
    }


def main(argv=None) -> int:
    config = InboxConfig.from_env()
    parser = argparse.ArgumentParser(
        description="Initialize a cipher-inbox workspace and write its deployment artifact."
    )
    parser.add_argument("--workspace", default=config.path,
                        help=f"Inbox workspace directory (default: {config.path}).")
    parser.add_argument("--admin", default=config.administrator,
                        help="Initial administrator identity (default: $CIPHER_INBOX_ADMIN).")
    parser.add_argument("--public-key", default=config.public_key,
                        help="Initial public key material (default: $CIPHER_INBOX_PUBLIC_KEY).")
    parser.add_argument("--profile", default=config.profile,
                        help="Gate profile: none, light or full (unsafe = none).")
    parser.add_argument("--artifact-dir", default=None,
                        help="Where to write deployment JSON (default: <workspace>/deployments).")
    parser.add_argument("--smoke-test", action="store_true",
                        help="Submit and read back a random payload after deploying.")
    args = parser.parse_args(argv)

    config.configure_logging()

    if not args.admin:
        print("ERROR: an administrator is required (--admin or $CIPHER_INBOX_ADMIN).",
              file=sys.stderr)
        return 1

    try:
        record = deploy(args.workspace, args.admin, args.public_key,
                        profile=args.profile, artifact_dir=args.artifact_dir)
    except (InboxError, ValueError) as e:
        print(f"ERROR: deployment failed: {e}", file=sys.stderr)
        return 1

    print(f"Instance:  {record.instance_id}")
    print(f"Workspace: {record.instance_path}")
    print(f"Profile:   {record.profile}")
    print(f"Deployer:  {record.deployer}")

    if args.smoke_test:
        inbox = Inbox(record.deployer, profile=record.profile, workspace=record.instance_path)
        try:
            result = smoke_test(inbox)
        except (InboxError, RuntimeError) as e:
            print(f"ERROR: smoke test failed: {e}", file=sys.stderr)
            return 1
        print(f"Smoke test: {json.dumps(result)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
