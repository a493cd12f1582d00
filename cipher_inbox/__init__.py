"""
Cipher Inbox — gated, append-only storage for encrypted messages.

Stores opaque payloads per (sender identity, topic) in append-only
sequences, refusing payloads that look like unencrypted plaintext. A single
administrator publishes the public key clients should encrypt to. Standard
library only; transparent JSON / JSON-lines storage.

Usage:
    from cipher_inbox import Inbox

    inbox = Inbox(administrator="0xA11CE", key_material=public_key_b64,
                  profile="full", workspace="./store")
    inbox.submit("0xB0B", "status", ciphertext)
    inbox.read("0xB0B", "status", 0)
"""

__version__ = "1.0.0"

# Core
from cipher_inbox.inbox import Inbox
from cipher_inbox.entry import MessageEntry
from cipher_inbox.admin import AdminState, NULL_IDENTITY, is_null_identity

# Gating
from cipher_inbox.gating import (
    FullGate,
    GateDecision,
    GateReason,
    LightGate,
    NoOpGate,
    MIN_LENGTH,
    PROFILES,
    get_gate,
)

# Errors
from cipher_inbox.errors import (
    InboxError,
    IndexOutOfBounds,
    InvalidTarget,
    Rejected,
    Unauthorized,
)

# Events
from cipher_inbox.events import (
    AdministratorTransferred,
    EventBus,
    KeyMaterialChanged,
    MessageAccepted,
    MessageRejected,
)

# Storage + concurrency
from cipher_inbox.journal import MessageJournal
from cipher_inbox.locking import FileLock, LockTimeout

# Configuration + deployment
from cipher_inbox.config import InboxConfig
from cipher_inbox.deployment import DeploymentRecord, deploy, load_deployment, smoke_test

# MCP server (optional: needs the `mcp` extra to run, imports without it)
from cipher_inbox.mcp_server import MCP_AVAILABLE, create_server as create_mcp_server

__all__ = [
    "Inbox",
    "MessageEntry",
    "AdminState",
    "NULL_IDENTITY",
    "is_null_identity",

    # Gating
    "FullGate",
    "LightGate",
    "NoOpGate",
    "GateDecision",
    "GateReason",
    "MIN_LENGTH",
    "PROFILES",
    "get_gate",

    # Errors
    "InboxError",
    "Rejected",
    "IndexOutOfBounds",
    "Unauthorized",
    "InvalidTarget",

    # Events
    "EventBus",
    "MessageAccepted",
    "MessageRejected",
    "KeyMaterialChanged",
    "AdministratorTransferred",

    # Storage + concurrency
    "MessageJournal",
    "FileLock",
    "LockTimeout",

    # Configuration + deployment
    "InboxConfig",
    "DeploymentRecord",
    "deploy",
    "load_deployment",
    "smoke_test",

    # MCP server
    "create_mcp_server",
    "MCP_AVAILABLE",
]
