"""
Cipher Inbox MCP Server

Exposes an inbox as MCP tools and resources for any MCP-enabled client.
Payloads travel as base64 text; the server never sees plaintext unless a
client sends it, in which case the gate refuses it.

Tools:
  - submit_message(sender, topic, payload_b64) → store an encrypted payload
  - count_messages(sender, topic)              → sequence length
  - read_message(sender, topic, index)         → base64 payload
  - inbox_info()                               → profile, key, administrator, counts

Resources:
  - inbox://{sender}/{topic} → listing of a sequence

Usage:
    python -m cipher_inbox.mcp_server --inbox-path ./store --profile light
    # or
    from cipher_inbox.mcp_server import create_server

The store must already be initialized (see ``cipher_inbox.deployment``);
its administrator is read from the workspace.
"""

from __future__ import annotations

import argparse
import os
import sys
from typing import Any, Dict, Optional

# ---------------------------------------------------------------------------
# Graceful MCP availability check
# ---------------------------------------------------------------------------
try:
    from mcp.server.fastmcp import FastMCP
    MCP_AVAILABLE = True
except ImportError:
    MCP_AVAILABLE = False
    FastMCP = None  # type: ignore

from cipher_inbox.config import InboxConfig
from cipher_inbox.errors import InboxError, Rejected
from cipher_inbox.inbox import Inbox
from cipher_inbox.utils import decode_payload, encode_payload, locked_read_json

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _get_inbox_path(inbox_path: Optional[str] = None) -> str:
    """Resolve the workspace from arg, env, or default."""
    return inbox_path or InboxConfig.from_env().path


def _open_inbox(inbox_path: str, profile: Optional[str] = None) -> Inbox:
    """Open an initialized workspace.

    Raises:
        FileNotFoundError: no ``inbox_state.json`` in *inbox_path*.
    """
    resolved = os.path.abspath(inbox_path)
    state = locked_read_json(os.path.join(resolved, Inbox.STATE_FILENAME))
    if not state:
        raise FileNotFoundError(
            f"No inbox at {resolved}. Initialize it with "
            "`python -m cipher_inbox.deployment --workspace ... --admin ...` first."
        )
    return Inbox(
        state["administrator"],
        state.get("key_material", ""),
        profile=profile or state.get("profile") or "full",
        workspace=resolved,
    )


def _error(exc: Exception) -> Dict[str, Any]:
    result = {"ok": False, "error": type(exc).__name__, "detail": str(exc)}
    if isinstance(exc, Rejected):
        result["reason"] = exc.reason.value
    return result


# ---------------------------------------------------------------------------
# Server factory
# ---------------------------------------------------------------------------

def create_server(inbox_path: Optional[str] = None,
                  profile: Optional[str] = None) -> "FastMCP":
    """Create and return the FastMCP server bound to one inbox.

    Args:
        inbox_path: Workspace directory. Falls back to ``$CIPHER_INBOX_PATH``,
            then ``./cipher_inbox_store``.
        profile: Gate profile override; defaults to the stored profile.

    Raises:
        ImportError: If the ``mcp`` package is not installed.
        FileNotFoundError: If the workspace was never initialized.
    """
    if not MCP_AVAILABLE:
        raise ImportError(
            "The 'mcp' package is required to run the cipher-inbox MCP server. "
            "Install it with: pip install 'cipher-inbox[mcp]'"
        )

    inbox = _open_inbox(_get_inbox_path(inbox_path), profile)
    mcp = FastMCP(
        name="cipher-inbox",
        instructions=(
            "Cipher Inbox — append-only store for encrypted messages. "
            "Encrypt with the key from inbox_info before calling submit_message; "
            "readable plaintext is refused."
        ),
    )

    # ------------------------------------------------------------------
    # Tool: submit_message
    # ------------------------------------------------------------------
    @mcp.tool()
    def submit_message(sender: str, topic: str, payload_b64: str) -> Dict[str, Any]:
        """Store an encrypted payload under (sender, topic).

        Args:
            sender: Sender identity.
            topic: Topic string.
            payload_b64: Base64 of the ciphertext bytes.

        Returns:
            ``{"ok": True, "index": int, "count": int}`` or an error dict with
            keys ok, error, detail (and reason for gate rejections).
        """
        try:
            payload = decode_payload(payload_b64)
        except ValueError as e:
            return _error(e)
        try:
            entry = inbox.submit(sender, topic, payload)
        except InboxError as e:
            return _error(e)
        return {"ok": True, "index": entry.index, "count": inbox.count(sender, topic)}

    # ------------------------------------------------------------------
    # Tool: count_messages
    # ------------------------------------------------------------------
    @mcp.tool()
    def count_messages(sender: str, topic: str) -> Dict[str, Any]:
        """Return how many messages (sender, topic) holds."""
        inbox.refresh()
        return {"ok": True, "count": inbox.count(sender, topic)}

    # ------------------------------------------------------------------
    # Tool: read_message
    # ------------------------------------------------------------------
    @mcp.tool()
    def read_message(sender: str, topic: str, index: int) -> Dict[str, Any]:
        """Return the base64 payload stored at *index*."""
        try:
            inbox.refresh()
            payload = inbox.read(sender, topic, index)
        except InboxError as e:
            return _error(e)
        return {"ok": True, "index": index, "payload_b64": encode_payload(payload)}

    # ------------------------------------------------------------------
    # Tool: inbox_info
    # ------------------------------------------------------------------
    @mcp.tool()
    def inbox_info() -> Dict[str, Any]:
        """Return the public key, administrator and store statistics."""
        inbox.refresh()
        stats = inbox.stats()
        return {
            "ok": True,
            "public_key": inbox.key_material,
            "administrator": inbox.administrator,
            "profile": stats["profile"],
            "total_messages": stats["total_messages"],
            "partitions": stats["partitions"],
        }

    # ------------------------------------------------------------------
    # Resource: inbox://{sender}/{topic}
    # ------------------------------------------------------------------
    @mcp.resource("inbox://{sender}/{topic}")
    def sequence_resource(sender: str, topic: str) -> str:
        """List the messages of (sender, topic) as a readable block."""
        inbox.refresh()
        entries = inbox.entries(sender, topic)
        if not entries:
            return f"[cipher-inbox] No messages for ({sender!r}, {topic!r})"
        lines = [f"[cipher-inbox] {len(entries)} message(s) for ({sender!r}, {topic!r})", ""]
        for e in entries:
            lines.append(f"{e.index}. {e.size} bytes  created={e.created}  hash={e.hash}")
        return "\n".join(lines)

    return mcp


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

def main() -> None:
    """Run the cipher-inbox MCP server (stdio transport by default)."""
    parser = argparse.ArgumentParser(
        description="Cipher Inbox MCP Server — expose an inbox over MCP."
    )
    parser.add_argument(
        "--inbox-path",
        default=None,
        help="Inbox workspace. Defaults to $CIPHER_INBOX_PATH or ./cipher_inbox_store",
    )
    parser.add_argument(
        "--profile",
        default=None,
        help="Gate profile override (none, light, full). Defaults to the stored profile.",
    )
    parser.add_argument("--transport", choices=["stdio", "sse"], default="stdio",
                        help="MCP transport (default: stdio).")
    parser.add_argument("--host", default="127.0.0.1",
                        help="Host for SSE transport (default: 127.0.0.1).")
    parser.add_argument("--port", type=int, default=8766,
                        help="Port for SSE transport (default: 8766).")
    args = parser.parse_args()

    InboxConfig.from_env().configure_logging()

    if not MCP_AVAILABLE:
        print(
            "ERROR: The 'mcp' package is not installed.\n"
            "Install it with: pip install 'cipher-inbox[mcp]'",
            file=sys.stderr,
        )
        sys.exit(1)

    try:
        server = create_server(inbox_path=args.inbox_path, profile=args.profile)
    except FileNotFoundError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)

    if args.transport == "stdio":
        server.run(transport="stdio")
    else:
        server.settings.host = args.host
        server.settings.port = args.port
        server.run(transport="sse")


if __name__ == "__main__":
    main()
