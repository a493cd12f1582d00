"""Shared utilities for cipher-inbox."""

import base64
import binascii
import json
import os
import tempfile
import logging

logger = logging.getLogger("cipher_inbox")


def encode_payload(payload: bytes) -> str:
    """Base64-encode raw payload bytes for JSON storage."""
    return base64.b64encode(payload).decode("ascii")


def decode_payload(text: str) -> bytes:
    """Decode a base64 payload.

    Raises:
        ValueError: if *text* is not valid base64.
    """
    try:
        return base64.b64decode(text.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as e:
        raise ValueError(f"Invalid base64 payload: {e}") from e


def atomic_write_json(path: str, data, indent: int = 2, lock: bool = True) -> None:
    """Write JSON through a temp file and ``os.replace``.

    A crash mid-write leaves the previous file intact. With ``lock=True`` the
    write also holds a ``FileLock`` on *path* so concurrent writers from
    other processes cannot lose each other's updates.
    """
    dir_path = os.path.dirname(path) or "."
    os.makedirs(dir_path, exist_ok=True)

    if lock:
        from .locking import FileLock
        with FileLock(path, timeout=30.0):
            _replace_with_json(path, data, indent, dir_path)
    else:
        _replace_with_json(path, data, indent, dir_path)


def _replace_with_json(path: str, data, indent: int, dir_path: str) -> None:
    fd, tmp_path = tempfile.mkstemp(dir=dir_path, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=indent)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
        fsync_directory(dir_path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def fsync_directory(dir_path: str) -> None:
    """Best-effort directory fsync so a rename survives power loss on POSIX."""
    try:
        dir_fd = os.open(dir_path, os.O_RDONLY)
    except OSError:
        return  # Windows cannot open directories
    try:
        os.fsync(dir_fd)
    except OSError:
        pass
    finally:
        os.close(dir_fd)


def locked_read_json(path: str, default=None):
    """Read a JSON file under its lock; *default* if the file is missing."""
    if not os.path.exists(path):
        return default

    from .locking import FileLock
    with FileLock(path, timeout=10.0):
        with open(path, encoding="utf-8") as f:
            return json.load(f)
