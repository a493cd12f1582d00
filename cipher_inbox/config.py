"""
Environment-driven configuration.

Variables (first match wins):

    CIPHER_INBOX_PATH        workspace directory   (default ./cipher_inbox_store)
    CIPHER_INBOX_PROFILE     gate profile          (then CONTRACT_TYPE, default full)
    CIPHER_INBOX_PUBLIC_KEY  initial public key    (then ENCRYPT_PUBLIC_KEY, default "")
    CIPHER_INBOX_ADMIN       initial administrator (no default)
    CIPHER_INBOX_LOG_LEVEL   logging level name    (default WARNING)

CLI flags override these; constructor arguments override both.
"""

import logging
import os
from typing import Dict, Mapping, Optional

from .gating import normalize_profile

DEFAULT_PATH = "./cipher_inbox_store"
DEFAULT_PROFILE = "full"
DEFAULT_LOG_LEVEL = "WARNING"


def _first(environ: Mapping[str, str], *names: str) -> Optional[str]:
    for name in names:
        value = environ.get(name)
        if value:
            return value
    return None


class InboxConfig:
    """Resolved settings for building an inbox from the environment."""

    __slots__ = ("path", "profile", "public_key", "administrator", "log_level")

    def __init__(self, path: str = DEFAULT_PATH, profile: str = DEFAULT_PROFILE,
                 public_key: str = "", administrator: Optional[str] = None,
                 log_level: str = DEFAULT_LOG_LEVEL):
        self.path = path
        self.profile = normalize_profile(profile)
        self.public_key = public_key
        self.administrator = administrator
        self.log_level = log_level.upper()

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "InboxConfig":
        """Build a config from *environ* (``os.environ`` by default).

        Raises:
            ValueError: if the configured profile is unknown.
        """
        env = os.environ if environ is None else environ
        return cls(
            path=_first(env, "CIPHER_INBOX_PATH") or DEFAULT_PATH,
            profile=_first(env, "CIPHER_INBOX_PROFILE", "CONTRACT_TYPE") or DEFAULT_PROFILE,
            public_key=_first(env, "CIPHER_INBOX_PUBLIC_KEY", "ENCRYPT_PUBLIC_KEY") or "",
            administrator=_first(env, "CIPHER_INBOX_ADMIN"),
            log_level=_first(env, "CIPHER_INBOX_LOG_LEVEL") or DEFAULT_LOG_LEVEL,
        )

    def configure_logging(self) -> None:
        """Install a basic stderr handler at the configured level (CLI use)."""
        level = getattr(logging, self.log_level, logging.WARNING)
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

    def to_dict(self) -> Dict:
        return {slot: getattr(self, slot) for slot in self.__slots__}

    def __repr__(self) -> str:
        return f"<InboxConfig path={self.path!r} profile={self.profile}>"
