"""
Administrator and key record.

A single identity holds the administrator role at any time. Only that
identity may rotate the published public key or hand the role on. There is
no unowned state: the role is created with a non-null holder and every
transfer must name another non-null holder.
"""

import re
from datetime import datetime
from typing import Dict

from .errors import InvalidTarget

NULL_IDENTITY = "0x0000000000000000000000000000000000000000"

_ZERO_HEX_RE = re.compile(r"^0[xX]0+$")


def is_identity(identity) -> bool:
    """True for the identity types that persist exactly: str and int (not bool)."""
    return isinstance(identity, (str, int)) and not isinstance(identity, bool)


def check_identity(identity, role: str = "identity"):
    """Return *identity* unchanged, or raise TypeError for other types."""
    if not is_identity(identity):
        raise TypeError(f"{role} must be a str or int, got {type(identity).__name__}")
    return identity


def is_null_identity(identity) -> bool:
    """True for None, "", integer 0, and any 0x-prefixed all-zero hex string."""
    if identity is None:
        return True
    if isinstance(identity, bool):
        return False
    if isinstance(identity, int):
        return identity == 0
    if isinstance(identity, str):
        return identity == "" or bool(_ZERO_HEX_RE.match(identity))
    return False


class AdminState:
    """Current administrator plus the current key material.

    Mutation goes through ``Inbox``, which checks the caller and holds the
    writer lock; this class only guards the non-null invariant.
    """

    __slots__ = ("administrator", "key_material", "updated_at")

    def __init__(self, administrator, key_material: str = "",
                 updated_at: str = None):
        if is_null_identity(administrator):
            raise InvalidTarget(administrator)
        check_identity(administrator, "administrator")
        self.administrator = administrator
        self.key_material = key_material
        self.updated_at = updated_at or datetime.now().isoformat()

    def is_administrator(self, caller) -> bool:
        return caller == self.administrator

    def replace_key(self, new_key: str) -> None:
        self.key_material = new_key
        self.updated_at = datetime.now().isoformat()

    def transfer(self, new_admin) -> None:
        if is_null_identity(new_admin):
            raise InvalidTarget(new_admin)
        check_identity(new_admin, "administrator")
        self.administrator = new_admin
        self.updated_at = datetime.now().isoformat()

    # -- serialisation --------------------------------------------------------

    def to_dict(self) -> Dict:
        return {
            "administrator": self.administrator,
            "key_material": self.key_material,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, d: Dict) -> "AdminState":
        return cls(d.get("administrator"), d.get("key_material", ""),
                   d.get("updated_at"))

    def __repr__(self) -> str:
        return f"<AdminState administrator={self.administrator!r}>"
