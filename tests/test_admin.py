"""Tests for the administrator record and null-identity rules."""

import pytest

from cipher_inbox.admin import NULL_IDENTITY, AdminState, is_null_identity
from cipher_inbox.errors import InvalidTarget


@pytest.mark.parametrize("identity", [None, "", 0, NULL_IDENTITY, "0x0", "0X000"])
def test_null_identities(identity):
    assert is_null_identity(identity)


@pytest.mark.parametrize("identity", ["0xa11ce", "0x01", "alice", 1, False, "0x", "00"])
def test_non_null_identities(identity):
    assert not is_null_identity(identity)


def test_transfer_and_rotate():
    state = AdminState("0xadmin", "pk-1")
    assert state.is_administrator("0xadmin")
    assert not state.is_administrator("0xbob")

    state.replace_key("pk-2")
    state.transfer("0xbob")
    assert state.administrator == "0xbob"
    assert state.key_material == "pk-2"


def test_transfer_to_null_keeps_holder():
    state = AdminState("0xadmin")
    with pytest.raises(InvalidTarget) as ctx:
        state.transfer(NULL_IDENTITY)
    assert ctx.value.target == NULL_IDENTITY
    assert isinstance(ctx.value, ValueError)
    assert state.administrator == "0xadmin"


def test_serialisation():
    state = AdminState("0xadmin", "pk-1", updated_at="2024-01-01T00:00:00")
    restored = AdminState.from_dict(state.to_dict())
    assert restored.to_dict() == state.to_dict()

    with pytest.raises(InvalidTarget):
        AdminState.from_dict({"key_material": "pk"})


@pytest.mark.parametrize("identity", [("acct", 7), b"\x01", 1.5, True])
def test_administrator_must_be_str_or_int(identity):
    with pytest.raises(TypeError):
        AdminState(identity)
    state = AdminState("0xadmin")
    with pytest.raises(TypeError):
        state.transfer(identity)
    assert state.administrator == "0xadmin"


def test_int_administrator():
    assert AdminState(42).administrator == 42
