# test_acl.py - Capability directory
from acl import CapabilityDirectory

HANDLE_A = b"\xaa" * 32
HANDLE_B = b"\xbb" * 32


def test_grant_and_check():
    acl = CapabilityDirectory()
    acl.grant(HANDLE_A, "0xalice")
    assert acl.may_decrypt(HANDLE_A, "0xalice")
    assert not acl.may_decrypt(HANDLE_A, "0xbob")
    assert not acl.may_decrypt(HANDLE_B, "0xalice")


def test_grant_all_is_cross_product():
    acl = CapabilityDirectory()
    acl.grant_all([HANDLE_A, HANDLE_B], ["0xledger", "0xalice"])
    assert acl.principals(HANDLE_A) == {"0xledger", "0xalice"}
    assert acl.principals(HANDLE_B) == {"0xledger", "0xalice"}
    assert len(acl) == 2


def test_unknown_handle_has_no_principals():
    acl = CapabilityDirectory()
    assert acl.principals(HANDLE_A) == frozenset()
    assert HANDLE_A not in acl
    # Lookups do not create entries
    acl.may_decrypt(HANDLE_A, "0xalice")
    assert len(acl) == 0


def test_grants_are_idempotent():
    acl = CapabilityDirectory()
    acl.grant(HANDLE_A, "0xalice")
    acl.grant(HANDLE_A, "0xalice")
    assert acl.principals(HANDLE_A) == {"0xalice"}
