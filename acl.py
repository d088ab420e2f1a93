# acl.py - Capability directory: which principals may decrypt which handle

from collections import defaultdict


class CapabilityDirectory:
    """
    Append-only table handle -> set of principals.

    Kept apart from the ciphertext arena so that producing a value and
    granting access to it can be checked independently. There is no revoke.
    """

    def __init__(self):
        self._grants = defaultdict(set)

    def grant(self, handle, principal):
        self._grants[handle].add(principal)

    def grant_all(self, handles, principals):
        for handle in handles:
            for principal in principals:
                self.grant(handle, principal)

    def may_decrypt(self, handle, principal):
        grants = self._grants.get(handle)
        return grants is not None and principal in grants

    def principals(self, handle):
        return frozenset(self._grants.get(handle, ()))

    def __contains__(self, handle):
        return handle in self._grants

    def __len__(self):
        return len(self._grants)
