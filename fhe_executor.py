# fhe_executor.py - Coprocessor: ciphertext arena addressed by opaque handles

import random
from dataclasses import dataclass
from hashlib import blake2b

ZERO_HANDLE = bytes(32)

EUINT32 = "euint32"
EBOOL = "ebool"


def handle_to_hex(handle):
    return "0x" + handle.hex()


def hex_to_handle(value):
    body = value[2:] if value.startswith("0x") else value
    handle = bytes.fromhex(body)
    if len(handle) != 32:
        raise ValueError(f"handle must be 32 bytes, got {len(handle)}")
    return handle


@dataclass(frozen=True)
class EncryptedEntry:
    """
    One arena slot.

    euint32: a single ciphertext plus a plaintext divisor applied at opening
    time (division by a public scalar stays exact that way).
    ebool:   shuffled masked differences; true iff one of them opens to zero.
    """
    kind: str
    ciphertexts: tuple
    divisor: int = 1


class FheExecutor:
    """
    Evaluates homomorphic operations and keeps every produced ciphertext in an
    arena keyed by a 32-byte handle. Knows nothing about who may decrypt what;
    that is the capability directory's job.
    """

    def __init__(self, backend, chain_id):
        self.backend = backend
        self.chain_id = chain_id
        self._arena = {}
        self._input_pool = {}
        self._counter = 0

    # --- Inputs ---
    def input_handle(self, ciphertext, contract, user, index):
        """Content-derived handle for an uploaded input ciphertext"""
        h = blake2b(digest_size=32)
        h.update(b"trust_input_v1")
        h.update(blake2b(ciphertext, digest_size=32).digest())
        h.update(self.chain_id.to_bytes(8, 'big'))
        h.update(contract.encode('utf-8'))
        h.update(user.encode('utf-8'))
        h.update(index.to_bytes(1, 'big'))
        return h.digest()

    def upload_input(self, handle, ciphertext):
        """Park an input ciphertext until a verified proof imports it"""
        self.upload_inputs([(handle, ciphertext)])

    def upload_inputs(self, items):
        """
        Park several (handle, ciphertext) pairs, all or none. Each ciphertext
        must deserialize and hold a value below 2**32; anything else is
        refused before the gateway can attest it.
        """
        loaded = {}
        for handle, ciphertext in items:
            if handle in self._arena or handle in self._input_pool or handle in loaded:
                raise ValueError(f"handle {handle_to_hex(handle)} already uploaded")
            value = self.backend.load(ciphertext)
            if not self.backend.is_uint32(value):
                raise ValueError(f"input {handle_to_hex(handle)} outside the 32-bit domain")
            loaded[handle] = value
        self._input_pool.update(loaded)

    def import_input(self, handle):
        """Move a pending input into the arena; each input can be imported once"""
        if handle not in self._input_pool:
            raise KeyError(handle)
        ciphertext = self._input_pool.pop(handle)
        self._arena[handle] = EncryptedEntry(EUINT32, (ciphertext,))
        return handle

    # --- Arena ---
    def is_pending(self, handle):
        return handle in self._input_pool

    def is_initialized(self, handle):
        return handle in self._arena

    def entry(self, handle):
        return self._arena[handle]

    def __len__(self):
        return len(self._arena)

    def _operand(self, handle, kind=EUINT32):
        if handle == ZERO_HANDLE:
            return EncryptedEntry(EUINT32, (self.backend.zero(),))
        entry = self._arena[handle]
        if entry.kind != kind:
            raise TypeError(f"expected {kind} operand, got {entry.kind}")
        return entry

    def _store(self, op, operands, entry):
        self._counter += 1
        h = blake2b(digest_size=32)
        h.update(op.encode('utf-8'))
        for operand in operands:
            h.update(operand)
        h.update(self._counter.to_bytes(8, 'big'))
        handle = h.digest()
        self._arena[handle] = entry
        return handle

    # --- Operations ---
    def add(self, a, b):
        """Homomorphic a + b on two undivided euint32 handles"""
        left, right = self._operand(a), self._operand(b)
        if left.divisor != 1 or right.divisor != 1:
            raise ValueError("cannot add a divided ciphertext")
        total = self.backend.add(left.ciphertexts[0], right.ciphertexts[0])
        return self._store("add", (a, b), EncryptedEntry(EUINT32, (total,)))

    def div(self, a, scalar):
        """Homomorphic a // scalar for a plaintext scalar"""
        if scalar <= 0:
            raise ValueError(f"divisor must be positive, got {scalar}")
        entry = self._operand(a)
        divided = EncryptedEntry(EUINT32, entry.ciphertexts, entry.divisor * scalar)
        return self._store("div", (a, scalar.to_bytes(8, 'big')), divided)

    def in_range(self, a, low, high):
        """
        Encrypted boolean low <= a <= high.

        For each candidate k the slot holds (a - k) * r_k with a fresh random
        non-zero r_k, and the slots are shuffled. A zero slot exists iff the
        value is in range; the non-zero slots are uniformly random, so opening
        them leaks nothing beyond the boolean.
        """
        entry = self._operand(a)
        if entry.divisor != 1:
            raise ValueError("cannot range-check a divided ciphertext")
        source = entry.ciphertexts[0]
        slots = []
        for candidate in range(low, high + 1):
            diff = self.backend.subtract_plain(source, candidate)
            slots.append(self.backend.multiply_plain(diff, self.backend.random_mask()))
        random.SystemRandom().shuffle(slots)
        bounds = low.to_bytes(4, 'big') + high.to_bytes(4, 'big')
        return self._store("in_range", (a, bounds), EncryptedEntry(EBOOL, tuple(slots)))
