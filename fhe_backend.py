# fhe_backend.py - Ciphertext backend interface and the mock (cleartext) coprocessor

import os
import secrets

# Prime, 1 mod 16384, about 2**45: large enough that 1000 summed 32-bit
# scores never wrap modulo the plain modulus.
PLAIN_MODULUS = 35184372121601
UINT32_MODULUS = 2 ** 32


class CiphertextBackend:
    """
    Arithmetic the coprocessor may run on ciphertexts, plus the two key-holder
    operations (encrypt on the client, decrypt inside the key management
    service). Values live modulo `plain_modulus`.
    """

    scheme = None
    plain_modulus = PLAIN_MODULUS

    def encrypt(self, value):
        """Encrypt a plaintext integer under the public key, return bytes"""
        raise NotImplementedError

    def load(self, data):
        """Deserialize ciphertext bytes into a backend ciphertext object"""
        raise NotImplementedError

    def zero(self):
        """Trivial encryption of 0, used for uninitialized handles"""
        raise NotImplementedError

    def add(self, a, b):
        raise NotImplementedError

    def subtract_plain(self, ciphertext, value):
        raise NotImplementedError

    def multiply_plain(self, ciphertext, value):
        raise NotImplementedError

    def decrypt(self, ciphertext):
        """Secret-key side: residue of the plaintext in [0, plain_modulus)"""
        raise NotImplementedError

    def is_uint32(self, ciphertext):
        """Key-holder check that an uploaded ciphertext holds a 32-bit value"""
        return self.decrypt(ciphertext) < UINT32_MODULUS

    def public_descriptor(self):
        """What a client needs to encrypt inputs for this backend"""
        raise NotImplementedError

    def random_mask(self):
        """Uniform non-zero plaintext multiplier, kept below plain_modulus / 2"""
        return secrets.randbelow(self.plain_modulus // 2 - 1) + 1


class MockBackend(CiphertextBackend):
    """
    Cleartext coprocessor for local development and large test runs.
    "Ciphertexts" are a random nonce followed by the value, so equal scores
    still produce distinct handles. Arithmetic matches BfvBackend exactly.
    """

    scheme = "mock"

    def __init__(self):
        print("[FHE] Mock coprocessor initialized (cleartext values)")

    def encrypt(self, value):
        return MockEncryptor().encrypt(value)

    def load(self, data):
        if len(data) != 24:
            raise ValueError(f"mock ciphertext must be 24 bytes, got {len(data)}")
        value = int.from_bytes(data[16:], 'big')
        if value >= UINT32_MODULUS:
            raise ValueError("mock ciphertext holds a value outside the 32-bit domain")
        return value

    def zero(self):
        return 0

    def add(self, a, b):
        return (a + b) % self.plain_modulus

    def subtract_plain(self, ciphertext, value):
        return (ciphertext - value) % self.plain_modulus

    def multiply_plain(self, ciphertext, value):
        return (ciphertext * value) % self.plain_modulus

    def decrypt(self, ciphertext):
        return ciphertext % self.plain_modulus

    def public_descriptor(self):
        return {"scheme": self.scheme}


class MockEncryptor:
    """Client-side half of the mock backend"""

    scheme = "mock"

    def encrypt(self, value):
        return os.urandom(16) + (value % PLAIN_MODULUS).to_bytes(8, 'big')


def public_encryptor(descriptor):
    """Build the client-side encryptor described by a backend's public descriptor"""
    scheme = descriptor.get("scheme")
    if scheme == "mock":
        return MockEncryptor()
    if scheme == "bfv":
        from bfv_backend import BfvPublicEncryptor
        return BfvPublicEncryptor.from_descriptor(descriptor)
    raise ValueError(f"Unknown ciphertext scheme: {scheme!r}")
