# bfv_backend.py - TenSEAL BFV backend for the confidential trust ledger

import tenseal as ts

from fhe_backend import CiphertextBackend, PLAIN_MODULUS
from wallet import bytes_to_base64, base64_to_bytes

POLY_MODULUS_DEGREE = 8192


class BfvBackend(CiphertextBackend):
    """
    Network key holder and homomorphic evaluator over BFV integers.

    The full context (with the secret key) is only used by `decrypt`, which
    the key management service calls. Everything the coprocessor does runs
    against the public context, exactly as a server would after receiving
    `public_descriptor()`.
    """

    scheme = "bfv"

    def __init__(self, poly_modulus_degree=POLY_MODULUS_DEGREE, plain_modulus=PLAIN_MODULUS):
        self.plain_modulus = plain_modulus
        self._context = ts.context(
            ts.SCHEME_TYPE.BFV,
            poly_modulus_degree=poly_modulus_degree,
            plain_modulus=plain_modulus
        )
        self._secret_key = self._context.secret_key()

        public_copy = self._context.copy()
        public_copy.make_context_public()
        self._public_bytes = public_copy.serialize()
        self.public_context = ts.context_from(self._public_bytes)

        print(f"[FHE] BFV context initialized (n={poly_modulus_degree}, t={plain_modulus})")

    def public_descriptor(self):
        """Serialized public context (no secret key) for clients"""
        return {"scheme": self.scheme, "context": bytes_to_base64(self._public_bytes)}

    def encrypt(self, value):
        return ts.bfv_vector(self.public_context, [value]).serialize()

    def load(self, data):
        return ts.bfv_vector_from(self.public_context, data)

    def zero(self):
        return ts.bfv_vector(self.public_context, [0])

    def add(self, a, b):
        return a + b

    def subtract_plain(self, ciphertext, value):
        return ciphertext - [value]

    def multiply_plain(self, ciphertext, value):
        return ciphertext * [value]

    def decrypt(self, ciphertext):
        # Batch decoding is centered, negative residues map back up
        return ciphertext.decrypt(self._secret_key)[0] % self.plain_modulus


class BfvPublicEncryptor:
    """Client-side encryptor holding only the public BFV context"""

    scheme = "bfv"

    def __init__(self, context_bytes):
        self.context = ts.context_from(context_bytes)

    @classmethod
    def from_descriptor(cls, descriptor):
        return cls(base64_to_bytes(descriptor["context"]))

    def encrypt(self, value):
        return ts.bfv_vector(self.context, [value]).serialize()
