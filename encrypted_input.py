# encrypted_input.py - Client-side sealing of plaintext scores into (handles, proof)

from dataclasses import dataclass

from fhe_backend import UINT32_MODULUS


@dataclass
class EncryptedInput:
    handles: list
    input_proof: bytes


class EncryptedInputBuilder:
    """
    Collects plaintext 32-bit values, encrypts them under the network public
    key and has the input gateway attest them for one (contract, user) pair:

        EncryptedInputBuilder(encryptor, gateway, contract, user).add32(8).encrypt()
    """

    def __init__(self, encryptor, gateway, contract_address, user_address):
        self.encryptor = encryptor
        self.gateway = gateway
        self.contract_address = contract_address
        self.user_address = user_address
        self._values = []

    def add32(self, value):
        if not isinstance(value, int) or isinstance(value, bool):
            raise TypeError(f"euint32 input must be an int, got {type(value).__name__}")
        if not 0 <= value < UINT32_MODULUS:
            raise ValueError(f"{value} does not fit in 32 bits")
        self._values.append(value)
        return self

    def encrypt(self):
        if not self._values:
            raise ValueError("no values added")
        ciphertexts = [self.encryptor.encrypt(value) for value in self._values]
        handles, proof = self.gateway.submit_inputs(ciphertexts, self.contract_address, self.user_address)
        return EncryptedInput(handles=handles, input_proof=proof)
