# input_verifier.py - Input gateway attestation and on-ledger proof verification

from hashlib import blake2b

from trust_errors import EmptyProof, InvalidProof
from wallet import Wallet, normalize_address, verify_signature

PROOF_VERSION = 1
SIGNATURE_SIZE = 64
HANDLE_SIZE = 32
MAX_INPUTS_PER_PROOF = 255


def proof_message(chain_id, contract, user, handles):
    """Digest the gateway signs: binds handles to one chain, contract and user"""
    h = blake2b(digest_size=32)
    h.update(b"trust_input_proof_v1")
    h.update(chain_id.to_bytes(8, 'big'))
    h.update(contract.encode('utf-8'))
    h.update(user.encode('utf-8'))
    for handle in handles:
        h.update(handle)
    return h.digest()


def encode_proof(handles, signature):
    return bytes([PROOF_VERSION, len(handles)]) + b"".join(handles) + signature


def decode_proof(proof):
    """Split proof bytes into (handles, signature); raises InvalidProof"""
    if len(proof) < 2 or proof[0] != PROOF_VERSION:
        raise InvalidProof("Malformed input proof")
    count = proof[1]
    expected = 2 + count * HANDLE_SIZE + SIGNATURE_SIZE
    if count == 0 or len(proof) != expected:
        raise InvalidProof("Malformed input proof")
    handles = [
        proof[2 + i * HANDLE_SIZE: 2 + (i + 1) * HANDLE_SIZE]
        for i in range(count)
    ]
    return handles, proof[expected - SIGNATURE_SIZE:]


class InputGateway:
    """
    Relayer-side entry for encrypted inputs. Stores the uploaded ciphertexts
    with the coprocessor and attests which (contract, user) they were
    submitted for.
    """

    def __init__(self, executor, wallet=None):
        self.executor = executor
        self.wallet = wallet or Wallet.generate()
        self.public_key_bytes = self.wallet.public_key_bytes
        print(f"[GATEWAY] Input gateway ready (signer {self.wallet.address})")

    def submit_inputs(self, ciphertexts, contract, user):
        """Upload ciphertexts, return (handles, input_proof)"""
        if not ciphertexts or len(ciphertexts) > MAX_INPUTS_PER_PROOF:
            raise ValueError(f"expected 1-{MAX_INPUTS_PER_PROOF} ciphertexts, got {len(ciphertexts)}")
        contract, user = normalize_address(contract), normalize_address(user)

        handles = [
            self.executor.input_handle(ciphertext, contract, user, index)
            for index, ciphertext in enumerate(ciphertexts)
        ]
        self.executor.upload_inputs(list(zip(handles, ciphertexts)))

        message = proof_message(self.executor.chain_id, contract, user, handles)
        proof = encode_proof(handles, self.wallet.sign(message))
        print(f"[GATEWAY] ✓ Attested {len(handles)} input(s) for {user}")
        return handles, proof


class InputVerifier:
    """Checks an input proof before any ledger state is touched"""

    def __init__(self, executor, gateway_public_key):
        self.executor = executor
        self.gateway_public_key = gateway_public_key

    def check(self, handle, proof, submitter, contract):
        """
        Validate proof material without consuming the input.

        Fails with EmptyProof for zero-length proof material and InvalidProof
        when the proof is malformed, bound to another contract, chain or
        submitter, does not cover the handle, or the input was already used.
        """
        if not proof:
            raise EmptyProof()

        handles, signature = decode_proof(proof)
        message = proof_message(self.executor.chain_id, contract, submitter, handles)
        if not verify_signature(self.gateway_public_key, signature, message):
            raise InvalidProof("Input proof not bound to this contract and sender")
        if handle not in handles:
            raise InvalidProof("Handle not covered by input proof")
        if not self.executor.is_pending(handle):
            raise InvalidProof("Input ciphertext unknown or already used")

    def verify(self, handle, proof, submitter, contract):
        """Check the proof and import the input; returns the internal handle"""
        self.check(handle, proof, submitter, contract)
        return self.executor.import_input(handle)
