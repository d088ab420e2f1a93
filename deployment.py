# deployment.py - Wire chain, coprocessor, ACL, gateway, KMS and ledger together

from dataclasses import dataclass

from acl import CapabilityDirectory
from fhe_backend import MockBackend
from fhe_executor import FheExecutor
from input_verifier import InputGateway, InputVerifier
from kms import KeyManagementService
from local_chain import LocalChain
from trust_ledger import TrustScoreLedger


@dataclass
class Deployment:
    chain: LocalChain
    backend: object
    executor: FheExecutor
    acl: CapabilityDirectory
    gateway: InputGateway
    verifier: InputVerifier
    kms: KeyManagementService
    ledger: TrustScoreLedger


def make_backend(scheme):
    """Backend by name: "bfv" (TenSEAL) or "mock" (cleartext coprocessor)"""
    if scheme == "mock":
        return MockBackend()
    if scheme == "bfv":
        from bfv_backend import BfvBackend
        return BfvBackend()
    raise ValueError(f"Unknown backend: {scheme!r}")


def deploy_local(backend=None, chain=None):
    """Fresh ledger with its own coprocessor, ACL, gateway and KMS"""
    chain = chain or LocalChain()
    backend = backend or MockBackend()
    executor = FheExecutor(backend, chain.chain_id)
    acl = CapabilityDirectory()
    gateway = InputGateway(executor)
    verifier = InputVerifier(executor, gateway.public_key_bytes)
    kms = KeyManagementService(backend, executor, acl, chain)
    ledger = TrustScoreLedger(chain, executor, acl, verifier, kms)
    return Deployment(chain, backend, executor, acl, gateway, verifier, kms, ledger)
