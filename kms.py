# kms.py - Key management service: ACL-gated re-encryption to session keys

from fhe_backend import UINT32_MODULUS
from fhe_executor import EBOOL, hex_to_handle, handle_to_hex
from session_keys import seal
from trust_errors import CapabilityDenied
from wallet import (
    address_from_public_key, base64_to_bytes, bytes_to_base64,
    canonical_json, normalize_address, verify_signature,
)

AUTHORIZATION_DOMAIN = "TrustScoreTracker/UserDecrypt/v1"
DEFAULT_DURATION_DAYS = 1
MAX_DURATION_DAYS = 365
SECONDS_PER_DAY = 86400
# Wallet clocks may run ahead of the chain by this much
CLOCK_SKEW_SECONDS = 300


def decryption_authorization(chain_id, session_public_key, contract_addresses,
                             start_timestamp, duration_days=DEFAULT_DURATION_DAYS):
    """Typed payload the holder signs to authorize re-encryption to a session key"""
    return {
        "domain": AUTHORIZATION_DOMAIN,
        "chain_id": chain_id,
        "public_key": bytes_to_base64(session_public_key),
        "contract_addresses": sorted(normalize_address(a) for a in contract_addresses),
        "start_timestamp": int(start_timestamp),
        "duration_days": int(duration_days),
    }


def encode_cleartext(kind, value):
    return canonical_json({"kind": kind, "value": value})


class KeyManagementService:
    """
    Holds the decryption side of the network key. Nothing leaves it in clear:
    user reveals are sealed to the requester's session key, and public
    decryptions are limited to handles granted to the requesting contract.
    """

    def __init__(self, backend, executor, acl, chain):
        self.backend = backend
        self.executor = executor
        self.acl = acl
        self.chain = chain
        print(f"[KMS] Key management service ready (scheme: {backend.scheme})")

    def _open(self, handle):
        entry = self.executor.entry(handle)
        if entry.kind == EBOOL:
            return any(self.backend.decrypt(slot) == 0 for slot in entry.ciphertexts)
        wrapped = self.backend.decrypt(entry.ciphertexts[0]) % UINT32_MODULUS
        return wrapped // entry.divisor

    def _check_authorization(self, authorization, user, contract, signer_public_key, signature):
        if address_from_public_key(signer_public_key) != user:
            raise CapabilityDenied("Signer does not match user address")
        if not verify_signature(signer_public_key, signature, canonical_json(authorization)):
            raise CapabilityDenied("Invalid authorization signature")
        if authorization.get("domain") != AUTHORIZATION_DOMAIN:
            raise CapabilityDenied("Authorization for another domain")
        if authorization.get("chain_id") != self.chain.chain_id:
            raise CapabilityDenied("Authorization for another chain")
        if contract not in authorization.get("contract_addresses", []):
            raise CapabilityDenied("Contract not covered by authorization")

        duration = authorization["duration_days"]
        if not 1 <= duration <= MAX_DURATION_DAYS:
            raise CapabilityDenied(f"Authorization duration must be 1-{MAX_DURATION_DAYS} days")
        now = self.chain.timestamp()
        start = authorization["start_timestamp"]
        if now + CLOCK_SKEW_SECONDS < start:
            raise CapabilityDenied("Authorization not yet valid")
        if now > start + duration * SECONDS_PER_DAY:
            raise CapabilityDenied("Authorization expired")

    def reencrypt(self, request):
        """
        Re-encrypt one handle for its holder.

        request: handle, contract_address, user_address, signer_public_key
        (base64), signature (base64) and the signed authorization. Both the
        user and the contract must hold a grant on the handle.
        """
        handle = hex_to_handle(request["handle"])
        user = normalize_address(request["user_address"])
        contract = normalize_address(request["contract_address"])
        authorization = request["authorization"]

        self._check_authorization(
            authorization, user, contract,
            base64_to_bytes(request["signer_public_key"]),
            base64_to_bytes(request["signature"]),
        )
        if not self.acl.may_decrypt(handle, user):
            raise CapabilityDenied(f"{user} may not decrypt {handle_to_hex(handle)}")
        if not self.acl.may_decrypt(handle, contract):
            raise CapabilityDenied(f"Contract {contract} may not decrypt {handle_to_hex(handle)}")

        kind = self.executor.entry(handle).kind
        cleartext = encode_cleartext(kind, self._open(handle))
        sealed = seal(base64_to_bytes(authorization["public_key"]), cleartext, handle)
        print(f"[KMS] ✓ Re-encrypted {handle_to_hex(handle)[:18]}... for {user}")
        return {"handle": handle_to_hex(handle), "kind": kind, **sealed}

    def decrypt_for_contract(self, handle, contract):
        """Public decryption of a value the contract holds a grant on"""
        if not self.acl.may_decrypt(handle, contract):
            raise CapabilityDenied(f"Contract {contract} may not decrypt {handle_to_hex(handle)}")
        return self._open(handle)

    def may_decrypt(self, handle, principal):
        return self.acl.may_decrypt(handle, principal)
