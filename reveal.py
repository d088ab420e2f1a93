# reveal.py - Client-side reveal protocol: session keys, signature, re-encryption, local opening

import json
import threading
import time
from enum import Enum

from fhe_executor import handle_to_hex
from kms import DEFAULT_DURATION_DAYS, decryption_authorization
from session_keys import generate_session_keypair, open_sealed
from trust_errors import CapabilityDenied, RevealCancelled
from wallet import bytes_to_base64


class RevealState(Enum):
    IDLE = "idle"
    GENERATING_SESSION_KEYS = "generating_session_keys"
    AWAITING_AUTHORIZATION_SIGNATURE = "awaiting_authorization_signature"
    REQUESTING_REMOTE_REENCRYPTION = "requesting_remote_reencryption"
    OPENING_LOCALLY = "opening_locally"
    COMPLETED = "completed"


class LocalRelayer:
    """In-process transport straight to a KeyManagementService"""

    def __init__(self, kms):
        self.kms = kms

    def may_decrypt(self, handle, principal):
        return self.kms.may_decrypt(handle, principal)

    def reencrypt(self, request):
        return self.kms.reencrypt(request)


class RevealSession:
    """
    Turns one ciphertext handle back into a number for its holder.

    idle -> generating_session_keys -> awaiting_authorization_signature
         -> requesting_remote_reencryption -> opening_locally -> completed

    `begin()` runs up to the signature and returns the payload to sign; the
    session then stays parked until `authorize()` is called with the
    holder's signature. `cancel()` drops the session key and returns to idle
    from any state before completion, including while the re-encryption call
    is in flight; `authorize()` then raises RevealCancelled instead of
    opening. A failed or refused re-encryption also returns to idle and
    leaves nothing behind. Sessions share no state, so one per handle can be
    in flight at the same time.
    """

    def __init__(self, handle, holder_address, contract_address, relayer, chain_id,
                 duration_days=DEFAULT_DURATION_DAYS, clock=None, on_transition=None):
        self.handle = handle
        self.holder_address = holder_address
        self.contract_address = contract_address
        self.relayer = relayer
        self.chain_id = chain_id
        self.duration_days = duration_days
        self._clock = clock or time.time
        self._on_transition = on_transition
        self._lock = threading.RLock()

        self.state = RevealState.IDLE
        self.value = None
        self.kind = None
        self.authorization = None
        self._session_public_key = None
        self._session_secret_key = None

    def _transition(self, state):
        self.state = state
        if self._on_transition:
            self._on_transition(self, state)

    def _require(self, state):
        if self.state is not state:
            raise RuntimeError(f"reveal is {self.state.value}, expected {state.value}")

    def _advance(self, expected, state):
        """Move on unless a cancel got in first"""
        with self._lock:
            if self.state is not expected:
                raise RevealCancelled()
            self._transition(state)

    def _reset(self):
        self._session_public_key = None
        self._session_secret_key = None
        self.authorization = None
        self._transition(RevealState.IDLE)

    def _reset_if(self, state):
        with self._lock:
            if self.state is state:
                self._reset()

    def begin(self):
        """Generate the session key pair and return the authorization to sign"""
        with self._lock:
            self._require(RevealState.IDLE)
        if not self.relayer.may_decrypt(self.handle, self.holder_address):
            raise CapabilityDenied(f"{self.holder_address} may not decrypt {handle_to_hex(self.handle)}")

        self._advance(RevealState.IDLE, RevealState.GENERATING_SESSION_KEYS)
        try:
            public_key, secret_key = generate_session_keypair()
        except Exception:
            self._reset_if(RevealState.GENERATING_SESSION_KEYS)
            raise

        authorization = decryption_authorization(
            self.chain_id, public_key, [self.contract_address],
            int(self._clock()), self.duration_days,
        )
        with self._lock:
            if self.state is not RevealState.GENERATING_SESSION_KEYS:
                raise RevealCancelled()
            self._session_public_key = public_key
            self._session_secret_key = secret_key
            self.authorization = authorization
            self._transition(RevealState.AWAITING_AUTHORIZATION_SIGNATURE)
        return authorization

    def authorize(self, signer_public_key, signature):
        """Submit the holder's signature, fetch the sealed value and open it"""
        with self._lock:
            self._require(RevealState.AWAITING_AUTHORIZATION_SIGNATURE)
            secret_key = self._session_secret_key
            request = {
                "handle": handle_to_hex(self.handle),
                "contract_address": self.contract_address,
                "user_address": self.holder_address,
                "signer_public_key": bytes_to_base64(signer_public_key),
                "signature": bytes_to_base64(signature),
                "authorization": self.authorization,
            }
            self._transition(RevealState.REQUESTING_REMOTE_REENCRYPTION)

        try:
            sealed = self.relayer.reencrypt(request)
        except Exception:
            self._reset_if(RevealState.REQUESTING_REMOTE_REENCRYPTION)
            raise

        self._advance(RevealState.REQUESTING_REMOTE_REENCRYPTION, RevealState.OPENING_LOCALLY)
        try:
            cleartext = json.loads(open_sealed(secret_key, sealed, self.handle))
        except Exception:
            self._reset_if(RevealState.OPENING_LOCALLY)
            raise

        with self._lock:
            if self.state is not RevealState.OPENING_LOCALLY:
                raise RevealCancelled()
            self.kind = cleartext["kind"]
            self.value = cleartext["value"]
            self._session_public_key = None
            self._session_secret_key = None
            self._transition(RevealState.COMPLETED)
        return self.value

    def cancel(self):
        """Abandon the reveal; only local key material is discarded"""
        with self._lock:
            if self.state is not RevealState.COMPLETED:
                self._reset()

    def run(self, wallet):
        """Whole protocol with a wallet that signs immediately"""
        authorization = self.begin()
        return self.authorize(wallet.public_key_bytes, wallet.sign_payload(authorization))
