# client.py - HTTP client for the trust ledger node and the high-level tracker flow

import requests

from encrypted_input import EncryptedInputBuilder
from fhe_backend import public_encryptor
from fhe_executor import ZERO_HANDLE, handle_to_hex, hex_to_handle
from kms import DEFAULT_DURATION_DAYS
from reveal import RevealSession
from stats_cache import TrustStatistics
from trust_errors import RemoteServiceUnavailable, error_from_payload
from trust_ledger import MAX_SCORE, MIN_SCORE
from wallet import bytes_to_base64

REQUEST_TIMEOUT = 30


def validate_score_input(text):
    """
    Parse a score typed by the user. Returns (score, None) when valid or
    (None, message) with the message shown to the user otherwise.
    """
    text = (text or "").strip()
    if not text:
        return None, "Please enter a trust score"
    try:
        score = int(text)
    except ValueError:
        return None, "Trust score must be a number between 1 and 10"
    if not MIN_SCORE <= score <= MAX_SCORE:
        return None, "Trust score must be a number between 1 and 10"
    return score, None


def score_input_hint(text):
    """As-you-type hint for the score field, "" for an empty field"""
    text = (text or "").strip()
    if not text:
        return ""
    try:
        score = int(text)
    except ValueError:
        return "Must be a number"
    if score < MIN_SCORE:
        return "Minimum score is 1"
    if score > MAX_SCORE:
        return "Maximum score is 10"
    return "✅ Valid score"


class LedgerClient:
    """Thin requests wrapper around every node route"""

    def __init__(self, server_url="http://127.0.0.1:5000", timeout=REQUEST_TIMEOUT):
        self.server_url = server_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()

    def _call(self, method, path, **kwargs):
        try:
            response = self.session.request(
                method, f"{self.server_url}{path}", timeout=self.timeout, **kwargs
            )
        except requests.RequestException as e:
            raise RemoteServiceUnavailable(f"{self.server_url} unreachable: {e}")

        if response.status_code == 200:
            return response.json()
        try:
            payload = response.json()
        except ValueError:
            raise RemoteServiceUnavailable(f"HTTP {response.status_code} from {self.server_url}")
        if payload.get("error") == "InternalError":
            raise RemoteServiceUnavailable(payload.get("message") or f"HTTP {response.status_code}")
        raise error_from_payload(payload)

    def _signed(self, wallet, body):
        signature = wallet.sign_payload(body)
        return {
            **body,
            "sender_public_key": bytes_to_base64(wallet.public_key_bytes),
            "signature": bytes_to_base64(signature),
        }

    # --- Node info ---
    def status(self):
        return self._call("GET", "/status")

    def public_context(self):
        return self._call("GET", "/public_context")

    # --- Input gateway ---
    def submit_inputs(self, ciphertexts, contract, user):
        data = self._call("POST", "/inputs", json={
            "contract_address": contract,
            "user_address": user,
            "ciphertexts": [bytes_to_base64(c) for c in ciphertexts],
        })
        handles = [hex_to_handle(h) for h in data["handles"]]
        return handles, bytes.fromhex(data["input_proof"].removeprefix("0x"))

    # --- Ledger ---
    def record_event(self, wallet, handle, proof):
        body = {"method": "record", "handle": handle_to_hex(handle), "input_proof": "0x" + proof.hex()}
        return self._call("POST", "/record", json=self._signed(wallet, body))

    def get_total(self, user):
        return hex_to_handle(self._call("GET", f"/users/{user}/total")["handle"])

    def get_average(self, user):
        return hex_to_handle(self._call("GET", f"/users/{user}/average")["handle"])

    def get_event_count(self, user):
        return self._call("GET", f"/users/{user}/count")["event_count"]

    def get_history_length(self, user):
        return self._call("GET", f"/users/{user}/history_length")["history_length"]

    def get_last_activity(self, user):
        return self._call("GET", f"/users/{user}/last_activity")["last_activity"]

    def get_by_index(self, user, index):
        return hex_to_handle(self._call("GET", f"/users/{user}/history/{index}")["handle"])

    def get_range(self, user, start, end):
        data = self._call("GET", f"/users/{user}/history", params={"start": start, "end": end})
        return [hex_to_handle(h) for h in data["handles"]]

    def get_live_statistics(self, user):
        data = self._call("POST", f"/users/{user}/statistics")
        return TrustStatistics(data["event_count"], data["last_activity"], data["has_data"])

    def get_cached_statistics(self, user):
        data = self._call("GET", f"/users/{user}/statistics/cached")
        return TrustStatistics(data["event_count"], data["last_activity"], data["has_data"])

    def validate_batch(self, wallet, handles, proofs):
        body = {
            "method": "validate_batch",
            "handles": [handle_to_hex(h) for h in handles],
            "input_proofs": ["0x" + p.hex() for p in proofs],
        }
        return self._call("POST", "/validate_batch", json=self._signed(wallet, body))["results"]

    def events(self, name=None, since=0):
        params = {"since": since}
        if name:
            params["name"] = name
        return self._call("GET", "/events", params=params)["events"]

    # --- Capability / re-encryption ---
    def may_decrypt(self, handle, principal):
        return self._call("GET", f"/acl/{handle_to_hex(handle)}/{principal}")["may_decrypt"]

    def reencrypt(self, request):
        return self._call("POST", "/reencrypt", json=request)


class HttpRelayer:
    """Reveal-protocol transport over the node's /acl and /reencrypt routes"""

    def __init__(self, server_url="http://127.0.0.1:5000", timeout=REQUEST_TIMEOUT):
        self.ledger = LedgerClient(server_url, timeout)

    def may_decrypt(self, handle, principal):
        return self.ledger.may_decrypt(handle, principal)

    def reencrypt(self, request):
        return self.ledger.reencrypt(request)


class TrustScoreClient:
    """
    One user's view of the tracker: record scores, refresh handles, and
    decrypt total, average and history through reveal sessions.
    """

    def __init__(self, wallet, server_url="http://127.0.0.1:5000", ledger=None, relayer=None,
                 duration_days=DEFAULT_DURATION_DAYS):
        self.wallet = wallet
        self.ledger = ledger or LedgerClient(server_url)
        self.relayer = relayer or HttpRelayer(server_url)
        self.duration_days = duration_days

        info = self.ledger.public_context()
        self.chain_id = info["chain_id"]
        self.contract_address = info["contract_address"]
        self.encryptor = public_encryptor(info["encryption"])
        print(f"[{self.wallet.address[:10]}]: Client ready for contract {self.contract_address}")

        self.event_count = 0
        self.total_handle = ZERO_HANDLE
        self.average_handle = ZERO_HANDLE
        self.history_handles = []
        self.clear_total = None
        self.clear_average = None
        self.clear_history = {}

    def _encrypt(self, scores):
        builder = EncryptedInputBuilder(self.encryptor, self.ledger, self.contract_address, self.wallet.address)
        for score in scores:
            builder.add32(score)
        return builder.encrypt()

    def record_trust_event(self, score):
        """Encrypt a 1-10 score and append it; returns the new event count"""
        if not isinstance(score, int) or not MIN_SCORE <= score <= MAX_SCORE:
            raise ValueError("Trust score must be a number between 1 and 10")
        encrypted = self._encrypt([score])
        result = self.ledger.record_event(self.wallet, encrypted.handles[0], encrypted.input_proof)
        print(f"[{self.wallet.address[:10]}]: ✓ Trust event recorded (#{result['event_count']})")
        self.refresh()
        return result["event_count"]

    def validate_scores(self, scores):
        """Homomorphic range check of plaintext candidates; one bool per score"""
        encrypted = [self._encrypt([score]) for score in scores]
        return self.ledger.validate_batch(
            self.wallet,
            [e.handles[0] for e in encrypted],
            [e.input_proof for e in encrypted],
        )

    def refresh(self):
        """Pull current handles; decrypted values are dropped when they change"""
        user = self.wallet.address
        count = self.ledger.get_event_count(user)
        total = self.ledger.get_total(user)
        average = self.ledger.get_average(user)
        history = self.ledger.get_range(user, 0, count) if count else []

        if total != self.total_handle:
            self.clear_total = None
        if average != self.average_handle:
            self.clear_average = None
        self.event_count = count
        self.total_handle = total
        self.average_handle = average
        self.history_handles = history
        self.clear_history = {h: v for h, v in self.clear_history.items() if h in history}
        return count

    def reveal(self, handle, on_transition=None):
        session = RevealSession(
            handle, self.wallet.address, self.contract_address, self.relayer, self.chain_id,
            duration_days=self.duration_days, on_transition=on_transition,
        )
        return session.run(self.wallet)

    def decrypt_scores(self, on_transition=None):
        """Reveal total, average and every history entry not yet decrypted"""
        if self.event_count == 0:
            return None
        self.clear_total = self.reveal(self.total_handle, on_transition)
        self.clear_average = self.reveal(self.average_handle, on_transition)
        for handle in self.history_handles:
            if handle not in self.clear_history:
                self.clear_history[handle] = self.reveal(handle, on_transition)
        return {
            "total": self.clear_total,
            "average": self.clear_average,
            "history": [self.clear_history[h] for h in self.history_handles],
        }

    def statistics(self):
        return self.ledger.get_live_statistics(self.wallet.address)
