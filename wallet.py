# wallet.py - Ed25519 signer and address derivation for ledger principals

import json
import base64
from hashlib import blake2b
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

ZERO_ADDRESS = "0x" + "00" * 20


# --- Helper Functions ---
def bytes_to_base64(data):
    """Convert bytes to base64 string"""
    return base64.b64encode(data).decode('utf-8')


def base64_to_bytes(b64_str):
    """Convert base64 string to bytes"""
    return base64.b64decode(b64_str)


def canonical_json(payload):
    """Stable byte encoding of a JSON-able payload, used as signing input"""
    return json.dumps(payload, sort_keys=True, separators=(',', ':')).encode('utf-8')


def address_from_public_key(public_key_bytes):
    return "0x" + blake2b(public_key_bytes, digest_size=20).hexdigest()


def normalize_address(address):
    """Lower-case 0x-prefixed form; raises ValueError on malformed input"""
    if not isinstance(address, str):
        raise ValueError(f"address must be a string, got {type(address).__name__}")
    body = address[2:] if address.startswith("0x") else address
    if len(body) != 40:
        raise ValueError(f"address must hold 20 bytes: {address!r}")
    int(body, 16)
    return "0x" + body.lower()


def verify_signature(public_key_bytes, signature, message):
    """True iff signature is a valid Ed25519 signature of message"""
    try:
        key = ed25519.Ed25519PublicKey.from_public_bytes(public_key_bytes)
        key.verify(signature, message)
        return True
    except (InvalidSignature, ValueError):
        return False


class Wallet:
    """A principal's signing key; the address is derived from the public key"""

    def __init__(self, private_key=None):
        self._private_key = private_key or ed25519.Ed25519PrivateKey.generate()
        self.public_key_bytes = self._private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw
        )
        self.address = address_from_public_key(self.public_key_bytes)

    @classmethod
    def generate(cls):
        return cls()

    def sign(self, message):
        return self._private_key.sign(message)

    def sign_payload(self, payload):
        """Sign the canonical JSON encoding of payload"""
        return self.sign(canonical_json(payload))

    def __repr__(self):
        return f"Wallet({self.address})"
