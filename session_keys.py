# session_keys.py - ML-KEM-1024 session keys for sealing re-encrypted values

import os
from pqcrypto.kem.ml_kem_1024 import generate_keypair, encrypt, decrypt
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from wallet import bytes_to_base64, base64_to_bytes

SESSION_ALGORITHM = "ML-KEM-1024"
NONCE_SIZE = 12


def generate_session_keypair():
    """Ephemeral (public_key, secret_key) for one reveal session"""
    return generate_keypair()


def _derive_key(shared_secret, associated_data):
    """Run the KEM shared secret through HKDF, bound to what is being sealed"""
    hkdf = HKDF(algorithm=hashes.SHA256(), length=32, salt=None,
                info=b'trust_reveal_v1' + associated_data)
    return hkdf.derive(shared_secret)


def seal(session_public_key, plaintext, associated_data=b""):
    """
    Encapsulate a fresh secret to the session key and AES-256-GCM encrypt
    plaintext with it. Only the holder of the session secret key can open it.
    """
    kem_ciphertext, shared_secret = encrypt(session_public_key)
    aesgcm = AESGCM(_derive_key(shared_secret, associated_data))
    nonce = os.urandom(NONCE_SIZE)
    ciphertext = aesgcm.encrypt(nonce, plaintext, associated_data)
    return {
        "algorithm": SESSION_ALGORITHM,
        "kem_ciphertext": bytes_to_base64(kem_ciphertext),
        "payload": bytes_to_base64(nonce + ciphertext),
    }


def open_sealed(session_secret_key, sealed, associated_data=b""):
    """Decapsulate and decrypt a value produced by `seal`"""
    shared_secret = decrypt(session_secret_key, base64_to_bytes(sealed["kem_ciphertext"]))
    aesgcm = AESGCM(_derive_key(shared_secret, associated_data))
    payload = base64_to_bytes(sealed["payload"])
    return aesgcm.decrypt(payload[:NONCE_SIZE], payload[NONCE_SIZE:], associated_data)
