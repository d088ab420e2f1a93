# test_pqc.py - ML-KEM-1024 session key sealing
import pytest
from cryptography.exceptions import InvalidTag

from session_keys import SESSION_ALGORITHM, generate_session_keypair, open_sealed, seal


def test_seal_and_open():
    """Only the session secret key opens a sealed value"""
    public_key, secret_key = generate_session_keypair()
    print(f"✓ Session public key generated ({len(public_key)} bytes)")

    sealed = seal(public_key, b'{"kind":"euint32","value":42}', b"handle")
    assert sealed["algorithm"] == SESSION_ALGORITHM == "ML-KEM-1024"
    assert open_sealed(secret_key, sealed, b"handle") == b'{"kind":"euint32","value":42}'


def test_seal_is_randomized():
    public_key, _ = generate_session_keypair()
    first, second = seal(public_key, b"7"), seal(public_key, b"7")
    assert first["kem_ciphertext"] != second["kem_ciphertext"]
    assert first["payload"] != second["payload"]


def test_other_session_key_cannot_open():
    public_key, _ = generate_session_keypair()
    _, other_secret = generate_session_keypair()
    sealed = seal(public_key, b"7")
    # ML-KEM decapsulation with the wrong key yields an unrelated secret
    with pytest.raises(InvalidTag):
        open_sealed(other_secret, sealed)


def test_bound_to_associated_data():
    public_key, secret_key = generate_session_keypair()
    sealed = seal(public_key, b"7", b"handle-a")
    with pytest.raises(InvalidTag):
        open_sealed(secret_key, sealed, b"handle-b")
