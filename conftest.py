from urllib.parse import urlsplit

import pytest

from deployment import deploy_local
from encrypted_input import EncryptedInputBuilder
from fhe_backend import MockBackend
from local_chain import LocalChain
from server import create_app
from wallet import Wallet

GENESIS_TIME = 1_700_000_000


class ManualClock:
    """Block clock the tests move by hand"""

    def __init__(self, now=GENESIS_TIME):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def deployment(clock):
    """Ledger on the mock coprocessor with a hand-driven clock"""
    return deploy_local(MockBackend(), LocalChain(clock=clock))


@pytest.fixture(scope="session")
def bfv_backend():
    pytest.importorskip("tenseal")
    from bfv_backend import BfvBackend
    return BfvBackend()


@pytest.fixture
def bfv_deployment(bfv_backend, clock):
    return deploy_local(bfv_backend, LocalChain(clock=clock))


@pytest.fixture
def alice():
    return Wallet.generate()


@pytest.fixture
def bob():
    return Wallet.generate()


@pytest.fixture
def encrypt_scores():
    """encrypt_scores(deployment, wallet, *scores) -> EncryptedInput for the ledger"""
    def _encrypt(deployment, wallet, *scores):
        builder = EncryptedInputBuilder(
            deployment.backend, deployment.gateway, deployment.ledger.address, wallet.address
        )
        for score in scores:
            builder.add32(score)
        return builder.encrypt()
    return _encrypt


@pytest.fixture
def record(encrypt_scores):
    """record(deployment, wallet, score) -> index of the new event"""
    def _record(deployment, wallet, score):
        encrypted = encrypt_scores(deployment, wallet, score)
        return deployment.ledger.record_event(wallet.address, encrypted.handles[0], encrypted.input_proof)
    return _record


@pytest.fixture
def open_handle():
    """Key-holder view of a handle, bypassing the capability directory"""
    def _open(deployment, handle):
        return deployment.kms._open(handle)
    return _open


class FlaskTransport:
    """Stands in for requests.Session, routing calls into a Flask test client"""

    def __init__(self, app):
        self.client = app.test_client()

    def request(self, method, url, timeout=None, json=None, params=None):
        path = urlsplit(url).path
        return FlaskResponse(self.client.open(path, method=method, json=json, query_string=params))


class FlaskResponse:
    def __init__(self, response):
        self.status_code = response.status_code
        self._body = response.get_json(silent=True)

    def json(self):
        if self._body is None:
            raise ValueError("response is not JSON")
        return self._body


@pytest.fixture
def node():
    """Flask dev node on the mock coprocessor, wall-clock time"""
    return create_app(deploy_local(MockBackend()))


@pytest.fixture
def http(node):
    return node.test_client()


@pytest.fixture
def connect(node):
    """connect(client) points a LedgerClient or HttpRelayer at the test node"""
    def _connect(client):
        target = getattr(client, "ledger", client)
        target.session = FlaskTransport(node)
        return client
    return _connect
