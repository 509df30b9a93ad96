import os

# Configuration is read at import time; pin it before identity_gate is imported.
os.environ["SESSION_SECRET"] = "test-secret-that-is-at-least-32-characters-long"
os.environ["CHAIN_ID"] = "2741"
os.environ["CHAIN_RPC_URL"] = ""
os.environ["EXPECTED_DOMAIN"] = "localhost:3000"

import pytest
from eth_account import Account
from fastapi.testclient import TestClient

from identity_gate.main import app
from identity_gate.services.session_store import get_session_store


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def account():
    return Account.create()


@pytest.fixture
def store():
    return get_session_store()
