from unittest.mock import patch

import requests
from eth_account import Account
from siwe import SiweMessage

from identity_gate import config
from identity_gate.models.auth_models import SessionData

from siwe_helpers import in_minutes, make_message, session_cookie, sign


def _nonce(client) -> str:
    response = client.get("/auth/nonce")
    assert response.status_code == 200
    return response.text


def test_health_check(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_nonce_is_plain_text_and_stored_in_session(client, store):
    response = client.get("/auth/nonce")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "no-store" in response.headers["cache-control"]
    assert store.unseal(session_cookie(client)).nonce == response.text


def test_each_nonce_request_replaces_the_outstanding_nonce(client, store):
    first = _nonce(client)
    second = _nonce(client)

    assert first != second
    assert store.unseal(session_cookie(client)).nonce == second


def test_verify_success_authenticates_session(client, store, account):
    nonce = _nonce(client)
    message = make_message(account.address, nonce)

    response = client.post("/auth/verify", json={"message": message, "signature": sign(account, message)})

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    data = store.unseal(session_cookie(client))
    assert data.isAuthenticated is True
    assert data.address == account.address
    assert data.chainId == 2741
    assert data.nonce is None


def test_verify_stores_expiration_time(client, store, account):
    nonce = _nonce(client)
    message = make_message(account.address, nonce, expiration_time=in_minutes(30))

    response = client.post("/auth/verify", json={"message": message, "signature": sign(account, message)})

    assert response.status_code == 200
    assert store.unseal(session_cookie(client)).expirationTime is not None


def test_nonce_is_single_use(client, account):
    nonce = _nonce(client)
    message = make_message(account.address, nonce)
    payload = {"message": message, "signature": sign(account, message)}

    assert client.post("/auth/verify", json=payload).status_code == 200
    replay = client.post("/auth/verify", json=payload)

    assert replay.status_code == 422
    assert replay.json() == {"ok": False, "message": "Invalid nonce."}


def test_failed_attempt_consumes_nonce(client, store, account):
    nonce = _nonce(client)
    message = make_message(account.address, nonce)
    other = Account.create()

    bad = client.post("/auth/verify", json={"message": message, "signature": sign(other, message)})
    assert bad.status_code == 422
    assert bad.json() == {"ok": False, "message": "Invalid signature."}
    assert store.unseal(session_cookie(client)).nonce is None

    retry = client.post("/auth/verify", json={"message": message, "signature": sign(account, message)})
    assert retry.status_code == 422
    assert retry.json()["message"] == "Invalid nonce."


def test_wrong_chain_rejected_before_signature_check(client, store, account):
    nonce = _nonce(client)
    message = make_message(account.address, nonce, chain_id=1)

    with patch.object(SiweMessage, "verify") as verify:
        response = client.post("/auth/verify", json={"message": message, "signature": sign(account, message)})

    assert response.status_code == 422
    assert response.json() == {"ok": False, "message": "Invalid chain ID."}
    verify.assert_not_called()
    data = store.unseal(session_cookie(client))
    assert not data.isAuthenticated
    assert data.address is None


def test_unparsable_message_fails_generically(client):
    _nonce(client)

    response = client.post("/auth/verify", json={"message": "let me in", "signature": "0x00"})

    assert response.status_code == 500
    assert response.json() == {"ok": False, "message": "Verification failed"}


def test_magic_signature_does_not_authenticate(client, store, account):
    nonce = _nonce(client)
    message = make_message(account.address, nonce)

    response = client.post("/auth/verify", json={"message": message, "signature": "0xadmin"})

    assert response.status_code == 422
    assert response.json()["message"] == "Invalid signature."
    assert not store.unseal(session_cookie(client)).isAuthenticated


def test_domain_mismatch_rejected(client, account):
    nonce = _nonce(client)
    message = make_message(account.address, nonce, domain="evil.example")

    response = client.post("/auth/verify", json={"message": message, "signature": sign(account, message)})

    assert response.status_code == 422
    assert response.json()["message"] == "Invalid domain."


def test_expired_message_rejected(client, account):
    nonce = _nonce(client)
    message = make_message(account.address, nonce, issued_at=in_minutes(-60), expiration_time=in_minutes(-1))

    response = client.post("/auth/verify", json={"message": message, "signature": sign(account, message)})

    assert response.status_code == 422
    assert response.json()["message"] == "Message expired."


def test_verify_without_outstanding_nonce(client, account):
    message = make_message(account.address, "unissuednonce123")

    response = client.post("/auth/verify", json={"message": message, "signature": sign(account, message)})

    assert response.status_code == 422
    assert response.json()["message"] == "Invalid nonce."


def test_contract_wallet_signature_accepted(client, store, account):
    wallet_address = Account.create().address
    nonce = _nonce(client)
    message = make_message(wallet_address, nonce)

    with patch.object(config, "CHAIN_RPC_URL", "http://rpc.invalid"), patch(
        "siwe.siwe.check_contract_wallet_signature", return_value=True
    ) as check:
        response = client.post("/auth/verify", json={"message": message, "signature": sign(account, message)})

    assert response.status_code == 200
    assert check.call_args.kwargs["address"] == wallet_address
    assert store.unseal(session_cookie(client)).address == wallet_address


def test_contract_wallet_rejection(client, account):
    wallet_address = Account.create().address
    nonce = _nonce(client)
    message = make_message(wallet_address, nonce)

    with patch.object(config, "CHAIN_RPC_URL", "http://rpc.invalid"), patch(
        "siwe.siwe.check_contract_wallet_signature", return_value=False
    ):
        response = client.post("/auth/verify", json={"message": message, "signature": sign(account, message)})

    assert response.status_code == 422
    assert response.json()["message"] == "Invalid signature."


def test_rpc_outage_fails_generically_and_consumes_nonce(client, store, account):
    nonce = _nonce(client)
    message = make_message(Account.create().address, nonce)
    outage = requests.exceptions.ConnectionError("refused")

    with patch.object(config, "CHAIN_RPC_URL", "http://rpc.invalid"), patch(
        "siwe.siwe.check_contract_wallet_signature", side_effect=outage
    ):
        response = client.post("/auth/verify", json={"message": message, "signature": sign(account, message)})

    assert response.status_code == 500
    assert response.json() == {"ok": False, "message": "Verification failed"}
    assert store.unseal(session_cookie(client)).nonce is None


def test_configuration_error_is_flagged(client):
    with patch.object(config, "SESSION_SECRET", None):
        response = client.get("/auth/nonce")

    assert response.status_code == 500
    body = response.json()
    assert body["ok"] is False
    assert body["isConfigurationError"] is True
    assert "SESSION_SECRET" in body["message"]


def test_invalid_chain_config_is_flagged_on_verify(client, account):
    nonce = _nonce(client)
    message = make_message(account.address, nonce)

    with patch.object(config, "CHAIN_ID", "not-a-number"):
        response = client.post("/auth/verify", json={"message": message, "signature": sign(account, message)})

    assert response.status_code == 500
    assert response.json()["isConfigurationError"] is True


def test_user_endpoint_reflects_sign_in_and_logout(client, account):
    assert client.get("/auth/user").json() == {"ok": True, "user": {"isAuthenticated": False}}

    nonce = _nonce(client)
    message = make_message(account.address, nonce)
    client.post("/auth/verify", json={"message": message, "signature": sign(account, message)})

    user = client.get("/auth/user").json()["user"]
    assert user["isAuthenticated"] is True
    assert user["address"] == account.address
    assert user["chainId"] == 2741
    assert client.get("/auth/me").status_code == 200

    assert client.post("/auth/logout").json() == {"ok": True}
    assert client.get("/auth/user").json()["user"]["isAuthenticated"] is False
    assert client.get("/auth/me").status_code == 401


def test_protected_route_requires_session(client):
    response = client.get("/auth/me")
    assert response.status_code == 401


def _seal_signed_in(client, store, account, expiration_time):
    data = SessionData(isAuthenticated=True, address=account.address, chainId=2741, expirationTime=expiration_time)
    client.cookies.set(config.SESSION_COOKIE_NAME, store.seal(data))


def test_session_past_expiration_is_not_authenticated(client, store, account):
    _seal_signed_in(client, store, account, in_minutes(-1).isoformat().replace("+00:00", "Z"))

    assert client.get("/auth/user").json() == {"ok": True, "user": {"isAuthenticated": False}}
    assert client.get("/auth/me").status_code == 401


def test_session_with_unreadable_expiration_is_not_authenticated(client, store, account):
    _seal_signed_in(client, store, account, "not-a-timestamp")

    assert client.get("/auth/user").json() == {"ok": True, "user": {"isAuthenticated": False}}
    assert client.get("/auth/me").status_code == 401


def test_session_before_expiration_is_authenticated(client, store, account):
    _seal_signed_in(client, store, account, in_minutes(30).isoformat().replace("+00:00", "Z"))

    assert client.get("/auth/user").json()["user"]["isAuthenticated"] is True
    assert client.get("/auth/me").json()["address"] == account.address
