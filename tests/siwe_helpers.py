from datetime import datetime, timedelta, timezone

from eth_account.messages import encode_defunct

from identity_gate import config
from identity_gate.services.auth_client import build_siwe_message


def sign(account, message: str) -> str:
    signed = account.sign_message(encode_defunct(text=message))
    return "0x" + bytes(signed.signature).hex()


def make_message(address: str, nonce: str, chain_id: int = 2741, domain: str = "localhost:3000", **kwargs) -> str:
    return build_siwe_message(
        address=address,
        chain_id=chain_id,
        nonce=nonce,
        domain=domain,
        uri=f"http://{domain}",
        **kwargs,
    )


def in_minutes(minutes: int) -> datetime:
    return datetime.now(timezone.utc) + timedelta(minutes=minutes)


def session_cookie(client) -> str | None:
    return client.cookies.get(config.SESSION_COOKIE_NAME)
