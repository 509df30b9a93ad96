import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict

import requests
from siwe import SiweMessage
from web3 import Web3

from ..errors import TransientError

logger = logging.getLogger(__name__)


class AuthRequestError(Exception):
    """The auth endpoint answered with an error payload."""

    def __init__(self, status_code: int | None, payload: Any = None):
        self.status_code = status_code
        self.payload = payload
        message = payload.get("message") if isinstance(payload, dict) else None
        super().__init__(message or f"Auth request failed with status {status_code}")

    @property
    def is_configuration_error(self) -> bool:
        return isinstance(self.payload, dict) and bool(self.payload.get("isConfigurationError"))


def _format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def build_siwe_message(
    address: str,
    chain_id: int,
    nonce: str,
    domain: str,
    uri: str,
    statement: str | None = "Sign in with Ethereum.",
    issued_at: datetime | None = None,
    expiration_time: datetime | None = None,
) -> str:
    """Prepares the EIP-4361 text a wallet signs for ``POST /auth/verify``."""
    fields: Dict[str, Any] = {
        "domain": domain,
        "address": Web3.to_checksum_address(address),
        "uri": uri,
        "version": "1",
        "chain_id": chain_id,
        "nonce": nonce,
        "issued_at": _format_timestamp(issued_at or datetime.now(timezone.utc)),
    }
    if statement:
        fields["statement"] = statement
    if expiration_time:
        fields["expiration_time"] = _format_timestamp(expiration_time)
    return SiweMessage(**fields).prepare_message()


class AuthClient:
    """
    Client for the ``/auth`` endpoints. The requests session keeps the
    encrypted session cookie between calls.

    Reads (nonce, user) turn network failures into TransientError so the
    identity queries can retry them. Sign-in is never retried: a failed
    attempt has already consumed the nonce and must be resubmitted by the user.
    """

    def __init__(self, base_url: str, timeout: float = 10, session: requests.Session | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.http = session or requests.Session()

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    @staticmethod
    def _payload(response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return response.text

    def _read(self, method: str, path: str) -> requests.Response:
        try:
            response = self.http.request(method, self._url(path), timeout=self.timeout)
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            logger.warning(f"Network error calling {path}: {type(e).__name__}: {e}")
            raise TransientError(str(e)) from e
        if response.status_code >= 500 and not self._is_configuration_error(response):
            raise TransientError(f"{path} returned {response.status_code}")
        if not response.ok:
            raise AuthRequestError(response.status_code, self._payload(response))
        return response

    def _is_configuration_error(self, response: requests.Response) -> bool:
        payload = self._payload(response)
        return isinstance(payload, dict) and bool(payload.get("isConfigurationError"))

    def get_nonce(self) -> str:
        return self._read("GET", "/auth/nonce").text

    def fetch_user(self) -> Dict[str, Any]:
        return self._read("GET", "/auth/user").json()

    def sign_in(self, message: str, signature: str) -> Dict[str, Any]:
        response = self.http.post(
            self._url("/auth/verify"),
            json={"message": message, "signature": signature},
            timeout=self.timeout,
        )
        payload = self._payload(response)
        if not response.ok or not isinstance(payload, dict) or not payload.get("ok"):
            logger.info(f"Sign-in rejected with status {response.status_code}: {payload}")
            raise AuthRequestError(response.status_code, payload)
        logger.info("Sign-in accepted.")
        return payload

    def sign_out(self) -> None:
        response = self.http.post(self._url("/auth/logout"), timeout=self.timeout)
        if not response.ok:
            raise AuthRequestError(response.status_code, self._payload(response))

    # --- async adapters for the identity queries ---
    async def fetch_user_async(self) -> Dict[str, Any]:
        return await asyncio.to_thread(self.fetch_user)

    async def get_nonce_async(self) -> str:
        return await asyncio.to_thread(self.get_nonce)

    async def sign_in_async(self, message: str, signature: str) -> Dict[str, Any]:
        return await asyncio.to_thread(self.sign_in, message, signature)
