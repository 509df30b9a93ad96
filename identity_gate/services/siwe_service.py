from datetime import datetime, timezone
from typing import Callable
import logging

import requests
from siwe import (
    DomainMismatch,
    ExpiredMessage,
    InvalidSignature,
    NonceMismatch,
    NotYetValidMessage,
    SiweMessage,
    VerificationError,
    generate_nonce,
)
from siwe.siwe import datetime_from_iso8601_string
from web3 import Web3

from .. import config
from ..errors import (
    DomainMismatchError,
    ExpiredMessageError,
    InvalidChainError,
    InvalidNonceError,
    InvalidSignatureError,
    MalformedMessageError,
    SiweValidationError,
    TransientError,
)
from ..models.auth_models import SessionData
from .chain_service import get_provider
from .session_store import Session

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_session_active(data: SessionData, now: datetime | None = None) -> bool:
    """True when the session is authenticated and its signed expiration (if any) has not passed."""
    if not data.isAuthenticated:
        return False
    if data.expirationTime:
        try:
            return datetime_from_iso8601_string(data.expirationTime) > (now or _utcnow())
        except (ValueError, TypeError):
            logger.warning(f"Session carries unusable expirationTime: {data.expirationTime!r}")
            return False
    return True


def _mask(value: str | None) -> str:
    if not value:
        return "<none>"
    return f"{value[:4]}…" if len(value) > 4 else "…"


class AuthSessionManager:
    """
    Sign-In With Ethereum challenge/response bound to a session record.

    Exactly one nonce is outstanding per session. Every verification attempt
    consumes it before anything else is checked, so a signed message can be
    presented at most once whatever the outcome.
    """

    def __init__(
        self,
        chain_id: int,
        domain: str,
        provider: Web3.HTTPProvider | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.chain_id = chain_id
        self.domain = domain
        self.provider = provider
        self.clock = clock

    @classmethod
    def from_config(cls) -> "AuthSessionManager":
        chain = config.get_chain_config()
        provider = get_provider(chain["rpc_url"])
        if provider is None:
            logger.warning("CHAIN_RPC_URL not configured; contract wallet signatures cannot be verified.")
        return cls(chain_id=chain["chain_id"], domain=chain["domain"], provider=provider)

    def generate_challenge(self, session: Session) -> str:
        nonce = generate_nonce()
        session.data.nonce = nonce
        logger.info(f"Issued SIWE nonce {_mask(nonce)}")
        return nonce

    def verify_response(self, session: Session, message: str, signature: str) -> SiweMessage:
        """
        Verifies ``signature`` over ``message`` and marks the session authenticated.

        Raises a SiweValidationError subclass for any rejected attempt and
        TransientError when a contract-wallet check cannot reach the chain.
        The session's nonce is cleared in every case.
        """
        expected_nonce = session.data.nonce
        session.data.nonce = None

        try:
            siwe_message = SiweMessage.from_message(message=message)
        except Exception as e:
            logger.warning(f"SIWE message could not be parsed: {type(e).__name__}: {e}")
            raise MalformedMessageError(str(e)) from e

        # Checked before any signature work so a wrong-network message never reaches the RPC.
        if siwe_message.chain_id != self.chain_id:
            logger.warning(f"SIWE chain mismatch: expected {self.chain_id}, got {siwe_message.chain_id}")
            raise InvalidChainError()

        if not expected_nonce:
            logger.warning(f"SIWE nonce {_mask(siwe_message.nonce)} presented with no nonce outstanding")
            raise InvalidNonceError()

        try:
            siwe_message.verify(
                signature,
                domain=self.domain,
                nonce=expected_nonce,
                timestamp=self.clock(),
                provider=self.provider,
            )
        except DomainMismatch:
            logger.warning(f"SIWE domain mismatch: expected '{self.domain}', got '{siwe_message.domain}'")
            raise DomainMismatchError()
        except NonceMismatch:
            logger.warning(
                f"SIWE nonce mismatch: got {_mask(siwe_message.nonce)}, expected {_mask(expected_nonce)}"
            )
            raise InvalidNonceError()
        except ExpiredMessage:
            raise ExpiredMessageError("message has expired")
        except NotYetValidMessage:
            raise ExpiredMessageError("message is not yet valid")
        except InvalidSignature:
            logger.warning(f"SIWE signature rejected for address: {siwe_message.address}")
            raise InvalidSignatureError()
        except VerificationError as e:
            raise SiweValidationError(type(e).__name__) from e
        except requests.exceptions.RequestException as e:
            logger.warning(f"RPC unavailable during contract wallet check for {siwe_message.address}: {e}")
            raise TransientError(str(e)) from e
        except ValueError as e:
            # Signatures that are not hex never reach the contract wallet check.
            logger.warning(f"SIWE signature unreadable for address {siwe_message.address}: {e}")
            raise InvalidSignatureError(str(e)) from e

        session.data.isAuthenticated = True
        session.data.address = siwe_message.address
        session.data.chainId = siwe_message.chain_id
        session.data.expirationTime = (
            str(siwe_message.expiration_time) if siwe_message.expiration_time else None
        )
        logger.info(f"SIWE signature verified successfully for address: {siwe_message.address}")
        return siwe_message
