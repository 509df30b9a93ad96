import hashlib
import json
import logging
import time
from typing import Optional

from fastapi import Request, Response
from jose import jwe
from jose.exceptions import JOSEError
from pydantic import ValidationError

from .. import config
from ..models.auth_models import SessionData

logger = logging.getLogger(__name__)


class Session:
    """A loaded session record. Mutate ``data`` then call ``save`` on the outgoing response."""

    def __init__(self, store: "SessionStore", data: SessionData):
        self._store = store
        self.data = data

    def save(self, response: Response) -> None:
        self._store.persist(self, response)

    def destroy(self, response: Response) -> None:
        self.data = SessionData()
        self._store.clear(response)


class SessionStore:
    """
    Encrypted, client-held session records.

    The record is serialised to JSON, stamped with its issue time and sealed
    as a compact JWE (``dir`` / ``A256GCM``) under a key derived from the
    server secret. Unreadable or stale records load as an empty session.
    """

    def __init__(self, password: str, cookie_name: str, ttl_seconds: int, secure: bool = False):
        self.cookie_name = cookie_name
        self.ttl_seconds = ttl_seconds
        self.secure = secure
        self._key = hashlib.sha256(password.encode("utf-8")).digest()

    def seal(self, data: SessionData, issued_at: Optional[int] = None) -> str:
        payload = {
            "iat": int(time.time()) if issued_at is None else issued_at,
            "data": data.model_dump(exclude_none=True),
        }
        token = jwe.encrypt(json.dumps(payload).encode("utf-8"), self._key, algorithm="dir", encryption="A256GCM")
        return token.decode("ascii") if isinstance(token, bytes) else token

    def unseal(self, token: str) -> SessionData:
        try:
            payload = json.loads(jwe.decrypt(token, self._key))
        except (JOSEError, ValueError) as e:
            logger.debug(f"Discarding unreadable session cookie: {e}")
            return SessionData()

        issued_at = payload.get("iat")
        if not isinstance(issued_at, int) or time.time() - issued_at > self.ttl_seconds:
            logger.debug("Discarding expired session cookie.")
            return SessionData()

        try:
            return SessionData(**payload.get("data", {}))
        except ValidationError as e:
            logger.warning(f"Discarding session cookie with invalid contents: {e}")
            return SessionData()

    def load(self, request: Request) -> Session:
        token = request.cookies.get(self.cookie_name)
        data = self.unseal(token) if token else SessionData()
        return Session(self, data)

    def persist(self, session: Session, response: Response) -> None:
        response.set_cookie(
            self.cookie_name,
            self.seal(session.data),
            max_age=self.ttl_seconds,
            httponly=True,
            secure=self.secure,
            samesite="lax",
            path="/",
        )

    def clear(self, response: Response) -> None:
        response.delete_cookie(self.cookie_name, path="/", secure=self.secure, httponly=True, samesite="lax")


def get_session_store() -> SessionStore:
    """Builds the store from configuration. Raises SiweConfigurationError on a bad secret."""
    options = config.get_session_options()
    return SessionStore(
        password=options["password"],
        cookie_name=options["cookie_name"],
        ttl_seconds=options["ttl_seconds"],
        secure=options["secure"],
    )
