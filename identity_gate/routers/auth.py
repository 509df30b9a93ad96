from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse
import logging

from ..errors import (
    MalformedMessageError,
    SiweConfigurationError,
    SiweValidationError,
    TransientError,
)
from ..models.auth_models import AuthResponse, SessionData, SessionUser, UserResponse, VerifyRequest
from ..services.session_store import get_session_store
from ..services.siwe_service import AuthSessionManager, is_session_active

router = APIRouter(
    prefix="/auth",
    tags=["Authentication (SIWE)"],
)

logger = logging.getLogger(__name__)

# Nonce responses are bound to the requesting session and must never be served from a shared cache.
NONCE_CACHE_HEADERS = {"Cache-Control": "private, no-store", "Vary": "Cookie"}


def get_auth_manager() -> AuthSessionManager:
    return AuthSessionManager.from_config()


# --- Helper Functions ---
def _error_response(status_code: int, message: str | None = None, **extra) -> JSONResponse:
    body = AuthResponse(ok=False, message=message, **extra).model_dump(exclude_none=True)
    return JSONResponse(body, status_code=status_code)


def _configuration_error_response(error: SiweConfigurationError) -> JSONResponse:
    logger.error(f"SIWE configuration error: {error}")
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR, str(error), isConfigurationError=True
    )


# --- API Endpoints ---
@router.get("/nonce", response_class=PlainTextResponse)
def get_nonce(request: Request):
    """
    Generates a unique nonce for the client to use in the SIWE message and
    stores it in the caller's session.
    """
    try:
        store = get_session_store()
        manager = get_auth_manager()
        session = store.load(request)
        nonce = manager.generate_challenge(session)
        response = PlainTextResponse(nonce, headers=NONCE_CACHE_HEADERS)
        session.save(response)
        return response
    except SiweConfigurationError as e:
        return _configuration_error_response(e)
    except Exception as e:
        logger.error(f"Unexpected error during nonce generation: {e}", exc_info=True)
        return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR)


@router.post("/verify", response_model=AuthResponse)
def verify_signature(verify_request: VerifyRequest, request: Request):
    """
    Verifies a SIWE message signature against the session's outstanding nonce
    and marks the session authenticated on success.

    - **message**: The EIP-4361 message text signed by the user.
    - **signature**: The hex-encoded signature string.
    """
    try:
        store = get_session_store()
        manager = get_auth_manager()
    except SiweConfigurationError as e:
        return _configuration_error_response(e)

    session = store.load(request)
    try:
        manager.verify_response(session, verify_request.message, verify_request.signature)
        response = JSONResponse(AuthResponse(ok=True).model_dump(exclude_none=True))
    except MalformedMessageError:
        response = _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, MalformedMessageError.public_message)
    except SiweValidationError as ve:
        logger.info(f"SIWE verification rejected ({type(ve).__name__}): {ve.detail}")
        response = _error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, ve.public_message)
    except TransientError as te:
        logger.warning(f"SIWE verification could not reach the chain: {te}")
        response = _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Verification failed")
    except Exception as e:
        logger.error(f"Unexpected error during SIWE verification: {e}", exc_info=True)
        response = _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Verification failed")

    # The nonce was consumed whatever the outcome; persist so the cookie reflects it.
    session.save(response)
    return response


@router.get("/user", response_model=UserResponse, response_model_exclude_none=True)
def get_user(request: Request):
    """Reports the authentication state of the caller's session."""
    try:
        store = get_session_store()
    except SiweConfigurationError as e:
        return _configuration_error_response(e)

    data = store.load(request).data
    if not is_session_active(data):
        return UserResponse(user=SessionUser(isAuthenticated=False))
    return UserResponse(
        user=SessionUser(
            isAuthenticated=True,
            address=data.address,
            chainId=data.chainId,
            expirationTime=data.expirationTime,
        )
    )


@router.post("/logout", response_model=AuthResponse)
def logout(request: Request):
    """Destroys the caller's session record."""
    try:
        store = get_session_store()
    except SiweConfigurationError as e:
        return _configuration_error_response(e)

    session = store.load(request)
    response = JSONResponse(AuthResponse(ok=True).model_dump(exclude_none=True))
    session.destroy(response)
    logger.info("Session destroyed on logout.")
    return response


# --- Secure Dependency for Authenticated Sessions ---
def require_authenticated_session(request: Request) -> SessionData:
    """
    Dependency that loads the session cookie and returns its contents.
    Raises HTTPException 401 if the session is not authenticated or has expired.
    """
    try:
        store = get_session_store()
    except SiweConfigurationError as e:
        logger.error(f"SIWE configuration error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server configuration error.",
        )

    data = store.load(request).data
    if not is_session_active(data):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return data


@router.get("/me", response_model=SessionUser, response_model_exclude_none=True)
def read_current_session(session: SessionData = Depends(require_authenticated_session)):
    """Returns the authenticated identity. Requires a verified session."""
    return SessionUser(
        isAuthenticated=True,
        address=session.address,
        chainId=session.chainId,
        expirationTime=session.expirationTime,
    )
