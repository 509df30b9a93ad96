import os
from dotenv import load_dotenv

from .errors import SiweConfigurationError

load_dotenv()

# Session cookie (encrypted, client-held)
SESSION_SECRET = os.getenv("SESSION_SECRET")
SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "siwe-session")
SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "false").lower() in ("1", "true", "yes")
SESSION_MIN_SECRET_LENGTH = 32

try:
    SESSION_TTL_SECONDS = int(os.getenv("SESSION_TTL_SECONDS", str(60 * 60 * 24 * 7)))
except ValueError:
    print("Warning: Invalid SESSION_TTL_SECONDS in .env file. Defaulting to 7 days.")
    SESSION_TTL_SECONDS = 60 * 60 * 24 * 7

# Target chain (Abstract mainnet by default)
CHAIN_ID = os.getenv("CHAIN_ID", "2741")
CHAIN_RPC_URL = os.getenv("CHAIN_RPC_URL", "https://api.mainnet.abs.xyz")

# Expected Frontend Origin (for SIWE domain validation)
EXPECTED_DOMAIN = os.getenv("EXPECTED_DOMAIN", "localhost:3000")

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]

# --- Onboarding gate ---
try:
    ONBOARDING_SETTLE_DELAY_SECONDS = float(os.getenv("ONBOARDING_SETTLE_DELAY_SECONDS", "0.5"))
except ValueError:
    print("Warning: Invalid ONBOARDING_SETTLE_DELAY_SECONDS in .env file. Defaulting to 0.5.")
    ONBOARDING_SETTLE_DELAY_SECONDS = 0.5

# Identity reads: retry with exponential backoff capped at a maximum delay
try:
    IDENTITY_RETRY_ATTEMPTS = int(os.getenv("IDENTITY_RETRY_ATTEMPTS", "3"))
    IDENTITY_RETRY_BASE_DELAY_SECONDS = float(os.getenv("IDENTITY_RETRY_BASE_DELAY_SECONDS", "1"))
    IDENTITY_RETRY_MAX_DELAY_SECONDS = float(os.getenv("IDENTITY_RETRY_MAX_DELAY_SECONDS", "30"))
except ValueError:
    print("Warning: Invalid IDENTITY_RETRY_* values in .env file. Using defaults.")
    IDENTITY_RETRY_ATTEMPTS = 3
    IDENTITY_RETRY_BASE_DELAY_SECONDS = 1.0
    IDENTITY_RETRY_MAX_DELAY_SECONDS = 30.0

# Basic validation
if not SESSION_SECRET:
    print("Warning: SESSION_SECRET not found in .env file. Authentication will fail.")
elif len(SESSION_SECRET) < SESSION_MIN_SECRET_LENGTH:
    print(f"Warning: SESSION_SECRET is shorter than {SESSION_MIN_SECRET_LENGTH} characters. Authentication will fail.")
if not CHAIN_RPC_URL:
    print("Warning: CHAIN_RPC_URL not found in .env file. Contract wallet signatures cannot be verified.")


def get_session_options() -> dict:
    """Session cookie settings. Raises SiweConfigurationError when the secret is unusable."""
    if not SESSION_SECRET:
        raise SiweConfigurationError("SESSION_SECRET is not set.")
    if len(SESSION_SECRET) < SESSION_MIN_SECRET_LENGTH:
        raise SiweConfigurationError(
            f"SESSION_SECRET must be at least {SESSION_MIN_SECRET_LENGTH} characters long."
        )
    return {
        "password": SESSION_SECRET,
        "cookie_name": SESSION_COOKIE_NAME,
        "ttl_seconds": SESSION_TTL_SECONDS,
        "secure": SESSION_COOKIE_SECURE,
    }


def get_chain_config() -> dict:
    """Target chain settings. Raises SiweConfigurationError when the chain id or domain is unusable."""
    try:
        chain_id = int(CHAIN_ID)
    except (TypeError, ValueError):
        raise SiweConfigurationError(f"CHAIN_ID must be an integer, got {CHAIN_ID!r}.")
    if chain_id <= 0:
        raise SiweConfigurationError("CHAIN_ID must be positive.")
    if not EXPECTED_DOMAIN:
        raise SiweConfigurationError("EXPECTED_DOMAIN is not set.")
    return {
        "chain_id": chain_id,
        "rpc_url": CHAIN_RPC_URL,
        "domain": EXPECTED_DOMAIN,
    }
