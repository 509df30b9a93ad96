"""
Error taxonomy shared by the auth endpoints and the onboarding gate.

- SiweConfigurationError: deployment problem (secret, chain config). Surfaced
  to clients with an ``isConfigurationError`` flag.
- SiweValidationError and subclasses: user-recoverable, carry the public message.
- TransientError: network/timeout on identity reads, retried with backoff.
Anything else is unexpected and mapped to a generic response.
"""


class SiweConfigurationError(Exception):
    """Missing or invalid server secret / chain configuration."""


class SiweValidationError(Exception):
    public_message = "Verification failed"

    def __init__(self, detail: str | None = None):
        super().__init__(detail or self.public_message)
        self.detail = detail or self.public_message


class MalformedMessageError(SiweValidationError):
    public_message = "Verification failed"


class InvalidChainError(SiweValidationError):
    public_message = "Invalid chain ID."


class DomainMismatchError(SiweValidationError):
    public_message = "Invalid domain."


class InvalidNonceError(SiweValidationError):
    public_message = "Invalid nonce."


class ExpiredMessageError(SiweValidationError):
    public_message = "Message expired."


class InvalidSignatureError(SiweValidationError):
    public_message = "Invalid signature."


class TransientError(Exception):
    """Network or timeout failure that is safe to retry."""
