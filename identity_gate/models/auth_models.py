from pydantic import BaseModel, Field, model_validator
from typing import Optional


class SessionData(BaseModel):
    """Contents of the encrypted session cookie."""
    nonce: Optional[str] = Field(None, description="Outstanding SIWE nonce, cleared by the first verification attempt.")
    isAuthenticated: Optional[bool] = None
    address: Optional[str] = Field(None, pattern=r"^0x[0-9a-fA-F]{40}$")
    chainId: Optional[int] = None
    expirationTime: Optional[str] = Field(None, description="ISO-8601 expiration copied from the signed message.")

    @model_validator(mode="after")
    def _authenticated_requires_identity(self):
        if self.isAuthenticated and (self.address is None or self.chainId is None):
            raise ValueError("an authenticated session must carry address and chainId")
        return self


class VerifyRequest(BaseModel):
    message: str = Field(..., description="The EIP-4361 message text signed by the wallet.")
    signature: str = Field(..., description="The hex-encoded signature provided by the user's wallet.")


class AuthResponse(BaseModel):
    ok: bool
    message: Optional[str] = None
    isConfigurationError: Optional[bool] = None


class SessionUser(BaseModel):
    isAuthenticated: bool = False
    address: Optional[str] = None
    chainId: Optional[int] = None
    expirationTime: Optional[str] = None


class UserResponse(BaseModel):
    ok: bool = True
    user: SessionUser
