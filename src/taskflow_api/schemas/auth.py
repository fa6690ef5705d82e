"""
Schemas for login + access and refresh tokens
"""

from pydantic import BaseModel, Field, SecretStr

from taskflow_api.schemas.users import UserResponse


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=50)
    password: SecretStr = Field(..., min_length=1, max_length=100)


class AuthResponse(BaseModel):
    """Returned by login, register and refresh."""

    access_token: str = Field(..., description="Bearer access token for authentication")
    refresh_token: str = Field(..., description="Bearer refresh token for obtaining new access tokens")
    token_type: str = Field("Bearer", description="Always 'Bearer'")
    expires_in: int = Field(..., description="Lifetime of the access token in seconds")
    user: UserResponse


class RefreshTokenRequest(BaseModel):
    """Request model for refresh token endpoint."""

    refresh_token: str = Field(..., description="Bearer refresh token for obtaining a new token pair")


class LogoutRequest(BaseModel):
    refresh_token: str | None = Field(None, description="Refresh token to revoke together with the access token")


class PasswordReset(BaseModel):
    """Set a new password with a token from crud.auth.request_password_reset."""

    token: str = Field(..., description="Password reset token")
    new_password: SecretStr = Field(..., min_length=8, max_length=100)
