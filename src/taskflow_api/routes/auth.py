"""
Authentication endpoints for login, registration, token refresh and logout.

All endpoints return/accept bearer tokens, clients send the access token in the
Authorization header and swap the refresh token for a new pair at /refresh.
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow_api.crud.auth import login, logout, refresh_tokens, register
from taskflow_api.db import get_db
from taskflow_api.deps import get_current_user, get_login_throttle, get_token_service, oauth2_scheme
from taskflow_api.models.users import UserDB
from taskflow_api.schemas.auth import AuthResponse, LoginRequest, LogoutRequest, RefreshTokenRequest
from taskflow_api.schemas.users import UserCreate, UserResponse
from taskflow_api.security import TokenService
from taskflow_api.throttling import LoginThrottle

logger = logging.getLogger(__name__)

auth_router = APIRouter()


@auth_router.post("/login", response_model=AuthResponse, status_code=status.HTTP_200_OK)
async def login_endpoint(
    login_data: LoginRequest,
    db: AsyncSession = Depends(get_db),
    token_service: TokenService = Depends(get_token_service),
    throttle: LoginThrottle = Depends(get_login_throttle),
):
    """
    Login endpoint to authenticate a user and give them an access + refresh token.

    Repeated failed logins lock the account for a while, see throttling.py.
    """
    return await login(db=db, token_service=token_service, throttle=throttle, login_data=login_data)


@auth_router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register_endpoint(
    user_data: UserCreate,
    db: AsyncSession = Depends(get_db),
    token_service: TokenService = Depends(get_token_service),
):
    """Register a new user, who is logged in straight away."""
    return await register(db=db, token_service=token_service, user_data=user_data)


@auth_router.post("/refresh", response_model=AuthResponse, status_code=status.HTTP_200_OK)
async def refresh_token_endpoint(
    refresh_request: RefreshTokenRequest,
    db: AsyncSession = Depends(get_db),
    token_service: TokenService = Depends(get_token_service),
):
    """
    Refresh token endpoint.

    Gives a new access + refresh token pair, the refresh token sent can not be used again.
    """
    return await refresh_tokens(db=db, token_service=token_service, refresh_token=refresh_request.refresh_token)


@auth_router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout_endpoint(
    logout_request: LogoutRequest | None = None,
    access_token: str = Depends(oauth2_scheme),
    current_user: UserDB = Depends(get_current_user),
    token_service: TokenService = Depends(get_token_service),
):
    """
    Revoke the access token used for this request.

    A refresh token sent in the body is revoked too, but only when it belongs to the same user.
    """
    refresh_token = logout_request.refresh_token if logout_request else None
    await logout(token_service=token_service, access_token=access_token, refresh_token=refresh_token)
    logger.info(f"User {current_user.username} logged out")


@auth_router.get("/whoami", status_code=status.HTTP_200_OK, response_model=UserResponse)
async def whoami_endpoint(current_user: UserDB = Depends(get_current_user)):
    """Endpoint to return current logged in user's details."""
    return UserResponse.model_validate(current_user)
