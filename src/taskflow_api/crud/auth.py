"""
Authentication-related operations: login, registration, token refresh/logout and account management.

Token handling is delegated to the TokenService and lockout handling to the LoginThrottle,
both are passed in by the caller (see deps.py) so they can share a single ExpiringStore.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from taskflow_api.crud.users import (
    create_user,
    get_user_by_email,
    get_user_by_username,
    get_user_by_username_or_raise,
    set_user_enabled,
)
from taskflow_api.exceptions import AuthenticationError, TokenError
from taskflow_api.models.users import UserDB
from taskflow_api.schemas.auth import AuthResponse, LoginRequest, PasswordReset
from taskflow_api.schemas.users import UserCreate, UserPasswordUpdate, UserResponse
from taskflow_api.security import TokenData, TokenService, TokenType, get_password_hash, verify_password
from taskflow_api.throttling import LoginThrottle

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS_MSG = "Invalid username or password"
INVALID_RESET_TOKEN_MSG = "Invalid or expired password reset token"


async def login(
    db: AsyncSession, token_service: TokenService, throttle: LoginThrottle, login_data: LoginRequest
) -> AuthResponse:
    """
    Authenticate a user by username and password and issue a new token pair.

    A locked account is rejected before the credentials are even looked at.
    Unknown usernames and wrong passwords count towards the lockout and give the same error message.
    Raises AuthenticationError if authentication fails.
    """
    username = login_data.username
    logger.debug(f"Attempting login for username: {username}")

    if await throttle.is_locked(username):
        raise AuthenticationError(message="Account is temporarily locked due to multiple failed attempts")

    user = await get_user_by_username(db=db, username=username)
    if not user:
        await throttle.record_failed_attempt(username)
        raise AuthenticationError(message=INVALID_CREDENTIALS_MSG)

    if not user.enabled:
        raise AuthenticationError(message="Account is disabled")

    if not verify_password(login_data.password.get_secret_value(), user.hashed_password):
        await throttle.record_failed_attempt(username)
        raise AuthenticationError(message=INVALID_CREDENTIALS_MSG)

    await throttle.reset_failed_attempts(username)
    logger.info(f"User {username} logged in successfully")
    return _build_auth_response(token_service=token_service, user=user)


async def register(db: AsyncSession, token_service: TokenService, user_data: UserCreate) -> AuthResponse:
    """Create a new user (USER role if none given) and log them straight in."""
    logger.debug(f"Registering new user: {user_data.username}")
    user = await create_user(db=db, user_data=user_data)
    logger.info(f"User {user.username} registered and logged in successfully")
    return _build_auth_response(token_service=token_service, user=user)


async def refresh_tokens(db: AsyncSession, token_service: TokenService, refresh_token: str) -> AuthResponse:
    """
    Exchange a valid refresh token for a new token pair.

    The old refresh token is claimed (blacklisted) before the new pair is issued,
    so when the same token is sent concurrently only one request gets a new pair.
    Raises TokenError if the token is invalid/expired/revoked or is not a refresh token.
    """
    if not await token_service.validate(refresh_token):
        raise TokenError("Invalid refresh token")

    claims = token_service.extract_claims(refresh_token)
    if claims.get("type") != TokenType.REFRESH:
        raise TokenError("Invalid refresh token")

    username = claims["sub"]
    user = await get_user_by_username_or_raise(db=db, username=username)
    if not user.enabled:
        raise AuthenticationError(message="Account is disabled")

    if not await token_service.invalidate(refresh_token):
        logger.warning(f"Refresh token for user {username} was already used")
        raise TokenError("Invalid refresh token")

    logger.info(f"Token refreshed successfully for user: {username}")
    return _build_auth_response(token_service=token_service, user=user)


async def logout(token_service: TokenService, access_token: str, refresh_token: str | None = None) -> None:
    """
    Blacklist the access token, and the refresh token too if given.

    A refresh token issued to someone other than the owner of the access token is left alone.
    """
    owner = None
    if access_token:
        owner = _subject_or_none(token_service=token_service, token=access_token)
        await token_service.invalidate(access_token)

    if refresh_token:
        refresh_owner = _subject_or_none(token_service=token_service, token=refresh_token)
        if refresh_owner is not None and refresh_owner == owner:
            await token_service.invalidate(refresh_token)
        else:
            logger.warning(f"Refresh token given at logout does not belong to {owner}, not revoking it")
    logger.info("User logged out successfully")


def _subject_or_none(token_service: TokenService, token: str) -> str | None:
    try:
        return token_service.extract_username(token)
    except TokenError:
        return None


async def request_password_reset(db: AsyncSession, token_service: TokenService, email: str) -> TokenData | None:
    """
    Issue a password reset token for the account with this email.

    Delivering the token (e.g. a link in an email) is up to the caller.
    Returns None for unknown emails and disabled accounts, callers should not tell the requester which it was.
    """
    user = await get_user_by_email(db=db, email=email)
    if not user or not user.enabled:
        logger.info(f"A password reset was requested for '{email}' but no token issued. User exists: {bool(user)}")
        return None

    logger.info(f"Password reset token issued for user: {user.username}")
    return token_service.issue_password_reset_token(user)


async def reset_password(db: AsyncSession, token_service: TokenService, reset_data: PasswordReset) -> UserDB:
    """
    Set a new password using a password reset token. The token can only be used once.

    Raises TokenError if the token is invalid, expired, already used or not a password reset token.
    """
    token = reset_data.token
    if not await token_service.validate(token):
        raise TokenError(INVALID_RESET_TOKEN_MSG)

    claims = token_service.extract_claims(token)
    if claims.get("type") != TokenType.PASSWORD_RESET:
        raise TokenError(INVALID_RESET_TOKEN_MSG)

    user = await get_user_by_username(db=db, username=claims["sub"])
    if not user or not user.enabled:
        raise TokenError(INVALID_RESET_TOKEN_MSG)

    if not await token_service.invalidate(token):
        raise TokenError(INVALID_RESET_TOKEN_MSG)

    user.hashed_password = get_password_hash(reset_data.new_password)
    await db.commit()
    await db.refresh(user)
    logger.info(f"User {user.username} has reset their password.")
    return user


async def change_password(db: AsyncSession, username: str, password_data: UserPasswordUpdate) -> UserDB:
    """
    Raises AuthenticationError if current_password is wrong.

    Tokens issued before the change remain valid until they expire or are logged out.
    """
    user = await get_user_by_username_or_raise(db=db, username=username)
    if not verify_password(password_data.current_password.get_secret_value(), user.hashed_password):
        raise AuthenticationError(message="Current password is incorrect")

    user.hashed_password = get_password_hash(password_data.new_password)
    await db.commit()
    await db.refresh(user)
    logger.info(f"Password changed successfully for user: {username}")
    return user


async def verify_user_password(db: AsyncSession, username: str, password: str) -> bool:
    """Raises NotFoundError if the user does not exist. Does not count towards lockout."""
    user = await get_user_by_username_or_raise(db=db, username=username)
    return verify_password(password, user.hashed_password)


async def enable_account(db: AsyncSession, username: str) -> UserDB:
    user = await get_user_by_username_or_raise(db=db, username=username)
    user = await set_user_enabled(db=db, user=user, enabled=True)
    logger.info(f"Account enabled: {username}")
    return user


async def disable_account(db: AsyncSession, username: str) -> UserDB:
    """Disabled users cannot log in or refresh, already issued access tokens are rejected by deps.get_current_user."""
    user = await get_user_by_username_or_raise(db=db, username=username)
    user = await set_user_enabled(db=db, user=user, enabled=False)
    logger.info(f"Account disabled: {username}")
    return user


async def is_account_enabled(db: AsyncSession, username: str) -> bool:
    user = await get_user_by_username_or_raise(db=db, username=username)
    return user.enabled


async def lock_account(throttle: LoginThrottle, username: str) -> None:
    await throttle.lock_account(username)


async def unlock_account(throttle: LoginThrottle, username: str) -> None:
    await throttle.unlock_account(username)


async def is_account_locked(throttle: LoginThrottle, username: str) -> bool:
    return await throttle.is_locked(username)


async def get_failed_attempts(throttle: LoginThrottle, username: str) -> int:
    return await throttle.get_failed_attempts(username)


async def reset_failed_attempts(throttle: LoginThrottle, username: str) -> None:
    await throttle.reset_failed_attempts(username)


def _build_auth_response(token_service: TokenService, user: UserDB) -> AuthResponse:
    access_token = token_service.issue_access_token(user)
    refresh_token = token_service.issue_refresh_token(user)
    return AuthResponse(
        access_token=access_token.token,
        refresh_token=refresh_token.token,
        token_type="Bearer",
        expires_in=token_service.access_token_expires_seconds,
        user=UserResponse.model_validate(user),
    )
