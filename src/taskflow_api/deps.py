"""
Dependencies for FastAPI routes.

The TokenService and LoginThrottle are created once on startup (see taskflow_api.py lifespan)
and stored on app.state, the dependencies here just hand them out.

Several of the dependencies rely on a logged in user, handled by get_current_user.
The dependencies that depend on this can use get_current_user as a sub-dependency,
so all checks in the sub-dependancy function are ran when you use this dependency.
(see here: https://fastapi.tiangolo.com/yo/advanced/security/oauth2-scopes/#dependency-tree-and-scopes)
"""

import logging
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow_api.crud.users import get_user_by_username
from taskflow_api.db import get_db
from taskflow_api.exceptions import AccessDeniedError, AuthenticationError
from taskflow_api.models.users import Role, UserDB
from taskflow_api.security import TokenService, TokenType
from taskflow_api.throttling import LoginThrottle

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def get_login_throttle(request: Request) -> LoginThrottle:
    return request.app.state.login_throttle


async def get_current_user(
    token: Annotated[str, Depends(oauth2_scheme)],
    token_service: Annotated[TokenService, Depends(get_token_service)],
    db: AsyncSession = Depends(get_db),
) -> UserDB:
    """
    Get current user from JWT Access token.

    We should not be specific about why/if credentials are invalid.
    """
    if not await token_service.validate(token):
        raise AuthenticationError("Authentication required")

    claims = token_service.extract_claims(token)
    if claims.get("type") != TokenType.ACCESS:
        raise AuthenticationError("Authentication required")

    user = await get_user_by_username(db=db, username=claims["sub"])
    if not user or not user.enabled:
        raise AuthenticationError("Account does not exist or is disabled")
    return user


async def get_current_admin_user(current_user: Annotated[UserDB, Depends(get_current_user)]) -> UserDB:
    """
    Verify current user has admin access.

    Roles are read from the db, not from the token claims, so removing the role takes effect straight away here.
    """
    if not current_user.has_role(Role.ADMIN):
        raise AccessDeniedError("Admin access required")
    return current_user
