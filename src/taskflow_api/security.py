"""
Security utilities for handling passwords and JSON Web Tokens (JWTs).

FastAPI recommend using pwdlib and argon2 for password hashing (https://fastapi.tiangolo.com/tutorial/security/oauth2-jwt/)

Tokens are self contained, so validating one does not need a db lookup.
The exception is revocation (logout, refresh token rotation), which is handled by
a blacklist held in an ExpiringStore. Blacklist entries expire together with the token they block.

Note on staleness: access tokens embed the user's email and roles at issue time.
If a role is removed from a user, tokens already issued keep the old roles until they expire.
"""

import hashlib
import logging
import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import jwt
from pwdlib import PasswordHash
from pwdlib.hashers.argon2 import Argon2Hasher
from pydantic import SecretStr

from taskflow_api.exceptions import TokenError
from taskflow_api.kv_store import ExpiringStore

if TYPE_CHECKING:
    from taskflow_api.models.users import UserDB

logger = logging.getLogger(__name__)

password_hash = PasswordHash(hashers=[Argon2Hasher()])


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return password_hash.verify(plain_password, hashed_password)


def get_password_hash(password: SecretStr) -> str:
    return password_hash.hash(password.get_secret_value())


class TokenType(StrEnum):
    """Types of JWT tokens, stored in the "type" claim so one kind cannot be used as another."""

    ACCESS = "access"
    REFRESH = "refresh"
    PASSWORD_RESET = "password_reset"


@dataclass
class TokenData:
    """Returned when creating a JWT."""

    token: str
    expires_at: int


BLACKLIST_PREFIX = "blacklisted_token:"


class TokenService:
    """
    Issues, validates and revokes signed bearer tokens.

    The store is shared by all concurrent requests, the service itself holds no mutable state.
    """

    def __init__(
        self,
        store: ExpiringStore,
        secret_key: SecretStr,
        algorithm: str = "HS512",
        access_token_expires: timedelta = timedelta(hours=24),
        refresh_token_expires: timedelta = timedelta(days=7),
        password_reset_expires: timedelta = timedelta(hours=1),
    ):
        self.store = store
        self._secret_key = secret_key
        self.algorithm = algorithm
        self.token_expires_delta: dict[TokenType, timedelta] = {
            TokenType.ACCESS: access_token_expires,
            TokenType.REFRESH: refresh_token_expires,
            TokenType.PASSWORD_RESET: password_reset_expires,
        }

    @property
    def access_token_expires_seconds(self) -> int:
        return int(self.token_expires_delta[TokenType.ACCESS].total_seconds())

    def issue_access_token(self, user: "UserDB") -> TokenData:
        """Access token with the user's id, email and roles embedded as claims."""
        claims = {
            "userId": str(user.id),
            "email": user.email,
            "roles": sorted(str(role) for role in user.roles),
        }
        return self._create_token(subject=user.username, token_type=TokenType.ACCESS, extra_claims=claims)

    def issue_refresh_token(self, user: "UserDB") -> TokenData:
        """Refresh token, carries no role or email claims."""
        return self._create_token(subject=user.username, token_type=TokenType.REFRESH)

    def issue_password_reset_token(self, user: "UserDB") -> TokenData:
        """Short lived, single use token that lets the holder set a new password (see crud.auth.reset_password)."""
        return self._create_token(subject=user.username, token_type=TokenType.PASSWORD_RESET)

    def _create_token(
        self, subject: str, token_type: TokenType, extra_claims: dict[str, Any] | None = None
    ) -> TokenData:
        """
        Every token gets a "jti" (UUID4) so two tokens issued to the same user
        within the same second are still different strings.
        """
        now = datetime.now(timezone.utc)
        expire = now + self.token_expires_delta[token_type]

        to_encode: dict[str, Any] = {
            "sub": str(subject),
            "iat": now,
            "exp": expire,
            "jti": str(uuid.uuid4()),
            "type": token_type.value,
        }
        if extra_claims:
            to_encode.update(extra_claims)

        encoded_jwt = jwt.encode(to_encode, self._secret_key.get_secret_value(), algorithm=self.algorithm)
        return TokenData(token=encoded_jwt, expires_at=int(expire.timestamp()))

    def _decode(self, token: str, verify_exp: bool = True) -> dict[str, Any]:
        return jwt.decode(
            jwt=token,
            key=self._secret_key.get_secret_value(),
            algorithms=[self.algorithm],
            options={"verify_exp": verify_exp, "require": ["sub", "exp", "iat"]},
        )

    async def validate(self, token: str) -> bool:
        """
        Check token is not blacklisted, well formed, correctly signed and not expired.

        Never raises, all failures give False. The failure kind is logged, but never given back to the caller.
        """
        if not token:
            logger.warning("JWT validation failed: token string is empty")
            return False

        try:
            self._decode(token)
        except jwt.ExpiredSignatureError as e:
            logger.warning(f"JWT validation failed: token is expired: {e}")
            return False
        except jwt.InvalidSignatureError as e:
            logger.warning(f"JWT validation failed: signature does not match: {e}")
            return False
        except (jwt.InvalidAlgorithmError, jwt.InvalidKeyError) as e:
            logger.warning(f"JWT validation failed: token is unsupported: {e}")
            return False
        except jwt.DecodeError as e:
            logger.warning(f"JWT validation failed: token is malformed: {e}")
            return False
        except jwt.InvalidTokenError as e:
            logger.warning(f"JWT validation failed: invalid claims: {e}")
            return False

        if await self.is_blacklisted(token):
            logger.warning("JWT validation failed: token has been invalidated")
            return False

        return True

    def extract_claims(self, token: str) -> dict[str, Any]:
        """Decode a token and return all claims, raises TokenError if it cannot be decoded for any reason."""
        try:
            return self._decode(token)
        except jwt.ExpiredSignatureError as e:
            raise TokenError("Token has expired") from e
        except jwt.PyJWTError as e:
            raise TokenError("Failed to decode token") from e

    def extract_username(self, token: str) -> str:
        """Return the subject (username) of a token, raises TokenError if decoding fails."""
        return self.extract_claims(token)["sub"]

    def is_expired(self, token: str) -> bool:
        """True if the expiry is in the past, or if the token cannot be parsed at all."""
        try:
            payload = self._decode(token, verify_exp=False)
        except jwt.PyJWTError:
            return True
        expires_at = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
        return expires_at < datetime.now(timezone.utc)

    def seconds_until_expiry(self, token: str) -> int:
        """Remaining lifetime of a correctly signed token, 0 if expired or unparseable."""
        try:
            payload = self._decode(token, verify_exp=False)
        except jwt.PyJWTError:
            return 0
        remaining = payload["exp"] - datetime.now(timezone.utc).timestamp()
        return max(math.ceil(remaining), 0)

    async def invalidate(self, token: str) -> bool:
        """
        Blacklist a token until its natural expiry.

        Returns True only for the one call that actually added the token to the blacklist,
        so callers that consume a single use token can claim it atomically.
        Tokens that are already expired or not ours are skipped (False), as validate() rejects them anyway.
        """
        ttl_seconds = self.seconds_until_expiry(token)
        if ttl_seconds <= 0:
            logger.debug("Token already expired or invalid, not adding to blacklist")
            return False
        if not await self.store.set_if_absent(self._blacklist_key(token), "1", ttl_seconds=ttl_seconds):
            logger.debug("Token was already blacklisted")
            return False
        logger.info(f"Token blacklisted for {ttl_seconds} seconds")
        return True

    async def is_blacklisted(self, token: str) -> bool:
        return await self.store.exists(self._blacklist_key(token))

    @staticmethod
    def _blacklist_key(token: str) -> str:
        """Tokens are hashed so the store never holds usable credentials."""
        return BLACKLIST_PREFIX + hashlib.sha256(token.encode("utf-8")).hexdigest()
