"""
Login throttling, used to slow down password guessing against a single account.

State per username is kept in an ExpiringStore under two independent keys:
- failed_attempts:<username>  counter, TTL reset on every failed attempt
- locked_account:<username>   lock marker, TTL = lock duration

The keys are independent, so an admin can unlock an account (delete the marker)
separately from resetting its counter, and a lock can outlive the counter.
"""

import logging
from datetime import datetime, timedelta, timezone

from taskflow_api.kv_store import ExpiringStore

logger = logging.getLogger(__name__)

FAILED_ATTEMPTS_PREFIX = "failed_attempts:"
LOCKED_ACCOUNT_PREFIX = "locked_account:"


class LoginThrottle:
    def __init__(
        self,
        store: ExpiringStore,
        max_failed_attempts: int = 5,
        lock_duration: timedelta = timedelta(minutes=30),
        failed_attempts_ttl: timedelta = timedelta(hours=24),
    ):
        if max_failed_attempts < 1:
            raise ValueError(f"max_failed_attempts must be at least 1, got {max_failed_attempts}")
        self.store = store
        self.max_failed_attempts = max_failed_attempts
        self.lock_duration = lock_duration
        self.failed_attempts_ttl = failed_attempts_ttl

    async def is_locked(self, username: str) -> bool:
        return await self.store.exists(LOCKED_ACCOUNT_PREFIX + username)

    async def record_failed_attempt(self, username: str) -> int:
        """
        Increment the failed attempts counter for username, locking the account
        once the counter reaches max_failed_attempts. Returns the new count.
        """
        attempts = await self.store.increment(
            FAILED_ATTEMPTS_PREFIX + username, ttl_seconds=int(self.failed_attempts_ttl.total_seconds())
        )
        logger.warning(f"Failed login attempt {attempts} for user: {username}")

        if attempts >= self.max_failed_attempts:
            await self.lock_account(username)
        return attempts

    async def get_failed_attempts(self, username: str) -> int:
        attempts = await self.store.get(FAILED_ATTEMPTS_PREFIX + username)
        return int(attempts) if attempts is not None else 0

    async def reset_failed_attempts(self, username: str) -> None:
        await self.store.delete(FAILED_ATTEMPTS_PREFIX + username)

    async def lock_account(self, username: str) -> None:
        await self.store.set(
            LOCKED_ACCOUNT_PREFIX + username,
            datetime.now(timezone.utc).isoformat(),
            ttl_seconds=int(self.lock_duration.total_seconds()),
        )
        logger.info(f"Account locked for {self.lock_duration}: {username}")

    async def unlock_account(self, username: str) -> None:
        """Manual unlock, clears both the lock marker and the failed attempts counter."""
        await self.store.delete(LOCKED_ACCOUNT_PREFIX + username, FAILED_ATTEMPTS_PREFIX + username)
        logger.info(f"Account unlocked: {username}")
