"""
Unit tests for the LoginThrottle, using the in-process store.
"""

import asyncio
from datetime import timedelta

import pytest

from taskflow_api.kv_store import InMemoryExpiringStore
from taskflow_api.throttling import FAILED_ATTEMPTS_PREFIX, LOCKED_ACCOUNT_PREFIX, LoginThrottle

USERNAME = "bob"


@pytest.fixture
def store():
    return InMemoryExpiringStore()


@pytest.fixture
def throttle(store):
    return LoginThrottle(store=store, max_failed_attempts=5)


@pytest.mark.asyncio
async def test_fresh_account_not_locked(throttle):
    assert not await throttle.is_locked(USERNAME)
    assert await throttle.get_failed_attempts(USERNAME) == 0


@pytest.mark.asyncio
async def test_failed_attempts_are_counted(throttle):
    assert await throttle.record_failed_attempt(USERNAME) == 1
    assert await throttle.record_failed_attempt(USERNAME) == 2
    assert await throttle.get_failed_attempts(USERNAME) == 2
    assert not await throttle.is_locked(USERNAME)


@pytest.mark.asyncio
async def test_account_locks_on_fifth_failure(throttle):
    for _ in range(4):
        await throttle.record_failed_attempt(USERNAME)
    assert not await throttle.is_locked(USERNAME)

    await throttle.record_failed_attempt(USERNAME)
    assert await throttle.is_locked(USERNAME)


@pytest.mark.asyncio
async def test_counters_are_per_username(throttle):
    for _ in range(5):
        await throttle.record_failed_attempt(USERNAME)

    assert await throttle.is_locked(USERNAME)
    assert not await throttle.is_locked("someone-else")
    assert await throttle.get_failed_attempts("someone-else") == 0


@pytest.mark.asyncio
async def test_reset_keeps_lock(throttle):
    for _ in range(5):
        await throttle.record_failed_attempt(USERNAME)

    await throttle.reset_failed_attempts(USERNAME)

    assert await throttle.get_failed_attempts(USERNAME) == 0
    assert await throttle.is_locked(USERNAME)


@pytest.mark.asyncio
async def test_unlock_clears_lock_and_counter(throttle):
    for _ in range(5):
        await throttle.record_failed_attempt(USERNAME)

    await throttle.unlock_account(USERNAME)

    assert not await throttle.is_locked(USERNAME)
    assert await throttle.get_failed_attempts(USERNAME) == 0


@pytest.mark.asyncio
async def test_manual_lock(throttle):
    await throttle.lock_account(USERNAME)
    assert await throttle.is_locked(USERNAME)
    assert await throttle.get_failed_attempts(USERNAME) == 0


@pytest.mark.asyncio
async def test_keys_used_in_store(throttle, store):
    for _ in range(5):
        await throttle.record_failed_attempt(USERNAME)

    assert await store.get(FAILED_ATTEMPTS_PREFIX + USERNAME) == "5"
    assert await store.exists(LOCKED_ACCOUNT_PREFIX + USERNAME)


@pytest.mark.asyncio
async def test_lock_expires_after_lock_duration(store):
    throttle = LoginThrottle(store=store, max_failed_attempts=1, lock_duration=timedelta(seconds=1))
    await throttle.record_failed_attempt(USERNAME)
    assert await throttle.is_locked(USERNAME)

    await asyncio.sleep(1.1)
    assert not await throttle.is_locked(USERNAME)


def test_max_failed_attempts_must_be_positive(store):
    with pytest.raises(ValueError):
        LoginThrottle(store=store, max_failed_attempts=0)
