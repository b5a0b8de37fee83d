"""
Unit Tests for the Credential and Profile Stores
================================================

Test Coverage:
--------------
1. save / get / delete round trip per student
2. Incomplete bundles are refused
3. delete_expired_older_than evicts only stale bundles and reports the count
4. The background sweep evicts on its interval, logs what remains, and stops when cancelled
"""

import asyncio
import logging
from datetime import timedelta

import pytest

from tyust_gateway.models import UserInfo
from tyust_gateway.store import CredentialStore, ProfileStore, run_cleanup_sweep
from tyust_gateway.tests.conftest import FIXED_NOW, make_bundle


@pytest.mark.asyncio
async def test_credential_store_round_trip(bundle):
    store = CredentialStore()

    await store.save("2021001", bundle)

    assert await store.get("2021001") is bundle
    assert await store.get("2021002") is None
    assert await store.delete("2021001") is True
    assert await store.delete("2021001") is False
    assert await store.get("2021001") is None


@pytest.mark.asyncio
async def test_save_overwrites_previous_bundle():
    store = CredentialStore()
    older = make_bundle(access_token="old")
    newer = make_bundle(access_token="new")

    await store.save("2021001", older)
    await store.save("2021001", newer)

    assert (await store.get("2021001")).access_token == "new"
    assert await store.count() == 1


@pytest.mark.asyncio
async def test_incomplete_bundle_is_refused():
    store = CredentialStore()

    with pytest.raises(ValueError, match="tracking_cookie_a"):
        await store.save("2021001", make_bundle(tracking_cookie_a=""))

    assert await store.get("2021001") is None


@pytest.mark.asyncio
async def test_delete_expired_older_than():
    store = CredentialStore(clock=lambda: FIXED_NOW)
    await store.save("fresh", make_bundle(obtained_at=FIXED_NOW - timedelta(hours=23)))
    await store.save("stale", make_bundle(obtained_at=FIXED_NOW - timedelta(hours=25)))
    await store.save("edge", make_bundle(obtained_at=FIXED_NOW - timedelta(hours=24)))

    removed = await store.delete_expired_older_than(timedelta(hours=24))

    assert removed == 2
    assert await store.get("fresh") is not None
    assert await store.get("stale") is None
    assert await store.get("edge") is None


@pytest.mark.asyncio
async def test_cleanup_sweep_runs_until_cancelled(caplog):
    caplog.set_level(logging.INFO, logger="tyust_gateway.store")
    store = CredentialStore(clock=lambda: FIXED_NOW)
    await store.save("stale", make_bundle(obtained_at=FIXED_NOW - timedelta(days=2)))
    await store.save("fresh", make_bundle(obtained_at=FIXED_NOW - timedelta(hours=1)))

    task = asyncio.create_task(run_cleanup_sweep(store, 0.01, timedelta(hours=24)))
    await asyncio.sleep(0.05)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert await store.get("stale") is None
    evictions = [r for r in caplog.records if getattr(r, "removed", None)]
    assert [(r.removed, r.remaining) for r in evictions] == [(1, 1)]


@pytest.mark.asyncio
async def test_profile_store_round_trip():
    store = ProfileStore()
    profile = UserInfo(student_id="2021001", name="张三", token="jwt")

    await store.save("2021001", profile)

    assert (await store.get("2021001")).name == "张三"
    assert await store.delete("2021001") is True
