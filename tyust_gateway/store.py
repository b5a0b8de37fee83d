"""
In-memory stores for upstream credentials and user profiles.

Both stores are keyed by student id and guard every read and write with an
``asyncio.Lock``. They are constructed in the application lifespan and
handed to the service, so tests can build their own instances.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Generic, Optional, TypeVar

from .models import UserInfo
from .portal.sso import AuthBundle

logger = logging.getLogger(__name__)

V = TypeVar("V")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class KeyedStore(Generic[V]):
    """Lock-guarded dict keyed by student id."""

    def __init__(self):
        self._entries: Dict[str, V] = {}
        self._lock = asyncio.Lock()

    async def save(self, user_id: str, value: V) -> None:
        async with self._lock:
            self._entries[user_id] = value

    async def get(self, user_id: str) -> Optional[V]:
        async with self._lock:
            return self._entries.get(user_id)

    async def delete(self, user_id: str) -> bool:
        """Remove the entry for ``user_id``. Returns True if one existed."""
        async with self._lock:
            return self._entries.pop(user_id, None) is not None

    async def count(self) -> int:
        async with self._lock:
            return len(self._entries)


class CredentialStore(KeyedStore[AuthBundle]):
    """
    Finished ``AuthBundle``s, one per student.

    Only complete bundles are accepted; a half-finished login never reaches
    the store.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        super().__init__()
        self._clock = clock

    async def save(self, user_id: str, value: AuthBundle) -> None:
        if not value.is_complete():
            missing = ", ".join(value.missing_fields())
            raise ValueError(f"Refusing to store incomplete auth bundle (missing {missing})")
        await super().save(user_id, value)
        logger.debug("Stored auth bundle", extra={"user_id": user_id})

    async def delete_expired_older_than(self, max_age: timedelta) -> int:
        """
        Evict every bundle obtained ``max_age`` or longer ago.

        Returns:
            Number of bundles removed
        """
        now = self._clock()
        async with self._lock:
            expired = [
                user_id for user_id, bundle in self._entries.items()
                if not bundle.is_valid(now=now, ttl=max_age)
            ]
            for user_id in expired:
                del self._entries[user_id]
        return len(expired)


class ProfileStore(KeyedStore[UserInfo]):
    """What the gateway shows for ``/api/user/info``, one entry per student."""


# =============================================================================
# Cleanup Sweep
# =============================================================================

async def run_cleanup_sweep(
    store: CredentialStore,
    interval_seconds: float,
    max_age: timedelta,
) -> None:
    """
    Periodically evict expired bundles until cancelled.

    Started as a background task in the application lifespan.
    """
    logger.info(
        "Credential cleanup sweep started",
        extra={"interval_seconds": interval_seconds, "max_age_hours": max_age.total_seconds() / 3600},
    )
    while True:
        await asyncio.sleep(interval_seconds)
        removed = await store.delete_expired_older_than(max_age)
        if removed:
            logger.info(
                f"Evicted {removed} expired auth bundles",
                extra={"removed": removed, "remaining": await store.count()},
            )
