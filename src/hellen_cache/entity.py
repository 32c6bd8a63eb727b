# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Per-entity cache wrapper.

Domain code caches one kind of entity (a user, a lesson's transcription, a
user's billing usage, ...) through an EntityCache bound to a key builder and a
TTL, instead of building keys and picking TTLs at every call site.

ENTITY_POLICIES records the TTL policy for each entity the platform caches.

Example:
    users = EntityCache.for_entity(cache, "user")
    user = await users.get_or_cache(user_id, lambda: repo.load_user(user_id))

    await users.invalidate(user_id)
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .cache import Cache
from .config import HOUR_MS, MINUTE_MS


@dataclass(frozen=True)
class EntityPolicy:
    """
    How one entity kind is cached.

    Attributes:
        builder: Name of the KeyNamespace method producing the entity's key
        ttl: TTL in milliseconds
    """

    builder: str
    ttl: int


ENTITY_POLICIES: dict[str, EntityPolicy] = {
    # Users
    "user": EntityPolicy("user", 30 * MINUTE_MS),
    "user_by_email": EntityPolicy("user_by_email", 30 * MINUTE_MS),
    "user_stats": EntityPolicy("user_stats", 5 * MINUTE_MS),
    "user_credits": EntityPolicy("user_credits", MINUTE_MS),
    "user_preferences": EntityPolicy("user_preferences", HOUR_MS),
    "user_achievements": EntityPolicy("user_achievements", 15 * MINUTE_MS),
    "dashboard_stats": EntityPolicy("dashboard_stats", 5 * MINUTE_MS),
    # Analyses
    "analysis": EntityPolicy("analysis", HOUR_MS),
    "analysis_by_lesson": EntityPolicy("analysis_by_lesson", HOUR_MS),
    "analyses_by_user": EntityPolicy("analyses_by_user", 15 * MINUTE_MS),
    "score_history": EntityPolicy("score_history", 15 * MINUTE_MS),
    "user_trend": EntityPolicy("user_trend", 15 * MINUTE_MS),
    "bncc_coverage": EntityPolicy("bncc_coverage", 30 * MINUTE_MS),
    # Lessons
    "lesson": EntityPolicy("lesson", 30 * MINUTE_MS),
    "lessons_by_user": EntityPolicy("lessons_by_user", 5 * MINUTE_MS),
    "transcription": EntityPolicy("transcription", HOUR_MS),
    "subjects": EntityPolicy("subjects", HOUR_MS),
    # Billing
    "billing_transactions": EntityPolicy("billing_transactions", 5 * MINUTE_MS),
    "billing_usage": EntityPolicy("billing_usage", 5 * MINUTE_MS),
}


class EntityCache:
    """Get-or-cache, put and invalidate for one entity kind."""

    def __init__(self, cache: Cache, key_builder: Callable[[Any], str], ttl: int) -> None:
        if ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")
        self.cache = cache
        self.key_builder = key_builder
        self.ttl = ttl

    @classmethod
    def for_entity(cls, cache: Cache, entity: str) -> "EntityCache":
        """Build an EntityCache from ENTITY_POLICIES."""
        try:
            policy = ENTITY_POLICIES[entity]
        except KeyError:
            raise ValueError(f"Unknown entity: {entity}") from None
        return cls(cache, getattr(cache.namespace, policy.builder), policy.ttl)

    def key(self, entity_id: Any) -> str:
        return self.key_builder(entity_id)

    async def get_or_cache(self, entity_id: Any, compute_fn: Callable[[], Any]) -> Any:
        return await self.cache.fetch(self.key(entity_id), compute_fn, ttl=self.ttl)

    async def get(self, entity_id: Any) -> Any:
        return await self.cache.get(self.key(entity_id))

    async def put(self, entity_id: Any, value: Any) -> bool:
        return await self.cache.set(self.key(entity_id), value, ttl=self.ttl)

    async def invalidate(self, entity_id: Any) -> int:
        return await self.cache.delete(self.key(entity_id))


__all__ = ["ENTITY_POLICIES", "EntityCache", "EntityPolicy"]
