# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Event-driven cache invalidation.

Domain writes publish a DomainEvent with the identifiers they know about. The
static INVALIDATIONS table maps each event to the key templates it makes
stale; every template whose identifiers were supplied is deleted in one
round trip.

Example:
    invalidator = Invalidator(cache)

    # After a lesson is created
    await invalidator.publish(
        DomainEvent.LESSON_CREATED, lesson_id=lesson.id, user_id=lesson.user_id
    )

    # Equivalent hook form
    await invalidator.on_created("lesson", lesson_id=lesson.id, user_id=lesson.user_id)
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .cache import Cache
from .keys import KeyNamespace

logger = logging.getLogger(__name__)


class DomainEvent(str, Enum):
    """Domain changes that make cached entries stale."""

    USER_UPDATED = "user_updated"
    USER_CACHES_CLEARED = "user_caches_cleared"
    CREDITS_CHANGED = "credits_changed"
    ACHIEVEMENT_UNLOCKED = "achievement_unlocked"
    LESSON_CREATED = "lesson_created"
    LESSON_UPDATED = "lesson_updated"
    TRANSCRIPTION_CREATED = "transcription_created"
    ANALYSIS_CREATED = "analysis_created"
    ANALYSIS_UPDATED = "analysis_updated"
    INSTITUTION_UPDATED = "institution_updated"
    BILLING_CHANGED = "billing_changed"


@dataclass(frozen=True)
class KeyTemplate:
    """
    A key to delete for an event.

    Attributes:
        builder: Name of the KeyNamespace method producing the key
        fields: Event identifiers passed to the builder, in order
    """

    builder: str
    fields: tuple[str, ...]

    def resolve(self, namespace: KeyNamespace, ids: dict[str, Any]) -> str | None:
        """The logical key, or None when an identifier is missing."""
        if any(ids.get(name) is None for name in self.fields):
            return None
        return getattr(namespace, self.builder)(*(ids[name] for name in self.fields))


def _t(builder: str, *fields: str) -> KeyTemplate:
    return KeyTemplate(builder, fields)


_USER_AGGREGATES = (
    _t("analyses_by_user", "user_id"),
    _t("score_history", "user_id"),
    _t("user_trend", "user_id"),
    _t("bncc_coverage", "user_id"),
)

_ANALYSIS = (
    _t("analysis", "analysis_id"),
    _t("analysis_by_lesson", "lesson_id"),
    *_USER_AGGREGATES,
    _t("discipline_avg", "subject", "institution_id"),
)

INVALIDATIONS: dict[DomainEvent, tuple[KeyTemplate, ...]] = {
    DomainEvent.USER_UPDATED: (
        _t("user", "user_id"),
        _t("user_by_email", "email"),
    ),
    DomainEvent.USER_CACHES_CLEARED: (
        _t("user", "user_id"),
        _t("user_stats", "user_id"),
        _t("user_credits", "user_id"),
        _t("user_preferences", "user_id"),
        _t("user_achievements", "user_id"),
        _t("dashboard_stats", "user_id"),
        _t("user_by_email", "email"),
    ),
    DomainEvent.CREDITS_CHANGED: (
        _t("user_credits", "user_id"),
        _t("user_stats", "user_id"),
        _t("dashboard_stats", "user_id"),
    ),
    DomainEvent.ACHIEVEMENT_UNLOCKED: (
        _t("user_achievements", "user_id"),
    ),
    DomainEvent.LESSON_CREATED: (
        _t("lesson", "lesson_id"),
        _t("lessons_by_user", "user_id"),
        _t("subjects", "institution_id"),
    ),
    DomainEvent.LESSON_UPDATED: (
        _t("lesson", "lesson_id"),
        _t("lessons_by_user", "user_id"),
    ),
    DomainEvent.TRANSCRIPTION_CREATED: (
        _t("lesson", "lesson_id"),
        _t("transcription", "lesson_id"),
        _t("lessons_by_user", "user_id"),
    ),
    DomainEvent.ANALYSIS_CREATED: _ANALYSIS,
    DomainEvent.ANALYSIS_UPDATED: _ANALYSIS,
    DomainEvent.INSTITUTION_UPDATED: (
        _t("institution", "institution_id"),
        _t("institution_stats", "institution_id"),
        _t("institution_users", "institution_id"),
        _t("coordinator_stats", "institution_id"),
        _t("subjects", "institution_id"),
    ),
    DomainEvent.BILLING_CHANGED: (
        _t("billing_transactions", "user_id"),
        _t("billing_usage", "user_id"),
        _t("user_credits", "user_id"),
    ),
}

# Hook entity name -> event
_CREATED: dict[str, DomainEvent] = {
    "lesson": DomainEvent.LESSON_CREATED,
    "transcription": DomainEvent.TRANSCRIPTION_CREATED,
    "analysis": DomainEvent.ANALYSIS_CREATED,
    "achievement": DomainEvent.ACHIEVEMENT_UNLOCKED,
    "transaction": DomainEvent.BILLING_CHANGED,
}

_UPDATED: dict[str, DomainEvent] = {
    "user": DomainEvent.USER_UPDATED,
    "credits": DomainEvent.CREDITS_CHANGED,
    "lesson": DomainEvent.LESSON_UPDATED,
    "analysis": DomainEvent.ANALYSIS_UPDATED,
    "institution": DomainEvent.INSTITUTION_UPDATED,
    "billing": DomainEvent.BILLING_CHANGED,
}


class Invalidator:
    """Deletes the cache entries a domain event makes stale."""

    def __init__(self, cache: Cache) -> None:
        self.cache = cache

    def keys_for(self, event: DomainEvent, **ids: Any) -> list[str]:
        """Logical keys an event would delete, without touching the store."""
        keys: list[str] = []
        for template in INVALIDATIONS[DomainEvent(event)]:
            key = template.resolve(self.cache.namespace, ids)
            if key is not None and key not in keys:
                keys.append(key)
        return keys

    async def publish(self, event: DomainEvent, **ids: Any) -> int:
        """
        Delete every key the event invalidates.

        Templates whose identifiers are not all supplied are skipped.

        Returns:
            Number of keys that existed and were removed

        Raises:
            BackendConnectionError, BackendOperationError: On store failure
        """
        keys = self.keys_for(event, **ids)
        removed = await self.cache.delete_many(keys)
        logger.debug(f"{DomainEvent(event).value}: invalidated {removed}/{len(keys)} keys")
        return removed

    async def on_created(self, entity: str, **ids: Any) -> int:
        try:
            event = _CREATED[entity]
        except KeyError:
            raise ValueError(f"No creation event for entity: {entity}") from None
        return await self.publish(event, **ids)

    async def on_updated(self, entity: str, **ids: Any) -> int:
        try:
            event = _UPDATED[entity]
        except KeyError:
            raise ValueError(f"No update event for entity: {entity}") from None
        return await self.publish(event, **ids)


__all__ = ["INVALIDATIONS", "DomainEvent", "Invalidator", "KeyTemplate"]
