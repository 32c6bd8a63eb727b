"""Event-driven invalidation against fakeredis."""

import pytest

from hellen_cache.cache import Cache
from hellen_cache.invalidation import DomainEvent, Invalidator


@pytest.fixture
def cache(connection, metrics):
    return Cache(connection, metrics=metrics)


@pytest.fixture
def invalidator(cache):
    return Invalidator(cache)


async def _seed(cache, *keys):
    for key in keys:
        await cache.set(key, {"cached": key})


async def test_lesson_created(cache, invalidator):
    await _seed(cache, "lesson:7", "lessons:user:3", "subjects:institution:9", "user:3")

    removed = await invalidator.publish(
        DomainEvent.LESSON_CREATED, lesson_id=7, user_id=3, institution_id=9
    )

    assert removed == 3
    assert await cache.exists("lesson:7") is False
    assert await cache.exists("lessons:user:3") is False
    assert await cache.exists("subjects:institution:9") is False
    assert await cache.exists("user:3") is True


async def test_missing_identifiers_skip_templates(cache, invalidator):
    await _seed(cache, "lesson:7", "subjects:institution:9")

    removed = await invalidator.publish(DomainEvent.LESSON_CREATED, lesson_id=7)

    assert removed == 1
    assert await cache.exists("subjects:institution:9") is True


async def test_analysis_created_clears_user_aggregates(cache, invalidator):
    keys = [
        "analysis:1",
        "analysis:lesson:2",
        "analyses:user:3",
        "score_history:user:3",
        "trend:user:3",
        "bncc:coverage:user:3",
        "discipline:avg:math:9",
    ]
    await _seed(cache, *keys)

    removed = await invalidator.publish(
        DomainEvent.ANALYSIS_CREATED,
        analysis_id=1,
        lesson_id=2,
        user_id=3,
        subject="math",
        institution_id=9,
    )

    assert removed == len(keys)
    for key in keys:
        assert await cache.exists(key) is False


async def test_user_updated_by_email(cache, invalidator):
    await _seed(cache, "user:3", "user:email:ana@example.com")

    removed = await invalidator.publish(
        DomainEvent.USER_UPDATED, user_id=3, email="ana@example.com"
    )

    assert removed == 2


async def test_nothing_cached(invalidator):
    assert await invalidator.publish(DomainEvent.BILLING_CHANGED, user_id=3) == 0


async def test_keys_for_deduplicates(invalidator):
    keys = invalidator.keys_for(DomainEvent.TRANSCRIPTION_CREATED, lesson_id=7, user_id=3)

    assert keys == ["lesson:7", "transcription:lesson:7", "lessons:user:3"]


async def test_event_by_value(invalidator):
    assert invalidator.keys_for("credits_changed", user_id=3) == [
        "user:3:credits",
        "user:3:stats",
        "dashboard:stats:3",
    ]


async def test_hooks(cache, invalidator):
    await _seed(cache, "institution:9", "coordinator:stats:9", "achievements:user:3")

    assert await invalidator.on_updated("institution", institution_id=9) == 2
    assert await invalidator.on_created("achievement", user_id=3) == 1


async def test_unknown_hook_entity(invalidator):
    with pytest.raises(ValueError):
        await invalidator.on_created("planet", planet_id=1)
    with pytest.raises(ValueError):
        await invalidator.on_updated("planet", planet_id=1)


async def test_user_caches_cleared(cache, invalidator):
    keys = [
        "user:3",
        "user:3:stats",
        "user:3:credits",
        "user:3:preferences",
        "achievements:user:3",
        "dashboard:stats:3",
        "user:email:ana@example.com",
    ]
    await _seed(cache, *keys, "user:4:preferences")

    removed = await invalidator.publish(
        DomainEvent.USER_CACHES_CLEARED, user_id=3, email="ana@example.com"
    )

    assert removed == len(keys)
    assert await cache.exists("user:3:preferences") is False
    assert await cache.exists("user:4:preferences") is True
