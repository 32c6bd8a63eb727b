import pytest

from hellen_cache.keys import DOMAIN_PATTERNS, KeyNamespace


@pytest.fixture
def keys():
    return KeyNamespace()


class TestPrefix:
    def test_prefix_and_unprefix(self, keys):
        assert keys.prefix("analysis:123") == "hellen:analysis:123"
        assert keys.unprefix("hellen:analysis:123") == "analysis:123"

    def test_unprefix_without_prefix_is_identity(self, keys):
        assert keys.unprefix("other:analysis:123") == "other:analysis:123"

    def test_unprefix_splits_once(self, keys):
        assert keys.unprefix("hellen:session:hellen:x") == "session:hellen:x"

    def test_custom_prefix(self):
        keys = KeyNamespace("staging")
        assert keys.prefix(keys.user(1)) == "staging:user:1"


class TestBuilders:
    @pytest.mark.parametrize(
        "builder, args, expected",
        [
            ("analysis", (123,), "analysis:123"),
            ("analysis_by_lesson", (9,), "analysis:lesson:9"),
            ("analyses_by_user", (4,), "analyses:user:4"),
            ("score_history", (4,), "score_history:user:4"),
            ("user_trend", (4,), "trend:user:4"),
            ("bncc_coverage", (4,), "bncc:coverage:user:4"),
            ("discipline_avg", ("math", 2), "discipline:avg:math:2"),
            ("lesson", (9,), "lesson:9"),
            ("lessons_by_user", (4,), "lessons:user:4"),
            ("transcription", (9,), "transcription:lesson:9"),
            ("subjects", (2,), "subjects:institution:2"),
            ("user", (456,), "user:456"),
            ("user_by_email", ("a@b.c",), "user:email:a@b.c"),
            ("user_stats", (456,), "user:456:stats"),
            ("user_credits", (456,), "user:456:credits"),
            ("user_preferences", (456,), "user:456:preferences"),
            ("user_achievements", (456,), "achievements:user:456"),
            ("institution", (2,), "institution:2"),
            ("institution_stats", (2,), "institution:2:stats"),
            ("institution_users", (2,), "institution:2:users"),
            ("dashboard_stats", (4,), "dashboard:stats:4"),
            ("platform_stats", (), "platform:stats"),
            ("coordinator_stats", (2,), "coordinator:stats:2"),
            ("billing_transactions", (4,), "billing:transactions:user:4"),
            ("billing_usage", (4,), "billing:usage:user:4"),
            ("planning", (3,), "planning:3"),
            ("plannings_by_user", (4,), "plannings:user:4"),
            ("assessment", (3,), "assessment:3"),
            ("assessments_by_user", (4,), "assessments:user:4"),
            ("rate_limit", ("upload", 4), "ratelimit:upload:4"),
            ("login_attempts", ("a@b.c",), "login_attempts:a@b.c"),
            ("refresh_token", (4,), "refresh_token:user:4"),
            ("session", ("abc",), "session:abc"),
            ("lock", ("process:1",), "lock:process:1"),
            ("job_lock", ("transcribe", "abc"), "lock:job:transcribe:abc"),
            ("user_pattern", (4,), "*user:4*"),
            ("lesson_pattern", (9,), "*lesson:9*"),
            ("institution_pattern", (2,), "*institution:2*"),
        ],
    )
    def test_builder(self, keys, builder, args, expected):
        assert getattr(keys, builder)(*args) == expected

    def test_job_lock_matches_lock_of_job_resource(self, keys):
        assert keys.job_lock("transcribe", 1) == keys.lock(keys.job_resource("transcribe", 1))

    def test_full_job_lock_key(self, keys):
        assert keys.prefix(keys.job_lock("transcribe", "abc")) == "hellen:lock:job:transcribe:abc"

    def test_distinct_identities_do_not_collide(self, keys):
        generated = {
            keys.user(1),
            keys.user(2),
            keys.user_stats(1),
            keys.lesson(1),
            keys.analysis(1),
            keys.analysis_by_lesson(1),
            keys.institution(1),
        }
        assert len(generated) == 7


def test_domain_patterns():
    assert "user:*" in DOMAIN_PATTERNS
    assert "ratelimit:*" in DOMAIN_PATTERNS
    assert len(DOMAIN_PATTERNS) == 10
