# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Key generation and namespacing for the cache layer.

Keys follow a hierarchical pattern and are stored under a global prefix so
several applications can share one Redis instance:

    hellen:{domain}:{entity}:{id}[:{sub}]

Examples:
    - hellen:analysis:123            analysis by ID
    - hellen:user:456:stats          user stats
    - hellen:lock:job:transcribe:abc job lock

Builders return the *logical* key (without prefix). Cache, RateLimiter,
DistributedLock and Stats add the prefix through KeyNamespace.prefix, so the
prefix can change without touching callers.
"""

from .config import DEFAULT_KEY_PREFIX

DOMAIN_PATTERNS: tuple[str, ...] = (
    "analysis:*",
    "lesson:*",
    "user:*",
    "institution:*",
    "billing:*",
    "planning:*",
    "assessment:*",
    "lock:*",
    "session:*",
    "ratelimit:*",
)


class KeyNamespace:
    """Builds prefixed, collision-free cache keys. Holds no state besides the prefix."""

    def __init__(self, global_prefix: str = DEFAULT_KEY_PREFIX):
        self.global_prefix = global_prefix
        self._marker = f"{global_prefix}:"

    def prefix(self, key: str) -> str:
        """Add the global prefix to a logical key."""
        return f"{self._marker}{key}"

    def unprefix(self, key: str) -> str:
        """Remove the global prefix; keys without it are returned unchanged."""
        _, sep, rest = key.partition(self._marker)
        return rest if sep else key

    # ==========================================================================
    # Analysis
    # ==========================================================================

    def analysis(self, analysis_id: object) -> str:
        return f"analysis:{analysis_id}"

    def analysis_by_lesson(self, lesson_id: object) -> str:
        return f"analysis:lesson:{lesson_id}"

    def analyses_by_user(self, user_id: object) -> str:
        return f"analyses:user:{user_id}"

    def score_history(self, user_id: object) -> str:
        return f"score_history:user:{user_id}"

    def user_trend(self, user_id: object) -> str:
        return f"trend:user:{user_id}"

    def bncc_coverage(self, user_id: object) -> str:
        return f"bncc:coverage:user:{user_id}"

    def discipline_avg(self, subject: str, institution_id: object) -> str:
        return f"discipline:avg:{subject}:{institution_id}"

    # ==========================================================================
    # Lessons
    # ==========================================================================

    def lesson(self, lesson_id: object) -> str:
        return f"lesson:{lesson_id}"

    def lessons_by_user(self, user_id: object) -> str:
        return f"lessons:user:{user_id}"

    def transcription(self, lesson_id: object) -> str:
        return f"transcription:lesson:{lesson_id}"

    def subjects(self, institution_id: object) -> str:
        return f"subjects:institution:{institution_id}"

    # ==========================================================================
    # Users
    # ==========================================================================

    def user(self, user_id: object) -> str:
        return f"user:{user_id}"

    def user_by_email(self, email: str) -> str:
        return f"user:email:{email}"

    def user_stats(self, user_id: object) -> str:
        return f"user:{user_id}:stats"

    def user_credits(self, user_id: object) -> str:
        return f"user:{user_id}:credits"

    def user_preferences(self, user_id: object) -> str:
        return f"user:{user_id}:preferences"

    def user_achievements(self, user_id: object) -> str:
        return f"achievements:user:{user_id}"

    # ==========================================================================
    # Institutions
    # ==========================================================================

    def institution(self, institution_id: object) -> str:
        return f"institution:{institution_id}"

    def institution_stats(self, institution_id: object) -> str:
        return f"institution:{institution_id}:stats"

    def institution_users(self, institution_id: object) -> str:
        return f"institution:{institution_id}:users"

    # ==========================================================================
    # Dashboards
    # ==========================================================================

    def dashboard_stats(self, user_id: object) -> str:
        return f"dashboard:stats:{user_id}"

    def platform_stats(self) -> str:
        return "platform:stats"

    def coordinator_stats(self, institution_id: object) -> str:
        return f"coordinator:stats:{institution_id}"

    # ==========================================================================
    # Billing
    # ==========================================================================

    def billing_transactions(self, user_id: object) -> str:
        return f"billing:transactions:user:{user_id}"

    def billing_usage(self, user_id: object) -> str:
        return f"billing:usage:user:{user_id}"

    # ==========================================================================
    # Planning & assessments
    # ==========================================================================

    def planning(self, planning_id: object) -> str:
        return f"planning:{planning_id}"

    def plannings_by_user(self, user_id: object) -> str:
        return f"plannings:user:{user_id}"

    def assessment(self, assessment_id: object) -> str:
        return f"assessment:{assessment_id}"

    def assessments_by_user(self, user_id: object) -> str:
        return f"assessments:user:{user_id}"

    # ==========================================================================
    # Rate limiting
    # ==========================================================================

    def rate_limit(self, scope: str, identifier: object) -> str:
        return f"ratelimit:{scope}:{identifier}"

    def login_attempts(self, identifier: object) -> str:
        return f"login_attempts:{identifier}"

    # ==========================================================================
    # Sessions & tokens
    # ==========================================================================

    def refresh_token(self, user_id: object) -> str:
        return f"refresh_token:user:{user_id}"

    def session(self, session_id: str) -> str:
        return f"session:{session_id}"

    # ==========================================================================
    # Locks
    # ==========================================================================

    def lock(self, resource: str) -> str:
        return f"lock:{resource}"

    def job_resource(self, job_type: str, job_id: object) -> str:
        """Lock resource name for a background job; pass to DistributedLock."""
        return f"job:{job_type}:{job_id}"

    def job_lock(self, job_type: str, job_id: object) -> str:
        return self.lock(self.job_resource(job_type, job_id))

    # ==========================================================================
    # Patterns for bulk operations (SCAN MATCH syntax)
    # ==========================================================================

    def user_pattern(self, user_id: object) -> str:
        return f"*user:{user_id}*"

    def lesson_pattern(self, lesson_id: object) -> str:
        return f"*lesson:{lesson_id}*"

    def institution_pattern(self, institution_id: object) -> str:
        return f"*institution:{institution_id}*"


__all__ = ["DOMAIN_PATTERNS", "KeyNamespace"]
