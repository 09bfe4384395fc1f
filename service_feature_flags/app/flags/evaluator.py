"""
Feature flag evaluation engine.

Gates run in a fixed order and the first failing gate decides the result:

1. unknown flag
2. global kill switch
3. environment scope
4. expiry
5. user allow-list
6. tenant allow-list
7. role allow-list
8. percentage rollout

Rollout bucketing hashes ``user_id + flag_key`` with ``stable_hash`` so a
user lands in the same bucket on every process and every restart.
"""

from datetime import datetime, timezone
from typing import Callable, Dict, List, Mapping, Optional

from shared.logging import get_logger
from .models import Environment, FeatureFlagDefinition, FeatureFlagEvaluation, FlagContext


def stable_hash(value: str) -> int:
    """Non-negative 32-bit rolling hash (``h * 31 + c``) over UTF-16 code units."""
    encoded = value.encode("utf-16-le")
    h = 0
    for i in range(0, len(encoded), 2):
        code_unit = encoded[i] | (encoded[i + 1] << 8)
        h = ((h << 5) - h + code_unit) & 0xFFFFFFFF
    if h & 0x80000000:
        h -= 0x100000000
    return abs(h)


def rollout_bucket(user_id: Optional[str], flag_key: str) -> int:
    """Bucket in 1..100 for a (user, flag) pair."""
    return (stable_hash((user_id or "anonymous") + flag_key) % 100) + 1


def environment_from_hostname(hostname: str) -> Environment:
    """Infer the environment from the serving hostname."""
    host = (hostname or "").split(":")[0].lower()
    if host in ("localhost", "127.0.0.1"):
        return Environment.DEVELOPMENT
    if "staging" in host:
        return Environment.STAGING
    return Environment.PRODUCTION


class FeatureFlagEvaluator:
    """Evaluates flags from a fixed catalog for one environment."""

    def __init__(
        self,
        flags: Mapping[str, FeatureFlagDefinition],
        environment: Environment = Environment.PRODUCTION,
        *,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        metrics=None,
    ):
        if environment is Environment.ALL:
            raise ValueError("evaluator needs a concrete environment")
        self.flags: Dict[str, FeatureFlagDefinition] = dict(flags)
        self.environment = environment
        self.metrics = metrics
        self.logger = get_logger("flags.evaluator")
        self._now = now

    def evaluate(self, flag_key: str, context: Optional[FlagContext] = None) -> FeatureFlagEvaluation:
        """Evaluate ``flag_key`` for ``context``."""
        context = context or FlagContext()
        result = self._evaluate(flag_key, context)

        self.logger.debug(
            "Feature flag evaluated",
            flag=flag_key,
            user_id=context.user_id,
            tenant_id=context.tenant_id,
            enabled=result.enabled,
            reason=result.reason
        )
        if self.metrics:
            self.metrics.increment_counter(
                "feature_flag_evaluations_total",
                flag=flag_key if flag_key in self.flags else "unknown",
                decision="enabled" if result.enabled else "disabled",
            )
        return result

    def _evaluate(self, flag_key: str, context: FlagContext) -> FeatureFlagEvaluation:
        flag = self.flags.get(flag_key)
        if flag is None:
            return FeatureFlagEvaluation(False, "Flag not found")

        if not flag.enabled:
            return FeatureFlagEvaluation(False, "Flag is globally disabled")

        if flag.environment is not Environment.ALL and flag.environment is not self.environment:
            return FeatureFlagEvaluation(False, f"Not available in {self.environment.value} environment")

        if flag.expires_at is not None and flag.expires_at < self._now():
            return FeatureFlagEvaluation(False, "Flag has expired")

        if flag.allowed_users and context.user_id not in flag.allowed_users:
            return FeatureFlagEvaluation(False, "User not in whitelist")

        if flag.allowed_tenants and context.tenant_id not in flag.allowed_tenants:
            return FeatureFlagEvaluation(False, "Tenant not in whitelist")

        if flag.allowed_roles and context.role not in flag.allowed_roles:
            return FeatureFlagEvaluation(False, "User role not allowed")

        if flag.rollout_percentage is not None and flag.rollout_percentage < 100:
            if rollout_bucket(context.user_id, flag_key) > flag.rollout_percentage:
                return FeatureFlagEvaluation(False, f"Not in rollout ({flag.rollout_percentage}%)")

        return FeatureFlagEvaluation(True, "All checks passed")

    def enabled_features(self, context: Optional[FlagContext] = None) -> List[str]:
        """Keys of every flag enabled for ``context``."""
        return [key for key in self.flags if self.evaluate(key, context).enabled]

    def get_flag(self, flag_key: str) -> Optional[FeatureFlagDefinition]:
        return self.flags.get(flag_key)

    def all_flags(self) -> List[FeatureFlagDefinition]:
        return list(self.flags.values())

    def stats(self) -> Dict[str, int]:
        """Catalog counts."""
        flags = self.all_flags()
        return {
            "total": len(flags),
            "enabled": sum(1 for flag in flags if flag.enabled),
            "experimental": sum(1 for flag in flags if not flag.enabled),
            "rollout": sum(1 for flag in flags if flag.is_rollout),
        }
