"""
Client-local flag overrides and the override-aware flag client.

Overrides never touch server state. They exist for staged testing: a
tester forces a flag on or off for a limited time on one client.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from shared.logging import get_logger
from .evaluator import FeatureFlagEvaluator
from .models import FlagContext, FlagOverride


class OverrideStore:
    """Per-flag forced values with their own expiry."""

    def __init__(self, now: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        self._now = now
        self._overrides: Dict[str, FlagOverride] = {}
        self.logger = get_logger("flags.overrides")

    def set(self, flag_key: str, enabled: bool, expires_in_minutes: float = 60) -> FlagOverride:
        override = FlagOverride(
            enabled=enabled,
            expires_at=self._now() + timedelta(minutes=expires_in_minutes),
        )
        self._overrides[flag_key] = override
        self.logger.info(
            "Feature flag overridden",
            flag=flag_key,
            enabled=enabled,
            expires_at=override.expires_at.isoformat()
        )
        return override

    def get(self, flag_key: str) -> Optional[bool]:
        """Forced value for ``flag_key``; expired overrides are dropped."""
        override = self._overrides.get(flag_key)
        if override is None:
            return None
        if override.expires_at < self._now():
            self.clear(flag_key)
            return None
        return override.enabled

    def clear(self, flag_key: str) -> None:
        self._overrides.pop(flag_key, None)


class FeatureFlagClient:
    """Flag checks for application code: override first, then evaluation."""

    def __init__(self, evaluator: FeatureFlagEvaluator, overrides: Optional[OverrideStore] = None):
        self.evaluator = evaluator
        self.overrides = overrides or OverrideStore()

    def check(self, flag_key: str, context: Optional[FlagContext] = None) -> bool:
        forced = self.overrides.get(flag_key)
        if forced is not None:
            return forced
        return self.evaluator.evaluate(flag_key, context).enabled
