"""
Unit tests for the feature flag evaluator.
"""

from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import MagicMock

from service_feature_flags.app.flags.catalog import FlagCatalog, parse_flag
from service_feature_flags.app.flags.evaluator import (
    FeatureFlagEvaluator,
    environment_from_hostname,
    rollout_bucket,
    stable_hash,
)
from service_feature_flags.app.flags.models import Environment, FlagContext
from shared.test_helpers import TestDataFactory


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_evaluator(*entries, environment=Environment.PRODUCTION, metrics=None):
    flags = {}
    for entry in entries:
        flag = parse_flag(entry)
        flags[flag.key] = flag
    return FeatureFlagEvaluator(flags, environment, now=lambda: NOW, metrics=metrics)


class TestStableHash:
    """Test cases for the rollout hash."""

    @pytest.mark.parametrize("value,expected", [
        ("", 0),
        ("a", 97),
        ("ab", 3105),
        ("hello", 99162322),
        ("polygenelubricants", 2147483648),
        ("\U0001F600", 1772899),
    ])
    def test_known_values(self, value, expected):
        """Test the hash matches the 32-bit rolling hash over UTF-16 code units."""
        assert stable_hash(value) == expected

    def test_rollout_bucket_range_and_determinism(self):
        """Test buckets stay in 1..100 and never change for the same input."""
        buckets = [rollout_bucket(f"user-{i}", "social_listening") for i in range(500)]

        assert all(1 <= bucket <= 100 for bucket in buckets)
        assert buckets == [rollout_bucket(f"user-{i}", "social_listening") for i in range(500)]

    def test_anonymous_bucket(self):
        """Test a missing user id hashes as 'anonymous'."""
        assert rollout_bucket(None, "social_listening") == rollout_bucket("anonymous", "social_listening")


class TestFeatureFlagEvaluator:
    """Test cases for FeatureFlagEvaluator gate order and reasons."""

    def test_unknown_flag(self):
        evaluator = make_evaluator()

        result = evaluator.evaluate("does_not_exist")

        assert result.enabled is False
        assert result.reason == "Flag not found"

    def test_globally_disabled_wins(self):
        """Test the kill switch is checked before any allow-list."""
        evaluator = make_evaluator(TestDataFactory.create_flag_definition(
            "voice_surveys", enabled=False, allowed_users=["u1"],
        ))

        result = evaluator.evaluate("voice_surveys", FlagContext(user_id="u1"))

        assert result.enabled is False
        assert result.reason == "Flag is globally disabled"

    def test_kill_switch_precedes_rollout(self):
        """Test a disabled flag stays off even at a full rollout."""
        evaluator = make_evaluator(TestDataFactory.create_flag_definition(
            "f", enabled=False, rollout_percentage=100,
        ))

        result = evaluator.evaluate("f", FlagContext(user_id="u1"))

        assert result.enabled is False
        assert result.reason == "Flag is globally disabled"

    def test_same_user_same_outcome(self):
        evaluator = make_evaluator(TestDataFactory.create_flag_definition("f", rollout_percentage=50))

        outcomes = {evaluator.evaluate("f", FlagContext(user_id="u1")).enabled for _ in range(50)}

        assert len(outcomes) == 1

    def test_environment_scope(self):
        """Test flags scoped to another environment are off."""
        evaluator = make_evaluator(
            TestDataFactory.create_flag_definition("new_dashboard_ui", environment="staging"),
        )

        result = evaluator.evaluate("new_dashboard_ui")

        assert result.enabled is False
        assert result.reason == "Not available in production environment"

    def test_matching_environment(self):
        evaluator = make_evaluator(
            TestDataFactory.create_flag_definition("new_dashboard_ui", environment="staging"),
            environment=Environment.STAGING,
        )

        assert evaluator.evaluate("new_dashboard_ui").enabled is True

    def test_expired_flag(self):
        evaluator = make_evaluator(TestDataFactory.create_flag_definition(
            "holiday_banner", expires_at=(NOW - timedelta(seconds=1)).isoformat(),
        ))

        result = evaluator.evaluate("holiday_banner")

        assert result.enabled is False
        assert result.reason == "Flag has expired"

    def test_not_yet_expired_flag(self):
        evaluator = make_evaluator(TestDataFactory.create_flag_definition(
            "holiday_banner", expires_at="2026-12-31T00:00:00Z",
        ))

        assert evaluator.evaluate("holiday_banner").enabled is True

    @pytest.mark.parametrize("field,context,reason", [
        ("allowed_users", FlagContext(user_id="u2"), "User not in whitelist"),
        ("allowed_tenants", FlagContext(tenant_id="goa"), "Tenant not in whitelist"),
        ("allowed_roles", FlagContext(role="user"), "User role not allowed"),
    ])
    def test_allow_lists(self, field, context, reason):
        """Test each allow-list rejects contexts outside it."""
        allowed = {"allowed_users": "u1", "allowed_tenants": "kerala", "allowed_roles": "admin"}[field]
        evaluator = make_evaluator(TestDataFactory.create_flag_definition("gated", **{field: [allowed]}))

        result = evaluator.evaluate("gated", context)

        assert result.enabled is False
        assert result.reason == reason

    def test_allow_lists_checked_in_order(self):
        """Test the user list is reported before the tenant and role lists."""
        evaluator = make_evaluator(TestDataFactory.create_flag_definition(
            "gated", allowed_users=["u1"], allowed_tenants=["kerala"], allowed_roles=["admin"],
        ))

        assert evaluator.evaluate("gated", FlagContext()).reason == "User not in whitelist"
        assert evaluator.evaluate("gated", FlagContext(user_id="u1")).reason == "Tenant not in whitelist"
        assert evaluator.evaluate(
            "gated", FlagContext(user_id="u1", tenant_id="kerala")
        ).reason == "User role not allowed"

        result = evaluator.evaluate("gated", FlagContext(user_id="u1", tenant_id="kerala", role="admin"))
        assert result.enabled is True
        assert result.reason == "All checks passed"

    def test_rollout_zero_disables_everyone(self):
        evaluator = make_evaluator(TestDataFactory.create_flag_definition("dark_launch", rollout_percentage=0))

        results = [evaluator.evaluate("dark_launch", FlagContext(user_id=f"user-{i}")) for i in range(200)]

        assert not any(result.enabled for result in results)
        assert results[0].reason == "Not in rollout (0%)"

    def test_rollout_hundred_enables_everyone(self):
        evaluator = make_evaluator(TestDataFactory.create_flag_definition("ga", rollout_percentage=100))

        assert all(evaluator.evaluate("ga", FlagContext(user_id=f"user-{i}")).enabled for i in range(200))

    def test_rollout_distribution(self):
        """Test a 50% rollout admits roughly half of a synthetic population."""
        evaluator = make_evaluator(TestDataFactory.create_flag_definition("social_listening", rollout_percentage=50))

        enabled = sum(
            evaluator.evaluate("social_listening", FlagContext(user_id=f"synthetic-user-{i:05d}")).enabled
            for i in range(10000)
        )

        assert 4500 <= enabled <= 5500

    def test_rollout_is_sticky(self):
        """Test a user's decision does not change between evaluators."""
        entry = TestDataFactory.create_flag_definition("social_listening", rollout_percentage=50)
        first = make_evaluator(entry)
        second = make_evaluator(entry)

        for i in range(100):
            context = FlagContext(user_id=f"user-{i}")
            assert first.evaluate("social_listening", context) == second.evaluate("social_listening", context)

    def test_all_environment_is_rejected(self):
        with pytest.raises(ValueError):
            FeatureFlagEvaluator({}, Environment.ALL)

    def test_metrics_recorded(self):
        """Test evaluations are counted by flag and decision."""
        metrics = MagicMock()
        evaluator = make_evaluator(TestDataFactory.create_flag_definition("gated"), metrics=metrics)

        evaluator.evaluate("gated")
        evaluator.evaluate("missing")

        metrics.increment_counter.assert_any_call(
            "feature_flag_evaluations_total", flag="gated", decision="enabled"
        )
        metrics.increment_counter.assert_any_call(
            "feature_flag_evaluations_total", flag="unknown", decision="disabled"
        )


class TestBundledCatalog:
    """Test cases against the bundled flag catalog."""

    @pytest.fixture
    def evaluator(self):
        return FeatureFlagEvaluator(FlagCatalog().flags, Environment.PRODUCTION, now=lambda: NOW)

    def test_stats(self, evaluator):
        assert evaluator.stats() == {"total": 14, "enabled": 10, "experimental": 4, "rollout": 5}

    def test_role_gated_flag(self, evaluator):
        assert evaluator.evaluate("bulk_sms", FlagContext(role="admin")).enabled is True
        assert evaluator.evaluate("bulk_sms", FlagContext(role="user")).enabled is False

    def test_enabled_features_for_admin(self, evaluator):
        """Test the enabled list only contains flags that evaluate on."""
        context = FlagContext(user_id="user-1", tenant_id="kerala", role="admin")

        enabled = evaluator.enabled_features(context)

        assert {"ai_insights", "advanced_analytics", "bulk_sms", "tenant_analytics", "custom_branding"} <= set(enabled)
        assert "voice_surveys" not in enabled
        assert all(evaluator.evaluate(key, context).enabled for key in enabled)


class TestEnvironmentFromHostname:
    """Test cases for environment detection."""

    @pytest.mark.parametrize("hostname,expected", [
        ("localhost", Environment.DEVELOPMENT),
        ("localhost:3000", Environment.DEVELOPMENT),
        ("127.0.0.1", Environment.DEVELOPMENT),
        ("staging.example.com", Environment.STAGING),
        ("kerala.example.com", Environment.PRODUCTION),
        ("", Environment.PRODUCTION),
    ])
    def test_environment_from_hostname(self, hostname, expected):
        assert environment_from_hostname(hostname) == expected
