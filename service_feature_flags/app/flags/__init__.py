"""
Feature flag package.

Modules of interest:
- models: Flag definitions, evaluation context and results.
- evaluator: Gate-ordered evaluation and the stable rollout hash.
- catalog: JSON catalog loader.
- overrides: Client-local overrides and the override-aware client.
"""

from .catalog import FlagCatalog
from .evaluator import FeatureFlagEvaluator, environment_from_hostname, rollout_bucket, stable_hash
from .models import Environment, FeatureFlagDefinition, FeatureFlagEvaluation, FlagContext
from .overrides import FeatureFlagClient, OverrideStore

__all__ = [
    "Environment",
    "FeatureFlagClient",
    "FeatureFlagDefinition",
    "FeatureFlagEvaluation",
    "FeatureFlagEvaluator",
    "FlagCatalog",
    "FlagContext",
    "OverrideStore",
    "environment_from_hostname",
    "rollout_bucket",
    "stable_hash",
]
