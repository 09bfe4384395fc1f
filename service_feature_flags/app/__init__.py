"""
Feature Flags service package for the tenant gateway.

Evaluates feature flags for a (user, tenant, role) context:

- app.main: API surface for flag listing, stats and evaluation.
- app.flags: Flag models, the gate-ordered evaluator, the JSON catalog
  loader, and client-side overrides.

Evaluation is pure and deterministic for a given catalog, environment and
clock; rollout bucketing is stable across processes.
"""
