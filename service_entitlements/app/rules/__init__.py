"""
Entitlement rules package.

Stateless decision logic evaluated against an immutable ``FeatureCatalog``:

- models: Reason codes, user/usage inputs, ``AccessDecision`` and API models.
- rollout: ``RolloutBucketer``, the cross-platform percentage bucketing hash.
- limits: Tier/role limit resolution and limit checks.
- engine: ``EntitlementEvaluator`` with its fixed check order.
- messages: Upgrade prompts keyed by feature and role.
"""
