"""
Entitlements Service package for the MSME marketplace.

This package decides whether a user may use a gated feature, given the
user's active role, subscription tier, rollout bucket and usage so far:

- app.main: API surface for entitlement checks, usage recording and health.
- app.catalog: Immutable feature catalog snapshot, roles and loaders.
- app.rules: Rollout bucketing, limit resolution and the evaluation engine.
- app.usage: Usage ledgers (in-memory and Redis).
- app.gating: FastAPI dependency and gateway route map for enforcing decisions.

Guidelines:
- The catalog is loaded once at startup and never mutated.
- Evaluation is pure; counting uses is the ledger's job.
- Unknown features are denied (fail closed).
"""
