"""
Adapters that turn access decisions into HTTP behaviour.

- require_feature: ``FeatureGate`` FastAPI dependency (401/403 on denial).
- routes: gateway route-prefix to feature-key map.
"""
