"""
Entitlements service for the MSME marketplace.
"""

import time
from typing import Optional

from fastapi import HTTPException, Query

from shared.base_service import BaseService
from shared.errors import FeatureAccessDenied
from shared.logging import set_user_context

from .catalog.catalog import FeatureCatalog
from .catalog.roles import parse_role
from .gating.routes import resolve_feature_for_path
from .rules.engine import EntitlementEvaluator
from .rules.messages import prompt_for
from .rules.models import (
    EntitlementCheckRequest, EntitlementCheckResponse,
    FeatureListResponse, RolloutResponse,
    UsageRecordRequest, UsageRecordResponse,
    UsageSnapshot, UserContext
)
from .usage.ledger import InMemoryUsageLedger
from .usage.redis_ledger import RedisUsageLedger


class EntitlementsService(BaseService):
    """Entitlements service implementation."""

    def __init__(self, catalog: Optional[FeatureCatalog] = None, usage_ledger=None, **config_overrides):
        super().__init__("entitlements", 8011, **config_overrides)

        self.catalog = catalog if catalog is not None else FeatureCatalog.from_file(self.config.catalog_path)
        self.evaluator = EntitlementEvaluator(self.catalog)
        self.usage_ledger = usage_ledger if usage_ledger is not None else self._create_usage_ledger()

        self.metrics.set_gauge("catalog_features", len(self.catalog))

        self.app.state.catalog = self.catalog
        self.app.state.evaluator = self.evaluator
        self.app.state.usage_ledger = self.usage_ledger

        self._setup_entitlements_routes()

    def _create_usage_ledger(self):
        if self.config.usage_backend == "redis":
            return RedisUsageLedger(self.config.redis_url)
        return InMemoryUsageLedger()

    def _setup_entitlements_routes(self):
        """Set up entitlements-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "entitlements",
                "message": "MSME Marketplace - Entitlements Service",
                "version": "1.0.0",
                "capabilities": ["feature_catalog", "rollout", "usage_limits"],
                "features": len(self.catalog)
            }

        @self.app.post("/entitlements/check", response_model=EntitlementCheckResponse)
        async def check_entitlements(request: EntitlementCheckRequest):
            """Evaluate a feature for a user."""
            start_time = time.time()
            context = UserContext(
                user_id=request.user_id,
                role=parse_role(request.role),
                is_pro=request.is_pro
            )
            set_user_context(context.user_id, context.role.value)

            if request.current_usage is not None:
                usage = UsageSnapshot(current_usage=dict(request.current_usage))
            elif request.period is not None and context.user_id:
                usage = await self.usage_ledger.get_snapshot(context.user_id, request.feature_key)
            else:
                usage = None

            decision = self.evaluator.evaluate(request.feature_key, context, usage, request.period)

            self.metrics.record_entitlement_check(
                request.feature_key, decision.reason.value, time.time() - start_time
            )
            self.logger.info(
                "Entitlement check completed",
                feature=request.feature_key,
                allowed=decision.allowed,
                reason=decision.reason.value
            )

            return EntitlementCheckResponse.from_decision(
                decision,
                prompt_for(self.catalog, request.feature_key, context.role, decision.reason)
            )

        @self.app.post("/entitlements/usage", response_model=UsageRecordResponse)
        async def record_usage(request: UsageRecordRequest):
            """Record one use of a feature the user is entitled to."""
            context = UserContext(
                user_id=request.user_id,
                role=parse_role(request.role),
                is_pro=request.is_pro
            )
            set_user_context(context.user_id, context.role.value)

            decision = self.evaluator.evaluate(request.feature_key, context)
            if not decision.allowed:
                self._deny_usage(request.feature_key, context, decision)

            # Claim the use first so concurrent requests see each other's counts
            snapshot = await self.usage_ledger.increment(context.user_id, request.feature_key)
            if request.period is not None:
                decision = self.evaluator.evaluate(
                    request.feature_key, context, snapshot.before_last_use(), request.period
                )
                if not decision.allowed:
                    await self.usage_ledger.decrement(context.user_id, request.feature_key)
                    self._deny_usage(request.feature_key, context, decision)

            self.metrics.increment_counter("usage_increments_total", feature=request.feature_key)

            return UsageRecordResponse(
                feature_key=request.feature_key,
                user_id=context.user_id,
                current_usage=dict(snapshot.current_usage)
            )

        @self.app.get("/entitlements/features", response_model=FeatureListResponse)
        async def list_features(enabled: Optional[bool] = Query(None, description="Filter by enabled flag")):
            """List the loaded catalog."""
            features = [
                self.catalog.get(key).to_dict()
                for key in sorted(self.catalog)
                if enabled is None or self.catalog.get(key).enabled == enabled
            ]
            return FeatureListResponse(features=features, total=len(features))

        @self.app.get("/entitlements/features/{feature_key}")
        async def get_feature(feature_key: str):
            """Get a single feature definition."""
            definition = self.catalog.get(feature_key)
            if definition is None:
                raise HTTPException(status_code=404, detail="Feature not found")
            return definition.to_dict()

        @self.app.get("/entitlements/rollout/{feature_key}/{user_id}", response_model=RolloutResponse)
        async def get_rollout(feature_key: str, user_id: str):
            """Report the rollout bucket of a user for a feature."""
            definition = self.catalog.get(feature_key)
            if definition is None:
                raise HTTPException(status_code=404, detail="Feature not found")

            bucketer = self.evaluator.bucketer
            return RolloutResponse(
                feature_key=feature_key,
                user_id=user_id,
                bucket=bucketer.bucket_for(user_id, feature_key),
                rollout_percentage=definition.rollout_percentage,
                in_rollout=bucketer.is_in_rollout(user_id, feature_key, definition.rollout_percentage)
            )

        @self.app.get("/entitlements/route-feature")
        async def get_route_feature(path: str = Query(..., description="Gateway request path")):
            """Resolve the feature a gateway path is gated behind."""
            return {"path": path, "feature_key": resolve_feature_for_path(path)}

    def _deny_usage(self, feature_key: str, context: UserContext, decision):
        prompt = prompt_for(self.catalog, feature_key, context.role, decision.reason)
        raise FeatureAccessDenied(
            feature_key,
            decision.reason.value,
            details={"upgrade_message": prompt} if prompt else None
        )

    async def _check_dependencies(self):
        """Check entitlements service dependencies."""
        dependencies = {"catalog": "ok" if len(self.catalog) else "empty"}

        if isinstance(self.usage_ledger, RedisUsageLedger):
            dependencies["redis"] = "ok" if await self.usage_ledger.health_check() else "error"

        return dependencies

    async def start(self):
        """Start entitlements service components."""
        if isinstance(self.usage_ledger, RedisUsageLedger):
            await self.usage_ledger.start()

        self.logger.info("Entitlements service started", features=len(self.catalog))

    async def stop(self):
        """Stop entitlements service components."""
        if isinstance(self.usage_ledger, RedisUsageLedger):
            await self.usage_ledger.stop()

        self.logger.info("Entitlements service stopped")


def create_app():
    """Create entitlements service application."""
    service = EntitlementsService()
    return service.app


if __name__ == "__main__":
    service = EntitlementsService()
    service.run()
