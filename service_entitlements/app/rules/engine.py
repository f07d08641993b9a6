"""
Entitlement evaluation engine for Entitlements Service.
"""

from typing import Optional, Union

from shared.errors import ValidationError
from shared.logging import get_logger

from ..catalog.catalog import FeatureCatalog
from ..catalog.models import UsagePeriod
from .limits import is_limit_reached, limit_for_definition, remaining_uses
from .models import AccessDecision, ReasonCode, UsageSnapshot, UserContext
from .rollout import RolloutBucketer

_EMPTY_USAGE = UsageSnapshot()


class EntitlementEvaluator:
    """Decides whether a user may use a feature.

    Holds only references to an immutable catalog and a stateless bucketer,
    so one instance can serve concurrent requests.
    """

    def __init__(self, catalog: FeatureCatalog, bucketer: Optional[RolloutBucketer] = None):
        self.catalog = catalog
        self.bucketer = bucketer or RolloutBucketer()
        self.logger = get_logger("entitlements.evaluator")

    def evaluate(self, feature_key: str, context: UserContext,
                 usage: Optional[UsageSnapshot] = None,
                 period: Optional[Union[UsagePeriod, str]] = None) -> AccessDecision:
        """Evaluate ``feature_key`` for ``context``.

        Checks run in a fixed order and stop at the first failure:
        unknown or disabled feature, Pro/role gate, rollout, usage limit.
        """
        requested_period = self._coerce_period(period)

        definition = self.catalog.get(feature_key)
        if definition is None:
            return self._decide(feature_key, context, ReasonCode.FEATURE_DISABLED, known=False)

        if not definition.enabled:
            return self._decide(feature_key, context, ReasonCode.FEATURE_DISABLED)

        if definition.pro_only and not context.is_pro and context.role not in definition.roles_enabled:
            return self._decide(feature_key, context, ReasonCode.ROLE_NOT_PERMITTED)

        if definition.has_rollout_restriction and not self.bucketer.is_in_rollout(
            context.user_id, feature_key, definition.rollout_percentage
        ):
            return self._decide(feature_key, context, ReasonCode.NOT_IN_ROLLOUT)

        if requested_period is None:
            return self._decide(feature_key, context, ReasonCode.OK)

        limit = limit_for_definition(definition, context.role, context.is_pro, requested_period)
        if limit is None:
            return self._decide(feature_key, context, ReasonCode.OK, period=requested_period)

        used = (usage or _EMPTY_USAGE).used(requested_period)
        reason = ReasonCode.LIMIT_REACHED if is_limit_reached(limit, used) else ReasonCode.OK
        return self._decide(
            feature_key, context, reason,
            period=requested_period,
            limit=limit,
            used=used,
            remaining=remaining_uses(limit, used),
        )

    def is_allowed(self, feature_key: str, context: UserContext,
                   usage: Optional[UsageSnapshot] = None,
                   period: Optional[Union[UsagePeriod, str]] = None) -> bool:
        return self.evaluate(feature_key, context, usage, period).allowed

    @staticmethod
    def _coerce_period(period: Optional[Union[UsagePeriod, str]]) -> Optional[UsagePeriod]:
        if period is None or isinstance(period, UsagePeriod):
            return period
        try:
            return UsagePeriod(period)
        except ValueError:
            raise ValidationError(
                f"Unknown usage period: {period!r}",
                {"period": period, "allowed": [p.value for p in UsagePeriod]}
            )

    def _decide(self, feature_key: str, context: UserContext, reason: ReasonCode,
                known: bool = True, **limits) -> AccessDecision:
        decision = AccessDecision(
            allowed=reason is ReasonCode.OK,
            reason=reason,
            feature_key=feature_key,
            **limits
        )
        self.logger.debug(
            "Entitlement evaluated",
            feature=feature_key,
            known_feature=known,
            user_id=context.user_id,
            role=context.role.value,
            is_pro=context.is_pro,
            allowed=decision.allowed,
            reason=reason.value
        )
        return decision
