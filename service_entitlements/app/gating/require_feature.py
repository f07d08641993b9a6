"""
FastAPI dependency enforcing a feature entitlement on a route.
"""

from typing import Any, Mapping, Optional, Union

from fastapi import Request

from shared.errors import AuthenticationError, FeatureAccessDenied
from shared.logging import get_logger, set_user_context

from ..catalog.models import UsagePeriod
from ..catalog.roles import parse_role
from ..rules.messages import prompt_for
from ..rules.models import AccessDecision, UserContext

logger = get_logger("entitlements.gate")


def _is_pro_claim(value: Any) -> bool:
    """Only ``True`` or the string ``"true"`` grant Pro; anything else does not."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False


def user_context_from(user_info: Mapping[str, Any]) -> UserContext:
    """Build a ``UserContext`` from an authenticated user payload.

    Accepts the key spellings used by the gateway and the web/mobile clients
    (``user_id``/``id``, ``role``/``roles``, ``is_pro``/``isPro``).
    """
    user_id = user_info.get("user_id") or user_info.get("id") or ""
    role = user_info.get("role")
    if role is None and user_info.get("roles"):
        role = user_info["roles"][0]
    is_pro = user_info.get("is_pro", user_info.get("isPro", False))
    return UserContext(user_id=str(user_id), role=parse_role(role), is_pro=_is_pro_claim(is_pro))


class FeatureGate:
    """Route dependency: ``Depends(FeatureGate("ADVANCED_ANALYTICS"))``.

    Expects the authentication layer to have stored the caller on
    ``request.state.user_info`` and the service to expose ``evaluator``,
    ``usage_ledger`` and ``catalog`` on ``app.state``.
    """

    def __init__(self, feature_key: str, period: Optional[Union[UsagePeriod, str]] = None):
        self.feature_key = feature_key
        self.period = UsagePeriod(period) if period is not None else None

    async def __call__(self, request: Request) -> AccessDecision:
        user_info = getattr(request.state, "user_info", None)
        if not user_info:
            raise AuthenticationError()

        context = user_context_from(user_info)
        set_user_context(context.user_id, context.role.value)

        state = request.app.state
        usage = None
        if self.period is not None and context.user_id:
            usage = await state.usage_ledger.get_snapshot(context.user_id, self.feature_key)

        decision = state.evaluator.evaluate(self.feature_key, context, usage, self.period)
        if not decision.allowed:
            logger.warning(
                "Feature access denied",
                feature=self.feature_key,
                reason=decision.reason.value,
                path=request.url.path
            )
            details = {}
            prompt = prompt_for(state.catalog, self.feature_key, context.role, decision.reason)
            if prompt:
                details["upgrade_message"] = prompt
            raise FeatureAccessDenied(self.feature_key, decision.reason.value, details=details)

        return decision
