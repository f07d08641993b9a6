"""
Usage-limit lookup and checks.
"""

from typing import Optional

from ..catalog.models import UNLIMITED, FeatureDefinition, UsagePeriod
from ..catalog.roles import Role


def limit_for_definition(definition: FeatureDefinition, role: Role, is_pro: bool,
                         period: UsagePeriod) -> Optional[int]:
    """Return the finite limit for ``period``, or ``None`` when unlimited.

    A role-specific tier map replaces the feature-level one for that role.
    """
    tiers = definition.role_limits.get(role, definition.limits)
    limit = tiers.for_tier(is_pro).get(period)
    if limit is None or limit == UNLIMITED:
        return None
    return limit


def is_limit_reached(limit: Optional[int], used: int) -> bool:
    if limit is None:
        return False
    return used >= limit


def remaining_uses(limit: Optional[int], used: int) -> Optional[int]:
    if limit is None:
        return None
    return max(0, limit - used)
