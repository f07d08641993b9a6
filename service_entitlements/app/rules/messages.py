"""
Upgrade prompts shown when a decision denies a user.
"""

from typing import Optional

from ..catalog.catalog import FeatureCatalog
from ..catalog.roles import Role
from .models import ReasonCode

DEFAULT_UPGRADE_MESSAGE = "Upgrade to Pro for unlimited access and premium features!"

# Only these denials can be lifted by upgrading
UPGRADEABLE_REASONS = frozenset({ReasonCode.ROLE_NOT_PERMITTED, ReasonCode.LIMIT_REACHED})


def upgrade_message(catalog: FeatureCatalog, feature_key: str, role: Role) -> str:
    """Role-specific prompt, then the feature prompt, then the generic one."""
    definition = catalog.get(feature_key)
    if definition is None:
        return DEFAULT_UPGRADE_MESSAGE
    return (
        definition.role_upgrade_messages.get(role)
        or definition.upgrade_message
        or DEFAULT_UPGRADE_MESSAGE
    )


def prompt_for(catalog: FeatureCatalog, feature_key: str, role: Role,
               reason: ReasonCode) -> Optional[str]:
    if reason not in UPGRADEABLE_REASONS:
        return None
    return upgrade_message(catalog, feature_key, role)
