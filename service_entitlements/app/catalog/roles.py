"""
Canonical user roles and the boundary adapter that maps external role
spellings onto them.
"""

from enum import Enum
from typing import Any, Dict

from shared.errors import UnknownRoleError


class Role(str, Enum):
    """Roles a marketplace user can act under."""
    MSME_OWNER = "msmeOwner"
    BUYER = "buyer"
    SELLER = "seller"
    INVESTOR = "investor"
    AGENT = "agent"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"
    DEVELOPER = "developer"


# Legacy spellings seen on web, mobile and gateway payloads
_ROLE_ALIASES: Dict[str, Role] = {
    "businessowner": Role.MSME_OWNER,
    "msme": Role.MSME_OWNER,
    "vendor": Role.SELLER,
}


def _normalize(value: str) -> str:
    return "".join(ch for ch in value.strip().lower() if ch not in "_- ")


_ROLE_LOOKUP: Dict[str, Role] = {_normalize(role.value): role for role in Role}
_ROLE_LOOKUP.update(_ROLE_ALIASES)


def parse_role(value: Any) -> Role:
    """Translate an external role representation into a ``Role``.

    Accepts ``Role`` members, canonical values and the legacy spellings used
    by the other clients (``MSME_OWNER``, ``msmeowner``, ``super_admin``,
    ``business_owner``, ``vendor``). Raises ``UnknownRoleError`` otherwise.
    """
    if isinstance(value, Role):
        return value
    if not isinstance(value, str):
        raise UnknownRoleError(value)

    role = _ROLE_LOOKUP.get(_normalize(value))
    if role is None:
        raise UnknownRoleError(value)
    return role
