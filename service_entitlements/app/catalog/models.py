"""
Feature catalog data models.

Domain objects are frozen dataclasses so a loaded snapshot can be shared
between concurrent evaluations. The ``*Document`` pydantic models describe
the persisted JSON shape and are only used while loading.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, FrozenSet, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .roles import Role

UNLIMITED = -1


class UsagePeriod(str, Enum):
    """Counting windows a usage limit can be expressed against."""
    DAILY = "daily"
    MONTHLY = "monthly"
    TOTAL = "total"


class AccessLevel(str, Enum):
    """What a user may do with a feature once admitted."""
    READ = "READ"
    WRITE = "WRITE"
    ADMIN = "ADMIN"


@dataclass(frozen=True)
class LimitMap:
    """Per-period maximum uses. ``None`` or ``UNLIMITED`` means no cap."""
    daily: Optional[int] = None
    monthly: Optional[int] = None
    total: Optional[int] = None

    def get(self, period: UsagePeriod) -> Optional[int]:
        return getattr(self, period.value)

    def as_dict(self) -> Dict[str, int]:
        return {
            period.value: self.get(period)
            for period in UsagePeriod
            if self.get(period) is not None
        }


@dataclass(frozen=True)
class TierLimits:
    """Free and Pro limit maps for one feature (or one role of a feature)."""
    free: LimitMap = field(default_factory=LimitMap)
    pro: LimitMap = field(default_factory=LimitMap)

    def for_tier(self, is_pro: bool) -> LimitMap:
        return self.pro if is_pro else self.free

    def as_dict(self) -> Dict[str, Dict[str, int]]:
        return {"free": self.free.as_dict(), "pro": self.pro.as_dict()}


@dataclass(frozen=True)
class FeatureDefinition:
    """One entry of the feature catalog."""
    key: str
    enabled: bool
    label: str = ""
    description: str = ""
    pro_only: bool = False
    roles_enabled: FrozenSet[Role] = frozenset()
    access_level: Optional[AccessLevel] = None
    rollout_percentage: Optional[int] = None
    limits: TierLimits = field(default_factory=TierLimits)
    role_limits: Mapping[Role, TierLimits] = field(default_factory=lambda: MappingProxyType({}))
    upgrade_message: Optional[str] = None
    role_upgrade_messages: Mapping[Role, str] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def has_rollout_restriction(self) -> bool:
        return self.rollout_percentage is not None and self.rollout_percentage < 100

    def to_dict(self) -> Dict[str, object]:
        """Camel-cased view matching the catalog document."""
        return {
            "key": self.key,
            "label": self.label,
            "description": self.description,
            "enabled": self.enabled,
            "proOnly": self.pro_only,
            "rolesEnabled": sorted(role.value for role in self.roles_enabled),
            "accessLevel": self.access_level.value if self.access_level else None,
            "rolloutPercentage": self.rollout_percentage,
            "limits": self.limits.as_dict(),
            "roleLimits": {
                role.value: tier.as_dict() for role, tier in self.role_limits.items()
            },
        }


class LimitMapDocument(BaseModel):
    """Limit map as written in the catalog document."""
    model_config = ConfigDict(extra="forbid")

    daily: Optional[int] = None
    monthly: Optional[int] = None
    total: Optional[int] = None

    @field_validator("daily", "monthly", "total")
    @classmethod
    def check_limit(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value < UNLIMITED:
            raise ValueError(f"limit must be {UNLIMITED} (unlimited) or a non-negative integer")
        return value

    def to_domain(self) -> LimitMap:
        return LimitMap(daily=self.daily, monthly=self.monthly, total=self.total)


class TierLimitsDocument(BaseModel):
    model_config = ConfigDict(extra="forbid")

    free: LimitMapDocument = Field(default_factory=LimitMapDocument)
    pro: LimitMapDocument = Field(default_factory=LimitMapDocument)

    def to_domain(self) -> TierLimits:
        return TierLimits(free=self.free.to_domain(), pro=self.pro.to_domain())


class FeatureDefinitionDocument(BaseModel):
    """A single feature entry of the persisted catalog."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    label: str = ""
    description: str = ""
    enabled: bool
    pro_only: bool = Field(False, alias="proOnly")
    roles_enabled: List[str] = Field(default_factory=list, alias="rolesEnabled")
    access_level: Optional[AccessLevel] = Field(None, alias="accessLevel")
    rollout_percentage: Optional[int] = Field(None, alias="rolloutPercentage", ge=0, le=100)
    limits: TierLimitsDocument = Field(default_factory=TierLimitsDocument)
    role_limits: Dict[str, TierLimitsDocument] = Field(default_factory=dict, alias="roleLimits")
    upgrade_message: Optional[str] = Field(None, alias="upgradeMessage")
    role_upgrade_messages: Dict[str, str] = Field(default_factory=dict, alias="roleUpgradeMessages")
