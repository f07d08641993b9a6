"""
Evaluation data models for Entitlements Service.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, Field

from ..catalog.models import UsagePeriod
from ..catalog.roles import Role


class ReasonCode(str, Enum):
    """Why an access decision came out the way it did."""
    OK = "OK"
    FEATURE_DISABLED = "FEATURE_DISABLED"
    ROLE_NOT_PERMITTED = "ROLE_NOT_PERMITTED"
    NOT_IN_ROLLOUT = "NOT_IN_ROLLOUT"
    LIMIT_REACHED = "LIMIT_REACHED"


@dataclass(frozen=True)
class UserContext:
    """Who is asking, under which role and tier."""
    user_id: str
    role: Role
    is_pro: bool = False


@dataclass(frozen=True)
class UsageSnapshot:
    """Uses already consumed in the caller's current windows."""
    current_usage: Mapping[Union[UsagePeriod, str], int] = field(default_factory=dict)

    def used(self, period: UsagePeriod) -> int:
        if period in self.current_usage:
            return self.current_usage[period]
        return self.current_usage.get(period.value, 0)

    def before_last_use(self) -> "UsageSnapshot":
        """Counts as they stood before the increment that produced this snapshot."""
        return UsageSnapshot(current_usage={
            period: max(count - 1, 0) for period, count in self.current_usage.items()
        })



@dataclass(frozen=True)
class AccessDecision:
    """Outcome of one evaluation.

    ``limit``, ``used`` and ``remaining`` are only populated when a usage
    period was checked against a finite limit.
    """
    allowed: bool
    reason: ReasonCode
    feature_key: str
    period: Optional[UsagePeriod] = None
    limit: Optional[int] = None
    used: Optional[int] = None
    remaining: Optional[int] = None


class EntitlementCheckRequest(BaseModel):
    """Request model for entitlement check."""
    feature_key: str = Field(..., description="Feature key to evaluate")
    user_id: str = Field("", description="User ID, empty for anonymous callers")
    role: str = Field(..., description="Active role of the user")
    is_pro: bool = Field(False, description="Whether the user holds a Pro subscription")
    period: Optional[UsagePeriod] = Field(None, description="Usage period to check limits against")
    current_usage: Optional[Dict[UsagePeriod, int]] = Field(
        None, description="Caller-supplied usage; the service ledger is used when omitted"
    )


class EntitlementCheckResponse(BaseModel):
    """Response model for entitlement check."""
    allowed: bool = Field(..., description="Whether the action is allowed")
    reason: ReasonCode = Field(..., description="First failing check, or OK")
    feature_key: str
    period: Optional[UsagePeriod] = None
    limit: Optional[int] = None
    used: Optional[int] = None
    remaining: Optional[int] = None
    upgrade_message: Optional[str] = None

    @classmethod
    def from_decision(cls, decision: AccessDecision,
                      upgrade_message: Optional[str] = None) -> "EntitlementCheckResponse":
        return cls(
            allowed=decision.allowed,
            reason=decision.reason,
            feature_key=decision.feature_key,
            period=decision.period,
            limit=decision.limit,
            used=decision.used,
            remaining=decision.remaining,
            upgrade_message=upgrade_message,
        )


class UsageRecordRequest(BaseModel):
    """Request model for recording a granted use."""
    feature_key: str
    user_id: str = Field(..., min_length=1)
    role: str
    is_pro: bool = False
    period: Optional[UsagePeriod] = None


class UsageRecordResponse(BaseModel):
    feature_key: str
    user_id: str
    current_usage: Dict[UsagePeriod, int]


class RolloutResponse(BaseModel):
    feature_key: str
    user_id: str
    bucket: int
    rollout_percentage: Optional[int]
    in_rollout: bool


class FeatureListResponse(BaseModel):
    features: List[Dict[str, Any]]
    total: int
