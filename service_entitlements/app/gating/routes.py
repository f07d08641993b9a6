"""
Gateway route prefixes and the feature each one is gated behind.
"""

from typing import Dict, Optional

FEATURE_ROUTE_MAP: Dict[str, str] = {
    # User / profile
    "user/profile": "USER_PROFILE",
    "user/change-password": "USER_PROFILE",
    "user/avatar": "USER_PROFILE",

    # MSME business profile
    "business/profile": "BUSINESS_PROFILE",
    "business/documents": "BUSINESS_PROFILE",
    "business/verify-gst": "BUSINESS_PROFILE_VERIFY",

    # Payments and Pro subscription
    "paymentservice/upgrade": "PRO_UPGRADE",
    "paymentservice/verify-upgrade": "PRO_UPGRADE",
    "paymentservice/orders": "PAYMENTS",
    "paymentservice/transactions": "PAYMENT_HISTORY",
    "paymentservice/invoices": "PAYMENT_HISTORY",

    "analytics/dashboard": "ADVANCED_ANALYTICS",
    "analytics/business": "ADVANCED_ANALYTICS",
    "analytics/payments": "ADVANCED_ANALYTICS",

    # Marketplace
    "marketplace/products": "B2B_MARKETPLACE",
    "marketplace/product": "B2B_MARKETPLACE",
    "marketplace/search": "B2B_MARKETPLACE",
    "marketplace/categories": "B2B_MARKETPLACE",
    "marketplace/vendors": "B2B_MARKETPLACE",
    "marketplace/vendor": "B2B_MARKETPLACE",

    "messaging/investor": "MESSAGING",
    "messaging": "MESSAGING",
    "orders": "ORDERS_MANAGEMENT",

    "loans/applications": "BUSINESS_LOANS",
    "loans/eligibility": "BUSINESS_LOANS",
    "loans": "BUSINESS_LOANS",

    "valuation/calculate": "AI_BUSINESS_VALUATION",
    "compliance/checklist": "COMPLIANCE_CHECKLIST",
    "eaasservice/programs": "EXIT_STRATEGY",

    # Market linkage / matchmaking
    "matchmaking": "MATCHMAKING",
    "recommendationservice": "RECOMMENDATIONS",
    "searchmatchmakingservice": "SEARCHMATCHMAKING",

    "crm/pipeline": "CRM_PIPELINE",
    "training/catalog": "LEADERSHIP_TRAINING",
    "deals": "DEALS_MARKETPLACE",

    # Admin / superadmin
    "admin/features": "ADMIN_FEATURE_TOGGLES",
    "admin/users": "ADMIN_USER_MANAGEMENT",
    "superadmin/system-health": "SUPERADMIN_MONITORING",
    "superadmin/database": "SUPERADMIN_DATABASE_OPS",
}

_API_PREFIXES = ("api/v1/", "api/")


def resolve_feature_for_path(path: str, route_map: Optional[Dict[str, str]] = None) -> Optional[str]:
    """Longest route prefix matching ``path``, or ``None`` for ungated paths.

    A prefix matches on whole path segments: ``loans`` matches ``/loans`` and
    ``/loans/42`` but not ``/loansharks``.
    """
    route_map = FEATURE_ROUTE_MAP if route_map is None else route_map

    normalized = path.split("?", 1)[0].strip("/")
    for prefix in _API_PREFIXES:
        if normalized.startswith(prefix):
            normalized = normalized[len(prefix):]
            break

    best: Optional[str] = None
    for route in route_map:
        if normalized == route or normalized.startswith(route + "/"):
            if best is None or len(route) > len(best):
                best = route

    return route_map[best] if best is not None else None
