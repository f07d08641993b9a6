"""
Unit tests for route gating.
"""

import json

import pytest
from fastapi import Depends, Request
from fastapi.testclient import TestClient

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_entitlements.app.catalog.roles import Role
from service_entitlements.app.gating.require_feature import FeatureGate, user_context_from
from service_entitlements.app.gating.routes import resolve_feature_for_path
from service_entitlements.app.main import EntitlementsService
from service_entitlements.app.rules.engine import EntitlementEvaluator
from service_entitlements.app.rules.models import ReasonCode
from service_entitlements.app.usage.ledger import InMemoryUsageLedger
from shared.errors import UnknownRoleError


class TestUserContextFrom:
    """Test cases for user payload parsing."""

    def test_gateway_payload(self):
        """Test the gateway's snake_case payload."""
        context = user_context_from({"user_id": "u1", "role": "msme_owner", "is_pro": True})

        assert context.user_id == "u1"
        assert context.role is Role.MSME_OWNER
        assert context.is_pro is True

    def test_client_payload(self):
        """Test the web/mobile camelCase payload."""
        context = user_context_from({"id": 42, "roles": ["investor", "buyer"], "isPro": False})

        assert context.user_id == "42"
        assert context.role is Role.INVESTOR
        assert context.is_pro is False

    @pytest.mark.parametrize("claim,expected", [
        (True, True),
        ("true", True),
        (" True ", True),
        (False, False),
        ("false", False),
        ("0", False),
        ("no", False),
        (1, False),
        (None, False),
    ])
    def test_pro_claim_is_parsed_strictly(self, claim, expected):
        """Test only a true boolean or "true" grants Pro."""
        context = user_context_from({"user_id": "u1", "role": "buyer", "isPro": claim})

        assert context.is_pro is expected

    def test_string_false_does_not_unlock_pro_features(self, catalog):
        """Test a stringly-typed false claim is denied on Pro-only features."""
        evaluator = EntitlementEvaluator(catalog)
        context = user_context_from({"user_id": "u1", "role": "buyer", "is_pro": "false"})

        assert evaluator.evaluate("EARLY_ACCESS", context).reason is ReasonCode.ROLE_NOT_PERMITTED

    def test_missing_role(self):
        """Test payloads without a role are rejected."""
        with pytest.raises(UnknownRoleError):
            user_context_from({"user_id": "u1"})


class TestResolveFeatureForPath:
    """Test cases for gateway path resolution."""

    @pytest.mark.parametrize("path,expected", [
        ("/api/v1/loans", "BUSINESS_LOANS"),
        ("/api/v1/loans/applications/7", "BUSINESS_LOANS"),
        ("/api/business/verify-gst", "BUSINESS_PROFILE_VERIFY"),
        ("/api/v1/business/profile?x=1", "BUSINESS_PROFILE"),
        ("/api/v1/messaging/investor/threads", "MESSAGING"),
        ("/superadmin/database/backup", "SUPERADMIN_DATABASE_OPS"),
        ("/api/v1/loansharks", None),
        ("/api/v1/health", None),
    ])
    def test_resolve(self, path, expected):
        """Test longest whole-segment prefix matching."""
        assert resolve_feature_for_path(path) == expected

    def test_custom_route_map(self):
        """Test a caller-supplied route map."""
        route_map = {"reports": "REPORTS", "reports/export": "EXPORT"}

        assert resolve_feature_for_path("/reports/export/csv", route_map) == "EXPORT"
        assert resolve_feature_for_path("/reports/weekly", route_map) == "REPORTS"


class TestFeatureGate:
    """Test cases for the FeatureGate dependency."""

    @pytest.fixture
    def usage_ledger(self):
        return InMemoryUsageLedger()

    @pytest.fixture
    def client(self, catalog, usage_ledger):
        """Service with gated routes and a header-based stand-in for authentication."""
        service = EntitlementsService(catalog=catalog, usage_ledger=usage_ledger)
        app = service.app

        @app.middleware("http")
        async def authenticate(request: Request, call_next):
            header = request.headers.get("X-Test-User")
            if header:
                request.state.user_info = json.loads(header)
            return await call_next(request)

        @app.get("/sellers/contact")
        async def contact_seller(decision=Depends(FeatureGate("CONTACT_SELLERS", "daily"))):
            return {"reason": decision.reason.value, "remaining": decision.remaining}

        @app.get("/early-access")
        async def early_access(decision=Depends(FeatureGate("EARLY_ACCESS"))):
            return {"reason": decision.reason.value}

        @app.get("/new-search")
        async def new_search(decision=Depends(FeatureGate("NEW_SEARCH_UI"))):
            return {"reason": decision.reason.value}

        return TestClient(app)

    @staticmethod
    def user(**user_info):
        return {"X-Test-User": json.dumps(user_info)}

    def test_unauthenticated(self, client):
        """Test requests without a user are rejected."""
        response = client.get("/early-access")

        assert response.status_code == 401
        assert response.json()["code"] == "AUTHENTICATION_ERROR"

    def test_allowed(self, client):
        """Test an entitled user reaches the route."""
        response = client.get("/early-access", headers=self.user(user_id="u1", role="investor"))

        assert response.status_code == 200
        assert response.json() == {"reason": "OK"}

    def test_denied_with_upgrade_prompt(self, client):
        """Test a free buyer is refused with a prompt."""
        response = client.get("/early-access", headers=self.user(user_id="u1", role="buyer"))

        assert response.status_code == 403
        data = response.json()
        assert data["code"] == "FEATURE_ACCESS_DENIED"
        assert data["details"]["reason"] == "ROLE_NOT_PERMITTED"
        assert data["details"]["upgrade_message"] == "Get early access to hot deals before others with Pro!"

    def test_denied_without_prompt(self, client):
        """Test rollout denials carry no prompt."""
        response = client.get("/new-search", headers=self.user(user_id="u123", role="buyer"))

        assert response.status_code == 403
        data = response.json()
        assert data["details"]["reason"] == "NOT_IN_ROLLOUT"
        assert "upgrade_message" not in data["details"]

    def test_string_pro_claim(self, client):
        """Test a "false" string claim is not treated as Pro."""
        response = client.get("/early-access", headers=self.user(user_id="u1", role="buyer", isPro="false"))
        assert response.status_code == 403

        response = client.get("/early-access", headers=self.user(user_id="u1", role="buyer", isPro="true"))
        assert response.status_code == 200

    def test_unknown_role(self, client):
        """Test unknown roles are a client error."""
        response = client.get("/early-access", headers=self.user(user_id="u1", role="wizard"))

        assert response.status_code == 400

    def test_limit_uses_ledger(self, client):
        """Test the gate reads recorded usage for its period."""
        headers = self.user(user_id="u1", role="buyer")

        response = client.get("/sellers/contact", headers=headers)
        assert response.json() == {"reason": "OK", "remaining": 5}

        usage_request = {"feature_key": "CONTACT_SELLERS", "user_id": "u1", "role": "buyer"}
        for _ in range(5):
            client.post("/entitlements/usage", json=usage_request)

        response = client.get("/sellers/contact", headers=headers)
        assert response.status_code == 403
        assert response.json()["details"]["reason"] == "LIMIT_REACHED"

    def test_unknown_period(self):
        """Test gates reject unknown periods at construction."""
        with pytest.raises(ValueError):
            FeatureGate("CONTACT_SELLERS", "weekly")
