"""
Shared fixtures for Entitlements Service tests.
"""

import sys
import os

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_entitlements.app.catalog.catalog import FeatureCatalog


CATALOG_DOCUMENT = {
    "CONTACT_SELLERS": {
        "label": "Contact Sellers",
        "description": "Send an enquiry to a seller.",
        "enabled": True,
        "proOnly": False,
        "rolloutPercentage": 100,
        "limits": {"free": {"daily": 5}, "pro": {"daily": -1}},
        "roleUpgradeMessages": {
            "buyer": "Upgrade to Pro for unlimited seller messaging and priority support!"
        }
    },
    "EARLY_ACCESS": {
        "label": "Early Access",
        "enabled": True,
        "proOnly": True,
        "rolesEnabled": ["investor"],
        "upgradeMessage": "Get early access to hot deals before others with Pro!"
    },
    "NEW_SEARCH_UI": {
        "label": "New Search UI",
        "enabled": True,
        "proOnly": False,
        "rolloutPercentage": 30
    },
    "DISABLED_FEATURE": {
        "label": "Disabled",
        "enabled": False,
        "proOnly": True,
        "rolesEnabled": ["buyer", "investor"],
        "rolloutPercentage": 100,
        "limits": {"free": {"daily": 0}, "pro": {"daily": 0}}
    },
    "GATED_ROLLOUT": {
        "label": "Pro-only feature at zero rollout",
        "enabled": True,
        "proOnly": True,
        "rolesEnabled": [],
        "rolloutPercentage": 0
    },
    "LOAN_APPLICATIONS": {
        "label": "Loan applications",
        "enabled": True,
        "limits": {"free": {"total": 10}},
        "roleLimits": {
            "msmeOwner": {"free": {"monthly": 2}, "pro": {"monthly": -1}}
        }
    }
}


@pytest.fixture
def catalog_document():
    """Raw catalog document used to build the test catalog."""
    return CATALOG_DOCUMENT


@pytest.fixture
def catalog():
    """Validated catalog built from the scenario document."""
    return FeatureCatalog.from_mapping(CATALOG_DOCUMENT)
