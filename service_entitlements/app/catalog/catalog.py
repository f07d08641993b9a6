"""
Immutable feature catalog snapshot and its loaders.
"""

import json
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from shared.errors import CatalogValidationError, UnknownRoleError
from shared.logging import get_logger

from .models import FeatureDefinition, FeatureDefinitionDocument, TierLimits, UsagePeriod
from .roles import Role, parse_role
from ..rules.limits import limit_for_definition

logger = get_logger("entitlements.catalog")


class FeatureCatalog:
    """Read-only view over ``FeatureKey -> FeatureDefinition``.

    A catalog is built once (at startup, or per test) and never mutated;
    every evaluation reads from the same snapshot without locking.
    """

    def __init__(self, definitions: Mapping[str, FeatureDefinition]):
        for key, definition in definitions.items():
            if key != definition.key:
                raise CatalogValidationError(
                    "Feature key does not match its definition",
                    [{"feature": key, "field": "key", "error": f"definition is keyed {definition.key!r}"}]
                )
        self._definitions: Mapping[str, FeatureDefinition] = MappingProxyType(dict(definitions))

    def get(self, feature_key: str) -> Optional[FeatureDefinition]:
        """Return the definition for ``feature_key`` or ``None`` if unknown."""
        return self._definitions.get(feature_key)

    def __contains__(self, feature_key: object) -> bool:
        return feature_key in self._definitions

    def __iter__(self) -> Iterator[str]:
        return iter(self._definitions)

    def __len__(self) -> int:
        return len(self._definitions)

    def keys(self):
        return self._definitions.keys()

    def items(self):
        return self._definitions.items()

    def limit_for(self, feature_key: str, role: Role, is_pro: bool,
                  period: UsagePeriod) -> Optional[int]:
        """Resolve the tier-appropriate limit; ``None`` means unlimited.

        Unknown features have a limit of 0, so no use of them is ever permitted.
        """
        definition = self.get(feature_key)
        if definition is None:
            return 0
        return limit_for_definition(definition, role, is_pro, period)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "FeatureCatalog":
        """Validate a parsed catalog document and build a snapshot.

        All problems are collected and reported together in a single
        ``CatalogValidationError``.
        """
        if not isinstance(raw, Mapping):
            raise CatalogValidationError(
                "Feature catalog must be a JSON object keyed by feature",
                [{"feature": None, "field": None, "error": f"got {type(raw).__name__}"}]
            )

        errors: List[Dict[str, Any]] = []
        definitions: Dict[str, FeatureDefinition] = {}

        for key, entry in raw.items():
            if not isinstance(key, str) or not key:
                errors.append({"feature": key, "field": None, "error": "feature key must be a non-empty string"})
                continue

            try:
                document = FeatureDefinitionDocument.model_validate(entry)
            except PydanticValidationError as e:
                for err in e.errors():
                    errors.append({
                        "feature": key,
                        "field": ".".join(str(part) for part in err["loc"]),
                        "error": err["msg"],
                    })
                continue

            definition = _build_definition(key, document, errors)
            if definition is not None:
                definitions[key] = definition

        if errors:
            logger.error("Feature catalog rejected", error_count=len(errors))
            raise CatalogValidationError(
                f"Feature catalog is invalid ({len(errors)} error(s))",
                errors
            )

        catalog = cls(definitions)
        logger.info("Feature catalog loaded", features=len(catalog))
        return catalog

    @classmethod
    def from_json(cls, text: Union[str, bytes]) -> "FeatureCatalog":
        duplicates: List[str] = []

        def reject_duplicates(pairs):
            seen = {}
            for key, value in pairs:
                if key in seen:
                    duplicates.append(key)
                seen[key] = value
            return seen

        try:
            raw = json.loads(text, object_pairs_hook=reject_duplicates)
        except json.JSONDecodeError as e:
            raise CatalogValidationError(
                "Feature catalog is not valid JSON",
                [{"feature": None, "field": None, "error": str(e)}]
            )

        if duplicates:
            raise CatalogValidationError(
                "Feature catalog has duplicate keys",
                [{"feature": None, "field": key, "error": "duplicate key"} for key in duplicates]
            )
        return cls.from_mapping(raw)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "FeatureCatalog":
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise CatalogValidationError(
                f"Feature catalog could not be read: {path}",
                [{"feature": None, "field": None, "error": str(e)}]
            )
        logger.info("Reading feature catalog", path=str(path))
        return cls.from_json(text)


def _build_definition(key: str, document: FeatureDefinitionDocument,
                      errors: List[Dict[str, Any]]) -> Optional[FeatureDefinition]:
    error_count = len(errors)

    roles_enabled = set()
    for value in document.roles_enabled:
        try:
            roles_enabled.add(parse_role(value))
        except UnknownRoleError:
            errors.append({"feature": key, "field": "rolesEnabled", "error": f"unknown role {value!r}"})

    role_limits: Dict[Role, TierLimits] = {}
    for value, tier_document in document.role_limits.items():
        try:
            role_limits[parse_role(value)] = tier_document.to_domain()
        except UnknownRoleError:
            errors.append({"feature": key, "field": "roleLimits", "error": f"unknown role {value!r}"})

    role_messages: Dict[Role, str] = {}
    for value, message in document.role_upgrade_messages.items():
        try:
            role_messages[parse_role(value)] = message
        except UnknownRoleError:
            errors.append({"feature": key, "field": "roleUpgradeMessages", "error": f"unknown role {value!r}"})

    if len(errors) > error_count:
        return None

    return FeatureDefinition(
        key=key,
        enabled=document.enabled,
        label=document.label,
        description=document.description,
        pro_only=document.pro_only,
        roles_enabled=frozenset(roles_enabled),
        access_level=document.access_level,
        rollout_percentage=document.rollout_percentage,
        limits=document.limits.to_domain(),
        role_limits=MappingProxyType(role_limits),
        upgrade_message=document.upgrade_message,
        role_upgrade_messages=MappingProxyType(role_messages),
    )
