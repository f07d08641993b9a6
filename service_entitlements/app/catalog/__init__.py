"""
Feature catalog package.

- roles: Canonical ``Role`` enumeration and the ``parse_role`` adapter.
- models: Frozen feature definitions, limit maps and the JSON document schema.
- catalog: ``FeatureCatalog`` snapshot plus file/JSON/mapping loaders.

``features.json`` is the default snapshot shipped with the service.
"""
