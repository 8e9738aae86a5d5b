"""
YAML loader with per-path caching for coordinator settings.

A deployment file selects the capability set of a contract instance::

    admin_gated_registration: true
    registration_slots: 16
    reciprocal_subscriptions: true
    consume_slot_on_duplicate: false

Usage::

    from migratable.loader import CoordinatorSettingsLoader

    settings = CoordinatorSettingsLoader().load(Path("coordinator.yaml"))
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import ClassVar

import yaml

from migratable.coordinator import CoordinatorSettings

logger = logging.getLogger(__name__)


class CoordinatorSettingsLoader:
    """Loads and caches coordinator settings from YAML files."""

    _cache: ClassVar[dict[str, CoordinatorSettings]] = {}

    @classmethod
    def clear_cache(cls) -> None:
        """Clear the settings cache (useful in tests)."""
        cls._cache.clear()

    def load(self, path: Path) -> CoordinatorSettings:
        """Load coordinator settings from a YAML file.

        Args:
            path: Path to the YAML settings file.

        Returns:
            Validated ``CoordinatorSettings`` instance.

        Raises:
            FileNotFoundError: If the file does not exist.
            TypeError: If the YAML root is not a mapping.
            yaml.YAMLError: If the file contains invalid YAML.
            pydantic.ValidationError: If the YAML does not match the schema.
        """
        key = str(path.resolve())
        if key in self._cache:
            logger.debug("Coordinator settings cache hit: %s", key)
            return self._cache[key]

        if not path.exists():
            raise FileNotFoundError(f"Coordinator settings file not found: {path}")

        with open(path) as fh:
            raw = yaml.safe_load(fh)

        settings = self._validate(raw, str(path))
        self._cache[key] = settings

        logger.debug(
            "Loaded coordinator settings: admin_gated=%s slots=%s reciprocal=%s",
            settings.admin_gated_registration,
            settings.registration_slots,
            settings.reciprocal_subscriptions,
        )
        return settings

    def load_from_string(self, yaml_str: str) -> CoordinatorSettings:
        """Load coordinator settings from a YAML string (convenience for testing)."""
        return self._validate(yaml.safe_load(yaml_str), "<string>")

    @staticmethod
    def _validate(raw: object, source: str) -> CoordinatorSettings:
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise TypeError(
                f"Expected YAML mapping at root of {source}, got {type(raw).__name__}"
            )
        return CoordinatorSettings.model_validate(raw)
