# =============================================================================
# Manifest Adapter - Sidecar Manifest Parsing
# =============================================================================

"""
Parse sidecar manifests into validated :class:`TableManifest` or
:class:`FileManifest` models.

Manifests are JSON by default; YAML manifests are supported for components
that write them.
"""

import json
from typing import Literal, Type, TypeVar

import yaml
from pydantic import ValidationError

from libs.models import FileManifest, TableManifest

from .exceptions import ConfigurationError

__all__ = ["ManifestAdapter"]

ManifestT = TypeVar("ManifestT", TableManifest, FileManifest)


class ManifestAdapter:
    """
    Reads manifest text in one format.

    Example:
        >>> adapter = ManifestAdapter()
        >>> adapter.parse('{"destination": "out.c-main.orders"}', "orders.csv.manifest").destination
        'out.c-main.orders'
    """

    def __init__(self, format: Literal["json", "yaml"] = "json") -> None:
        if format not in ("json", "yaml"):
            raise ValueError(f"Unsupported manifest format: {format}")
        self.format = format

    def _decode(self, text: str) -> dict:
        if self.format == "yaml":
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError("manifest must be an object")
        return data

    def parse(
        self,
        text: str,
        name: str,
        model: Type[ManifestT] = TableManifest,
    ) -> ManifestT:
        """
        Parse and validate one manifest.

        Args:
            text: Manifest content
            name: Manifest file name (used in error messages)
            model: Manifest model (FileManifest for file output mapping)

        Raises:
            ConfigurationError: If the content cannot be decoded or validated
        """
        try:
            return model.model_validate(self._decode(text))
        except (ValueError, yaml.YAMLError, ValidationError) as exc:
            raise ConfigurationError(f'Failed to parse manifest "{name}": {exc}') from exc
