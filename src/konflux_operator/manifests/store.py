"""
Manifest store for the pre-rendered component bundles.

Each component ships one multi-document YAML bundle at
``<manifests_dir>/<component>/manifests.yaml``. The store parses every
bundle once, on first access, and afterwards hands out deep copies so
callers can stamp and mutate objects without touching the cache.
"""

import copy
import logging
import threading
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import yaml

from konflux_operator.constants import CRD_KIND
from konflux_operator.errors import ParseError, UnknownComponentError
from konflux_operator.models import Component
from konflux_operator.settings import settings

logger = logging.getLogger(__name__)

BUNDLES_DIR = Path(__file__).parent / "bundles"
BUNDLE_FILENAME = "manifests.yaml"


def parse_bundle(component: str, text: str) -> list[dict[str, Any]]:
    """
    Parse a multi-document YAML bundle into a list of objects.

    Empty documents are skipped. Every other document must be a mapping
    with apiVersion, kind and metadata.name.

    Raises:
        ParseError: If the text is not valid YAML or a document is not a
            Kubernetes object
    """
    try:
        documents = list(yaml.safe_load_all(text))
    except yaml.YAMLError as e:
        raise ParseError(component, str(e)) from e

    objects = []
    for index, document in enumerate(documents):
        if document is None:
            continue
        if not isinstance(document, dict):
            raise ParseError(
                component, f"expected a mapping, got {type(document).__name__}", index
            )
        if not document.get("apiVersion") or not document.get("kind"):
            raise ParseError(component, "missing apiVersion or kind", index)
        metadata = document.get("metadata")
        if not isinstance(metadata, dict) or not metadata.get("name"):
            raise ParseError(component, "missing metadata.name", index)
        objects.append(document)

    return objects


class ManifestStore:
    """
    Read-only, lazily initialized cache of parsed manifest bundles.

    Initialization is guarded by a lock with a double-check, so concurrent
    reconciliations trigger exactly one parse. After that the cache is only
    read.
    """

    def __init__(
        self,
        manifests_dir: Path | None = None,
        components: tuple[str, ...] | None = None,
    ):
        self._manifests_dir = manifests_dir
        self._components = components or tuple(c.value for c in Component)
        self._cache: dict[str, list[dict[str, Any]]] | None = None
        self._lock = threading.Lock()

    @property
    def manifests_dir(self) -> Path:
        return self._manifests_dir or settings.manifests_dir or BUNDLES_DIR

    @property
    def components(self) -> tuple[str, ...]:
        return self._components

    def load(self) -> None:
        """
        Parse every bundle now.

        Call at startup so a malformed bundle fails the process instead of
        the first reconciliation.
        """
        self._ensure_loaded()

    def _ensure_loaded(self) -> dict[str, list[dict[str, Any]]]:
        if self._cache is None:
            with self._lock:
                if self._cache is None:
                    self._cache = self._parse_all()
        return self._cache

    def _parse_all(self) -> dict[str, list[dict[str, Any]]]:
        cache = {}
        for component in self._components:
            path = self.manifests_dir / component / BUNDLE_FILENAME
            try:
                text = path.read_text(encoding="utf-8")
            except OSError as e:
                raise ParseError(component, f"cannot read {path}: {e}") from e
            cache[component] = parse_bundle(component, text)
            logger.debug(
                f"Loaded {len(cache[component])} objects for component {component}",
                extra={"component": component},
            )
        return cache

    def _objects(self, component: str) -> list[dict[str, Any]]:
        cache = self._ensure_loaded()
        try:
            return cache[str(component)]
        except KeyError:
            raise UnknownComponentError(str(component)) from None

    def get_for_component(self, component: str) -> list[dict[str, Any]]:
        """
        Get a component's objects.

        Returns:
            Deep copy of the parsed bundle, safe for the caller to mutate

        Raises:
            UnknownComponentError: If no bundle exists for the component
            ParseError: If any bundle failed to parse
        """
        return copy.deepcopy(self._objects(component))

    def get_crd_names_for_component(self, component: str) -> list[str]:
        """Names of the CustomResourceDefinitions in a component's bundle."""
        return [
            obj["metadata"]["name"]
            for obj in self._objects(component)
            if obj.get("kind") == CRD_KIND
        ]

    def walk(self) -> Iterator[tuple[str, list[dict[str, Any]]]]:
        """Yield (component, objects) for every component in declaration order."""
        for component in self._components:
            yield component, self.get_for_component(component)


# Global store serving the bundles shipped with the operator
manifest_store = ManifestStore()
