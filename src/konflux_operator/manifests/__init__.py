"""Embedded manifest bundles and the store that serves them."""

from .store import ManifestStore, manifest_store, parse_bundle

__all__ = ["ManifestStore", "manifest_store", "parse_bundle"]
