"""Shared pytest fixtures for unit tests."""

import pytest

from konflux_operator.constants import KONFLUX_API_VERSION
from konflux_operator.models import OwnerIdentity
from tests.utils.fake_cluster import CERT_MANAGER_KINDS, DEFAULT_KINDS, FakeDynamicClient


class MockStatus:
    """Mock status object that allows dynamic attribute assignment."""

    def __init__(self):
        self.phase = None
        self.message = None
        self.observedGeneration = None
        self.conditions = []

    def __setattr__(self, name: str, value) -> None:
        self.__dict__[name] = value

    def __getattr__(self, name: str):
        return self.__dict__.get(name)


@pytest.fixture
def cluster():
    """Fake cluster serving core, apps and RBAC kinds (no cert-manager CRDs)."""
    return FakeDynamicClient()


@pytest.fixture
def cluster_with_cert_manager():
    """Fake cluster that also serves the cert-manager kinds."""
    return FakeDynamicClient(kinds=DEFAULT_KINDS + CERT_MANAGER_KINDS)


@pytest.fixture
def owner():
    """Cluster-scoped default-tenant CR."""
    return OwnerIdentity(
        api_version=KONFLUX_API_VERSION,
        kind="KonfluxDefaultTenant",
        name="konflux-default-tenant",
        uid="1b4c6f2e-0000-4000-8000-000000000001",
    )


@pytest.fixture
def other_owner():
    """A second CR whose objects must never be touched by the first."""
    return OwnerIdentity(
        api_version=KONFLUX_API_VERSION,
        kind="KonfluxNamespaceLister",
        name="konflux-namespace-lister",
        uid="1b4c6f2e-0000-4000-8000-000000000002",
    )


@pytest.fixture
def status():
    return MockStatus()
