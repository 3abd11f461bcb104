"""
Kubernetes utilities for the Konflux operator.

This module provides helper functions for interacting with the Kubernetes API,
including client management, kind discovery and error classification.

Key functionality:
- Kubernetes client management and configuration
- Dynamic client access for kinds only known at runtime
- Mapping API exceptions onto the operator error hierarchy
- Deadline propagation to individual API requests
"""

import logging
import threading
import time
from typing import Any

from kubernetes import client, config, dynamic
from kubernetes.client.rest import ApiException
from kubernetes.dynamic.exceptions import ResourceNotFoundError
from urllib3.exceptions import HTTPError as TransportError

from konflux_operator.constants import CRD_GROUP, CRD_KIND
from konflux_operator.errors import (
    DeadlineExceededError,
    KindUnavailableError,
    KubernetesAPIError,
)
from konflux_operator.models import GroupVersionKind
from konflux_operator.settings import settings

logger = logging.getLogger(__name__)

_dynamic_client: dynamic.DynamicClient | None = None
_dynamic_client_lock = threading.Lock()


def get_kubernetes_client() -> client.ApiClient:
    """
    Get configured Kubernetes API client.

    This function handles both in-cluster and local development configurations.

    Returns:
        Configured Kubernetes API client
    """
    try:
        # Try in-cluster config first (when running in a pod)
        config.load_incluster_config()
        logger.debug("Loaded in-cluster Kubernetes configuration")
    except config.ConfigException:
        try:
            # Fall back to local kubeconfig (for development)
            config.load_kube_config()
            logger.debug("Loaded kubeconfig from local environment")
        except config.ConfigException as e:
            logger.error(f"Failed to load Kubernetes configuration: {e}")
            raise

    return client.ApiClient()


def get_dynamic_client() -> dynamic.DynamicClient:
    """
    Get the process-wide dynamic client.

    The dynamic client caches API discovery, so one instance is shared by
    all reconciliations. Creation is guarded so concurrent first calls do
    not each run discovery.
    """
    global _dynamic_client

    if _dynamic_client is None:
        with _dynamic_client_lock:
            if _dynamic_client is None:
                _dynamic_client = dynamic.DynamicClient(get_kubernetes_client())
    return _dynamic_client


def resolve_resource(dynamic_client: Any, gvk: GroupVersionKind) -> Any:
    """
    Look up the API resource serving a kind.

    Args:
        dynamic_client: Dynamic client used for discovery
        gvk: Kind to look up

    Returns:
        The dynamic client's resource handle for the kind

    Raises:
        KindUnavailableError: If the API server does not serve the kind
    """
    try:
        return dynamic_client.resources.get(api_version=gvk.api_version, kind=gvk.kind)
    except ResourceNotFoundError as e:
        raise KindUnavailableError(
            gvk, delay=settings.dependency_retry_delay_seconds
        ) from e


def api_error(e: ApiException, operation: str) -> KubernetesAPIError:
    """
    Wrap an API exception in the operator error hierarchy.

    Server errors (5xx) and throttling (429) are retryable; other client
    errors are not.
    """
    http_status = getattr(e, "status", None)
    retryable = http_status is not None and (http_status >= 500 or http_status == 429)
    return KubernetesAPIError(
        message=f"Failed to {operation}: {e}",
        reason=getattr(e, "reason", None),
        retryable=retryable,
        status=http_status,
        cause=e,
    )


def transport_error(e: TransportError, operation: str) -> KubernetesAPIError:
    """
    Wrap a connection-level failure (timeout, reset, refused connection).

    The client raises these from urllib3 without an ApiException around
    them. They are always retryable.
    """
    return KubernetesAPIError(
        message=f"Failed to {operation}: {e}",
        reason=type(e).__name__,
        retryable=True,
        cause=e,
    )


def request_timeout(deadline: float | None, operation: str) -> float:
    """
    Compute the timeout for one API request.

    Args:
        deadline: Absolute time.monotonic() deadline of the reconciliation,
            or None for no deadline
        operation: Description of the request, used in the error message

    Returns:
        Seconds the request may take: the configured per-request timeout,
        capped by the time left before the deadline

    Raises:
        DeadlineExceededError: If the deadline has already passed
    """
    timeout = settings.api_request_timeout_seconds
    if deadline is None:
        return timeout

    remaining = deadline - time.monotonic()
    if remaining <= 0:
        raise DeadlineExceededError(operation)
    return min(timeout, remaining)


def deadline_after(seconds: float | None) -> float | None:
    """Convert a relative timeout into an absolute monotonic deadline."""
    if seconds is None:
        return None
    return time.monotonic() + seconds


def is_custom_resource_definition(obj: dict[str, Any]) -> bool:
    """Return True if obj is a CustomResourceDefinition."""
    gvk = GroupVersionKind.from_object(obj)
    return gvk.group == CRD_GROUP and gvk.kind == CRD_KIND
