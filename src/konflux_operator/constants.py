"""
Constants used throughout the Konflux operator.

This module defines all constant values used by the operator including:
- Ownership labels stamped on applied objects
- Condition types, statuses and reasons
- Status phases of the per-CR state machine
- Well-known API groups and kinds
"""

# API group of the operator's own custom resources
KONFLUX_GROUP = "konflux.konflux-ci.dev"
KONFLUX_VERSION = "v1alpha1"
KONFLUX_API_VERSION = f"{KONFLUX_GROUP}/{KONFLUX_VERSION}"

# Label constants for resource ownership
# Every object the operator applies carries both of these labels
OWNER_LABEL_KEY = "konflux.konflux-ci.dev/owner"
COMPONENT_LABEL_KEY = "konflux.konflux-ci.dev/component"

# Status phase constants
PHASE_UNRECONCILED = "Unreconciled"
PHASE_APPLYING = "Applying"
PHASE_READY = "Ready"
PHASE_DEGRADED = "Degraded"
PHASE_ERROR = "Error"

# Reconciliation steps, used to pick the failure reason
STEP_APPLY = "apply"
STEP_CLEANUP = "cleanup"
STEP_READINESS = "readiness"

# Condition type constants (following Kubernetes conventions)
CONDITION_READY = "Ready"
CONDITION_AVAILABLE = "Available"

# Condition status constants
CONDITION_TRUE = "True"
CONDITION_FALSE = "False"
CONDITION_UNKNOWN = "Unknown"

# Condition reasons
REASON_ALL_COMPONENTS_READY = "AllComponentsReady"
REASON_COMPONENTS_NOT_READY = "ComponentsNotReady"
REASON_NO_WORKLOADS_FOUND = "NoWorkloadsFound"
REASON_DEPLOYMENT_READY = "DeploymentReady"
REASON_DEPLOYMENT_NOT_READY = "DeploymentNotReady"
REASON_STATEFULSET_READY = "StatefulSetReady"
REASON_STATEFULSET_NOT_READY = "StatefulSetNotReady"
REASON_APPLYING = "ApplyInProgress"
REASON_APPLY_FAILED = "ApplyFailed"
REASON_CLEANUP_FAILED = "CleanupFailed"
REASON_STATUS_CHECK_FAILED = "StatusCheckFailed"
REASON_DEPENDENCY_MISSING = "DependencyMissing"
REASON_RECONCILE_FAILED = "ReconciliationFailed"

# Well-known kinds
CRD_GROUP = "apiextensions.k8s.io"
CRD_KIND = "CustomResourceDefinition"
APPS_API_VERSION = "apps/v1"
DEPLOYMENT_KIND = "Deployment"
STATEFULSET_KIND = "StatefulSet"

# Timeout constants (in seconds)
DEFAULT_API_REQUEST_TIMEOUT = 30
DEFAULT_RECONCILIATION_TIMEOUT = 300  # 5 minutes
DEFAULT_DEPENDENCY_RETRY_DELAY = 30

# Message templates
MESSAGE_NO_WORKLOADS_BY_DESIGN = "Component ready (no workloads by design)"
MESSAGE_ALL_WORKLOADS_READY = "All {} workloads are ready"
MESSAGE_WORKLOAD_NOT_READY = "{} {}/{} is not available: {}"
MESSAGE_NO_WORKLOADS_FOUND = "No workloads found for component '{}'"
MESSAGE_WAITING_FOR_DEPENDENCY = "Waiting for dependency: kinds not installed: {}"
