"""
Konflux Operator - reconciliation core for the Konflux platform operator.

This package applies pre-rendered manifest bundles to a cluster and keeps
them converged with the custom resources that own them:
- Manifest bundles parsed once and handed out as copies
- Ownership labels and owner references on every applied object
- Server-side apply with a stable field manager per controller
- Label-driven orphan cleanup with a cluster-scoped allow-list
- Aggregate readiness from owned Deployments and StatefulSets
"""

__version__ = "0.1.0"
