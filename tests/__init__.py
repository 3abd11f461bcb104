"""
Tests package - Test suite for the Konflux operator reconciliation core.

Contains:
- unit/: Unit tests for individual components
- utils/: In-memory fake of the Kubernetes dynamic client
"""
