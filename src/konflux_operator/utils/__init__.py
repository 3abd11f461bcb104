"""Utility helpers for Kubernetes access and ownership metadata."""
