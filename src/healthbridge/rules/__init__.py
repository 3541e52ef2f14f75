"""Admission policies."""

from .policy import Policy, PolicyGate, PolicyResult, default_policies

__all__ = ["Policy", "PolicyGate", "PolicyResult", "default_policies"]
