"""Persistence layer."""

from .store import GovernanceStore

__all__ = ["GovernanceStore"]
