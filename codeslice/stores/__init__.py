"""Persistence backends for codeslice."""

from .checkpoint import CheckpointManager, ResumeDecision

__all__ = ["CheckpointManager", "ResumeDecision"]
