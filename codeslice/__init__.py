"""Token-bounded codebase partitioning with resumable analysis checkpoints."""

from .config import ScanOptions, load_config
from .models import CodebaseManifest, PartitionConfig, PartitionSpec
from .orchestrator import Orchestrator
from .partitioning import partition
from .repo_scanner import RepoScanner
from .stores import CheckpointManager

__version__ = "0.1.0"

__all__ = [
    "CheckpointManager",
    "CodebaseManifest",
    "Orchestrator",
    "PartitionConfig",
    "PartitionSpec",
    "RepoScanner",
    "ScanOptions",
    "load_config",
    "partition",
]
