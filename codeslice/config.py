"""Configuration loading for codeslice (.codeslice.yml)."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

from .models import PartitionConfig

CONFIG_FILENAME = ".codeslice.yml"
DEFAULT_STATE_DIR = ".codeslice"
DEFAULT_PARALLEL = 3

DEFAULT_INCLUDE_PATTERNS: tuple[str, ...] = (
    "**/*.ts",
    "**/*.tsx",
    "**/*.js",
    "**/*.jsx",
    "**/*.py",
    "**/*.go",
    "**/*.rs",
    "**/*.java",
    "**/*.kt",
    "**/*.swift",
    "**/*.c",
    "**/*.cpp",
    "**/*.h",
    "**/*.hpp",
    "**/*.cs",
    "**/*.rb",
    "**/*.php",
    "**/*.vue",
    "**/*.svelte",
)

DEFAULT_EXCLUDE_PATTERNS: tuple[str, ...] = (
    "**/node_modules/**",
    "**/vendor/**",
    "**/.git/**",
    "**/dist/**",
    "**/build/**",
    "**/.next/**",
    "**/coverage/**",
    "**/__pycache__/**",
    "**/.venv/**",
    "**/venv/**",
    "**/.codeslice/**",
    "**/target/**",
    "**/bin/**",
    "**/obj/**",
    "**/*.min.js",
    "**/*.min.css",
    "**/*.bundle.js",
    "**/*.generated.*",
    "**/package-lock.json",
    "**/yarn.lock",
    "**/pnpm-lock.yaml",
    "**/Cargo.lock",
    "**/go.sum",
)


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed."""


@dataclass(frozen=True)
class ScanOptions:
    """Explicit settings threaded through every pipeline stage."""

    include: tuple[str, ...] = DEFAULT_INCLUDE_PATTERNS
    exclude: tuple[str, ...] = DEFAULT_EXCLUDE_PATTERNS
    partition: PartitionConfig = field(default_factory=PartitionConfig)
    parallel: int = DEFAULT_PARALLEL
    resume: bool = False
    state_dir: str = DEFAULT_STATE_DIR

    def __post_init__(self) -> None:
        if self.parallel < 1:
            raise ValueError("parallel must be at least 1")

    def with_overrides(
        self,
        *,
        include: Optional[Sequence[str]] = None,
        exclude: Optional[Sequence[str]] = None,
        mode: Optional[str] = None,
        max_partitions: Optional[int] = None,
        parallel: Optional[int] = None,
        resume: Optional[bool] = None,
    ) -> "ScanOptions":
        """Return a copy with the non-``None`` overrides applied."""
        partition = self.partition
        if mode is not None or max_partitions is not None:
            partition = replace(
                partition,
                mode=mode if mode is not None else partition.mode,
                max_partitions=(
                    max_partitions if max_partitions is not None else partition.max_partitions
                ),
            )
        return replace(
            self,
            include=tuple(include) if include else self.include,
            exclude=tuple(exclude) if exclude else self.exclude,
            partition=partition,
            parallel=parallel if parallel is not None else self.parallel,
            resume=resume if resume is not None else self.resume,
        )


def load_config(config_path: Path) -> ScanOptions:
    """Load scan options from disk, falling back to defaults when absent."""
    config_file = _resolve_config_path(config_path)
    if not config_file.exists():
        return ScanOptions()

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    include = _as_str_list(data.get("include"))
    exclude = _as_str_list(data.get("exclude"))
    if _as_bool(data.get("extend_default_excludes")):
        exclude = list(DEFAULT_EXCLUDE_PATTERNS) + exclude

    partition_data = _as_dict(data.get("partitions"))
    defaults = PartitionConfig()
    try:
        partition = PartitionConfig(
            mode=_as_str(partition_data.get("mode")) or defaults.mode,
            target_tokens=_as_int(partition_data.get("target_tokens")) or defaults.target_tokens,
            min_tokens=_as_int(partition_data.get("min_tokens")) or defaults.min_tokens,
            max_tokens=_as_int(partition_data.get("max_tokens")) or defaults.max_tokens,
            max_partitions=_as_int(partition_data.get("max_partitions")) or defaults.max_partitions,
        )
        return ScanOptions(
            include=tuple(include) or DEFAULT_INCLUDE_PATTERNS,
            exclude=tuple(exclude) or DEFAULT_EXCLUDE_PATTERNS,
            partition=partition,
            parallel=_as_int(data.get("parallel")) or DEFAULT_PARALLEL,
            state_dir=_as_str(data.get("state_dir")) or DEFAULT_STATE_DIR,
        )
    except ValueError as exc:
        raise ConfigError(f"Invalid {CONFIG_FILENAME}: {exc}") from exc


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    if config_path.name != CONFIG_FILENAME:
        return (config_path.parent / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded or {}


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float)) and not isinstance(value, bool) else None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.replace("_", ""))
        except ValueError:
            return None
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float, bool))]
    return []


__all__ = [
    "CONFIG_FILENAME",
    "ConfigError",
    "DEFAULT_EXCLUDE_PATTERNS",
    "DEFAULT_INCLUDE_PATTERNS",
    "DEFAULT_PARALLEL",
    "DEFAULT_STATE_DIR",
    "ScanOptions",
    "load_config",
]
