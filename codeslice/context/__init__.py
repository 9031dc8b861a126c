"""Project metadata derived from a scanned tree."""

from .builder import (
    ContextBuilder,
    find_config_files,
    find_entry_points,
    format_tokens,
    language_breakdown,
)

__all__ = [
    "ContextBuilder",
    "find_config_files",
    "find_entry_points",
    "format_tokens",
    "language_breakdown",
]
