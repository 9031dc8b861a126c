"""Directory scanning and token-weighted structure tree building."""

from __future__ import annotations

import hashlib
import math
import os
import re
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .config import DEFAULT_EXCLUDE_PATTERNS, DEFAULT_INCLUDE_PATTERNS
from .logging import get_logger
from .models import UNKNOWN_LANGUAGE, DirectoryNode, FileInfo, SkippedFile

MAX_SCAN_DEPTH = 10
MAX_FILE_TOKENS = 100_000
CHARS_PER_TOKEN = 4
CHARS_PER_LINE = 40

_READ_CHUNK = 1024 * 1024

LANGUAGE_BY_SUFFIX: Dict[str, str] = {
    ".ts": "TypeScript",
    ".tsx": "TypeScript",
    ".js": "JavaScript",
    ".jsx": "JavaScript",
    ".mjs": "JavaScript",
    ".cjs": "JavaScript",
    ".py": "Python",
    ".pyi": "Python",
    ".go": "Go",
    ".rs": "Rust",
    ".java": "Java",
    ".kt": "Kotlin",
    ".kts": "Kotlin",
    ".swift": "Swift",
    ".c": "C",
    ".h": "C",
    ".cpp": "C++",
    ".hpp": "C++",
    ".cc": "C++",
    ".cs": "C#",
    ".rb": "Ruby",
    ".php": "PHP",
    ".vue": "Vue",
    ".svelte": "Svelte",
    ".scala": "Scala",
    ".ex": "Elixir",
    ".exs": "Elixir",
    ".erl": "Erlang",
    ".clj": "Clojure",
    ".hs": "Haskell",
    ".ml": "OCaml",
    ".fs": "F#",
    ".r": "R",
    ".jl": "Julia",
    ".dart": "Dart",
    ".lua": "Lua",
    ".sh": "Shell",
    ".bash": "Shell",
    ".zsh": "Shell",
    ".sql": "SQL",
    ".graphql": "GraphQL",
    ".gql": "GraphQL",
}

BINARY_EXTENSIONS = frozenset(
    {
        ".png", ".jpg", ".jpeg", ".gif", ".ico", ".svg", ".webp",
        ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
        ".zip", ".tar", ".gz", ".rar", ".7z",
        ".exe", ".dll", ".so", ".dylib",
        ".wasm", ".woff", ".woff2", ".ttf", ".eot",
        ".mp3", ".mp4", ".avi", ".mov", ".wav",
        ".db", ".sqlite", ".sqlite3",
    }
)

logger = get_logger("scanner")


def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Translate a ``*``/``**``/``?`` glob into an anchored regular expression.

    ``**/`` matches zero or more leading directories, so ``**/node_modules/**``
    covers both ``node_modules/x`` and ``a/node_modules/x``. A bare ``**``
    matches anything, ``*`` stays within one path segment and ``?`` matches a
    single non-separator character.
    """
    parts: List[str] = []
    index = 0
    while index < len(pattern):
        if pattern.startswith("**/", index):
            parts.append("(?:.*/)?")
            index += 3
        elif pattern.startswith("**", index):
            parts.append(".*")
            index += 2
        elif pattern[index] == "*":
            parts.append("[^/]*")
            index += 1
        elif pattern[index] == "?":
            parts.append("[^/]")
            index += 1
        else:
            parts.append(re.escape(pattern[index]))
            index += 1
    return re.compile("^" + "".join(parts) + "$")


class PatternSet:
    """Compiled glob patterns, built once per scan."""

    def __init__(self, patterns: Iterable[str]) -> None:
        self.patterns: Tuple[str, ...] = tuple(p for p in patterns if p)
        self._compiled = [glob_to_regex(pattern) for pattern in self.patterns]

    def matches(self, rel_path: str) -> bool:
        return any(regex.match(rel_path) for regex in self._compiled)

    def __bool__(self) -> bool:
        return bool(self._compiled)


def estimate_tokens(size_in_bytes: int) -> int:
    return math.ceil(size_in_bytes / CHARS_PER_TOKEN)


def detect_language(path: str) -> str:
    return LANGUAGE_BY_SUFFIX.get(os.path.splitext(path)[1].lower(), UNKNOWN_LANGUAGE)


def is_binary_path(path: str) -> bool:
    return os.path.splitext(path)[1].lower() in BINARY_EXTENSIONS


def _read_lines_and_digest(path: Path) -> Tuple[int, str]:
    digest = hashlib.sha256()
    newlines = 0
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(_READ_CHUNK), b""):
            digest.update(chunk)
            newlines += chunk.count(b"\n")
    return newlines + 1, digest.hexdigest()


@dataclass
class ScanResult:
    """Structure tree plus the audit trail of skipped files."""

    structure: DirectoryNode
    skipped: List[SkippedFile] = field(default_factory=list)


@dataclass
class _ScanState:
    root: Path
    include: PatternSet
    exclude: PatternSet
    max_depth: int
    skipped: List[SkippedFile] = field(default_factory=list)
    visited: Set[str] = field(default_factory=set)


class RepoScanner:
    """Walks a project tree and builds a token-weighted ``DirectoryNode`` tree."""

    def __init__(self, max_depth: int = MAX_SCAN_DEPTH) -> None:
        self.max_depth = max_depth

    def scan(
        self,
        root: str | Path,
        include_patterns: Optional[Sequence[str]] = None,
        exclude_patterns: Optional[Sequence[str]] = None,
    ) -> ScanResult:
        """Return the structure tree and skip list for ``root``."""
        root_path = Path(root).expanduser().resolve()
        if not root_path.exists():
            raise FileNotFoundError(f"Project path not found: {root}")
        if not root_path.is_dir():
            raise NotADirectoryError(f"Project path is not a directory: {root}")
        # Surface an unreadable root here instead of returning an empty tree.
        try:
            with os.scandir(root_path):
                pass
        except PermissionError as exc:
            raise PermissionError(f"Project path is not readable: {root}") from exc

        state = _ScanState(
            root=root_path,
            include=PatternSet(
                DEFAULT_INCLUDE_PATTERNS if include_patterns is None else include_patterns
            ),
            exclude=PatternSet(
                DEFAULT_EXCLUDE_PATTERNS if exclude_patterns is None else exclude_patterns
            ),
            max_depth=self.max_depth,
        )
        structure, _ = self._scan_directory(root_path, state, depth=0)
        logger.debug(
            "Scanned %s: %d files, %d tokens, %d skipped",
            root_path,
            structure.file_count,
            structure.total_tokens,
            len(state.skipped),
        )
        return ScanResult(structure=structure, skipped=state.skipped)

    # ------------------------------------------------------------------
    # Internal helpers

    def _scan_directory(
        self, dir_path: Path, state: _ScanState, depth: int
    ) -> Tuple[DirectoryNode, Counter[str]]:
        rel_dir = dir_path.relative_to(state.root).as_posix() if dir_path != state.root else "."
        tally: Counter[str] = Counter()
        if depth >= state.max_depth:
            logger.debug("Depth limit reached at %s", rel_dir)
            return DirectoryNode(path=rel_dir), tally

        state.visited.add(os.path.realpath(dir_path))

        try:
            with os.scandir(dir_path) as iterator:
                entries = sorted(iterator, key=lambda entry: entry.name)
        except OSError as exc:
            if depth == 0:
                raise
            logger.warning("Cannot list %s: %s", rel_dir, exc)
            return DirectoryNode(path=rel_dir), tally

        files: List[FileInfo] = []
        children: List[DirectoryNode] = []
        total_tokens = 0
        file_count = 0

        for entry in entries:
            if entry.name.startswith("."):
                continue
            rel_path = entry.name if rel_dir == "." else f"{rel_dir}/{entry.name}"
            try:
                is_dir = entry.is_dir()
                is_file = not is_dir and entry.is_file()
            except OSError as exc:
                logger.debug("Skipping %s: %s", rel_path, exc)
                continue

            if is_dir:
                if state.exclude.matches(rel_path + "/"):
                    continue
                canonical = os.path.realpath(entry.path)
                if canonical in state.visited:
                    logger.debug("Skipping already visited directory %s", rel_path)
                    continue
                child, child_tally = self._scan_directory(Path(entry.path), state, depth + 1)
                if child.file_count > 0 or child.children:
                    children.append(child)
                    total_tokens += child.total_tokens
                    file_count += child.file_count
                    tally.update(child_tally)
            elif is_file:
                info = self._scan_file(Path(entry.path), rel_path, state)
                if info is None:
                    continue
                files.append(info)
                total_tokens += info.tokens
                file_count += 1
                if info.language != UNKNOWN_LANGUAGE:
                    tally[info.language] += info.tokens

        node = DirectoryNode(
            path=rel_dir,
            files=files,
            children=children,
            total_tokens=total_tokens,
            file_count=file_count,
            primary_language=_dominant_language(tally),
        )
        return node, tally

    def _scan_file(self, path: Path, rel_path: str, state: _ScanState) -> Optional[FileInfo]:
        if state.exclude.matches(rel_path):
            state.skipped.append(SkippedFile(path=rel_path, reason="excluded"))
            return None
        if is_binary_path(rel_path):
            state.skipped.append(SkippedFile(path=rel_path, reason="binary"))
            return None
        if state.include and not state.include.matches(rel_path):
            return None

        try:
            size = path.stat().st_size
        except OSError as exc:
            logger.debug("Cannot stat %s: %s", rel_path, exc)
            return None

        tokens = estimate_tokens(size)
        if tokens > MAX_FILE_TOKENS:
            state.skipped.append(
                SkippedFile(path=rel_path, reason="too_large", size=size, tokens=tokens)
            )
            return None

        try:
            lines, digest = _read_lines_and_digest(path)
        except OSError as exc:
            logger.debug("Falling back to size estimate for %s: %s", rel_path, exc)
            lines, digest = math.ceil(size / CHARS_PER_LINE), ""

        return FileInfo(
            path=str(path),
            relative_path=rel_path,
            size=size,
            tokens=tokens,
            language=detect_language(rel_path),
            lines=lines,
            digest=digest,
        )


def _dominant_language(tally: Counter[str]) -> str:
    if not tally:
        return UNKNOWN_LANGUAGE
    language, _ = min(tally.items(), key=lambda item: (-item[1], item[0]))
    return language


def compute_fingerprint(project_dir: str, structure: DirectoryNode) -> str:
    """Return a content fingerprint of a scan, stable across identical trees."""
    digest = hashlib.sha256()
    digest.update(f"{project_dir}:{structure.file_count}:{structure.total_tokens}".encode("utf-8"))
    for info in sorted(structure.iter_files(), key=lambda item: item.relative_path):
        digest.update(f"\n{info.relative_path}:{info.size}:{info.digest}".encode("utf-8"))
    return digest.hexdigest()[:16]


__all__ = [
    "BINARY_EXTENSIONS",
    "CHARS_PER_TOKEN",
    "LANGUAGE_BY_SUFFIX",
    "MAX_FILE_TOKENS",
    "MAX_SCAN_DEPTH",
    "PatternSet",
    "RepoScanner",
    "ScanResult",
    "compute_fingerprint",
    "detect_language",
    "estimate_tokens",
    "glob_to_regex",
]
