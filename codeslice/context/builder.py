"""Project-level context derived from the scanned tree and well-known files."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from ..logging import get_logger
from ..models import UNKNOWN_LANGUAGE, DirectoryNode, GlobalContext
from .manifests import (
    cargo_dependencies,
    cargo_name,
    load_cargo_manifest,
    load_go_dependencies,
    load_go_module,
    load_java_dependencies,
    load_node_dependencies,
    load_package_json,
    load_pyproject,
    load_python_dependencies,
    load_ruby_gems,
    pyproject_name,
)

CONFIG_FILE_NAMES: tuple[str, ...] = (
    "package.json",
    "tsconfig.json",
    "pyproject.toml",
    "setup.py",
    "requirements.txt",
    "Cargo.toml",
    "go.mod",
    "Gemfile",
    "pom.xml",
    "build.gradle",
    "build.gradle.kts",
    "Makefile",
    "CMakeLists.txt",
    "docker-compose.yml",
    "docker-compose.yaml",
    "Dockerfile",
    ".env.example",
)

ENTRY_POINT_NAMES = frozenset(
    {
        "main.ts", "main.js", "main.py", "main.go", "main.rs",
        "index.ts", "index.js", "index.py",
        "app.ts", "app.js", "app.py",
        "server.ts", "server.js", "server.py",
        "mod.ts", "mod.rs",
        "lib.rs",
    }
)
MAX_ENTRY_POINTS = 10

README_NAMES: tuple[str, ...] = ("README.md", "readme.md", "README", "README.txt")
MAX_DESCRIPTION_CHARS = 500
MAX_README_CHARS = 10_000
README_TRUNCATION_MARKER = "\n\n[... truncated ...]"
OVERVIEW_DEPTH = 3

logger = get_logger("context")


@dataclass(frozen=True)
class FrameworkGroup:
    """Ordered framework signatures for one ecosystem; the first hit wins."""

    ecosystem: str
    signatures: tuple[tuple[str, str], ...]
    substring: bool = False

    def detect(self, dependencies: Iterable[str]) -> Optional[str]:
        lowered = [dep.lower() for dep in dependencies]
        for token, label in self.signatures:
            if self.substring:
                if any(token in dep for dep in lowered):
                    return label
            elif token in lowered:
                return label
        return None


FRAMEWORK_GROUPS: tuple[FrameworkGroup, ...] = (
    FrameworkGroup("node", (("next", "Next.js"), ("react", "React"))),
    FrameworkGroup("node", (("express", "Express"),)),
    FrameworkGroup("node", (("fastify", "Fastify"),)),
    FrameworkGroup("node", (("@nestjs/core", "NestJS"),)),
    FrameworkGroup("node", (("vue", "Vue"),)),
    FrameworkGroup("node", (("svelte", "Svelte"),)),
    FrameworkGroup(
        "python",
        (("fastapi", "FastAPI"), ("django", "Django"), ("flask", "Flask")),
    ),
    FrameworkGroup("ruby", (("rails", "Rails"),)),
    FrameworkGroup(
        "java",
        (("spring-boot", "Spring"), ("springframework", "Spring")),
        substring=True,
    ),
    FrameworkGroup(
        "rust",
        (("actix-web", "Actix"), ("axum", "Axum"), ("rocket", "Rocket")),
    ),
    FrameworkGroup(
        "go",
        (("gin-gonic", "Gin"), ("labstack/echo", "Echo"), ("gofiber/fiber", "Fiber")),
        substring=True,
    ),
)


def find_config_files(root: Path) -> List[str]:
    """Return the well-known config files present at the project root."""
    return [name for name in CONFIG_FILE_NAMES if (root / name).exists()]


def language_breakdown(tree: DirectoryNode) -> Dict[str, int]:
    """Return language -> rounded percentage of known-language tokens."""
    counts: Counter[str] = Counter()
    for info in tree.iter_files():
        if info.language != UNKNOWN_LANGUAGE:
            counts[info.language] += info.tokens
    total = sum(counts.values())
    if total == 0:
        return {}
    ordered = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return {language: round(count / total * 100) for language, count in ordered}


def find_entry_points(tree: DirectoryNode) -> List[str]:
    entries = [
        info.relative_path
        for info in tree.iter_files()
        if Path(info.relative_path).name in ENTRY_POINT_NAMES
    ]
    return entries[:MAX_ENTRY_POINTS]


def format_tokens(tokens: int) -> str:
    if tokens >= 1_000_000:
        return f"{tokens / 1_000_000:.1f}M tokens"
    if tokens >= 1000:
        return f"{tokens / 1000:.1f}k tokens"
    return f"{tokens} tokens"


class ContextBuilder:
    """Builds the ``GlobalContext`` shared with every partition request."""

    def build(
        self,
        root: Path,
        tree: DirectoryNode,
        config_files: Sequence[str],
    ) -> GlobalContext:
        root = Path(root)
        languages = language_breakdown(tree)
        context = GlobalContext(
            project_name=self.project_name(root, config_files),
            description=self.description(root),
            structure_overview=self.structure_overview(tree),
            languages=list(languages),
            frameworks=self.frameworks(root, config_files),
            entry_points=find_entry_points(tree),
            config_summary=self.config_summary(root, config_files),
            readme=self.readme(root),
            total_partitions=0,
        )
        logger.debug(
            "Context for %s: languages=%s frameworks=%s entry_points=%d",
            context.project_name,
            context.languages,
            context.frameworks,
            len(context.entry_points),
        )
        return context

    # ------------------------------------------------------------------
    # Project identity

    def project_name(self, root: Path, config_files: Sequence[str]) -> str:
        resolvers: List[Callable[[], Optional[str]]] = []
        if "package.json" in config_files:
            resolvers.append(lambda: _as_name(load_package_json(root).get("name")))
        if "pyproject.toml" in config_files:
            resolvers.append(lambda: pyproject_name(load_pyproject(root)))
        if "Cargo.toml" in config_files:
            resolvers.append(lambda: cargo_name(load_cargo_manifest(root)))
        if "go.mod" in config_files:
            resolvers.append(lambda: _last_segment(load_go_module(root)))

        for resolve in resolvers:
            name = resolve()
            if name:
                return name
        return root.resolve().name

    def description(self, root: Path) -> str:
        """First paragraph after the README's first heading."""
        for name in README_NAMES:
            text = _read_optional(root / name)
            if text is None:
                continue
            paragraph: List[str] = []
            found_title = False
            for line in text.splitlines():
                if line.startswith("#") and not found_title:
                    found_title = True
                    continue
                if not found_title:
                    continue
                if not line.strip():
                    if paragraph:
                        break
                    continue
                if line.startswith("#"):
                    break
                paragraph.append(line.strip())
            if paragraph:
                return " ".join(paragraph)[:MAX_DESCRIPTION_CHARS]
        return ""

    def readme(self, root: Path) -> Optional[str]:
        for name in README_NAMES[:3]:
            text = _read_optional(root / name)
            if text is None:
                continue
            if len(text) > MAX_README_CHARS:
                return text[:MAX_README_CHARS] + README_TRUNCATION_MARKER
            return text
        return None

    # ------------------------------------------------------------------
    # Structure & stack

    def structure_overview(self, tree: DirectoryNode, max_depth: int = OVERVIEW_DEPTH) -> str:
        lines: List[str] = []

        def _walk(node: DirectoryNode, depth: int, prefix: str) -> None:
            if depth > max_depth:
                return
            name = "." if node.path == "." else node.path.rsplit("/", 1)[-1]
            lines.append(
                f"{prefix}{name}/ ({format_tokens(node.total_tokens)}, {node.file_count} files)"
            )
            for index, child in enumerate(node.children):
                last = index == len(node.children) - 1
                _walk(child, depth + 1, prefix + ("  " if last else "| "))

        _walk(tree, 0, "")
        return "\n".join(lines)

    def frameworks(self, root: Path, config_files: Sequence[str]) -> List[str]:
        node = load_node_dependencies(root)
        dependencies_by_group: Dict[str, List[str]] = {
            "node": node["dependencies"] + node["devDependencies"],
            "python": load_python_dependencies(root),
            "ruby": load_ruby_gems(root) if "Gemfile" in config_files else [],
            "java": load_java_dependencies(root),
            "rust": cargo_dependencies(load_cargo_manifest(root)),
            "go": load_go_dependencies(root) if "go.mod" in config_files else [],
        }

        detected: List[str] = []
        for group in FRAMEWORK_GROUPS:
            label = group.detect(dependencies_by_group.get(group.ecosystem, []))
            if label and label not in detected:
                detected.append(label)
        return detected

    def config_summary(self, root: Path, config_files: Sequence[str]) -> str:
        parts: List[str] = []
        if "package.json" in config_files:
            scripts = load_package_json(root).get("scripts")
            if isinstance(scripts, dict) and scripts:
                parts.append(f"npm scripts: {', '.join(list(scripts)[:5])}")
        if "tsconfig.json" in config_files:
            parts.append("TypeScript project with tsconfig.json")
        if "pyproject.toml" in config_files or "setup.py" in config_files:
            parts.append("Python packaging via pyproject.toml/setup.py")
        if "Cargo.toml" in config_files:
            parts.append("Rust crate (Cargo.toml)")
        if "go.mod" in config_files:
            parts.append("Go module (go.mod)")
        if "Makefile" in config_files:
            parts.append("Make targets available")
        if any(name in config_files for name in ("Dockerfile", "docker-compose.yml", "docker-compose.yaml")):
            parts.append("Docker containerization configured")
        return "; ".join(parts) or "Standard project configuration"


def _as_name(value: object) -> Optional[str]:
    return value if isinstance(value, str) and value.strip() else None


def _last_segment(module_path: Optional[str]) -> Optional[str]:
    if not module_path:
        return None
    return module_path.rstrip("/").rsplit("/", 1)[-1] or None


def _read_optional(path: Path) -> Optional[str]:
    if not path.is_file():
        return None
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.debug("Cannot read %s: %s", path, exc)
        return None


__all__ = [
    "CONFIG_FILE_NAMES",
    "ContextBuilder",
    "ENTRY_POINT_NAMES",
    "FRAMEWORK_GROUPS",
    "find_config_files",
    "find_entry_points",
    "format_tokens",
    "language_breakdown",
]
