"""Readers for well-known package manifests at a project root."""

from __future__ import annotations

import json
import re
import tomllib
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

# Python dependency helpers


def load_pyproject(root: Path) -> Dict[str, Any]:
    """Return the parsed pyproject.toml or an empty dict."""
    return _load_toml(root / "pyproject.toml")


def load_python_dependencies(root: Path) -> List[str]:
    """Collect Python dependencies from requirements.txt and pyproject.toml."""
    deps: Set[str] = set()

    requirements = root / "requirements.txt"
    if requirements.exists():
        deps.update(_parse_requirements(requirements))

    deps.update(_pyproject_dependencies(load_pyproject(root)))
    return sorted(deps)


def _parse_requirements(path: Path) -> List[str]:
    packages: List[str] = []
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return packages
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith(("#", "-r", "-e")):
            continue
        name = re.split(r"[<>=!~\[;\s]", stripped, 1)[0].strip()
        if name:
            packages.append(name)
    return packages


def _pyproject_dependencies(data: Dict[str, Any]) -> List[str]:
    packages: Set[str] = set()
    dependencies: List[Any] = []
    project = data.get("project")
    if isinstance(project, dict):
        dependencies.extend(project.get("dependencies", []) or [])
        optional = project.get("optional-dependencies", {}) or {}
        if isinstance(optional, dict):
            for values in optional.values():
                dependencies.extend(values or [])

    poetry = _poetry_section(data)
    poetry_deps = poetry.get("dependencies", {}) or {}
    if isinstance(poetry_deps, dict):
        dependencies.extend(poetry_deps.keys())

    for dep in dependencies:
        if isinstance(dep, str):
            name = re.split(r"[<>=!~\[;\s]", dep, 1)[0].strip()
            if name and name.lower() != "python":
                packages.add(name)
    return sorted(packages)


def pyproject_name(data: Dict[str, Any]) -> Optional[str]:
    project = data.get("project")
    if isinstance(project, dict) and isinstance(project.get("name"), str):
        return project["name"]
    name = _poetry_section(data).get("name")
    return name if isinstance(name, str) else None


def _poetry_section(data: Dict[str, Any]) -> Dict[str, Any]:
    tool = data.get("tool")
    if not isinstance(tool, dict):
        return {}
    poetry = tool.get("poetry")
    return poetry if isinstance(poetry, dict) else {}


# Node.js dependency helpers


def load_package_json(root: Path) -> Dict[str, object]:
    """Return the parsed package.json contents or an empty dict."""
    package_json = root / "package.json"
    if not package_json.exists():
        return {}
    try:
        data = json.loads(package_json.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError):
        return {}
    if isinstance(data, dict):
        return data
    return {}


def load_node_dependencies(root: Path) -> Dict[str, List[str]]:
    """Return Node.js dependencies separated into runtime/dev lists."""
    data = load_package_json(root)

    def _extract(key: str) -> List[str]:
        deps = data.get(key, {})
        if isinstance(deps, dict):
            return sorted(deps.keys())
        return []

    return {
        "dependencies": _extract("dependencies"),
        "devDependencies": _extract("devDependencies"),
    }


# Rust / Go helpers


def load_cargo_manifest(root: Path) -> Dict[str, Any]:
    return _load_toml(root / "Cargo.toml")


def cargo_name(data: Dict[str, Any]) -> Optional[str]:
    package = data.get("package")
    if isinstance(package, dict) and isinstance(package.get("name"), str):
        return package["name"]
    return None


def cargo_dependencies(data: Dict[str, Any]) -> List[str]:
    deps: Set[str] = set()
    for key in ("dependencies", "dev-dependencies"):
        section = data.get(key)
        if isinstance(section, dict):
            deps.update(section.keys())
    return sorted(deps)


_GO_MODULE = re.compile(r"^module\s+(\S+)", re.MULTILINE)
_GO_REQUIRE = re.compile(r"^\s*(?:require\s+)?([\w.\-]+\.[\w]+/[\w.\-/]+)\s+v", re.MULTILINE)


def load_go_module(root: Path) -> Optional[str]:
    """Return the module path declared in go.mod."""
    text = _read_text(root / "go.mod")
    match = _GO_MODULE.search(text)
    return match.group(1) if match else None


def load_go_dependencies(root: Path) -> List[str]:
    text = _read_text(root / "go.mod")
    return sorted({match.group(1) for match in _GO_REQUIRE.finditer(text)})


# Ruby helpers

_GEM_LINE = re.compile(r"^\s*gem\s+['\"]([\w\-]+)['\"]", re.MULTILINE)


def load_ruby_gems(root: Path) -> List[str]:
    return sorted({match.group(1) for match in _GEM_LINE.finditer(_read_text(root / "Gemfile"))})


# Java helpers

# Quoted "group:artifact[:version]" coordinates in Gradle build scripts.
_GRADLE_COORDINATE = re.compile(r"['\"]([\w.\-]+:[\w.\-]+)(?::[^'\"\s]*)?['\"]")


def load_java_dependencies(root: Path) -> List[str]:
    """Return ``group:artifact`` coordinates declared by Maven or Gradle builds."""
    coordinates = set(_pom_coordinates(root / "pom.xml"))
    for name in ("build.gradle", "build.gradle.kts"):
        coordinates.update(_GRADLE_COORDINATE.findall(_read_text(root / name)))
    return sorted(coordinates)


def _pom_coordinates(path: Path) -> List[str]:
    text = _read_text(path)
    if not text:
        return []
    try:
        project = ET.fromstring(text)
    except ET.ParseError:
        return []

    coordinates: List[str] = []
    for element in project.iter():
        if _local_name(element.tag) != "dependency":
            continue
        fields = {_local_name(child.tag): (child.text or "").strip() for child in element}
        if fields.get("groupId") and fields.get("artifactId"):
            coordinates.append(f"{fields['groupId']}:{fields['artifactId']}")
    return coordinates


def _local_name(tag: str) -> str:
    return tag.rpartition("}")[2]


# Shared


def _load_toml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError):
        return {}


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return ""


__all__ = [
    "cargo_dependencies",
    "cargo_name",
    "load_cargo_manifest",
    "load_go_dependencies",
    "load_go_module",
    "load_java_dependencies",
    "load_node_dependencies",
    "load_package_json",
    "load_pyproject",
    "load_python_dependencies",
    "load_ruby_gems",
    "pyproject_name",
]
