"""Front-end library manifest (bower.json) reader.

Each dependency resolves to the list of files it ships, taken from
`overrides.<name>.main` in the project manifest or from the component's own
bower.json / .bower.json. Components are ordered so that a library comes
after the libraries it depends on.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from assetflow.logging import get_logger
from assetflow import utils


log = get_logger("assetflow.manifest")


@dataclass
class Dependency:
    name: str
    version: str
    files: List[Path] = field(default_factory=list)
    requires: List[str] = field(default_factory=list)


@dataclass
class Manifest:
    dependencies: List[Dependency]
    errors: List[str] = field(default_factory=list)

    def files(self, pattern: Optional[str] = None) -> List[Path]:
        """All dependency files in dependency order, optionally glob-filtered."""
        out: List[Path] = []
        for dep in self.dependencies:
            for f in dep.files:
                if pattern and not utils.match_path(f, pattern, dot=True):
                    continue
                if f not in out:
                    out.append(f)
        return out

    def files_by_ext(self, ext: str) -> List[Path]:
        return [f for f in self.files() if f.suffix == ext]


def _read_json(path: Path) -> Optional[dict]:
    if not path.is_file():
        return None
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _component_meta(components: Path, name: str) -> Optional[dict]:
    for candidate in ("bower.json", ".bower.json"):
        meta = _read_json(components / name / candidate)
        if meta is not None and not isinstance(meta, dict):
            raise ValueError(f"{candidate} is not an object")
        if meta is not None:
            return meta
    return None


def _as_list(value) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


def load_manifest(manifest_path: Path | str, components_dir: Path | str) -> Manifest:
    """Read the project manifest and resolve each dependency's files.

    Missing manifest -> empty Manifest. A dependency without resolvable files
    is recorded in `errors` and skipped.
    """
    manifest_path = Path(manifest_path)
    components = Path(components_dir)
    data = _read_json(manifest_path)
    if data is None:
        log.warning("Manifest not found: %s", manifest_path)
        return Manifest(dependencies=[])

    overrides: Dict[str, dict] = data.get("overrides", {}) or {}
    resolved: Dict[str, Dependency] = {}
    errors: List[str] = []

    def resolve(name: str, version: str) -> None:
        if name in resolved:
            return
        try:
            meta = _component_meta(components, name) or {}
        except (OSError, ValueError) as e:
            resolved[name] = Dependency(name=name, version=version)
            errors.append(f"{name}: unreadable metadata")
            log.warning("Dependency %s: unreadable metadata (%s), skipping", name, e)
            return
        override = overrides.get(name, {}) or {}
        mains = _as_list(override.get("main")) or _as_list(meta.get("main"))
        requires = list((override.get("dependencies") or meta.get("dependencies") or {}).keys())
        dep = Dependency(name=name, version=version, requires=requires)
        resolved[name] = dep
        if not mains:
            errors.append(f"{name}: no main files declared")
            log.warning("Dependency %s has no main files, skipping", name)
            return
        for main in mains:
            p = components / name / main
            if not p.is_file():
                errors.append(f"{name}: missing file {p}")
                log.warning("Dependency %s: missing file %s", name, p)
                continue
            dep.files.append(p)
        for req in requires:
            resolve(req, (meta.get("dependencies") or {}).get(req, "*"))

    top: List[Tuple[str, str]] = list((data.get("dependencies") or {}).items())
    for name, version in top:
        resolve(name, str(version))

    ordered: List[Dependency] = []
    seen: set[str] = set()

    def visit(name: str, trail: Tuple[str, ...]) -> None:
        if name in seen or name in trail or name not in resolved:
            return
        for req in resolved[name].requires:
            visit(req, trail + (name,))
        seen.add(name)
        ordered.append(resolved[name])

    for name, _ in top:
        visit(name, ())

    return Manifest(
        dependencies=[d for d in ordered if d.files],
        errors=errors,
    )
