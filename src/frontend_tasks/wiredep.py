"""Inject front-end library references between bower markers.

Markup files use `<!-- bower:css -->` / `<!-- bower:js -->` ... `<!-- endbower -->`,
stylesheets use `// bower:scss` / `// bower:css` ... `// endbower`. Processing
is best effort: a file with a broken marker is reported and left untouched,
the remaining files are still rewritten.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from assetflow import task
from assetflow.errors import InjectionError
from assetflow.logging import task_logger
from assetflow import utils

from .manifest import Manifest, load_manifest


@dataclass(frozen=True)
class MarkerFormat:
    start: re.Pattern
    end: re.Pattern
    templates: Dict[str, str]  # block type -> line template


HTML = MarkerFormat(
    start=re.compile(r"(?P<indent>[ \t]*)<!--\s*bower:(?P<type>\w+)\s*-->"),
    end=re.compile(r"<!--\s*endbower\s*-->"),
    templates={
        "css": '<link rel="stylesheet" href="{path}" />',
        "js": '<script src="{path}"></script>',
    },
)

SCSS = MarkerFormat(
    start=re.compile(r"(?P<indent>[ \t]*)//\s*bower:(?P<type>\w+)"),
    end=re.compile(r"//\s*endbower"),
    templates={
        "scss": '@import "{path}";',
        "css": '@import "{path}";',
    },
)

FORMATS = {".html": HTML, ".htm": HTML, ".scss": SCSS}

# Strip the leading `../` runs so references resolve from the server root
# (markup) or the sass load path (stylesheets).
DEFAULT_IGNORE_PATH = {
    ".html": r"^(\.\./)*\.\.",
    ".htm": r"^(\.\./)*\.\.",
    ".scss": r"^(\.\./)+",
}


@dataclass
class InjectionReport:
    rewritten: List[Path] = field(default_factory=list)
    unchanged: List[Path] = field(default_factory=list)
    errors: List[InjectionError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def _line_of(text: str, offset: int) -> int:
    return text.count("\n", 0, offset) + 1


def reference(target: Path, dep_file: Path, ignore_path: Optional[str]) -> str:
    rel = Path(os.path.relpath(dep_file, target.parent)).as_posix()
    if ignore_path:
        rel = re.sub(ignore_path, "", rel)
    return rel


def rewrite(text: str, fmt: MarkerFormat, refs: Dict[str, List[str]]) -> str:
    """Replace the contents of every known block; raise ValueError if malformed."""
    out: List[str] = []
    pos = 0
    for m in fmt.start.finditer(text):
        if m.start() < pos:
            continue
        kind = m.group("type")
        end = fmt.end.search(text, m.end())
        if end is None:
            raise ValueError(
                f"unterminated bower:{kind} block on line {_line_of(text, m.start())}"
            )
        nested = fmt.start.search(text, m.end(), end.start())
        if nested:
            raise ValueError(
                f"bower:{nested.group('type')} block nested in bower:{kind} "
                f"on line {_line_of(text, nested.start())}"
            )
        if kind not in fmt.templates:
            continue
        indent = m.group("indent")
        lines = [indent + fmt.templates[kind].format(path=p) for p in refs.get(kind, [])]
        out.append(text[pos : m.end()])
        out.append("\n" + "".join(line + "\n" for line in lines) + indent)
        pos = end.start()
    out.append(text[pos:])
    return "".join(out)


def _refs_for(target: Path, fmt: MarkerFormat, manifest: Manifest, ignore_path: Optional[str]) -> Dict[str, List[str]]:
    return {
        kind: [
            reference(target, f, ignore_path) for f in manifest.files_by_ext("." + kind)
        ]
        for kind in fmt.templates
    }


def inject(
    files: List[Path],
    manifest: Manifest,
    ignore_paths: Optional[Dict[str, str]] = None,
) -> InjectionReport:
    log = task_logger("wiredep")
    ignore = dict(DEFAULT_IGNORE_PATH)
    ignore.update(ignore_paths or {})
    report = InjectionReport()
    for path in files:
        fmt = FORMATS.get(path.suffix)
        if fmt is None:
            continue
        try:
            text = path.read_text(encoding="utf-8")
            new = rewrite(text, fmt, _refs_for(path, fmt, manifest, ignore.get(path.suffix)))
        except (OSError, ValueError) as e:
            err = InjectionError(str(path), str(e))
            log.error("%s", err)
            report.errors.append(err)
            continue
        if utils.write_if_changed(path, new.encode("utf-8")):
            log.info("Injected references into %s", path)
            report.rewritten.append(path)
        else:
            report.unchanged.append(path)
    return report


@task(name="wiredep")
def wiredep(params: dict, ctx=None):
    """Inject manifest library references into stylesheets and markup."""
    log = task_logger("wiredep")
    manifest = load_manifest(utils.manifest_path(params), utils.components_dir(params))
    for problem in manifest.errors:
        log.warning("Manifest: %s", problem)
    app = utils.app_dir(params)
    files = utils.expand_globs([f"{app}/assets/sass/*.scss", f"{app}/*.html"])
    ignore = (params.get("wiredep") or {}).get("ignore_path") or {}
    report = inject(files, manifest, {f".{k.lstrip('.')}": v for k, v in ignore.items()})
    log.info(
        "wiredep: %d rewritten, %d unchanged, %d failed",
        len(report.rewritten),
        len(report.unchanged),
        len(report.errors),
    )
    return report
