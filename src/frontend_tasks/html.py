"""Pack HTML for distribution.

Every `<!-- build:css|js target -->` ... `<!-- endbuild -->` block is replaced
by a single reference to `target`; the referenced assets are concatenated
into `dist/target`. Assets are looked up in `.tmp`, then `app`, then the
project root, unless the block names its own search path:
`<!-- build:js(.tmp) scripts/main.js -->`. The bundles and pages are then
passed through the configured minifiers.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Sequence

from assetflow import task
from assetflow.errors import ProcessingError
from assetflow.logging import task_logger
from assetflow.processors import run_tool
from assetflow import utils


_BLOCK = re.compile(
    r"(?P<indent>[ \t]*)<!--\s*build:(?P<type>\w+)(?:\((?P<search>[^)]*)\))?\s+(?P<target>\S+)\s*-->"
    r"(?P<body>.*?)<!--\s*endbuild\s*-->",
    re.DOTALL,
)
_REFS = {
    "js": re.compile(r"<script[^>]*\bsrc=[\"']([^\"']+)[\"']", re.IGNORECASE),
    "css": re.compile(r"<link[^>]*\bhref=[\"']([^\"']+)[\"']", re.IGNORECASE),
}
_TAGS = {
    "js": '<script src="{target}"></script>',
    "css": '<link rel="stylesheet" href="{target}">',
}
_MINIFIERS = {".js": "uglify", ".css": "cssnano", ".html": "htmlmin"}


@dataclass
class UserefResult:
    html: str
    bundles: Dict[str, bytes]


def _locate(ref: str, search: Sequence[Path]) -> Path | None:
    clean = ref.split("?", 1)[0].split("#", 1)[0].lstrip("/")
    for base in search:
        candidate = base / clean
        if candidate.is_file():
            return candidate
    return None


def useref(html: str, search_path: Sequence[Path], page: str = "") -> UserefResult:
    """Collapse build blocks in `html`; raise FileNotFoundError for missing assets."""
    bundles: Dict[str, bytes] = {}

    def replace(m: re.Match) -> str:
        kind = m.group("type")
        target = m.group("target")
        if kind not in _TAGS:
            # Unknown block types are dropped from the output, as with `remove`
            return ""
        search = list(search_path)
        if m.group("search"):
            search = [Path(s.strip()) for s in m.group("search").split(",") if s.strip()]
        parts: List[bytes] = []
        for ref in _REFS[kind].findall(m.group("body")):
            found = _locate(ref, search)
            if found is None:
                raise FileNotFoundError(f"{page}: asset not found: {ref}")
            parts.append(found.read_bytes().rstrip(b"\n"))
        bundles[target.lstrip("/")] = b"\n".join(parts) + b"\n"
        return m.group("indent") + _TAGS[kind].format(target=target)

    return UserefResult(html=_BLOCK.sub(replace, html), bundles=bundles)


def minify(params: Dict, path: Path) -> None:
    name = _MINIFIERS.get(path.suffix)
    template = utils.tool(params, name) if name else None
    if template is not None:
        run_tool("html", template, src=path, dest=path)


@task(name="html", deps=["sass", "js"])
def html(params: Dict, ctx=None):
    """Pack HTML."""
    logger = task_logger("html")
    app = Path(utils.app_dir(params))
    dist = Path(utils.dist_dir(params))
    search = [Path(utils.tmp_dir(params)), app, Path(".")]

    written: Dict[Path, bytes] = {}
    for page in utils.expand_globs([f"{app.as_posix()}/*.html"]):
        try:
            result = useref(page.read_text(encoding="utf-8"), search, page=str(page))
        except FileNotFoundError as e:
            raise ProcessingError("html", e, location=str(page)) from e
        for target, data in result.bundles.items():
            written[dist / target] = data
        written[dist / page.name] = result.html.encode("utf-8")

    for path in sorted(written):
        utils.write_if_changed(path, written[path])
        minify(params, path)
    logger.info("Packed %d file(s) into %s", len(written), dist)
