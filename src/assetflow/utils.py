from __future__ import annotations

"""Config accessors and glob helpers shared by the engine and task modules."""

import os
import re
from pathlib import Path
from typing import Dict, Iterable, List


# argv templates for delegated tools; `None` disables an optional step
DEFAULT_TOOLS: Dict[str, List[str] | None] = {
    "sass": [
        "sass",
        "--style=expanded",
        "--embed-source-map",
        "--load-path=.",
        "{src}",
        "{dest}",
    ],
    "autoprefixer": [
        "npx",
        "postcss",
        "{src}",
        "--use",
        "autoprefixer",
        "--map",
        "--output",
        "{dest}",
    ],
    "babel": ["npx", "babel", "{src}", "--source-maps", "--out-file", "{dest}"],
    "eslint": ["npx", "eslint", "--format", "unix", "{files}"],
    "uglify": ["npx", "terser", "{src}", "--compress", "--mangle", "--output", "{dest}"],
    "cssnano": ["npx", "postcss", "{src}", "--use", "cssnano", "--no-map", "--output", "{dest}"],
    "htmlmin": [
        "npx",
        "html-minifier-terser",
        "--collapse-whitespace",
        "--output",
        "{dest}",
        "{src}",
    ],
    "imagemin": ["npx", "imagemin", "{src}", "--out-dir", "{dest}"],
}


def _get(d: Dict, *keys, default=None):
    cur = d
    for k in keys:
        if not isinstance(cur, dict):
            return default
        cur = cur.get(k)
        if cur is None:
            return default
    return cur


def app_dir(p: Dict) -> str:
    return _get(p, "project", "app_dir", default="app")


def tmp_dir(p: Dict) -> str:
    return _get(p, "project", "tmp_dir", default=".tmp")


def dist_dir(p: Dict) -> str:
    return _get(p, "project", "dist_dir", default="dist")


def testing_dir(p: Dict) -> str:
    return _get(p, "project", "test_dir", default="test")


def components_dir(p: Dict) -> str:
    return _get(p, "project", "components_dir", default="bower_components")


def manifest_path(p: Dict) -> str:
    return _get(p, "project", "manifest", default="bower.json")


def cache_dir(p: Dict) -> str:
    return _get(p, "project", "cache_dir", default=".assetflow/cache")


def runs_dir(p: Dict) -> str | None:
    return _get(p, "project", "runs_dir")


def server_host(p: Dict) -> str:
    return _get(p, "server", "host", default="127.0.0.1")


def server_port(p: Dict) -> int:
    return int(_get(p, "server", "port", default=9000))


def debounce_ms(p: Dict) -> int:
    return int(_get(p, "watch", "debounce_ms", default=200))


def log_file(p: Dict) -> Path | None:
    path = _get(p, "logging", "file")
    return Path(path) if path else None


def tool(p: Dict, name: str) -> List[str] | None:
    """Return the argv template for a tool, or None when it is disabled."""
    tools = _get(p, "tools", default={}) or {}
    if name in tools:
        argv = tools[name]
    else:
        argv = DEFAULT_TOOLS.get(name)
    if not argv:
        return None
    return [str(a) for a in argv]


_MAGIC = re.compile(r"[*?\[{]")


def has_magic(pattern: str) -> bool:
    return bool(_MAGIC.search(pattern))


def _normalize(pattern: str) -> str:
    pattern = pattern.replace("\\", "/")
    while pattern.startswith("./"):
        pattern = pattern[2:]
    return pattern


def glob_to_regex(pattern: str) -> re.Pattern:
    """Translate a glob with `**`, `{a,b}` and `[...]` support into a regex.

    `**/` matches zero or more directories, `*` and `?` never cross `/`.
    """
    pat = _normalize(pattern)
    out: list[str] = []
    i, n = 0, len(pat)
    while i < n:
        c = pat[i]
        if c == "*":
            if pat.startswith("**/", i):
                out.append("(?:.*/)?")
                i += 3
                continue
            if pat.startswith("**", i):
                out.append(".*")
                i += 2
                continue
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        elif c == "{":
            j = pat.find("}", i)
            if j == -1:
                out.append(re.escape(c))
            else:
                alts = pat[i + 1 : j].split(",")
                out.append("(?:" + "|".join(re.escape(a) for a in alts) + ")")
                i = j + 1
                continue
        elif c == "[":
            j = pat.find("]", i + 1)
            if j == -1:
                out.append(re.escape(c))
            else:
                body = pat[i + 1 : j]
                if body.startswith("!"):
                    body = "^" + body[1:]
                out.append("[" + body.replace("\\", "\\\\") + "]")
                i = j + 1
                continue
        else:
            out.append(re.escape(c))
        i += 1
    return re.compile("^" + "".join(out) + "$")


def glob_base(pattern: str) -> Path:
    """Longest leading directory of `pattern` without glob characters."""
    parts = _normalize(pattern).split("/")
    if not has_magic(pattern):
        parts = parts[:-1]
    base: list[str] = []
    for part in parts:
        if has_magic(part):
            break
        base.append(part)
    joined = "/".join(base)
    if pattern.startswith("/") and not joined:
        return Path("/")
    return Path(joined or ".")


def match_path(path: str | Path, pattern: str, dot: bool = False) -> bool:
    rel = _normalize(Path(path).as_posix())
    if not glob_to_regex(pattern).match(rel):
        return False
    if dot:
        return True
    base = glob_base(pattern).as_posix()
    tail = rel[len(base) + 1 :] if base != "." and rel.startswith(base + "/") else rel
    return not any(part.startswith(".") for part in tail.split("/"))


def expand_globs(patterns: Iterable[str], dot: bool = False) -> list[Path]:
    """Expand glob patterns to existing files, sorted and de-duplicated.

    Patterns prefixed with `!` exclude matches of earlier patterns.
    """
    include: list[str] = []
    exclude: list[str] = []
    for pat in patterns:
        if pat.startswith("!"):
            exclude.append(pat[1:])
        else:
            include.append(pat)

    found: set[Path] = set()
    for pat in include:
        if not has_magic(pat):
            p = Path(pat)
            if p.is_file():
                found.add(p)
            continue
        base = glob_base(pat)
        if not base.is_dir():
            continue
        for root, _, files in os.walk(base):
            for file in files:
                p = Path(root) / file
                if match_path(p, pat, dot=dot):
                    found.add(p)

    return sorted(
        p for p in found if not any(match_path(p, ex, dot=True) for ex in exclude)
    )


def relative_to_base(path: Path, pattern: str) -> Path:
    """Path of `path` below the static base directory of `pattern`."""
    base = glob_base(pattern)
    try:
        return path.relative_to(base)
    except ValueError:
        return Path(path.name)


def write_if_changed(dest: Path, data: bytes) -> bool:
    """Write `data` to `dest` unless it already holds exactly these bytes."""
    dest = Path(dest)
    if dest.is_file() and dest.read_bytes() == data:
        return False
    dest.parent.mkdir(parents=True, exist_ok=True)
    tmp = dest.with_name(dest.name + ".part")
    tmp.write_bytes(data)
    tmp.replace(dest)
    return True


def copy_file(src: Path, dest: Path) -> bool:
    return write_if_changed(dest, Path(src).read_bytes())
