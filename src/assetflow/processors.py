"""Run delegated command-line tools (sass, babel, eslint, minifiers, ...).

Tools are described by argv templates from config. The orchestrator only
spawns them and turns a non-zero exit into a ProcessingError that carries
the first `file:line[:col]` location found in the tool's diagnostics.
"""

from __future__ import annotations

import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

from .errors import ProcessingError
from .logging import get_logger


log = get_logger("assetflow.processors")

_LOCATION = re.compile(
    r"(?P<file>[\w./\\-]+\.\w+)(?::|\s+)(?:line\s+)?(?P<line>\d+)(?::(?P<col>\d+))?"
)


@dataclass
class ToolResult:
    argv: List[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def output(self) -> str:
        return "\n".join(s for s in (self.stdout.strip(), self.stderr.strip()) if s)


def expand_argv(
    template: List[str],
    src: Path | str | None = None,
    dest: Path | str | None = None,
    files: Iterable[Path | str] = (),
) -> List[str]:
    """Substitute `{src}`, `{dest}` and `{files}` (one argv entry per file)."""
    argv: List[str] = []
    for part in template:
        if part == "{files}":
            argv.extend(str(f) for f in files)
            continue
        argv.append(
            part.replace("{src}", str(src or "")).replace("{dest}", str(dest or ""))
        )
    return argv


def find_location(text: str) -> Optional[str]:
    m = _LOCATION.search(text or "")
    if not m:
        return None
    loc = f"{m.group('file')}:{m.group('line')}"
    if m.group("col"):
        loc += f":{m.group('col')}"
    return loc


def execute(argv: List[str], cwd: Path | None = None) -> ToolResult:
    log.debug("exec: %s", " ".join(argv))
    proc = subprocess.run(
        argv,
        cwd=cwd,
        capture_output=True,
        text=True,
    )
    return ToolResult(argv, proc.returncode, proc.stdout, proc.stderr)


def run_tool(
    task: str,
    template: List[str],
    src: Path | str | None = None,
    dest: Path | str | None = None,
    files: Iterable[Path | str] = (),
    check: bool = True,
) -> ToolResult:
    """Run a tool for `task`; raise ProcessingError on failure when `check`."""
    if dest is not None:
        Path(dest).parent.mkdir(parents=True, exist_ok=True)
    argv = expand_argv(template, src=src, dest=dest, files=files)
    try:
        result = execute(argv)
    except FileNotFoundError as e:
        raise ProcessingError(task, f"Tool not found: {argv[0]}") from e
    if check and result.returncode != 0:
        raise ProcessingError(
            task,
            result.output or f"{argv[0]} exited with {result.returncode}",
            location=find_location(result.output),
        )
    return result
