from __future__ import annotations

import gzip
from pathlib import Path
from typing import Dict, List, Tuple

from assetflow import task
from assetflow.logging import task_logger
from assetflow import utils


def _human(n: int) -> str:
    if n < 1000:
        return f"{n} B"
    if n < 1_000_000:
        return f"{n / 1000:.2f} kB"
    return f"{n / 1_000_000:.2f} MB"


def size_report(root: Path) -> Tuple[List[Tuple[Path, int, int]], int, int]:
    """(path, size, gzipped size) for every file under `root`, plus totals."""
    rows: List[Tuple[Path, int, int]] = []
    for p in utils.expand_globs([f"{root.as_posix()}/**/*"], dot=True):
        data = p.read_bytes()
        rows.append((p, len(data), len(gzip.compress(data, mtime=0))))
    return rows, sum(r[1] for r in rows), sum(r[2] for r in rows)


@task(name="build", deps=["lint", "html", "images", "fonts", "extras"])
def build(params: Dict, ctx=None):
    """Build Distribution files."""
    logger = task_logger("build")
    rows, total, gzipped = size_report(Path(utils.dist_dir(params)))
    for path, size, gz in rows:
        logger.debug("%s %s (gzipped %s)", path, _human(size), _human(gz))
    logger.info(
        "build: all files %s (gzipped %s) in %d file(s)",
        _human(total),
        _human(gzipped),
        len(rows),
    )


@task(name="default", deps=["clean", "build"])
def default(params: Dict, ctx=None):
    """Clean directories and run the distribution build."""
    task_logger("default").info("Build complete")
