"""Stylesheet compilation for development.

Compiles every non-partial `app/assets/sass/*.scss` into `.tmp/assets/css`
through the configured sass tool, then through autoprefixer when enabled.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict

from assetflow import task
from assetflow.logging import task_logger
from assetflow.processors import run_tool
from assetflow import utils


def sass_sources(params: Dict) -> list[Path]:
    pattern = f"{utils.app_dir(params)}/assets/sass/*.scss"
    # Partials are only ever imported
    return [p for p in utils.expand_globs([pattern]) if not p.name.startswith("_")]


@task(name="sass")
def sass(params: Dict, ctx=None):
    """Build CSS for dev."""
    logger = task_logger("sass")
    compiler = utils.tool(params, "sass")
    prefixer = utils.tool(params, "autoprefixer")
    if compiler is None:
        raise ValueError("No sass tool configured (tools.sass)")
    out_dir = Path(utils.tmp_dir(params)) / "assets" / "css"
    sources = sass_sources(params)
    for src in sources:
        dest = out_dir / f"{src.stem}.css"
        run_tool("sass", compiler, src=src, dest=dest)
        if prefixer is not None:
            run_tool("sass", prefixer, src=dest, dest=dest)
    logger.info("Compiled %d stylesheet(s) into %s", len(sources), out_dir)
