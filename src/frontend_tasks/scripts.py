"""Script transpilation for development."""

from __future__ import annotations

from pathlib import Path
from typing import Dict

from assetflow import task
from assetflow.logging import task_logger
from assetflow.processors import run_tool
from assetflow import utils


@task(name="js")
def js(params: Dict, ctx=None):
    """Build JS for dev."""
    logger = task_logger("js")
    transpiler = utils.tool(params, "babel")
    pattern = f"{utils.app_dir(params)}/assets/js/**/*.js"
    out_dir = Path(utils.tmp_dir(params)) / "assets" / "js"
    sources = utils.expand_globs([pattern])
    for src in sources:
        dest = out_dir / utils.relative_to_base(src, pattern)
        if transpiler is None:
            utils.copy_file(src, dest)
        else:
            run_tool("js", transpiler, src=src, dest=dest)
    logger.info("Transpiled %d script(s) into %s", len(sources), out_dir)
