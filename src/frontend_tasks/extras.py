from __future__ import annotations

from pathlib import Path
from typing import Dict

from assetflow import task
from assetflow.logging import task_logger
from assetflow import utils


@task(name="extras")
def extras(params: Dict, ctx=None):
    """Copy top-level app files other than HTML (dotfiles included) to dist."""
    app = utils.app_dir(params)
    dist = Path(utils.dist_dir(params))
    files = utils.expand_globs([f"{app}/*.*", f"!{app}/*.html"], dot=True)
    for src in files:
        utils.copy_file(src, dist / src.name)
    task_logger("extras").info("Copied %d extra file(s)", len(files))
