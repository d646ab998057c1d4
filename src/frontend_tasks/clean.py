from __future__ import annotations

import shutil
from pathlib import Path
from typing import Dict

from assetflow import task
from assetflow.logging import task_logger
from assetflow import utils


@task(name="clean")
def clean(params: Dict, ctx=None):
    """Clean the build folders."""
    logger = task_logger("clean")
    for d in (utils.tmp_dir(params), utils.dist_dir(params)):
        p = Path(d)
        if p.exists():
            shutil.rmtree(p)
            logger.info("Removed %s", p)
