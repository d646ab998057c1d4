"""Image optimisation with a content-addressed cache.

Unchanged images are served from the cache instead of being re-optimised.
"""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Dict

from assetflow import cache as cache_mod
from assetflow import task
from assetflow.errors import ProcessingError
from assetflow.logging import task_logger
from assetflow.processors import run_tool
from assetflow import utils


def optimize(params: Dict, src: Path) -> Path:
    """Return a path holding the optimised bytes of `src`."""
    template = utils.tool(params, "imagemin")
    if template is None:
        return src
    cache_dir = Path(utils.cache_dir(params)) / "images"
    key = cache_mod.compute_key("images", src, template)
    hit = cache_mod.lookup(cache_dir, key)
    if hit is not None:
        return hit
    with tempfile.TemporaryDirectory() as out:
        run_tool("images", template, src=src, dest=out)
        produced = Path(out) / src.name
        if not produced.is_file():
            raise ProcessingError("images", f"optimiser produced no output for {src}")
        return cache_mod.store(cache_dir, key, produced)


@task(name="images")
def images(params: Dict, ctx=None):
    """Pack and cache Images."""
    logger = task_logger("images")
    pattern = f"{utils.app_dir(params)}/assets/images/**/*"
    targets = [
        Path(utils.tmp_dir(params)) / "assets" / "images",
        Path(utils.dist_dir(params)) / "assets" / "images",
    ]
    sources = utils.expand_globs([pattern])
    for src in sources:
        optimized = optimize(params, src)
        rel = utils.relative_to_base(src, pattern)
        for target in targets:
            utils.copy_file(optimized, target / rel)
    logger.info("Processed %d image(s)", len(sources))
