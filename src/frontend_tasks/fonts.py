from __future__ import annotations

from pathlib import Path
from typing import Dict

from assetflow import task
from assetflow.logging import task_logger
from assetflow import utils

from .manifest import load_manifest


FONT_PATTERN = "**/*.{eot,svg,ttf,woff,woff2}"


@task(name="fonts")
def fonts(params: Dict, ctx=None):
    """Pack Fonts from the manifest libraries and app/assets/fonts."""
    logger = task_logger("fonts")
    manifest = load_manifest(utils.manifest_path(params), utils.components_dir(params))
    app_pattern = f"{utils.app_dir(params)}/assets/fonts/**/*"

    # Library fonts land flat, app fonts keep their sub-tree
    files: Dict[Path, Path] = {}
    for f in manifest.files(FONT_PATTERN):
        files[Path(f.name)] = f
    for f in utils.expand_globs([app_pattern]):
        files[utils.relative_to_base(f, app_pattern)] = f

    for target in (
        Path(utils.tmp_dir(params)) / "assets" / "fonts",
        Path(utils.dist_dir(params)) / "assets" / "fonts",
    ):
        for rel, src in sorted(files.items()):
            utils.copy_file(src, target / rel)
    logger.info("Copied %d font file(s)", len(files))
