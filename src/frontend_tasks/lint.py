"""Script linting.

Violations fail the task in one-shot runs. While the dev server is live they
are only reported, so a bad edit does not stop the session.
"""

from __future__ import annotations

from typing import Dict, List, Sequence

from assetflow import task
from assetflow.errors import LintViolationError, ProcessingError
from assetflow.logging import task_logger
from assetflow.processors import find_location, run_tool
from assetflow import utils


def _with_options(template: List[str], extra: Sequence[str]) -> List[str]:
    if not extra:
        return template
    if "{files}" in template:
        idx = template.index("{files}")
        return template[:idx] + list(extra) + template[idx:]
    return template + list(extra)


def run_lint(task_name: str, params: Dict, patterns: Sequence[str], live: bool, extra: Sequence[str] = ()) -> bool:
    """Lint files matching `patterns`. Returns True when clean."""
    logger = task_logger(task_name)
    linter = utils.tool(params, "eslint")
    files = utils.expand_globs(patterns)
    if linter is None or not files:
        logger.info("Nothing to lint")
        return True
    result = run_tool(task_name, _with_options(linter, extra), files=files, check=False)
    if result.returncode == 0:
        logger.info("Linted %d file(s), no problems", len(files))
        return True
    # eslint: 1 = rule violations, anything else = the linter itself failed
    if result.returncode != 1:
        raise ProcessingError(task_name, result.output or f"linter exited with {result.returncode}")
    if live:
        logger.warning("Lint violations:\n%s", result.output)
        return False
    raise LintViolationError(task_name, result.output, location=find_location(result.output))


@task(name="lint")
def lint(params: Dict, ctx=None):
    """Lint all JS."""
    run_lint(
        "lint",
        params,
        [f"{utils.app_dir(params)}/assets/js/**/*.js"],
        live=bool(ctx and ctx.live),
    )


@task(name="lint:test")
def lint_test(params: Dict, ctx=None):
    """Lint test specs with the mocha environment enabled."""
    run_lint(
        "lint:test",
        params,
        [f"{utils.testing_dir(params)}/spec/**/*.js"],
        live=bool(ctx and ctx.live),
        extra=["--env", "mocha"],
    )
