from __future__ import annotations

from pathlib import Path
from typing import NoReturn

import typer
import yaml
from dotenv import load_dotenv

from .core import Resolver, RunContext, TaskRegistry
from .errors import AssetflowError, ProcessingError, TaskError
from .logging import get_logger
from . import cache as cache_mod
from . import utils


app = typer.Typer(add_completion=False, help="Front-end build orchestrator CLI")
log = get_logger("assetflow.cli")

DEFAULT_CONFIG = "assetflow.yaml"


def load_config(path: str | Path) -> dict:
    p = Path(path)
    if not p.exists():
        log.debug("No config at %s, using defaults", p)
        return {}
    with open(p, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_registry() -> TaskRegistry:
    from frontend_tasks import build_registry

    return build_registry()


def _fail(err: AssetflowError) -> NoReturn:
    if isinstance(err, TaskError):
        typer.echo(f"task '{err.task}' failed: {err}", err=True)
    else:
        typer.echo(f"error: {err}", err=True)
    if isinstance(err, ProcessingError) and err.location:
        typer.echo(f"  at {err.location}", err=True)
    raise typer.Exit(code=1)


@app.callback()
def main_callback():
    load_dotenv()


@app.command("list")
def list_tasks():
    """List registered tasks with their prerequisites."""
    registry = load_registry()
    typer.echo("Registered tasks:")
    for spec in registry:
        deps = f" [{', '.join(spec.deps)}]" if spec.deps else ""
        desc = f"  {spec.description}" if spec.description else ""
        typer.echo(f"- {spec.name}{deps}{desc}")


@app.command()
def plan(name: str = typer.Argument("default", help="Task name to resolve")):
    """Print the execution order for a task."""
    try:
        order = Resolver(load_registry()).plan(name)
    except AssetflowError as e:
        _fail(e)
    for i, step in enumerate(order, 1):
        typer.echo(f"{i}. {step}")


@app.command()
def run(
    name: str = typer.Argument("default", help="Task name to run"),
    config: str = typer.Option(DEFAULT_CONFIG, help="Path to YAML config"),
):
    """Run a task and its prerequisites."""
    params = load_config(config)
    lf = utils.log_file(params)
    if lf:
        get_logger("assetflow", log_file=lf)
    resolver = Resolver(load_registry())
    ctx = RunContext(params=params)
    try:
        resolver.run(name, ctx)
    except AssetflowError as e:
        _fail(e)
    done = ", ".join(o.name for o in ctx.outcomes) or "nothing"
    typer.echo(f"Finished '{name}': {done}")


@app.command("clear-cache")
def clear_cache(
    config: str = typer.Option(DEFAULT_CONFIG, help="Path to YAML config"),
):
    """Remove cached tool outputs."""
    params = load_config(config)
    target = Path(utils.cache_dir(params))
    cache_mod.clear(target)
    typer.echo(f"Cleared {target}")


def main():  # pragma: no cover
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
