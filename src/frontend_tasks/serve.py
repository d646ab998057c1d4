"""Development, distribution and test servers with file watching."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Sequence

from assetflow import task
from assetflow.core import Resolver, RunContext
from assetflow.server import DevServer, ReloadChannel, create_app
from assetflow.watch import WatchBinding, WatchSession
from assetflow import utils


def dev_bindings(params: Dict) -> List[WatchBinding]:
    app = utils.app_dir(params)
    tmp = utils.tmp_dir(params)
    return [
        WatchBinding.of(
            [f"{app}/*.html", f"{app}/assets/images/**/*", f"{tmp}/assets/fonts/**/*"],
            reload=True,
        ),
        WatchBinding.of(f"{app}/assets/sass/**/*.scss", "sass", reload=True),
        WatchBinding.of(f"{app}/assets/js/**/*.js", "js", reload=True),
        WatchBinding.of(f"{app}/assets/fonts/**/*", "fonts"),
        WatchBinding.of(utils.manifest_path(params), ["wiredep", "fonts"]),
    ]


def spec_server_bindings(params: Dict) -> List[WatchBinding]:
    app = utils.app_dir(params)
    specs = f"{utils.testing_dir(params)}/spec/**/*.js"
    return [
        WatchBinding.of(f"{app}/assets/js/**/*.js", "js"),
        WatchBinding.of(specs, reload=True),
        WatchBinding.of(specs, "lint:test"),
    ]


def serve_forever(
    params: Dict,
    ctx: RunContext | None,
    base_dirs: Sequence[str],
    routes: Dict[str, str],
    bindings: Sequence[WatchBinding],
) -> None:
    """Start the server, then block in a watch session until interrupted."""
    channel = ReloadChannel()
    app = create_app(base_dirs, routes, channel)
    server = DevServer(app, host=utils.server_host(params), port=utils.server_port(params))
    registry = ctx.registry if ctx is not None else None
    if registry is None:
        from . import build_registry

        registry = build_registry()
    session = WatchSession(
        Resolver(registry, name="watch"),
        bindings,
        channel=channel,
        params=params,
        debounce_ms=utils.debounce_ms(params),
        root=Path.cwd(),
    )
    server.start()
    try:
        session.run_forever()
    finally:
        server.stop()


@task(name="serve", deps=["sass", "js", "fonts"])
def serve(params: Dict, ctx=None):
    """Build a dev serve with live reload."""
    serve_forever(
        params,
        ctx,
        [utils.tmp_dir(params), utils.app_dir(params)],
        {"/bower_components": utils.components_dir(params)},
        dev_bindings(params),
    )


@task(name="serve:dist")
def serve_dist(params: Dict, ctx=None):
    """Distribution Server."""
    serve_forever(params, ctx, [utils.dist_dir(params)], {}, [])


@task(name="serve:test", deps=["js"])
def serve_test(params: Dict, ctx=None):
    """Testing Server."""
    serve_forever(
        params,
        ctx,
        [utils.testing_dir(params)],
        {
            "/js": f"{utils.tmp_dir(params)}/assets/js",
            "/bower_components": utils.components_dir(params),
        },
        spec_server_bindings(params),
    )
