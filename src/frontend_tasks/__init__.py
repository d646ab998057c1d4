"""Task graph for a static front-end project.

Each module declares its tasks with `@assetflow.task(name=..., deps=[...])`.
`build_registry()` is the single construction step: it registers the tasks
below in this order (which is also the listing order) and freezes the result.
"""

from assetflow import TaskRegistry

from . import build, clean, extras, fonts, html, images, lint, scripts, serve, styles, wiredep


TASKS = [
    styles.sass,
    scripts.js,
    lint.lint,
    lint.lint_test,
    html.html,
    images.images,
    fonts.fonts,
    extras.extras,
    clean.clean,
    serve.serve,
    serve.serve_dist,
    serve.serve_test,
    wiredep.wiredep,
    build.build,
    build.default,
]


def build_registry() -> TaskRegistry:
    return TaskRegistry.from_functions(TASKS)


__all__ = ["TASKS", "build_registry"]
