from __future__ import annotations

import json
import os
import sys
import time
import uuid
from concurrent.futures import Future
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional, Sequence

from .errors import (
    CyclicDependencyError,
    DuplicateTaskError,
    ProcessingError,
    RegistryFrozenError,
    TaskError,
    UnknownTaskError,
)
from .logging import get_logger, task_logger
from . import utils


@dataclass(frozen=True)
class TaskSpec:
    name: str
    deps: tuple[str, ...]
    fn: Callable[..., object]
    description: str = ""


def task(name: str, deps: Sequence[str] = ()):
    """Decorator to declare a task on a function.

    The wrapped function receives `params` (parsed config) and `ctx` (the
    current RunContext). It may return None, or a Future that the resolver
    waits on.
    """

    def deco(fn: Callable[..., object]):
        doc = (fn.__doc__ or "").strip().splitlines()
        spec = TaskSpec(
            name=name,
            deps=tuple(deps),
            fn=fn,
            description=doc[0] if doc else "",
        )
        setattr(fn, "_task_spec", spec)
        return fn

    return deco


class TaskRegistry:
    def __init__(self):
        self._tasks: dict[str, TaskSpec] = {}
        self._frozen = False

    @classmethod
    def from_functions(cls, fns: Iterable[Callable[..., object]]) -> "TaskRegistry":
        registry = cls()
        for fn in fns:
            spec = getattr(fn, "_task_spec", None)
            if not isinstance(spec, TaskSpec):
                raise TypeError(f"{fn!r} is not decorated with @task")
            registry.add(spec)
        return registry.freeze()

    def register(
        self,
        name: str,
        deps: Sequence[str],
        fn: Callable[..., object],
        description: str = "",
    ) -> TaskSpec:
        spec = TaskSpec(name=name, deps=tuple(deps), fn=fn, description=description)
        return self.add(spec)

    def add(self, spec: TaskSpec) -> TaskSpec:
        if self._frozen:
            raise RegistryFrozenError(f"Registry is frozen, cannot add {spec.name}")
        if spec.name in self._tasks:
            raise DuplicateTaskError(spec.name)
        self._tasks[spec.name] = spec
        return spec

    def freeze(self) -> "TaskRegistry":
        """Validate references and acyclicity, then reject further changes."""
        for spec in self._tasks.values():
            for dep in spec.deps:
                if dep not in self._tasks:
                    raise UnknownTaskError(dep, required_by=spec.name)
        resolver = Resolver(self)
        for name in self._tasks:
            resolver.plan(name)
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def lookup(self, name: str) -> TaskSpec:
        try:
            return self._tasks[name]
        except KeyError:
            raise UnknownTaskError(name) from None

    def names(self) -> list[str]:
        return list(self._tasks)

    def __contains__(self, name: object) -> bool:
        return name in self._tasks

    def __iter__(self) -> Iterator[TaskSpec]:
        return iter(self._tasks.values())

    def __len__(self) -> int:
        return len(self._tasks)


@dataclass
class TaskOutcome:
    name: str
    status: str  # "ok" | "error"
    seconds: float
    error: str | None = None


def _new_run_id() -> str:
    # Watch runs can start within the same second
    return f"{time.strftime('%Y%m%d-%H%M%S')}-{uuid.uuid4().hex[:6]}"


@dataclass
class RunContext:
    """Per-invocation state: what already ran and how it went."""

    params: dict = field(default_factory=dict)
    live: bool = False
    registry: Optional["TaskRegistry"] = None
    run_id: str = field(default_factory=_new_run_id)
    completed: set[str] = field(default_factory=set)
    outcomes: list[TaskOutcome] = field(default_factory=list)

    def succeeded(self) -> bool:
        return all(o.status == "ok" for o in self.outcomes)


class Resolver:
    def __init__(self, registry: TaskRegistry, name: str = "assetflow"):
        self.registry = registry
        self.name = name
        self.logger = get_logger(f"assetflow.{self.name}")

    def plan(self, name: str) -> list[str]:
        """Depth-first order of `name`'s prerequisites followed by `name`."""
        order: list[str] = []
        done: set[str] = set()
        stack: list[str] = []

        def visit(node: str, parent: str | None) -> None:
            if node in done:
                return
            if node in stack:
                raise CyclicDependencyError(stack[stack.index(node) :] + [node])
            if node not in self.registry:
                raise UnknownTaskError(node, required_by=parent)
            stack.append(node)
            for dep in self.registry.lookup(node).deps:
                visit(dep, node)
            stack.pop()
            done.add(node)
            order.append(node)

        visit(name, None)
        return order

    def run(self, names: str | Sequence[str], ctx: RunContext | None = None) -> RunContext:
        """Run one or more top-level tasks, sharing a single RunContext.

        Raises the first TaskError; tasks after it in the plan do not run.
        """
        if isinstance(names, str):
            names = [names]
        ctx = ctx or RunContext()
        if ctx.registry is None:
            ctx.registry = self.registry
        plan: list[str] = []
        for name in names:
            for step in self.plan(name):
                if step not in plan:
                    plan.append(step)
        self.logger.info("Selected steps: %s", " → ".join(plan))

        try:
            for step in plan:
                if step in ctx.completed:
                    continue
                self._run_step(self.registry.lookup(step), ctx)
        finally:
            _write_state(ctx, self.name)
        return ctx

    def _run_step(self, spec: TaskSpec, ctx: RunContext) -> None:
        step_logger = task_logger(spec.name)
        step_logger.info("Run: %s", spec.name)
        start = time.monotonic()
        try:
            result = spec.fn(params=ctx.params, ctx=ctx)
            if isinstance(result, Future):
                result.result()
        except TaskError as e:
            self._record(ctx, spec.name, start, e)
            raise
        except Exception as e:  # noqa: BLE001
            self._record(ctx, spec.name, start, e)
            raise ProcessingError(spec.name, e) from e
        elapsed = time.monotonic() - start
        ctx.outcomes.append(TaskOutcome(spec.name, "ok", elapsed))
        ctx.completed.add(spec.name)
        step_logger.info("Finished %s in %.2fs", spec.name, elapsed)

    def _record(
        self, ctx: RunContext, name: str, start: float, error: BaseException
    ) -> None:
        elapsed = time.monotonic() - start
        ctx.outcomes.append(TaskOutcome(name, "error", elapsed, str(error)))
        task_logger(name).error(
            "Step failed (%s) after %.2fs: %s", name, elapsed, error
        )


def _write_state(ctx: RunContext, name: str) -> None:
    runs = utils.runs_dir(ctx.params)
    if not runs:
        return
    run_dir = Path(runs) / name / ctx.run_id
    os.makedirs(run_dir, exist_ok=True)
    state = {
        "pipeline": name,
        "run_id": ctx.run_id,
        "live": ctx.live,
        "steps": [
            {
                "name": o.name,
                "status": o.status,
                "seconds": round(o.seconds, 3),
                **({"error": o.error} if o.error else {}),
            }
            for o in ctx.outcomes
        ],
        "python": sys.version,
    }
    with open(run_dir / "state.json", "w", encoding="utf-8") as f:
        json.dump(state, f, indent=2)
