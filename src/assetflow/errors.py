from __future__ import annotations

from typing import Sequence


class AssetflowError(Exception):
    """Base class for all orchestrator errors."""


class RegistryFrozenError(AssetflowError):
    pass


class TaskError(AssetflowError):
    """An error attributable to a named task."""

    def __init__(self, task: str, message: str):
        super().__init__(message)
        self.task = task
        self.message = message

    def __str__(self) -> str:
        return self.message


class UnknownTaskError(TaskError):
    def __init__(self, task: str, required_by: str | None = None):
        msg = f"Unknown task: {task}"
        if required_by:
            msg += f" (required by {required_by})"
        super().__init__(task, msg)
        self.required_by = required_by


class DuplicateTaskError(TaskError):
    def __init__(self, task: str):
        super().__init__(task, f"Task already registered: {task}")


class CyclicDependencyError(TaskError):
    def __init__(self, cycle: Sequence[str]):
        self.cycle = list(cycle)
        super().__init__(self.cycle[0], "Cycle detected: " + " -> ".join(self.cycle))


class ProcessingError(TaskError):
    """A delegated transformation failed.

    ``location`` is a ``file:line[:col]`` string when the tool reported one.
    """

    def __init__(
        self,
        task: str,
        cause: BaseException | str,
        location: str | None = None,
    ):
        self.cause = cause
        self.location = location
        super().__init__(task, str(cause))


class LintViolationError(ProcessingError):
    def __init__(self, task: str, report: str, location: str | None = None):
        self.report = report
        super().__init__(task, f"Lint violations found\n{report}".rstrip(), location)


class InjectionError(AssetflowError):
    """Per-file failure while rewriting dependency markers."""

    def __init__(self, path: str, message: str):
        super().__init__(f"{path}: {message}")
        self.path = path
        self.message = message
