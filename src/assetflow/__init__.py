"""Declarative build orchestrator for static front-end projects.

Provides the task registry, a depth-first resolver, a watch/reload loop and
a development server. The actual transformations are delegated to external
tools configured in YAML.
"""

from .core import Resolver, RunContext, TaskOutcome, TaskRegistry, TaskSpec, task  # re-export for convenience
from .errors import (
    AssetflowError,
    CyclicDependencyError,
    DuplicateTaskError,
    LintViolationError,
    ProcessingError,
    TaskError,
    UnknownTaskError,
)

__version__ = "0.1.0"

__all__ = [
    "TaskSpec",
    "TaskRegistry",
    "TaskOutcome",
    "RunContext",
    "Resolver",
    "task",
    "AssetflowError",
    "TaskError",
    "UnknownTaskError",
    "DuplicateTaskError",
    "CyclicDependencyError",
    "ProcessingError",
    "LintViolationError",
]
