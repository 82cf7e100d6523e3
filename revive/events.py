"""Progress events emitted by the validation loop."""

from dataclasses import dataclass
from typing import Callable, Union

from .strategies import FixStrategy


@dataclass(frozen=True)
class IterationStarted:
    iteration: int
    max_iterations: int
    repo_path: str


@dataclass(frozen=True)
class ErrorsAnalyzed:
    iteration: int
    error_count: int
    errors_by_category: dict[str, int]
    top_errors: list[dict]


@dataclass(frozen=True)
class FixApplied:
    iteration: int
    strategy: FixStrategy
    target_error: str
    description: str


@dataclass(frozen=True)
class FixOutcome:
    iteration: int
    success: bool
    strategy: FixStrategy
    compilation_succeeds: bool
    error: str | None = None


@dataclass(frozen=True)
class ValidationCompleted:
    success: bool
    total_iterations: int
    total_fixes_applied: int
    successful_fixes: int
    remaining_errors: int
    duration: float
    summary: str


@dataclass(frozen=True)
class NoBuildTarget:
    repo_path: str
    reason: str


ValidationEvent = Union[
    IterationStarted,
    ErrorsAnalyzed,
    FixApplied,
    FixOutcome,
    ValidationCompleted,
    NoBuildTarget,
]

EventSink = Callable[[ValidationEvent], None]
