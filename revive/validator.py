"""Compile -> diagnose -> repair -> retry loop."""

import logging
import time
from collections import Counter
from datetime import datetime
from enum import Enum
from pathlib import Path

from .build_runner import BuildRunner
from .config import Config
from .error_analyzer import ErrorAnalyzer
from .events import (
    ErrorsAnalyzed,
    EventSink,
    FixApplied,
    FixOutcome,
    IterationStarted,
    NoBuildTarget,
    ValidationCompleted,
    ValidationEvent,
)
from .fix_engine import FixStrategyEngine
from .history import FixHistoryStore
from .models import (
    AnalyzedError,
    AppliedFix,
    FixAttempt,
    FixHistory,
    ValidationOptions,
    ValidationOutcome,
    ValidationResult,
)
from .parse_node import load_manifest
from .strategies import FixStrategy, describe

logger = logging.getLogger(__name__)


class ValidationState(str, Enum):
    IDLE = "idle"
    ITERATING = "iterating"
    SUCCEEDED = "succeeded"
    FAILED_MAX_ITERATIONS = "failed_max_iterations"
    FAILED_UNPARSABLE = "failed_unparsable"
    SKIPPED_NO_BUILD_TARGET = "skipped_no_build_target"


class PostResurrectionValidator:
    """Drives a repository through build/repair iterations until it compiles.

    Each iteration runs the build, analyzes the failure, picks a strategy for
    the highest-priority error (fix history first, then the engine's
    rotation) and applies it. The loop ends on a successful build, when a
    failing build yields no parsable errors, or when the iteration budget is
    spent. A run of iterations without progress is reported but does not end
    the loop.
    """

    def __init__(
        self,
        build_runner: BuildRunner | None = None,
        error_analyzer: ErrorAnalyzer | None = None,
        fix_engine: FixStrategyEngine | None = None,
        history_store: FixHistoryStore | None = None,
        on_event: EventSink | None = None,
    ):
        self.build_runner = build_runner or BuildRunner()
        self.error_analyzer = error_analyzer or ErrorAnalyzer()
        self.fix_engine = fix_engine or FixStrategyEngine()
        self.history_store = history_store or FixHistoryStore()
        self.on_event = on_event
        self.state = ValidationState.IDLE
        self.fix_attempts: list[FixAttempt] = []

    def validate(self, repo_path: str | Path, options: ValidationOptions | None = None) -> ValidationResult:
        """Run the validation loop for a repository.

        Args:
            repo_path: Repository to build and repair
            options: Per-run overrides

        Returns:
            ValidationResult describing the terminal state
        """
        options = options or ValidationOptions()
        start = time.monotonic()
        repo_id = str(repo_path)
        max_iterations = options.max_iterations if options.max_iterations is not None else Config.MAX_ITERATIONS
        timeout = options.timeout if options.timeout is not None else Config.BUILD_TIMEOUT

        self.state = ValidationState.IDLE
        self.fix_engine.reset_attempted_strategies()
        self.fix_attempts = []

        history = self.history_store.load_history(repo_id) or self.history_store.get_history(repo_id)
        package_manager = self._detect_package_manager(repo_path, options)
        build_command = self._detect_build_command(repo_path, options)

        if not build_command:
            logger.info("No build script found in %s, skipping compilation validation", repo_path)
            self._emit(NoBuildTarget(repo_id, "No build script detected in package.json"))
            self.state = ValidationState.SKIPPED_NO_BUILD_TARGET
            return ValidationResult(
                success=True,
                iterations=0,
                outcome=ValidationOutcome.SKIPPED_NO_BUILD_TARGET,
                duration=time.monotonic() - start,
            )

        self.state = ValidationState.ITERATING
        applied_fixes: list[AppliedFix] = []
        last_errors: list[AnalyzedError] = []
        previous_count = -1
        no_progress = 0
        iteration = 0
        outcome = ValidationOutcome.FAILED_MAX_ITERATIONS

        while iteration < max_iterations:
            iteration += 1
            logger.info("Iteration %d/%d for %s", iteration, max_iterations, repo_path)
            self._emit(IterationStarted(iteration, max_iterations, repo_id))

            build = self.build_runner.compile(repo_path, package_manager, build_command, timeout)

            if build.success:
                if self.fix_attempts:
                    self.fix_attempts[-1].errors_after = 0
                proof = self.build_runner.generate_compilation_proof(
                    build, package_manager, build_command, iteration
                )
                self._record_successful_fixes(repo_id, applied_fixes, history)
                self.state = ValidationState.SUCCEEDED
                result = ValidationResult(
                    success=True,
                    iterations=iteration,
                    outcome=ValidationOutcome.SUCCEEDED,
                    compilation_proof=proof,
                    applied_fixes=applied_fixes,
                    duration=time.monotonic() - start,
                )
                logger.info(
                    "Compilation succeeded after %d iteration(s) and %d fix(es)",
                    iteration,
                    len(applied_fixes),
                )
                self._emit_completed(result)
                return result

            errors = self.error_analyzer.analyze(build)
            last_errors = errors
            current_count = len(errors)
            if self.fix_attempts:
                self.fix_attempts[-1].errors_after = current_count

            logger.warning("Compilation failed with %d parsable error(s)", current_count)
            for index, error in enumerate(errors[:5], start=1):
                logger.info("  %d. [%s] %s", index, error.category.value, error.message[:100])
            self._emit_error_analysis(iteration, errors)

            if not errors:
                logger.warning("Compilation failed but no errors could be parsed: %s", build.stderr[:500])
                outcome = ValidationOutcome.FAILED_UNPARSABLE
                break

            if previous_count != -1:
                if current_count < previous_count:
                    no_progress = 0
                    logger.info("Progress: %d -> %d errors", previous_count, current_count)
                elif current_count == previous_count:
                    no_progress += 1
                    logger.warning("No progress (%d/%d)", no_progress, Config.NO_PROGRESS_THRESHOLD)
                    if no_progress >= Config.NO_PROGRESS_THRESHOLD:
                        # Reported only; the loop keeps spending its budget
                        logger.error("No-progress threshold reached, continuing to the iteration limit")
                else:
                    logger.warning("Error count increased: %d -> %d", previous_count, current_count)
            previous_count = current_count

            target = errors[0]
            strategy = self._select_strategy(repo_id, target, history)
            if strategy is None:
                logger.warning("Every strategy for %s was already tried, rebuilding without a fix", target.pattern)
                continue

            description = describe(strategy)
            logger.info("Applying %s for %s", description, target.pattern)
            self._emit(FixApplied(iteration, strategy, target.category.value, description))

            fix_result = self.fix_engine.apply_fix(repo_path, strategy)
            self.fix_engine.mark_strategy_attempted(target, strategy)
            self.fix_attempts.append(
                FixAttempt(
                    strategy=strategy,
                    iteration=iteration,
                    errors_before=current_count,
                    errors_after=current_count,
                    timestamp=datetime.now(),
                    success=fix_result.success,
                )
            )
            applied_fixes.append(AppliedFix(iteration, target, fix_result.strategy, fix_result))

            if fix_result.success:
                logger.info("Fix applied, rebuilding")
            else:
                logger.warning("Fix failed: %s", fix_result.error)
            self._emit(
                FixOutcome(
                    iteration=iteration,
                    success=fix_result.success,
                    strategy=fix_result.strategy,
                    compilation_succeeds=False,
                    error=fix_result.error,
                )
            )

        self.state = (
            ValidationState.FAILED_UNPARSABLE
            if outcome is ValidationOutcome.FAILED_UNPARSABLE
            else ValidationState.FAILED_MAX_ITERATIONS
        )
        result = ValidationResult(
            success=False,
            iterations=iteration,
            outcome=outcome,
            applied_fixes=applied_fixes,
            remaining_errors=last_errors,
            duration=time.monotonic() - start,
        )
        logger.info(
            "Validation failed (%s) after %d iteration(s); %d error(s) remain",
            outcome.value,
            iteration,
            len(last_errors),
        )
        self._emit_completed(result)
        return result

    def get_fix_history(self, repo_path: str | Path) -> FixHistory:
        return self.history_store.get_history(str(repo_path))

    def _select_strategy(self, repo_id: str, error: AnalyzedError, history: FixHistory) -> FixStrategy | None:
        """Next untried strategy for the error; None once even the fallback was attempted."""
        known = self.history_store.find_best_fix(repo_id, error.pattern)
        if known is not None and not self.fix_engine.is_attempted(error, known):
            logger.info("Reusing fix that worked before for %s", error.pattern)
            return known
        strategy = self.fix_engine.select_strategy(error, history)
        if self.fix_engine.is_attempted(error, strategy):
            return None
        return strategy

    def _detect_package_manager(self, repo_path: str | Path, options: ValidationOptions) -> str:
        if options.package_manager and options.package_manager != "auto":
            return options.package_manager
        return self.build_runner.detect_package_manager(repo_path)

    def _detect_build_command(self, repo_path: str | Path, options: ValidationOptions) -> str | None:
        if options.build_command:
            return options.build_command
        try:
            manifest = load_manifest(repo_path)
        except (OSError, ValueError) as e:
            logger.debug("Cannot read package.json in %s: %s", repo_path, e)
            return None
        return self.build_runner.detect_build_command(manifest)

    def _record_successful_fixes(
        self, repo_id: str, applied_fixes: list[AppliedFix], history: FixHistory
    ) -> None:
        for fix in applied_fixes:
            if fix.result.success:
                self.history_store.record_fix(repo_id, fix.error.pattern, fix.strategy)
        try:
            self.history_store.save_history(repo_id, history)
        except OSError as e:
            logger.warning("Could not save fix history for %s: %s", repo_id, e)

    def _emit(self, event: ValidationEvent) -> None:
        if self.on_event:
            self.on_event(event)

    def _emit_error_analysis(self, iteration: int, errors: list[AnalyzedError]) -> None:
        by_category = Counter(error.category.value for error in errors)
        top = [
            {
                "category": error.category.value,
                "message": error.message[:200],
                "package": error.package_name,
                "priority": error.priority,
            }
            for error in errors[:3]
        ]
        self._emit(ErrorsAnalyzed(iteration, len(errors), dict(by_category), top))

    def _emit_completed(self, result: ValidationResult) -> None:
        successful = sum(1 for fix in result.applied_fixes if fix.result.success)
        if result.success:
            summary = f"Compilation succeeded after {result.iterations} iteration(s) with {successful} fix(es)"
        else:
            summary = (
                f"Validation failed ({result.outcome.value}) after {result.iterations} iteration(s); "
                f"{len(result.remaining_errors)} error(s) remain"
            )
        self._emit(
            ValidationCompleted(
                success=result.success,
                total_iterations=result.iterations,
                total_fixes_applied=len(result.applied_fixes),
                successful_fixes=successful,
                remaining_errors=len(result.remaining_errors),
                duration=result.duration,
                summary=summary,
            )
        )
