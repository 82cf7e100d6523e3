"""CLI application for Revive."""

import asyncio
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from revive.blocking import BlockingDependencyDetector
from revive.config import Config
from revive.error_analyzer import ErrorAnalyzer
from revive.events import (
    ErrorsAnalyzed,
    FixApplied,
    FixOutcome,
    IterationStarted,
    NoBuildTarget,
    ValidationCompleted,
    ValidationEvent,
)
from revive.models import AnalyzedError, BlockingDependency, ValidationOptions, ValidationResult
from revive.parse_node import manifest_path, parse_package_json
from revive.registry import PackageReplacementRegistry
from revive.replacement import (
    PackageReplacementExecutor,
    replace_blocking_dependencies,
    replacements_for_blocking,
)
from revive.strategies import describe, strategy_to_dict
from revive.validator import PostResurrectionValidator

console = Console()


def configure_logging(verbose: bool) -> None:
    """Route library logging through rich; --verbose selects DEBUG."""
    level = logging.DEBUG if verbose else Config.LOG_LEVEL.upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def print_event(event: ValidationEvent) -> None:
    """Render validator progress events."""
    if isinstance(event, IterationStarted):
        console.print(f"[bold]Iteration {event.iteration}/{event.max_iterations}[/bold]")
    elif isinstance(event, ErrorsAnalyzed):
        categories = ", ".join(f"{name}: {count}" for name, count in event.errors_by_category.items())
        console.print(f"  {event.error_count} error(s) ({categories})")
    elif isinstance(event, FixApplied):
        console.print(f"  Applying: {event.description}")
    elif isinstance(event, FixOutcome):
        if event.success:
            console.print("  Fix applied", style="green")
        else:
            console.print(f"  Fix failed: {event.error}", style="yellow")
    elif isinstance(event, NoBuildTarget):
        console.print(f"Skipped: {event.reason}", style="yellow")
    elif isinstance(event, ValidationCompleted):
        console.print(event.summary, style="green" if event.success else "red")


def format_validation_json(result: ValidationResult) -> str:
    proof = None
    if result.compilation_proof:
        proof = asdict(result.compilation_proof)
        proof["timestamp"] = result.compilation_proof.timestamp.isoformat()

    return json.dumps(
        {
            "success": result.success,
            "outcome": result.outcome.value,
            "iterations": result.iterations,
            "duration": round(result.duration, 3),
            "compilation_proof": proof,
            "applied_fixes": [
                {
                    "iteration": fix.iteration,
                    "error_pattern": fix.error.pattern,
                    "strategy": strategy_to_dict(fix.strategy),
                    "success": fix.result.success,
                    "error": fix.result.error,
                }
                for fix in result.applied_fixes
            ],
            "remaining_errors": [error_to_dict(error) for error in result.remaining_errors],
        },
        indent=2,
    )


def error_to_dict(error: AnalyzedError) -> dict:
    return {
        "category": error.category.value,
        "priority": error.priority,
        "package": error.package_name,
        "version_constraint": error.version_constraint,
        "conflicting_packages": error.conflicting_packages,
        "suggested_fix": strategy_to_dict(error.suggested_fix) if error.suggested_fix else None,
        "message": error.message,
    }


def blocking_to_dict(dep: BlockingDependency) -> dict:
    return {
        "name": dep.name,
        "version": dep.version,
        "reason": dep.reason.value,
        "replacement": dep.replacement.new_name if dep.replacement else None,
    }


def print_errors_table(errors: list[AnalyzedError]) -> None:
    table = Table(title="Build errors")
    table.add_column("Priority", justify="right")
    table.add_column("Category")
    table.add_column("Package")
    table.add_column("Suggested fix")
    table.add_column("Message")
    for error in errors:
        table.add_row(
            str(error.priority),
            error.category.value,
            error.package_name or "-",
            describe(error.suggested_fix) if error.suggested_fix else "-",
            error.message.splitlines()[0][:80],
        )
    console.print(table)


app = typer.Typer(
    name="revive",
    help="Revive - Bring abandoned Node.js repositories back to a compiling state",
    add_completion=False,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Revive - Bring abandoned Node.js repositories back to a compiling state."""
    configure_logging(verbose)


@app.command()
def validate(
    repo_path: str = typer.Argument(help="Path to the repository to validate"),
    max_iterations: int | None = typer.Option(None, "--max-iterations", help="Iteration budget"),
    timeout: float | None = typer.Option(None, "--timeout", help="Build timeout in seconds"),
    package_manager: str = typer.Option("auto", "--package-manager", help="auto, npm, yarn or pnpm"),
    build_command: str | None = typer.Option(None, "--build-command", help="Script to run instead of detection"),
    format_type: str = typer.Option("text", "--format", help="Output format: text or json"),
) -> None:
    """Compile a repository, repairing dependency errors until it builds."""

    try:
        if not Path(repo_path).is_dir():
            console.print(f"Error: Directory {repo_path} not found", style="red")
            raise typer.Exit(1)

        if package_manager not in ("auto", "npm", "yarn", "pnpm"):
            console.print(f"Error: Unsupported package manager: {package_manager}", style="red")
            raise typer.Exit(1)

        options = ValidationOptions(
            max_iterations=max_iterations,
            timeout=timeout,
            package_manager=package_manager,
            build_command=build_command,
        )
        validator = PostResurrectionValidator(on_event=print_event if format_type != "json" else None)
        result = validator.validate(repo_path, options)

        if format_type == "json":
            console.print_json(format_validation_json(result))
        elif result.remaining_errors:
            print_errors_table(result.remaining_errors)

        if not result.success:
            raise typer.Exit(1)

    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"Error: {e}", style="red")
        raise typer.Exit(1)


@app.command()
def scan(
    repo_path: str = typer.Argument(help="Repository or package.json to scan"),
    registry_path: str | None = typer.Option(None, "--registry", help="Replacement registry JSON file"),
    arch: str | None = typer.Option(None, "--arch", help="Target architecture (default: this machine)"),
    format_type: str = typer.Option("text", "--format", help="Output format: text or json"),
) -> None:
    """Find dependencies that will block installation."""

    try:
        path = Path(repo_path)
        if path.is_dir():
            path = manifest_path(path)
        if not path.exists():
            console.print(f"Error: File {path} not found", style="red")
            raise typer.Exit(1)

        manifest = parse_package_json(path.read_text())

        registry = PackageReplacementRegistry(registry_path)
        registry.load()
        detector = BlockingDependencyDetector(registry=registry, arch=arch)
        blocking = asyncio.run(detector.detect(manifest.dependencies()))

        if format_type == "json":
            console.print_json(json.dumps({"blocking": [blocking_to_dict(dep) for dep in blocking]}))
        elif not blocking:
            console.print("No blocking dependencies found", style="green")
        else:
            table = Table(title="Blocking dependencies")
            table.add_column("Package")
            table.add_column("Version")
            table.add_column("Reason")
            table.add_column("Replacement")
            for dep in blocking:
                row = blocking_to_dict(dep)
                table.add_row(row["name"], row["version"], row["reason"], row["replacement"] or "-")
            console.print(table)

        if blocking:
            raise typer.Exit(2)

    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"Error: {e}", style="red")
        raise typer.Exit(1)


@app.command()
def replace(
    repo_path: str = typer.Argument(help="Repository whose package.json should be rewritten"),
    registry_path: str | None = typer.Option(None, "--registry", help="Replacement registry JSON file"),
    blocking_only: bool = typer.Option(
        False, "--blocking", help="Only replace dependencies that block installation"
    ),
    arch: str | None = typer.Option(None, "--arch", help="Target architecture for --blocking"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show replacements without applying"),
) -> None:
    """Apply registry replacements that match the manifest."""

    try:
        path = manifest_path(repo_path)
        if not path.exists():
            console.print(f"Error: File {path} not found", style="red")
            raise typer.Exit(1)

        declared = parse_package_json(path.read_text()).dependencies()

        registry = PackageReplacementRegistry(registry_path)
        registry.load()
        if blocking_only:
            detector = BlockingDependencyDetector(registry=registry, arch=arch)
            matching = replacements_for_blocking(asyncio.run(detector.detect(declared)))
        else:
            matching = [r for r in registry.get_all() if r.old_name in declared]

        if not matching:
            console.print("No replacements apply")
            raise typer.Exit(0)

        if dry_run:
            for replacement in matching:
                current = declared[replacement.old_name]
                target = replacement.new_name or "(removed)"
                console.print(f"-{replacement.old_name}@{current}")
                console.print(f"+{target}@{replacement.map_version(current)}")
            raise typer.Exit(0)

        if blocking_only:
            _, results = asyncio.run(replace_blocking_dependencies(repo_path, detector))
        else:
            results = PackageReplacementExecutor(repo_path).execute_replacement(matching)
        for result in results:
            line = f"{result.package_name or '(removed)'}: {result.old_version} -> {result.new_version}"
            if result.requires_manual_review:
                line += " (manual review required)"
            console.print(line)
        console.print(f"Updated {path}")

    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"Error: {e}", style="red")
        raise typer.Exit(1)


@app.command()
def analyze(
    log_path: str = typer.Argument(help="Build log to analyze (use '-' for stdin)"),
    format_type: str = typer.Option("text", "--format", help="Output format: text or json"),
) -> None:
    """Classify the errors in a captured build log."""

    try:
        if log_path == "-":
            content = sys.stdin.read()
        else:
            path_obj = Path(log_path)
            if not path_obj.exists():
                console.print(f"Error: File {log_path} not found", style="red")
                raise typer.Exit(1)
            content = path_obj.read_text()

        errors = ErrorAnalyzer().analyze_output(content)

        if format_type == "json":
            console.print_json(json.dumps({"errors": [error_to_dict(error) for error in errors]}))
        elif not errors:
            console.print("No errors found")
        else:
            print_errors_table(errors)

    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"Error: {e}", style="red")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
