"""Run a repository's build through its package manager."""

import hashlib
import logging
import os
import shlex
import subprocess
import time
from datetime import datetime
from pathlib import Path

from .config import Config
from .detect import PACKAGE_MANAGERS, detect_build_command, detect_package_manager
from .models import BuildResult, CompilationProof

logger = logging.getLogger(__name__)


def build_command_args(package_manager: str, build_command: str) -> list[str]:
    """Turn a script name (or a full ``npm ...`` command) into argv.

    Words after a script name are passed to the script, behind ``--`` for npm.
    """
    parts = shlex.split(build_command)
    if parts and parts[0] in PACKAGE_MANAGERS:
        return parts

    manager = package_manager or "npm"
    args = [manager, "run", *parts[:1]]
    if len(parts) > 1 and manager == "npm":
        args.append("--")
    return args + parts[1:]


class BuildRunner:
    """Default build-execution collaborator used by the validator."""

    def compile(
        self,
        repo_path: str | Path,
        package_manager: str,
        build_command: str,
        timeout: float | None = None,
    ) -> BuildResult:
        """Run the build and capture its output. Never raises."""
        timeout = timeout if timeout is not None else Config.BUILD_TIMEOUT
        args = build_command_args(package_manager, build_command)
        env = {**os.environ, "CI": "true", "FORCE_COLOR": "0"}
        start = time.monotonic()

        logger.debug("Running %s in %s (timeout %ss)", " ".join(args), repo_path, timeout)
        try:
            completed = subprocess.run(
                args,
                cwd=str(repo_path),
                env=env,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            return BuildResult(
                success=False,
                status="failed",
                exit_code=-1,
                stdout=_as_text(e.stdout),
                stderr=f"{_as_text(e.stderr)}\n[TIMEOUT] Compilation timed out after {timeout}s",
                duration=time.monotonic() - start,
            )
        except OSError as e:
            return BuildResult(
                success=False,
                status="failed",
                exit_code=-1,
                stderr=f"[ERROR] {e}",
                duration=time.monotonic() - start,
            )

        success = completed.returncode == 0
        return BuildResult(
            success=success,
            status="passed" if success else "failed",
            exit_code=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
            duration=time.monotonic() - start,
        )

    def detect_package_manager(self, repo_path: str | Path) -> str:
        return detect_package_manager(repo_path)

    def detect_build_command(self, manifest: dict) -> str | None:
        return detect_build_command(manifest)

    def generate_compilation_proof(
        self,
        result: BuildResult,
        package_manager: str,
        build_command: str,
        iteration: int,
    ) -> CompilationProof:
        digest = hashlib.sha256((result.stdout + result.stderr).encode("utf-8")).hexdigest()
        return CompilationProof(
            timestamp=datetime.now(),
            build_command=build_command,
            package_manager=package_manager,
            exit_code=result.exit_code,
            duration=result.duration,
            output_hash=digest,
            iterations_required=iteration,
        )


def _as_text(output) -> str:
    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode("utf-8", errors="replace")
    return output
