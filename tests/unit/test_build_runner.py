"""Tests for the build runner."""

import hashlib
import subprocess
from unittest.mock import patch

from revive.build_runner import BuildRunner, build_command_args


class TestBuildCommandArgs:
    """Test turning build commands into argv."""

    def test_script_name(self):
        """Should run script names through the package manager."""
        assert build_command_args("pnpm", "build") == ["pnpm", "run", "build"]

    def test_full_command(self):
        """Should pass full package manager commands through."""
        assert build_command_args("npm", "yarn build --prod") == ["yarn", "build", "--prod"]

    def test_script_arguments(self):
        """Should keep script arguments as separate argv entries."""
        assert build_command_args("npm", "build --prod") == ["npm", "run", "build", "--", "--prod"]
        assert build_command_args("yarn", "build --prod") == ["yarn", "run", "build", "--prod"]
        assert build_command_args("pnpm", "build --mode 'dev server'") == [
            "pnpm", "run", "build", "--mode", "dev server"
        ]


class TestCompile:
    """Test running builds."""

    def setup_method(self):
        """Setup test fixtures."""
        self.runner = BuildRunner()

    def test_successful_build(self, tmp_path):
        """Should capture output and run non-interactively."""
        completed = subprocess.CompletedProcess(["npm", "run", "build"], 0, stdout="built", stderr="")
        with patch("revive.build_runner.subprocess.run", return_value=completed) as mock_run:
            result = self.runner.compile(tmp_path, "npm", "build", timeout=30)

        assert result.success
        assert result.status == "passed"
        assert result.stdout == "built"
        args, kwargs = mock_run.call_args
        assert args[0] == ["npm", "run", "build"]
        assert kwargs["cwd"] == str(tmp_path)
        assert kwargs["timeout"] == 30
        assert kwargs["env"]["CI"] == "true"
        assert kwargs["env"]["FORCE_COLOR"] == "0"

    def test_failed_build(self, tmp_path):
        """Should report a non-zero exit as failure."""
        completed = subprocess.CompletedProcess([], 2, stdout="", stderr="Error: boom")
        with patch("revive.build_runner.subprocess.run", return_value=completed):
            result = self.runner.compile(tmp_path, "npm", "build")

        assert not result.success
        assert result.status == "failed"
        assert result.exit_code == 2
        assert result.stderr == "Error: boom"

    def test_timeout(self, tmp_path):
        """Should turn a timeout into a failed result."""
        timeout = subprocess.TimeoutExpired(["npm", "run", "build"], 5, output=b"partial")
        with patch("revive.build_runner.subprocess.run", side_effect=timeout):
            result = self.runner.compile(tmp_path, "npm", "build", timeout=5)

        assert not result.success
        assert result.exit_code == -1
        assert result.stdout == "partial"
        assert "[TIMEOUT]" in result.stderr

    def test_missing_executable(self, tmp_path):
        """Should turn a missing package manager into a failed result."""
        with patch("revive.build_runner.subprocess.run", side_effect=FileNotFoundError("pnpm")):
            result = self.runner.compile(tmp_path, "pnpm", "build")

        assert not result.success
        assert result.exit_code == -1
        assert result.stderr.startswith("[ERROR]")


class TestCompilationProof:
    """Test proof generation."""

    def test_proof_hashes_output(self):
        """Should hash stdout and stderr together."""
        completed = subprocess.CompletedProcess([], 0, stdout="out", stderr="err")
        with patch("revive.build_runner.subprocess.run", return_value=completed):
            result = BuildRunner().compile(".", "npm", "build")

        proof = BuildRunner().generate_compilation_proof(result, "npm", "build", 3)

        assert proof.output_hash == hashlib.sha256(b"outerr").hexdigest()
        assert proof.iterations_required == 3
        assert proof.build_command == "build"
        assert proof.exit_code == 0
