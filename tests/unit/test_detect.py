"""Tests for package manager, build script and architecture detection."""

from unittest.mock import patch

from revive.detect import current_architecture, detect_build_command, detect_package_manager


class TestPackageManagerDetection:
    """Test package manager detection from lockfiles."""

    def test_detect_npm_by_default(self, tmp_path):
        """Should fall back to npm when no lockfile exists."""
        assert detect_package_manager(tmp_path) == "npm"

    def test_detect_from_lockfiles(self, tmp_path):
        """Should detect the package manager owning the lockfile."""
        (tmp_path / "yarn.lock").write_text("")
        assert detect_package_manager(tmp_path) == "yarn"

        (tmp_path / "pnpm-lock.yaml").write_text("")
        assert detect_package_manager(tmp_path) == "pnpm"

    def test_package_lock_means_npm(self, tmp_path):
        """Should detect npm from package-lock.json."""
        (tmp_path / "package-lock.json").write_text("{}")
        assert detect_package_manager(tmp_path) == "npm"


class TestBuildCommandDetection:
    """Test build script selection."""

    def test_build_script_preferred(self):
        """Should prefer build over the other script names."""
        manifest = {"scripts": {"test": "jest", "compile": "tsc", "build": "webpack"}}
        assert detect_build_command(manifest) == "build"

    def test_priority_order(self):
        """Should walk the priority list in order."""
        assert detect_build_command({"scripts": {"dist": "rollup", "tsc": "tsc"}}) == "tsc"
        assert detect_build_command({"scripts": {"test": "jest"}}) == "test"

    def test_no_scripts(self):
        """Should return None when nothing buildable is declared."""
        assert detect_build_command({}) is None
        assert detect_build_command({"scripts": {}}) is None
        assert detect_build_command({"scripts": {"start": "node index.js"}}) is None


class TestArchitecture:
    """Test architecture normalization."""

    def test_normalizes_machine_names(self):
        """Should map platform names onto Node's arch names."""
        with patch("revive.detect.platform.machine", return_value="aarch64"):
            assert current_architecture() == "arm64"
        with patch("revive.detect.platform.machine", return_value="x86_64"):
            assert current_architecture() == "x64"

    def test_unknown_machine_passes_through(self):
        """Should keep unknown machine names lowercased."""
        with patch("revive.detect.platform.machine", return_value="RISCV64"):
            assert current_architecture() == "riscv64"
