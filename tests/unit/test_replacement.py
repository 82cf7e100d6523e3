"""Tests for applying registry replacements to package.json."""

import json

import pytest

from revive.blocking import BlockingDependencyDetector
from revive.config import DEFAULT_REGISTRY_PATH
from revive.models import BlockingDependency, BlockingReason, PackageReplacement
from revive.registry import PackageReplacementRegistry
from revive.replacement import (
    PackageReplacementExecutor,
    replace_blocking_dependencies,
    replacements_for_blocking,
)

SASS = PackageReplacement("node-sass", "sass", {"*": "^1.69.0"}, False)


class TestExecuteReplacement:
    """Test rewriting package.json."""

    def test_replaces_in_every_group(self, node_repo):
        """Should produce one result per group and keep key order."""
        results = PackageReplacementExecutor(node_repo).execute_replacement([SASS])

        assert len(results) == 2
        assert all(r.package_name == "sass" and r.new_version == "^1.69.0" for r in results)
        assert results[0].old_version == "^4.14.1"

        manifest = json.loads((node_repo / "package.json").read_text())
        assert list(manifest["dependencies"]) == ["express", "sass", "lodash"]
        assert "node-sass" not in manifest["devDependencies"]
        assert manifest["devDependencies"]["sass"] == "^1.69.0"

    def test_exact_version_mapping(self, node_repo):
        """Should prefer an exact version mapping over the wildcard."""
        replacement = PackageReplacement("lodash", "lodash-es", {"~4.17.21": "^4.17.21", "*": "latest"})

        results = PackageReplacementExecutor(node_repo).execute_replacement([replacement])

        assert results[0].new_version == "^4.17.21"

    def test_removal(self, tmp_path):
        """Should drop packages whose replacement name is empty."""
        (tmp_path / "package.json").write_text(json.dumps({"dependencies": {"fibers": "^4.0.0", "a": "1.0.0"}}))
        removal = PackageReplacement("fibers", "", {}, True, "Use async/await")

        results = PackageReplacementExecutor(tmp_path).execute_replacement([removal])

        assert results[0].package_name == ""
        assert results[0].requires_manual_review
        assert json.loads((tmp_path / "package.json").read_text())["dependencies"] == {"a": "1.0.0"}

    def test_no_match_leaves_file_untouched(self, node_repo):
        """Should not rewrite package.json when nothing matches."""
        before = (node_repo / "package.json").read_text()

        results = PackageReplacementExecutor(node_repo).execute_replacement(
            [PackageReplacement("request", "node-fetch", {"*": "^3.3.0"}, True)]
        )

        assert results == []
        assert (node_repo / "package.json").read_text() == before

    def test_missing_manifest(self, tmp_path):
        """Should propagate a missing package.json."""
        with pytest.raises(FileNotFoundError):
            PackageReplacementExecutor(tmp_path).execute_replacement([SASS])

    def test_exact_mapping_scenario(self, tmp_path):
        """Should swap the package and report the mapped version."""
        (tmp_path / "package.json").write_text(json.dumps({"dependencies": {"old-pkg": "1.0.0"}}))
        replacement = PackageReplacement("old-pkg", "new-pkg", {"1.0.0": "2.0.0"})

        results = PackageReplacementExecutor(tmp_path).execute_replacement([replacement])

        assert json.loads((tmp_path / "package.json").read_text())["dependencies"] == {"new-pkg": "2.0.0"}
        assert [(r.package_name, r.old_version, r.new_version, r.requires_manual_review) for r in results] == [
            ("new-pkg", "1.0.0", "2.0.0", False)
        ]


class TestReplaceBlocking:
    """Test feeding detected blocking dependencies into the executor."""

    def setup_method(self):
        """Setup test fixtures."""
        self.registry = PackageReplacementRegistry(DEFAULT_REGISTRY_PATH)
        self.registry.load()

    @pytest.mark.asyncio
    async def test_architecture_only_entry(self, tmp_path):
        """Should replace a package known only from the architecture table."""
        (tmp_path / "package.json").write_text(
            json.dumps({"dependencies": {"grpc": "^1.24.0", "express": "^4.18.0"}})
        )
        detector = BlockingDependencyDetector(registry=self.registry, arch="arm64")

        blocking, results = await replace_blocking_dependencies(tmp_path, detector)

        assert [dep.name for dep in blocking] == ["grpc"]
        assert [(r.package_name, r.old_version, r.new_version) for r in results] == [
            ("@grpc/grpc-js", "^1.24.0", "latest")
        ]
        assert results[0].requires_manual_review
        manifest = json.loads((tmp_path / "package.json").read_text())
        assert manifest["dependencies"] == {"@grpc/grpc-js": "latest", "express": "^4.18.0"}

    @pytest.mark.asyncio
    async def test_compatible_architecture_untouched(self, tmp_path):
        """Should leave the manifest alone when nothing blocks."""
        (tmp_path / "package.json").write_text(json.dumps({"dependencies": {"grpc": "^1.24.0"}}))
        before = (tmp_path / "package.json").read_text()
        detector = BlockingDependencyDetector(registry=self.registry, arch="x64")

        blocking, results = await replace_blocking_dependencies(tmp_path, detector)

        assert blocking == []
        assert results == []
        assert (tmp_path / "package.json").read_text() == before

    @pytest.mark.asyncio
    async def test_blocking_without_replacement(self, tmp_path):
        """Should report blockers that carry no replacement without rewriting."""
        (tmp_path / "package.json").write_text(json.dumps({"dependencies": {"deasync": "^0.1.0"}}))
        detector = BlockingDependencyDetector(arch="x64")

        blocking, results = await replace_blocking_dependencies(tmp_path, detector)

        assert blocking[0].reason == BlockingReason.BUILD_FAILURE
        assert results == []

    def test_one_replacement_per_package(self):
        """Should keep the first replacement for each package."""
        first = PackageReplacement("grpc", "@grpc/grpc-js", {"*": "latest"}, True)
        second = PackageReplacement("grpc", "grpc-web", {"*": "latest"}, True)
        blocking = [
            BlockingDependency("grpc", "^1.24.0", BlockingReason.ARCHITECTURE_INCOMPATIBLE, first),
            BlockingDependency("grpc", "^1.24.0", BlockingReason.DEAD_URL, second),
            BlockingDependency("deasync", "^0.1.0", BlockingReason.BUILD_FAILURE, None),
        ]

        assert replacements_for_blocking(blocking) == [first]
