"""Tests for fix strategy templates and serialization."""

import pytest

from revive.models import AnalyzedError, ErrorCategory
from revive.strategies import (
    AddResolution,
    AdjustVersion,
    ForceInstall,
    LegacyPeerDeps,
    RemoveLockfile,
    RemovePackage,
    SubstitutePackage,
    determine_target_version,
    same_shape,
    strategies_for,
    strategy_from_dict,
    strategy_key,
    strategy_to_dict,
)


def make_error(category, package=None, constraint=None):
    return AnalyzedError(
        category=category,
        message="boom",
        priority=0,
        package_name=package,
        version_constraint=constraint,
    )


class TestStrategyTemplates:
    """Test per-category strategy customization."""

    def test_native_module_strategies(self):
        """Should substitute, then upgrade, then remove a native module."""
        error = make_error(ErrorCategory.NATIVE_MODULE_FAILURE, "node-sass")
        assert strategies_for(error) == [
            SubstitutePackage("node-sass", "sass"),
            AdjustVersion("node-sass", "latest"),
            RemovePackage("node-sass"),
        ]

    def test_unknown_native_module_substitutes_with_removal(self):
        """Should fall back to an empty replacement for unknown native modules."""
        error = make_error(ErrorCategory.NATIVE_MODULE_FAILURE, "weird-native")
        assert strategies_for(error)[0] == SubstitutePackage("weird-native", "")

    def test_package_targeted_templates_need_a_package(self):
        """Should drop package-targeted templates when no package is known."""
        error = make_error(ErrorCategory.PEER_DEPENDENCY_CONFLICT)
        assert strategies_for(error) == [LegacyPeerDeps(), RemoveLockfile("package-lock.json")]

    def test_resolution_uses_constraint(self):
        """Should pin resolutions to the requested constraint."""
        error = make_error(ErrorCategory.PEER_DEPENDENCY_CONFLICT, "react", "^16.8.0")
        strategies = strategies_for(error)
        assert AddResolution("react", "^16.8.0") in strategies
        assert AdjustVersion("react", "latest") in strategies

    def test_target_version(self):
        """Should only keep concrete three-part versions."""
        assert determine_target_version(make_error(ErrorCategory.UNKNOWN, "a", "16.14.0")) == "16.14.0"
        assert determine_target_version(make_error(ErrorCategory.UNKNOWN, "a", "^16.8.0")) == "latest"
        assert determine_target_version(make_error(ErrorCategory.UNKNOWN, "a", "16.14")) == "latest"
        assert determine_target_version(make_error(ErrorCategory.UNKNOWN, "a")) == "latest"

    def test_target_version_semver_only(self):
        """Should keep semver prereleases and reject PEP 440-only spellings."""
        for pinned in ("1.0.0-next.3", "2.0.0-canary.1", "1.2.3+build.5"):
            assert determine_target_version(make_error(ErrorCategory.UNKNOWN, "a", pinned)) == pinned
        for foreign in ("1.2.3.post1", "1!2.3.4", "1.2.3rc1", "01.2.3"):
            assert determine_target_version(make_error(ErrorCategory.UNKNOWN, "a", foreign)) == "latest"


class TestStrategyIdentity:
    """Test strategy keys and shape comparison."""

    def test_key_includes_target(self):
        """Should distinguish strategies by their targets."""
        assert strategy_key(AdjustVersion("a", "1.0.0")) != strategy_key(AdjustVersion("b", "1.0.0"))
        assert strategy_key(LegacyPeerDeps()) == strategy_key(LegacyPeerDeps())

    def test_unknown_strategy_rejected(self):
        """Should refuse objects outside the strategy union."""
        with pytest.raises(TypeError):
            strategy_key("legacy_peer_deps")

    def test_same_shape_ignores_versions(self):
        """Should compare targets, not versions."""
        assert same_shape(AdjustVersion("a", "1.0.0"), AdjustVersion("a", "2.0.0"))
        assert not same_shape(AdjustVersion("a", "1.0.0"), AdjustVersion("b", "1.0.0"))
        assert not same_shape(LegacyPeerDeps(), ForceInstall())


class TestSerialization:
    """Test the persisted strategy format."""

    def test_adjust_version_wire_format(self):
        """Should use camelCase for the new version field."""
        assert strategy_to_dict(AdjustVersion("left-pad", "1.3.0")) == {
            "type": "adjust_version",
            "package": "left-pad",
            "newVersion": "1.3.0",
        }

    def test_from_dict(self):
        """Should rebuild strategies from their persisted form."""
        assert strategy_from_dict({"type": "legacy_peer_deps"}) == LegacyPeerDeps()
        assert strategy_from_dict(
            {"type": "substitute_package", "original": "bcrypt", "replacement": "bcryptjs"}
        ) == SubstitutePackage("bcrypt", "bcryptjs")

    def test_unknown_type(self):
        """Should reject unknown strategy types."""
        with pytest.raises(ValueError):
            strategy_from_dict({"type": "reinstall_everything"})
