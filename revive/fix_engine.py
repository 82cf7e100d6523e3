"""Select and apply fix strategies, rotating through untried remedies."""

import json
import logging
import shutil
from pathlib import Path

from .detect import LOCKFILE_NAMES
from .models import AnalyzedError, FixHistory, FixResult
from .parse_node import dependency_groups, load_manifest, manifest_path, save_manifest
from .strategies import (
    FALLBACK_STRATEGY,
    AddResolution,
    AdjustVersion,
    ErrorKey,
    FixStrategy,
    ForceInstall,
    LegacyPeerDeps,
    RemoveLockfile,
    RemovePackage,
    StrategyKey,
    SubstitutePackage,
    error_key,
    strategies_for,
    strategy_key,
)

logger = logging.getLogger(__name__)

NPMRC = ".npmrc"
CACHE_DIR = "node_modules"


class FixStrategyEngine:
    """Chooses a remedy per error and applies it to the repository."""

    def __init__(self):
        self._attempted: set[tuple[ErrorKey, StrategyKey]] = set()

    def select_strategy(self, error: AnalyzedError, history: FixHistory | None = None) -> FixStrategy:
        """Pick the next strategy for an error.

        A fix recorded in history for the same pattern wins if it has not
        been tried in this run; otherwise the first untried default for the
        category is returned, and ``force_install`` once all are exhausted.
        """
        historical = self._find_historical_fix(error, history)
        if historical is not None and not self.is_attempted(error, historical):
            logger.debug("Using historical fix %s for %s", historical, error.pattern)
            return historical

        for strategy in strategies_for(error):
            if not self.is_attempted(error, strategy):
                return strategy

        logger.debug("All strategies exhausted for %s, falling back to force install", error.pattern)
        return FALLBACK_STRATEGY

    def get_alternative_strategies(self, error: AnalyzedError) -> list[FixStrategy]:
        return strategies_for(error)

    def mark_strategy_attempted(self, error: AnalyzedError, strategy: FixStrategy) -> None:
        self._attempted.add((error_key(error), strategy_key(strategy)))

    def is_attempted(self, error: AnalyzedError, strategy: FixStrategy) -> bool:
        return (error_key(error), strategy_key(strategy)) in self._attempted

    def has_untried_strategies(self, error: AnalyzedError) -> bool:
        return any(not self.is_attempted(error, s) for s in strategies_for(error))

    def reset_attempted_strategies(self) -> None:
        self._attempted.clear()

    def apply_fix(self, repo_path: str | Path, strategy: FixStrategy) -> FixResult:
        """Apply a strategy to the repository's manifest, lockfile or .npmrc.

        Failures never raise; they come back as an unsuccessful FixResult.
        """
        repo = Path(repo_path)
        try:
            if isinstance(strategy, AdjustVersion):
                return self._adjust_version(repo, strategy)
            if isinstance(strategy, LegacyPeerDeps):
                return self._append_npmrc(repo, strategy, "legacy-peer-deps=true")
            if isinstance(strategy, RemoveLockfile):
                return self._remove_lockfile(repo, strategy)
            if isinstance(strategy, SubstitutePackage):
                return self._substitute_package(repo, strategy)
            if isinstance(strategy, RemovePackage):
                return self._remove_package(repo, strategy)
            if isinstance(strategy, AddResolution):
                return self._add_resolution(repo, strategy)
            if isinstance(strategy, ForceInstall):
                return self._append_npmrc(repo, strategy, "force=true")
            return FixResult(False, strategy, f"Unknown strategy type: {strategy!r}")
        except (OSError, ValueError) as e:
            logger.warning("Applying %s failed: %s", strategy.kind, e)
            return FixResult(False, strategy, str(e))

    def _find_historical_fix(self, error: AnalyzedError, history: FixHistory | None) -> FixStrategy | None:
        if not history:
            return None
        for fix in history.fixes:
            if fix.error_pattern == error.pattern:
                return fix.strategy
        return None

    def _load(self, repo: Path, strategy: FixStrategy) -> tuple[dict | None, FixResult | None]:
        if not manifest_path(repo).exists():
            return None, FixResult(False, strategy, "package.json not found")
        try:
            return load_manifest(repo), None
        except json.JSONDecodeError as e:
            return None, FixResult(False, strategy, f"Invalid package.json: {e}")

    def _adjust_version(self, repo: Path, strategy: AdjustVersion) -> FixResult:
        manifest, failure = self._load(repo, strategy)
        if failure:
            return failure

        modified = False
        for _, deps in dependency_groups(manifest):
            if strategy.package in deps:
                deps[strategy.package] = strategy.new_version
                modified = True

        if not modified:
            return FixResult(False, strategy, f"Package {strategy.package} not found in package.json")

        save_manifest(repo, manifest)
        return FixResult(True, strategy)

    def _substitute_package(self, repo: Path, strategy: SubstitutePackage) -> FixResult:
        manifest, failure = self._load(repo, strategy)
        if failure:
            return failure

        modified = False
        for group, deps in list(dependency_groups(manifest)):
            if strategy.original not in deps:
                continue
            version = deps[strategy.original]
            substituted = {}
            for name, value in deps.items():
                if name == strategy.original:
                    if strategy.replacement:
                        substituted[strategy.replacement] = version
                elif name != strategy.replacement:
                    substituted[name] = value
            manifest[group] = substituted
            modified = True

        if not modified:
            return FixResult(False, strategy, f"Package {strategy.original} not found in package.json")

        save_manifest(repo, manifest)
        return FixResult(True, strategy)

    def _remove_package(self, repo: Path, strategy: RemovePackage) -> FixResult:
        manifest, failure = self._load(repo, strategy)
        if failure:
            return failure

        modified = False
        for _, deps in dependency_groups(manifest):
            if deps.pop(strategy.package, None) is not None:
                modified = True

        if not modified:
            return FixResult(False, strategy, f"Package {strategy.package} not found in package.json")

        save_manifest(repo, manifest)
        return FixResult(True, strategy)

    def _add_resolution(self, repo: Path, strategy: AddResolution) -> FixResult:
        manifest, failure = self._load(repo, strategy)
        if failure:
            return failure

        # yarn reads "resolutions", npm reads "overrides"
        for block in ("resolutions", "overrides"):
            if not isinstance(manifest.get(block), dict):
                manifest[block] = {}
            manifest[block][strategy.package] = strategy.version

        save_manifest(repo, manifest)
        return FixResult(True, strategy)

    def _append_npmrc(self, repo: Path, strategy: FixStrategy, setting: str) -> FixResult:
        npmrc = repo / NPMRC
        content = npmrc.read_text(encoding="utf-8") if npmrc.exists() else ""
        if setting in content.splitlines():
            return FixResult(True, strategy)

        content = content.strip()
        content = f"{content}\n{setting}\n" if content else f"{setting}\n"
        npmrc.write_text(content, encoding="utf-8")
        return FixResult(True, strategy)

    def _remove_lockfile(self, repo: Path, strategy: RemoveLockfile) -> FixResult:
        target = repo / strategy.lockfile
        if target.exists():
            target.unlink()
            logger.info("Removed %s", target)
            return FixResult(True, strategy)

        removed = strategy
        for name in LOCKFILE_NAMES:
            candidate = repo / name
            if candidate.exists():
                candidate.unlink()
                logger.info("Removed %s", candidate)
                removed = RemoveLockfile(name)
                break

        cache = repo / CACHE_DIR
        if cache.is_dir():
            shutil.rmtree(cache)
            logger.info("Cleared %s", cache)

        return FixResult(True, removed)
