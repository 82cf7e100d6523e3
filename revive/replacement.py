"""Apply registry replacements to a package.json."""

import logging
from pathlib import Path

from .blocking import BlockingDependencyDetector
from .models import BlockingDependency, PackageReplacement, ReplacementResult
from .parse_node import dependency_groups, load_manifest, save_manifest

logger = logging.getLogger(__name__)


def _rename_in_place(deps: dict, old_name: str, new_name: str, version: str) -> dict:
    """Return a copy of ``deps`` with ``old_name`` swapped for ``new_name``, keeping order."""
    renamed = {}
    for name, value in deps.items():
        if name == old_name:
            if new_name:
                renamed[new_name] = version
        elif name != new_name:
            renamed[name] = value
    return renamed


class PackageReplacementExecutor:
    """Rewrites a repository's package.json according to replacements."""

    def __init__(self, project_path: str | Path):
        self.project_path = Path(project_path)

    def execute_replacement(self, replacements: list[PackageReplacement]) -> list[ReplacementResult]:
        """Apply replacements to every dependency group that declares them.

        The manifest is read once and written once, and only when at least
        one replacement matched.

        Raises:
            FileNotFoundError: If the project has no package.json
            ValueError: If package.json is not valid JSON
        """
        manifest = load_manifest(self.project_path)
        results: list[ReplacementResult] = []

        for replacement in replacements:
            for group, deps in list(dependency_groups(manifest)):
                if replacement.old_name not in deps:
                    continue

                old_version = deps[replacement.old_name]
                new_version = replacement.map_version(old_version)
                new_name = replacement.new_name
                if new_name == replacement.old_name:
                    deps[new_name] = new_version
                else:
                    manifest[group] = _rename_in_place(deps, replacement.old_name, new_name, new_version)

                logger.info(
                    "%s: %s@%s -> %s@%s",
                    group,
                    replacement.old_name,
                    old_version,
                    new_name or "(removed)",
                    new_version,
                )
                results.append(
                    ReplacementResult(
                        package_name=new_name,
                        old_version=old_version,
                        new_version=new_version,
                        requires_manual_review=replacement.requires_code_changes,
                    )
                )

        if results:
            save_manifest(self.project_path, manifest)
        return results


def replacements_for_blocking(blocking: list[BlockingDependency]) -> list[PackageReplacement]:
    """Replacements carried by blocking dependencies, one per package."""
    replacements: dict[str, PackageReplacement] = {}
    for dep in blocking:
        if dep.replacement and dep.replacement.old_name not in replacements:
            replacements[dep.replacement.old_name] = dep.replacement
    return list(replacements.values())


async def replace_blocking_dependencies(
    project_path: str | Path,
    detector: BlockingDependencyDetector,
) -> tuple[list[BlockingDependency], list[ReplacementResult]]:
    """Detect blocking dependencies and apply every replacement they carry.

    Returns:
        The blocking dependencies found and the replacements applied

    Raises:
        FileNotFoundError: If the project has no package.json
        ValueError: If package.json is not valid JSON
    """
    manifest = load_manifest(project_path)
    declared: dict[str, str] = {}
    for _, deps in dependency_groups(manifest):
        for name, version in deps.items():
            declared.setdefault(name, str(version or ""))

    blocking = await detector.detect(declared)
    replacements = replacements_for_blocking(blocking)
    if not replacements:
        logger.info("No replacements available for %d blocking dependencies", len(blocking))
        return blocking, []

    results = PackageReplacementExecutor(project_path).execute_replacement(replacements)
    return blocking, results
