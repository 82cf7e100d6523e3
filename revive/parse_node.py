"""Node.js package.json parsing."""

import json
from pathlib import Path

from .jsonfile import read_json, write_json
from .models import Manifest, ManifestEntry

MANIFEST_NAME = "package.json"

DEPENDENCY_GROUPS = (
    "dependencies",
    "devDependencies",
    "peerDependencies",
    "optionalDependencies",
)


def _source_type(spec: str) -> str:
    if spec.startswith(("git+", "git:", "github:")) or spec.endswith(".git"):
        return "git"
    if "://" in spec:
        return "url"
    if spec.startswith(("file:", "link:", "./", "../", "/")):
        return "path"
    return "registry"


def parse_package_json(content: str) -> Manifest:
    """Parse package.json content into Manifest.

    Args:
        content: The package.json file content

    Returns:
        Parsed Manifest object

    Raises:
        ValueError: If the content is not a JSON object
    """
    data = json.loads(content)
    if not isinstance(data, dict):
        raise ValueError("package.json must contain a JSON object")

    entries: list[ManifestEntry] = []
    for group in DEPENDENCY_GROUPS:
        deps = data.get(group)
        if not isinstance(deps, dict):
            continue
        for name, spec in deps.items():
            spec = str(spec) if spec is not None else None
            entries.append(
                ManifestEntry(
                    name=name,
                    spec=spec,
                    group=group,
                    source_type=_source_type(spec or ""),
                )
            )

    scripts = data.get("scripts")
    return Manifest(
        raw=content,
        entries=entries,
        scripts=dict(scripts) if isinstance(scripts, dict) else {},
    )


def manifest_path(repo_path: str | Path) -> Path:
    return Path(repo_path) / MANIFEST_NAME


def load_manifest(repo_path: str | Path) -> dict:
    """Read the raw package.json document of a repository."""
    data = read_json(manifest_path(repo_path))
    if not isinstance(data, dict):
        raise ValueError("package.json must contain a JSON object")
    return data


def save_manifest(repo_path: str | Path, data: dict) -> None:
    write_json(manifest_path(repo_path), data)


def dependency_groups(data: dict):
    """Yield (group name, mapping) for every dependency group present."""
    for group in DEPENDENCY_GROUPS:
        deps = data.get(group)
        if isinstance(deps, dict):
            yield group, deps
