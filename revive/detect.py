"""Package manager, build script and architecture detection."""

import platform
from pathlib import Path

# Checked in order; the first lockfile found decides the package manager.
LOCKFILES: list[tuple[str, str]] = [
    ("pnpm-lock.yaml", "pnpm"),
    ("yarn.lock", "yarn"),
    ("package-lock.json", "npm"),
]

LOCKFILE_NAMES = ["package-lock.json", "yarn.lock", "pnpm-lock.yaml"]

PACKAGE_MANAGERS = ("npm", "yarn", "pnpm")

# Scripts tried in order; ``test`` is the last resort.
BUILD_SCRIPT_PRIORITY = [
    "build",
    "compile",
    "tsc",
    "build:prod",
    "build:production",
    "dist",
    "test",
]

# platform.machine() spellings mapped onto Node's process.arch names.
_ARCH_ALIASES = {
    "x86_64": "x64",
    "amd64": "x64",
    "x64": "x64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv7l": "arm",
    "armv6l": "arm",
    "i386": "ia32",
    "i686": "ia32",
    "x86": "ia32",
}


def detect_package_manager(repo_path: str | Path) -> str:
    """Detect the package manager from lockfiles, defaulting to npm."""
    root = Path(repo_path)
    for filename, manager in LOCKFILES:
        if (root / filename).exists():
            return manager
    return "npm"


def detect_build_command(manifest: dict) -> str | None:
    """Pick the build script to run from a package.json document.

    Returns:
        Script name, or None when nothing buildable is declared
    """
    scripts = manifest.get("scripts")
    if not isinstance(scripts, dict) or not scripts:
        return None

    for name in BUILD_SCRIPT_PRIORITY:
        if scripts.get(name):
            return name

    return None


def current_architecture() -> str:
    machine = platform.machine().lower()
    return _ARCH_ALIASES.get(machine, machine)
