"""Fix strategies: the closed set of remediations applied to a manifest."""

import re
from dataclasses import asdict, dataclass, fields
from typing import ClassVar, NamedTuple, Union

from .models import AnalyzedError, ErrorCategory


@dataclass(frozen=True)
class AdjustVersion:
    kind: ClassVar[str] = "adjust_version"
    package: str
    new_version: str


@dataclass(frozen=True)
class LegacyPeerDeps:
    kind: ClassVar[str] = "legacy_peer_deps"


@dataclass(frozen=True)
class RemoveLockfile:
    kind: ClassVar[str] = "remove_lockfile"
    lockfile: str = "package-lock.json"


@dataclass(frozen=True)
class SubstitutePackage:
    kind: ClassVar[str] = "substitute_package"
    original: str
    replacement: str  # empty means remove only


@dataclass(frozen=True)
class RemovePackage:
    kind: ClassVar[str] = "remove_package"
    package: str


@dataclass(frozen=True)
class AddResolution:
    kind: ClassVar[str] = "add_resolution"
    package: str
    version: str


@dataclass(frozen=True)
class ForceInstall:
    kind: ClassVar[str] = "force_install"


FixStrategy = Union[
    AdjustVersion,
    LegacyPeerDeps,
    RemoveLockfile,
    SubstitutePackage,
    RemovePackage,
    AddResolution,
    ForceInstall,
]

STRATEGY_TYPES: dict[str, type] = {
    cls.kind: cls
    for cls in (
        AdjustVersion,
        LegacyPeerDeps,
        RemoveLockfile,
        SubstitutePackage,
        RemovePackage,
        AddResolution,
        ForceInstall,
    )
}

# Pure-JS or prebuilt alternatives for packages that need a native toolchain.
NATIVE_MODULE_ALTERNATIVES: dict[str, str] = {
    "bcrypt": "bcryptjs",
    "node-sass": "sass",
    "sqlite3": "better-sqlite3",
    "canvas": "@napi-rs/canvas",
    "fibers": "",
    "deasync": "",
    "fsevents": "",
}

# Ordered remediation templates per category; the package fields are
# filled in from the analyzed error by customize().
DEFAULT_FIX_STRATEGIES: dict[ErrorCategory, list[FixStrategy]] = {
    ErrorCategory.LOCKFILE_CONFLICT: [
        RemoveLockfile("package-lock.json"),
        LegacyPeerDeps(),
    ],
    ErrorCategory.PEER_DEPENDENCY_CONFLICT: [
        LegacyPeerDeps(),
        AddResolution("", "*"),
        AdjustVersion("", "latest"),
        RemoveLockfile("package-lock.json"),
    ],
    ErrorCategory.DEPENDENCY_VERSION_CONFLICT: [
        LegacyPeerDeps(),
        AdjustVersion("", "latest"),
        AddResolution("", "*"),
        RemoveLockfile("package-lock.json"),
    ],
    ErrorCategory.NATIVE_MODULE_FAILURE: [
        SubstitutePackage("", ""),
        AdjustVersion("", "latest"),
        RemovePackage(""),
    ],
    ErrorCategory.GIT_DEPENDENCY_FAILURE: [
        RemovePackage(""),
        RemoveLockfile("package-lock.json"),
    ],
    ErrorCategory.DEPENDENCY_NOT_FOUND: [
        RemoveLockfile("package-lock.json"),
        AdjustVersion("", "latest"),
        LegacyPeerDeps(),
    ],
    ErrorCategory.SYNTAX_ERROR: [
        AdjustVersion("", "latest"),
        RemoveLockfile("package-lock.json"),
    ],
    ErrorCategory.TYPE_ERROR: [
        AdjustVersion("", "latest"),
        LegacyPeerDeps(),
    ],
    ErrorCategory.UNKNOWN: [
        LegacyPeerDeps(),
        RemoveLockfile("package-lock.json"),
    ],
}

FALLBACK_STRATEGY: FixStrategy = ForceInstall()

# semver.org 2.0.0: MAJOR.MINOR.PATCH with optional prerelease and build metadata.
SEMVER = re.compile(
    r"(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-((?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?"
    r"(?:\+([0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?"
)


class ErrorKey(NamedTuple):
    category: ErrorCategory
    package_name: str | None


class StrategyKey(NamedTuple):
    kind: str
    target: tuple[str, ...]


def error_key(error: AnalyzedError) -> ErrorKey:
    return ErrorKey(error.category, error.package_name)


def strategy_key(strategy: FixStrategy) -> StrategyKey:
    """Discriminator plus every distinguishing field of the variant."""
    if isinstance(strategy, (LegacyPeerDeps, ForceInstall)):
        return StrategyKey(strategy.kind, ())
    if isinstance(strategy, AdjustVersion):
        return StrategyKey(strategy.kind, (strategy.package, strategy.new_version))
    if isinstance(strategy, RemoveLockfile):
        return StrategyKey(strategy.kind, (strategy.lockfile,))
    if isinstance(strategy, SubstitutePackage):
        return StrategyKey(strategy.kind, (strategy.original, strategy.replacement))
    if isinstance(strategy, RemovePackage):
        return StrategyKey(strategy.kind, (strategy.package,))
    if isinstance(strategy, AddResolution):
        return StrategyKey(strategy.kind, (strategy.package, strategy.version))
    raise TypeError(f"Unknown fix strategy: {strategy!r}")


def same_shape(a: FixStrategy, b: FixStrategy) -> bool:
    """True when both strategies act on the same target, ignoring versions."""
    if type(a) is not type(b):
        return False
    if isinstance(a, (AdjustVersion, RemovePackage, AddResolution)):
        return a.package == b.package
    if isinstance(a, RemoveLockfile):
        return a.lockfile == b.lockfile
    if isinstance(a, SubstitutePackage):
        return a.original == b.original
    return True


def describe(strategy: FixStrategy) -> str:
    if isinstance(strategy, AdjustVersion):
        return f"Set {strategy.package} to {strategy.new_version}"
    if isinstance(strategy, LegacyPeerDeps):
        return "Enable legacy-peer-deps in .npmrc"
    if isinstance(strategy, RemoveLockfile):
        return f"Remove {strategy.lockfile} for a fresh resolution"
    if isinstance(strategy, SubstitutePackage):
        if strategy.replacement:
            return f"Replace {strategy.original} with {strategy.replacement}"
        return f"Drop {strategy.original} (no alternative known)"
    if isinstance(strategy, RemovePackage):
        return f"Remove {strategy.package}"
    if isinstance(strategy, AddResolution):
        return f"Pin {strategy.package} to {strategy.version} via resolutions/overrides"
    if isinstance(strategy, ForceInstall):
        return "Enable force in .npmrc"
    raise TypeError(f"Unknown fix strategy: {strategy!r}")


def determine_target_version(error: AnalyzedError) -> str:
    """Use the error's constraint when it is a concrete semver version, else ``latest``."""
    constraint = error.version_constraint
    if constraint and SEMVER.fullmatch(constraint):
        return constraint
    return "latest"


def customize(template: FixStrategy, error: AnalyzedError) -> FixStrategy | None:
    """Fill a template with the error's package details.

    Returns None for package-targeted templates when the error carries no
    package name.
    """
    package = error.package_name
    if isinstance(template, AdjustVersion):
        if not package:
            return None
        return AdjustVersion(package, determine_target_version(error))
    if isinstance(template, RemovePackage):
        return RemovePackage(package) if package else None
    if isinstance(template, SubstitutePackage):
        if not package:
            return None
        return SubstitutePackage(package, NATIVE_MODULE_ALTERNATIVES.get(package, ""))
    if isinstance(template, AddResolution):
        if not package:
            return None
        return AddResolution(package, error.version_constraint or template.version or "*")
    return template


def strategies_for(error: AnalyzedError) -> list[FixStrategy]:
    """Ordered, customized strategies for an error's category."""
    strategies = []
    for template in DEFAULT_FIX_STRATEGIES.get(error.category, []):
        strategy = customize(template, error)
        if strategy is not None and strategy not in strategies:
            strategies.append(strategy)
    return strategies


# Persisted field names that differ from the attribute names.
_WIRE_NAMES = {"new_version": "newVersion"}


def strategy_to_dict(strategy: FixStrategy) -> dict:
    data = {"type": strategy.kind}
    for name, value in asdict(strategy).items():
        data[_WIRE_NAMES.get(name, name)] = value
    return data


def strategy_from_dict(data: dict) -> FixStrategy:
    cls = STRATEGY_TYPES.get(data.get("type", ""))
    if cls is None:
        raise ValueError(f"Unknown fix strategy type: {data.get('type')!r}")
    kwargs = {}
    for f in fields(cls):
        wire = _WIRE_NAMES.get(f.name, f.name)
        if wire in data:
            kwargs[f.name] = data[wire]
    return cls(**kwargs)
