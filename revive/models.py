"""Core data models for revive."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .strategies import FixStrategy


@dataclass
class ManifestEntry:
    """A single dependency entry in a package.json group."""

    name: str
    spec: str | None = None
    group: str = "dependencies"  # dependencies, devDependencies, peerDependencies, optionalDependencies
    source_type: str = "registry"  # registry, git, url, path


@dataclass
class Manifest:
    """A parsed package.json."""

    raw: str
    entries: list[ManifestEntry]
    scripts: dict[str, str] = field(default_factory=dict)

    def dependencies(self) -> dict[str, str]:
        """Flatten every group into a name -> version map (first group wins)."""
        deps: dict[str, str] = {}
        for entry in self.entries:
            deps.setdefault(entry.name, entry.spec or "")
        return deps


class BlockingReason(str, Enum):
    ARCHITECTURE_INCOMPATIBLE = "architecture_incompatible"
    DEAD_URL = "dead_url"
    DEPRECATED_NO_REPLACEMENT = "deprecated_no_replacement"
    BUILD_FAILURE = "build_failure"
    PEER_CONFLICT = "peer_conflict"


@dataclass
class PackageReplacement:
    """Mapping from a deprecated package to its modern alternative."""

    old_name: str
    new_name: str
    version_mapping: dict[str, str]
    requires_code_changes: bool = False
    code_change_description: str | None = None

    def map_version(self, current: str) -> str:
        if current in self.version_mapping:
            return self.version_mapping[current]
        if "*" in self.version_mapping:
            return self.version_mapping["*"]
        return current


@dataclass(frozen=True)
class BlockingDependency:
    """A dependency that will abort installation."""

    name: str
    version: str
    reason: BlockingReason
    replacement: PackageReplacement | None = None


@dataclass
class ArchitectureIncompatibleEntry:
    package_name: str
    incompatible_architectures: list[str]
    replacement: str | None = None
    reason: str = ""


@dataclass
class DeadUrlPattern:
    """Glob pattern for source URLs known to be gone."""

    pattern: str
    replacement_package: str | None = None
    replacement_version: str | None = None
    reason: str = ""


@dataclass
class ReplacementResult:
    """One applied replacement in one dependency group."""

    package_name: str
    old_version: str
    new_version: str
    requires_manual_review: bool


class ErrorCategory(str, Enum):
    LOCKFILE_CONFLICT = "lockfile_conflict"
    PEER_DEPENDENCY_CONFLICT = "peer_dependency_conflict"
    DEPENDENCY_VERSION_CONFLICT = "dependency_version_conflict"
    NATIVE_MODULE_FAILURE = "native_module_failure"
    GIT_DEPENDENCY_FAILURE = "git_dependency_failure"
    DEPENDENCY_NOT_FOUND = "dependency_not_found"
    SYNTAX_ERROR = "syntax_error"
    TYPE_ERROR = "type_error"
    UNKNOWN = "unknown"


ERROR_CATEGORY_PRIORITIES: dict[ErrorCategory, int] = {
    ErrorCategory.LOCKFILE_CONFLICT: 100,
    ErrorCategory.PEER_DEPENDENCY_CONFLICT: 90,
    ErrorCategory.DEPENDENCY_VERSION_CONFLICT: 85,
    ErrorCategory.NATIVE_MODULE_FAILURE: 80,
    ErrorCategory.GIT_DEPENDENCY_FAILURE: 75,
    ErrorCategory.DEPENDENCY_NOT_FOUND: 70,
    ErrorCategory.SYNTAX_ERROR: 40,
    ErrorCategory.TYPE_ERROR: 20,
    ErrorCategory.UNKNOWN: 10,
}


@dataclass
class AnalyzedError:
    """A single classified build error."""

    category: ErrorCategory
    message: str
    priority: int
    package_name: str | None = None
    version_constraint: str | None = None
    conflicting_packages: list[str] | None = None
    suggested_fix: "FixStrategy | None" = None

    @property
    def pattern(self) -> str:
        """History key: ``category:package`` (``none`` when unknown)."""
        return f"{self.category.value}:{self.package_name or 'none'}"


@dataclass
class FixResult:
    success: bool
    strategy: "FixStrategy"
    error: str | None = None


@dataclass
class FixAttempt:
    """In-memory record of one fix attempt inside a validation run."""

    strategy: "FixStrategy"
    iteration: int
    errors_before: int
    errors_after: int
    timestamp: datetime
    success: bool


@dataclass
class HistoricalFix:
    error_pattern: str
    strategy: "FixStrategy"
    success_count: int
    last_used: datetime


@dataclass
class FixHistory:
    """Fixes that worked for one repository."""

    repo_id: str
    fixes: list[HistoricalFix] = field(default_factory=list)
    last_resurrection: datetime = field(default_factory=datetime.now)


@dataclass
class BuildResult:
    """Outcome of a single build invocation."""

    success: bool
    status: str  # passed, failed, not_applicable
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0


@dataclass
class CompilationProof:
    timestamp: datetime
    build_command: str
    package_manager: str
    exit_code: int
    duration: float
    output_hash: str
    iterations_required: int


@dataclass
class AppliedFix:
    iteration: int
    error: AnalyzedError
    strategy: "FixStrategy"
    result: FixResult


@dataclass
class ValidationOptions:
    """Per-run overrides; ``None`` falls back to Config."""

    max_iterations: int | None = None
    timeout: float | None = None
    package_manager: str = "auto"
    build_command: str | None = None


class ValidationOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED_MAX_ITERATIONS = "failed_max_iterations"
    FAILED_UNPARSABLE = "failed_unparsable"
    SKIPPED_NO_BUILD_TARGET = "skipped_no_build_target"


@dataclass
class ValidationResult:
    """Result of a post-resurrection validation run."""

    success: bool
    iterations: int
    outcome: ValidationOutcome
    compilation_proof: CompilationProof | None = None
    applied_fixes: list[AppliedFix] = field(default_factory=list)
    remaining_errors: list[AnalyzedError] = field(default_factory=list)
    duration: float = 0.0
