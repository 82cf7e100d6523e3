"""Classify raw build output into prioritized, actionable errors."""

import re
from dataclasses import dataclass

from .models import ERROR_CATEGORY_PRIORITIES, AnalyzedError, BuildResult, ErrorCategory
from .strategies import strategies_for

# Tested in this order; the first match wins.
CATEGORY_PATTERNS: list[tuple[ErrorCategory, re.Pattern]] = [
    (
        ErrorCategory.LOCKFILE_CONFLICT,
        re.compile(r"ENOLOCK|EINTEGRITY|\block\s?file\b|lockfileVersion", re.IGNORECASE),
    ),
    (
        ErrorCategory.PEER_DEPENDENCY_CONFLICT,
        re.compile(
            r"peer dep(?:endency)? missing|peerDependencies|unmet peer|conflicting peer dependency"
            r"|\bpeer\s+\S+@\"[^\"]+\"\s+from\b",
            re.IGNORECASE,
        ),
    ),
    (
        ErrorCategory.DEPENDENCY_VERSION_CONFLICT,
        re.compile(
            r"ERESOLVE|Could not resolve dependency|unable to resolve dependency tree"
            r"|ETARGET|No matching version found|notarget",
            re.IGNORECASE,
        ),
    ),
    (
        ErrorCategory.NATIVE_MODULE_FAILURE,
        re.compile(
            r"gyp ERR!|node-gyp|prebuild-install|node-pre-gyp"
            r"|was compiled against a different Node\.js version|NODE_MODULE_VERSION"
        ),
    ),
    (
        ErrorCategory.GIT_DEPENDENCY_FAILURE,
        re.compile(
            r"git dep preparation failed|Could not resolve git|git\+(?:ssh|https?)://"
            r"|Permission denied \(publickey\)|ls-remote|github:[\w.-]+/[\w.-]+",
            re.IGNORECASE,
        ),
    ),
    (
        ErrorCategory.DEPENDENCY_NOT_FOUND,
        re.compile(
            r"Cannot find module|Module not found|Can't resolve ['\"]|Cannot find package"
            r"|E404|404 Not Found|is not in (?:the )?npm registry"
        ),
    ),
    (
        ErrorCategory.SYNTAX_ERROR,
        re.compile(r"SyntaxError|Parse error|Unexpected token|Unexpected identifier|\bTS1\d{3}:"),
    ),
    (
        ErrorCategory.TYPE_ERROR,
        re.compile(
            r"TypeError|\bTS\d{4,5}:|error TS\d+|is not assignable to|has no exported member"
            r"|Property '[^']+' does not exist"
        ),
    ),
]

# Lines that open a new error block.
ERROR_START_PATTERNS = [
    re.compile(p)
    for p in (
        r"^npm ERR!",
        r"(?i)^error\s",
        r"^Error:",
        r"^SyntaxError:",
        r"^TypeError:",
        r"^Cannot find module",
        r"^Module not found",
        r"ERESOLVE",
        r"node-gyp",
        r"gyp ERR!",
        r"^TS\d+:",
        r"^\s*\d+:\d+\s+error",
        r"^.+\(\d+,\d+\):\s*error",
    )
]

# Unknown blocks that only report progress.
NOISE_PATTERNS = [
    re.compile(p)
    for p in (
        r"^npm WARN",
        r"(?i)^warning",
        r"(?i)^info",
        r"(?i)^debug",
        r"^\s*$",
        r"^>\s",
        r"^Compiling",
        r"^Building",
        r"^Done in",
        r"^added \d+ packages",
    )
]

# Tried when no package can be pulled out of a native build failure.
# node-gyp itself is the build tool, not the culprit.
KNOWN_NATIVE_MODULES = [
    "bcrypt",
    "node-sass",
    "sharp",
    "canvas",
    "sqlite3",
    "fsevents",
    "deasync",
    "fibers",
]

_NAME = r"(@[^\s@/\"']+/[^\s@\"',]+|[^\s@\"',]+)"

MODULE_NOT_FOUND = [
    re.compile(r"Cannot find module ['\"]([^'\"]+)['\"]"),
    re.compile(r"Can't resolve ['\"]([^'\"]+)['\"]"),
    re.compile(r"Cannot find package ['\"]([^'\"]+)['\"]"),
]
ERESOLVE_PACKAGE = re.compile(
    rf"(?:Could not resolve dependency:?|peer dep missing:)\s*(?:peer\s+)?{_NAME}@\"?([^\s\",]+)\"?"
)
PEER_LINE = re.compile(rf"peer\s+{_NAME}@\"([^\"]+)\"\s+from\s+{_NAME}@(\S+)")
CONFLICTING = re.compile(rf"(?:requires|wants|required by)\s+(?:peer\s+)?{_NAME}@([^\s,\"]+)")
GENERIC_PACKAGE = re.compile(rf"{_NAME}@\"?([^\s\",]+)\"?")
NATIVE_PACKAGE = re.compile(
    r"(?:node-gyp|gyp ERR!|prebuild-install).*?\b(?:for|in|building)\s+['\"]?([^'\"@\s,]+)",
    re.IGNORECASE,
)
FAILED_FOR = re.compile(r"failed\s+for\s+['\"]?([a-zA-Z0-9_@/.-]+)['\"]?", re.IGNORECASE)
GIT_URL = re.compile(r"(?:github\.com[/:]|github:)([\w.-]+)/([\w.-]+?)(?:\.git)?(?=[#\s'\"]|$)")
GIT_FOR = re.compile(r"(?:git dep preparation failed|Could not resolve git)\S*\s+for\s+['\"]?([^'\"\s]+)")


@dataclass
class PackageInfo:
    name: str
    requested_version: str | None = None
    conflicts_with: list[str] | None = None


def _split_module_path(module_path: str) -> str | None:
    """Reduce an import path to its package name; None for relative/absolute paths."""
    if module_path.startswith((".", "/")):
        return None
    parts = module_path.split("/")
    if module_path.startswith("@"):
        return "/".join(parts[:2])
    return parts[0]


class ErrorAnalyzer:
    """Parses build output into categorized errors."""

    def analyze(self, result: BuildResult) -> list[AnalyzedError]:
        """Analyze a build result.

        Args:
            result: Output of a failed build

        Returns:
            Deduplicated errors, highest priority first
        """
        return self.analyze_output(f"{result.stdout}\n{result.stderr}")

    def analyze_output(self, output: str) -> list[AnalyzedError]:
        errors: list[AnalyzedError] = []

        for message in self.split_messages(output):
            category = self.categorize(message)
            if category is ErrorCategory.UNKNOWN and self._is_noise(message):
                continue

            error = AnalyzedError(
                category=category,
                message=message.strip(),
                priority=ERROR_CATEGORY_PRIORITIES[category],
            )
            info = self.extract_package_info(message, category)
            if info:
                error.package_name = info.name
                error.version_constraint = info.requested_version
                error.conflicting_packages = info.conflicts_with

            suggestions = strategies_for(error)
            error.suggested_fix = suggestions[0] if suggestions else None
            errors.append(error)

        return self.prioritize(self._deduplicate(errors))

    def categorize(self, message: str) -> ErrorCategory:
        for category, pattern in CATEGORY_PATTERNS:
            if pattern.search(message):
                return category
        return ErrorCategory.UNKNOWN

    def prioritize(self, errors: list[AnalyzedError]) -> list[AnalyzedError]:
        return sorted(errors, key=lambda e: e.priority, reverse=True)

    def split_messages(self, output: str) -> list[str]:
        """Split output into error blocks; continuation lines join the open block."""
        messages: list[str] = []
        current: list[str] = []

        for line in output.split("\n"):
            if self._is_error_start(line):
                if current and "\n".join(current).strip():
                    messages.append("\n".join(current).strip())
                current = [line]
            elif current:
                current.append(line)

        if current and "\n".join(current).strip():
            messages.append("\n".join(current).strip())

        # Without any recognizable error line the whole output is one message
        if not messages and output.strip():
            messages.append(output.strip())

        return messages

    def extract_package_info(self, message: str, category: ErrorCategory) -> PackageInfo | None:
        if category is ErrorCategory.DEPENDENCY_NOT_FOUND:
            return self._from_module_not_found(message)
        if category is ErrorCategory.DEPENDENCY_VERSION_CONFLICT:
            return self._from_version_conflict(message)
        if category is ErrorCategory.PEER_DEPENDENCY_CONFLICT:
            return self._from_peer_dependency(message)
        if category is ErrorCategory.NATIVE_MODULE_FAILURE:
            return self._from_native_module(message)
        if category is ErrorCategory.GIT_DEPENDENCY_FAILURE:
            return self._from_git_dependency(message)
        return None

    def _is_error_start(self, line: str) -> bool:
        return any(pattern.search(line) for pattern in ERROR_START_PATTERNS)

    def _is_noise(self, message: str) -> bool:
        return any(pattern.search(message) for pattern in NOISE_PATTERNS)

    def _from_module_not_found(self, message: str) -> PackageInfo | None:
        for pattern in MODULE_NOT_FOUND:
            match = pattern.search(message)
            if match:
                name = _split_module_path(match.group(1))
                return PackageInfo(name) if name else None
        return None

    def _from_version_conflict(self, message: str) -> PackageInfo | None:
        match = ERESOLVE_PACKAGE.search(message) or GENERIC_PACKAGE.search(message)
        if not match:
            return None
        return PackageInfo(match.group(1), match.group(2))

    def _from_peer_dependency(self, message: str) -> PackageInfo | None:
        match = PEER_LINE.search(message)
        if match:
            return PackageInfo(
                match.group(1),
                match.group(2),
                [f"{match.group(3)}@{match.group(4)}"],
            )

        conflicting = [f"{name}@{version}" for name, version in CONFLICTING.findall(message)]
        match = ERESOLVE_PACKAGE.search(message) or GENERIC_PACKAGE.search(message)
        if not match:
            return None
        return PackageInfo(match.group(1), match.group(2), conflicting or None)

    def _from_native_module(self, message: str) -> PackageInfo | None:
        match = NATIVE_PACKAGE.search(message) or FAILED_FOR.search(message)
        if match:
            return PackageInfo(match.group(1))

        lowered = message.lower()
        for module in KNOWN_NATIVE_MODULES:
            if module in lowered:
                return PackageInfo(module)
        return None

    def _from_git_dependency(self, message: str) -> PackageInfo | None:
        match = GIT_URL.search(message)
        if match:
            return PackageInfo(match.group(2))

        match = GIT_FOR.search(message)
        if match:
            return PackageInfo(match.group(1))
        return None

    def _deduplicate(self, errors: list[AnalyzedError]) -> list[AnalyzedError]:
        """Merge errors sharing (category, package), unioning conflict lists."""
        seen: dict[str, AnalyzedError] = {}

        for error in errors:
            existing = seen.get(error.pattern)
            if existing is None:
                seen[error.pattern] = error
                continue
            if error.conflicting_packages:
                merged = list(existing.conflicting_packages or [])
                for package in error.conflicting_packages:
                    if package not in merged:
                        merged.append(package)
                existing.conflicting_packages = merged

        return list(seen.values())
