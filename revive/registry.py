"""Knowledge base of deprecated packages, architecture traps and dead URLs."""

import logging
import re
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import Config
from .jsonfile import read_json, write_json
from .models import ArchitectureIncompatibleEntry, DeadUrlPattern, PackageReplacement

logger = logging.getLogger(__name__)


class RegistryError(Exception):
    """Raised when the registry file cannot be written."""


class _Schema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class _ReplacementSchema(_Schema):
    old_name: str = Field(alias="oldName", min_length=1)
    new_name: str = Field(default="", alias="newName")
    version_mapping: dict[str, str] = Field(alias="versionMapping")
    requires_code_changes: bool = Field(alias="requiresCodeChanges", strict=True)
    code_change_description: str | None = Field(default=None, alias="codeChangeDescription")


class _ArchitectureSchema(_Schema):
    package_name: str = Field(alias="packageName")
    incompatible_architectures: list[str] = Field(alias="incompatibleArchitectures")
    replacement: str | None = None
    reason: str = ""


class _DeadUrlPatternSchema(_Schema):
    pattern: str
    replacement_package: str | None = Field(default=None, alias="replacementPackage")
    replacement_version: str | None = Field(default=None, alias="replacementVersion")
    reason: str = ""


class _RegistrySchema(_Schema):
    version: str = Field(min_length=1)
    last_updated: str = Field(default="", alias="lastUpdated")
    replacements: list[_ReplacementSchema]
    architecture_incompatible: list[_ArchitectureSchema] = Field(alias="architectureIncompatible")
    known_dead_urls: list[str] = Field(alias="knownDeadUrls")
    dead_url_patterns: list[_DeadUrlPatternSchema] | None = Field(default=None, alias="deadUrlPatterns")


def _default_replacements() -> list[PackageReplacement]:
    return [
        PackageReplacement("node-sass", "sass", {"*": "^1.69.0"}, False),
        PackageReplacement(
            "request",
            "node-fetch",
            {"*": "^3.3.0"},
            True,
            "Replace request() calls with fetch() API",
        ),
    ]


def _default_architecture_incompatible() -> list[ArchitectureIncompatibleEntry]:
    return [
        ArchitectureIncompatibleEntry(
            "node-sass", ["arm64"], "sass", "node-sass uses native bindings that don't support ARM64"
        ),
        ArchitectureIncompatibleEntry(
            "phantomjs", ["arm64"], "puppeteer", "PhantomJS is deprecated and has no ARM64 binaries"
        ),
    ]


def glob_to_regex(pattern: str) -> re.Pattern:
    """Compile a URL glob: ``*`` stays within a path segment, ``**`` spans any."""
    parts = []
    for index, chunk in enumerate(pattern.split("**")):
        if index:
            parts.append(".*")
        parts.append("[^/]*".join(re.escape(piece) for piece in chunk.split("*")))
    return re.compile("".join(parts))


class PackageReplacementRegistry:
    """Registry of package replacements backed by a JSON file."""

    def __init__(self, registry_path: str | Path | None = None):
        self.registry_path = Path(registry_path) if registry_path else Config.REGISTRY_PATH
        self.version = "1.0.0"
        self.last_updated = ""
        self._replacements: list[PackageReplacement] = []
        self._architecture_incompatible: list[ArchitectureIncompatibleEntry] = []
        self._known_dead_urls: list[str] = []
        self._dead_url_patterns: list[DeadUrlPattern] | None = None

    def load(self) -> None:
        """Load the registry file, falling back to built-in defaults."""
        try:
            raw = read_json(self.registry_path)
        except (OSError, ValueError) as e:
            logger.info("Registry file %s unavailable (%s), using defaults", self.registry_path, e)
            self._use_defaults()
            return

        try:
            schema = _RegistrySchema.model_validate(raw)
        except ValidationError as e:
            logger.warning("Invalid registry schema in %s, using defaults: %s", self.registry_path, e)
            self._use_defaults()
            return

        self.version = schema.version
        self.last_updated = schema.last_updated
        self._replacements = [
            PackageReplacement(
                old_name=r.old_name,
                new_name=r.new_name,
                version_mapping=dict(r.version_mapping),
                requires_code_changes=r.requires_code_changes,
                code_change_description=r.code_change_description,
            )
            for r in schema.replacements
        ]
        self._architecture_incompatible = [
            ArchitectureIncompatibleEntry(
                package_name=a.package_name,
                incompatible_architectures=list(a.incompatible_architectures),
                replacement=a.replacement,
                reason=a.reason,
            )
            for a in schema.architecture_incompatible
        ]
        self._known_dead_urls = list(schema.known_dead_urls)
        if schema.dead_url_patterns is None:
            self._dead_url_patterns = None
        else:
            self._dead_url_patterns = [
                DeadUrlPattern(
                    pattern=p.pattern,
                    replacement_package=p.replacement_package,
                    replacement_version=p.replacement_version,
                    reason=p.reason,
                )
                for p in schema.dead_url_patterns
            ]
        logger.debug("Loaded %d replacements from %s", len(self._replacements), self.registry_path)

    def save(self) -> None:
        """Overwrite the registry file with the current contents."""
        self.last_updated = datetime.now(timezone.utc).isoformat()
        try:
            self.registry_path.parent.mkdir(parents=True, exist_ok=True)
            write_json(self.registry_path, self.to_dict())
        except OSError as e:
            raise RegistryError(f"Failed to save registry: {e}") from e

    def to_dict(self) -> dict:
        data = {
            "version": self.version,
            "lastUpdated": self.last_updated,
            "replacements": [],
            "architectureIncompatible": [
                {
                    "packageName": a.package_name,
                    "incompatibleArchitectures": a.incompatible_architectures,
                    "replacement": a.replacement,
                    "reason": a.reason,
                }
                for a in self._architecture_incompatible
            ],
            "knownDeadUrls": self._known_dead_urls,
        }
        for r in self._replacements:
            entry = {
                "oldName": r.old_name,
                "newName": r.new_name,
                "versionMapping": r.version_mapping,
                "requiresCodeChanges": r.requires_code_changes,
            }
            if r.code_change_description:
                entry["codeChangeDescription"] = r.code_change_description
            data["replacements"].append(entry)
        if self._dead_url_patterns is not None:
            data["deadUrlPatterns"] = [
                {
                    "pattern": p.pattern,
                    "replacementPackage": p.replacement_package,
                    "replacementVersion": p.replacement_version,
                    "reason": p.reason,
                }
                for p in self._dead_url_patterns
            ]
        return data

    def lookup(self, package_name: str) -> PackageReplacement | None:
        for replacement in self._replacements:
            if replacement.old_name == package_name:
                return replacement
        return None

    def add(self, replacement: PackageReplacement) -> None:
        """Add a replacement, replacing any entry for the same old name."""
        self._replacements = [r for r in self._replacements if r.old_name != replacement.old_name]
        self._replacements.append(replacement)

    def get_all(self) -> list[PackageReplacement]:
        return list(self._replacements)

    def get_architecture_incompatible(self) -> list[ArchitectureIncompatibleEntry]:
        return list(self._architecture_incompatible)

    def find_architecture_incompatible(self, package_name: str) -> ArchitectureIncompatibleEntry | None:
        for entry in self._architecture_incompatible:
            if entry.package_name == package_name:
                return entry
        return None

    def get_known_dead_urls(self) -> list[str]:
        return list(self._known_dead_urls)

    def is_known_dead_url(self, url: str) -> bool:
        return any(dead in url for dead in self._known_dead_urls)

    def get_dead_url_patterns(self) -> list[DeadUrlPattern]:
        return list(self._dead_url_patterns or [])

    def matches_dead_url_pattern(self, url: str) -> DeadUrlPattern | None:
        for pattern in self.get_dead_url_patterns():
            if glob_to_regex(pattern.pattern).search(url):
                logger.info("URL %s matches dead URL pattern %s", url, pattern.pattern)
                return pattern
        return None

    def _use_defaults(self) -> None:
        self.version = "1.0.0"
        self.last_updated = datetime.now(timezone.utc).isoformat()
        self._replacements = _default_replacements()
        self._architecture_incompatible = _default_architecture_incompatible()
        self._known_dead_urls = ["github.com/substack/querystring"]
        self._dead_url_patterns = None
