"""Pre-flight detection of dependencies that will abort installation."""

import logging

import httpx

from .config import Config
from .detect import current_architecture
from .models import BlockingDependency, BlockingReason, PackageReplacement
from .registry import PackageReplacementRegistry

logger = logging.getLogger(__name__)

# Packages that block installation whatever version is requested.
KNOWN_BLOCKING_PACKAGES: dict[str, BlockingReason] = {
    "node-sass": BlockingReason.ARCHITECTURE_INCOMPATIBLE,
    "phantomjs": BlockingReason.ARCHITECTURE_INCOMPATIBLE,
    "phantomjs-prebuilt": BlockingReason.ARCHITECTURE_INCOMPATIBLE,
    "fibers": BlockingReason.ARCHITECTURE_INCOMPATIBLE,
    "deasync": BlockingReason.BUILD_FAILURE,
    "node-canvas": BlockingReason.BUILD_FAILURE,
    "canvas": BlockingReason.BUILD_FAILURE,
}

ARCHIVE_SEGMENTS = ("/archive/", "/tarball/")


def is_archive_url(version: str) -> bool:
    """Whether a version string points at a source archive rather than a semver range."""
    return any(segment in version for segment in ARCHIVE_SEGMENTS)


class BlockingDependencyDetector:
    """Detector for packages that prevent ``npm install`` from completing."""

    def __init__(
        self,
        registry: PackageReplacementRegistry | None = None,
        arch: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        check_urls: bool = True,
    ):
        """Initialize the detector.

        Args:
            registry: Optional replacement registry for architecture and URL checks
            arch: Architecture to check against (defaults to this machine)
            timeout: Timeout in seconds for archive URL checks
            transport: Optional httpx transport, mainly for tests
            check_urls: Send HEAD requests to archive URLs; when False only the registry
                dead URL lists are consulted
        """
        self.registry = registry
        self.arch = arch or current_architecture()
        self.timeout = timeout if timeout is not None else Config.URL_TIMEOUT
        self._transport = transport
        self.check_urls = check_urls

    def is_known_blocking(self, package_name: str) -> bool:
        return package_name in KNOWN_BLOCKING_PACKAGES

    def get_blocking_reason(self, package_name: str) -> BlockingReason | None:
        return KNOWN_BLOCKING_PACKAGES.get(package_name)

    async def detect(self, dependencies: dict[str, str]) -> list[BlockingDependency]:
        """Return every dependency that will block installation.

        Args:
            dependencies: Package name -> version (or source URL)

        Returns:
            Blocking dependencies in input order
        """
        blocking: list[BlockingDependency] = []

        for name, version in dependencies.items():
            version = version or ""

            reason = self.get_blocking_reason(name)
            if reason:
                blocking.append(BlockingDependency(name, version, reason, self._replacement_for(name)))
                continue

            if self.registry and self._is_architecture_incompatible(name):
                blocking.append(
                    BlockingDependency(
                        name,
                        version,
                        BlockingReason.ARCHITECTURE_INCOMPATIBLE,
                        self._replacement_for(name),
                    )
                )
                continue

            dead = await self._check_dead_url(name, version)
            if dead:
                blocking.append(dead)

        if blocking:
            logger.info("Found %d blocking dependencies", len(blocking))
        return blocking

    def _is_architecture_incompatible(self, package_name: str) -> bool:
        entry = self.registry.find_architecture_incompatible(package_name)
        return bool(entry) and self.arch in entry.incompatible_architectures

    def _replacement_for(self, package_name: str) -> PackageReplacement | None:
        if not self.registry:
            return None

        replacement = self.registry.lookup(package_name)
        if replacement:
            return replacement

        entry = self.registry.find_architecture_incompatible(package_name)
        if entry and entry.replacement:
            return PackageReplacement(
                old_name=package_name,
                new_name=entry.replacement,
                version_mapping={"*": "latest"},
                requires_code_changes=True,
                code_change_description=entry.reason or None,
            )
        return None

    async def _check_dead_url(self, name: str, version: str) -> BlockingDependency | None:
        if self.registry:
            if self.registry.is_known_dead_url(version):
                return BlockingDependency(name, version, BlockingReason.DEAD_URL, self._replacement_for(name))

            pattern = self.registry.matches_dead_url_pattern(version)
            if pattern:
                replacement = self._replacement_for(name)
                if replacement is None and pattern.replacement_package:
                    replacement = PackageReplacement(
                        old_name=name,
                        new_name=pattern.replacement_package,
                        version_mapping={"*": pattern.replacement_version or "latest"},
                        requires_code_changes=False,
                        code_change_description=pattern.reason or None,
                    )
                return BlockingDependency(name, version, BlockingReason.DEAD_URL, replacement)

        if self.check_urls and is_archive_url(version) and not await self._is_url_accessible(version):
            return BlockingDependency(name, version, BlockingReason.DEAD_URL, self._replacement_for(name))

        return None

    async def _is_url_accessible(self, url: str) -> bool:
        """Send a HEAD request; any failure counts as inaccessible."""
        full_url = url if url.startswith("http") else f"https://{url}"

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                response = await client.head(full_url)
                return response.is_success
        except httpx.HTTPError as e:
            logger.warning("Archive URL %s is unreachable: %s", full_url, e)
            return False
        except Exception as e:
            logger.warning("Could not reach %s: %s", full_url, e)
            return False
