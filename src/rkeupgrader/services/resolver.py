"""Release compatibility resolution for RKE."""

from typing import List, Optional

from packaging import version

from rkeupgrader.errors import CatalogError
from rkeupgrader.models import CompatibilityMatch, MatchPolicy, ServerVersion, VersionSet
from rkeupgrader.services.version_extractor import VersionExtractor

# The first release the catalog yields that satisfies the policy is used. The
# catalog is newest-first, but no attempt is made to find the best release.
TIE_BREAK = "first-encountered"


class CompatibilityResolver:
    """Pages through the release catalog until a release satisfies a policy."""

    def __init__(self, catalog, logger, extractor: Optional[VersionExtractor] = None):
        self.catalog = catalog
        self.logger = logger
        self.extractor = extractor or VersionExtractor()

    def resolve(self, server_version: ServerVersion, policy: MatchPolicy) -> Optional[CompatibilityMatch]:
        self.logger.info(
            "Searching RKE releases for Kubernetes %s (policy: %s)",
            self.describe_requirement(server_version, policy),
            policy.value,
        )
        page_number = 1

        while True:
            try:
                page = self.catalog.fetch_page(page_number)
            except CatalogError as exc:
                if page_number == 1:
                    raise
                self.logger.warning(
                    "Stopping release search at page %s: %s", page_number, exc
                )
                return None

            for release in page.releases:
                if release.is_prerelease:
                    continue

                versions = self.extractor.extract(release.body)
                self.logger.debug(
                    "Checking RKE %s, supported Kubernetes versions: %s",
                    release.tag,
                    ", ".join(item.base for item in versions) or "<none>",
                )
                if self.satisfies(versions, server_version, policy):
                    self.logger.info("Compatible RKE version found: %s", release.tag)
                    return CompatibilityMatch(release=release, matched_versions=versions, policy=policy)

            if len(page.releases) < self.catalog.per_page:
                self.logger.warning("End of RKE releases reached without a compatible version.")
                return None
            page_number += 1

    def find(
        self,
        server_version: ServerVersion,
        policy: MatchPolicy,
        pinned_tag: Optional[str] = None,
    ) -> Optional[CompatibilityMatch]:
        """Tries an operator-pinned release first, then searches the catalog."""
        if pinned_tag:
            match = self.resolve_pinned(pinned_tag, server_version, policy)
            if match:
                return match
            self.logger.warning(
                "Pinned RKE version %s does not support Kubernetes %s. Searching releases instead.",
                pinned_tag,
                self.describe_requirement(server_version, policy),
            )
        return self.resolve(server_version, policy)

    def resolve_pinned(
        self, tag: str, server_version: ServerVersion, policy: MatchPolicy
    ) -> Optional[CompatibilityMatch]:
        try:
            release = self.catalog.fetch_release(tag)
        except CatalogError as exc:
            self.logger.warning("Could not read pinned RKE release %s: %s", tag, exc)
            return None

        versions = self.extractor.extract(release.body)
        if release.is_prerelease or not self.satisfies(versions, server_version, policy):
            return None
        return CompatibilityMatch(release=release, matched_versions=versions, policy=policy)

    @staticmethod
    def satisfies(versions: VersionSet, server_version: ServerVersion, policy: MatchPolicy) -> bool:
        if policy is MatchPolicy.ANY:
            return any(item.base == str(server_version) for item in versions)

        minors = {item.major_minor for item in versions}
        return server_version.major_minor in minors and server_version.next_minor in minors

    @staticmethod
    def describe_requirement(server_version: ServerVersion, policy: MatchPolicy) -> str:
        if policy is MatchPolicy.ANY:
            return str(server_version)
        return f"{server_version.major_minor} and {server_version.next_minor}"

    @staticmethod
    def upgrade_targets(match: CompatibilityMatch, server_version: ServerVersion) -> List[str]:
        """Vendor versions of ``match`` at or above the running version."""
        current = version.parse(str(server_version))
        return [
            item.full for item in match.matched_versions if version.parse(item.base) >= current
        ]
