"""Domain errors for RKEUpgrader."""


class UpgraderError(RuntimeError):
    """Raised when the current operation cannot continue safely."""


class CatalogError(UpgraderError):
    """Raised when the release catalog cannot be read."""


class RateLimitedError(CatalogError):
    """Raised when the release catalog reports quota exhaustion."""


class MalformedCatalogResponseError(CatalogError):
    """Raised when the release catalog payload is not a list of releases."""


class NoCompatibleReleaseError(UpgraderError):
    pass


class ProvisioningFailedError(UpgraderError):
    pass


class ConfigTransformError(UpgraderError):
    pass


class TransformVerificationFailedError(ConfigTransformError):
    """Raised when a derived config does not carry the requested values."""


class StateFileGenerationError(UpgraderError):
    pass


class ApplyFailedError(UpgraderError):
    pass


class SnapshotError(UpgraderError):
    pass


class VersionProbeError(UpgraderError):
    """Raised when the live control-plane version cannot be read."""
