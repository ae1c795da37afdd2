"""Shared constants for RKEUpgrader."""

RKE_RELEASES_URL = "https://api.github.com/repos/rancher/rke/releases"
RKE_DOWNLOAD_URL = "https://github.com/rancher/rke/releases/download"
RKE_ASSET_NAME = "rke_linux-amd64"

PER_PAGE = 100
RATE_LIMIT_MARKER = "API rate limit exceeded"
PRERELEASE_MARKER = "rc"

SESSION_ID_FORMAT = "%Y%m%d%H%M%S"

DIR_MODE = 0o755
EXECUTABLE_MODE = 0o755
CREDENTIALS_MODE = 0o600

DEFAULT_REQUEST_TIMEOUT = 60.0
DEFAULT_CONFIG_FILE = ".rkeupgrader.yml"
