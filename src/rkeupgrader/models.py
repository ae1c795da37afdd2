"""Shared domain models for RKEUpgrader."""

import os
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from .errors import VersionProbeError

_SERVER_VERSION_RE = re.compile(r"^v?(\d+)\.(\d+)\.(\d+)")


@dataclass(frozen=True)
class Release:
    tag: str
    body: str
    is_prerelease: bool = False


@dataclass(frozen=True)
class SupportedVersion:
    """One Kubernetes version advertised in release notes."""

    full: str
    base: str

    @property
    def major_minor(self) -> str:
        return ".".join(self.base.split(".")[:2])


VersionSet = Tuple[SupportedVersion, ...]


@dataclass(frozen=True)
class ServerVersion:
    major: int
    minor: int
    patch: int

    @classmethod
    def parse(cls, raw: str) -> "ServerVersion":
        match = _SERVER_VERSION_RE.match(raw.strip())
        if not match:
            raise VersionProbeError(f"Unrecognized Kubernetes version: {raw!r}")
        major, minor, patch = (int(part) for part in match.groups())
        return cls(major=major, minor=minor, patch=patch)

    @property
    def major_minor(self) -> str:
        return f"{self.major}.{self.minor}"

    @property
    def next_minor(self) -> str:
        return f"{self.major}.{self.minor + 1}"

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


class MatchPolicy(str, Enum):
    ANY = "any"
    DUAL_MINOR = "dual-minor"


@dataclass(frozen=True)
class CompatibilityMatch:
    release: Release
    matched_versions: VersionSet
    policy: MatchPolicy

    @property
    def bases(self) -> Tuple[str, ...]:
        return tuple(item.base for item in self.matched_versions)


@dataclass(frozen=True)
class ClusterConfigDocument:
    path: str
    text: str
    kubernetes_version: str
    kube_config_path: str


class UpgradeStage(int, Enum):
    IDLE = 0
    VERSION_DISCOVERED = 1
    RELEASE_RESOLVED = 2
    ARTIFACT_PROVISIONED = 3
    CONFIG_DERIVED = 4
    STATE_FILE_GENERATED = 5
    APPLIED = 6
    VERIFIED = 7


@dataclass
class UpgradeSession:
    """Artifacts and progress of a single upgrade run."""

    session_id: str
    output_dir: str
    stage: UpgradeStage = UpgradeStage.IDLE
    server_version: Optional[ServerVersion] = None
    resolved: Optional[CompatibilityMatch] = None
    binary_path: Optional[str] = None
    target_version: Optional[str] = None
    derived_config: Optional[ClusterConfigDocument] = None
    history: list = field(default_factory=list)

    def _artifact(self, prefix: str, suffix: str) -> str:
        return os.path.join(self.output_dir, f"{prefix}_{self.session_id}{suffix}")

    @property
    def config_name(self) -> str:
        return f"cluster_{self.session_id}.yml"

    @property
    def derived_config_path(self) -> str:
        return self._artifact("cluster", ".yml")

    @property
    def backup_config_path(self) -> str:
        return self._artifact("old_cluster", ".yml")

    @property
    def credentials_name(self) -> str:
        return f"kube_config_cluster_{self.session_id}.yml"

    @property
    def credentials_path(self) -> str:
        return os.path.join(self.output_dir, self.credentials_name)

    @property
    def state_file_path(self) -> str:
        return self._artifact("cluster", ".rkestate")

    @property
    def state_log_path(self) -> str:
        return self._artifact("rke_util", ".log")

    @property
    def apply_log_path(self) -> str:
        return self._artifact("rke_up", ".log")

    @property
    def manifest_path(self) -> str:
        return self._artifact("upgrade", ".json")

    @property
    def verified_marker_path(self) -> str:
        return self._artifact("upgrade", ".verified")


@dataclass(frozen=True)
class UpgradeResult:
    session: UpgradeSession
    observed_version: str
    version_matches: bool
