"""Input validation helpers for RKEUpgrader."""

import os
import re
from typing import Optional

from rkeupgrader.errors import UpgraderError
from rkeupgrader.errors_catalog import actionable_error


class ValidationService:
    """Checks operator inputs before anything touches the cluster."""

    RKE_VERSION_PATTERN = re.compile(r"^v\d+\.\d+\.\d+$")
    TARGET_VERSION_PATTERN = re.compile(r"^v?\d+\.\d+\.\d+(-[a-z]+\d+-\d+)?$")

    def validate_cluster_config(self, path: str):
        if os.path.isdir(path):
            raise UpgraderError(actionable_error("cluster_config_is_directory", path=path))
        if not os.path.isfile(path):
            raise UpgraderError(actionable_error("cluster_config_missing", path=path))

    def validate_kubeconfig(self, path: str):
        if not os.path.isfile(path):
            raise UpgraderError(actionable_error("kubeconfig_missing", path=path))

    def validate_token(self, token: Optional[str]):
        if not token or not token.strip():
            raise UpgraderError(actionable_error("token_missing"))

    def validate_rke_version(self, rke_version: Optional[str]):
        if rke_version is None:
            return
        if not self.RKE_VERSION_PATTERN.match(rke_version):
            raise UpgraderError(
                f"The provided RKE version '{rke_version}' is not in the correct format "
                "(example: v1.4.6)."
            )

    def validate_target_version(self, target_version: Optional[str]):
        if target_version is None:
            return
        if not self.TARGET_VERSION_PATTERN.match(target_version.strip()):
            raise UpgraderError(actionable_error("invalid_target_version", target=target_version))
