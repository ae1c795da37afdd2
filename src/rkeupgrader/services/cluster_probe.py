"""Read-only queries against the live cluster through kubectl."""

import json
from typing import List, Optional

from rkeupgrader.errors import UpgraderError, VersionProbeError
from rkeupgrader.errors_catalog import actionable_error
from rkeupgrader.models import ServerVersion


class ClusterProbe:
    ERROR_MARKERS = ("error", "Error", "unable to handle the request")
    STATE_CONFIGMAP = "full-cluster-state"

    def __init__(self, command_runner, logger, kubeconfig: Optional[str] = None):
        self.command_runner = command_runner
        self.logger = logger
        self.kubeconfig = kubeconfig

    def _kubectl(self, *args: str) -> List[str]:
        cmd = ["kubectl"]
        if self.kubeconfig:
            cmd += ["--kubeconfig", self.kubeconfig]
        return cmd + list(args)

    def server_version(self) -> ServerVersion:
        """Returns the kubelet version reported for the first node."""
        try:
            result = self.command_runner.run(
                self._kubectl("get", "nodes"),
                check=False,
                capture_output=True,
            )
        except UpgraderError as exc:
            raise VersionProbeError(actionable_error("version_probe_failed", detail=str(exc))) from exc

        stderr = (result.stderr or "").strip()
        if result.returncode != 0:
            raise VersionProbeError(
                actionable_error("version_probe_failed", detail=stderr or f"exit code {result.returncode}")
            )

        lines = [line for line in (result.stdout or "").splitlines() if line.strip()]
        if len(lines) < 2:
            message = lines[0].strip() if lines and not lines[0].startswith("NAME") else ""
            detail = stderr or message or "no nodes listed"
            raise VersionProbeError(actionable_error("version_probe_failed", detail=detail))

        raw_version = lines[1].split()[-1]
        if any(marker in raw_version for marker in self.ERROR_MARKERS):
            raise VersionProbeError(actionable_error("version_probe_failed", detail=lines[1].strip()))

        self.logger.debug("Current Kubernetes server version: %s", raw_version)
        return ServerVersion.parse(raw_version)

    def export_cluster_state(self, dest_path: str) -> str:
        """Writes the full-cluster-state configmap as an .rkestate file."""
        result = self.command_runner.run(
            self._kubectl("-n", "kube-system", "get", "configmap", self.STATE_CONFIGMAP, "-o", "json"),
            check=True,
            capture_output=True,
        )

        try:
            configmap = json.loads(result.stdout)
            state = json.loads(configmap["data"][self.STATE_CONFIGMAP])
        except (ValueError, KeyError, TypeError) as exc:
            raise UpgraderError(f"Failed to parse the {self.STATE_CONFIGMAP} configmap: {exc}") from exc

        try:
            with open(dest_path, "w", encoding="utf-8") as file_obj:
                json.dump(state, file_obj, indent=2)
                file_obj.write("\n")
        except OSError as exc:
            raise UpgraderError(
                f"Failed to create {dest_path}. Please check the permissions and try again. {exc}"
            ) from exc

        self.logger.info("Cluster state written to %s", dest_path)
        return dest_path
