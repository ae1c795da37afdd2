"""etcd snapshot save/restore through a compatible rke binary."""

from datetime import datetime
from typing import Optional, Tuple

from rkeupgrader.constants import SESSION_ID_FORMAT
from rkeupgrader.errors import NoCompatibleReleaseError, SnapshotError
from rkeupgrader.errors_catalog import actionable_error
from rkeupgrader.models import CompatibilityMatch, MatchPolicy


class SnapshotController:
    """Runs snapshot operations against the original, unmodified cluster.yml."""

    def __init__(
        self,
        probe,
        resolver,
        provisioner,
        binary_factory,
        cluster_config: str,
        logger,
        console,
        pinned_tag: Optional[str] = None,
        clock=datetime.now,
    ):
        self.probe = probe
        self.resolver = resolver
        self.provisioner = provisioner
        self.binary_factory = binary_factory
        self.cluster_config = cluster_config
        self.logger = logger
        self.console = console
        self.pinned_tag = pinned_tag
        self.clock = clock
        self._resolved: Optional[Tuple[CompatibilityMatch, object]] = None

    def prepare_binary(self):
        server_version = self.probe.server_version()
        self.logger.info("Current Kubernetes server version: %s", server_version)

        if self._resolved is not None:
            match, binary = self._resolved
            if self.resolver.satisfies(match.matched_versions, server_version, MatchPolicy.ANY):
                self.logger.debug("Reusing RKE %s for snapshot operations.", match.release.tag)
                return binary
            self.logger.warning(
                "Kubernetes %s is not supported by RKE %s. Searching again.",
                server_version,
                match.release.tag,
            )
            self._resolved = None

        match = self.resolver.find(server_version, MatchPolicy.ANY, pinned_tag=self.pinned_tag)
        if match is None:
            raise NoCompatibleReleaseError(
                actionable_error("no_compatible_release", requirement=str(server_version))
            )

        binary = self.binary_factory(self.provisioner.provision(match.release.tag))
        self._resolved = (match, binary)
        return binary

    def save(self, name: Optional[str] = None) -> str:
        name = name or f"snapshot_{self.clock().strftime(SESSION_ID_FORMAT)}"
        binary = self.prepare_binary()

        self.console.print(f"[blue]Taking etcd snapshot using configuration: {self.cluster_config}[/blue]")
        result = binary.snapshot_save(self.cluster_config, name)
        self._check(result, "snapshot-save", name)

        self.console.print(f"[green]Snapshot taken successfully with name: {name}.[/green]")
        return name

    def restore(self, name: str) -> str:
        if not name:
            raise SnapshotError("A snapshot name is required to restore.")
        binary = self.prepare_binary()

        self.console.print(f"[blue]Attempting to restore etcd snapshot: {name}[/blue]")
        result = binary.snapshot_restore(self.cluster_config, name)
        self._check(result, "snapshot-restore", name)

        self.console.print(f"[green]Successfully restored etcd snapshot: {name}.[/green]")
        return name

    def _check(self, result, operation: str, name: str):
        if result.returncode == 0:
            return

        output = "\n".join(part.strip() for part in (result.stdout, result.stderr) if part)
        message = actionable_error(
            "snapshot_failed", operation=operation, name=name, code=str(result.returncode)
        )
        if output:
            message = f"{message}\n{output}"
        raise SnapshotError(message)
