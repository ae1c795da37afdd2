import logging
import os
from typing import Callable, Optional

import requests
from rich.console import Console

from .constants import DEFAULT_REQUEST_TIMEOUT, PER_PAGE
from .errors import UpgraderError
from .models import MatchPolicy
from .services.catalog import ReleaseCatalogClient
from .services.cluster_probe import ClusterProbe
from .services.command_runner import CommandRunner
from .services.config_transformer import ConfigTransformer
from .services.download import ArtifactProvisioner
from .services.engine import RkeBinary
from .services.filesystem import FileSystemService
from .services.orchestrator import UpgradeOrchestrator
from .services.resolver import CompatibilityResolver
from .services.snapshot import SnapshotController
from .services.validation import ValidationService

console = Console()
logger = logging.getLogger("rkeupgrader")


class RkeUpgrader:
    """Wires the services together and runs one operation at a time.

    Every public operation returns a process exit code; domain errors are
    reported and never propagate to the caller's loop.
    """

    def __init__(
        self,
        cluster_config: Optional[str] = None,
        kubeconfig: Optional[str] = None,
        token: Optional[str] = None,
        output_dir: Optional[str] = None,
        bin_dir: Optional[str] = None,
        rke_version: Optional[str] = None,
        ignore_docker_version: bool = True,
        per_page: int = PER_PAGE,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        command_timeout: Optional[float] = None,
    ):
        self.cwd = os.getcwd()
        self.cluster_config = os.path.abspath(cluster_config or os.path.join(self.cwd, "cluster.yml"))
        self.kubeconfig = os.path.abspath(kubeconfig or os.path.join(self.cwd, "kubeconfig"))
        self.token = token
        self.output_dir = os.path.abspath(output_dir or os.path.join(self.cwd, "output"))
        self.bin_dir = os.path.abspath(bin_dir or os.path.join(self.output_dir, "bin"))
        self.rke_version = rke_version
        self.ignore_docker_version = ignore_docker_version

        self.validation_service = ValidationService()
        self.validation_service.validate_rke_version(rke_version)

        self.filesystem_service = FileSystemService(logger=logger, console=console)
        self.command_runner = CommandRunner(logger=logger, default_timeout=request_timeout)
        self.binary_runner = CommandRunner(logger=logger, default_timeout=command_timeout)
        self.catalog = ReleaseCatalogClient(
            logger=logger,
            token=token,
            per_page=per_page,
            timeout=request_timeout,
            requests_module=requests,
        )
        self.resolver = CompatibilityResolver(catalog=self.catalog, logger=logger)
        self.provisioner = ArtifactProvisioner(
            bin_dir=self.bin_dir,
            filesystem_service=self.filesystem_service,
            logger=logger,
            console=console,
            requests_module=requests,
            timeout=request_timeout,
        )
        self.probe = ClusterProbe(command_runner=self.command_runner, logger=logger, kubeconfig=self.kubeconfig)
        self.transformer = ConfigTransformer(logger=logger, console=console)
        self.snapshot_controller = SnapshotController(
            probe=self.probe,
            resolver=self.resolver,
            provisioner=self.provisioner,
            binary_factory=self._build_binary,
            cluster_config=self.cluster_config,
            logger=logger,
            console=console,
            pinned_tag=rke_version,
        )

    def _build_binary(self, path: str) -> RkeBinary:
        return RkeBinary(
            path=path,
            command_runner=self.binary_runner,
            ignore_docker_version=self.ignore_docker_version,
            echo=lambda line: console.print(line, markup=False, highlight=False),
        )

    def build_orchestrator(self) -> UpgradeOrchestrator:
        return UpgradeOrchestrator(
            probe=self.probe,
            resolver=self.resolver,
            provisioner=self.provisioner,
            transformer=self.transformer,
            filesystem_service=self.filesystem_service,
            binary_factory=self._build_binary,
            cluster_config=self.cluster_config,
            kubeconfig=self.kubeconfig,
            output_dir=self.output_dir,
            logger=logger,
            console=console,
            pinned_tag=self.rke_version,
        )

    def validate_requirements(self, needs_catalog: bool = True):
        self.validation_service.validate_cluster_config(self.cluster_config)
        self.validation_service.validate_kubeconfig(self.kubeconfig)
        if needs_catalog:
            self.validation_service.validate_token(self.token)
        console.print("[green]Requirements checked successfully.[/green]")

    def export_cluster_state(self) -> int:
        def _export():
            self.validate_requirements(needs_catalog=False)
            dest = os.path.splitext(self.cluster_config)[0] + ".rkestate"
            console.print("[blue]Building cluster.rkestate from the full-cluster-state configmap...[/blue]")
            self.probe.export_cluster_state(dest)
            console.print(f"[green]{os.path.basename(dest)} created successfully.[/green]")

        return self._run_operation("Export cluster state", _export)

    def resolve(self, policy: MatchPolicy = MatchPolicy.ANY) -> int:
        def _resolve():
            self.validate_requirements()
            server_version = self.probe.server_version()
            console.print(f"[blue]Current Kubernetes server version: {server_version}[/blue]")
            match = self.resolver.find(server_version, policy, pinned_tag=self.rke_version)
            if match is None:
                raise UpgraderError(
                    f"No RKE release supports Kubernetes "
                    f"{self.resolver.describe_requirement(server_version, policy)}."
                )
            console.print(f"[green]Compatible RKE version: {match.release.tag}[/green]")
            console.print(f"Supported Kubernetes versions: {', '.join(match.bases)}")

        return self._run_operation("Resolve RKE release", _resolve)

    def take_snapshot(self, name: Optional[str] = None) -> int:
        def _save():
            self.validate_requirements()
            self.snapshot_controller.save(name)

        return self._run_operation("etcd snapshot", _save)

    def restore_snapshot(self, name: str) -> int:
        def _restore():
            self.validate_requirements()
            self.snapshot_controller.restore(name)

        return self._run_operation("etcd snapshot restoration", _restore)

    def upgrade(self, target_version: Optional[str] = None) -> int:
        def _upgrade():
            self.validation_service.validate_target_version(target_version)
            self.validate_requirements()
            console.print("[green]Starting cluster upgrade process...[/green]")
            result = self.build_orchestrator().run(target_version)
            console.print(
                f"[green]The updated cluster.yml, state file and rke logs are saved in "
                f"{result.session.output_dir}.[/green]"
            )

        return self._run_operation("Cluster upgrade", _upgrade)

    def _run_operation(self, label: str, callback: Callable[[], None]) -> int:
        logger.info("Starting operation: %s", label)
        try:
            callback()
        except KeyboardInterrupt:
            console.print("[bold red]Operation cancelled by user.[/bold red]")
            logger.info("Operation cancelled by user")
            return 1
        except UpgraderError as exc:
            console.print(f"[bold red]Error:[/bold red] {exc}")
            logger.error(str(exc))
            return 1
        except Exception as exc:
            console.print(f"[bold red]Unexpected error:[/bold red] {exc}")
            logger.exception("Unexpected error")
            return 1

        console.print(f"[green]Operation completed: {label}.[/green]")
        return 0
