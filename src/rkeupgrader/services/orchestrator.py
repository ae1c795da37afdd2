"""Upgrade state machine: resolve, provision, derive, generate state, apply, verify."""

import glob
import os
from datetime import datetime, timedelta
from typing import Optional

from rkeupgrader.constants import CREDENTIALS_MODE, DIR_MODE, SESSION_ID_FORMAT
from rkeupgrader.errors import (
    ApplyFailedError,
    NoCompatibleReleaseError,
    StateFileGenerationError,
    UpgraderError,
)
from rkeupgrader.errors_catalog import actionable_error
from rkeupgrader.models import (
    MatchPolicy,
    ServerVersion,
    UpgradeResult,
    UpgradeSession,
    UpgradeStage,
)
from rkeupgrader.services.manifest import SessionManifestService
from rkeupgrader.services.validation import ValidationService


def new_session(output_dir: str, clock=datetime.now) -> UpgradeSession:
    """Allocates a session whose id no artifact in ``output_dir`` uses yet."""
    moment = clock()
    while True:
        session_id = moment.strftime(SESSION_ID_FORMAT)
        if not glob.glob(os.path.join(glob.escape(output_dir), f"*_{session_id}.*")):
            return UpgradeSession(session_id=session_id, output_dir=output_dir)
        moment += timedelta(seconds=1)


class UpgradeOrchestrator:
    """Drives one upgrade through UpgradeStage in strict forward order.

    Any failure stops the run at the stage it was in. Nothing is retried and
    nothing is rolled back; restoring a snapshot is a separate operation.
    """

    def __init__(
        self,
        probe,
        resolver,
        provisioner,
        transformer,
        filesystem_service,
        binary_factory,
        cluster_config: str,
        kubeconfig: str,
        output_dir: str,
        logger,
        console,
        pinned_tag: Optional[str] = None,
        clock=datetime.now,
    ):
        self.probe = probe
        self.resolver = resolver
        self.provisioner = provisioner
        self.transformer = transformer
        self.filesystem_service = filesystem_service
        self.binary_factory = binary_factory
        self.cluster_config = cluster_config
        self.kubeconfig = kubeconfig
        self.output_dir = output_dir
        self.logger = logger
        self.console = console
        self.pinned_tag = pinned_tag
        self.clock = clock
        self.session: Optional[UpgradeSession] = None

    def run(self, target_version: Optional[str] = None) -> UpgradeResult:
        ValidationService().validate_target_version(target_version)
        self.filesystem_service.ensure_dir(self.output_dir, DIR_MODE)
        session = new_session(self.output_dir, self.clock)
        self.session = session
        manifest = SessionManifestService(
            manifest_file=session.manifest_path,
            marker_file=session.verified_marker_path,
            logger=self.logger,
        )
        manifest.start_session(
            session.session_id,
            metadata={
                "cluster_config": self.cluster_config,
                "kubeconfig": self.kubeconfig,
                "requested_target": target_version,
                "pinned_rke_version": self.pinned_tag,
            },
        )
        self.logger.info("Starting upgrade session %s", session.session_id)

        try:
            result = self._run_stages(session, manifest, target_version)
        except KeyboardInterrupt:
            manifest.finalize("aborted", "Operation cancelled by user.")
            raise
        except Exception as exc:
            manifest.finalize("failed", str(exc))
            raise

        manifest.finalize("success")
        return result

    def _run_stages(self, session, manifest, target_version: Optional[str]) -> UpgradeResult:
        session.server_version = self.probe.server_version()
        self.console.print(f"[yellow]Current server version: {session.server_version}[/yellow]")
        manifest.set_versions(server=str(session.server_version))
        self._advance(session, manifest, UpgradeStage.VERSION_DISCOVERED)

        match = self.resolver.find(session.server_version, MatchPolicy.DUAL_MINOR, pinned_tag=self.pinned_tag)
        if match is None:
            raise NoCompatibleReleaseError(
                actionable_error(
                    "no_compatible_release",
                    requirement=self.resolver.describe_requirement(
                        session.server_version, MatchPolicy.DUAL_MINOR
                    ),
                )
            )
        session.resolved = match
        session.target_version = self.select_target(match, session.server_version, target_version)
        self.console.print(f"[yellow]Selected upgrade version: {session.target_version}[/yellow]")
        manifest.set_release(match.release.tag, match.bases)
        manifest.set_versions(target=session.target_version)
        self._advance(session, manifest, UpgradeStage.RELEASE_RESOLVED)

        session.binary_path = self.provisioner.provision(match.release.tag)
        manifest.add_artifact("rke_binary", session.binary_path)
        self._advance(session, manifest, UpgradeStage.ARTIFACT_PROVISIONED)

        self.filesystem_service.copy_file(self.kubeconfig, session.credentials_path, mode=CREDENTIALS_MODE)
        manifest.add_artifact("kubeconfig", session.credentials_path)
        session.derived_config = self.transformer.derive(
            source_config=self.cluster_config,
            output_dir=session.output_dir,
            target_version=session.target_version,
            session_id=session.session_id,
            kube_config_path=session.credentials_name,
        )
        manifest.add_artifact("cluster_config", session.derived_config_path)
        manifest.add_artifact("cluster_config_backup", session.backup_config_path)
        self._advance(session, manifest, UpgradeStage.CONFIG_DERIVED)

        binary = self.binary_factory(session.binary_path)
        self.console.print("[green]Creating state file using rke util get-state-file...[/green]")
        result = binary.get_state_file(session.config_name, cwd=session.output_dir, log_path=session.state_log_path)
        manifest.add_artifact("state_log", session.state_log_path)
        if result.returncode != 0:
            self._print_failure(result, session.state_log_path)
            raise StateFileGenerationError(
                actionable_error("state_file_failed", code=str(result.returncode), log=session.state_log_path)
            )
        if not os.path.isfile(session.state_file_path):
            raise StateFileGenerationError(
                actionable_error("state_file_absent", path=session.state_file_path, log=session.state_log_path)
            )
        manifest.add_artifact("state_file", session.state_file_path)
        self._advance(session, manifest, UpgradeStage.STATE_FILE_GENERATED)

        self.console.print(f"[green]Running rke up to {session.target_version}...[/green]")
        result = binary.up(session.config_name, cwd=session.output_dir, log_path=session.apply_log_path)
        manifest.add_artifact("apply_log", session.apply_log_path)
        if result.returncode != 0:
            self._print_failure(result, session.apply_log_path)
            raise ApplyFailedError(
                actionable_error("apply_failed", code=str(result.returncode), log=session.apply_log_path)
            )
        self.console.print("[green]Cluster upgrade completed successfully.[/green]")
        self._advance(session, manifest, UpgradeStage.APPLIED)

        observed = self.probe.server_version()
        expected = ServerVersion.parse(session.target_version)
        version_matches = observed == expected
        manifest.set_versions(observed=str(observed))
        if version_matches:
            self.console.print(f"[green]Cluster successfully upgraded to version {session.target_version}[/green]")
        else:
            self.logger.warning(
                "Cluster version (%s) does not match target version (%s)", observed, session.target_version
            )
            self.console.print(
                f"[yellow]Warning: Cluster version ({observed}) does not match "
                f"target version ({session.target_version})[/yellow]"
            )
        self._advance(session, manifest, UpgradeStage.VERIFIED)
        manifest.write_verified_marker(
            {
                "session_id": session.session_id,
                "rke_version": match.release.tag,
                "target_version": session.target_version,
                "observed_version": str(observed),
                "version_matches": version_matches,
            }
        )
        return UpgradeResult(session=session, observed_version=str(observed), version_matches=version_matches)

    def select_target(self, match, server_version: ServerVersion, requested: Optional[str]) -> str:
        candidates = self.resolver.upgrade_targets(match, server_version)

        if requested:
            wanted = requested.strip()
            for candidate in candidates:
                if wanted == candidate or ServerVersion.parse(wanted) == ServerVersion.parse(candidate):
                    return candidate
            raise UpgraderError(
                f"Kubernetes {requested} is not offered by RKE {match.release.tag}. "
                f"Available: {', '.join(candidates) or '<none>'}"
            )

        next_minor = [item.full for item in match.matched_versions if item.major_minor == server_version.next_minor]
        return next_minor[-1]

    def _advance(self, session: UpgradeSession, manifest, stage: UpgradeStage):
        if stage.value != session.stage.value + 1:
            raise UpgraderError(f"Invalid upgrade transition {session.stage.name} -> {stage.name}")
        session.stage = stage
        session.history.append(stage.name)
        manifest.stage_reached(stage.name)
        self.logger.info("Upgrade session %s reached %s", session.session_id, stage.name)

    def _print_failure(self, result, log_path: str):
        self.console.print(f"[red]Command exited with code {result.returncode}. Error details:[/red]")
        if result.stdout:
            self.console.print(result.stdout, markup=False, highlight=False)
        self.console.print(f"[yellow]The complete log is available in {log_path}[/yellow]")
