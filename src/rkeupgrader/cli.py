import logging
import os

import click
from rich.logging import RichHandler

from .constants import DEFAULT_CONFIG_FILE, DEFAULT_REQUEST_TIMEOUT, PER_PAGE
from .core import RkeUpgrader
from .errors import UpgraderError
from .models import MatchPolicy
from .services.config_loader import ConfigLoader


def _resolve_option(cli_value, config, key, default=None):
    if cli_value is not None:
        return cli_value
    if key in config:
        return config[key]
    return default


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


@click.group()
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    help=f"Path to a YAML configuration file. Defaults to {DEFAULT_CONFIG_FILE} if present.",
)
@click.option("--cluster-config", required=False, type=click.Path(), help="Path to the RKE cluster.yml.")
@click.option("--kubeconfig", required=False, type=click.Path(), help="Path to the cluster kubeconfig.")
@click.option("--token", required=False, envvar="GITHUB_TOKEN", help="GitHub token for the release API.")
@click.option("--output-dir", required=False, type=click.Path(), help="Directory for session artifacts.")
@click.option("--bin-dir", required=False, type=click.Path(), help="Directory for downloaded rke binaries.")
@click.option("--rke-version", required=False, help="Use this RKE release (e.g. v1.4.6) when compatible.")
@click.option(
    "--ignore-docker-version/--check-docker-version",
    default=None,
    help="Pass --ignore-docker-version to rke (default: on).",
)
@click.option("--per-page", required=False, type=int, default=None, help="Releases per catalog page.")
@click.option(
    "--request-timeout",
    required=False,
    type=float,
    default=None,
    help="HTTP timeout in seconds for GitHub requests.",
)
@click.option(
    "--command-timeout",
    required=False,
    type=float,
    default=None,
    help="Deadline in seconds for each rke invocation (default: none).",
)
@click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(), help="Path to log file")
@click.pass_context
def main(
    ctx,
    config,
    cluster_config,
    kubeconfig,
    token,
    output_dir,
    bin_dir,
    rke_version,
    ignore_docker_version,
    per_page,
    request_timeout,
    command_timeout,
    verbose,
    log_file,
):
    """Resolve a compatible RKE release, take etcd snapshots and upgrade RKE clusters."""
    logger = logging.getLogger("rkeupgrader")

    try:
        config_loader = ConfigLoader()
        resolved_config = config
        if resolved_config is None:
            default_config_path = os.path.join(os.getcwd(), DEFAULT_CONFIG_FILE)
            if os.path.exists(default_config_path):
                resolved_config = default_config_path

        config_values = config_loader.load(resolved_config)
    except UpgraderError as exc:
        raise click.ClickException(str(exc)) from exc

    verbose = bool(_resolve_option(verbose, config_values, "verbose", default=False))
    log_file = _resolve_option(log_file, config_values, "log_file")
    command_timeout = _resolve_option(command_timeout, config_values, "command_timeout")

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)

    ctx.obj = {
        "cluster_config": _resolve_option(cluster_config, config_values, "cluster_config"),
        "kubeconfig": _resolve_option(kubeconfig, config_values, "kubeconfig"),
        "token": _resolve_option(token, config_values, "token"),
        "output_dir": _resolve_option(output_dir, config_values, "output_dir"),
        "bin_dir": _resolve_option(bin_dir, config_values, "bin_dir"),
        "rke_version": _resolve_option(rke_version, config_values, "rke_version"),
        "ignore_docker_version": bool(
            _resolve_option(ignore_docker_version, config_values, "ignore_docker_version", default=True)
        ),
        "per_page": int(_resolve_option(per_page, config_values, "per_page", default=PER_PAGE)),
        "request_timeout": float(
            _resolve_option(request_timeout, config_values, "request_timeout", default=DEFAULT_REQUEST_TIMEOUT)
        ),
        "command_timeout": float(command_timeout) if command_timeout is not None else None,
    }


def _build_upgrader(ctx) -> RkeUpgrader:
    try:
        return RkeUpgrader(**ctx.obj)
    except UpgraderError as exc:
        raise click.ClickException(str(exc)) from exc


@main.command()
@click.option(
    "--policy",
    type=click.Choice(["any", "upgrade"]),
    default="any",
    show_default=True,
    help="'any' matches the running version exactly; 'upgrade' needs the current and next minor.",
)
@click.pass_context
def resolve(ctx, policy):
    """Find the first RKE release compatible with the running cluster."""
    match_policy = MatchPolicy.ANY if policy == "any" else MatchPolicy.DUAL_MINOR
    raise SystemExit(_build_upgrader(ctx).resolve(match_policy))


@main.command("export-state")
@click.pass_context
def export_state(ctx):
    """Write cluster.rkestate from the full-cluster-state configmap."""
    raise SystemExit(_build_upgrader(ctx).export_cluster_state())


@main.command("snapshot-save")
@click.option("--name", required=False, help="Snapshot name (default: snapshot_<timestamp>).")
@click.pass_context
def snapshot_save(ctx, name):
    """Take an etcd snapshot of the current cluster state."""
    raise SystemExit(_build_upgrader(ctx).take_snapshot(name))


@main.command("snapshot-restore")
@click.option("--name", required=True, help="Name of the snapshot to restore.")
@click.pass_context
def snapshot_restore(ctx, name):
    """Restore an etcd snapshot."""
    raise SystemExit(_build_upgrader(ctx).restore_snapshot(name))


@main.command()
@click.option(
    "--target-version",
    required=False,
    help="Kubernetes version to upgrade to (default: newest patch of the next minor).",
)
@click.pass_context
def upgrade(ctx, target_version):
    """Upgrade the RKE cluster to the next Kubernetes minor version."""
    raise SystemExit(_build_upgrader(ctx).upgrade(target_version))


if __name__ == "__main__":
    main()
