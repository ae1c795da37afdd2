"""Actionable error catalog for RKEUpgrader."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "rate_limited": {
        "what": "GitHub API rate limit exceeded while reading RKE releases.",
        "next": "Wait for the quota to reset or pass a token with `--token`.",
    },
    "malformed_catalog": {
        "what": "Could not parse the RKE release list returned by GitHub: {detail}",
        "next": "Check network proxies and the token, then retry.",
    },
    "no_compatible_release": {
        "what": "No RKE release supports Kubernetes {requirement}.",
        "next": "Pin a known release with `--rke-version` or check the cluster version.",
    },
    "cluster_config_missing": {
        "what": "Cluster configuration not found: {path}",
        "next": "Pass the RKE cluster.yml with `--cluster-config`.",
    },
    "cluster_config_is_directory": {
        "what": "{path} is a directory but should be a file.",
        "next": "Mount or pass the cluster.yml file itself, not its folder.",
    },
    "kubeconfig_missing": {
        "what": "Kubeconfig not found: {path}",
        "next": "Pass the cluster kubeconfig with `--kubeconfig`.",
    },
    "token_missing": {
        "what": "GitHub token is missing.",
        "next": "Provide it with `--token` or the `GITHUB_TOKEN` environment variable.",
    },
    "version_probe_failed": {
        "what": "Failed to get the Kubernetes server version: {detail}",
        "next": "Ensure kubectl is installed and the kubeconfig points at the cluster.",
    },
    "state_file_failed": {
        "what": "Failed to create the state file (exit code {code}).",
        "next": "Inspect `{log}` for the full `rke util get-state-file` output.",
    },
    "state_file_absent": {
        "what": "State file not found at expected location {path}.",
        "next": "Inspect `{log}`; rke exited cleanly but wrote no state file.",
    },
    "apply_failed": {
        "what": "Failed to upgrade cluster (exit code {code}).",
        "next": "Inspect `{log}` and restore an etcd snapshot if the cluster is degraded.",
    },
    "invalid_target_version": {
        "what": "The requested target version '{target}' is not a Kubernetes version.",
        "next": "Pass a version such as `v1.26.1` or `v1.26.1-rancher2-1`, or omit `--target-version`.",
    },
    "snapshot_failed": {
        "what": "etcd {operation} for '{name}' failed (exit code {code}).",
        "next": "Review the rke output above and the cluster.rkestate next to cluster.yml.",
    },
}


def actionable_error(code: str, /, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"
