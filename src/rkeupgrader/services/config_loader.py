"""Configuration loader for RKEUpgrader."""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from rkeupgrader.errors import UpgraderError


class ConfigLoader:
    """Loads YAML configuration files for CLI defaults."""

    SUPPORTED_KEYS = {
        "cluster_config",
        "kubeconfig",
        "output_dir",
        "bin_dir",
        "token",
        "rke_version",
        "ignore_docker_version",
        "per_page",
        "request_timeout",
        "command_timeout",
        "verbose",
        "log_file",
    }

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.exists():
            raise UpgraderError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise UpgraderError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise UpgraderError("Config file must contain a YAML mapping at the root.")

        unknown = sorted(set(parsed.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            unknown_list = ", ".join(unknown)
            raise UpgraderError(f"Unknown configuration keys: {unknown_list}")

        return parsed
