"""Derivation of per-session RKE cluster configurations."""

import os
import re
from typing import Optional

import yaml

from rkeupgrader.errors import ConfigTransformError, TransformVerificationFailedError
from rkeupgrader.models import ClusterConfigDocument


class ConfigTransformer:
    """Copies cluster.yml verbatim, swapping only the version and kubeconfig path.

    The source file is never modified. Every derived file is re-read and
    checked before it is handed to rke.
    """

    VERSION_KEY = "kubernetes_version"
    KUBECONFIG_KEY = "kube_config_path"

    def __init__(self, logger, console):
        self.logger = logger
        self.console = console

    def render(self, text: str, target_version: str, kube_config_path: Optional[str] = None) -> str:
        rendered = self._set_top_level(text, self.VERSION_KEY, target_version)
        if kube_config_path is not None:
            rendered = self._set_top_level(rendered, self.KUBECONFIG_KEY, kube_config_path)
        return rendered

    def derive(
        self,
        source_config: str,
        output_dir: str,
        target_version: str,
        session_id: str,
        kube_config_path: str,
    ) -> ClusterConfigDocument:
        derived_path = os.path.join(output_dir, f"cluster_{session_id}.yml")
        backup_path = os.path.join(output_dir, f"old_cluster_{session_id}.yml")

        try:
            with open(source_config, "r", encoding="utf-8") as file_obj:
                source_text = file_obj.read()
            with open(backup_path, "w", encoding="utf-8", newline="\n") as file_obj:
                file_obj.write(source_text)

            rendered = self.render(source_text, target_version, kube_config_path)
            with open(derived_path, "w", encoding="utf-8", newline="\n") as file_obj:
                file_obj.write(rendered)
        except OSError as exc:
            raise ConfigTransformError(f"Could not derive cluster configuration: {exc}") from exc

        self.verify(derived_path, target_version, kube_config_path)
        self.console.print(f"[green]Cluster configuration prepared for upgrade: {derived_path}[/green]")
        self.console.print(f"[yellow]Kubernetes version set to: {target_version}[/yellow]")

        return ClusterConfigDocument(
            path=derived_path,
            text=rendered,
            kubernetes_version=target_version,
            kube_config_path=kube_config_path,
        )

    def verify(self, path: str, target_version: str, kube_config_path: Optional[str] = None):
        try:
            with open(path, "r", encoding="utf-8") as file_obj:
                parsed = yaml.safe_load(file_obj)
        except (OSError, yaml.YAMLError) as exc:
            raise TransformVerificationFailedError(
                f"Derived configuration {path} cannot be read back: {exc}"
            ) from exc

        if not isinstance(parsed, dict):
            raise TransformVerificationFailedError(
                f"Derived configuration {path} is not a YAML mapping."
            )

        actual_version = parsed.get(self.VERSION_KEY)
        if actual_version != target_version:
            raise TransformVerificationFailedError(
                f"Failed to update {self.VERSION_KEY} in {path}: "
                f"expected {target_version!r}, found {actual_version!r}."
            )

        if kube_config_path is not None and parsed.get(self.KUBECONFIG_KEY) != kube_config_path:
            raise TransformVerificationFailedError(
                f"Failed to update {self.KUBECONFIG_KEY} in {path}."
            )

        self.logger.debug("Verified %s in %s: %s", self.VERSION_KEY, path, target_version)

    @staticmethod
    def _set_top_level(text: str, key: str, value: str) -> str:
        line = f'{key}: "{value}"'
        pattern = re.compile(rf"^{re.escape(key)}:.*$", re.MULTILINE)
        if pattern.search(text):
            return pattern.sub(lambda _match: line, text)

        # A new key goes inside the first document, after any directives and "---".
        lines = text.splitlines(keepends=True)
        index = 0
        while index < len(lines) and (
            lines[index].startswith(("%", "#")) or not lines[index].strip()
        ):
            index += 1
        if index < len(lines) and lines[index].rstrip() == "---":
            insert_at = index + 1
        else:
            insert_at = 0
        head = "".join(lines[:insert_at])
        if head and not head.endswith("\n"):
            head += "\n"
        return f"{head}{line}\n{''.join(lines[insert_at:])}"
