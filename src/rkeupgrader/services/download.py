"""RKE binary provisioning with progress reporting."""

import os
import re

from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

from rkeupgrader.constants import (
    DEFAULT_REQUEST_TIMEOUT,
    DIR_MODE,
    EXECUTABLE_MODE,
    RKE_ASSET_NAME,
    RKE_DOWNLOAD_URL,
)
from rkeupgrader.errors import ProvisioningFailedError


class ArtifactProvisioner:
    """Downloads the RKE binary of a release tag and marks it executable."""

    TAG_PATTERN = re.compile(r"^v\d+\.\d+\.\d+$")

    def __init__(
        self,
        bin_dir: str,
        filesystem_service,
        logger,
        console,
        requests_module,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        base_url: str = RKE_DOWNLOAD_URL,
    ):
        self.bin_dir = bin_dir
        self.filesystem_service = filesystem_service
        self.logger = logger
        self.console = console
        self.requests = requests_module
        self.timeout = timeout
        self.base_url = base_url

    def download_url(self, tag: str) -> str:
        return f"{self.base_url}/{tag}/{RKE_ASSET_NAME}"

    def provision(self, tag: str) -> str:
        if not self.TAG_PATTERN.match(tag):
            raise ProvisioningFailedError(
                f"RKE version '{tag}' is not in the expected format (example: v1.4.6)."
            )

        url = self.download_url(tag)
        dest_path = os.path.join(self.bin_dir, f"rke_{tag}")
        self.logger.info("Downloading %s to %s", url, dest_path)

        try:
            self.filesystem_service.ensure_dir(self.bin_dir, DIR_MODE)
            with self.requests.get(url, stream=True, timeout=self.timeout) as response:
                response.raise_for_status()
                total_size = int(response.headers.get("Content-Length", 0))

                with Progress(
                    SpinnerColumn(),
                    TextColumn("[progress.description]{task.description}"),
                    BarColumn(),
                    TaskProgressColumn(),
                    TimeElapsedColumn(),
                    console=self.console,
                ) as progress:
                    task = progress.add_task(f"[cyan]Downloading RKE {tag}", total=total_size or None)
                    with open(dest_path, "wb") as file_obj:
                        for chunk in response.iter_content(chunk_size=8192):
                            if not chunk:
                                continue
                            file_obj.write(chunk)
                            progress.update(task, advance=len(chunk))
        except self.requests.RequestException as exc:
            self._discard(dest_path)
            raise ProvisioningFailedError(f"Error downloading RKE version {tag}: {exc}") from exc
        except OSError as exc:
            self._discard(dest_path)
            raise ProvisioningFailedError(f"Could not write RKE binary to {dest_path}: {exc}") from exc

        self.filesystem_service.set_permissions(dest_path, EXECUTABLE_MODE)
        if not os.access(dest_path, os.X_OK):
            raise ProvisioningFailedError(f"RKE binary at {dest_path} is not executable.")

        self.console.print(f"[green]Download successful for RKE version: {tag}[/green]")
        return dest_path

    def _discard(self, path: str):
        if os.path.exists(path):
            try:
                os.remove(path)
            except OSError as exc:
                self.logger.warning("Could not remove partial download %s: %s", path, exc)
