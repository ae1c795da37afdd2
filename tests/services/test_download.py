import os

import pytest
from rich.console import Console

from rkeupgrader.errors import ProvisioningFailedError
from rkeupgrader.services.download import ArtifactProvisioner
from rkeupgrader.services.filesystem import FileSystemService


class DummyLogger:
    def info(self, *_args, **_kwargs):
        return None

    def debug(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


class FakeResponse:
    def __init__(self, payload: bytes):
        self.payload = payload
        self.headers = {"Content-Length": str(len(payload))}

    def raise_for_status(self):
        return None

    def iter_content(self, chunk_size=8192):
        yield self.payload

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


class FakeRequestsModule:
    class RequestException(Exception):
        pass

    def __init__(self, payload: bytes = b"", fail: bool = False):
        self.payload = payload
        self.fail = fail
        self.urls = []

    def get(self, url, *_args, **_kwargs):
        self.urls.append(url)
        if self.fail:
            raise self.RequestException("404 Client Error: Not Found")
        return FakeResponse(self.payload)


def _provisioner(tmp_path, requests_module):
    console = Console(record=True)
    return ArtifactProvisioner(
        bin_dir=str(tmp_path / "bin"),
        filesystem_service=FileSystemService(logger=DummyLogger(), console=console),
        logger=DummyLogger(),
        console=console,
        requests_module=requests_module,
    )


def test_provision_downloads_tag_asset_and_marks_executable(tmp_path):
    requests_module = FakeRequestsModule(payload=b"\x7fELF-binary")
    provisioner = _provisioner(tmp_path, requests_module)

    path = provisioner.provision("v1.5.0")

    assert path == str(tmp_path / "bin" / "rke_v1.5.0")
    assert requests_module.urls == [
        "https://github.com/rancher/rke/releases/download/v1.5.0/rke_linux-amd64"
    ]
    assert (tmp_path / "bin" / "rke_v1.5.0").read_bytes() == b"\x7fELF-binary"
    assert os.access(path, os.X_OK)


def test_provision_failure_is_surfaced_without_partial_file(tmp_path):
    provisioner = _provisioner(tmp_path, FakeRequestsModule(fail=True))

    with pytest.raises(ProvisioningFailedError, match="Error downloading RKE version v1.5.0"):
        provisioner.provision("v1.5.0")

    assert not (tmp_path / "bin" / "rke_v1.5.0").exists()


def test_provision_rejects_malformed_tag(tmp_path):
    requests_module = FakeRequestsModule(payload=b"unused")

    with pytest.raises(ProvisioningFailedError, match="expected format"):
        _provisioner(tmp_path, requests_module).provision("1.5")

    assert requests_module.urls == []
