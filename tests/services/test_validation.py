import pytest

from rkeupgrader.errors import UpgraderError
from rkeupgrader.services.validation import ValidationService


def test_cluster_config_directory_gets_dedicated_message(tmp_path):
    directory = tmp_path / "cluster.yml"
    directory.mkdir()

    with pytest.raises(UpgraderError, match="is a directory but should be a file"):
        ValidationService().validate_cluster_config(str(directory))


def test_missing_cluster_config_is_rejected(tmp_path):
    with pytest.raises(UpgraderError, match="Cluster configuration not found"):
        ValidationService().validate_cluster_config(str(tmp_path / "cluster.yml"))


def test_missing_kubeconfig_is_rejected(tmp_path):
    with pytest.raises(UpgraderError, match="Kubeconfig not found"):
        ValidationService().validate_kubeconfig(str(tmp_path / "kubeconfig"))


@pytest.mark.parametrize("token", [None, "", "   "])
def test_missing_token_is_rejected(token):
    with pytest.raises(UpgraderError, match="GitHub token is missing"):
        ValidationService().validate_token(token)


@pytest.mark.parametrize("rke_version", ["1.4.6", "v1.4", "v1.4.6-rc1"])
def test_malformed_rke_version_is_rejected(rke_version):
    with pytest.raises(UpgraderError, match="not in the correct format"):
        ValidationService().validate_rke_version(rke_version)


def test_valid_inputs_pass(tmp_path):
    cluster_config = tmp_path / "cluster.yml"
    cluster_config.write_text("nodes: []\n", encoding="utf-8")
    kubeconfig = tmp_path / "kubeconfig"
    kubeconfig.write_text("apiVersion: v1\n", encoding="utf-8")
    service = ValidationService()

    service.validate_cluster_config(str(cluster_config))
    service.validate_kubeconfig(str(kubeconfig))
    service.validate_token("ghp_token")
    service.validate_rke_version("v1.4.6")
    service.validate_rke_version(None)


@pytest.mark.parametrize("target", ["v1.26.1", "1.26.1", "v1.26.1-rancher2-1", None])
def test_target_version_accepts_plain_and_vendor_versions(target):
    ValidationService().validate_target_version(target)


@pytest.mark.parametrize("target", ["latest", "v1.26", "1.26.x"])
def test_target_version_rejects_non_versions(target):
    with pytest.raises(UpgraderError, match="is not a Kubernetes version"):
        ValidationService().validate_target_version(target)
