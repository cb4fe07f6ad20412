from unittest.mock import MagicMock, patch

import pytest
import urllib3
from kubernetes.client.exceptions import ApiException

from kubestrap.tests.conftest import make_service
from kubestrap.utils.kube import ClusterClient, load_kubeconfig, service_address


def test_load_kubeconfig_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_kubeconfig(str(tmp_path / "admin.conf"))


def test_missing_kubeconfig_means_unresponsive(tmp_path):
    cluster = ClusterClient(kubeconfig=str(tmp_path / "admin.conf"))
    assert cluster.is_responsive() is False


def test_responsive_api(tmp_path):
    kubeconfig = tmp_path / "admin.conf"
    kubeconfig.write_text("placeholder")
    with patch("kubestrap.utils.kube.config.new_client_from_config") as new_client, \
            patch("kubestrap.utils.kube.client.VersionApi") as version_api:
        version_api.return_value.get_code.return_value = MagicMock(git_version="v1.30.2")
        assert ClusterClient(kubeconfig=str(kubeconfig)).is_responsive() is True
    new_client.assert_called_once_with(config_file=str(kubeconfig.resolve()))


@pytest.mark.parametrize("error", [
    ApiException(status=503),
    urllib3.exceptions.MaxRetryError(None, "/version"),
    ConnectionRefusedError(),
])
def test_unreachable_api(tmp_path, error):
    kubeconfig = tmp_path / "admin.conf"
    kubeconfig.write_text("placeholder")
    with patch("kubestrap.utils.kube.config.new_client_from_config"), \
            patch("kubestrap.utils.kube.client.VersionApi") as version_api:
        version_api.return_value.get_code.side_effect = error
        assert ClusterClient(kubeconfig=str(kubeconfig)).is_responsive() is False


def test_service_address():
    assert service_address(make_service("web", "LoadBalancer", "192.0.2.10")) == "192.0.2.10"
    assert service_address(make_service("web", "LoadBalancer")) is None
