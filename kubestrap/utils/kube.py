import logging
import os
from pathlib import Path
from typing import List, Optional

import urllib3
from kubernetes import client, config
from kubernetes.client.exceptions import ApiException
from kubernetes.config.config_exception import ConfigException

from ..config import Config

logger = logging.getLogger("kubestrap.kube")

# Errors that mean "the API server did not answer", as opposed to a bug
UNREACHABLE_ERRORS = (ApiException, ConfigException, urllib3.exceptions.HTTPError, OSError)


def load_kubeconfig(path: Optional[str] = None) -> client.ApiClient:
    """
    Build an API client from the given kubeconfig, defaulting to the
    control-plane admin credential.
    """
    resolved = Path(os.path.expanduser(path or Config.ADMIN_KUBECONFIG)).resolve()
    if not resolved.exists():
        raise FileNotFoundError(f"Kubeconfig not found: {resolved}")
    return config.new_client_from_config(config_file=str(resolved))


class ClusterClient:
    """Read-only view of the local cluster through the Kubernetes API."""

    def __init__(self, kubeconfig: Optional[str] = None, request_timeout: Optional[int] = None):
        self.kubeconfig = kubeconfig or Config.ADMIN_KUBECONFIG
        self.request_timeout = request_timeout or Config.API_TIMEOUT
        self._api_client: Optional[client.ApiClient] = None

    @property
    def api_client(self) -> client.ApiClient:
        # The admin kubeconfig only exists once kubeadm init has run
        if self._api_client is None:
            self._api_client = load_kubeconfig(self.kubeconfig)
        return self._api_client

    @property
    def core(self) -> client.CoreV1Api:
        return client.CoreV1Api(self.api_client)

    def is_responsive(self) -> bool:
        """True if the API server answers a version request."""
        try:
            version = client.VersionApi(self.api_client).get_code(
                _request_timeout=self.request_timeout
            )
        except UNREACHABLE_ERRORS as e:
            logger.debug(f"API not reachable: {e}")
            # Drop the cached client so a later call rereads the kubeconfig
            self._api_client = None
            return False
        logger.debug(f"API server version {version.git_version}")
        return True

    def list_pods(self) -> List[client.V1Pod]:
        return self.core.list_pod_for_all_namespaces(
            _request_timeout=self.request_timeout
        ).items

    def list_pvcs(self) -> List[client.V1PersistentVolumeClaim]:
        return self.core.list_persistent_volume_claim_for_all_namespaces(
            _request_timeout=self.request_timeout
        ).items

    def list_services(self) -> List[client.V1Service]:
        return self.core.list_service_for_all_namespaces(
            _request_timeout=self.request_timeout
        ).items

    def read_pvc(self, name: str, namespace: str) -> client.V1PersistentVolumeClaim:
        return self.core.read_namespaced_persistent_volume_claim(
            name, namespace, _request_timeout=self.request_timeout
        )

    def load_balancer_address(self, name: str, namespace: str) -> Optional[str]:
        """External address assigned to a LoadBalancer service, if any."""
        service = self.core.read_namespaced_service(
            name, namespace, _request_timeout=self.request_timeout
        )
        return service_address(service)


def service_address(service) -> Optional[str]:
    status = service.status.load_balancer if service.status else None
    ingress = (status.ingress if status else None) or []
    for entry in ingress:
        address = entry.ip or entry.hostname
        if address:
            return address
    return None
