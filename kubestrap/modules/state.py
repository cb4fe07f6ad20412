"""Classification of the local control plane into a ClusterState."""
import logging
import os
from typing import Optional

from ..config import Config
from ..models import ClusterState
from ..utils.kube import ClusterClient
from .operations import HostOperations

logger = logging.getLogger("kubestrap.state")

CONTROL_PLANE_CLI = 'kubeadm'


def classify_state(cli_installed: bool, api_responsive: bool, certificates_present: bool) -> ClusterState:
    """Map the three host probes onto a cluster state.

    The API is consulted before the filesystem so that a cluster which is
    merely slow is never treated as broken. An installed CLI without
    certificates has nothing to reset.
    """
    if not cli_installed:
        return ClusterState.ABSENT
    if api_responsive:
        return ClusterState.RUNNING
    if certificates_present:
        return ClusterState.INSTALLED_NOT_RUNNING
    return ClusterState.ABSENT


class ClusterStateInspector:
    """Probes the host in classification order, stopping as soon as the state is known."""

    def __init__(self, ops: HostOperations, cluster: ClusterClient, pki_dir: Optional[str] = None):
        self.ops = ops
        self.cluster = cluster
        self.pki_dir = pki_dir or Config.PKI_DIR

    def cli_installed(self) -> bool:
        return self.ops.which(CONTROL_PLANE_CLI) is not None

    def api_responsive(self) -> bool:
        return self.cluster.is_responsive()

    def certificates_present(self) -> bool:
        return self.ops.exists(os.path.join(self.pki_dir, 'ca.crt'))

    def inspect(self) -> ClusterState:
        installed = self.cli_installed()
        responsive = installed and self.api_responsive()
        certificates = installed and not responsive and self.certificates_present()
        state = classify_state(installed, responsive, certificates)
        logger.info(
            f"🔍 Cluster state: {state.value} "
            f"(cli={installed}, api={responsive}, certificates={certificates})"
        )
        return state
