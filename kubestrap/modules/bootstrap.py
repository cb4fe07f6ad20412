"""Control plane bring-up: skip, reset or initialize depending on current state."""
import logging
import os
from typing import List, Optional

from ..config import Config
from ..exceptions import OperationFailure
from ..models import BootstrapAction, BootstrapConfig, ClusterState
from .host import HostPreparer
from .operations import HostOperations
from .state import ClusterStateInspector

logger = logging.getLogger("kubestrap.bootstrap")

TRANSITIONS = {
    ClusterState.RUNNING: BootstrapAction.SKIP,
    ClusterState.INSTALLED_NOT_RUNNING: BootstrapAction.RESET,
    ClusterState.ABSENT: BootstrapAction.INITIALIZE,
}


class BootstrapDecisionEngine:
    """Drives the control plane to RUNNING from whatever state a prior run left."""

    def __init__(
        self,
        config: BootstrapConfig,
        ops: HostOperations,
        inspector: ClusterStateInspector,
        preparer: HostPreparer,
        kubeadm_config_file: Optional[str] = None,
        hostpath_dir: Optional[str] = None,
    ):
        self.config = config
        self.ops = ops
        self.inspector = inspector
        self.preparer = preparer
        self.kubeadm_config_file = kubeadm_config_file or Config.KUBEADM_CONFIG_FILE
        self.hostpath_dir = hostpath_dir or Config.HOSTPATH_DIR

    @staticmethod
    def decide(state: ClusterState) -> BootstrapAction:
        return TRANSITIONS[state]

    def run(self) -> ClusterState:
        """Inspect and act until the control plane is running.

        Returns:
            ClusterState: The state observed before any action was taken
        """
        initial = state = self.inspector.inspect()
        action = self.decide(state)

        if action == BootstrapAction.SKIP:
            logger.info("✅ Control plane already running, skipping initialization")
            return initial

        if action == BootstrapAction.RESET:
            self.reset()
            state = self.inspector.inspect()
            if state != ClusterState.ABSENT:
                raise OperationFailure("reset cluster", f"cluster still {state.value} after reset")

        self.initialize()
        return initial

    def reset(self) -> None:
        """Tear down a broken installation and its stale volume directories."""
        if self.config.force:
            logger.warning("⚠️  Found an installed but unresponsive control plane, resetting (--force)")
        else:
            prompt = "⚠️  Found an installed but unresponsive control plane. Reset it with kubeadm reset?"
            if not self.ops.confirm(prompt):
                raise OperationFailure("reset cluster", "declined by user")

        self.ops.apply("reset cluster", ['kubeadm', 'reset', '--force'])

        for path in self.ops.glob(os.path.join(self.hostpath_dir, 'pvc-*')):
            self.ops.remove_tree(path)

    def init_command(self) -> List[str]:
        if self.ops.exists(self.kubeadm_config_file):
            superseded = [f"--pod-network-cidr={self.config.pod_network_cidr}"]
            if self.config.remote_access:
                superseded.append(f"--apiserver-cert-extra-sans={','.join(self.config.extra_access_names)}")
            logger.warning(
                f"⚠️  Using {self.kubeadm_config_file}; it overrides these options: {' '.join(superseded)}"
            )
            return ['kubeadm', 'init', '--config', self.kubeadm_config_file]

        cmd = ['kubeadm', 'init', '--pod-network-cidr', self.config.pod_network_cidr]
        if self.config.remote_access:
            cmd += ['--apiserver-cert-extra-sans', self.config.primary_access_name]
        return cmd

    def initialize(self) -> None:
        self.preparer.install_control_plane()
        logger.info("🚀 Initializing control plane...")
        self.ops.apply("initialize control plane", self.init_command())
        logger.info("✅ Control plane initialized")
