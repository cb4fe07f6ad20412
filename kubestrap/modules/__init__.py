"""
Bootstrap stages for a single-node kubeadm cluster.
"""
from .addons import ClusterConfigurator
from .bootstrap import BootstrapDecisionEngine
from .credentials import CredentialExporter
from .health import HealthVerifier
from .host import HostPreparer, check_environment
from .operations import HostOperations, ShellOperations
from .state import ClusterStateInspector, classify_state

__all__ = [
    'ClusterConfigurator',
    'BootstrapDecisionEngine',
    'CredentialExporter',
    'HealthVerifier',
    'HostPreparer',
    'check_environment',
    'HostOperations',
    'ShellOperations',
    'ClusterStateInspector',
    'classify_state',
]
