"""Data models for kubestrap."""

import ipaddress
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

from .config import Config
from .exceptions import ConfigError


class NetworkPlugin(str, Enum):
    """Overlay network plugins kubestrap can install."""
    CALICO = 'calico'
    FLANNEL = 'flannel'


class ClusterState(str, Enum):
    """State of the local control plane, recomputed on every run."""
    ABSENT = 'absent'
    INSTALLED_NOT_RUNNING = 'installed_not_running'
    RUNNING = 'running'


class BootstrapAction(str, Enum):
    """Transition chosen by the decision engine for a cluster state."""
    SKIP = 'skip'
    RESET = 'reset'
    INITIALIZE = 'initialize'


def _is_ip_address(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


@dataclass(frozen=True)
class BootstrapConfig:
    """Validated, immutable bootstrap options."""
    local_only: bool = False
    extra_access_names: Tuple[str, ...] = ()
    pod_network_cidr: str = Config.DEFAULT_POD_NETWORK_CIDR
    network_plugin: NetworkPlugin = NetworkPlugin.CALICO
    force: bool = False
    dotfiles: bool = False

    def __post_init__(self):
        if self.local_only == bool(self.extra_access_names):
            raise ConfigError(
                "Exactly one of --local-only or --apiserver-cert-extra-sans must be given"
            )

    @property
    def remote_access(self) -> bool:
        return bool(self.extra_access_names)

    @property
    def primary_access_name(self) -> Optional[str]:
        return self.extra_access_names[0] if self.extra_access_names else None

    @property
    def access_domain(self) -> Optional[str]:
        """Domain suffix of the first access name.

        ``api.example.com`` gives ``example.com``. IP addresses and single
        label names are returned unchanged.
        """
        name = self.primary_access_name
        if name is None:
            return None
        if _is_ip_address(name) or '.' not in name:
            return name
        return name.split('.', 1)[1]

    @classmethod
    def from_options(
        cls,
        local_only: bool = False,
        apiserver_cert_extra_sans: Optional[str] = None,
        pod_network_cidr: Optional[str] = None,
        cni: Optional[str] = None,
        force: Optional[bool] = None,
        dotfiles: bool = False,
    ) -> 'BootstrapConfig':
        """Build a config from raw CLI values, applying defaults to unset fields only.

        Raises:
            ConfigError: If the access mode is ambiguous or a value is invalid
        """
        names: Tuple[str, ...] = ()
        if apiserver_cert_extra_sans is not None:
            names = tuple(n.strip() for n in apiserver_cert_extra_sans.split(',') if n.strip())
            if not names:
                raise ConfigError("--apiserver-cert-extra-sans requires at least one name")

        if pod_network_cidr is None:
            pod_network_cidr = Config.DEFAULT_POD_NETWORK_CIDR
        try:
            ipaddress.ip_network(pod_network_cidr)
        except ValueError as e:
            raise ConfigError(f"Invalid --pod-network-cidr '{pod_network_cidr}': {e}") from e

        if cni is None:
            cni = Config.DEFAULT_CNI
        try:
            plugin = NetworkPlugin(cni.lower())
        except ValueError:
            choices = ', '.join(p.value for p in NetworkPlugin)
            raise ConfigError(f"Invalid --cni '{cni}' (choose from: {choices})")

        return cls(
            local_only=local_only,
            extra_access_names=names,
            pod_network_cidr=pod_network_cidr,
            network_plugin=plugin,
            force=bool(force),
            dotfiles=dotfiles,
        )

    def describe(self) -> Dict[str, Any]:
        """Effective configuration as a flat mapping for display."""
        return {
            'mode': 'local-only' if self.local_only else 'remote',
            'apiserver-cert-extra-sans': ','.join(self.extra_access_names) or '-',
            'pod-network-cidr': self.pod_network_cidr,
            'cni': self.network_plugin.value,
            'force': self.force,
            'dotfiles': self.dotfiles,
        }


@dataclass
class RetryCheck:
    """A named predicate polled until it holds or its attempt budget runs out."""
    subject: str
    adjective: str
    predicate: Callable[[], bool]
    attempts: int = Config.RETRY_ATTEMPTS
    delay: float = Config.RETRY_DELAY

    @property
    def description(self) -> str:
        return f"{self.subject} {self.adjective}"


@dataclass(frozen=True)
class InvokingUser:
    """The non-root user that ran kubestrap through sudo."""
    name: str
    uid: int
    gid: int
    home: Path


@dataclass
class CredentialBundle:
    """Kubeconfig files written for the invoking user."""
    local_config: Path
    remote_config: Optional[Path] = None


@dataclass
class HelmChart:
    """A Helm release installed by the cluster configurator."""
    release: str
    repo_name: str
    repo_url: str
    chart: str
    namespace: str
    values: Dict[str, str] = field(default_factory=dict)

    @property
    def reference(self) -> str:
        return f"{self.repo_name}/{self.chart}"
