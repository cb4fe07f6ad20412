"""Host baseline: environment checks, swap, kernel settings, container runtime."""
import logging
import os
import platform
import pwd
from pathlib import Path
from typing import List, Mapping

from ..exceptions import HostEnvironmentError
from ..models import InvokingUser
from .operations import HostOperations

logger = logging.getLogger("kubestrap.host")

KERNEL_MODULES = ['overlay', 'br_netfilter']
MODULES_LOAD_FILE = '/etc/modules-load.d/k8s.conf'

SYSCTL_SETTINGS = {
    'net.bridge.bridge-nf-call-iptables': '1',
    'net.bridge.bridge-nf-call-ip6tables': '1',
    'net.ipv4.ip_forward': '1',
}

CONTAINER_RUNTIME_INSTALL: List[List[str]] = [
    ['apt-get', 'update'],
    ['apt-get', 'install', '-y', 'containerd'],
    ['sh', '-c', 'mkdir -p /etc/containerd && containerd config default '
                 '| sed "s/SystemdCgroup = false/SystemdCgroup = true/" > /etc/containerd/config.toml'],
    ['systemctl', 'restart', 'containerd'],
    ['systemctl', 'enable', 'containerd'],
]

KUBERNETES_REPO_VERSION = 'v1.30'

CONTROL_PLANE_INSTALL: List[List[str]] = [
    ['apt-get', 'update'],
    ['apt-get', 'install', '-y', 'apt-transport-https', 'ca-certificates', 'curl', 'gpg'],
    ['sh', '-c', 'mkdir -p /etc/apt/keyrings && curl -fsSL '
                 f'https://pkgs.k8s.io/core:/stable:/{KUBERNETES_REPO_VERSION}/deb/Release.key '
                 '| gpg --dearmor --yes -o /etc/apt/keyrings/kubernetes-apt-keyring.gpg'],
    ['sh', '-c', 'echo "deb [signed-by=/etc/apt/keyrings/kubernetes-apt-keyring.gpg] '
                 f'https://pkgs.k8s.io/core:/stable:/{KUBERNETES_REPO_VERSION}/deb/ /" '
                 '> /etc/apt/sources.list.d/kubernetes.list'],
    ['apt-get', 'update'],
    ['apt-get', 'install', '-y', 'kubelet', 'kubeadm', 'kubectl'],
    ['apt-mark', 'hold', 'kubelet', 'kubeadm', 'kubectl'],
    ['systemctl', 'enable', '--now', 'kubelet'],
]


def check_environment(environ: Mapping[str, str] = None) -> InvokingUser:
    """Verify the host can be bootstrapped and resolve the sudo user.

    Returns:
        InvokingUser: The user artifacts are handed over to

    Raises:
        HostEnvironmentError: On a non-Linux host, without root, or when not run via sudo
    """
    environ = os.environ if environ is None else environ

    if platform.system() != 'Linux':
        raise HostEnvironmentError(f"Unsupported operating system: {platform.system()} (Linux required)")

    if os.geteuid() != 0:
        raise HostEnvironmentError("kubestrap must be run as root (use sudo)")

    sudo_user = environ.get('SUDO_USER')
    if not sudo_user or sudo_user == 'root':
        raise HostEnvironmentError(
            "kubestrap must be run via sudo by a non-root user; generated files are owned by that user"
        )

    try:
        entry = pwd.getpwnam(sudo_user)
    except KeyError:
        raise HostEnvironmentError(f"Invoking user '{sudo_user}' does not exist")

    user = InvokingUser(name=sudo_user, uid=entry.pw_uid, gid=entry.pw_gid, home=Path(entry.pw_dir))
    logger.debug(f"Invoking user: {user}")
    return user


class HostPreparer:
    """Brings the host to the baseline kubeadm needs, skipping what is already done."""

    def __init__(self, ops: HostOperations):
        self.ops = ops

    def prepare(self) -> None:
        self.disable_swap()
        self.configure_kernel()
        self.install_container_runtime()

    def disable_swap(self) -> None:
        result = self.ops.query(['swapon', '--show', '--noheadings'])
        if not result.stdout.strip():
            logger.info("✅ Swap already disabled")
            return
        logger.info("💤 Disabling swap...")
        self.ops.apply("disable swap", ['swapoff', '-a'])
        self.ops.apply(
            "disable swap in /etc/fstab",
            ['sed', '-i', r'/\sswap\s/ s/^\([^#]\)/#\1/', '/etc/fstab'],
        )

    def configure_kernel(self) -> None:
        for module in KERNEL_MODULES:
            if self.ops.exists(f'/sys/module/{module}'):
                continue
            self.ops.apply(f"load kernel module {module}", ['modprobe', module])

        if not self.ops.exists(MODULES_LOAD_FILE):
            self.ops.apply(
                "persist kernel modules",
                ['tee', MODULES_LOAD_FILE],
                input=''.join(f"{m}\n" for m in KERNEL_MODULES),
            )

        pending = {}
        for key, value in SYSCTL_SETTINGS.items():
            current = self.ops.query(['sysctl', '-n', key]).stdout.strip()
            if current != value:
                pending[key] = value
        if not pending:
            logger.info("✅ Kernel networking settings already applied")
            return

        lines = ''.join(f"{k} = {v}\n" for k, v in SYSCTL_SETTINGS.items())
        self.ops.apply("write sysctl settings", ['tee', '/etc/sysctl.d/k8s.conf'], input=lines)
        self.ops.apply("apply sysctl settings", ['sysctl', '--system'])

    def install_container_runtime(self) -> None:
        if self.ops.which('containerd'):
            logger.info("✅ Container runtime already installed")
            return
        logger.info("📦 Installing container runtime...")
        for cmd in CONTAINER_RUNTIME_INSTALL:
            self.ops.apply("install container runtime", cmd)

    def install_control_plane(self) -> None:
        if self.ops.which('kubeadm'):
            logger.info("✅ Control plane packages already installed")
            return
        logger.info("📦 Installing kubeadm, kubelet and kubectl...")
        for cmd in CONTROL_PLANE_INSTALL:
            self.ops.apply("install control plane packages", cmd)
