import logging
import re
from typing import Dict, List, Optional

import requests
import yaml

from ..config import Config
from ..exceptions import OperationFailure
from ..models import BootstrapConfig, HelmChart, NetworkPlugin
from ..utils import primary_ip
from .operations import HostOperations

logger = logging.getLogger("kubestrap.addons")

CONTROL_PLANE_TAINTS = [
    'node-role.kubernetes.io/control-plane',
    'node-role.kubernetes.io/master',
]

NETWORK_MANIFESTS = {
    NetworkPlugin.CALICO: "https://raw.githubusercontent.com/projectcalico/calico/v3.27.3/manifests/calico.yaml",
    NetworkPlugin.FLANNEL: "https://github.com/flannel-io/flannel/releases/latest/download/kube-flannel.yml",
}

# (namespace, daemonset) present once the plugin is installed
NETWORK_DAEMONSETS = {
    NetworkPlugin.CALICO: ('kube-system', 'calico-node'),
    NetworkPlugin.FLANNEL: ('kube-flannel', 'kube-flannel-ds'),
}

HELM_INSTALL_SCRIPT = "https://raw.githubusercontent.com/helm/helm/main/scripts/get-helm-3"

METALLB = HelmChart(
    release='metallb',
    repo_name='metallb',
    repo_url='https://metallb.github.io/metallb',
    chart='metallb',
    namespace='metallb-system',
)
METALLB_POOL = 'kubestrap-pool'

INGRESS_NAMESPACE = 'ingress-nginx'
INGRESS_SERVICE = 'ingress-nginx-controller'
INGRESS_NGINX = HelmChart(
    release='ingress-nginx',
    repo_name='ingress-nginx',
    repo_url='https://kubernetes.github.io/ingress-nginx',
    chart='ingress-nginx',
    namespace=INGRESS_NAMESPACE,
    values={'controller.service.type': 'LoadBalancer'},
)

STORAGE_CLASS = 'hostpath'


def hostpath_provisioner(hostpath_dir: str) -> HelmChart:
    return HelmChart(
        release='hostpath-provisioner',
        repo_name='rimusz',
        repo_url='https://charts.rimusz.net',
        chart='hostpath-provisioner',
        namespace='kube-system',
        values={
            'nodeHostPath': hostpath_dir,
            'storageClass.name': STORAGE_CLASS,
            'storageClass.defaultClass': 'true',
        },
    )


def render_network_manifest(plugin: NetworkPlugin, manifest: str, pod_network_cidr: str) -> str:
    """Template the upstream network manifest with the pod CIDR."""
    if plugin == NetworkPlugin.CALICO:
        # Upstream ships the pool CIDR commented out
        pattern = re.compile(
            r'^(\s*)#\s*- name: CALICO_IPV4POOL_CIDR\n(\s*)#\s*value: "[^"]*"',
            re.MULTILINE,
        )
        rendered, count = pattern.subn(
            lambda m: f'{m.group(1)}- name: CALICO_IPV4POOL_CIDR\n{m.group(2)}  value: "{pod_network_cidr}"',
            manifest,
        )
        if count == 0:
            logger.warning("⚠️  CALICO_IPV4POOL_CIDR not found in manifest, using calico's default pool")
        return rendered

    rendered, count = re.subn(r'"Network": "[^"]*"', f'"Network": "{pod_network_cidr}"', manifest)
    if count == 0:
        logger.warning("⚠️  Network setting not found in flannel manifest")
    return rendered


def fetch_manifest(url: str) -> str:
    logger.debug(f"Downloading {url}")
    try:
        response = requests.get(url, timeout=Config.HTTP_TIMEOUT)
        response.raise_for_status()
    except requests.RequestException as e:
        raise OperationFailure(f"download {url}", str(e)) from e
    return response.text


def metallb_pool_manifest(address: str) -> str:
    docs = [
        {
            'apiVersion': 'metallb.io/v1beta1',
            'kind': 'IPAddressPool',
            'metadata': {'name': METALLB_POOL, 'namespace': METALLB.namespace},
            'spec': {'addresses': [f"{address}/32"]},
        },
        {
            'apiVersion': 'metallb.io/v1beta1',
            'kind': 'L2Advertisement',
            'metadata': {'name': METALLB_POOL, 'namespace': METALLB.namespace},
            'spec': {'ipAddressPools': [METALLB_POOL]},
        },
    ]
    return yaml.safe_dump_all(docs, default_flow_style=False, sort_keys=False)


class ClusterConfigurator:
    """Installs the single-node add-ons, skipping each one that is already present."""

    def __init__(
        self,
        config: BootstrapConfig,
        ops: HostOperations,
        host_ip: Optional[str] = None,
        hostpath_dir: Optional[str] = None,
    ):
        self.config = config
        self.ops = ops
        self._host_ip = host_ip
        self.hostpath_dir = hostpath_dir or Config.HOSTPATH_DIR

    @property
    def host_ip(self) -> str:
        if self._host_ip is None:
            self._host_ip = primary_ip()
            logger.info(f"🌐 Primary host address: {self._host_ip}")
        return self._host_ip

    def configure(self) -> None:
        self.remove_control_plane_taints()
        self.install_network_plugin()
        self.install_helm()
        self.install_load_balancer()
        self.install_helm_chart(hostpath_provisioner(self.hostpath_dir))
        self.install_helm_chart(INGRESS_NGINX)

    def remove_control_plane_taints(self) -> None:
        result = self.ops.query([
            'kubectl', 'get', 'nodes', '-o', 'jsonpath={.items[*].spec.taints[*].key}'
        ])
        present = set(result.stdout.split())
        for taint in CONTROL_PLANE_TAINTS:
            if taint in present:
                self.ops.apply(
                    f"remove taint {taint}",
                    ['kubectl', 'taint', 'nodes', '--all', f"{taint}:NoSchedule-"],
                )
        if not present.intersection(CONTROL_PLANE_TAINTS):
            logger.info("✅ Control plane taints already removed")

    def install_network_plugin(self) -> None:
        plugin = self.config.network_plugin
        namespace, daemonset = NETWORK_DAEMONSETS[plugin]
        if self.resource_exists('daemonset', daemonset, namespace):
            logger.info(f"✅ {plugin.value} already installed")
            return

        logger.info(f"📦 Installing {plugin.value} with pod network {self.config.pod_network_cidr}")
        manifest = render_network_manifest(
            plugin, fetch_manifest(NETWORK_MANIFESTS[plugin]), self.config.pod_network_cidr
        )
        self.ops.apply(f"apply {plugin.value} manifest", ['kubectl', 'apply', '-f', '-'], input=manifest)

    def install_helm(self) -> None:
        if self.ops.which('helm'):
            logger.info("✅ Helm already installed")
            return
        self.ops.apply("install helm", ['sh', '-c', f"curl -fsSL {HELM_INSTALL_SCRIPT} | bash"])

    def install_load_balancer(self) -> None:
        self.install_helm_chart(METALLB)
        if self.resource_exists('ipaddresspool', METALLB_POOL, METALLB.namespace):
            logger.info("✅ MetalLB address pool already configured")
            return
        self.ops.apply(
            f"configure MetalLB pool for {self.host_ip}",
            ['kubectl', 'apply', '-f', '-'],
            input=metallb_pool_manifest(self.host_ip),
        )

    def install_helm_chart(self, chart: HelmChart) -> None:
        status = self.ops.query(['helm', 'status', chart.release, '--namespace', chart.namespace])
        if status.returncode == 0:
            logger.info(f"✅ Helm release '{chart.release}' already installed")
            return

        logger.info(f"🚀 Installing Helm release '{chart.release}' in namespace '{chart.namespace}'")
        self.ops.apply(f"add helm repo {chart.repo_name}", ['helm', 'repo', 'add', chart.repo_name, chart.repo_url])
        self.ops.apply("update helm repos", ['helm', 'repo', 'update'])

        cmd = [
            'helm', 'upgrade', '--install', chart.release, chart.reference,
            '--namespace', chart.namespace, '--create-namespace',
            '--wait', '--timeout', Config.HELM_TIMEOUT,
        ]
        cmd += _set_flags(chart.values)
        self.ops.apply(f"install helm release {chart.release}", cmd)
        logger.info(f"✅ Helm release '{chart.release}' installed successfully.")

    def resource_exists(self, kind: str, name: str, namespace: str) -> bool:
        return self.ops.query(['kubectl', 'get', kind, name, '--namespace', namespace]).returncode == 0


def _set_flags(values: Dict[str, str]) -> List[str]:
    flags = []
    for key, value in values.items():
        flags += ['--set', f"{key}={value}"]
    return flags
