"""Kubeconfig files for the invoking user."""
import logging
import os
import shutil
from pathlib import Path
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlsplit, urlunsplit

import yaml

from ..config import Config
from ..exceptions import OperationFailure
from ..models import BootstrapConfig, CredentialBundle, InvokingUser
from ..utils import url_host

logger = logging.getLogger("kubestrap.credentials")

CLUSTER_NAME = 'kubernetes'
LOCAL_CONFIG = 'config'
REMOTE_CONFIG = 'config-remote'


def _rename(value: str, domain: str) -> str:
    # kubernetes-admin@kubernetes -> kubernetes-admin@example.com
    if value == CLUSTER_NAME:
        return domain
    if value.endswith(f"@{CLUSTER_NAME}"):
        return value[:-len(CLUSTER_NAME)] + domain
    if '@' not in value:
        return f"{value}@{domain}"
    return value


def _rewrite_server(server: str, access_name: str, lb_address: Optional[str]) -> str:
    parts = urlsplit(server)
    if lb_address and parts.hostname != lb_address:
        logger.warning(
            f"⚠️  Server {parts.hostname} does not match the load balancer address {lb_address}; "
            f"pointing remote credentials at {access_name} anyway"
        )
    host = url_host(access_name)
    netloc = f"{host}:{parts.port}" if parts.port else host
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


def remote_kubeconfig(admin: Dict[str, Any], access_name: str, domain: str,
                      lb_address: Optional[str]) -> Dict[str, Any]:
    """Derive a remote-access kubeconfig from the admin kubeconfig.

    Cluster, context and user names are moved from the cluster-local
    ``kubernetes`` identity to ``domain`` so the file merges cleanly with
    other kubeconfigs, and every server URL is pointed at ``access_name``.
    """
    remote = dict(admin)

    remote['clusters'] = []
    for entry in admin.get('clusters') or []:
        cluster = dict(entry.get('cluster') or {})
        if 'server' in cluster:
            cluster['server'] = _rewrite_server(cluster['server'], access_name, lb_address)
        remote['clusters'].append({'name': _rename(entry['name'], domain), 'cluster': cluster})

    remote['users'] = [
        {**entry, 'name': _rename(entry['name'], domain)}
        for entry in admin.get('users') or []
    ]

    remote['contexts'] = []
    for entry in admin.get('contexts') or []:
        context = dict(entry.get('context') or {})
        if 'cluster' in context:
            context['cluster'] = _rename(context['cluster'], domain)
        if 'user' in context:
            context['user'] = _rename(context['user'], domain)
        remote['contexts'].append({'name': _rename(entry['name'], domain), 'context': context})

    if admin.get('current-context'):
        remote['current-context'] = _rename(admin['current-context'], domain)
    return remote


class CredentialExporter:
    """Writes local and (optionally) remote kubeconfigs owned by the invoking user."""

    def __init__(
        self,
        config: BootstrapConfig,
        user: InvokingUser,
        admin_kubeconfig: Optional[str] = None,
        chown: Callable[[str, int, int], None] = os.chown,
    ):
        self.config = config
        self.user = user
        self.admin_kubeconfig = Path(admin_kubeconfig or Config.ADMIN_KUBECONFIG)
        self.chown = chown

    @property
    def kube_dir(self) -> Path:
        return self.user.home / '.kube'

    def export(self, lb_address: Optional[str] = None) -> CredentialBundle:
        if not self.admin_kubeconfig.exists():
            raise OperationFailure("export credentials", f"{self.admin_kubeconfig} not found")

        self.kube_dir.mkdir(mode=0o755, parents=True, exist_ok=True)
        self.chown(str(self.kube_dir), self.user.uid, self.user.gid)

        bundle = CredentialBundle(local_config=self.write_local())
        if self.config.remote_access:
            bundle.remote_config = self.write_remote(lb_address)
        return bundle

    def write_local(self) -> Path:
        target = self.kube_dir / LOCAL_CONFIG
        shutil.copyfile(self.admin_kubeconfig, target)
        self._hand_over(target)
        logger.info(f"🔐 Wrote local kubeconfig to {target}")
        return target

    def write_remote(self, lb_address: Optional[str]) -> Path:
        with open(self.admin_kubeconfig, 'r', encoding='utf-8') as f:
            admin = yaml.safe_load(f) or {}

        remote = remote_kubeconfig(
            admin, self.config.primary_access_name, self.config.access_domain, lb_address
        )
        target = self.kube_dir / REMOTE_CONFIG
        with open(target, 'w', encoding='utf-8') as f:
            yaml.safe_dump(remote, f, default_flow_style=False, sort_keys=False)
        self._hand_over(target)
        logger.info(f"🔐 Wrote remote kubeconfig for {self.config.primary_access_name} to {target}")
        return target

    def _hand_over(self, path: Path) -> None:
        os.chmod(path, 0o600)
        self.chown(str(path), self.user.uid, self.user.gid)
