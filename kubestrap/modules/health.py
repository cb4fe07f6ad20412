"""Post-configuration health checks.

Each check is polled with :func:`kubestrap.utils.retry_until` and must pass
before the next one starts. The first check to run out of attempts raises
:class:`VerificationTimeout` and ends the run.
"""
import logging
import os
import time
from typing import Callable, List, Optional

import requests
import yaml

from ..config import Config
from ..exceptions import VerificationTimeout
from ..models import RetryCheck
from ..utils import RetryError, retry_until, url_host
from ..utils.kube import ClusterClient, service_address
from .addons import INGRESS_NAMESPACE, INGRESS_SERVICE, STORAGE_CLASS
from .operations import HostOperations

logger = logging.getLogger("kubestrap.health")

TEST_NAMESPACE = 'default'
TEST_PVC = 'kubestrap-test-pvc'
TEST_POD = 'kubestrap-test-pod'
TEST_FILE = 'kubestrap-test'
TEST_CONTENT = 'kubestrap storage check'

HEALTHY_POD_PHASES = ('Running', 'Succeeded')


def storage_workload_manifest() -> str:
    """PVC plus a pod that writes a marker file into it and stays up."""
    docs = [
        {
            'apiVersion': 'v1',
            'kind': 'PersistentVolumeClaim',
            'metadata': {'name': TEST_PVC, 'namespace': TEST_NAMESPACE},
            'spec': {
                'accessModes': ['ReadWriteOnce'],
                'storageClassName': STORAGE_CLASS,
                'resources': {'requests': {'storage': '1Mi'}},
            },
        },
        {
            'apiVersion': 'v1',
            'kind': 'Pod',
            'metadata': {'name': TEST_POD, 'namespace': TEST_NAMESPACE},
            'spec': {
                'containers': [{
                    'name': 'writer',
                    'image': 'busybox:1.36',
                    'command': ['sh', '-c', f"echo '{TEST_CONTENT}' > /data/{TEST_FILE} && sleep 3600"],
                    'volumeMounts': [{'name': 'data', 'mountPath': '/data'}],
                }],
                'volumes': [{'name': 'data', 'persistentVolumeClaim': {'claimName': TEST_PVC}}],
                'terminationGracePeriodSeconds': 0,
            },
        },
    ]
    return yaml.safe_dump_all(docs, default_flow_style=False, sort_keys=False)


class HealthVerifier:
    """Confirms the freshly configured cluster has converged."""

    def __init__(
        self,
        cluster: ClusterClient,
        ops: HostOperations,
        attempts: Optional[int] = None,
        delay: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
        hostpath_dir: Optional[str] = None,
    ):
        self.cluster = cluster
        self.ops = ops
        self.attempts = attempts or Config.RETRY_ATTEMPTS
        self.delay = Config.RETRY_DELAY if delay is None else delay
        self.sleep = sleep
        self.hostpath_dir = hostpath_dir or Config.HOSTPATH_DIR
        self.passed: List[str] = []
        self._volume_dir: Optional[str] = None

    def check(self, subject: str, adjective: str, predicate: Callable[[], bool]) -> RetryCheck:
        return RetryCheck(subject, adjective, predicate, attempts=self.attempts, delay=self.delay)

    def run_check(self, check: RetryCheck) -> int:
        logger.info(f"⏳ Waiting for {check.subject} to be {check.adjective}...")
        try:
            attempt = retry_until(
                check.predicate,
                attempts=check.attempts,
                delay=check.delay,
                sleep=self.sleep,
                description=check.description,
            )
        except RetryError as e:
            last_error = str(e.last_error) if e.last_error else None
            logger.error(f"❌ {check.subject} not {check.adjective} after {e.attempts} attempts")
            raise VerificationTimeout(check.subject, check.adjective, e.attempts, last_error) from e
        logger.info(f"✅ {check.description} (attempt {attempt}/{check.attempts})")
        self.passed.append(check.description)
        return attempt

    def verify(self) -> None:
        self.run_check(self.check("Kubernetes API", "Responsive", self.api_responsive))
        self.deploy_test_workload()

        checks = [
            self.check("All pods", "Running", self.pods_running),
            self.check("All PVCs", "Bound", self.pvcs_bound),
            self.check("All services", "Assigned external addresses", self.services_exposed),
            self.check("Ingress controller", "Reachable", self.ingress_reachable),
            self.check("Test volume data", "Present on host", self.test_data_present),
        ]
        for check in checks:
            self.run_check(check)

        self.remove_test_workload()
        self.run_check(self.check("Test volume data", "Removed from host", self.test_data_removed))
        logger.info(f"🎉 Cluster verified: {len(self.passed)} checks passed")

    def deploy_test_workload(self) -> None:
        self.ops.apply("deploy storage test workload", ['kubectl', 'apply', '-f', '-'],
                       input=storage_workload_manifest())

    def remove_test_workload(self) -> None:
        self.ops.apply(
            "remove storage test workload",
            ['kubectl', 'delete', '--ignore-not-found', '--wait=true', '-f', '-'],
            input=storage_workload_manifest(),
        )

    # Predicates

    def api_responsive(self) -> bool:
        return self.cluster.is_responsive()

    def pods_running(self) -> bool:
        pods = self.cluster.list_pods()
        pending = [
            f"{p.metadata.namespace}/{p.metadata.name}"
            for p in pods if p.status.phase not in HEALTHY_POD_PHASES
        ]
        if pending:
            logger.debug(f"Pods not running: {', '.join(pending)}")
        return bool(pods) and not pending

    def pvcs_bound(self) -> bool:
        pvcs = self.cluster.list_pvcs()
        unbound = [p.metadata.name for p in pvcs if p.status.phase != 'Bound']
        if unbound:
            logger.debug(f"PVCs not bound: {', '.join(unbound)}")
        return not unbound

    def services_exposed(self) -> bool:
        pending = [
            f"{s.metadata.namespace}/{s.metadata.name}"
            for s in self.cluster.list_services()
            if s.spec.type == 'LoadBalancer' and service_address(s) is None
        ]
        if pending:
            logger.debug(f"Services with pending external address: {', '.join(pending)}")
        return not pending

    def ingress_reachable(self) -> bool:
        address = self.cluster.load_balancer_address(INGRESS_SERVICE, INGRESS_NAMESPACE)
        if not address:
            return False
        try:
            # Any HTTP answer, even the default backend's 404, proves reachability
            requests.get(f"http://{url_host(address)}/", timeout=Config.API_TIMEOUT)
        except requests.RequestException as e:
            logger.debug(f"Ingress at {address} not reachable: {e}")
            return False
        return True

    def test_volume_dir(self) -> Optional[str]:
        if self._volume_dir is None:
            pvc = self.cluster.read_pvc(TEST_PVC, TEST_NAMESPACE)
            if pvc.spec.volume_name:
                self._volume_dir = os.path.join(self.hostpath_dir, pvc.spec.volume_name)
        return self._volume_dir

    def test_data_present(self) -> bool:
        volume_dir = self.test_volume_dir()
        return volume_dir is not None and self.ops.exists(os.path.join(volume_dir, TEST_FILE))

    def test_data_removed(self) -> bool:
        return self._volume_dir is None or not self.ops.exists(self._volume_dir)
