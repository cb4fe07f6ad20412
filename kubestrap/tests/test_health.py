from unittest.mock import patch

import pytest
import requests
import yaml

from kubestrap.exceptions import VerificationTimeout
from kubestrap.modules.health import (
    TEST_FILE, TEST_PVC, HealthVerifier, storage_workload_manifest,
)
from kubestrap.tests.conftest import (
    FakeCluster, FakeOperations, make_pod, make_pvc, make_service,
)
from kubestrap.utils import RetryError, retry_until

HOSTPATH_DIR = "/var/kubernetes"
VOLUME_DIR = f"{HOSTPATH_DIR}/pvc-1234"


class Counter:
    """Predicate that fails until a given attempt."""

    def __init__(self, succeed_on=None):
        self.succeed_on = succeed_on
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self.succeed_on is not None and self.calls >= self.succeed_on


@pytest.mark.parametrize("k", [1, 2, 17, 60])
def test_retry_succeeds_after_exactly_k_evaluations(k):
    sleeps = []
    predicate = Counter(succeed_on=k)
    assert retry_until(predicate, attempts=60, delay=2, sleep=sleeps.append) == k
    assert predicate.calls == k
    assert sleeps == [2] * (k - 1)


def test_retry_exhaustion():
    sleeps = []
    predicate = Counter()
    with pytest.raises(RetryError) as excinfo:
        retry_until(predicate, attempts=60, delay=2, sleep=sleeps.append)
    assert predicate.calls == 60
    assert len(sleeps) == 59
    assert excinfo.value.attempts == 60


def test_retry_treats_exceptions_as_failed_attempts():
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise ConnectionError("refused")
        return True

    assert retry_until(flaky, attempts=5, delay=0, sleep=lambda _: None) == 3


def test_retry_keeps_last_error():
    def broken():
        raise ConnectionError("refused")

    with pytest.raises(RetryError, match="refused"):
        retry_until(broken, attempts=3, delay=0, sleep=lambda _: None)


def make_verifier(cluster=None, ops=None, sleeps=None):
    if ops is None:
        ops = FakeOperations(paths=[f"{VOLUME_DIR}/{TEST_FILE}", VOLUME_DIR])
    verifier = HealthVerifier(
        cluster or FakeCluster(), ops,
        attempts=60, delay=2,
        sleep=(sleeps.append if sleeps is not None else (lambda _: None)),
        hostpath_dir=HOSTPATH_DIR,
    )
    return verifier, ops


def test_run_check_timeout_names_subject():
    sleeps = []
    verifier, _ = make_verifier(sleeps=sleeps)
    predicate = Counter()
    with pytest.raises(VerificationTimeout) as excinfo:
        verifier.run_check(verifier.check("All PVCs", "Bound", predicate))
    assert excinfo.value.subject == "All PVCs"
    assert excinfo.value.adjective == "Bound"
    assert predicate.calls == 60
    assert len(sleeps) == 59


class RemovingOps(FakeOperations):
    """Deleting the test workload makes the provisioner drop its volume directory."""

    def apply(self, step, cmd, input=None):
        super().apply(step, cmd, input)
        if step == "remove storage test workload":
            self.paths = {p for p in self.paths if not p.startswith(VOLUME_DIR)}


def test_full_verification_passes():
    ops = RemovingOps(paths=[f"{VOLUME_DIR}/{TEST_FILE}", VOLUME_DIR])
    verifier, _ = make_verifier(ops=ops)
    with patch("kubestrap.modules.health.requests.get") as get:
        verifier.verify()
    get.assert_called_once()
    assert get.call_args[0][0] == "http://192.0.2.10/"
    assert ops.steps == ["deploy storage test workload", "remove storage test workload"]
    assert verifier.passed == [
        "Kubernetes API Responsive",
        "All pods Running",
        "All PVCs Bound",
        "All services Assigned external addresses",
        "Ingress controller Reachable",
        "Test volume data Present on host",
        "Test volume data Removed from host",
    ]


def test_unbound_claims_halt_verification():
    sleeps = []
    cluster = FakeCluster(pvcs=[make_pvc(TEST_PVC, "Pending")])
    verifier, ops = make_verifier(cluster=cluster, sleeps=sleeps)
    with patch("kubestrap.modules.health.requests.get") as get:
        with pytest.raises(VerificationTimeout) as excinfo:
            verifier.verify()
    assert (excinfo.value.subject, excinfo.value.adjective) == ("All PVCs", "Bound")
    assert cluster.calls.count("list_pvcs") == 60
    assert len(sleeps) == 59
    # checks after the failing one never ran
    assert "list_services" not in cluster.calls
    get.assert_not_called()
    assert "remove storage test workload" not in ops.steps


def test_pods_running_accepts_completed_pods():
    cluster = FakeCluster(pods=[make_pod("api", "Running"), make_pod("job", "Succeeded")])
    verifier, _ = make_verifier(cluster=cluster)
    assert verifier.pods_running() is True


def test_pods_running_rejects_pending_and_empty():
    verifier, _ = make_verifier(cluster=FakeCluster(pods=[make_pod("api", "Running"), make_pod("db", "Pending")]))
    assert verifier.pods_running() is False
    verifier, _ = make_verifier(cluster=FakeCluster(pods=[]))
    assert verifier.pods_running() is False


def test_services_exposed_only_checks_load_balancers():
    cluster = FakeCluster(services=[
        make_service("kubernetes", "ClusterIP"),
        make_service("ingress-nginx-controller", "LoadBalancer", "192.0.2.10", "ingress-nginx"),
    ])
    verifier, _ = make_verifier(cluster=cluster)
    assert verifier.services_exposed() is True

    cluster.services.append(make_service("web", "LoadBalancer"))
    assert verifier.services_exposed() is False


def test_ingress_unreachable():
    verifier, _ = make_verifier()
    with patch("kubestrap.modules.health.requests.get", side_effect=requests.ConnectionError("refused")):
        assert verifier.ingress_reachable() is False


def test_ingress_without_address():
    verifier, _ = make_verifier(cluster=FakeCluster(lb_address=None))
    with patch("kubestrap.modules.health.requests.get") as get:
        assert verifier.ingress_reachable() is False
    get.assert_not_called()


def test_test_data_waits_for_volume_binding():
    cluster = FakeCluster(pvcs=[make_pvc(TEST_PVC, "Pending")])
    verifier, _ = make_verifier(cluster=cluster)
    assert verifier.test_data_present() is False

    cluster.pvcs = [make_pvc(TEST_PVC, "Bound", "pvc-1234")]
    assert verifier.test_data_present() is True


def test_storage_workload_manifest():
    docs = list(yaml.safe_load_all(storage_workload_manifest()))
    assert [d["kind"] for d in docs] == ["PersistentVolumeClaim", "Pod"]
    pod = docs[1]
    assert pod["spec"]["volumes"][0]["persistentVolumeClaim"]["claimName"] == TEST_PVC
    assert TEST_FILE in pod["spec"]["containers"][0]["command"][-1]


def test_ingress_reachable_over_ipv6():
    verifier, _ = make_verifier(cluster=FakeCluster(lb_address="2001:db8::10"))
    with patch("kubestrap.modules.health.requests.get") as get:
        assert verifier.ingress_reachable() is True
    assert get.call_args[0][0] == "http://[2001:db8::10]/"
