import fnmatch
import subprocess
from types import SimpleNamespace

import pytest

from kubestrap.exceptions import OperationFailure
from kubestrap.modules.operations import HostOperations


class FakeOperations(HostOperations):
    """In-memory host: records every mutating step instead of running it."""

    def __init__(self, binaries=(), paths=(), responses=None, failing=(), confirm=True):
        self.binaries = set(binaries)
        self.paths = set(paths)
        self.responses = dict(responses or {})
        self.failing = set(failing)
        self.confirm_answer = confirm
        self.applied = []
        self.queries = []
        self.removed = []
        self.prompts = []

    def which(self, binary):
        return f"/usr/bin/{binary}" if binary in self.binaries else None

    def exists(self, path):
        return str(path) in self.paths

    def glob(self, pattern):
        return sorted(p for p in self.paths if fnmatch.fnmatch(p, pattern))

    def remove_tree(self, path):
        self.removed.append(str(path))
        self.paths = {p for p in self.paths if p != str(path) and not p.startswith(f"{path}/")}

    def query(self, cmd):
        key = ' '.join(cmd)
        self.queries.append(key)
        for prefix, (returncode, stdout) in self.responses.items():
            if key.startswith(prefix):
                return subprocess.CompletedProcess(cmd, returncode, stdout, "")
        return subprocess.CompletedProcess(cmd, 1, "", "not found")

    def apply(self, step, cmd, input=None):
        self.applied.append((step, list(cmd), input))
        if step in self.failing:
            raise OperationFailure(step, "simulated failure")

    def confirm(self, prompt):
        self.prompts.append(prompt)
        return self.confirm_answer

    @property
    def steps(self):
        return [step for step, _, _ in self.applied]


def make_pod(name, phase, namespace="default"):
    return SimpleNamespace(
        metadata=SimpleNamespace(name=name, namespace=namespace),
        status=SimpleNamespace(phase=phase),
    )


def make_pvc(name, phase, volume_name=None, namespace="default"):
    return SimpleNamespace(
        metadata=SimpleNamespace(name=name, namespace=namespace),
        spec=SimpleNamespace(volume_name=volume_name),
        status=SimpleNamespace(phase=phase),
    )


def make_service(name, service_type="ClusterIP", address=None, namespace="default"):
    ingress = [SimpleNamespace(ip=address, hostname=None)] if address else None
    return SimpleNamespace(
        metadata=SimpleNamespace(name=name, namespace=namespace),
        spec=SimpleNamespace(type=service_type),
        status=SimpleNamespace(load_balancer=SimpleNamespace(ingress=ingress)),
    )


class FakeCluster:
    """Stand-in for ClusterClient returning canned API objects."""

    def __init__(self, responsive=True, pods=None, pvcs=None, services=None, lb_address="192.0.2.10"):
        self.responsive = responsive
        self.pods = pods if pods is not None else [make_pod("coredns", "Running", "kube-system")]
        self.pvcs = pvcs if pvcs is not None else [make_pvc("kubestrap-test-pvc", "Bound", "pvc-1234")]
        self.services = services if services is not None else [
            make_service("ingress-nginx-controller", "LoadBalancer", lb_address, "ingress-nginx")
        ]
        self.lb_address = lb_address
        self.calls = []

    def is_responsive(self):
        self.calls.append("is_responsive")
        return self.responsive

    def list_pods(self):
        self.calls.append("list_pods")
        return self.pods

    def list_pvcs(self):
        self.calls.append("list_pvcs")
        return self.pvcs

    def list_services(self):
        self.calls.append("list_services")
        return self.services

    def read_pvc(self, name, namespace):
        self.calls.append("read_pvc")
        return next(p for p in self.pvcs if p.metadata.name == name)

    def load_balancer_address(self, name, namespace):
        self.calls.append("load_balancer_address")
        return self.lb_address


@pytest.fixture
def fake_ops():
    return FakeOperations()


@pytest.fixture
def fake_cluster():
    return FakeCluster()
