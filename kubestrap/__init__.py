"""
kubestrap - idempotent single-node Kubernetes bootstrap.

Prepares the host, initializes (or resets and re-initializes) a kubeadm
control plane, installs networking, storage and ingress add-ons, verifies the
cluster converged and writes kubeconfigs for the invoking user.
"""

__version__ = "0.1.0"
