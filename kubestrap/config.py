"""Configuration management for the kubestrap application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()

class Config:
    """Application configuration with sensible defaults."""

    # Control plane paths (kubeadm layout)
    ADMIN_KUBECONFIG: str = os.getenv("KUBESTRAP_ADMIN_KUBECONFIG", "/etc/kubernetes/admin.conf")
    PKI_DIR: str = os.getenv("KUBESTRAP_PKI_DIR", "/etc/kubernetes/pki")
    KUBEADM_CONFIG_FILE: str = os.getenv("KUBESTRAP_KUBEADM_CONFIG", "kubeadm-config.yaml")

    # Backing directory of the host-path storage provisioner
    HOSTPATH_DIR: str = os.getenv("KUBESTRAP_HOSTPATH_DIR", "/var/kubernetes")

    # Defaults for unset CLI options
    DEFAULT_POD_NETWORK_CIDR: str = "10.244.0.0/16"
    DEFAULT_CNI: str = "calico"

    # Verification retry budget (attempts x delay seconds per check)
    RETRY_ATTEMPTS: int = int(os.getenv("RETRY_ATTEMPTS", "60"))
    RETRY_DELAY: float = float(os.getenv("RETRY_DELAY", "2"))

    # Timeouts (in seconds)
    API_TIMEOUT: int = int(os.getenv("API_TIMEOUT", "5"))
    HTTP_TIMEOUT: int = int(os.getenv("HTTP_TIMEOUT", "30"))
    HELM_TIMEOUT: str = os.getenv("HELM_TIMEOUT", "300s")

    # Well-known external address used to discover the primary outbound IP
    ROUTE_PROBE_ADDRESS: str = os.getenv("ROUTE_PROBE_ADDRESS", "8.8.8.8")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT: str = os.getenv(
        "LOG_FORMAT",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
