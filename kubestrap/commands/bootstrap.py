import logging
import time
from contextlib import contextmanager
from typing import Callable, Optional

import typer

from kubestrap.exceptions import ConfigError, KubestrapError
from kubestrap.models import BootstrapConfig, CredentialBundle
from kubestrap.modules.addons import INGRESS_NAMESPACE, INGRESS_SERVICE, ClusterConfigurator
from kubestrap.modules.bootstrap import BootstrapDecisionEngine
from kubestrap.modules.credentials import CredentialExporter
from kubestrap.modules.dotfiles import install_dotfiles
from kubestrap.modules.health import HealthVerifier
from kubestrap.modules.host import HostPreparer, check_environment
from kubestrap.modules.operations import HostOperations, ShellOperations
from kubestrap.modules.state import ClusterStateInspector
from kubestrap.utils.kube import ClusterClient

logger = logging.getLogger("kubestrap.commands.bootstrap")

app = typer.Typer(add_completion=False, rich_markup_mode=None, pretty_exceptions_enable=False)


@contextmanager
def stage(name: str):
    """Tag any fatal error raised inside the block with the stage name."""
    logger.info(f"▶️  {name}")
    try:
        yield
    except KubestrapError as e:
        if e.stage is None:
            e.stage = name
        raise


def run_bootstrap(
    config: BootstrapConfig,
    ops: Optional[HostOperations] = None,
    cluster: Optional[ClusterClient] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> CredentialBundle:
    """Bring the host from any prior state to a verified single-node cluster."""
    ops = ops or ShellOperations()
    cluster = cluster or ClusterClient()

    with stage("Environment check"):
        user = check_environment()

    preparer = HostPreparer(ops)
    with stage("Host preparation"):
        preparer.prepare()

    with stage("Control plane bootstrap"):
        inspector = ClusterStateInspector(ops, cluster)
        BootstrapDecisionEngine(config, ops, inspector, preparer).run()

    with stage("Cluster configuration"):
        ClusterConfigurator(config, ops).configure()

    with stage("Cluster verification"):
        HealthVerifier(cluster, ops, sleep=sleep).verify()

    with stage("Credential export"):
        lb_address = cluster.load_balancer_address(INGRESS_SERVICE, INGRESS_NAMESPACE)
        bundle = CredentialExporter(config, user).export(lb_address)

    if config.dotfiles:
        with stage("Dotfiles"):
            install_dotfiles(user)

    return bundle


@app.command()
def bootstrap(
    ctx: typer.Context,
    local_only: bool = typer.Option(False, "--local-only", help="Only allow access from this host"),
    apiserver_cert_extra_sans: Optional[str] = typer.Option(
        None, "--apiserver-cert-extra-sans",
        help="Comma-separated names for remote API access (first one is used in credentials)",
    ),
    pod_network_cidr: Optional[str] = typer.Option(
        None, "--pod-network-cidr", help="Pod network CIDR [default: 10.244.0.0/16]"
    ),
    cni: Optional[str] = typer.Option(None, "--cni", help="Network plugin: calico or flannel [default: calico]"),
    dotfiles: bool = typer.Option(False, "--dotfiles", help="Add kubectl alias and completion to ~/.bashrc"),
    force: bool = typer.Option(False, "--force", "-f", help="Do not prompt before resetting a broken install"),
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
):
    """
    Bootstrap a single-node Kubernetes cluster on this host.

    Exactly one of --local-only or --apiserver-cert-extra-sans is required.
    Safe to re-run: a running cluster is re-configured and verified, a broken
    one is reset and reinstalled.
    """
    if debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.debug("Debug mode enabled")

    try:
        config = BootstrapConfig.from_options(
            local_only=local_only,
            apiserver_cert_extra_sans=apiserver_cert_extra_sans,
            pod_network_cidr=pod_network_cidr,
            cni=cni,
            force=force,
            dotfiles=dotfiles,
        )
    except ConfigError as e:
        typer.echo(ctx.get_usage(), err=True)
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=e.exit_code)

    typer.echo("⚙️  Effective configuration:")
    for key, value in config.describe().items():
        typer.echo(f"   {key}: {value}")

    try:
        bundle = run_bootstrap(config)
    except KubestrapError as e:
        logger.debug("Bootstrap failed", exc_info=True)
        typer.echo(f"❌ {e.stage or 'Bootstrap'} failed: {e}", err=True)
        raise typer.Exit(code=e.exit_code)
    except Exception as e:
        logger.error(f"Unhandled exception: {e}", exc_info=debug)
        typer.echo(f"❌ Bootstrap failed: {e}", err=True)
        raise typer.Exit(code=1)

    typer.echo("\n✅ Cluster is up and verified.")
    typer.echo(f"🔐 Local kubeconfig: {bundle.local_config}")
    if bundle.remote_config:
        typer.echo(f"🌍 Remote kubeconfig: {bundle.remote_config}")
    return 0
