from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Optional

import typer

from src.cleanup.cleanup import ClusterCleaner
from src.cluster.client import ClusterClient
from src.cluster.kubectl import KubectlClient
from src.cluster.simulated import SimulatedClusterClient, SimulatedObject, parse_selector
from src.common.config import DEFAULT_CONFIG_PATH, DeployConfig, load_config
from src.common.errors import ClusterConnectionError, ConfigError, DeploymentError, ValidationError
from src.common.logging_utils import configure_logging
from src.ingress.installer import IngressInstaller
from src.reporter.reporter import build_report, render, render_validation, write_report
from src.validator.validator import Validator

from .models import ResourceSpec
from .orchestrator import Orchestrator
from .plan import resolve_stages
from .readiness import ReadinessWaiter

logger = logging.getLogger(__name__)

app = typer.Typer(help="Deploy, validate and tear down the application stack on Kubernetes.")

INTERRUPTED_EXIT_CODE = 130

CONFIG_OPTION = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Deployment configuration file.")
MANIFESTS_OPTION = typer.Option(
    None, "--manifests", "-m", help="Directory holding the manifests (overrides manifest_dir)."
)
KUBECTL_OPTION = typer.Option(None, "--kubectl", help="kubectl binary to invoke.")
CONTEXT_OPTION = typer.Option(None, "--context", help="kubectl context to target.")
SIMULATE_OPTION = typer.Option(False, "--simulate", help="Run against an in-memory simulated cluster.")
VERBOSE_OPTION = typer.Option(False, "--verbose", "-v", help="Enable debug logging.")


@app.command()
def deploy(
    config: Path = CONFIG_OPTION,
    manifests: Optional[Path] = MANIFESTS_OPTION,
    kubectl: Optional[str] = KUBECTL_OPTION,
    context: Optional[str] = CONTEXT_OPTION,
    simulate: bool = SIMULATE_OPTION,
    verbose: bool = VERBOSE_OPTION,
    skip_validation: bool = typer.Option(
        False, "--skip-validation", help="Do not run the configuration validator before deploying."
    ),
    report_out: Optional[Path] = typer.Option(
        None, "--report-out", help="Optional path to write the deployment report as JSON."
    ),
) -> None:
    """Validate configuration, then apply every stage in order."""

    configure_logging(verbose)
    settings = _load_settings(config, manifests, kubectl, context)
    try:
        stages = resolve_stages(settings)
    except ConfigError as exc:
        raise typer.BadParameter(str(exc)) from exc
    client = _build_client(settings, simulate)
    _preflight(client)

    if skip_validation:
        logger.warning("Skipping configuration validation")
    else:
        report = Validator.from_settings(settings.validation).validate_directory(
            settings.manifest_dir, settings.validation.sources
        )
        render_validation(report)
        if not report.passed:
            typer.echo(f"Deployment aborted: {ValidationError(report)}", err=True)
            raise typer.Exit(code=1)

    waiter = ReadinessWaiter(client, poll_interval=settings.poll_interval_seconds)
    installer = IngressInstaller(client, waiter, settings.ingress)
    orchestrator = Orchestrator(client, waiter, ingress_installer=installer)
    try:
        result = orchestrator.run(stages)
        if not result.aborted:
            orchestrator.verify(settings.app_namespace)
    except KeyboardInterrupt:
        _interrupted()

    deployment_report = build_report(result)
    render(deployment_report)
    if report_out is not None:
        write_report(deployment_report, report_out)
        typer.echo(f"Wrote deployment report to {report_out.resolve()}")
    raise typer.Exit(code=deployment_report.exit_code)


@app.command()
def validate(
    config: Path = CONFIG_OPTION,
    manifests: Optional[Path] = MANIFESTS_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Scan configuration for placeholders and weak secrets without touching the cluster."""

    configure_logging(verbose)
    settings = _load_settings(config, manifests, None, None)
    report = Validator.from_settings(settings.validation).validate_directory(
        settings.manifest_dir, settings.validation.sources
    )
    render_validation(report)
    raise typer.Exit(code=0 if report.passed else 1)


@app.command("setup-ingress")
def setup_ingress(
    config: Path = CONFIG_OPTION,
    manifests: Optional[Path] = MANIFESTS_OPTION,
    kubectl: Optional[str] = KUBECTL_OPTION,
    context: Optional[str] = CONTEXT_OPTION,
    simulate: bool = SIMULATE_OPTION,
    verbose: bool = VERBOSE_OPTION,
    ingress_file: str = typer.Option("ingress.yaml", "--ingress-file", help="Ingress manifest to apply."),
    ingress_name: str = typer.Option("myapp-ingress", "--ingress-name", help="Name of the Ingress resource."),
) -> None:
    """Install the NGINX ingress controller if needed, then apply the Ingress with retries."""

    configure_logging(verbose)
    settings = _load_settings(config, manifests, kubectl, context)
    client = _build_client(settings, simulate)
    _preflight(client)

    waiter = ReadinessWaiter(client, poll_interval=settings.poll_interval_seconds)
    installer = IngressInstaller(client, waiter, settings.ingress)
    resource = ResourceSpec(
        kind="Ingress",
        name=ingress_name,
        namespace=settings.app_namespace,
        source=str(settings.manifest_path(ingress_file)),
    )
    try:
        installer.bootstrap()
        outcome = installer.apply_ingress(resource)
    except KeyboardInterrupt:
        _interrupted()
    except DeploymentError as exc:
        typer.echo(f"Ingress controller setup failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    if not outcome.succeeded:
        typer.echo(f"Failed to apply {resource.ref} after {outcome.attempts} attempts", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Ingress {resource.ref} applied; controller state: {installer.state.value}")


@app.command()
def cleanup(
    config: Path = CONFIG_OPTION,
    kubectl: Optional[str] = KUBECTL_OPTION,
    context: Optional[str] = CONTEXT_OPTION,
    simulate: bool = SIMULATE_OPTION,
    verbose: bool = VERBOSE_OPTION,
    include_default: bool = typer.Option(
        False,
        "--include-default",
        help="Also remove custom workloads from the default namespace (keeps the kubernetes service).",
    ),
) -> None:
    """Remove every non-system namespace, orphaned volumes and ingress webhooks."""

    configure_logging(verbose)
    settings = _load_settings(config, None, kubectl, context)
    client = _build_client(settings, simulate)
    # cleanup is best-effort and never fails the process
    _preflight(client, exit_code=0)
    cleaner = ClusterCleaner(client, webhook_name=settings.ingress.webhook_name)
    summary = cleaner.cleanup(include_default=include_default)
    if summary.remaining:
        typer.echo("Remaining resources:")
        typer.echo(summary.remaining.rstrip())
    typer.echo(
        f"Cleanup complete: {len(summary.deleted)} delete(s), {len(summary.failures)} failure(s) "
        f"across {len(summary.namespaces)} namespace(s)"
    )


@app.command("quick-cleanup")
def quick_cleanup(
    config: Path = CONFIG_OPTION,
    kubectl: Optional[str] = KUBECTL_OPTION,
    context: Optional[str] = CONTEXT_OPTION,
    simulate: bool = SIMULATE_OPTION,
    verbose: bool = VERBOSE_OPTION,
    namespace: Optional[str] = typer.Option(
        None, "--namespace", "-n", help="Namespace to remove (defaults to the application namespace)."
    ),
) -> None:
    """Remove a single application namespace and everything in it."""

    configure_logging(verbose)
    settings = _load_settings(config, None, kubectl, context)
    client = _build_client(settings, simulate)
    _preflight(client, exit_code=0)
    target = namespace or settings.app_namespace
    summary = ClusterCleaner(client, webhook_name=settings.ingress.webhook_name).quick_cleanup(target)
    if summary.namespaces:
        typer.echo(f"Removed namespace '{target}' ({len(summary.failures)} failed delete(s))")
    else:
        typer.echo(f"Namespace '{target}' does not exist")


def _load_settings(
    config: Path,
    manifests: Optional[Path],
    kubectl: Optional[str],
    context: Optional[str],
) -> DeployConfig:
    try:
        settings = load_config(config, required=config != DEFAULT_CONFIG_PATH)
    except ConfigError as exc:
        raise typer.BadParameter(str(exc)) from exc
    if manifests is not None:
        if not manifests.is_dir():
            raise typer.BadParameter(f"Manifest directory not found: {manifests}")
        settings.manifest_dir = manifests.expanduser().resolve()
    if kubectl:
        settings.kubectl_cmd = kubectl
    if context:
        settings.context = context
    return settings


def _build_client(settings: DeployConfig, simulate: bool) -> ClusterClient:
    if not simulate:
        return KubectlClient(
            settings.kubectl_cmd,
            context=settings.context,
            request_timeout_seconds=settings.request_timeout_seconds,
        )
    logger.info("Simulation mode: no changes will reach a real cluster")
    ingress = settings.ingress
    client = SimulatedClusterClient()
    client.register_bundle(
        ingress.controller_manifest,
        [
            SimulatedObject("Namespace", ingress.namespace),
            SimulatedObject(
                "Deployment",
                "ingress-nginx-controller",
                ingress.namespace,
                labels=parse_selector(ingress.controller_selector),
            ),
            SimulatedObject("Service", ingress.admission_service, ingress.namespace),
            SimulatedObject("ValidatingWebhookConfiguration", ingress.webhook_name),
        ],
    )
    settings.ingress = replace(ingress, settle_seconds=0.0, retry_delay_seconds=0.0)
    return client


def _preflight(client: ClusterClient, exit_code: int = 1) -> None:
    try:
        context = client.current_context()
    except ClusterConnectionError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=exit_code) from exc
    logger.info("Connected to cluster: %s", context)


def _interrupted() -> None:
    logger.warning("Interrupted; resources applied so far were left in place (no rollback)")
    raise typer.Exit(code=INTERRUPTED_EXIT_CODE)


if __name__ == "__main__":  # pragma: no cover
    app()
