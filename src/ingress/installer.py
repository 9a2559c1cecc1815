from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Callable, List, Optional

from src.cluster.client import ClusterClient
from src.common.config import IngressSettings
from src.common.errors import ClusterCommandError, ReadinessTimeout
from src.orchestrator.models import ConditionKind, ResourceSpec, RetryPolicy
from src.orchestrator.readiness import ReadinessWaiter
from src.orchestrator.retry import RetryController, RetryOutcome

logger = logging.getLogger(__name__)

WEBHOOK_KINDS = ("validatingwebhookconfiguration", "mutatingwebhookconfiguration")


class IngressState(str, Enum):
    UNINSTALLED = "uninstalled"
    INSTALLING = "installing"
    CONTROLLER_READY = "controller-ready"
    WEBHOOK_SETTLING = "webhook-settling"
    READY = "ready"


class IngressInstaller:
    """Idempotent bootstrap of the NGINX ingress controller and its admission webhook.

    ``bootstrap`` walks UNINSTALLED -> INSTALLING -> CONTROLLER_READY ->
    WEBHOOK_SETTLING -> READY. A controller that is already running skips the
    install and the settle delay. An unhealthy controller sends the installer
    back to UNINSTALLED; admission webhook registrations still present at
    that point are orphans and are removed before the controller is installed.
    """

    def __init__(
        self,
        client: ClusterClient,
        waiter: ReadinessWaiter,
        settings: Optional[IngressSettings] = None,
        *,
        retry_controller: Optional[RetryController] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.waiter = waiter
        self.settings = settings or IngressSettings()
        self.retry_controller = retry_controller or RetryController(sleep=sleep)
        self._sleep = sleep
        self.state = IngressState.UNINSTALLED
        self.history: List[IngressState] = [IngressState.UNINSTALLED]
        self.events: List[str] = []

    @property
    def controller(self) -> ResourceSpec:
        return ResourceSpec(
            kind="Deployment",
            name="ingress-nginx-controller",
            namespace=self.settings.namespace,
            source=self.settings.controller_manifest,
            selector=self.settings.controller_selector,
        )

    def running_controllers(self) -> int:
        try:
            if not self.client.exists("namespace", self.settings.namespace):
                logger.warning("NGINX Ingress Controller is not installed")
                return 0
            pods = self.client.list_pods(self.settings.namespace, self.settings.controller_selector)
        except ClusterCommandError as exc:
            logger.warning("Could not probe ingress controller health: %s", exc)
            return 0
        running = sum(1 for pod in pods if pod.running)
        if running == 0:
            logger.warning("NGINX Ingress Controller namespace exists but no running pods found")
        return running

    def is_healthy(self) -> bool:
        return self.running_controllers() > 0

    def orphaned_webhooks(self) -> List[str]:
        found: List[str] = []
        for kind in WEBHOOK_KINDS:
            try:
                if self.client.exists(kind, self.settings.webhook_name):
                    found.append(f"{kind}/{self.settings.webhook_name}")
            except ClusterCommandError as exc:
                logger.warning("Could not look up %s, treating it as present: %s", kind, exc)
                found.append(f"{kind}/{self.settings.webhook_name}")
        return found

    def cleanup_webhooks(self) -> None:
        logger.info("Cleaning up orphaned webhook configurations...")
        self.events.append("webhook-cleanup")
        for kind in WEBHOOK_KINDS:
            try:
                self.client.delete(kind, self.settings.webhook_name)
            except ClusterCommandError as exc:
                logger.warning("Could not delete %s/%s: %s", kind, self.settings.webhook_name, exc)

    def bootstrap(self) -> IngressState:
        """Bring the controller to READY; raises ApplyError or ReadinessTimeout when it cannot."""

        logger.info("Checking NGINX Ingress Controller status...")
        fresh_install = False
        if self.is_healthy():
            logger.info("NGINX Ingress Controller is running")
            self._transition(IngressState.CONTROLLER_READY)
        else:
            self._transition(IngressState.UNINSTALLED)
            orphans = self.orphaned_webhooks()
            if orphans:
                logger.warning("Orphaned webhook registrations detected: %s", ", ".join(orphans))
                self.cleanup_webhooks()
            self._install()
            fresh_install = True

        self._transition(IngressState.WEBHOOK_SETTLING)
        if fresh_install and self.settings.settle_seconds > 0:
            logger.info("Waiting %gs for admission webhook to be ready...", self.settings.settle_seconds)
            self._sleep(self.settings.settle_seconds)
        self._verify_admission_service()
        self._transition(IngressState.READY)
        return self.state

    def recover(self) -> None:
        """Recovery action run between ingress apply attempts."""

        if self.is_healthy():
            return
        logger.info("Reinstalling NGINX Ingress Controller...")
        self.bootstrap()

    def apply_ingress(self, resource: ResourceSpec, policy: Optional[RetryPolicy] = None) -> RetryOutcome:
        if self.state != IngressState.READY:
            self.bootstrap()
        if policy is None:
            policy = RetryPolicy(
                max_attempts=self.settings.max_attempts,
                delay_seconds=self.settings.retry_delay_seconds,
                recovery_action=self.recover,
            )

        def apply_once() -> str:
            self.events.append("ingress-apply")
            return self.client.apply(resource)

        return self.retry_controller.retry(apply_once, policy, description=f"apply {resource.ref}")

    def _install(self) -> None:
        logger.info("Installing NGINX Ingress Controller...")
        self.events.append("controller-install")
        self.client.apply(self.controller)
        self._transition(IngressState.INSTALLING)
        result = self.waiter.wait(
            self.controller, ConditionKind.PODS_READY_BY_LABEL, self.settings.ready_timeout_seconds
        )
        if not result.ready:
            raise ReadinessTimeout(
                f"ingress controller ({self.settings.controller_selector})",
                ConditionKind.PODS_READY_BY_LABEL.value,
                self.settings.ready_timeout_seconds,
            )
        self._transition(IngressState.CONTROLLER_READY)

    def _verify_admission_service(self) -> None:
        try:
            present = self.client.exists("service", self.settings.admission_service, self.settings.namespace)
        except ClusterCommandError as exc:
            logger.warning("Could not verify admission webhook service: %s", exc)
            return
        if present:
            logger.info("NGINX Ingress Controller and admission webhook are ready")
        else:
            logger.warning("Admission webhook service not found, but controller is running")

    def _transition(self, state: IngressState) -> None:
        if state == self.state:
            return
        logger.debug("Ingress installer: %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)


__all__ = ["IngressInstaller", "IngressState"]
