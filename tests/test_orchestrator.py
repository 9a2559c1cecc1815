import json
import tempfile
import unittest
from pathlib import Path

from src.cluster.simulated import SimulatedClusterClient
from src.orchestrator.models import (
    ConditionKind,
    DeploymentStage,
    OutcomeStatus,
    ResourceSpec,
    StageEntry,
    WaitPolicy,
)
from src.orchestrator.orchestrator import Orchestrator
from src.orchestrator.readiness import ReadinessWaiter
from src.reporter.reporter import Verdict, build_report, write_report


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += seconds


def _entry(kind, name, namespace=None, condition=ConditionKind.NONE, critical=True, timeout=30):
    resource = ResourceSpec(kind, name, namespace, f"{name}.yaml")
    return StageEntry(resource, WaitPolicy(condition, timeout), critical)


def _scenario(service_b_critical: bool = False):
    return [
        DeploymentStage("Namespace", (_entry("Namespace", "myapp"),)),
        DeploymentStage(
            "Datastore",
            (_entry("StatefulSet", "postgres", "myapp", ConditionKind.PODS_READY_BY_LABEL),),
        ),
        DeploymentStage(
            "Services",
            (
                _entry("Deployment", "service-a", "myapp", ConditionKind.DEPLOYMENT_AVAILABLE),
                _entry(
                    "Deployment",
                    "service-b",
                    "myapp",
                    ConditionKind.DEPLOYMENT_AVAILABLE,
                    critical=service_b_critical,
                ),
            ),
        ),
        DeploymentStage("Edge", (_entry("ConfigMap", "edge-config", "myapp"),)),
    ]


class OrchestratorTests(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = FakeClock()
        self.client = SimulatedClusterClient()
        self.waiter = ReadinessWaiter(self.client, clock=self.clock, sleep=self.clock.sleep)
        self.orchestrator = Orchestrator(self.client, self.waiter, clock=self.clock)

    def test_all_stages_succeed_in_order(self) -> None:
        result = self.orchestrator.run(_scenario())
        self.assertFalse(result.aborted)
        self.assertEqual(
            self.client.applied,
            ["myapp.yaml", "postgres.yaml", "service-a.yaml", "service-b.yaml", "edge-config.yaml"],
        )
        self.assertTrue(all(outcome.status == OutcomeStatus.SUCCEEDED for outcome in result.resources))
        report = build_report(result)
        self.assertEqual(report.verdict, Verdict.SUCCESS)
        self.assertEqual(report.exit_code, 0)

    def test_critical_apply_failure_stops_later_stages(self) -> None:
        self.client.fail_apply("postgres")
        result = self.orchestrator.run(_scenario())
        self.assertTrue(result.aborted)
        self.assertEqual(result.skipped_stages, ("Services", "Edge"))
        self.assertNotIn("service-a.yaml", self.client.applied)
        failed = result.resources[-1]
        self.assertEqual(failed.status, OutcomeStatus.FAILED)
        self.assertEqual(failed.error_kind, "ApplyError")
        self.assertIn("postgres", result.abort_reason)
        report = build_report(result)
        self.assertEqual(report.verdict, Verdict.FAILURE)
        self.assertEqual(report.exit_code, 1)
        self.assertEqual(report.rows[-1].label, "fatal")

    def test_non_critical_failure_is_warned_and_run_continues(self) -> None:
        self.client.fail_apply("service-b")
        result = self.orchestrator.run(_scenario())
        self.assertFalse(result.aborted)
        statuses = {outcome.resource.name: outcome.status for outcome in result.resources}
        self.assertEqual(statuses["service-b"], OutcomeStatus.WARNED)
        self.assertEqual(statuses["edge-config"], OutcomeStatus.SUCCEEDED)
        report = build_report(result)
        self.assertEqual(report.verdict, Verdict.PARTIAL)
        self.assertEqual(report.exit_code, 0)
        self.assertEqual([row.resource for row in report.warnings], ["Deployment/myapp/service-b"])

    def test_critical_failure_in_same_stage_skips_remaining_entries(self) -> None:
        self.client.fail_apply("service-a")
        result = self.orchestrator.run(_scenario(service_b_critical=True))
        self.assertTrue(result.aborted)
        self.assertNotIn("service-b.yaml", self.client.applied)
        self.assertEqual(result.skipped_stages, ("Edge",))

    def test_readiness_timeout_on_critical_resource_aborts(self) -> None:
        client = SimulatedClusterClient(auto_ready=False)
        waiter = ReadinessWaiter(client, clock=self.clock, sleep=self.clock.sleep)
        result = Orchestrator(client, waiter, clock=self.clock).run(_scenario())
        self.assertTrue(result.aborted)
        timed_out = result.resources[-1]
        self.assertEqual(timed_out.resource.name, "postgres")
        self.assertEqual(timed_out.status, OutcomeStatus.TIMED_OUT)
        self.assertEqual(timed_out.error_kind, "ReadinessTimeout")
        self.assertLessEqual(self.clock.now, 30 + 2)

    def test_non_critical_timeout_is_warned(self) -> None:
        original = self.client.get_condition

        def get_condition(kind, name, namespace, condition_type):
            if name == "service-b":
                return False
            return original(kind, name, namespace, condition_type)

        self.client.get_condition = get_condition  # type: ignore[method-assign]
        result = self.orchestrator.run(_scenario())
        outcome = next(o for o in result.resources if o.resource.name == "service-b")
        self.assertEqual(outcome.status, OutcomeStatus.WARNED)
        self.assertEqual(outcome.error_kind, "ReadinessTimeout")
        self.assertFalse(result.aborted)
        self.assertEqual(build_report(result).verdict, Verdict.PARTIAL)

    def test_rerun_is_idempotent(self) -> None:
        first = self.orchestrator.run(_scenario())
        objects_after_first = set(self.client.objects)
        second = self.orchestrator.run(_scenario())
        self.assertEqual(build_report(first).verdict, Verdict.SUCCESS)
        self.assertEqual(build_report(second).verdict, Verdict.SUCCESS)
        self.assertEqual(set(self.client.objects), objects_after_first)

    def test_verify_logs_listing(self) -> None:
        self.orchestrator.run(_scenario())
        with self.assertLogs("src.orchestrator.orchestrator", level="INFO") as logs:
            self.orchestrator.verify("myapp")
        self.assertTrue(any("service-a" in line for line in logs.output))

    def test_report_written_as_json(self) -> None:
        self.client.fail_apply("service-b")
        report = build_report(self.orchestrator.run(_scenario()))
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "reports" / "deploy.json"
            write_report(report, path)
            data = json.loads(path.read_text(encoding="utf-8"))
        self.assertEqual(data["verdict"], "partial-success-with-warnings")
        self.assertEqual(data["exit_code"], 0)
        advisory = [row for row in data["resources"] if row["label"] == "advisory"]
        self.assertEqual(len(advisory), 1)


if __name__ == "__main__":
    unittest.main()
