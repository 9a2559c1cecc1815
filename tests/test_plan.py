import tempfile
import unittest
from pathlib import Path

from src.common.config import DeployConfig
from src.common.errors import ConfigError
from src.orchestrator.models import ConditionKind
from src.orchestrator.plan import build_default_stages, load_stages, resolve_stages


class DefaultStagesTests(unittest.TestCase):
    def setUp(self) -> None:
        self.config = DeployConfig(manifest_dir=Path("/srv/manifests"))

    def test_stage_order(self) -> None:
        names = [stage.name for stage in build_default_stages(self.config)]
        self.assertEqual(
            names,
            [
                "Namespace",
                "PostgreSQL configuration & secrets",
                "PostgreSQL database",
                "Monitoring stack",
                "Application services",
                "Ingress configuration",
            ],
        )

    def test_ingress_is_last_and_only_ingress(self) -> None:
        stages = build_default_stages(self.config)
        ingress = [entry for stage in stages for entry in stage.entries if entry.resource.is_ingress]
        self.assertEqual(len(ingress), 1)
        self.assertIs(stages[-1].entries[0], ingress[0])

    def test_criticality_and_waits(self) -> None:
        entries = {entry.resource.name: entry for stage in build_default_stages(self.config) for entry in stage.entries}
        self.assertTrue(entries["auth-service"].critical)
        self.assertFalse(entries["people-counter"].critical)
        self.assertFalse(entries["video-transcoder"].critical)
        self.assertEqual(entries["postgres"].wait.condition, ConditionKind.PODS_READY_BY_LABEL)
        self.assertEqual(entries["postgres"].resource.label_selector, "app=postgres")
        self.assertEqual(entries["grafana"].resource.namespace, "monitoring")
        self.assertEqual(entries["auth-service"].resource.source, str(Path("/srv/manifests/auth-service.yaml")))

    def test_resolve_uses_default_without_plan(self) -> None:
        self.assertEqual(len(resolve_stages(self.config)), 6)


class PlanLoaderTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.config = DeployConfig(manifest_dir=Path(self.tmpdir.name), default_timeout_seconds=120)

    def tearDown(self) -> None:
        self.tmpdir.cleanup()

    def test_loads_overrides(self) -> None:
        stages = load_stages(
            [
                {
                    "name": "Base",
                    "resources": [
                        {"kind": "Namespace", "name": "shop", "source": "namespace.yaml"},
                        {
                            "kind": "Deployment",
                            "name": "api",
                            "namespace": "shop",
                            "source": "api.yaml",
                            "wait": "deployment-available",
                            "timeout": 45,
                            "critical": False,
                        },
                    ],
                },
                {
                    "name": "Edge",
                    "resources": [
                        {"kind": "Ingress", "name": "shop", "namespace": "shop", "source": "https://example.com/i.yaml"}
                    ],
                },
            ],
            self.config,
        )
        namespace, api = stages[0].entries
        self.assertEqual(namespace.wait.timeout_seconds, 120)
        self.assertEqual(namespace.resource.source, str(Path(self.tmpdir.name) / "namespace.yaml"))
        self.assertEqual(api.wait.condition, ConditionKind.DEPLOYMENT_AVAILABLE)
        self.assertEqual(api.wait.timeout_seconds, 45)
        self.assertFalse(api.critical)
        self.assertEqual(stages[1].entries[0].resource.source, "https://example.com/i.yaml")

    def test_duplicate_resource_is_rejected(self) -> None:
        plan = [
            {"name": "One", "resources": [{"kind": "ConfigMap", "name": "cfg", "namespace": "a", "source": "c.yaml"}]},
            {"name": "Two", "resources": [{"kind": "configmap", "name": "cfg", "namespace": "a", "source": "d.yaml"}]},
        ]
        with self.assertRaises(ConfigError):
            load_stages(plan, self.config)

    def test_unknown_wait_condition_is_rejected(self) -> None:
        plan = [{"name": "One", "resources": [{"kind": "Deployment", "name": "x", "source": "x.yaml", "wait": "soon"}]}]
        with self.assertRaises(ConfigError):
            load_stages(plan, self.config)

    def test_empty_stage_is_rejected(self) -> None:
        with self.assertRaises(ConfigError):
            load_stages([{"name": "Empty", "resources": []}], self.config)

    def test_ingress_must_be_in_final_stage(self) -> None:
        plan = [
            {"name": "Edge", "resources": [{"kind": "Ingress", "name": "web", "namespace": "a", "source": "i.yaml"}]},
            {"name": "Apps", "resources": [{"kind": "Deployment", "name": "web", "namespace": "a", "source": "w.yaml"}]},
        ]
        with self.assertRaises(ConfigError):
            load_stages(plan, self.config)

    def test_resolve_prefers_configured_plan(self) -> None:
        self.config.stages = [
            {"name": "Only", "resources": [{"kind": "ConfigMap", "name": "cfg", "namespace": "a", "source": "c.yaml"}]}
        ]
        stages = resolve_stages(self.config)
        self.assertEqual([stage.name for stage in stages], ["Only"])


if __name__ == "__main__":
    unittest.main()
