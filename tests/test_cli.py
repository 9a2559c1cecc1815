import base64
import json
import tempfile
import unittest
from pathlib import Path

import typer

from src.orchestrator import cli

WORKLOADS = {
    "postgres-config.yaml": [("ConfigMap", "postgres-config", "myapp")],
    "postgres.yaml": [("StatefulSet", "postgres", "myapp")],
    "prometheus-alerts.yaml": [("ConfigMap", "prometheus-alerts", "monitoring")],
    "alertmanager.yaml": [("Deployment", "alertmanager", "monitoring")],
    "prometheus.yaml": [("Deployment", "prometheus", "monitoring")],
    "grafana.yaml": [("Deployment", "grafana", "monitoring")],
    "auth-service.yaml": [("Deployment", "auth-service", "myapp")],
    "people-counter.yaml": [("Deployment", "people-counter", "myapp")],
    "video-transcoder.yaml": [("Deployment", "video-transcoder", "myapp")],
    "ingress.yaml": [("Ingress", "myapp-ingress", "myapp")],
    "namespace.yaml": [("Namespace", "myapp", None), ("Namespace", "monitoring", None)],
}

SECRET = """\
---
apiVersion: v1
kind: Secret
metadata:
  name: postgres-secret
  namespace: myapp
data:
  POSTGRES_PASSWORD: {password}
"""


def _document(kind, name, namespace):
    lines = ["apiVersion: v1", f"kind: {kind}", "metadata:", f"  name: {name}"]
    if namespace:
        lines.append(f"  namespace: {namespace}")
    return "\n".join(lines) + "\n"


class CliTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.base = Path(self.tmpdir.name)
        for filename, documents in WORKLOADS.items():
            text = "---\n".join(_document(*doc) for doc in documents)
            (self.base / filename).write_text(text, encoding="utf-8")
        password = base64.b64encode(b"s3cure-db-pass").decode("ascii")
        with (self.base / "postgres-config.yaml").open("a", encoding="utf-8") as handle:
            handle.write(SECRET.format(password=password))
        (self.base / "deploy.sh").write_text("#!/bin/bash\nNAMESPACE=myapp\n", encoding="utf-8")
        (self.base / ".gitignore").write_text("*secret*\n.env\n", encoding="utf-8")
        self.config_path = self.base / "deploy.yaml"
        self.config_path.write_text("manifest_dir: .\nwaits:\n  timeout: 5\n", encoding="utf-8")

    def tearDown(self) -> None:
        self.tmpdir.cleanup()

    def _deploy(self, **kwargs) -> int:
        with self.assertRaises(typer.Exit) as ctx:
            cli.deploy(
                config=self.config_path,
                manifests=None,
                kubectl=None,
                context=None,
                simulate=True,
                verbose=False,
                skip_validation=kwargs.get("skip_validation", False),
                report_out=kwargs.get("report_out"),
            )
        return ctx.exception.exit_code

    def test_simulated_deploy_succeeds(self) -> None:
        report_path = self.base / "out" / "report.json"
        self.assertEqual(self._deploy(report_out=report_path), 0)
        report = json.loads(report_path.read_text(encoding="utf-8"))
        self.assertEqual(report["verdict"], "success")
        self.assertEqual(report["resources"][-1]["resource"], "Ingress/myapp/myapp-ingress")

    def test_placeholder_blocks_deploy(self) -> None:
        (self.base / "auth-service.yaml").write_text(
            _document("Deployment", "auth-service", "myapp") + "data:\n  JWT_SECRET: YOUR_JWT_SECRET\n",
            encoding="utf-8",
        )
        self.assertEqual(self._deploy(), 1)

    def test_non_critical_failure_is_partial_success(self) -> None:
        (self.base / "people-counter.yaml").write_text("kind: [unclosed\n", encoding="utf-8")
        report_path = self.base / "report.json"
        self.assertEqual(self._deploy(skip_validation=True, report_out=report_path), 0)
        report = json.loads(report_path.read_text(encoding="utf-8"))
        self.assertEqual(report["verdict"], "partial-success-with-warnings")

    def test_critical_failure_exits_non_zero(self) -> None:
        (self.base / "postgres.yaml").write_text("kind: [unclosed\n", encoding="utf-8")
        report_path = self.base / "report.json"
        self.assertEqual(self._deploy(report_out=report_path), 1)
        report = json.loads(report_path.read_text(encoding="utf-8"))
        self.assertEqual(report["verdict"], "failure")
        self.assertIn("Monitoring stack", report["skipped_stages"])

    def test_validate_exit_codes(self) -> None:
        with self.assertRaises(typer.Exit) as ctx:
            cli.validate(config=self.config_path, manifests=None, verbose=False)
        self.assertEqual(ctx.exception.exit_code, 0)

        (self.base / "deploy.sh").write_text("S3_BUCKET=YOUR_BUCKET_NAME\n", encoding="utf-8")
        with self.assertRaises(typer.Exit) as ctx:
            cli.validate(config=self.config_path, manifests=None, verbose=False)
        self.assertEqual(ctx.exception.exit_code, 1)

    def test_setup_ingress_in_simulation(self) -> None:
        cli.setup_ingress(
            config=self.config_path,
            manifests=None,
            kubectl=None,
            context=None,
            simulate=True,
            verbose=False,
            ingress_file="ingress.yaml",
            ingress_name="myapp-ingress",
        )

    def test_quick_cleanup_of_absent_namespace_exits_cleanly(self) -> None:
        cli.quick_cleanup(
            config=self.config_path, kubectl=None, context=None, simulate=True, verbose=False, namespace=None
        )

    def test_cleanup_in_simulation(self) -> None:
        cli.cleanup(
            config=self.config_path, kubectl=None, context=None, simulate=True, verbose=False, include_default=True
        )

    def test_missing_explicit_config_is_bad_parameter(self) -> None:
        with self.assertRaises(typer.BadParameter):
            cli.validate(config=self.base / "nope.yaml", manifests=None, verbose=False)

    def test_unreachable_cluster_exits_one(self) -> None:
        with self.assertRaises(typer.Exit) as ctx:
            cli.deploy(
                config=self.config_path,
                manifests=None,
                kubectl="kubectl-binary-that-does-not-exist",
                context=None,
                simulate=False,
                verbose=False,
                skip_validation=False,
                report_out=None,
            )
        self.assertEqual(ctx.exception.exit_code, 1)

    def test_cleanup_against_unreachable_cluster_exits_zero(self) -> None:
        with self.assertRaises(typer.Exit) as ctx:
            cli.cleanup(
                config=self.config_path,
                kubectl="kubectl-binary-that-does-not-exist",
                context=None,
                simulate=False,
                verbose=False,
                include_default=False,
            )
        self.assertEqual(ctx.exception.exit_code, 0)

    def test_interrupt_exit_code(self) -> None:
        with self.assertRaises(typer.Exit) as ctx:
            cli._interrupted()
        self.assertEqual(ctx.exception.exit_code, 130)


if __name__ == "__main__":
    unittest.main()
