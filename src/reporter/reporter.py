from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import typer

from src.orchestrator.models import OutcomeStatus, ResourceOutcome, RunResult
from src.validator.rules import ValidationReport


class Verdict(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial-success-with-warnings"
    FAILURE = "failure"


@dataclass(frozen=True)
class ReportRow:
    stage: str
    resource: str
    status: str
    critical: bool
    label: str
    detail: str = ""

    @classmethod
    def from_outcome(cls, outcome: ResourceOutcome) -> "ReportRow":
        if outcome.status == OutcomeStatus.SUCCEEDED:
            label = "ok"
        elif outcome.fatal:
            label = "fatal"
        else:
            label = "advisory"
        return cls(
            stage=outcome.stage,
            resource=outcome.resource.ref,
            status=outcome.status.value,
            critical=outcome.critical,
            label=label,
            detail=outcome.detail,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage,
            "resource": self.resource,
            "status": self.status,
            "critical": self.critical,
            "label": self.label,
            "detail": self.detail,
        }


@dataclass(frozen=True)
class DeploymentReport:
    verdict: Verdict
    rows: Tuple[ReportRow, ...]
    abort_reason: Optional[str] = None
    skipped_stages: Tuple[str, ...] = ()

    @property
    def exit_code(self) -> int:
        return 1 if self.verdict == Verdict.FAILURE else 0

    @property
    def warnings(self) -> List[ReportRow]:
        return [row for row in self.rows if row.label == "advisory"]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "verdict": self.verdict.value,
            "exit_code": self.exit_code,
            "abort_reason": self.abort_reason,
            "skipped_stages": list(self.skipped_stages),
            "resources": [row.to_dict() for row in self.rows],
        }


def build_report(result: RunResult) -> DeploymentReport:
    if result.aborted or any(outcome.fatal for outcome in result.resources):
        verdict = Verdict.FAILURE
    elif result.has_warnings:
        verdict = Verdict.PARTIAL
    else:
        verdict = Verdict.SUCCESS
    return DeploymentReport(
        verdict=verdict,
        rows=tuple(ReportRow.from_outcome(outcome) for outcome in result.resources),
        abort_reason=result.abort_reason,
        skipped_stages=result.skipped_stages,
    )


def render(report: DeploymentReport) -> None:
    """Echo the per-resource table followed by the verdict."""

    headers = ("STAGE", "RESOURCE", "STATUS", "CRITICAL", "LABEL")
    table = [
        (row.stage, row.resource, row.status, "yes" if row.critical else "no", row.label) for row in report.rows
    ]
    for line in _format_table(headers, table):
        typer.echo(line)
    for row in report.rows:
        if row.detail:
            typer.echo(f"  {row.resource} [{row.label}]: {row.detail}")
    if report.skipped_stages:
        typer.echo("Skipped stages: " + ", ".join(report.skipped_stages))
    if report.abort_reason:
        typer.echo(f"Aborted: {report.abort_reason}", err=True)
    typer.echo(f"Deployment verdict: {report.verdict.value}")


def render_validation(report: ValidationReport) -> None:
    if not report.findings:
        typer.echo("No configuration issues found.")
    else:
        headers = ("SEVERITY", "RULE", "LOCATION", "MESSAGE")
        table = [
            (
                finding.severity.value,
                finding.rule,
                f"{finding.source}:{finding.line}" if finding.line else finding.source,
                finding.message,
            )
            for finding in report.findings
        ]
        for line in _format_table(headers, table):
            typer.echo(line)
    typer.echo(
        f"Validation {report.verdict.value}: {len(report.blocking)} blocking, {len(report.warnings)} warning(s)"
    )


def write_report(report: DeploymentReport, output_path: Path) -> None:
    output_path = output_path.resolve()
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8") as handle:
        json.dump(report.to_dict(), handle, indent=2)
        handle.write("\n")


def _format_table(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> List[str]:
    widths = [len(header) for header in headers]
    for row in rows:
        for index, cell in enumerate(row):
            widths[index] = max(widths[index], len(cell))
    lines = ["  ".join(header.ljust(widths[i]) for i, header in enumerate(headers)).rstrip()]
    for row in rows:
        lines.append("  ".join(cell.ljust(widths[i]) for i, cell in enumerate(row)).rstrip())
    return lines


__all__ = [
    "DeploymentReport",
    "ReportRow",
    "Verdict",
    "build_report",
    "render",
    "render_validation",
    "write_report",
]
