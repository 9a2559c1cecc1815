"""Deployment and validation reporting."""

from .reporter import DeploymentReport, ReportRow, Verdict, build_report, render, render_validation, write_report

__all__ = [
    "DeploymentReport",
    "ReportRow",
    "Verdict",
    "build_report",
    "render",
    "render_validation",
    "write_report",
]
