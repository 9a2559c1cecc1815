"""Pre-flight configuration validation for deployment manifests and scripts."""

from .rules import ConfigField, Severity, ValidationFinding, ValidationReport, ValidationRule, ValidationRuleSet, Verdict
from .validator import Validator

__all__ = [
    "ConfigField",
    "Severity",
    "ValidationFinding",
    "ValidationReport",
    "ValidationRule",
    "ValidationRuleSet",
    "Validator",
    "Verdict",
]
