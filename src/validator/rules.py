"""Validation rules evaluated against parsed configuration fields."""

from __future__ import annotations

import base64
import binascii
import fnmatch
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

PLACEHOLDER_PATTERN = re.compile(r"YOUR_[A-Z0-9_]+")
EXAMPLE_VALUE_PATTERN = re.compile(r"your_actual_\w*")
PASSWORD_KEY_PATTERN = re.compile(r"password", re.IGNORECASE)
PASSWORD_VALUE_PATTERN = re.compile(r"[A-Za-z0-9]{8,}")
# base64("YOUR_DB_PASSWORD")
PLACEHOLDER_BASE64_SENTINEL = "WU9VUl9EQl9QQVNTV09SRA=="

YAML_SCOPE = ("*.yaml", "*.yml")
ANY_SCOPE = ("*",)

MISSING_SOURCE = "missing-source"
GITIGNORE_COVERAGE = "gitignore-coverage"
INVALID_YAML = "invalid-yaml"
UNREADABLE_SOURCE = "unreadable-source"


class Severity(str, Enum):
    BLOCKING = "blocking"
    WARNING = "warning"


class Verdict(str, Enum):
    PASS = "pass"
    FAIL = "fail"


@dataclass(frozen=True)
class ConfigField:
    """One scalar configuration value and where it came from.

    ``name`` is the key the value is known by: the mapping key for YAML, the
    ``name`` of an ``env`` entry for its ``value``, or the variable name of a
    script assignment. ``base64`` marks fields that must hold a base64 secret.
    """

    source: str
    path: str
    value: str
    line: int
    name: str = ""
    base64: bool = False


CheckFn = Callable[[ConfigField, str], Optional[str]]


@dataclass(frozen=True)
class ValidationRule:
    name: str
    severity: Severity
    description: str
    check: CheckFn
    scope: Tuple[str, ...] = ANY_SCOPE
    skip_if_flagged: bool = False

    def applies_to(self, source: str) -> bool:
        filename = source.replace("\\", "/").rsplit("/", 1)[-1]
        return any(fnmatch.fnmatch(filename, pattern) for pattern in self.scope)


@dataclass(frozen=True)
class ValidationFinding:
    rule: str
    severity: Severity
    source: str
    line: int
    path: str
    matched: str
    message: str

    @property
    def blocking(self) -> bool:
        return self.severity == Severity.BLOCKING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule": self.rule,
            "severity": self.severity.value,
            "source": self.source,
            "line": self.line,
            "path": self.path,
            "matched": self.matched,
            "message": self.message,
        }


@dataclass(frozen=True)
class ValidationReport:
    verdict: Verdict
    findings: Tuple[ValidationFinding, ...] = ()

    @classmethod
    def from_findings(cls, findings: Iterable[ValidationFinding]) -> "ValidationReport":
        ordered = tuple(findings)
        verdict = Verdict.FAIL if any(finding.blocking for finding in ordered) else Verdict.PASS
        return cls(verdict, ordered)

    @property
    def passed(self) -> bool:
        return self.verdict == Verdict.PASS

    @property
    def blocking(self) -> Tuple[ValidationFinding, ...]:
        return tuple(finding for finding in self.findings if finding.blocking)

    @property
    def warnings(self) -> Tuple[ValidationFinding, ...]:
        return tuple(finding for finding in self.findings if not finding.blocking)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "verdict": self.verdict.value,
            "blocking": len(self.blocking),
            "warnings": len(self.warnings),
            "findings": [finding.to_dict() for finding in self.findings],
        }


def decode_base64(value: str) -> Optional[bytes]:
    """Strictly decode ``value``; ``None`` when it is not valid base64."""

    candidate = value.strip()
    if not candidate:
        return None
    try:
        return base64.b64decode(candidate, validate=True)
    except (binascii.Error, ValueError):
        return None


def find_placeholder(field: ConfigField, value: str) -> Optional[str]:
    match = PLACEHOLDER_PATTERN.search(value)
    return match.group(0) if match else None


def find_placeholder_base64(field: ConfigField, value: str) -> Optional[str]:
    if PLACEHOLDER_BASE64_SENTINEL in value:
        return PLACEHOLDER_BASE64_SENTINEL
    if not field.base64:
        return None
    decoded = decode_base64(value)
    if decoded is None:
        return None
    text = decoded.decode("utf-8", errors="replace")
    return value.strip() if PLACEHOLDER_PATTERN.search(text) else None


def find_example_value(field: ConfigField, value: str) -> Optional[str]:
    match = EXAMPLE_VALUE_PATTERN.search(value)
    return match.group(0) if match else None


def find_invalid_base64(field: ConfigField, value: str) -> Optional[str]:
    if not field.base64:
        return None
    return None if decode_base64(value) is not None else value.strip()


def find_hardcoded_password(field: ConfigField, value: str) -> Optional[str]:
    key = field.name or field.path
    if not PASSWORD_KEY_PATTERN.search(key):
        return None
    match = PASSWORD_VALUE_PATTERN.search(value)
    return match.group(0) if match else None


DEFAULT_RULES: Tuple[ValidationRule, ...] = (
    ValidationRule(
        name="placeholder-token",
        severity=Severity.BLOCKING,
        description="Unresolved configuration placeholder",
        check=find_placeholder,
    ),
    ValidationRule(
        name="placeholder-base64",
        severity=Severity.BLOCKING,
        description="Base64 value still encodes a placeholder",
        check=find_placeholder_base64,
    ),
    ValidationRule(
        name="example-value",
        severity=Severity.BLOCKING,
        description="Example value was never replaced",
        check=find_example_value,
    ),
    ValidationRule(
        name="invalid-base64",
        severity=Severity.BLOCKING,
        description="Secret value is not valid base64",
        check=find_invalid_base64,
    ),
    ValidationRule(
        name="hardcoded-password",
        severity=Severity.WARNING,
        description="Potential hardcoded password",
        check=find_hardcoded_password,
        scope=YAML_SCOPE,
        skip_if_flagged=True,
    ),
)


class ValidationRuleSet:
    def __init__(self, rules: Sequence[ValidationRule] = DEFAULT_RULES) -> None:
        names = [rule.name for rule in rules]
        if len(names) != len(set(names)):
            raise ValueError("rule names must be unique")
        self.rules: Tuple[ValidationRule, ...] = tuple(rules)

    def __iter__(self):
        return iter(self.rules)

    def __len__(self) -> int:
        return len(self.rules)

    def evaluate(
        self, fields: Iterable[ConfigField], severities: Optional[Sequence[Severity]] = None
    ) -> List[ValidationFinding]:
        """Apply every in-scope rule to each field, in rule order.

        ``severities`` restricts the pass to rules of those severities.
        """

        findings: List[ValidationFinding] = []
        for item in fields:
            flagged = False
            for rule in self.rules:
                if not rule.applies_to(item.source):
                    continue
                if severities is not None and rule.severity not in severities:
                    continue
                if rule.skip_if_flagged and flagged:
                    continue
                matched = rule.check(item, item.value)
                if matched is None:
                    continue
                flagged = True
                findings.append(
                    ValidationFinding(
                        rule=rule.name,
                        severity=rule.severity,
                        source=item.source,
                        line=item.line,
                        path=item.path,
                        matched=matched,
                        message=f"{rule.description}: {matched}",
                    )
                )
        return findings


__all__ = [
    "ConfigField",
    "DEFAULT_RULES",
    "GITIGNORE_COVERAGE",
    "INVALID_YAML",
    "MISSING_SOURCE",
    "PLACEHOLDER_BASE64_SENTINEL",
    "Severity",
    "UNREADABLE_SOURCE",
    "ValidationFinding",
    "ValidationReport",
    "ValidationRule",
    "ValidationRuleSet",
    "Verdict",
    "decode_base64",
]
