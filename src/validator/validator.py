from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Set, Tuple

import yaml

from src.common.config import ValidationSettings

from .rules import (
    GITIGNORE_COVERAGE,
    INVALID_YAML,
    MISSING_SOURCE,
    UNREADABLE_SOURCE,
    ConfigField,
    Severity,
    ValidationFinding,
    ValidationReport,
    ValidationRuleSet,
)

logger = logging.getLogger(__name__)

YAML_SUFFIXES = (".yaml", ".yml")
GITIGNORE_PATTERNS = ("*secret*", "*credential*", ".env")

_ASSIGNMENT = re.compile(
    r"^(?:(?:export|local|readonly)\s+|declare\s+(?:-\w+\s+)*)?([A-Za-z_][A-Za-z0-9_]*)=(.*)$"
)
_COLON_ASSIGNMENT = re.compile(r"^([A-Za-z_][A-Za-z0-9_.-]*):\s+(.+)$")
_OUTPUT_LINE = re.compile(r"^(?:echo|printf|print_\w+)\b|^read\b.*\s-p\b")
_COMMAND_SEPARATOR = re.compile(r"\s*(?:&&|\|\||;)\s*|\b(?:then|do|else)\s+")


class Validator:
    """Pre-flight scan of configuration sources for unresolved placeholders and weak secrets."""

    def __init__(
        self,
        rules: Optional[ValidationRuleSet] = None,
        *,
        base64_fields: Sequence[str] = ("POSTGRES_PASSWORD",),
        check_gitignore: bool = True,
    ) -> None:
        self.rules = rules or ValidationRuleSet()
        self.base64_fields: Set[str] = set(base64_fields)
        self.check_gitignore = check_gitignore

    @classmethod
    def from_settings(cls, settings: ValidationSettings) -> "Validator":
        return cls(base64_fields=settings.base64_fields, check_gitignore=settings.check_gitignore)

    def validate_directory(self, directory: Path, sources: Sequence[str]) -> ValidationReport:
        """Validate the named sources under ``directory``, plus its ``.gitignore`` coverage.

        Other YAML files in the directory get the warning-level checks only.
        """

        directory = Path(directory)
        findings: List[ValidationFinding] = []
        for name in sources:
            path = directory / name
            if not path.is_file():
                logger.warning("%s not found, skipping validation", name)
                findings.append(_source_finding(MISSING_SOURCE, name, f"{name} not found"))
                continue
            findings.extend(self._check_path(name, path))
        for path in _other_manifests(directory, sources):
            findings.extend(self._check_path(path.name, path, advisory=True))
        if self.check_gitignore:
            findings.extend(self.check_gitignore_coverage(directory))
        return ValidationReport.from_findings(findings)

    def validate_sources(self, sources: Iterable[Tuple[str, str]]) -> ValidationReport:
        """Validate in-memory ``(name, contents)`` pairs, preserving their order."""

        findings: List[ValidationFinding] = []
        for name, text in sources:
            findings.extend(self.check_source(name, text))
        return ValidationReport.from_findings(findings)

    def check_source(self, name: str, text: str, *, advisory: bool = False) -> List[ValidationFinding]:
        """Findings for one source; ``advisory`` sources only ever produce warnings."""

        logger.debug("Checking %s", name)
        severity = Severity.WARNING if advisory else Severity.BLOCKING
        try:
            fields = self.extract_fields(name, text)
        except yaml.YAMLError as exc:
            line = getattr(getattr(exc, "problem_mark", None), "line", -1) + 1
            return [
                ValidationFinding(
                    rule=INVALID_YAML,
                    severity=severity,
                    source=name,
                    line=line,
                    path="",
                    matched="",
                    message=f"{name} could not be parsed as YAML",
                )
            ]
        findings = self.rules.evaluate(fields, severities=(Severity.WARNING,) if advisory else None)
        findings.sort(key=lambda finding: finding.line)
        return findings

    def extract_fields(self, name: str, text: str) -> List[ConfigField]:
        if name.lower().endswith(YAML_SUFFIXES):
            return self._yaml_fields(name, text)
        return _script_fields(name, text)

    def check_gitignore_coverage(self, directory: Path) -> List[ValidationFinding]:
        gitignore = Path(directory) / ".gitignore"
        if not gitignore.is_file():
            return [_source_finding(GITIGNORE_COVERAGE, ".gitignore", "No .gitignore file found")]
        contents = gitignore.read_text(encoding="utf-8", errors="replace")
        if any(pattern in contents for pattern in GITIGNORE_PATTERNS):
            return []
        return [
            _source_finding(
                GITIGNORE_COVERAGE,
                ".gitignore",
                ".gitignore may not cover sensitive files (" + ", ".join(GITIGNORE_PATTERNS) + ")",
            )
        ]

    def _check_path(self, name: str, path: Path, *, advisory: bool = False) -> List[ValidationFinding]:
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.error("Cannot read %s: %s", name, exc)
            return [
                ValidationFinding(
                    rule=UNREADABLE_SOURCE,
                    severity=Severity.WARNING if advisory else Severity.BLOCKING,
                    source=name,
                    line=0,
                    path="",
                    matched="",
                    message=f"{name} could not be read as UTF-8 text: {exc}",
                )
            ]
        return self.check_source(name, text, advisory=advisory)

    def _yaml_fields(self, name: str, text: str) -> List[ConfigField]:
        fields: List[ConfigField] = []
        for document in yaml.compose_all(text, Loader=yaml.SafeLoader):
            if document is None:
                continue
            secret = _document_kind(document) == "Secret"
            self._walk(name, document, "", "", fields, secret_data=False, secret_doc=secret)
        return fields

    def _walk(
        self,
        source: str,
        node: yaml.Node,
        path: str,
        key: str,
        fields: List[ConfigField],
        *,
        secret_data: bool,
        secret_doc: bool,
    ) -> None:
        if isinstance(node, yaml.ScalarNode):
            fields.append(
                ConfigField(
                    source=source,
                    path=path,
                    value=str(node.value),
                    line=node.start_mark.line + 1,
                    name=key,
                    base64=secret_data or key in self.base64_fields,
                )
            )
        elif isinstance(node, yaml.SequenceNode):
            for index, child in enumerate(node.value):
                self._walk(source, child, f"{path}[{index}]", key, fields, secret_data=False, secret_doc=secret_doc)
        elif isinstance(node, yaml.MappingNode):
            env_name = _env_entry_name(node)
            for key_node, value_node in node.value:
                child_key = str(key_node.value)
                child_path = f"{path}.{child_key}" if path else child_key
                if env_name is not None and child_key == "value" and isinstance(value_node, yaml.ScalarNode):
                    fields.append(
                        ConfigField(
                            source=source,
                            path=child_path,
                            value=str(value_node.value),
                            line=value_node.start_mark.line + 1,
                            name=env_name,
                        )
                    )
                    continue
                if secret_data:
                    # keys of a Secret's data block each hold a base64 value
                    self._walk(
                        source, value_node, child_path, child_key, fields, secret_data=True, secret_doc=secret_doc
                    )
                    continue
                in_data = secret_doc and not path and child_key == "data"
                self._walk(
                    source, value_node, child_path, child_key, fields, secret_data=in_data, secret_doc=secret_doc
                )


def _document_kind(node: yaml.Node) -> Optional[str]:
    if not isinstance(node, yaml.MappingNode):
        return None
    for key_node, value_node in node.value:
        if key_node.value == "kind" and isinstance(value_node, yaml.ScalarNode):
            return str(value_node.value)
    return None


def _env_entry_name(node: yaml.MappingNode) -> Optional[str]:
    keys = {}
    for key_node, value_node in node.value:
        if isinstance(value_node, yaml.ScalarNode):
            keys[key_node.value] = value_node.value
    if "name" in keys and "value" in keys:
        return str(keys["name"])
    return None


def _script_fields(source: str, text: str) -> List[ConfigField]:
    fields: List[ConfigField] = []
    for number, raw in enumerate(text.splitlines(), start=1):
        line = _strip_comment(raw).strip()
        if not line or _is_output(line):
            continue
        match = _ASSIGNMENT.match(line) or _COLON_ASSIGNMENT.match(line)
        if match:
            name, value = match.group(1), _unquote(match.group(2).strip())
            fields.append(ConfigField(source=source, path=name, value=value, line=number, name=name))
        else:
            fields.append(ConfigField(source=source, path=f"line {number}", value=line, line=number))
    return fields


def _is_output(line: str) -> bool:
    """True when any command on the line prints guidance, e.g. ``[ -n "$X" ] || echo ...``."""

    return any(_OUTPUT_LINE.match(segment) for segment in _COMMAND_SEPARATOR.split(line) if segment)


def _other_manifests(directory: Path, sources: Sequence[str]) -> List[Path]:
    if not directory.is_dir():
        return []
    named = set(sources)
    return sorted(
        path
        for path in directory.iterdir()
        if path.is_file() and path.suffix.lower() in YAML_SUFFIXES and path.name not in named
    )


def _strip_comment(line: str) -> str:
    """Drop a ``#`` comment that is outside quotes and starts a word."""

    quote: Optional[str] = None
    for index, char in enumerate(line):
        if quote:
            if char == quote:
                quote = None
        elif char in ("'", '"'):
            quote = char
        elif char == "#" and (index == 0 or line[index - 1].isspace()):
            return line[:index]
    return line


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def _source_finding(rule: str, source: str, message: str) -> ValidationFinding:
    return ValidationFinding(
        rule=rule,
        severity=Severity.WARNING,
        source=source,
        line=0,
        path="",
        matched="",
        message=message,
    )


__all__ = ["Validator"]
