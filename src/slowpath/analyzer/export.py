"""JSON and SARIF 2.1.0 shapes for analysis results."""

from __future__ import annotations

import json
from collections.abc import Iterable

from slowpath import __version__
from slowpath.analyzer.models import AnalysisResult, Diagnostic, Severity, Span
from slowpath.rules import Rule

SARIF_SCHEMA = "https://json.schemastore.org/sarif-2.1.0.json"
SARIF_VERSION = "2.1.0"

_SARIF_LEVELS = {
    Severity.ERROR: "error",
    Severity.WARNING: "warning",
    Severity.INFO: "note",
}


def span_to_dict(span: Span) -> dict:
    return {
        "start_line": span.start_line,
        "start_column": span.start_column,
        "end_line": span.end_line,
        "end_column": span.end_column,
    }


def diagnostic_to_dict(diagnostic: Diagnostic) -> dict:
    data = {
        "rule_id": diagnostic.rule_id,
        "severity": diagnostic.severity.value,
        "message": diagnostic.message,
        "file": diagnostic.file_path,
        "span": span_to_dict(diagnostic.span),
    }
    if diagnostic.suggestion:
        data["suggestion"] = diagnostic.suggestion
    if diagnostic.fix is not None:
        data["fix"] = {
            "span": span_to_dict(diagnostic.fix.span),
            "replacement": diagnostic.fix.replacement,
            "description": diagnostic.fix.description,
        }
    if diagnostic.related_span is not None:
        data["related_span"] = span_to_dict(diagnostic.related_span)
    return data


def to_json_dict(result: AnalysisResult) -> dict:
    return {
        "version": __version__,
        "files_analyzed": result.files_analyzed,
        "files_skipped": result.files_skipped,
        "warnings": list(result.warnings),
        "summary": {severity.value: result.count(severity) for severity in Severity},
        "diagnostics": [diagnostic_to_dict(d) for d in result.diagnostics],
    }


def to_json(result: AnalysisResult, indent: int = 2) -> str:
    return json.dumps(to_json_dict(result), indent=indent)


def _region(span: Span) -> dict:
    return {
        "startLine": span.start_line,
        "startColumn": span.start_column,
        "endLine": span.end_line,
        "endColumn": span.end_column,
    }


def _location(uri: str, span: Span) -> dict:
    return {
        "physicalLocation": {
            "artifactLocation": {"uri": uri},
            "region": _region(span),
        }
    }


def _sarif_result(diagnostic: Diagnostic) -> dict:
    uri = diagnostic.file_path.replace("\\", "/")
    result = {
        "ruleId": diagnostic.rule_id,
        "level": _SARIF_LEVELS[diagnostic.severity],
        "message": {"text": diagnostic.message},
        "locations": [_location(uri, diagnostic.span)],
    }
    if diagnostic.related_span is not None:
        location = _location(uri, diagnostic.related_span)
        location["id"] = 1
        location["message"] = {"text": "acquired here"}
        result["relatedLocations"] = [location]
    if diagnostic.fix is not None:
        result["fixes"] = [
            {
                "description": {"text": diagnostic.fix.description or "Apply fix"},
                "artifactChanges": [
                    {
                        "artifactLocation": {"uri": uri},
                        "replacements": [
                            {
                                "deletedRegion": _region(diagnostic.fix.span),
                                "insertedContent": {"text": diagnostic.fix.replacement},
                            }
                        ],
                    }
                ],
            }
        ]
    return result


def _sarif_rule(rule: Rule) -> dict:
    return {
        "id": rule.id,
        "name": rule.name,
        "shortDescription": {"text": rule.description},
        "defaultConfiguration": {"level": _SARIF_LEVELS[rule.default_severity]},
    }


def to_sarif_dict(result: AnalysisResult, rules: Iterable[Rule]) -> dict:
    """A SARIF log with one run; the tool driver lists ``rules``."""
    return {
        "$schema": SARIF_SCHEMA,
        "version": SARIF_VERSION,
        "runs": [
            {
                "tool": {
                    "driver": {
                        "name": "slowpath",
                        "version": __version__,
                        "rules": [_sarif_rule(rule) for rule in rules],
                    }
                },
                "results": [_sarif_result(d) for d in result.diagnostics],
            }
        ],
    }


def to_sarif(result: AnalysisResult, rules: Iterable[Rule], indent: int = 2) -> str:
    return json.dumps(to_sarif_dict(result, rules), indent=indent)
