# core/sarif.py
"""
SARIF 2.1.0 output.

All scan reports go into one run. Rules are deduplicated by issue id and get a
zero-based index in first-seen order across every scan added to the report;
the index of an id never changes once assigned.
"""
from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Optional, Tuple

from core.normalize import CanonicalIssue, normalize, sarif_level
from core.plugins import ScanReport, ScanStatus

SARIF_VERSION = "2.1.0"
SARIF_SCHEMA = "https://json.schemastore.org/sarif-2.1.0.json"
DEFAULT_ARTIFACT_URI = "Gemfile.lock"
TOOL_NAME = "scanmux"
TOOL_VERSION = "0.1.0"
TOOL_INFO_URI = "https://github.com/scanmux/scanmux"


class SarifReport:
    def __init__(self, tool_name: str = TOOL_NAME, tool_version: str = TOOL_VERSION,
                 info_uri: str = TOOL_INFO_URI):
        self.tool_name = tool_name
        self.tool_version = tool_version
        self.info_uri = info_uri
        self.rules: List[Dict[str, Any]] = []
        self.rule_index: Dict[str, int] = {}
        self.results: List[Dict[str, Any]] = []
        self.invocations: List[Dict[str, Any]] = []

    def _rule_for(self, issue: CanonicalIssue) -> int:
        idx = self.rule_index.get(issue.id)
        if idx is not None:
            return idx
        rule: Dict[str, Any] = {
            "id": issue.id,
            "name": issue.rule_name or issue.name,
            "fullDescription": {"text": issue.rule_text or issue.details},
        }
        if issue.help_url:
            rule["helpUri"] = issue.help_url
        idx = len(self.rules)
        self.rules.append(rule)
        self.rule_index[issue.id] = idx
        return idx

    def _result(self, issue: CanonicalIssue, rule_idx: int, default_uri: str) -> Dict[str, Any]:
        return {
            "ruleId": issue.id,
            "ruleIndex": rule_idx,
            "level": sarif_level(issue.score),
            "message": {"text": issue.details},
            "locations": [
                {"physicalLocation": {"artifactLocation": {"uri": issue.uri or default_uri}}}
            ],
        }

    def add_scan(self, report: ScanReport, required: bool = False, scanner: Optional[str] = None) -> None:
        default_uri = report.lockfile or DEFAULT_ARTIFACT_URI
        for raw in report.issues:
            issue = normalize(raw)
            self.results.append(self._result(issue, self._rule_for(issue), default_uri))

        invocation: Dict[str, Any] = {
            # a failed optional scanner still executed as far as the report is concerned
            "executionSuccessful": not (report.status == ScanStatus.FATAL and required),
            "properties": {"scanner": scanner or report.scanner, "status": report.status.value, "required": required},
        }
        if report.errors:
            invocation["toolExecutionNotifications"] = [
                {"level": "error", "message": {"text": str(e)}} for e in report.errors
            ]
        self.invocations.append(invocation)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "$schema": SARIF_SCHEMA,
            "version": SARIF_VERSION,
            "runs": [
                {
                    "tool": {
                        "driver": {
                            "name": self.tool_name,
                            "version": self.tool_version,
                            "informationUri": self.info_uri,
                            "rules": self.rules,
                        }
                    },
                    "results": self.results,
                    "invocations": self.invocations,
                }
            ],
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


def assemble(entries: Iterable[Tuple[str, ScanReport, bool]], **tool) -> Dict[str, Any]:
    """Build a SARIF document from (scanner identity, scan report, required) triples, in order."""
    sarif = SarifReport(**tool)
    for scanner, report, required in entries:
        sarif.add_scan(report, required=required, scanner=scanner)
    return sarif.to_dict()
