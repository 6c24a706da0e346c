"""Shared test fixtures."""

from __future__ import annotations

import pytest

from core.plugins import ScanReport, ScanStatus
from core.sources import load_default_document

KNOWN_SCANNERS = ["bundle_audit", "npm_audit", "osv_scanner", "semgrep", "yarn_audit"]


@pytest.fixture(autouse=True)
def _tests_running(monkeypatch):
    monkeypatch.setenv("RUNNING_SCANMUX_TESTS", "1")
    monkeypatch.delenv("SCANMUX_CONFIGURATION", raising=False)


@pytest.fixture
def known() -> list[str]:
    return list(KNOWN_SCANNERS)


@pytest.fixture
def default_doc() -> dict:
    return load_default_document()


@pytest.fixture
def make_report():
    def _make(scanner: str, issues=None, status: ScanStatus = None, errors=None, lockfile=None) -> ScanReport:
        r = ScanReport(scanner=scanner, lockfile=lockfile)
        for issue in issues or []:
            r.add_issue(issue)
        if status is not None:
            r.status = status
        r.errors.extend(errors or [])
        return r
    return _make
