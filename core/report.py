# core/report.py
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

import httpx

from core.plugins import ScanReport
from core.sarif import SarifReport
from core.util import dump_yaml, ensure_dir, log

REPORT_FORMATS = ("txt", "json", "yaml", "sarif")
POST_TIMEOUT = 30.0
CONTENT_TYPES = {
    "txt": "text/plain",
    "json": "application/json",
    "yaml": "text/x-yaml",
    "sarif": "application/sarif+json",
}


class Report:
    """All scan reports of one run plus project metadata; renders every output format."""

    def __init__(self, project_name: Optional[str] = None, custom_info: Any = None,
                 config: Optional[Dict[str, Any]] = None, builds: Optional[Dict[str, Any]] = None):
        self.project_name = project_name
        self.custom_info = custom_info
        self.config = config or {}
        self.builds = builds or {}
        self.scan_reports: List[Tuple[ScanReport, bool]] = []
        self.errors: List[str] = []

    def add_scan_report(self, scan_report: ScanReport, required: bool) -> None:
        self.scan_reports.append((scan_report, required))

    def error(self, message: str) -> None:
        self.errors.append(message)

    def passed(self) -> bool:
        return all(r.passed() for r, required in self.scan_reports if required)

    def to_h(self, verbose: bool = False) -> Dict[str, Any]:
        scans = {}
        for r, required in self.scan_reports:
            h = r.to_h()
            h["required"] = required
            if not verbose:
                h.pop("info", None)
            scans[r.scanner] = h
        out = {
            "project_name": self.project_name,
            "passed": self.passed(),
            "scans": scans,
            "errors": self.errors,
            "custom_info": self.custom_info,
            "builds": self.builds,
        }
        if verbose:
            out["config"] = self.config
        return {k: v for k, v in out.items() if v is not None}

    def to_txt(self, verbose: bool = False) -> str:
        lines = [f"==== Scan report for {self.project_name or '(unnamed project)'}"]
        lines.append(f"Overall scan status: {'PASSED' if self.passed() else 'FAILED'}")
        for r, required in self.scan_reports:
            tag = "enforced" if required else "not enforced"
            lines.append("")
            lines.append(f"==== {r.scanner}: {r.status.value.upper()} ({tag}) in {r.running_time:.2f}s")
            for issue in r.issues:
                lines.append("  - " + ", ".join(f"{k}={v}" for k, v in issue.items()))
            for err in r.errors:
                lines.append(f"  ! {err}")
            if verbose and r.info:
                lines.append("  info: " + json.dumps(r.info, sort_keys=True, default=str))
        for err in self.errors:
            lines.append(f"! {err}")
        return "\n".join(lines) + "\n"

    def to_json(self, verbose: bool = False) -> str:
        return json.dumps(self.to_h(verbose=verbose), indent=2, ensure_ascii=False, default=str)

    def to_yaml(self, verbose: bool = False) -> str:
        return dump_yaml(json.loads(self.to_json(verbose=verbose)))

    def to_sarif(self) -> str:
        sarif = SarifReport()
        for r, required in self.scan_reports:
            sarif.add_scan(r, required=required)
        return sarif.to_json()

    def render(self, fmt: str, verbose: bool = False) -> str:
        if fmt not in REPORT_FORMATS:
            raise ValueError(f"unknown report format {fmt!r}; expected one of {REPORT_FORMATS}")
        if fmt == "sarif":
            return self.to_sarif()
        return getattr(self, f"to_{fmt}")(verbose=verbose)

    def export(self, report_uris: Sequence[Dict[str, Any]], base_dir: str = ".",
               client: Optional[httpx.Client] = None) -> List[str]:
        """Write or POST the report to every configured destination; returns the ones that succeeded."""
        delivered = []
        for dest in report_uris:
            uri = dest.get("uri")
            fmt = dest.get("format", "json")
            try:
                if not uri:
                    raise ValueError("report destination has no 'uri'")
                body = self.render(fmt, verbose=bool(dest.get("verbose", False)))
                self._deliver(uri, fmt, body, base_dir, client)
                delivered.append(uri)
                log(f"[report] wrote {fmt} report → {uri}")
            except (OSError, ValueError, httpx.HTTPError) as e:
                log(f"[report][WARN] could not deliver report to {uri}: {e}")
                self.error(f"report delivery to {uri} failed: {e}")
        return delivered

    def _deliver(self, uri: str, fmt: str, body: str, base_dir: str,
                 client: Optional[httpx.Client]) -> None:
        parsed = urlparse(uri)
        scheme = parsed.scheme.lower()
        if scheme in ("http", "https"):
            headers = {"Content-Type": CONTENT_TYPES[fmt]}
            if client is not None:
                resp = client.post(uri, content=body, headers=headers)
            else:
                resp = httpx.post(uri, content=body, headers=headers, timeout=POST_TIMEOUT)
            resp.raise_for_status()
            return
        if scheme == "file":
            path = Path(base_dir) / (parsed.netloc + parsed.path).lstrip("/")
        elif scheme == "":
            path = Path(base_dir) / uri
        else:
            raise ValueError(f"unsupported report URI scheme {scheme!r}")
        ensure_dir(str(path.parent))
        path.write_text(body, encoding="utf-8")
