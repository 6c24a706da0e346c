import os, re, shlex, subprocess, time
from core.plugins import ScannerPlugin

# used when the advisory carries no CVSS score of its own
SEVERITY_SCORES = {"info": 0.0, "low": 3.0, "moderate": 5.0, "medium": 5.0, "high": 7.5, "critical": 9.5}
GHSA_RE = re.compile(r"GHSA(-[23456789cfghjmpqrvwx]{4}){3}")

def severity_score(severity, cvss_score=None) -> float:
    try:
        if cvss_score is not None and float(cvss_score) > 0:
            return float(cvss_score)
    except (TypeError, ValueError):
        pass
    return SEVERITY_SCORES.get(str(severity or "").lower(), 5.0)

def advisory_record(advisory_id, module, title, url, severity, cves=None, cvss_score=None,
                    vulnerable_versions=None, patched_versions=None, description=None) -> dict:
    """
    Shape one advisory into a raw issue record. Advisories with a CVE are keyed by it;
    others fall back to a type of GHSA id (from the URL) or NPM-<advisory id>.
    """
    cve = next((c for c in (cves or []) if str(c).startswith("CVE-")), None)
    rec = {
        "name": module,
        "title": title,
        "description": description,
        "url": url,
        "cvss": severity_score(severity, cvss_score),
        "severity": severity,
        "vulnerable_versions": vulnerable_versions,
        "patched_versions": patched_versions,
        "advisory_id": str(advisory_id) if advisory_id is not None else None,
    }
    if cve:
        rec["cve"] = cve
    else:
        m = GHSA_RE.search(url or "")
        rec = {"type": m.group(0) if m else f"NPM-{advisory_id}", "source": module, **rec}
    return {k: v for k, v in rec.items() if v not in (None, "")}

def exception_ids(c: dict) -> set:
    out = set()
    for e in c.get("exceptions") or []:
        if isinstance(e, dict):
            e = e.get("advisory_id")
        if e is not None:
            out.add(str(e))
    return out

class NodeAuditPlugin(ScannerPlugin):
    """Shared flow for npm/yarn audits; subclasses provide the command and the parser."""
    kind = "SCA"

    def validate_config(self, c):
        # accepted keys:
        #   exceptions: list[str | {advisory_id, changed_by, notes}]
        #   production_only: bool = False
        if not isinstance(c.get("exceptions") or [], list):
            raise ValueError(f"{self.name}.exceptions must be a list")

    def should_run(self, repo_dir):
        return os.path.isfile(os.path.join(repo_dir, self.lockfile))

    def _cmd(self, c) -> list:
        raise NotImplementedError

    def parse_output(self, stdout: str) -> list:
        raise NotImplementedError

    def scan(self, repo_dir, c):
        report = self.new_report()
        cmd = self._cmd(c)
        started = time.monotonic()
        proc = subprocess.run(cmd, cwd=repo_dir, capture_output=True, text=True)
        report.running_time = time.monotonic() - started
        report.info["cmd"] = " ".join(shlex.quote(x) for x in cmd)
        report.info["exit_code"] = proc.returncode

        # audits exit non-zero when advisories exist; only empty output means the tool broke
        if proc.returncode != 0 and not (proc.stdout or "").strip():
            raise RuntimeError(f"{cmd[0]} audit exited {proc.returncode}: {(proc.stderr or '').strip()}")

        ignored = exception_ids(c)
        skipped = []
        for rec in self.parse_output(proc.stdout or ""):
            if rec.get("advisory_id") in ignored or rec.get("cve") in ignored:
                skipped.append(rec.get("advisory_id") or rec.get("cve"))
                continue
            report.add_issue(rec)
        if skipped:
            report.info["exceptions_applied"] = skipped
        return report
