# plugins/osv_scanner.py
import json, subprocess, os, shlex, time
from core.plugins import ScannerPlugin

LEVEL_SCORES = {"CRITICAL": 9.5, "HIGH": 7.5, "MODERATE": 5.0, "MEDIUM": 5.0, "LOW": 3.0}

def _best_score(v: dict) -> float:
    # severity like: [{"type":"CVSS_V3","score":"9.8"}, ...]; CVSS vectors are not scored here
    best = 0.0
    for s in v.get("severity") or []:
        score = str(s.get("score", "")).upper()
        try:
            cand = float(score)
        except ValueError:
            cand = LEVEL_SCORES.get(score, 0.0)
        best = max(best, cand)
    if not best:
        level = str((v.get("database_specific") or {}).get("severity", "")).upper()
        best = LEVEL_SCORES.get(level, 0.0)
    return best

def parse_results(data: dict) -> list:
    issues = []
    # Current schema: results -> packages[] -> vulnerabilities[]
    for res in data.get("results", []):
        source = (res.get("source") or {}).get("path")
        for pkg in res.get("packages", []):
            meta = pkg.get("package") or {}
            for v in pkg.get("vulnerabilities", []):
                vid = v.get("id", "OSV-UNKNOWN")
                cve = next((a for a in [vid, *(v.get("aliases") or [])] if str(a).startswith("CVE-")), None)
                issue = {
                    "name": meta.get("name"),
                    "version": meta.get("version"),
                    "type": meta.get("ecosystem"),
                    "osvdb": vid,
                    "title": v.get("summary"),
                    "description": (v.get("details") or "").strip() or None,
                    "url": f"https://osv.dev/vulnerability/{vid}",
                    "cvss": _best_score(v),
                    "uri": source,
                }
                if cve:
                    issue["cve"] = cve
                issues.append({k: val for k, val in issue.items() if val is not None})
    return issues

class OSVScannerPlugin(ScannerPlugin):
    name, kind = "osv_scanner", "SCA"

    def validate_config(self, c):
        # accepted keys:
        #   use_docker: bool = True
        #   lockfiles: list[str] = []   # e.g., ["package-lock.json","poetry.lock"]
        #   extra_args: list[str] = []
        if not isinstance(c.get("lockfiles") or [], list):
            raise ValueError("osv_scanner.lockfiles must be a list")

    def _docker_cmd(self, repo_dir, c):
        mount = os.path.abspath(repo_dir)
        base = ["docker","run","--rm","-v",f"{mount}:/src","-w","/src","ghcr.io/google/osv-scanner:latest","scan"]
        args = ["--format","json"]
        lockfiles = c.get("lockfiles") or []
        for lf in lockfiles:
            args += ["-L", lf]
        if not lockfiles:
            args += ["/src"]
        args += c.get("extra_args") or []
        return base + args

    def _local_cmd(self, repo_dir, c):
        base = ["osv-scanner","scan","--format","json"]
        lockfiles = c.get("lockfiles") or []
        for lf in lockfiles:
            base += ["-L", os.path.join(repo_dir, lf)]
        if not lockfiles:
            base += [repo_dir]
        base += c.get("extra_args") or []
        return base

    def scan(self, repo_dir, c):
        report = self.new_report()
        use_docker = c.get("use_docker", True)
        cmd = self._docker_cmd(repo_dir, c) if use_docker else self._local_cmd(repo_dir, c)

        started = time.monotonic()
        proc = subprocess.run(cmd, capture_output=True, text=True)
        report.running_time = time.monotonic() - started
        report.info["cmd"] = " ".join(shlex.quote(x) for x in cmd)
        if proc.returncode not in (0, 1):  # 1 = vulnerabilities found
            raise RuntimeError(f"osv-scanner exited {proc.returncode}: {(proc.stderr or '').strip()}")

        raw = proc.stdout.strip() or "{}"
        # Some versions print non-JSON lines to stdout; try to find the JSON block
        if not raw.startswith("{"):
            idx = raw.find("{")
            raw = raw[idx:] if idx != -1 else "{}"

        for issue in parse_results(json.loads(raw)):
            report.add_issue(issue)
        return report
