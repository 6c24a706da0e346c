import json, os, subprocess, shlex, time
from core.plugins import ScannerPlugin

TYPE_NAMES = {"unpatched_gem": "UnpatchedGem", "insecure_source": "InsecureSource"}

def _cve(advisory: dict):
    aid = advisory.get("id") or ""
    if aid.startswith("CVE-"):
        return aid
    cve = advisory.get("cve")
    return f"CVE-{cve}" if cve else None

def _osvdb(advisory: dict):
    osvdb = advisory.get("osvdb")
    return f"OSVDB-{osvdb}" if osvdb else None

def _cvss(advisory: dict):
    # severity follows the CVSS v2 score only; v3 is carried separately for reference
    return advisory.get("cvss_v2")

def parse_results(data: dict) -> list:
    """Flatten bundler-audit JSON results into raw issue records."""
    issues = []
    for r in (data.get("results") or []):
        rtype = TYPE_NAMES.get(r.get("type"), r.get("type") or "Unknown")
        if rtype == "InsecureSource":
            issues.append({"type": rtype, "source": r.get("source")})
            continue
        gem = r.get("gem") or {}
        adv = r.get("advisory") or {}
        rec = {
            "name": gem.get("name"),
            "version": gem.get("version"),
            "type": rtype,
            "cve": _cve(adv),
            "osvdb": _osvdb(adv),
            "ghsa": adv.get("ghsa"),
            "title": adv.get("title"),
            "description": (adv.get("description") or "").strip() or None,
            "url": adv.get("url"),
            "cvss": _cvss(adv),
            "cvss_v3": adv.get("cvss_v3"),
            "patched_versions": ", ".join(adv.get("patched_versions") or []) or None,
            "unaffected_versions": ", ".join(adv.get("unaffected_versions") or []) or None,
        }
        issues.append({k: v for k, v in rec.items() if v is not None})
    return issues

class BundleAuditPlugin(ScannerPlugin):
    name, kind = "bundle_audit", "SCA"
    lockfile = "Gemfile.lock"

    def validate_config(self, c):
        # accepted keys:
        #   ignore: list[str]       advisory ids passed to --ignore
        #   update: bool = False    refresh the advisory db first
        if not isinstance(c.get("ignore") or [], list):
            raise ValueError("bundle_audit.ignore must be a list of advisory ids")

    def should_run(self, repo_dir):
        return os.path.isfile(os.path.join(repo_dir, self.lockfile))

    def _cmd(self, c):
        cmd = ["bundle-audit", "check", "--format", "json"]
        if c.get("update"):
            cmd.append("--update")
        ignore = c.get("ignore") or []
        if ignore:
            cmd += ["--ignore", *[str(i) for i in ignore]]
        return cmd

    def scan(self, repo_dir, c):
        report = self.new_report()
        cmd = self._cmd(c)
        started = time.monotonic()
        proc = subprocess.run(cmd, cwd=repo_dir, capture_output=True, text=True)
        report.running_time = time.monotonic() - started
        report.info["cmd"] = " ".join(shlex.quote(x) for x in cmd)

        if proc.returncode not in (0, 1):  # 0=clean, 1=vulnerabilities found
            raise RuntimeError(f"bundle-audit exited {proc.returncode}: {(proc.stderr or '').strip()}")

        raw = (proc.stdout or "").strip() or "{}"
        if not raw.startswith("{"):
            i = raw.find("{")
            raw = raw[i:] if i != -1 else "{}"
        data = json.loads(raw)
        report.info["version"] = data.get("version")
        for issue in parse_results(data):
            report.add_issue(issue)
        return report
