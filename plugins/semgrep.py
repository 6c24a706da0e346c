import os, json, subprocess, shlex, time
from core.plugins import ScannerPlugin

DEFAULT_CONFIGS = ["p/owasp-top-ten"]   # add more via config.configs
DEFAULT_TIMEOUT = 180                   # seconds
SEVERITY_SCORES = {"info": 0.0, "warning": 5.0, "error": 7.5}

def parse_results(data: dict) -> list:
    """Semgrep findings keyed by check id, located at the matched file."""
    issues = []
    for r in (data.get("results") or []):
        path = r.get("path")
        line = (r.get("start") or {}).get("line")
        extra = r.get("extra") or {}
        sev = (extra.get("severity") or "warning").lower()
        issue = {
            "type": r.get("check_id", "semgrep-unknown"),
            "source": f"{path}:{line}" if line else path,
            "message": (extra.get("message") or "").strip(),
            "severity": sev,
            "cvss": SEVERITY_SCORES.get(sev, 5.0),
            "uri": path,
        }
        issues.append({k: v for k, v in issue.items() if v not in (None, "")})
    return issues

class SemgrepPlugin(ScannerPlugin):
    name, kind = "semgrep", "SAST"

    def validate_config(self, c):
        # Accepted keys:
        #   configs: list[str]      (e.g., ["p/owasp-top-ten","p/r2c-security-audit"])
        #   include: list[str]      (globs)
        #   exclude: list[str]      (globs)
        #   no_git: bool            (force --no-git)
        #   timeout: int            (seconds; default 180)
        #   extra_args: list[str]   (advanced)
        for key in ("configs", "include", "exclude", "extra_args"):
            if not isinstance(c.get(key) or [], list):
                raise ValueError(f"semgrep.{key} must be a list")

    def _is_git_repo(self, repo_dir: str) -> bool:
        git_path = os.path.join(repo_dir, ".git")
        return os.path.isdir(git_path) or os.path.isfile(git_path)

    def _cmd(self, repo_dir: str, c: dict) -> list[str]:
        cmd = ["semgrep", "scan", "--json"]
        for cfg in c.get("configs") or DEFAULT_CONFIGS:
            cmd += ["-c", cfg]
        timeout = int(c.get("timeout", DEFAULT_TIMEOUT))
        cmd += ["--timeout", str(timeout)]
        for inc in c.get("include") or []:
            cmd += ["--include", inc]
        for exc in c.get("exclude") or []:
            cmd += ["--exclude", exc]
        if c.get("no_git", False) or not self._is_git_repo(repo_dir):
            cmd.append("--no-git")
        cmd += (c.get("extra_args") or [])
        cmd.append(repo_dir)
        return cmd

    def scan(self, repo_dir: str, c: dict):
        report = self.new_report()
        cmd = self._cmd(repo_dir, c)

        # Make sure semgrep has a writable HOME
        env = os.environ.copy()
        env.setdefault("HOME", repo_dir)
        env.setdefault("SEMGREP_USER_HOME", os.path.join(env["HOME"], ".semgrep"))
        os.makedirs(env["SEMGREP_USER_HOME"], exist_ok=True)

        started = time.monotonic()
        proc = subprocess.run(cmd, check=True, capture_output=True, text=True, env=env)
        report.running_time = time.monotonic() - started
        report.info["cmd"] = " ".join(shlex.quote(x) for x in cmd)
        raw = (proc.stdout or "").strip()

        # Strip any banner before JSON
        if not raw.startswith("{"):
            i = raw.find("{")
            raw = raw[i:] if i != -1 else "{}"

        try:
            data = json.loads(raw or "{}")
        except ValueError:
            report.fail("semgrep produced non-JSON output")
            report.info["raw"] = raw[:2000]
            return report

        for err in (data.get("errors") or []):
            report.errors.append(str(err.get("message") or err))
        for issue in parse_results(data):
            report.add_issue(issue)
        return report
