import json
from plugins.node_audit import NodeAuditPlugin, advisory_record

def parse_yarn_audit(stdout: str) -> list:
    """Yarn classic prints one JSON object per line; only auditAdvisory lines carry findings."""
    out, seen = [], set()
    for line in stdout.splitlines():
        line = line.strip()
        if not line.startswith("{"):
            continue
        try:
            event = json.loads(line)
        except ValueError:
            continue
        if event.get("type") != "auditAdvisory":
            continue
        adv = (event.get("data") or {}).get("advisory") or {}
        if adv.get("id") in seen:
            continue
        seen.add(adv.get("id"))
        out.append(advisory_record(
            advisory_id=adv.get("id"),
            module=adv.get("module_name"),
            title=adv.get("title"),
            url=adv.get("url"),
            severity=adv.get("severity"),
            cves=adv.get("cves") or [],
            cvss_score=(adv.get("cvss") or {}).get("score"),
            vulnerable_versions=adv.get("vulnerable_versions"),
            patched_versions=adv.get("patched_versions"),
            description=adv.get("overview"),
        ))
    return out

class YarnAuditPlugin(NodeAuditPlugin):
    name = "yarn_audit"
    lockfile = "yarn.lock"

    def _cmd(self, c):
        cmd = ["yarn", "audit", "--json", "--no-progress"]
        if c.get("production_only"):
            cmd += ["--groups", "dependencies"]
        return cmd

    def parse_output(self, stdout):
        return parse_yarn_audit(stdout)
