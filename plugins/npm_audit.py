import json
from plugins.node_audit import NodeAuditPlugin, advisory_record

def parse_npm_audit(data: dict) -> list:
    """npm >= 7 shape: vulnerabilities{pkg -> {via: [advisory | pkg name]}}; each advisory reported once."""
    out, seen = [], set()
    for pkg_name, vuln in (data.get("vulnerabilities") or {}).items():
        for via in (vuln.get("via") or []):
            if not isinstance(via, dict):
                continue  # transitive pointer to another package entry
            key = via.get("source") or via.get("url")
            if key in seen:
                continue
            seen.add(key)
            out.append(advisory_record(
                advisory_id=via.get("source"),
                module=via.get("name") or pkg_name,
                title=via.get("title"),
                url=via.get("url"),
                severity=via.get("severity"),
                cves=via.get("cves") or [],
                cvss_score=(via.get("cvss") or {}).get("score"),
                vulnerable_versions=via.get("range"),
            ))
    return out

class NPMAuditPlugin(NodeAuditPlugin):
    name = "npm_audit"
    lockfile = "package-lock.json"

    def _cmd(self, c):
        cmd = ["npm", "audit", "--json"]
        if c.get("production_only"):
            cmd.append("--omit=dev")
        return cmd

    def parse_output(self, stdout):
        raw = stdout.strip() or "{}"
        data = json.loads(raw)
        if "error" in data:
            raise RuntimeError(f"npm audit error: {data['error'].get('summary') if isinstance(data['error'], dict) else data['error']}")
        return parse_npm_audit(data)
