#!/usr/bin/env python3
from __future__ import annotations

import argparse
import importlib
import os
import sys
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional, Sequence

from core.config import ConfigError, EffectiveConfig, resolve
from core.plugins import ScannerPlugin, ScanReport, ScanStatus
from core.registry import known_scanners, load_plugins, lookup
from core.report import REPORT_FORMATS, Report
from core.sources import default_config_uris, load_default_document, load_user_documents
from core.util import log

EXIT_PASSED, EXIT_FAILED, EXIT_CONFIG_ERROR = 0, 1, 2


# --------------------
# helpers
# --------------------
def _import_filter(spec: str) -> Callable[[Dict[str, Any]], Dict[str, Any]]:
    """Resolve 'package.module:callable' into the callable."""
    mod_name, sep, attr = spec.partition(":")
    if not sep or not mod_name or not attr:
        raise ConfigError(f"config filter {spec!r} must look like module:callable")
    try:
        fn = getattr(importlib.import_module(mod_name), attr)
    except (ImportError, AttributeError) as e:
        raise ConfigError(f"cannot load config filter {spec!r}: {e}") from e
    if not callable(fn):
        raise ConfigError(f"config filter {spec!r} is not callable")
    return fn


def build_config(repo_dir: str, config_uris: Sequence[str], ignore_ids: Sequence[str],
                 filter_specs: Sequence[str], scanners: Sequence[str]) -> EffectiveConfig:
    uris = list(config_uris) or default_config_uris(repo_dir)
    filters = [_import_filter(s) for s in filter_specs]
    return resolve(
        load_default_document(),
        load_user_documents(uris, base_dir=repo_dir),
        ignore_ids=ignore_ids,
        filters=filters,
        known_scanners=scanners,
    )


# --------------------
# scanning
# --------------------
def run_scanner(plugin: ScannerPlugin, repo_dir: str, cfg: Dict[str, Any]) -> ScanReport:
    """Run one scanner; exceptions become data on the returned report."""
    started = time.monotonic()
    try:
        plugin.validate_config(cfg)
        log(f"[{plugin.name}] Running ...")
        plugin.prepare(repo_dir, cfg)
        report = plugin.scan(repo_dir, cfg)
        log(f"[{plugin.name}] {report.status.value} with {len(report.issues)} issue(s)")
    except Exception as e:
        log(f"[ERROR] {plugin.name} failed: {e}")
        report = plugin.new_report()
        report.errors.append(f"{e.__class__.__name__}: {e}")
        report.status = ScanStatus.PASSED if cfg.get("pass_on_raise") else ScanStatus.FATAL
    if not report.running_time:
        report.running_time = time.monotonic() - started
    return report


def run_scanners(config: EffectiveConfig, plugins_map: Dict[str, Any], repo_dir: str,
                 jobs: int = 1) -> List[ScanReport]:
    plugins: List[ScannerPlugin] = []
    for name in sorted(config.active_scanners):
        cls = lookup(plugins_map, name)
        if not cls:
            log(f"[WARN] Plugin {name} not found")
            continue
        plugin = cls()
        if not plugin.should_run(repo_dir):
            log(f"[{name}] not applicable to {repo_dir}; skipping")
            continue
        plugins.append(plugin)

    if not plugins:
        log("[WARN] No scanners to run")
        return []

    # results come back in submission order, so report assembly is deterministic
    with ThreadPoolExecutor(max_workers=max(1, jobs)) as pool:
        futures = [pool.submit(run_scanner, p, repo_dir, config.scanner_configs.get(p.name, {}))
                   for p in plugins]
        return [f.result() for f in futures]


def build_report(config: EffectiveConfig, scan_reports: Sequence[ScanReport]) -> Report:
    report = Report(
        project_name=config.project_name,
        custom_info=config.custom_info,
        config=config.to_dict(),
        builds=config.builds,
    )
    for r in scan_reports:
        report.add_scan_report(r, required=config.scanner_enforced(r.scanner))
    return report


# --------------------
# main (orchestrator)
# --------------------
def main(argv: Optional[Sequence[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Run configured security scanners and report their findings")
    ap.add_argument("--repo", default=".", help="Repository to scan")
    ap.add_argument("--config", action="append", default=[],
                    help="Configuration file path or URI (repeatable; later files win)")
    ap.add_argument("--ignore-config-id", action="append", default=[],
                    help="Drop list entries from configuration, as section:id (repeatable)")
    ap.add_argument("--config-filter", action="append", default=[],
                    help="module:callable applied to the merged configuration (repeatable)")
    ap.add_argument("--plugins-dir", default=os.path.join(os.path.dirname(os.path.abspath(__file__)), "plugins"),
                    help="Directory holding scanner plugins")
    ap.add_argument("--jobs", type=int, default=1, help="Scanners to run in parallel")
    ap.add_argument("--format", choices=REPORT_FORMATS, default="txt", help="Report format printed to stdout")
    ap.add_argument("--verbose", action="store_true", help="Include scanner info and config in the report")
    args = ap.parse_args(argv)

    repo_dir = os.path.abspath(args.repo)
    plugins_map = load_plugins(args.plugins_dir)
    scanners = known_scanners(plugins_map)
    log(f"[registry] available scanners: {scanners}")

    try:
        config = build_config(repo_dir, args.config, args.ignore_config_id, args.config_filter, scanners)
    except ConfigError as e:
        log(f"[ERROR] configuration: {e}")
        return EXIT_CONFIG_ERROR

    scan_reports = run_scanners(config, plugins_map, repo_dir, jobs=args.jobs)
    report = build_report(config, scan_reports)
    report.export(config.report_uris, base_dir=repo_dir)
    print(report.render(args.format, verbose=args.verbose))

    passed = report.passed()
    log(f"[report] overall {'PASSED' if passed else 'FAILED'}")
    return EXIT_PASSED if passed else EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
