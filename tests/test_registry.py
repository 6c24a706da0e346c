"""Tests for plugin discovery."""

from __future__ import annotations

from pathlib import Path

from core.registry import known_scanners, load_plugins, lookup

PLUGINS_DIR = Path(__file__).resolve().parent.parent / "plugins"


def test_bundled_plugins_are_registered():
    plugins_map = load_plugins(str(PLUGINS_DIR))
    assert known_scanners(plugins_map) == ["bundle_audit", "npm_audit", "osv_scanner", "semgrep", "yarn_audit"]


def test_abstract_base_is_not_a_scanner():
    plugins_map = load_plugins(str(PLUGINS_DIR))
    assert "node_audit" not in plugins_map
    assert "abstract" not in known_scanners(plugins_map)


def test_lookup_aliases():
    plugins_map = load_plugins(str(PLUGINS_DIR))
    cls = lookup(plugins_map, "npm_audit")
    assert cls.name == "npm_audit"
    assert lookup(plugins_map, "NPMAuditPlugin") is cls
    assert lookup(plugins_map, "osv-scanner").name == "osv_scanner"
    assert lookup(plugins_map, "nope") is None


def test_missing_dir(tmp_path):
    assert load_plugins(str(tmp_path / "absent")) == {}


def test_broken_plugin_is_skipped(tmp_path):
    pdir = tmp_path / "brokenplugins"
    pdir.mkdir()
    (pdir / "bad.py").write_text("raise ImportError('nope')\n")
    (pdir / "good.py").write_text(
        "from core.plugins import ScannerPlugin\n"
        "class GoodPlugin(ScannerPlugin):\n"
        "    name = 'good'\n"
    )
    plugins_map = load_plugins(str(pdir))
    assert known_scanners(plugins_map) == ["good"]
