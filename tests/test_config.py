"""Tests for layered configuration resolution."""

from __future__ import annotations

import pytest

from core.config import (
    DEFAULT_SCANNER_CONFIG,
    ConfigError,
    all_none_some,
    apply_config_filters,
    deep_merge,
    filter_ignored_ids,
    resolve,
    substitute_envars,
)


def test_deep_merge_recurses_into_mappings():
    """Nested mappings merge; scalars and lists are replaced."""
    base = {"a": {"x": 1, "y": [1, 2]}, "b": "keep"}
    override = {"a": {"y": [3], "z": True}}
    merged = deep_merge(base, override)
    assert merged == {"a": {"x": 1, "y": [3], "z": True}, "b": "keep"}


def test_deep_merge_does_not_mutate_inputs():
    base = {"a": {"x": 1}}
    override = {"a": {"x": 2}}
    deep_merge(base, override)
    assert base == {"a": {"x": 1}}
    assert override == {"a": {"x": 2}}


def test_later_documents_win(default_doc, known):
    docs = [{"project_name": "first", "custom_info": {"team": "a", "tier": 1}},
            {"project_name": "second", "custom_info": {"team": "b"}}]
    cfg = resolve(default_doc, docs, known_scanners=known)
    assert cfg.project_name == "second"
    assert cfg.custom_info == {"team": "b", "tier": 1}


def test_filter_ignored_ids_only_drops_matching_mappings():
    doc = {"reports": [{"id": "uri_1", "uri": "file://a"}, {"id": "uri_2", "uri": "file://b"}, "uri_1"]}
    out = filter_ignored_ids(doc, ["reports:uri_1"])
    assert out["reports"] == [{"id": "uri_2", "uri": "file://b"}, "uri_1"]
    # original untouched
    assert len(doc["reports"]) == 3


def test_filter_ignored_ids_ignores_non_list_sections():
    doc = {"builds": {"id": "x"}}
    assert filter_ignored_ids(doc, ["builds:x", "missing:y", "malformed"]) == doc


def test_ignore_ids_applied_before_merge(default_doc, known):
    docs = [{"reports": [{"id": "local", "uri": "file://out.json", "format": "json"},
                         {"id": "central", "uri": "https://example.com/r", "format": "sarif"}]}]
    cfg = resolve(default_doc, docs, ignore_ids=["reports:central"], known_scanners=known)
    assert [r["id"] for r in cfg.report_uris] == ["local"]


def test_filters_run_in_order(default_doc, known):
    """Each filter sees the previous filter's output."""
    calls = []

    def add_name(doc):
        calls.append("add_name")
        return {**doc, "project_name": "filtered"}

    def suffix_name(doc):
        calls.append("suffix_name")
        return {**doc, "project_name": doc["project_name"] + "-x"}

    cfg = resolve(default_doc, [], filters=[add_name, suffix_name], known_scanners=known)
    assert calls == ["add_name", "suffix_name"]
    assert cfg.project_name == "filtered-x"


def test_filter_must_return_mapping():
    with pytest.raises(ConfigError):
        apply_config_filters({}, [lambda doc: None])


def test_substitute_envars():
    doc = {"reports": [{"uri": "https://host/{{REPORT_TOKEN}}"}], "custom_info": "{{UNSET_VAR}}"}
    out = substitute_envars(doc, {"REPORT_TOKEN": "abc123"})
    assert out["reports"][0]["uri"] == "https://host/abc123"
    assert out["custom_info"] == "{{UNSET_VAR}}"


def test_substitution_that_breaks_yaml_is_config_error():
    with pytest.raises(ConfigError):
        substitute_envars({"custom_info": "{{NOTE}}"}, {"NOTE": "it's"})


def test_resolve_rejects_quote_breaking_envar(default_doc, known):
    with pytest.raises(ConfigError):
        resolve(default_doc, [{"custom_info": "{{OWNER}}"}], known_scanners=known,
                environ={"OWNER": "O'Brien"}, substitute_env=True)


def test_envars_skipped_in_test_mode(default_doc, known):
    env = {"RUNNING_SCANMUX_TESTS": "1", "NAME": "replaced"}
    cfg = resolve(default_doc, [{"custom_info": "{{NAME}}"}], known_scanners=known, environ=env)
    assert cfg.custom_info == "{{NAME}}"


def test_envars_substituted_after_filters(default_doc, known):
    def inject(doc):
        return {**doc, "custom_info": {"owner": "{{OWNER}}"}}

    cfg = resolve(default_doc, [], filters=[inject], known_scanners=known, environ={"OWNER": "appsec"})
    assert cfg.custom_info == {"owner": "appsec"}


def test_activation_all_none_some(known):
    assert all_none_some(known, "all") == frozenset(known)
    assert all_none_some(known, "none") == frozenset()
    assert all_none_some(known, ["semgrep", "semgrep", "bundle_audit"]) == {"semgrep", "bundle_audit"}


@pytest.mark.parametrize("value", [None, "some", 3, {"semgrep": True}])
def test_activation_rejects_other_values(known, value):
    with pytest.raises(ConfigError):
        all_none_some(known, value)


def test_activation_rejects_unknown_scanner(known):
    with pytest.raises(ConfigError):
        all_none_some(known, ["semgrep", "not_a_scanner"])


def test_resolve_activation_sets(default_doc, known):
    cfg = resolve(default_doc, [{"active_scanners": ["semgrep"], "enforced_scanners": "none"}],
                  known_scanners=known)
    assert cfg.active_scanners == {"semgrep"}
    assert cfg.enforced_scanners == frozenset()
    assert cfg.scanner_active("semgrep")
    assert not cfg.scanner_enforced("semgrep")

    cfg = resolve(default_doc, [], known_scanners=known)
    assert cfg.active_scanners == frozenset(known)
    assert cfg.enforced_scanners == frozenset(known)


@pytest.mark.parametrize("name", ["has space", "semi;colon", "tab\there"])
def test_invalid_project_name(default_doc, known, name):
    with pytest.raises(ConfigError):
        resolve(default_doc, [{"project_name": name}], known_scanners=known)


def test_project_name_coerced_to_string(default_doc, known):
    cfg = resolve(default_doc, [{"project_name": 42}], known_scanners=known)
    assert cfg.project_name == "42"


def test_every_scanner_gets_default_options(default_doc, known):
    cfg = resolve(default_doc, [{"scanner_configs": {"semgrep": {"pass_on_raise": True, "timeout": 30}}}],
                  known_scanners=known)
    assert cfg.scanner_configs["semgrep"] == {"pass_on_raise": True, "timeout": 30}
    assert cfg.scanner_configs["bundle_audit"] == DEFAULT_SCANNER_CONFIG
    assert cfg.scanner_configs["bundle_audit"] is not DEFAULT_SCANNER_CONFIG


def test_node_audit_aliases_share_options(default_doc, known):
    docs = [{"scanner_configs": {
        "node_audit": {"exceptions": ["1"], "production_only": False},
        "npm_audit": {"production_only": True},
        "yarn_audit": {"exceptions": ["2"]},
    }}]
    cfg = resolve(default_doc, docs, known_scanners=known)
    npm, yarn = cfg.scanner_configs["npm_audit"], cfg.scanner_configs["yarn_audit"]
    assert npm is yarn
    assert npm == {"pass_on_raise": False, "exceptions": ["2"], "production_only": True}
    assert cfg.scanner_configs["node_audit"] is npm


def test_alias_written_under_one_member_reaches_the_other(default_doc, known):
    cfg = resolve(default_doc, [{"scanner_configs": {"yarn_audit": {"exceptions": ["9"]}}}],
                  known_scanners=known)
    assert cfg.scanner_configs["npm_audit"]["exceptions"] == ["9"]


def test_scanner_configs_must_be_mapping(default_doc, known):
    with pytest.raises(ConfigError):
        resolve(default_doc, [{"scanner_configs": ["semgrep"]}], known_scanners=known)


def test_resolve_is_idempotent(default_doc, known):
    docs = [{"project_name": "svc", "active_scanners": ["semgrep", "npm_audit"],
             "scanner_configs": {"npm_audit": {"exceptions": ["1"]}}}]
    first = resolve(default_doc, docs, known_scanners=known)
    second = resolve(default_doc, docs, known_scanners=known)
    assert first.to_dict() == second.to_dict()
    assert first.to_dict()["active_scanners"] == ["npm_audit", "semgrep"]


def test_member_option_not_overwritten_by_defaults(default_doc, known):
    cfg = resolve(default_doc, [{"scanner_configs": {"npm_audit": {"pass_on_raise": True}}}],
                  known_scanners=known)
    assert cfg.scanner_configs["npm_audit"]["pass_on_raise"] is True
    assert cfg.scanner_configs["yarn_audit"]["pass_on_raise"] is True


def test_canonical_alias_option_not_overwritten_by_defaults(default_doc, known):
    cfg = resolve(default_doc, [{"scanner_configs": {"node_audit": {"pass_on_raise": True}}}],
                  known_scanners=known)
    assert cfg.scanner_configs["npm_audit"]["pass_on_raise"] is True
    assert cfg.scanner_configs["yarn_audit"] is cfg.scanner_configs["npm_audit"]
