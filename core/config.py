# core/config.py
"""
Configuration resolution.

Configuration comes from a built-in default document plus any number of user
documents (local files or fetched URIs, see core.sources). Later documents win
over earlier ones key by key. The merged document is passed through the filter
chain, then {{ENVAR}} references are substituted, and finally the activation
sets and per-scanner option dictionaries are derived.
"""
from __future__ import annotations

import copy
import os
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence

import yaml

from core.util import dump_yaml, log, parse_yaml

ConfigFilter = Callable[[Dict[str, Any]], Dict[str, Any]]

# strong default - if a scanner raises, it counts as failure
DEFAULT_SCANNER_CONFIG: Dict[str, Any] = {"pass_on_raise": False}

# package-manager flavours of one audit capability share a single option dict
ALIASED_SCANNER_GROUPS: Dict[str, tuple] = {
    "node_audit": ("npm_audit", "yarn_audit"),
}

TEST_MODE_ENVAR = "RUNNING_SCANMUX_TESTS"
ENVAR_REF = re.compile(r"\{\{([_a-zA-Z0-9]+)\}\}")
BAD_NAME = re.compile(r"[\s;]")


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class EffectiveConfig:
    project_name: Optional[str] = None
    custom_info: Any = None
    report_uris: List[Dict[str, Any]] = field(default_factory=list)
    builds: Dict[str, Any] = field(default_factory=dict)
    active_scanners: FrozenSet[str] = frozenset()
    enforced_scanners: FrozenSet[str] = frozenset()
    scanner_configs: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def scanner_active(self, name: str) -> bool:
        return name in self.active_scanners

    def scanner_enforced(self, name: str) -> bool:
        return name in self.enforced_scanners

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "active_scanners": sorted(self.active_scanners),
            "enforced_scanners": sorted(self.enforced_scanners),
            "scanner_configs": self.scanner_configs,
            "project_name": self.project_name,
            "custom_info": self.custom_info,
            "report_uris": self.report_uris,
            "builds": self.builds,
        }
        return {k: v for k, v in out.items() if v is not None}


def deep_merge(base: Any, override: Any) -> Any:
    """
    Return a new value with `override` merged over `base`.
    Mappings merge recursively; anything else in `override` replaces `base`.
    Neither input is mutated.
    """
    if isinstance(base, Mapping) and isinstance(override, Mapping):
        out = {k: copy.deepcopy(v) for k, v in base.items()}
        for k, v in override.items():
            out[k] = deep_merge(out[k], v) if k in out else copy.deepcopy(v)
        return out
    return copy.deepcopy(override)


def filter_ignored_ids(document: Dict[str, Any], ignore_ids: Iterable[str]) -> Dict[str, Any]:
    """
    Drop list entries matching "section:id" rules, e.g. "reports:uri_1" removes
    {"id": "uri_1", ...} from the top-level `reports` list. Only mapping
    elements carrying a matching `id` are removed.
    """
    out = dict(document)
    for rule in ignore_ids:
        section, sep, ident = str(rule).partition(":")
        if not sep:
            log(f"[config][WARN] ignoring malformed ignore id {rule!r} (expected section:id)")
            continue
        entries = out.get(section)
        if not isinstance(entries, list):
            continue
        out[section] = [
            e for e in entries
            if not (isinstance(e, Mapping) and e.get("id") == ident)
        ]
    return out


def apply_config_filters(document: Dict[str, Any], filters: Sequence[ConfigFilter]) -> Dict[str, Any]:
    for flt in filters:
        document = flt(document)
        if not isinstance(document, dict):
            raise ConfigError(f"config filter {getattr(flt, '__name__', flt)!r} did not return a mapping")
    return document


def substitute_envars(document: Dict[str, Any], environ: Mapping[str, str]) -> Dict[str, Any]:
    """Replace {{NAME}} references with environment values; unknown names are left as-is."""
    text = dump_yaml(document)
    for name in sorted(set(ENVAR_REF.findall(text))):
        value = environ.get(name)
        if value is not None:
            text = text.replace("{{" + name + "}}", value)
    try:
        data = parse_yaml(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"environment substitution produced invalid YAML: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"environment substitution produced a {type(data).__name__}, not a mapping")
    return data


def all_none_some(superset: Iterable[str], subset: Any, key: str = "scanners") -> FrozenSet[str]:
    superset = frozenset(superset)
    if subset == "all":
        return superset
    if subset == "none":
        return frozenset()
    if isinstance(subset, list):
        chosen = frozenset(str(s) for s in subset)
        unknown = chosen - superset
        if unknown:
            raise ConfigError(f"{key}: unknown scanner(s) {sorted(unknown)}; known: {sorted(superset)}")
        return chosen
    raise ConfigError(f"{key} must be 'all', 'none' or a list of scanners, got {subset!r}")


def valid_name(name: Optional[str]) -> bool:
    if name is None:
        return True
    return not BAD_NAME.search(name)


def apply_default_scanner_config(scanner_configs: Mapping[str, Any], known: Iterable[str]) -> Dict[str, Dict[str, Any]]:
    out: Dict[str, Dict[str, Any]] = {k: v for k, v in scanner_configs.items()}
    for scanner in known:
        user = out.get(scanner) or {}
        if not isinstance(user, Mapping):
            raise ConfigError(f"scanner_configs.{scanner} must be a mapping, got {type(user).__name__}")
        out[scanner] = deep_merge(DEFAULT_SCANNER_CONFIG, user)
    return out


def consolidate_aliases(scanner_configs: Dict[str, Dict[str, Any]],
                        groups: Mapping[str, Sequence[str]] = ALIASED_SCANNER_GROUPS) -> Dict[str, Dict[str, Any]]:
    """
    Merge every member's options into the canonical entry and hand the same
    dict back to each member, so npm_audit and yarn_audit see one config no
    matter which key the user wrote.
    """
    for canonical, members in groups.items():
        if not any(k in scanner_configs for k in (canonical, *members)):
            continue
        merged = scanner_configs.get(canonical) or {}
        for m in members:
            merged = deep_merge(merged, scanner_configs.get(m) or {})
        scanner_configs[canonical] = merged
        for m in members:
            scanner_configs[m] = merged
    return scanner_configs


def resolve(default_document: Mapping[str, Any],
            user_documents: Sequence[Mapping[str, Any]] = (),
            ignore_ids: Sequence[str] = (),
            filters: Sequence[ConfigFilter] = (),
            known_scanners: Iterable[str] = (),
            environ: Optional[Mapping[str, str]] = None,
            substitute_env: Optional[bool] = None) -> EffectiveConfig:
    environ = os.environ if environ is None else environ
    if substitute_env is None:
        substitute_env = not environ.get(TEST_MODE_ENVAR)
    known = sorted(set(known_scanners))

    final = deep_merge({}, default_document)
    for doc in user_documents:
        final = deep_merge(final, filter_ignored_ids(doc or {}, ignore_ids))

    final = apply_config_filters(final, filters)
    if substitute_env:
        final = substitute_envars(final, environ)

    project_name = final.get("project_name")
    project_name = None if project_name is None else str(project_name)
    if not valid_name(project_name):
        raise ConfigError(f"project name {project_name!r} cannot contain spaces or ;")

    active = all_none_some(known, final.get("active_scanners"), "active_scanners")
    enforced = all_none_some(known, final.get("enforced_scanners"), "enforced_scanners")

    user_scanner_configs = final.get("scanner_configs") or {}
    if not isinstance(user_scanner_configs, Mapping):
        raise ConfigError("scanner_configs must be a mapping of scanner name to options")
    # aliases are unified on the user's options first, so seeded defaults never
    # override a value written under another member's key
    user_scanner_configs = consolidate_aliases(dict(user_scanner_configs))
    scanner_configs = apply_default_scanner_config(user_scanner_configs, known)
    scanner_configs = consolidate_aliases(scanner_configs)

    reports = final.get("reports") or []
    if not isinstance(reports, list) or not all(isinstance(r, Mapping) for r in reports):
        raise ConfigError("reports must be a list of {uri, format} mappings")
    builds = final.get("builds") or {}
    if not isinstance(builds, Mapping):
        raise ConfigError("builds must be a mapping")

    log(f"[config] active={sorted(active)} enforced={sorted(enforced)}")
    return EffectiveConfig(
        project_name=project_name,
        custom_info=final.get("custom_info"),
        report_uris=[dict(r) for r in reports],
        builds=dict(builds),
        active_scanners=active,
        enforced_scanners=enforced,
        scanner_configs=scanner_configs,
    )
