# core/registry.py
from __future__ import annotations
import importlib.util, inspect, sys, types
from pathlib import Path
from typing import Dict, List, Optional, Type, Set

from core.plugins import ScannerPlugin
from core.util import log

def _norm_set(s: str) -> Set[str]:
    s = (s or "").strip()
    if not s:
        return set()
    variants = {
        s,
        s.lower(),
        s.replace("-", "_"),
        s.replace("-", "_").lower(),
    }
    return variants

def _import_module(mod_name: str, file_path: str) -> types.ModuleType:
    if mod_name in sys.modules:
        return sys.modules[mod_name]
    spec = importlib.util.spec_from_file_location(mod_name, file_path)
    if not spec or not spec.loader:
        raise ImportError(f"Cannot load spec for {file_path}")
    mod = importlib.util.module_from_spec(spec)
    sys.modules[mod_name] = mod
    spec.loader.exec_module(mod)  # type: ignore[attr-defined]
    return mod

def _is_concrete(cls) -> bool:
    return (inspect.isclass(cls) and issubclass(cls, ScannerPlugin)
            and cls is not ScannerPlugin and cls.name != "abstract")

def load_plugins(plugins_dir: str = "./plugins") -> Dict[str, Type[ScannerPlugin]]:
    """
    Load all concrete ScannerPlugin subclasses from plugins/*.py and register aliases:
      - declared class 'name' (the scanner identity used in configuration)
      - filename stem (e.g., semgrep for semgrep.py)
      - class name itself (e.g., SemgrepPlugin)
    All with lowercase and hyphen->underscore variants.
    Classes that keep name == "abstract" (shared bases such as NodeAuditPlugin) are skipped.
    """
    out: Dict[str, Type[ScannerPlugin]] = {}
    pdir = Path(plugins_dir)
    if not pdir.exists():
        log(f"[registry][WARN] plugins dir not found: {pdir.resolve()}")
        return out

    root = str(pdir.resolve().parent)
    if root not in sys.path:
        sys.path.insert(0, root)

    files = sorted([f for f in pdir.glob("*.py") if f.name != "__init__.py"])
    log(f"[registry] Scanning plugins in {pdir.resolve()} — {len(files)} file(s)")

    for fpath in files:
        mod_name = f"{pdir.name}.{fpath.stem}"
        try:
            mod = _import_module(mod_name, str(fpath))
        except Exception as e:
            log(f"[registry][ERROR] import {fpath.name}: {e}")
            continue

        # only classes defined in this module; bases imported from siblings are registered once
        classes = [obj for _, obj in inspect.getmembers(mod, _is_concrete)
                   if obj.__module__ == mod.__name__]
        if not classes:
            continue

        for cls in classes:
            aliases = set()
            aliases |= _norm_set(cls.name)
            aliases |= _norm_set(fpath.stem)
            aliases |= _norm_set(cls.__name__)

            # canonical identity always maps to its class; other aliases keep the first one on collisions
            out[cls.name] = cls
            for k in sorted(aliases):
                if k in out:
                    continue
                out[k] = cls

            log(f"[registry] loaded {cls.__name__} as {sorted(aliases)}")

    log(f"[registry] Total plugins loaded: {len(known_scanners(out))} ({len(out)} aliases)")
    return out

def known_scanners(plugins_map: Dict[str, Type[ScannerPlugin]]) -> List[str]:
    """Canonical scanner identities, i.e. the declared `name` of every registered class."""
    return sorted({cls.name for cls in plugins_map.values()})

def lookup(plugins_map: Dict[str, Type[ScannerPlugin]], plugin_name: str) -> Optional[Type[ScannerPlugin]]:
    return (
        plugins_map.get(plugin_name)
        or plugins_map.get(plugin_name.lower())
        or plugins_map.get(plugin_name.replace("-", "_"))
        or plugins_map.get(plugin_name.replace("-", "_").lower())
    )
