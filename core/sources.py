# core/sources.py
"""
Configuration sources.

A source is a bare path (relative to the scanned repo), a file:// URI or an
http(s):// URI. Remote sources let a security team manage enforced scanners
for many repos from one place.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence
from urllib.parse import urlparse

import httpx
import yaml

from core.config import ConfigError
from core.util import log

DEFAULT_CONFIG_PATH = Path(__file__).with_name("default_config.yaml")
LOCAL_CONFIG_NAME = "scanmux.yaml"
CONFIG_URIS_ENVAR = "SCANMUX_CONFIGURATION"
FETCH_TIMEOUT = 30.0


def parse_document(text: str, origin: str = "<string>") -> Dict[str, Any]:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"{origin}: invalid YAML: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{origin}: configuration must be a mapping, got {type(data).__name__}")
    return data


def load_default_document() -> Dict[str, Any]:
    return parse_document(DEFAULT_CONFIG_PATH.read_text(encoding="utf-8"), str(DEFAULT_CONFIG_PATH))


def _fetch_remote(uri: str, client: Optional[httpx.Client]) -> str:
    try:
        if client is not None:
            resp = client.get(uri)
        else:
            resp = httpx.get(uri, timeout=FETCH_TIMEOUT, follow_redirects=True)
    except httpx.HTTPError as e:
        raise ConfigError(f"fetching {uri} failed: {e}") from e
    if resp.status_code >= 400:
        raise ConfigError(f"fetching {uri} failed with HTTP {resp.status_code}")
    return resp.text


def fetch_source(uri: str, base_dir: str = ".", client: Optional[httpx.Client] = None) -> str:
    """Return the raw text behind a configuration source."""
    parsed = urlparse(uri)
    scheme = parsed.scheme.lower()
    if scheme in ("http", "https"):
        log(f"[config] fetching {uri}")
        return _fetch_remote(uri, client)
    if scheme == "file":
        path = Path(base_dir) / (parsed.netloc + parsed.path).lstrip("/")
    elif scheme == "":
        path = Path(base_dir) / uri
    else:
        raise ConfigError(f"unsupported configuration URI scheme {scheme!r} in {uri}")
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"cannot read configuration {path}: {e}") from e


def config_uris_from_env(environ: Mapping[str, str] = os.environ) -> List[str]:
    return (environ.get(CONFIG_URIS_ENVAR) or "").split()


def default_config_uris(repo_dir: str, environ: Mapping[str, str] = os.environ) -> List[str]:
    uris = config_uris_from_env(environ)
    if uris:
        return uris
    if (Path(repo_dir) / LOCAL_CONFIG_NAME).is_file():
        return [LOCAL_CONFIG_NAME]
    return []


def load_user_documents(uris: Sequence[str], base_dir: str = ".",
                        client: Optional[httpx.Client] = None) -> List[Dict[str, Any]]:
    docs = []
    for uri in uris:
        docs.append(parse_document(fetch_source(uri, base_dir, client=client), uri))
    log(f"[config] loaded {len(docs)} configuration source(s)")
    return docs
