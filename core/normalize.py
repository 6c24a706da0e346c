"""
Turn raw scanner issue records into canonical issues.

Scanner adapters emit plain dicts. Advisory sources carry disjoint identifying
fields (an insecure-source warning has only a `type`, a patched-gem advisory has
a `cve`, older advisories only an `osvdb`), so every record is first classified
into one of the variants below and then normalized by variant.
"""
from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Union

FALLBACK_ID_PREFIX = "UNIDENTIFIED"

# fields that vary per occurrence of a type-keyed record
LOCATION_FIELDS = ("source", "uri")

# label -> raw field, in the order they appear in composed advisory details
ADVISORY_DETAIL_FIELDS = (
    ("Package Name", "name"),
    ("Type", "type"),
    ("Version", "version"),
    ("Advisory Title", "title"),
    ("Description", "description"),
    ("Patched Versions", "patched_versions"),
    ("Unaffected Versions", "unaffected_versions"),
)


@dataclass
class CanonicalIssue:
    id: str
    name: str = ""
    details: str = ""
    score: float = 0.0
    help_url: Optional[str] = None
    uri: Optional[str] = None
    # per-id catalog text; empty means reuse name and details
    rule_name: str = ""
    rule_text: str = ""


@dataclass(frozen=True)
class TypedRecord:
    type: str
    source: Optional[str]
    fields: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CveRecord:
    cve: str
    fields: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class OsvdbRecord:
    osvdb: str
    fields: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class UnidentifiedRecord:
    fields: Dict[str, Any] = field(default_factory=dict)


RawRecord = Union[TypedRecord, CveRecord, OsvdbRecord, UnidentifiedRecord]


def _present(raw: Mapping[str, Any], key: str) -> bool:
    return raw.get(key) not in (None, "")


def classify_record(raw: Mapping[str, Any]) -> RawRecord:
    fields = {str(k): v for k, v in raw.items()}
    if _present(fields, "cve"):
        return CveRecord(cve=str(fields["cve"]), fields=fields)
    if _present(fields, "osvdb"):
        return OsvdbRecord(osvdb=str(fields["osvdb"]), fields=fields)
    if _present(fields, "type"):
        source = fields.get("source")
        return TypedRecord(type=str(fields["type"]), source=None if source is None else str(source), fields=fields)
    return UnidentifiedRecord(fields=fields)


def fallback_id(fields: Mapping[str, Any]) -> str:
    """Stable token for records without any external identifier."""
    digest = hashlib.sha1(json.dumps(fields, sort_keys=True, default=str).encode("utf-8")).hexdigest()
    return f"{FALLBACK_ID_PREFIX}-{digest[:12]}"


def _score(fields: Mapping[str, Any]) -> float:
    value = fields.get("cvss")
    if value is None:
        value = fields.get("score")
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _field_details(fields: Mapping[str, Any]) -> str:
    return "\n".join(f"{k.capitalize()}: {v}" for k, v in fields.items())


def _advisory_details(fields: Mapping[str, Any]) -> str:
    if _present(fields, "details"):
        return str(fields["details"])
    return "\n".join(f"{label}: {fields[key]}" for label, key in ADVISORY_DETAIL_FIELDS if _present(fields, key))


def _common(issue_id: str, fields: Mapping[str, Any], name: str, details: str) -> CanonicalIssue:
    return CanonicalIssue(
        id=issue_id,
        name=name,
        details=details,
        score=_score(fields),
        help_url=fields.get("url") or None,
        uri=fields.get("uri") or None,
    )


def normalize(raw: Mapping[str, Any]) -> CanonicalIssue:
    record = classify_record(raw)
    if isinstance(record, TypedRecord):
        name = f"{record.type} {record.source}" if record.source is not None else record.type
        issue = _common(record.type, record.fields, name, _field_details(record.fields))
        issue.rule_name = record.type
        issue.rule_text = _field_details({k: v for k, v in record.fields.items() if k not in LOCATION_FIELDS})
        return issue
    if isinstance(record, CveRecord):
        return _common(record.cve, record.fields, str(record.fields.get("title") or ""), _advisory_details(record.fields))
    if isinstance(record, OsvdbRecord):
        return _common(record.osvdb, record.fields, str(record.fields.get("title") or ""), _advisory_details(record.fields))
    fields = record.fields
    name = str(fields.get("title") or fields.get("name") or "")
    return _common(fallback_id(fields), fields, name, _advisory_details(fields) or _field_details(fields))


def sarif_level(score: Any) -> str:
    """0 -> note, (0, 7) -> warning, >= 7 -> error. Negative or non-numeric scores are notes."""
    try:
        score = float(score)
    except (TypeError, ValueError):
        return "note"
    if score >= 7:
        return "error"
    if score > 0:
        return "warning"
    return "note"
