"""
Snapshot reader.

A snapshot directory is produced by the capture step and holds:
  - instance.var / instance.json   instance identity
  - <manifest>.json                ordered [{Id, Name}, ...] per category
  - <prefix>_<token>.json          content of one resource

Reading is strict: an absent or empty file that the manifests reference
aborts the run, since a silently skipped resource would produce an
incomplete migration plan.
"""

from __future__ import annotations

import json
import logging
import os
import shlex
from typing import Any, Dict, List, Optional, Tuple, Union

from .errors import MissingOrEmptyInput
from .models import (
    CATEGORY_ORDER,
    Category,
    InstanceIdentity,
    ResourceRecord,
    Snapshot,
    spec_for,
)
from .naming import content_filename

__all__ = ["load_snapshot", "read_var_file", "read_identity"]

Logger = Union[logging.Logger, logging.LoggerAdapter]

INSTANCE_VAR = "instance.var"
INSTANCE_JSON = "instance.json"

# instance.var key -> InstanceIdentity field
_VAR_KEYS = {
    "instance_id": "instance_id",
    "instance_arn": "instance_arn",
    "instance_alias": "alias",
    "profile": "profile",
    "contact_flow_prefix": "flow_prefix",
}

# instance.json key -> InstanceIdentity field
_JSON_KEYS = {
    "Id": "instance_id",
    "Arn": "instance_arn",
    "InstanceAlias": "alias",
}


def _require_file(path: str) -> str:
    if not os.path.isfile(path):
        raise MissingOrEmptyInput(path, "missing")
    if os.path.getsize(path) == 0:
        raise MissingOrEmptyInput(path, "empty")
    return path


def _read_json(path: str) -> Any:
    _require_file(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as exc:
        raise MissingOrEmptyInput(path, f"not valid JSON ({exc.msg})") from exc
    except UnicodeDecodeError as exc:
        raise MissingOrEmptyInput(path, f"unparseable, not UTF-8 ({exc.reason})") from exc


def read_var_file(path: str) -> Dict[str, str]:
    """Parse a `key=value` file; values may be shell-quoted, `#` starts a comment."""
    out: Dict[str, str] = {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            lines = f.read().splitlines()
    except UnicodeDecodeError as exc:
        raise MissingOrEmptyInput(path, f"unparseable, not UTF-8 ({exc.reason})") from exc
    for lineno, line in enumerate(lines, start=1):
        try:
            tokens = shlex.split(line, comments=True)
        except ValueError as exc:
            raise MissingOrEmptyInput(path, f"unparseable line {lineno} ({exc})") from exc
        for token in tokens:
            key, sep, value = token.partition("=")
            if sep and key:
                out[key.strip()] = value
    return out


def read_identity(root_dir: str) -> InstanceIdentity:
    """
    Resolve instance identity from instance.var, filling gaps from instance.json.
    At least one of the two files must exist; id and ARN are mandatory.
    """
    var_path = os.path.join(root_dir, INSTANCE_VAR)
    json_path = os.path.join(root_dir, INSTANCE_JSON)
    fields: Dict[str, str] = {}

    has_var = os.path.isfile(var_path) and os.path.getsize(var_path) > 0
    has_json = os.path.isfile(json_path) and os.path.getsize(json_path) > 0
    if not has_var and not has_json:
        raise MissingOrEmptyInput(var_path, "missing")

    if has_var:
        for key, value in read_var_file(var_path).items():
            target = _VAR_KEYS.get(key)
            if target and value:
                fields[target] = value

    if has_json:
        data = _read_json(json_path)
        if isinstance(data, dict) and isinstance(data.get("Instance"), dict):
            data = data["Instance"]
        if isinstance(data, dict):
            for key, target in _JSON_KEYS.items():
                value = data.get(key)
                if value and target not in fields:
                    fields[target] = str(value)

    source = var_path if has_var else json_path
    for required in ("instance_id", "instance_arn"):
        if not fields.get(required):
            raise MissingOrEmptyInput(source, f"missing '{required}'")

    identity = InstanceIdentity(**fields)
    if not identity.region or not identity.account_id:
        raise MissingOrEmptyInput(source, f"malformed instance_arn '{identity.instance_arn}'")
    return identity


def _extract_items(payload: Any) -> Optional[List[Dict[str, Any]]]:
    """
    Accept either:
      - [...]
      - {"items": [...]} or {"<Something>SummaryList": [...]}
    Return None if the structure is unknown.
    """
    if isinstance(payload, list):
        return list(payload)
    if isinstance(payload, dict):
        if isinstance(payload.get("items"), list):
            return list(payload["items"])
        for key, value in payload.items():
            if key.endswith("SummaryList") and isinstance(value, list):
                return list(value)
    return None


def _read_manifest(root_dir: str, category: Category) -> List[Tuple[str, str]]:
    path = os.path.join(root_dir, spec_for(category).manifest_file)
    items = _extract_items(_read_json(path))
    if items is None:
        raise MissingOrEmptyInput(path, "not a list of {Id, Name} summaries")
    entries: List[Tuple[str, str]] = []
    for pos, item in enumerate(items):
        if not isinstance(item, dict) or not item.get("Id") or item.get("Name") in (None, ""):
            raise MissingOrEmptyInput(path, f"entry #{pos} lacks Id or Name")
        entries.append((str(item["Id"]), str(item["Name"])))
    return entries


def _load_category(root_dir: str, category: Category) -> Tuple[ResourceRecord, ...]:
    spec = spec_for(category)
    records: List[ResourceRecord] = []
    for rid, name in _read_manifest(root_dir, category):
        content_path = None
        facet_paths: Dict[str, str] = {}
        if spec.has_content:
            content_path = _require_file(os.path.join(root_dir, content_filename(spec.tag, name)))
            for facet in spec.facets:
                facet_paths[facet] = _require_file(os.path.join(root_dir, content_filename(facet, name)))
        records.append(
            ResourceRecord(
                id=rid,
                name=name,
                category=category,
                content_path=content_path,
                facet_paths=facet_paths,
            )
        )
    return tuple(records)


def load_snapshot(root_dir: str, alias: Optional[str] = None, logger: Optional[Logger] = None) -> Snapshot:
    """Read one snapshot directory into an immutable Snapshot."""
    log = logger or logging.getLogger(__name__)
    if not os.path.isdir(root_dir):
        raise MissingOrEmptyInput(root_dir, "missing")

    identity = read_identity(root_dir)
    records = {category: _load_category(root_dir, category) for category in CATEGORY_ORDER}
    resolved_alias = alias or identity.alias or os.path.basename(os.path.normpath(root_dir))

    log.debug(
        "Snapshot loaded: alias=%s root=%s counts=%s",
        resolved_alias,
        root_dir,
        {c.value: len(r) for c, r in records.items()},
    )
    return Snapshot(alias=resolved_alias, root_dir=root_dir, identity=identity, records=records)
