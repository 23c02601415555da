"""
Helper bundle: the output of one reconciliation run.

Lifecycle:
  load_snapshot(A), load_snapshot(B) -> reconcile per category (fixed order)
  -> build_rules -> HelperBundle -> write_bundle

The bundle is assembled in memory and serialized once. Files are written to
a staging directory beside the target which is renamed into place, so the
target either holds a complete bundle or does not exist.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import tempfile
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Union

from .errors import DirectoryConflict
from .models import CATEGORY_ORDER, Existing, MatchOutcome, Snapshot
from .reconciler import DuplicatePolicy, partition, reconcile
from .rules import (
    DEFAULT_SEPARATORS,
    RuleContext,
    SubstitutionRule,
    build_rules,
    choose_separator,
    format_rule_script,
)
from .snapshot import load_snapshot

__all__ = [
    "HelperBundle",
    "FLOW_TEMPLATE",
    "MODULE_TEMPLATE",
    "build_bundle",
    "render_files",
    "write_bundle",
    "run_diff",
]

Logger = Union[logging.Logger, logging.LoggerAdapter]

VAR_FILE = "helper.var"
NEW_FILE = "helper.new"
OLD_FILE = "helper.old"
RULE_FILE = "helper.sed"
FLOW_TEMPLATE_FILE = "flow_template.json"
MODULE_TEMPLATE_FILE = "module_template.json"

# Empty resources for authoring new flows/modules: a single terminal action.
FLOW_TEMPLATE = """{
  "Version": "2019-10-30",
  "StartAction": "00000000-0000-4000-8000-000000000001",
  "Metadata": {
    "entryPointPosition": {"x": 40, "y": 40},
    "ActionMetadata": {
      "00000000-0000-4000-8000-000000000001": {"position": {"x": 200, "y": 40}}
    }
  },
  "Actions": [
    {
      "Identifier": "00000000-0000-4000-8000-000000000001",
      "Type": "DisconnectParticipant",
      "Parameters": {},
      "Transitions": {}
    }
  ]
}
"""

MODULE_TEMPLATE = """{
  "Version": "2019-10-30",
  "StartAction": "00000000-0000-4000-8000-000000000002",
  "Metadata": {
    "entryPointPosition": {"x": 40, "y": 40},
    "ActionMetadata": {
      "00000000-0000-4000-8000-000000000002": {"position": {"x": 200, "y": 40}}
    }
  },
  "Actions": [
    {
      "Identifier": "00000000-0000-4000-8000-000000000002",
      "Type": "EndFlowModuleExecution",
      "Parameters": {},
      "Transitions": {}
    }
  ],
  "Settings": {
    "InputParameters": [],
    "OutputParameters": [],
    "Transitions": [
      {"DisplayName": "Success", "ReferenceName": "Success", "Description": ""},
      {"DisplayName": "Error", "ReferenceName": "Error", "Description": ""}
    ]
  }
}
"""


@dataclass
class HelperBundle:
    """In-memory aggregate of one run; serialized by `render_files`."""
    variables: Dict[str, str]
    new_list: List[str]
    existing_list: List[str]
    rules: List[SubstitutionRule]
    separator: str

    @property
    def counts(self) -> Dict[str, int]:
        return {"NEW": len(self.new_list), "EXISTING": len(self.existing_list), "RULES": len(self.rules)}


def _variables(ctx: RuleContext, snapshot_a: Snapshot, snapshot_b: Snapshot, separator: str) -> Dict[str, str]:
    a, b = ctx.source, ctx.target
    return {
        "source_dir": os.path.abspath(snapshot_a.root_dir),
        "target_dir": os.path.abspath(snapshot_b.root_dir),
        "instance_alias_a": snapshot_a.alias,
        "instance_alias_b": snapshot_b.alias,
        "instance_id_a": a.instance_id,
        "instance_id_b": b.instance_id,
        "instance_arn_a": a.instance_arn,
        "instance_arn_b": b.instance_arn,
        "account_id_a": a.account_id,
        "account_id_b": b.account_id,
        "region_a": a.region,
        "region_b": b.region,
        "profile_a": a.profile,
        "profile_b": b.profile,
        "lambda_prefix_a": ctx.lambda_prefix_a,
        "lambda_prefix_b": ctx.lambda_prefix_b,
        "lex_bot_prefix_a": ctx.lex_bot_prefix_a,
        "lex_bot_prefix_b": ctx.lex_bot_prefix_b,
        "contact_flow_prefix": b.flow_prefix,
        "rule_separator": separator,
    }


def build_bundle(
    snapshot_a: Snapshot,
    snapshot_b: Snapshot,
    *,
    lambda_prefix_a: str = "",
    lambda_prefix_b: str = "",
    lex_bot_prefix_a: str = "",
    lex_bot_prefix_b: str = "",
    duplicates: DuplicatePolicy = DuplicatePolicy.ERROR,
    separators: Sequence[str] = DEFAULT_SEPARATORS,
    logger: Optional[Logger] = None,
) -> HelperBundle:
    """Reconcile every category in fixed order and assemble the bundle."""
    log = logger or logging.getLogger(__name__)

    def _warn_duplicate(alias: str, name: str, ids: Sequence[str]) -> None:
        log.warning("Duplicate name %r in snapshot '%s' (ids %s); first occurrence wins", name, alias, ", ".join(ids))

    outcomes: List[MatchOutcome] = []
    for category in CATEGORY_ORDER:
        found = reconcile(category, snapshot_a, snapshot_b, duplicates=duplicates, on_duplicate=_warn_duplicate)
        new, existing = partition(found)
        log.info("%s: new=%d existing=%d", category.value, len(new), len(existing))
        for outcome in found:
            if isinstance(outcome, Existing):
                log.debug("Existing %s: %s -> %s", outcome.label, outcome.id_a, outcome.id_b)
            else:
                log.debug("New %s: %s", outcome.label, outcome.id_a)
        outcomes.extend(found)

    ctx = RuleContext(
        source=snapshot_a.identity,
        target=snapshot_b.identity,
        lambda_prefix_a=lambda_prefix_a,
        lambda_prefix_b=lambda_prefix_b,
        lex_bot_prefix_a=lex_bot_prefix_a,
        lex_bot_prefix_b=lex_bot_prefix_b,
    )
    rules = build_rules(ctx, outcomes)
    separator = choose_separator(rules, separators)

    new, existing = partition(outcomes)
    return HelperBundle(
        variables=_variables(ctx, snapshot_a, snapshot_b, separator),
        new_list=[o.label for o in new],
        existing_list=[o.label for o in existing],
        rules=rules,
        separator=separator,
    )


def _lines(items: Sequence[str]) -> str:
    return "".join(f"{item}\n" for item in items)


def render_files(bundle: HelperBundle) -> Dict[str, str]:
    """Return {file name: content} in write order."""
    return {
        VAR_FILE: _lines([f"{k}={shlex.quote(v)}" for k, v in bundle.variables.items()]),
        NEW_FILE: _lines(bundle.new_list),
        OLD_FILE: _lines(bundle.existing_list),
        RULE_FILE: format_rule_script(bundle.rules, bundle.separator),
        FLOW_TEMPLATE_FILE: FLOW_TEMPLATE,
        MODULE_TEMPLATE_FILE: MODULE_TEMPLATE,
    }


def _remove(path: str) -> None:
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    else:
        os.remove(path)


def write_bundle(
    output_dir: str,
    bundle: HelperBundle,
    force: bool = False,
    logger: Optional[Logger] = None,
) -> str:
    """
    Write the bundle into `output_dir`.

    Raises DirectoryConflict (before writing anything) when `output_dir`
    exists and `force` is False. With `force` the old directory is removed.
    """
    log = logger or logging.getLogger(__name__)
    target = os.path.abspath(output_dir)
    if os.path.lexists(target) and not force:
        raise DirectoryConflict(output_dir)

    parent = os.path.dirname(target)
    os.makedirs(parent, exist_ok=True)
    staging = tempfile.mkdtemp(prefix=f".{os.path.basename(target)}.", dir=parent)
    try:
        for name, content in render_files(bundle).items():
            with open(os.path.join(staging, name), "w", encoding="utf-8", newline="\n") as f:
                f.write(content)
        os.chmod(staging, 0o755)

        if os.path.lexists(target):
            log.warning("Removing existing output directory %s (force)", target)
            _remove(target)
        os.rename(staging, target)
    finally:
        if os.path.isdir(staging):
            shutil.rmtree(staging, ignore_errors=True)

    log.info("Helper bundle written to %s", target)
    return target


def run_diff(
    source_dir: str,
    target_dir: str,
    helper_dir: str,
    *,
    force: bool = False,
    lambda_prefix_a: str = "",
    lambda_prefix_b: str = "",
    lex_bot_prefix_a: str = "",
    lex_bot_prefix_b: str = "",
    duplicates: DuplicatePolicy = DuplicatePolicy.ERROR,
    separators: Sequence[str] = DEFAULT_SEPARATORS,
    logger: Optional[Logger] = None,
) -> HelperBundle:
    """Full pipeline: read both snapshots, reconcile, write the helper bundle."""
    log = logger or logging.getLogger(__name__)

    # Refuse early, before reading anything, when the target is taken.
    if os.path.lexists(helper_dir) and not force:
        raise DirectoryConflict(helper_dir)

    snapshot_a = load_snapshot(source_dir, logger=log)
    snapshot_b = load_snapshot(target_dir, logger=log)
    log.info("Reconciling '%s' -> '%s'", snapshot_a.alias, snapshot_b.alias)

    bundle = build_bundle(
        snapshot_a,
        snapshot_b,
        lambda_prefix_a=lambda_prefix_a,
        lambda_prefix_b=lambda_prefix_b,
        lex_bot_prefix_a=lex_bot_prefix_a,
        lex_bot_prefix_b=lex_bot_prefix_b,
        duplicates=duplicates,
        separators=separators,
        logger=log,
    )
    write_bundle(helper_dir, bundle, force=force, logger=log)
    return bundle
