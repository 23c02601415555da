import json
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

from connectdiff.core.models import CATEGORY_SPECS, Category
from connectdiff.core.naming import content_filename

Entries = List[Tuple[str, str]]


def write_snapshot(
    root: Path,
    *,
    instance_id: str,
    alias: str,
    region: str = "eu-west-2",
    account: str = "111111111111",
    flow_prefix: str = "",
    resources: Optional[Dict[Category, Entries]] = None,
) -> Path:
    """Lay out a snapshot directory the way the capture step does."""
    root.mkdir(parents=True, exist_ok=True)
    arn = f"arn:aws:connect:{region}:{account}:instance/{instance_id}"
    (root / "instance.var").write_text(
        f'instance_alias="{alias}"\n'
        f'instance_id="{instance_id}"\n'
        f'instance_arn="{arn}"\n'
        f'profile="{alias}-profile"\n'
        f'contact_flow_prefix="{flow_prefix}"\n',
        encoding="utf-8",
    )
    resources = resources or {}
    for category, spec in CATEGORY_SPECS.items():
        entries = resources.get(category, [])
        summaries = [
            {"Id": rid, "Name": name, "Arn": f"{arn}/{spec.tag}/{rid}"} for rid, name in entries
        ]
        (root / spec.manifest_file).write_text(json.dumps(summaries), encoding="utf-8")
        if not spec.has_content:
            continue
        for rid, name in entries:
            body = {"Id": rid, "Name": name, "InstanceId": instance_id}
            (root / content_filename(spec.tag, name)).write_text(json.dumps(body), encoding="utf-8")
            for facet in spec.facets:
                (root / content_filename(facet, name)).write_text(
                    json.dumps({"RoutingProfileQueueConfigSummaryList": []}), encoding="utf-8"
                )
    return root


@pytest.fixture
def make_snapshot(tmp_path):
    def _make(name: str, **kwargs) -> Path:
        return write_snapshot(tmp_path / name, **kwargs)

    return _make


@pytest.fixture
def snapshots(make_snapshot):
    """A (prod) and B (test) with a mix of new and existing resources."""
    a = make_snapshot(
        "prod",
        instance_id="aaaa-1111",
        alias="prod",
        account="111111111111",
        region="eu-west-2",
        resources={
            Category.PROMPT: [("P1", "Beep.wav")],
            Category.HOURS_OF_OPERATION: [("H1", "Office Hours")],
            Category.QUEUE: [("Q1", "Sales"), ("Q2", "Support")],
            Category.ROUTING_PROFILE: [("R1", "Tier1")],
            Category.CONTACT_FLOW_MODULE: [("M1", "Auth")],
            Category.CONTACT_FLOW: [("F1", "Welcome"), ("F2", "Café")],
        },
    )
    b = make_snapshot(
        "test",
        instance_id="bbbb-2222",
        alias="test",
        account="222222222222",
        region="us-east-1",
        flow_prefix="MIG_",
        resources={
            Category.PROMPT: [("P9", "Beep.wav")],
            Category.QUEUE: [("Q9", "Support")],
            Category.ROUTING_PROFILE: [("R9", "Tier1")],
            Category.CONTACT_FLOW: [("F9", "Welcome")],
        },
    )
    return a, b
