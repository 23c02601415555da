"""
Data model for snapshots and reconciliation outcomes.

Categories are declared once in `CATEGORY_SPECS`, in processing order.
Everything downstream (reader, reconciler, rules, writer) iterates that
registry so the order stays fixed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Mapping, Optional, Tuple, Union


class Category(str, Enum):
    PROMPT = "Prompt"
    HOURS_OF_OPERATION = "HoursOfOperation"
    QUEUE = "Queue"
    ROUTING_PROFILE = "RoutingProfile"
    CONTACT_FLOW_MODULE = "ContactFlowModule"
    CONTACT_FLOW = "ContactFlow"


@dataclass(frozen=True)
class CategorySpec:
    category: Category
    manifest: str                       # <manifest>.json in the snapshot root
    tag: str                            # content file prefix and label tag
    has_content: bool                   # one <tag>_<token>.json per resource
    facets: Tuple[str, ...] = ()        # dependent records travelling with the resource

    @property
    def manifest_file(self) -> str:
        return f"{self.manifest}.json"


CATEGORY_SPECS: Dict[Category, CategorySpec] = {
    Category.PROMPT: CategorySpec(Category.PROMPT, "prompts", "prompt", False),
    Category.HOURS_OF_OPERATION: CategorySpec(Category.HOURS_OF_OPERATION, "hours", "hour", True),
    Category.QUEUE: CategorySpec(Category.QUEUE, "queues", "queue", True),
    Category.ROUTING_PROFILE: CategorySpec(Category.ROUTING_PROFILE, "routings", "routing", True, ("routingQs",)),
    Category.CONTACT_FLOW_MODULE: CategorySpec(Category.CONTACT_FLOW_MODULE, "modules", "module", True),
    Category.CONTACT_FLOW: CategorySpec(Category.CONTACT_FLOW, "flows", "flow", True),
}

CATEGORY_ORDER: Tuple[Category, ...] = tuple(CATEGORY_SPECS)


def spec_for(category: Category) -> CategorySpec:
    return CATEGORY_SPECS[category]


@dataclass(frozen=True)
class ResourceRecord:
    """One named resource as captured in a snapshot."""
    id: str
    name: str
    category: Category
    content_path: Optional[str] = None
    facet_paths: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class InstanceIdentity:
    """Identity of the contact-center instance a snapshot was taken from."""
    instance_id: str
    instance_arn: str
    alias: str = ""
    profile: str = ""
    flow_prefix: str = ""

    def _arn_part(self, index: int) -> str:
        parts = self.instance_arn.split(":")
        return parts[index] if len(parts) > 5 else ""

    @property
    def partition(self) -> str:
        return self._arn_part(1) or "aws"

    @property
    def region(self) -> str:
        return self._arn_part(3)

    @property
    def account_id(self) -> str:
        return self._arn_part(4)

    @property
    def arn_prefix(self) -> str:
        """Account/region segment shared by every service ARN of this instance."""
        return f":{self.region}:{self.account_id}:"

    def lambda_prefix_arn(self, function_prefix: str = "") -> str:
        return f"arn:{self.partition}:lambda:{self.region}:{self.account_id}:function:{function_prefix}"

    def lex_bot_prefix_arn(self, bot_prefix: str = "") -> str:
        return f"arn:{self.partition}:lex:{self.region}:{self.account_id}:bot:{bot_prefix}"


@dataclass(frozen=True)
class Snapshot:
    alias: str
    root_dir: str
    identity: InstanceIdentity
    records: Mapping[Category, Tuple[ResourceRecord, ...]]

    def records_for(self, category: Category) -> Tuple[ResourceRecord, ...]:
        return tuple(self.records.get(category, ()))


# ---------- Reconciliation outcomes ----------

def _label(category: Category, name: str, facet: str) -> str:
    return f"{facet or spec_for(category).tag}_{name}"


@dataclass(frozen=True)
class New:
    """Resource present only in snapshot A."""
    record: ResourceRecord
    facet: str = ""

    @property
    def category(self) -> Category:
        return self.record.category

    @property
    def name(self) -> str:
        return self.record.name

    @property
    def id_a(self) -> str:
        return self.record.id

    @property
    def label(self) -> str:
        return _label(self.category, self.name, self.facet)


@dataclass(frozen=True)
class Existing:
    """Resource present in both snapshots under `id_a` and `id_b`."""
    id_a: str
    id_b: str
    name: str
    category: Category
    facet: str = ""

    @property
    def label(self) -> str:
        return _label(self.category, self.name, self.facet)


MatchOutcome = Union[New, Existing]
