"""
Category reconciler: pair snapshot A resources with snapshot B by exact name.

Pure functions, no I/O. For every A record (in stored order):
  - no B record with the same name  -> New
  - B record with the same name     -> Existing(id_a, id_b)

Routing profiles carry a queue-association facet that always receives the
same outcome as the profile itself, right after it.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .errors import AmbiguousMatch
from .models import Category, Existing, MatchOutcome, New, ResourceRecord, Snapshot, spec_for

__all__ = ["DuplicatePolicy", "reconcile", "partition", "find_duplicates"]


class DuplicatePolicy(str, Enum):
    """How a repeated name within one snapshot/category is handled."""
    ERROR = "error"   # raise AmbiguousMatch
    FIRST = "first"   # first occurrence in B wins


DuplicateHook = Callable[[str, str, Sequence[str]], None]


def find_duplicates(records: Iterable[ResourceRecord]) -> Dict[str, List[str]]:
    """Return {name: [ids...]} for names occurring more than once, in read order."""
    seen: Dict[str, List[str]] = {}
    for rec in records:
        seen.setdefault(rec.name, []).append(rec.id)
    return {name: ids for name, ids in seen.items() if len(ids) > 1}


def _check_duplicates(
    snapshot: Snapshot,
    category: Category,
    policy: DuplicatePolicy,
    on_duplicate: Optional[DuplicateHook],
) -> None:
    for name, ids in find_duplicates(snapshot.records_for(category)).items():
        if policy is DuplicatePolicy.ERROR:
            raise AmbiguousMatch(category.value, name, snapshot.alias, ids)
        if on_duplicate:
            on_duplicate(snapshot.alias, name, ids)


def _lookup_b(records: Iterable[ResourceRecord]) -> Dict[str, str]:
    lookup: Dict[str, str] = {}
    for rec in records:
        lookup.setdefault(rec.name, rec.id)
    return lookup


def reconcile(
    category: Category,
    snapshot_a: Snapshot,
    snapshot_b: Snapshot,
    *,
    duplicates: DuplicatePolicy = DuplicatePolicy.ERROR,
    on_duplicate: Optional[DuplicateHook] = None,
) -> List[MatchOutcome]:
    """
    Match A's records of `category` against B's by exact (case-sensitive) name.

    With DuplicatePolicy.ERROR a repeated name in either snapshot raises
    AmbiguousMatch. With FIRST the first B occurrence is used and
    `on_duplicate(alias, name, ids)` is called for each repeat found.
    """
    policy = DuplicatePolicy(duplicates)
    _check_duplicates(snapshot_a, category, policy, on_duplicate)
    _check_duplicates(snapshot_b, category, policy, on_duplicate)

    facets = spec_for(category).facets
    lookup = _lookup_b(snapshot_b.records_for(category))

    outcomes: List[MatchOutcome] = []
    for rec in snapshot_a.records_for(category):
        id_b = lookup.get(rec.name)
        if id_b is None:
            outcomes.append(New(rec))
            outcomes.extend(New(rec, facet=f) for f in facets)
        else:
            outcomes.append(Existing(rec.id, id_b, rec.name, category))
            outcomes.extend(Existing(rec.id, id_b, rec.name, category, facet=f) for f in facets)
    return outcomes


def partition(outcomes: Iterable[MatchOutcome]) -> Tuple[List[New], List[Existing]]:
    new: List[New] = []
    existing: List[Existing] = []
    for outcome in outcomes:
        if isinstance(outcome, New):
            new.append(outcome)
        else:
            existing.append(outcome)
    return new, existing
