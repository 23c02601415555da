"""
Substitution rules used to port resource content from instance A to B.

A rule is a literal (non-regex) find/replace applied to every occurrence.
Rules are applied in emission order, each exactly once:

  1. instance id
  2. account/region ARN segment
  3. lambda function ARN prefix (only when the A/B prefix ARNs differ)
  4. Lex bot ARN prefix         (only when the A/B prefix ARNs differ)
  5. quoted Lex bot name prefix (only when the A/B names differ, A non-empty)
  6. one rule per existing resource id, in category order

Rules 3 and 4 run after rule 2 has already moved ARNs to B's account and
region, so their pattern is expressed on B's account/region segment.
Rule 5 matches bot names as JSON string starts, e.g. `"ProdBotOrders`.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from .errors import RuleError
from .models import Existing, InstanceIdentity, MatchOutcome

__all__ = [
    "SubstitutionRule",
    "RuleContext",
    "RuleSet",
    "DEFAULT_SEPARATORS",
    "build_rules",
    "general_rules",
    "resource_rules",
    "choose_separator",
    "format_rule_script",
    "parse_rule_script",
]

Logger = Union[logging.Logger, logging.LoggerAdapter]

# Ids and ARNs contain ':' and '/', so neither is a candidate.
DEFAULT_SEPARATORS: Tuple[str, ...] = ("%", "|", "!", "@", "^", ",", ";")


@dataclass(frozen=True)
class SubstitutionRule:
    pattern: str
    replacement: str
    comment: str = ""

    def apply(self, text: str) -> str:
        return text.replace(self.pattern, self.replacement)


@dataclass(frozen=True)
class RuleContext:
    """Instance-level context for the general rules."""
    source: InstanceIdentity
    target: InstanceIdentity
    lambda_prefix_a: str = ""
    lambda_prefix_b: str = ""
    lex_bot_prefix_a: str = ""
    lex_bot_prefix_b: str = ""

    @property
    def lambda_arns_differ(self) -> bool:
        return self.source.lambda_prefix_arn(self.lambda_prefix_a) != self.target.lambda_prefix_arn(
            self.lambda_prefix_b
        )

    @property
    def lex_bot_arns_differ(self) -> bool:
        return self.source.lex_bot_prefix_arn(self.lex_bot_prefix_a) != self.target.lex_bot_prefix_arn(
            self.lex_bot_prefix_b
        )


def _one_line(text: str) -> str:
    return " ".join(str(text).split())


def _rule(pattern: str, replacement: str, comment: str) -> SubstitutionRule:
    if not pattern:
        raise RuleError(f"Refusing empty pattern for rule: {comment}")
    return SubstitutionRule(pattern, replacement, _one_line(comment))


def general_rules(ctx: RuleContext) -> List[SubstitutionRule]:
    a, b = ctx.source, ctx.target
    rules = [
        _rule(a.instance_id, b.instance_id, f"Instance {a.alias or a.instance_id} -> {b.alias or b.instance_id}"),
        _rule(a.arn_prefix, b.arn_prefix, f"ARN region/account {a.region}/{a.account_id} -> {b.region}/{b.account_id}"),
    ]
    if ctx.lambda_arns_differ:
        rules.append(
            _rule(
                b.lambda_prefix_arn(ctx.lambda_prefix_a),
                b.lambda_prefix_arn(ctx.lambda_prefix_b),
                f"Lambda function prefix '{ctx.lambda_prefix_a}' -> '{ctx.lambda_prefix_b}'",
            )
        )
    if ctx.lex_bot_arns_differ:
        rules.append(
            _rule(
                b.lex_bot_prefix_arn(ctx.lex_bot_prefix_a),
                b.lex_bot_prefix_arn(ctx.lex_bot_prefix_b),
                f"Lex bot prefix '{ctx.lex_bot_prefix_a}' -> '{ctx.lex_bot_prefix_b}'",
            )
        )
        # a bare quote would match every string
        if ctx.lex_bot_prefix_a and ctx.lex_bot_prefix_a != ctx.lex_bot_prefix_b:
            rules.append(
                _rule(
                    f'"{ctx.lex_bot_prefix_a}',
                    f'"{ctx.lex_bot_prefix_b}',
                    f"Lex bot name prefix '{ctx.lex_bot_prefix_a}' -> '{ctx.lex_bot_prefix_b}'",
                )
            )
    return rules


def resource_rules(outcomes: Iterable[MatchOutcome]) -> List[SubstitutionRule]:
    """One id rule per Existing outcome; facets share their resource's id and add none."""
    rules: List[SubstitutionRule] = []
    for outcome in outcomes:
        if not isinstance(outcome, Existing) or outcome.facet:
            continue
        rules.append(_rule(outcome.id_a, outcome.id_b, f"{outcome.category.value} {outcome.name}"))
    return rules


def build_rules(ctx: RuleContext, outcomes: Iterable[MatchOutcome]) -> List[SubstitutionRule]:
    """General rules first, then per-resource rules in outcome order."""
    return general_rules(ctx) + resource_rules(outcomes)


# ---------- Rule script I/O ----------

def choose_separator(
    rules: Sequence[SubstitutionRule], candidates: Sequence[str] = DEFAULT_SEPARATORS
) -> str:
    """Return the first candidate absent from every pattern and replacement."""
    for sep in candidates:
        if len(sep) != 1 or sep == "#" or sep.isspace():
            continue
        if not any(sep in r.pattern or sep in r.replacement for r in rules):
            return sep
    raise RuleError(f"No rule separator among {list(candidates)!r} is free of collisions")


def format_rule_script(rules: Sequence[SubstitutionRule], separator: str) -> str:
    lines: List[str] = []
    for r in rules:
        if separator in r.pattern or separator in r.replacement:
            raise RuleError(f"Separator {separator!r} collides with rule: {r.comment}")
        lines.append(f"# {r.comment}")
        lines.append(f"{r.pattern}{separator}{r.replacement}")
    return "".join(line + "\n" for line in lines)


def parse_rule_script(text: str, separator: str) -> List[SubstitutionRule]:
    """Inverse of `format_rule_script`."""
    rules: List[SubstitutionRule] = []
    comment = ""
    for lineno, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        if line.startswith("#"):
            comment = line[1:].strip()
            continue
        parts = line.split(separator)
        if len(parts) != 2 or not parts[0]:
            raise RuleError(f"Malformed rule at line {lineno}: {line!r}")
        rules.append(SubstitutionRule(parts[0], parts[1], comment))
        comment = ""
    return rules


# ---------- Rule application ----------

class RuleSet:
    """
    Ordered rules applied as literal replacements, each once, first to last.

    Example:
        rs = RuleSet.from_script(Path("helper.sed").read_text(), "%")
        new_content = rs.apply(old_content)
    """

    def __init__(self, rules: Iterable[SubstitutionRule]) -> None:
        self.rules: Tuple[SubstitutionRule, ...] = tuple(rules)

    @classmethod
    def from_script(cls, text: str, separator: str) -> "RuleSet":
        return cls(parse_rule_script(text, separator))

    def __len__(self) -> int:
        return len(self.rules)

    def apply(self, text: str) -> str:
        for rule in self.rules:
            text = rule.apply(text)
        return text

    def rewrite_file(self, src: str, dst: Optional[str] = None, logger: Optional[Logger] = None) -> str:
        """
        Apply the rules to `src` and write the result to `dst` (defaults to `src`).

        The result is staged in a temporary file beside `dst` and moved into
        place; the temporary file never outlives this call.
        """
        log = logger or logging.getLogger(__name__)
        dst = dst or src
        with open(src, "r", encoding="utf-8") as f:
            content = self.apply(f.read())

        fd, tmp = tempfile.mkstemp(prefix=".rewrite-", dir=os.path.dirname(os.path.abspath(dst)))
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as out:
                out.write(content)
            os.replace(tmp, dst)
        finally:
            if os.path.exists(tmp):
                os.remove(tmp)
        log.debug("Rewrote %s -> %s with %d rules", src, dst, len(self.rules))
        return dst
