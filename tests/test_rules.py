import os

import pytest

from connectdiff.core.errors import RuleError
from connectdiff.core.models import Category, Existing, InstanceIdentity, New, ResourceRecord
from connectdiff.core.rules import (
    RuleContext,
    RuleSet,
    SubstitutionRule,
    build_rules,
    choose_separator,
    format_rule_script,
    parse_rule_script,
)


def _identity(instance_id, region="eu-west-2", account="111111111111", alias=""):
    return InstanceIdentity(
        instance_id=instance_id,
        instance_arn=f"arn:aws:connect:{region}:{account}:instance/{instance_id}",
        alias=alias,
    )


SRC = _identity("aaaa-1111", alias="prod")
DST = _identity("bbbb-2222", region="us-east-1", account="222222222222", alias="test")


def test_rules_start_with_instance_then_arn_segment():
    rules = build_rules(RuleContext(SRC, DST), [])

    assert (rules[0].pattern, rules[0].replacement) == ("aaaa-1111", "bbbb-2222")
    assert (rules[1].pattern, rules[1].replacement) == (":eu-west-2:111111111111:", ":us-east-1:222222222222:")


def test_lambda_rule_absent_when_prefixes_resolve_equal():
    same = _identity("cccc-3333")
    ctx = RuleContext(SRC, same, lambda_prefix_a="fn-", lambda_prefix_b="fn-")

    rules = build_rules(ctx, [])

    assert len(rules) == 2
    assert not any(":lambda:" in r.pattern for r in rules)


def test_lambda_rule_present_when_prefixes_differ():
    same = _identity("cccc-3333")
    ctx = RuleContext(SRC, same, lambda_prefix_a="prod-", lambda_prefix_b="test-")

    rules = build_rules(ctx, [])

    assert len(rules) == 3
    assert rules[2].pattern == "arn:aws:lambda:eu-west-2:111111111111:function:prod-"
    assert rules[2].replacement == "arn:aws:lambda:eu-west-2:111111111111:function:test-"


def test_lambda_rule_runs_on_rewritten_account_segment():
    ctx = RuleContext(SRC, DST, lambda_prefix_a="prod-", lambda_prefix_b="test-")
    rs = RuleSet(build_rules(ctx, []))

    text = '"arn:aws:lambda:eu-west-2:111111111111:function:prod-lookup"'

    assert rs.apply(text) == '"arn:aws:lambda:us-east-1:222222222222:function:test-lookup"'


def test_lex_bot_rule_follows_lambda_rule():
    same = _identity("cccc-3333")
    ctx = RuleContext(SRC, same, lambda_prefix_a="a-", lambda_prefix_b="b-",
                      lex_bot_prefix_a="ProdBot", lex_bot_prefix_b="TestBot")

    rules = build_rules(ctx, [])

    assert [":lambda:" in r.pattern for r in rules] == [False, False, True, False, False]
    assert rules[3].pattern.endswith(":bot:ProdBot")
    assert rules[3].replacement.endswith(":bot:TestBot")
    assert (rules[4].pattern, rules[4].replacement) == ('"ProdBot', '"TestBot')


def test_resource_rules_only_for_existing_primary_records():
    outcomes = [
        New(ResourceRecord("Q1", "Sales", Category.QUEUE)),
        Existing("R1", "R9", "Tier1", Category.ROUTING_PROFILE),
        Existing("R1", "R9", "Tier1", Category.ROUTING_PROFILE, facet="routingQs"),
        Existing("F1", "F9", "Welcome", Category.CONTACT_FLOW),
    ]
    same = _identity("cccc-3333")

    rules = build_rules(RuleContext(SRC, same), outcomes)[2:]

    assert [(r.pattern, r.replacement) for r in rules] == [("R1", "R9"), ("F1", "F9")]
    assert rules[1].comment == "ContactFlow Welcome"


def test_empty_pattern_is_refused():
    with pytest.raises(RuleError):
        build_rules(RuleContext(SRC, DST), [Existing("", "X", "Broken", Category.QUEUE)])


def test_choose_separator_skips_colliding_candidates():
    rules = [SubstitutionRule("a%b", "c", ""), SubstitutionRule("d", "e|f", "")]
    assert choose_separator(rules, ("%", "|", "!")) == "!"
    with pytest.raises(RuleError):
        choose_separator(rules, ("%", "|"))


def test_script_format_and_parse():
    rules = [
        SubstitutionRule("aaaa-1111", "bbbb-2222", "Instance prod -> test"),
        SubstitutionRule("F1", "F9", "ContactFlow Welcome"),
    ]
    text = format_rule_script(rules, "%")

    assert text == (
        "# Instance prod -> test\n"
        "aaaa-1111%bbbb-2222\n"
        "# ContactFlow Welcome\n"
        "F1%F9\n"
    )
    assert parse_rule_script(text, "%") == rules


def test_parse_rejects_malformed_line():
    with pytest.raises(RuleError):
        parse_rule_script("# c\nno-separator-here\n", "%")


def test_rules_apply_in_order_once_each():
    rs = RuleSet([SubstitutionRule("A", "B", ""), SubstitutionRule("B", "C", "")])
    assert rs.apply("AB") == "CC"
    rs2 = RuleSet([SubstitutionRule("B", "C", ""), SubstitutionRule("A", "B", "")])
    assert rs2.apply("AB") == "BC"


def test_rewrite_file_leaves_no_temporaries(tmp_path):
    src = tmp_path / "flow_Welcome.json"
    src.write_text('{"Id": "F1", "Queue": "Q1"}', encoding="utf-8")
    dst = tmp_path / "out" / "flow_Welcome.json"
    dst.parent.mkdir()
    rs = RuleSet([SubstitutionRule("F1", "F9", ""), SubstitutionRule("Q1", "Q9", "")])

    rs.rewrite_file(str(src), str(dst))
    rs.rewrite_file(str(src))

    assert dst.read_text(encoding="utf-8") == '{"Id": "F9", "Queue": "Q9"}'
    assert src.read_text(encoding="utf-8") == '{"Id": "F9", "Queue": "Q9"}'
    assert sorted(os.listdir(tmp_path)) == ["flow_Welcome.json", "out"]
    assert os.listdir(dst.parent) == ["flow_Welcome.json"]


def test_equal_bot_prefixes_add_no_name_rule():
    ctx = RuleContext(SRC, DST, lambda_prefix_a="fn-", lambda_prefix_b="fn-",
                      lex_bot_prefix_a="Bot", lex_bot_prefix_b="Bot")

    rules = build_rules(ctx, [])

    # ARN prefixes still differ by account/region, so both ARN rules are kept
    assert [":lambda:" in r.pattern for r in rules] == [False, False, True, False]
    assert rules[3].pattern.endswith(":bot:Bot")
    assert not any(r.pattern.startswith('"') for r in rules)


def test_lex_bot_names_in_flow_content_are_renamed():
    ctx = RuleContext(SRC, DST, lex_bot_prefix_a="ProdBot", lex_bot_prefix_b="TestBot")
    rs = RuleSet(build_rules(ctx, []))

    flow = (
        '{"LexBot": {"Name": "ProdBotOrders", "Region": "eu-west-2"}, '
        '"LexV2Bot": {"AliasArn": "arn:aws:lex:eu-west-2:111111111111:bot-alias/X"}, '
        '"Bot": "arn:aws:lex:eu-west-2:111111111111:bot:ProdBotOrders"}'
    )
    out = rs.apply(flow)

    assert '"Name": "TestBotOrders"' in out
    assert '"arn:aws:lex:us-east-1:222222222222:bot:TestBotOrders"' in out
    assert "ProdBot" not in out


def test_no_lex_name_rule_without_source_prefix():
    ctx = RuleContext(SRC, DST, lex_bot_prefix_a="", lex_bot_prefix_b="TestBot")

    rules = build_rules(ctx, [])

    assert [r.pattern for r in rules if ":lex:" in r.pattern] == ["arn:aws:lex:us-east-1:222222222222:bot:"]
    assert not any(r.pattern.startswith('"') for r in rules)
