"""Unit tests for the conversion rule engine."""

from __future__ import annotations

import pytest

from whisper_migrator.errors import InvalidRule, NoMatch
from whisper_migrator.points import Tag
from whisper_migrator.rules import ConversionRule, MatchStub, RuleSet, expand_template


def cpu_rule(**overrides) -> ConversionRule:
    data = {
        "pattern": r"servers\.(?P<host>[^.]+)\.cpu",
        "measurement": "?host",
        "tags": (("metric", "cpu"),),
        "field_template": "?host",
    }
    data.update(overrides)
    return ConversionRule(**data)


def test_match_expands_captures_into_stub():
    stub = RuleSet([cpu_rule()]).match("servers.web01.cpu")

    assert stub == MatchStub(measurement="web01", tags=(Tag("metric", "cpu"),), field_key="web01")


def test_unmatched_key_raises_no_match():
    with pytest.raises(NoMatch):
        RuleSet([cpu_rule()]).match("databases.pg01.connections")


def test_first_matching_rule_wins():
    generic = ConversionRule(pattern=r"servers\.", measurement="generic", field_template="value")
    rules = RuleSet([generic, cpu_rule()])

    assert rules.match("servers.web01.cpu").measurement == "generic"


def test_invalid_rule_is_reported_and_scan_continues():
    broken = cpu_rule(measurement="?missing")
    fallback = ConversionRule(pattern=r"cpu$", measurement="cpu", field_template="value")
    reported = []

    stub = RuleSet([broken, fallback]).match("servers.web01.cpu", report=reported.append)

    assert stub.measurement == "cpu"
    assert len(reported) == 1
    assert isinstance(reported[0], InvalidRule)
    assert "measurement" in str(reported[0])


@pytest.mark.parametrize(
    "overrides, reason",
    [
        ({"pattern": ""}, "pattern is empty"),
        ({"measurement": ""}, "measurement"),
        ({"tags": (("", "cpu"),)}, "tag key and value"),
        ({"tags": (("metric", ""),)}, "tag key and value"),
        ({"tags": (("dc", "?dc"),)}, "tag 'dc'"),
        ({"field_template": ""}, "field key"),
    ],
)
def test_rule_rejects_empty_expansions(overrides, reason):
    with pytest.raises(InvalidRule, match=reason):
        cpu_rule(**overrides).match("servers.web01.cpu")


def test_all_rules_invalid_ends_with_no_match():
    reported = []
    rules = RuleSet([cpu_rule(pattern=""), cpu_rule(field_template="?nope")])

    with pytest.raises(NoMatch):
        rules.match("servers.web01.cpu", report=reported.append)

    assert [type(err) for err in reported] == [InvalidRule, InvalidRule]


def test_bad_regex_is_an_invalid_rule():
    with pytest.raises(InvalidRule, match="does not compile"):
        cpu_rule(pattern="servers.(?P<host").match("servers.web01.cpu")


def test_captures_resolve_against_whole_key():
    rule = ConversionRule(
        pattern=r"(?P<env>prod|dev)\.servers\.(?P<host>[^.]+)\.(?P<metric>\w+)$",
        measurement="?metric",
        tags=(("env", "?env"), ("host", "?host"), ("source", "graphite")),
        field_template="value",
    )

    stub = rule.match("dc1.prod.servers.db02.load")

    assert stub.measurement == "load"
    assert stub.tags == (Tag("env", "prod"), Tag("host", "db02"), Tag("source", "graphite"))
    assert stub.field_key == "value"


def test_expand_template_literal_and_capture():
    captures = {"host": "web01"}

    assert expand_template("?host", captures) == "web01"
    assert expand_template("host", captures) == "host"
    assert expand_template("?other", captures) == ""


def test_expand_template_trims_a_single_capture_prefix():
    captures = {"host": "web01", "?host": "literal-question"}

    assert expand_template("??host", captures) == "literal-question"
    assert expand_template("??missing", captures) == ""
