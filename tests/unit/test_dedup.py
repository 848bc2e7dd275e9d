from hypothesis import given, strategies as st

from scanforge.base.findings import Finding, split_tools
from scanforge.engine.dedup import dedupe
from scanforge.toolkit.normalizer import Severity


def _finding(tool, file="a.js", line=10, category="SQLI", severity=Severity.HIGH, **kwargs):
    return Finding(tool=tool, severity=severity, category=category, file=file, line=line, **kwargs)


def test_same_issue_from_two_tools_is_merged():
    a = _finding("ToolA", description="first")
    b = _finding("ToolB", description="second", severity=Severity.CRITICAL)

    result = dedupe([a, b])

    assert len(result) == 1
    merged = result[0]
    assert merged.tool == "ToolA, ToolB"
    # the first occurrence stays canonical
    assert merged.description == "first"
    assert merged.severity == Severity.HIGH
    assert merged.id == a.id


def test_distinct_keys_are_kept_in_first_seen_order():
    findings = [
        _finding("ToolA", line=1),
        _finding("ToolA", line=2),
        _finding("ToolB", line=1),
        _finding("ToolB", category="XSS", line=2),
    ]

    result = dedupe(findings)

    assert [(f.line, f.category) for f in result] == [(1, "SQLI"), (2, "SQLI"), (2, "XSS")]
    assert result[0].tool == "ToolA, ToolB"
    assert result[1].tool == "ToolA"


def test_dedupe_is_idempotent():
    findings = [_finding("ToolA"), _finding("ToolB"), _finding("ToolC", line=3), _finding("ToolA", line=3)]

    once = dedupe(findings)
    twice = dedupe(once)

    assert twice == once


def test_tool_names_are_not_repeated():
    result = dedupe([_finding("ToolA"), _finding("ToolA"), _finding("ToolB"), _finding("ToolA, ToolB")])
    assert result[0].tool == "ToolA, ToolB"


def test_comma_joined_tool_fields_merge_per_name():
    result = dedupe([_finding("ToolA, ToolB"), _finding("ToolC, ToolA")])
    assert split_tools(result[0].tool) == ("ToolA", "ToolB", "ToolC")


def test_inputs_are_not_mutated():
    a = _finding("ToolA")
    b = _finding("ToolB")

    dedupe([a, b])

    assert a.tool == "ToolA"
    assert b.tool == "ToolB"


def test_empty_input():
    assert dedupe([]) == []


# Small domains so keys collide often
tool_field_strategy = st.sampled_from(["ToolA", "ToolB", "ToolC", "ToolA, ToolB", "ToolC, ToolA"])
finding_strategy = st.builds(
    _finding,
    tool_field_strategy,
    file=st.sampled_from(["a.js", "b.py"]),
    line=st.integers(min_value=0, max_value=3),
    category=st.sampled_from(["SQLI", "XSS"]),
)
findings_strategy = st.lists(finding_strategy, max_size=30)


@given(findings_strategy)
def test_dedupe_is_idempotent_for_any_list(findings):
    once = dedupe(findings)
    assert dedupe(once) == once


@given(findings_strategy)
def test_every_reporting_tool_survives_in_first_seen_order(findings):
    expected_keys = []
    expected_tools = {}
    for finding in findings:
        names = expected_tools.setdefault(finding.dedup_key, [])
        if not names:
            expected_keys.append(finding.dedup_key)
        for name in split_tools(finding.tool):
            if name not in names:
                names.append(name)

    result = dedupe(findings)

    assert [f.dedup_key for f in result] == expected_keys
    for merged in result:
        assert list(split_tools(merged.tool)) == expected_tools[merged.dedup_key]


@given(findings_strategy)
def test_canonical_record_is_first_occurrence(findings):
    first = {}
    for finding in findings:
        first.setdefault(finding.dedup_key, finding)

    for merged in dedupe(findings):
        assert merged.id == first[merged.dedup_key].id
        assert merged.description == first[merged.dedup_key].description
