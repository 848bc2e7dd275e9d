import pytest

from scanforge.toolkit.normalizer import (
    DEFAULT_FIX,
    Severity,
    map_odc_severity,
    map_semgrep_severity,
    map_trivy_severity,
    odc_fix,
    semgrep_fix,
    trivy_fix,
)


@pytest.mark.parametrize("raw,expected", [
    ("ERROR", Severity.CRITICAL),
    ("WARNING", Severity.HIGH),
    ("INFO", Severity.MEDIUM),
    ("warning", Severity.HIGH),
    ("something-new", Severity.INFO),
    (None, Severity.INFO),
])
def test_semgrep_severity(raw, expected):
    assert map_semgrep_severity(raw) == expected


@pytest.mark.parametrize("raw,expected", [
    ("CRITICAL", Severity.CRITICAL),
    ("HIGH", Severity.HIGH),
    ("MEDIUM", Severity.MEDIUM),
    ("LOW", Severity.LOW),
    ("UNKNOWN", Severity.INFO),
    ("", Severity.INFO),
])
def test_trivy_severity(raw, expected):
    assert map_trivy_severity(raw) == expected


def test_odc_severity_never_below_low():
    assert map_odc_severity("MODERATE") == Severity.MEDIUM
    assert map_odc_severity("informational") == Severity.LOW
    assert map_odc_severity(None) == Severity.LOW
    assert map_odc_severity("bogus") == Severity.LOW


# 1. Remediation text
def test_semgrep_fix_matches_rule_id():
    result = {"check_id": "javascript.express.security.sql-injection.raw-query"}
    assert "parameterized" in semgrep_fix(result)


def test_semgrep_fix_prefers_hint_table_then_metadata():
    with_metadata = {"check_id": "python.misc.weird-rule", "extra": {"metadata": {"fix": "Do the thing"}}}
    assert semgrep_fix(with_metadata) == "Do the thing"
    assert semgrep_fix({"check_id": "python.misc.weird-rule"}) == DEFAULT_FIX


def test_trivy_fix_with_fixed_version():
    vuln = {"PkgName": "lodash", "InstalledVersion": "4.17.11", "FixedVersion": "4.17.12"}
    assert trivy_fix(vuln) == "Update lodash from 4.17.11 to 4.17.12 or later"


def test_trivy_fix_without_fix():
    assert "latest version" in trivy_fix({"PkgName": "left-pad"})
    assert "No fix available" in trivy_fix({"PkgName": "left-pad", "Status": "will_not_fix"})


def test_odc_fix_mentions_file_and_vulnerability():
    text = odc_fix({"fileName": "log4j-core-2.14.1.jar"}, {"name": "CVE-2021-44228"})
    assert text.startswith("Update log4j-core-2.14.1.jar to address CVE-2021-44228.")
