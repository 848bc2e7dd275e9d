import json
from pathlib import Path

import pytest

from scanforge.base.config import ScanForgeConfig, ScanConfig, ToolsConfig
from scanforge.base.session import ToolRunStatus
from scanforge.engine.bridges import BridgeRegistry, SemgrepBridge, SimulatedBridge, TrivyBridge
from scanforge.engine.bridges.base import relative_to_root
from scanforge.engine.bridges.dependency_check import (
    REPORT_NAME,
    DependencyCheckBridge,
    parse_dependency_check_report,
)
from scanforge.engine.bridges.semgrep import parse_semgrep_output
from scanforge.engine.bridges.trivy import parse_trivy_output
from scanforge.engine.namespace import NativeNamespace, WslNamespace
from scanforge.errors import ErrorCode, ExecutionTimeout, ParseFailure
from scanforge.toolkit.normalizer import Severity
from scanforge.toolkit.registry import DEPENDENCY_CHECK, SEMGREP, TRIVY

SEMGREP_OUTPUT = {
    "results": [
        {
            "check_id": "javascript.express.security.audit.sql-injection",
            "path": "/srv/app/src/db.js",
            "start": {"line": 26, "col": 5},
            "extra": {
                "severity": "ERROR",
                "message": "User input flows into a raw SQL query",
                "metadata": {
                    "category": "SQL Injection",
                    "references": ["https://owasp.org/www-community/attacks/SQL_Injection"],
                    "cwe": "CWE-89",
                },
            },
        },
        {
            "check_id": "generic.secrets.hardcoded-password",
            "path": "/srv/app/config.js",
            "start": {"line": 3},
            "extra": {"severity": "WARNING", "message": "Hardcoded password"},
        },
    ],
    "errors": [],
}

TRIVY_OUTPUT = {
    "Results": [
        {
            "Target": "package-lock.json",
            "Vulnerabilities": [
                {
                    "VulnerabilityID": "CVE-2020-8203",
                    "PkgName": "lodash",
                    "InstalledVersion": "4.17.11",
                    "FixedVersion": "4.17.19",
                    "Severity": "HIGH",
                    "Title": "lodash: prototype pollution",
                    "References": ["https://nvd.nist.gov/vuln/detail/CVE-2020-8203"],
                },
                {
                    "VulnerabilityID": "CVE-2021-23337",
                    "PkgName": "lodash",
                    "Severity": "UNKNOWN",
                    "Description": "Command injection",
                },
            ],
        },
        {
            "Target": "/srv/app/.env",
            "Secrets": [
                {"RuleID": "aws-access-key-id", "Severity": "CRITICAL", "Title": "AWS Access Key", "StartLine": 4},
            ],
        },
    ],
}

ODC_REPORT = {
    "dependencies": [
        {
            "fileName": "log4j-core-2.14.1.jar",
            "vulnerabilities": [
                {
                    "name": "CVE-2021-44228",
                    "severity": "CRITICAL",
                    "description": "Log4Shell",
                    "references": [{"url": "https://nvd.nist.gov/vuln/detail/CVE-2021-44228"}],
                },
                {"name": "CVE-2021-45046", "severity": "moderate"},
            ],
        },
        {"fileName": "clean.jar", "vulnerabilities": []},
    ],
}


# 1. Parsers
def test_parse_semgrep_output():
    findings = parse_semgrep_output(json.dumps(SEMGREP_OUTPUT), "/srv/app")

    assert len(findings) == 2
    sqli, secret = findings
    assert sqli.tool == SEMGREP
    assert sqli.severity == Severity.CRITICAL
    assert sqli.category == "SQL Injection"
    assert sqli.file == "src/db.js"
    assert sqli.line == 26
    assert "parameterized" in sqli.fix
    assert sqli.references == ("https://owasp.org/www-community/attacks/SQL_Injection",)
    assert sqli.metadata["cwe"] == ["CWE-89"]

    assert secret.severity == Severity.HIGH
    assert secret.category == "hardcoded-password"
    assert secret.fix.startswith("Move sensitive data")


def test_parse_semgrep_rejects_bad_json():
    with pytest.raises(ParseFailure) as exc:
        parse_semgrep_output("Traceback (most recent call last): ...")
    assert exc.value.code == ErrorCode.TOOL_OUTPUT_PARSE_ERROR


def test_parse_trivy_output():
    findings = parse_trivy_output(json.dumps(TRIVY_OUTPUT), "/srv/app")

    assert [f.category for f in findings] == ["Vulnerable Dependency", "Vulnerable Dependency", "Exposed Secret"]
    assert [f.metadata.get("advisory") for f in findings[:2]] == ["CVE-2020-8203", "CVE-2021-23337"]
    lodash = findings[0]
    assert lodash.file == "package-lock.json"
    assert lodash.line == 0
    assert lodash.severity == Severity.HIGH
    assert lodash.fix == "Update lodash from 4.17.11 to 4.17.19 or later"
    assert findings[1].severity == Severity.INFO

    secret = findings[2]
    assert secret.file == ".env"
    assert secret.line == 4
    assert secret.severity == Severity.CRITICAL


def test_parse_trivy_without_results():
    assert parse_trivy_output('{"SchemaVersion": 2}') == []


def test_parse_dependency_check_report():
    findings = parse_dependency_check_report(ODC_REPORT)

    assert len(findings) == 2
    log4shell, second = findings
    assert log4shell.tool == DEPENDENCY_CHECK
    assert log4shell.file == "log4j-core-2.14.1.jar"
    assert log4shell.category == "Vulnerable Dependency"
    assert log4shell.id == "CVE-2021-44228"
    assert log4shell.metadata["advisory"] == "CVE-2021-44228"
    assert log4shell.severity == Severity.CRITICAL
    assert log4shell.references == ("https://nvd.nist.gov/vuln/detail/CVE-2021-44228",)
    assert second.severity == Severity.MEDIUM


def test_relative_to_root():
    assert relative_to_root("/srv/app/src/a.js", "/srv/app") == "src/a.js"
    assert relative_to_root("C:\\scan\\src\\a.js", "C:\\scan") == "src/a.js"
    assert relative_to_root("/mnt/c/other/a.js", "/srv/app") == "other/a.js"
    assert relative_to_root("", "/srv/app") == ""


# 2. Bridge runs with a fake runner
@pytest.mark.asyncio
async def test_semgrep_bridge_run(fake_runner, make_result):
    runner = fake_runner(lambda argv: make_result(stdout=json.dumps(SEMGREP_OUTPUT), exit_code=1))
    bridge = SemgrepBridge(ToolsConfig(), timeout=42, runner=runner, available=True)
    seen = []

    result = await bridge.run("/srv/app", on_finding=lambda finding, count: seen.append(count))

    assert result.ok
    assert result.status == ToolRunStatus.SUCCEEDED
    assert len(result.findings) == 2
    assert seen == [1, 2]
    assert runner.calls[0] == [
        "semgrep", "--config=auto", "--json", "--no-git-ignore", "--timeout=60", "/srv/app",
    ]
    assert runner.timeouts[0] == 42


@pytest.mark.asyncio
async def test_trivy_bridge_through_wsl(fake_runner, make_result):
    def handler(argv):
        if argv[:2] == ["wsl", "trivy"]:
            return make_result(stdout=json.dumps(TRIVY_OUTPUT))
        if argv[:2] == ["wsl", "wslpath"]:
            return make_result(stdout="/mnt/c/code/app\n")
        return make_result(stdout="WSL Ready")

    runner = fake_runner(handler)
    namespace = WslNamespace(ToolsConfig(), runner=runner, platform="win32", available=True)
    bridge = TrivyBridge(ToolsConfig(), timeout=10, namespace=namespace, runner=runner, available=True)

    result = await bridge.run("C:\\code\\app")

    assert result.ok
    trivy_call = [argv for argv in runner.calls if argv[:2] == ["wsl", "trivy"]][0]
    assert trivy_call[-1] == "/mnt/c/code/app"
    assert "--severity" in trivy_call


@pytest.mark.asyncio
async def test_timeout_yields_timed_out_result(fake_runner):
    runner = fake_runner(lambda argv: ExecutionTimeout("semgrep timed out after 1 seconds"))
    bridge = SemgrepBridge(ToolsConfig(), timeout=1, runner=runner, available=True)

    result = await bridge.run("/srv/app")

    assert result.status == ToolRunStatus.TIMED_OUT
    assert result.findings == []
    assert result.error.code == ErrorCode.TOOL_TIMEOUT


@pytest.mark.asyncio
async def test_parse_failure_yields_failed_result(fake_runner, make_result):
    runner = fake_runner(lambda argv: make_result(stdout="not json"))
    bridge = TrivyBridge(ToolsConfig(), timeout=5, runner=runner, available=True)

    result = await bridge.run("/srv/app")

    assert result.status == ToolRunStatus.FAILED
    assert result.findings == []
    assert result.error.code == ErrorCode.TOOL_OUTPUT_PARSE_ERROR


@pytest.mark.asyncio
async def test_unexpected_exception_is_contained(fake_runner):
    runner = fake_runner(lambda argv: KeyError("surprise"))
    bridge = SemgrepBridge(ToolsConfig(), timeout=5, runner=runner, available=True)

    result = await bridge.run("/srv/app")

    assert result.status == ToolRunStatus.FAILED
    assert "surprise" in result.error_message


@pytest.mark.asyncio
async def test_unavailable_tool_is_not_run(fake_runner):
    runner = fake_runner(lambda argv: AssertionError("should not run"))
    bridge = SemgrepBridge(ToolsConfig(), timeout=5, runner=runner, available=False)

    result = await bridge.run("/srv/app")

    assert result.status == ToolRunStatus.FAILED
    assert result.error.code == ErrorCode.TOOL_NOT_AVAILABLE
    assert runner.calls == []


@pytest.mark.asyncio
async def test_availability_is_probed_once():
    class CountingNamespace(NativeNamespace):
        probes = 0

        async def has_executable(self, binary):
            CountingNamespace.probes += 1
            return False

    bridge = SemgrepBridge(ToolsConfig(), timeout=5, namespace=CountingNamespace())

    assert await bridge.is_available() is False
    assert await bridge.is_available() is False
    assert CountingNamespace.probes == 1


@pytest.mark.asyncio
async def test_dependency_check_disabled_by_default(fake_runner):
    runner = fake_runner(lambda argv: AssertionError("should not probe"))
    bridge = DependencyCheckBridge(ToolsConfig(), timeout=5, runner=runner)
    assert await bridge.is_available() is False


@pytest.mark.asyncio
async def test_dependency_check_reads_report(fake_runner, make_result):
    def handler(argv):
        if "--version" in argv:
            return make_result(stdout="Dependency-Check Core version 9.0.9")
        out_dir = Path(argv[argv.index("--out") + 1])
        (out_dir / REPORT_NAME).write_text(json.dumps(ODC_REPORT), encoding="utf-8")
        return make_result(stdout="[INFO] Analysis Complete")

    runner = fake_runner(handler)
    config = ToolsConfig(odc_enabled=True, odc_path="dependency-check.sh", odc_nvd_api_key="k3y")
    bridge = DependencyCheckBridge(config, timeout=60, runner=runner)

    result = await bridge.run("/srv/app")

    assert result.ok, result.error_message
    assert len(result.findings) == 2
    scan_call = runner.calls[-1]
    assert scan_call[:3] == ["dependency-check.sh", "--project", "app"]
    assert scan_call[-2:] == ["--nvdApiKey", "k3y"]


@pytest.mark.asyncio
async def test_dependency_check_missing_report_fails(fake_runner, make_result):
    def handler(argv):
        if "--version" in argv:
            return make_result(stdout="Dependency-Check Core version 9.0.9")
        return make_result(stdout="[ERROR] nothing written")

    bridge = DependencyCheckBridge(ToolsConfig(odc_enabled=True), timeout=60, runner=fake_runner(handler))

    result = await bridge.run("/srv/app")

    assert result.status == ToolRunStatus.FAILED
    assert result.error.code == ErrorCode.TOOL_OUTPUT_PARSE_ERROR


# 3. Simulation and registry
@pytest.mark.asyncio
async def test_simulated_bridge_is_deterministic():
    first = await SimulatedBridge(SEMGREP, delay_range=(0, 0)).run("/tmp/x")
    second = await SimulatedBridge(SEMGREP, delay_range=(0, 0)).run("/tmp/x")

    assert len(first.findings) == 8
    assert [f.id for f in first.findings] == [f.id for f in second.findings]
    assert all(f.metadata["simulated"] for f in first.findings)


@pytest.mark.asyncio
async def test_simulated_datasets_per_tool():
    trivy = await SimulatedBridge(TRIVY, delay_range=(0, 0)).run("/tmp/x")
    odc = await SimulatedBridge(DEPENDENCY_CHECK, delay_range=(0, 0)).run("/tmp/x")
    assert len(trivy.findings) == 5
    assert len(odc.findings) == 2


def test_registry_from_config_simulated():
    config = ScanForgeConfig(scan=ScanConfig(simulate_tools=True))
    registry = BridgeRegistry.from_config(config)

    assert registry.names() == [SEMGREP, TRIVY, DEPENDENCY_CHECK]
    assert all(bridge.simulated for bridge in registry)


def test_registry_lookup_by_alias_and_case():
    registry = BridgeRegistry.from_config(ScanForgeConfig(scan=ScanConfig(simulate_tools=True)))

    assert registry.get("semgrep").name == SEMGREP
    assert registry.get("odc").name == DEPENDENCY_CHECK
    assert registry.get("TRIVY").name == TRIVY
    assert registry.get("nmap") is None
    assert "Trivy" in registry


def test_registry_from_config_real_bridges():
    config = ScanForgeConfig(tools=ToolsConfig(execution_namespace="native"))
    registry = BridgeRegistry.from_config(config)

    assert isinstance(registry.get(SEMGREP), SemgrepBridge)
    assert isinstance(registry.get(TRIVY), TrivyBridge)
    assert isinstance(registry.get(DEPENDENCY_CHECK), DependencyCheckBridge)
    assert registry.get(SEMGREP).namespace is registry.get(TRIVY).namespace
    # Dependency-Check is not WSL-capable and always runs natively
    assert registry.get(DEPENDENCY_CHECK).namespace is not registry.get(SEMGREP).namespace
    assert isinstance(registry.get(DEPENDENCY_CHECK).namespace, NativeNamespace)
