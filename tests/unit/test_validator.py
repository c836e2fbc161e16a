"""Tests for pre-deployment validation."""
import pytest

from deployer.config import DeploymentConfig
from deployer.errors import DeploymentError
from deployer.validator import Check, Validator, default_checks, tool_checks
from tests.conftest import FakeRunner


def test_default_checks_order():
    config = DeploymentConfig(lint_command="make lint", build_command="make build")

    checks = default_checks(config)

    assert [c.name for c in checks] == [
        "Docker availability",
        "Docker Compose availability",
        "Quality checks",
        "Security scan",
        "Build verification",
    ]
    assert checks[2].command == "make lint"
    assert checks[3].required is False
    assert [c.command for c in tool_checks()] == ["docker --version", "docker compose version"]


def test_all_checks_pass(dlog):
    runner = FakeRunner()
    checks = [Check("a", "cmd-a"), Check("b", "cmd-b")]

    Validator(checks, dlog, runner=runner).run()

    assert runner.commands == ["cmd-a", "cmd-b"]


def test_first_failure_stops_remaining_checks(dlog):
    runner = FakeRunner(fail_on={"cmd-b"})
    checks = [Check("a", "cmd-a"), Check("b", "cmd-b"), Check("c", "cmd-c")]

    with pytest.raises(DeploymentError, match="Pre-deployment validation failed: b") as exc:
        Validator(checks, dlog, runner=runner).run()

    assert runner.commands == ["cmd-a", "cmd-b"]
    assert exc.value.stage == "validation"


def test_optional_check_failure_continues(dlog):
    runner = FakeRunner(fail_on={"scan"})
    checks = [Check("scan", "scan", required=False), Check("build", "build")]

    Validator(checks, dlog, runner=runner).run()

    assert runner.commands == ["scan", "build"]
