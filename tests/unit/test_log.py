"""Tests for the per-deployment logger."""
import json
import re

from deployer.log import DeploymentLogger

LINE = re.compile(r"^\[\d{4}-\d\d-\d\dT\d\d:\d\d:\d\d\.\d{3}Z\] (\w+): (.*)$")


def test_line_format(tmp_path):
    log_file = tmp_path / "logs" / "deployment-deploy-1.log"
    log = DeploymentLogger("deploy-1", log_file, console=False)

    log.info("Starting")
    log.warn("Careful", {"attempt": 2})
    log.success("Done")
    log.close()

    lines = log_file.read_text().splitlines()
    parsed = [LINE.match(line).groups() for line in lines]
    assert parsed[0] == ("INFO", "Starting")
    assert parsed[1][0] == "WARN"
    assert parsed[1][1].startswith("Careful ")
    assert json.loads(parsed[1][1][len("Careful "):]) == {"attempt": 2}
    assert parsed[2] == ("SUCCESS", "Done")


def test_messages_with_braces_are_kept(tmp_path):
    log_file = tmp_path / "d.log"
    log = DeploymentLogger("deploy-2", log_file, console=False)

    log.error("format {{.Names}} failed")
    log.close()

    assert "ERROR: format {{.Names}} failed" in log_file.read_text()


def test_loggers_do_not_cross_write(tmp_path):
    first = DeploymentLogger("deploy-a", tmp_path / "a.log", console=False)
    second = DeploymentLogger("deploy-b", tmp_path / "b.log", console=False)

    first.info("only in a")
    second.info("only in b")
    first.close()
    second.close()

    assert "only in b" not in (tmp_path / "a.log").read_text()
    assert "only in a" not in (tmp_path / "b.log").read_text()


def test_unwritable_log_file_is_not_fatal(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("")

    log = DeploymentLogger("deploy-c", blocker / "sub" / "x.log", console=False)
    log.info("still works")
    log.close()

    assert log.log_file is None


def test_close_is_idempotent(tmp_path):
    log = DeploymentLogger("deploy-d", tmp_path / "d.log", console=False)
    log.close()
    log.close()
