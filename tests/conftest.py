# tests/conftest.py
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from deployer.config import DeploymentConfig  # noqa: E402
from deployer.engine import ContainerRuntime  # noqa: E402
from deployer.errors import CommandError  # noqa: E402
from deployer.log import DeploymentLogger  # noqa: E402


# ---------------------------------------------------------------------------
# In-memory stand-ins for the outside world
# ---------------------------------------------------------------------------
class FakeRuntime(ContainerRuntime):
    """Container runtime that keeps containers in a dict."""

    def __init__(self, running=()):
        self.containers = {}
        self.images = []
        self.calls = []
        self.build_error = None
        self.run_error = None
        self.start_error = None
        self._tick = 0
        for name in running:
            self.add(name)

    def _stamp(self):
        self._tick += 1
        return f"2025-01-01T00:00:{self._tick:02d}Z"

    def add(self, name, status="running"):
        self.containers[name] = {"status": status, "started_at": self._stamp()}

    def build(self, path, tag, target=None, extra_tags=()):
        self.calls.append(("build", tag))
        if self.build_error:
            raise self.build_error
        self.images.append(tag)
        self.images.extend(extra_tags)
        return tag

    def run(self, name, image, spec):
        self.calls.append(("run", name))
        if self.run_error:
            raise self.run_error
        self.add(name)
        return name

    def start(self, name):
        self.calls.append(("start", name))
        if self.start_error:
            raise self.start_error
        if name not in self.containers:
            raise RuntimeError(f"No such container: {name}")
        self.containers[name]["status"] = "running"
        self.containers[name]["started_at"] = self._stamp()

    def stop(self, name, timeout=10):
        self.calls.append(("stop", name))
        if name not in self.containers:
            return False
        self.containers[name]["status"] = "exited"
        return True

    def remove(self, name, force=True):
        self.calls.append(("remove", name))
        return self.containers.pop(name, None) is not None

    def list(self, prefix, all=False):
        found = [
            {"name": name, **info}
            for name, info in self.containers.items()
            if name.startswith(prefix) and (all or info["status"] == "running")
        ]
        return sorted(found, key=lambda c: c["started_at"], reverse=True)

    def is_running(self, name):
        return self.containers.get(name, {}).get("status") == "running"

    def logs(self, name, tail=50):
        self.calls.append(("logs", name))
        return "listening on :3000"

    def stats(self, name):
        return {"cpu_percent": 1.5, "memory": "42.0MiB / 512.0MiB"}

    def prune_images(self, until="24h"):
        self.calls.append(("prune", until))


class FakeRunner:
    """Replacement for run_command: records commands, fails the listed ones."""

    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.commands = []

    def __call__(self, cmd, timeout=60, check=True, cwd=None):
        self.commands.append(cmd)
        if cmd in self.fail_on:
            raise CommandError(cmd, 1, "boom")
        result = MagicMock()
        result.returncode = 0
        result.stdout = ""
        return result


class FakeClock:
    """Monotonic clock that only moves when sleep() is called."""

    def __init__(self, start=1000.0):
        self.now = start
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class CountingProbe:
    """Probe that starts answering 2xx on the ``succeed_from``-th call."""

    def __init__(self, succeed_from=1):
        self.succeed_from = succeed_from
        self.calls = 0

    def __call__(self, url, timeout):
        self.calls += 1
        return self.succeed_from is not None and self.calls >= self.succeed_from


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def patch_docker_client():
    """Prevent docker.from_env() from contacting the host."""
    fake_client = MagicMock()
    fake_client.containers = MagicMock()
    fake_client.images = MagicMock()
    with patch("docker.from_env", return_value=fake_client):
        yield fake_client


@pytest.fixture
def runtime():
    return FakeRuntime()


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config(tmp_path):
    return DeploymentConfig(
        deployment_id="deploy-1700000000000",
        logs_dir=str(tmp_path / "logs"),
        health_interval_seconds=2.0,
    )


@pytest.fixture
def dlog(config):
    log = DeploymentLogger(config.deployment_id, config.log_file, console=False)
    yield log
    log.close()
