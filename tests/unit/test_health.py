"""Tests for the health poller and HTTP probe."""
from unittest.mock import MagicMock, patch

import pytest
import requests

from deployer.deadline import Deadline
from deployer.errors import DeploymentError
from deployer.health import HealthPoller, HttpProbe
from tests.conftest import CountingProbe

URL = "http://localhost:8080/health"


def make_poller(runtime, dlog, clock, probe, retries=30, deadline=None):
    return HealthPoller(
        runtime,
        dlog,
        URL,
        retries=retries,
        interval=2.0,
        probe=probe,
        sleep=clock.sleep,
        deadline=deadline,
    )


class TestHealthPoller:
    def test_healthy_on_third_attempt(self, runtime, dlog, clock):
        runtime.add("c1")
        poller = make_poller(runtime, dlog, clock, CountingProbe(succeed_from=3))

        assert poller.wait_until_healthy("c1") == 3
        assert clock.sleeps == [2.0, 2.0]

    @pytest.mark.parametrize("retries", [1, 5, 30])
    def test_exhausted_after_exactly_n_attempts(self, runtime, dlog, clock, retries):
        runtime.add("c1")
        probe = CountingProbe(succeed_from=None)
        poller = make_poller(runtime, dlog, clock, probe, retries=retries)

        with pytest.raises(DeploymentError, match=f"Health check failed after {retries} attempts"):
            poller.wait_until_healthy("c1")

        assert probe.calls == retries
        assert poller.attempts == retries
        assert len(clock.sleeps) == retries - 1

    def test_exhausted_dumps_container_logs(self, runtime, dlog, clock):
        runtime.add("c1")
        poller = make_poller(runtime, dlog, clock, CountingProbe(succeed_from=None), retries=2)

        with pytest.raises(DeploymentError):
            poller.wait_until_healthy("c1")

        assert ("logs", "c1") in runtime.calls

    def test_stopped_container_is_not_probed(self, runtime, dlog, clock):
        runtime.add("c1", status="exited")
        probe = CountingProbe()
        poller = make_poller(runtime, dlog, clock, probe, retries=3)

        with pytest.raises(DeploymentError):
            poller.wait_until_healthy("c1")

        assert probe.calls == 0

    def test_probe_exception_counts_as_failed_attempt(self, runtime, dlog, clock):
        runtime.add("c1")
        calls = []

        def probe(url, timeout):
            calls.append(url)
            if len(calls) == 1:
                raise ValueError("weird")
            return True

        poller = make_poller(runtime, dlog, clock, probe)

        assert poller.wait_until_healthy("c1") == 2

    def test_deadline_interrupts_polling(self, runtime, dlog, clock):
        runtime.add("c1")
        deadline = Deadline(3, clock)
        poller = make_poller(
            runtime, dlog, clock, CountingProbe(succeed_from=None), deadline=deadline
        )

        with pytest.raises(DeploymentError, match="deadline"):
            poller.wait_until_healthy("c1")

        assert poller.attempts == 3


class TestHttpProbe:
    def test_2xx_is_healthy(self):
        with patch("deployer.health.requests") as mock_requests:
            mock_requests.RequestException = requests.RequestException
            mock_requests.get.return_value = MagicMock(status_code=204)

            assert HttpProbe()(URL, 10) is True
            mock_requests.get.assert_called_with(URL, timeout=10)

    def test_non_2xx_is_unhealthy(self):
        with patch("deployer.health.requests") as mock_requests:
            mock_requests.RequestException = requests.RequestException
            mock_requests.get.return_value = MagicMock(status_code=503)

            assert HttpProbe()(URL, 10) is False

    def test_connection_error_is_unhealthy(self):
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError("refused")

        assert HttpProbe(session=session)(URL, 1) is False
