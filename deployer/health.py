# deployer/health.py
import time
from typing import Callable, Optional

import requests

from .deadline import Deadline
from .errors import DeploymentError

Probe = Callable[[str, float], bool]


class HttpProbe:
    """GET ``url`` with a bounded timeout; any 2xx answer counts as healthy."""

    def __init__(self, session: Optional[requests.Session] = None):
        self.session = session

    def __call__(self, url: str, timeout: float) -> bool:
        getter = self.session.get if self.session is not None else requests.get
        try:
            response = getter(url, timeout=timeout)
        except requests.RequestException:
            return False
        return 200 <= response.status_code < 300


class HealthPoller:
    """Bounded retry with a fixed interval: Polling -> Healthy | Exhausted."""

    def __init__(
        self,
        runtime,
        logger,
        url: str,
        retries: int = 30,
        interval: float = 2.0,
        timeout: float = 10.0,
        probe: Optional[Probe] = None,
        sleep: Callable[[float], None] = time.sleep,
        deadline: Optional[Deadline] = None,
        on_attempt: Optional[Callable[[], None]] = None,
    ):
        self.runtime = runtime
        self.log = logger
        self.url = url
        self.retries = retries
        self.interval = interval
        self.timeout = timeout
        self.probe = probe or HttpProbe()
        self.sleep = sleep
        self.deadline = deadline or Deadline()
        self.on_attempt = on_attempt
        self.attempts = 0

    def _attempt(self, container: str) -> Optional[str]:
        """Return None when healthy, otherwise the reason the attempt failed."""
        if not self.runtime.is_running(container):
            return "container not running"
        if not self.probe(self.url, self.timeout):
            return f"no 2xx response from {self.url}"
        return None

    def wait_until_healthy(self, container: str) -> int:
        """Poll until healthy and return the number of attempts used.

        Raises DeploymentError once ``retries`` attempts have failed, after
        dumping the container's recent log output.
        """
        self.log.info(f"Waiting for {container} to become healthy...")
        self.attempts = 0

        while True:
            self.attempts += 1
            if self.on_attempt is not None:
                self.on_attempt()
            self.log.info(f"Health probe attempt {self.attempts}/{self.retries}")
            try:
                reason = self._attempt(container)
            except Exception as e:
                reason = f"{type(e).__name__}: {e}"

            if reason is None:
                self.log.success(
                    f"Container {container} is healthy after {self.attempts} attempt(s)"
                )
                return self.attempts

            if self.attempts >= self.retries:
                self.log.error(
                    f"Health check attempt {self.attempts}/{self.retries} failed ({reason})"
                )
                break

            self.log.warn(
                f"Health check attempt {self.attempts}/{self.retries} failed "
                f"({reason}), retrying in {self.interval}s..."
            )
            self.deadline.check("health check")
            self.sleep(self.interval)

        self._dump_logs(container)
        raise DeploymentError(
            f"Health check failed after {self.retries} attempts", stage="health"
        )

    def _dump_logs(self, container: str) -> None:
        try:
            logs = self.runtime.logs(container, tail=50)
            self.log.error("Container logs:", {"logs": logs})
        except Exception as e:
            self.log.error("Failed to get container logs", {"error": str(e)})
