# deployer/smoke.py
"""Post-health smoke tests: a short fixed battery, all of which must pass."""
import time
from typing import Callable, List, Optional, Tuple

from .errors import DeploymentError
from .health import HttpProbe, Probe


class SmokeTester:
    def __init__(
        self,
        runtime,
        logger,
        url: str,
        max_latency_ms: float = 5000.0,
        probe: Optional[Probe] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.runtime = runtime
        self.log = logger
        self.url = url
        self.max_latency_ms = max_latency_ms
        self.probe = probe or HttpProbe()
        self.clock = clock

    def checks(self, container: str) -> List[Tuple[str, Callable[[], None]]]:
        return [
            ("Health endpoint", self.check_health_endpoint),
            ("Response time check", self.check_response_time),
            ("Container resource usage", lambda: self.check_resource_usage(container)),
        ]

    def check_health_endpoint(self) -> None:
        if not self.probe(self.url, 10.0):
            raise DeploymentError(f"Health endpoint {self.url} did not answer 2xx")

    def check_response_time(self) -> None:
        start = self.clock()
        ok = self.probe(self.url, 5.0)
        elapsed_ms = round((self.clock() - start) * 1000, 1)
        if not ok:
            raise DeploymentError(f"Health endpoint failed after {elapsed_ms}ms")
        if elapsed_ms > self.max_latency_ms:
            raise DeploymentError(f"Response time too slow: {elapsed_ms}ms")
        self.log.info(f"Response time: {elapsed_ms}ms")

    def check_resource_usage(self, container: str) -> None:
        stats = self.runtime.stats(container)
        self.log.info("Container stats:", stats)

    def run(self, container: str) -> None:
        self.log.info("Performing smoke tests...")
        for name, check in self.checks(container):
            self.log.info(f"Running test: {name}...")
            try:
                check()
            except Exception as e:
                self.log.error(f"{name} - FAILED", {"error": str(e)})
                raise DeploymentError(f"Smoke test failed: {name}", stage="smoke")
            self.log.success(f"{name} - PASSED")
        self.log.success("All smoke tests passed")
