# deployer/deadline.py
import time
from typing import Callable, Optional

from .errors import DeploymentError


class Deadline:
    """Overall time budget for one deployment run. ``seconds=None`` never expires."""

    def __init__(
        self,
        seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.seconds = seconds
        self._clock = clock
        self._started = clock()

    def start(self) -> None:
        self._started = self._clock()

    def remaining(self) -> Optional[float]:
        if self.seconds is None:
            return None
        return self.seconds - (self._clock() - self._started)

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def check(self, stage: str) -> None:
        if self.expired():
            raise DeploymentError(
                f"Deployment deadline of {self.seconds}s exceeded during {stage}",
                stage=stage,
            )
