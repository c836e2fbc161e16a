# deployer/rollback.py
"""Failure-path rollback and success-path cleanup."""
from typing import Optional

from .metrics import ROLLBACK_COUNTER


class RollbackManager:
    def __init__(
        self,
        runtime,
        logger,
        poller,
        prefix: str,
        image_prune_age: Optional[str] = "24h",
    ):
        self.runtime = runtime
        self.log = logger
        self.poller = poller
        self.prefix = prefix
        self.image_prune_age = image_prune_age

    def _discard(self, name: str) -> None:
        stopped = self.runtime.stop(name)
        removed = self.runtime.remove(name)
        if not (stopped or removed):
            self.log.info(f"Container {name} already gone")
        else:
            self.log.info(f"Removed container: {name}")

    def rollback(self, previous: Optional[str], failed: Optional[str]) -> bool:
        """Tear down ``failed`` and bring ``previous`` back.

        Never raises: errors are logged and reported through the return value.
        """
        self.log.warn("Starting rollback process...")

        # The failed container holds the host port, so it goes first.
        if failed:
            try:
                self._discard(failed)
            except Exception as e:
                self.log.error(f"Failed to remove {failed}", {"error": str(e)})

        if not previous:
            self.log.warn("No previous container available for rollback")
            ROLLBACK_COUNTER.labels(outcome="unavailable").inc()
            return False

        try:
            self.log.info(f"Restarting previous container: {previous}")
            self.runtime.start(previous)
            self.poller.wait_until_healthy(previous)
        except Exception as e:
            self.log.error("Rollback failed", {"error": str(e)})
            ROLLBACK_COUNTER.labels(outcome="failed").inc()
            return False

        self.log.success(f"Rollback completed successfully, {previous} is serving")
        ROLLBACK_COUNTER.labels(outcome="success").inc()
        return True

    def cleanup(self, active: str) -> None:
        """Remove every prefixed container except ``active``, then prune old images.

        Safe to run repeatedly: containers that are already gone are skipped.
        """
        self.log.info("Cleaning up superseded containers...")
        try:
            containers = self.runtime.list(self.prefix, all=True)
        except Exception as e:
            self.log.warn("Could not list containers, skipping cleanup", {"error": str(e)})
            containers = []

        for container in containers:
            name = container["name"]
            if name == active:
                continue
            try:
                self._discard(name)
            except Exception as e:
                self.log.warn(f"Error removing {name}, continuing...", {"error": str(e)})

        if self.image_prune_age:
            try:
                self.runtime.prune_images(until=self.image_prune_age)
                self.log.info(f"Pruned images older than {self.image_prune_age}")
            except Exception as e:
                self.log.warn("Image prune had issues, continuing...", {"error": str(e)})

        self.log.success("Cleanup completed")
