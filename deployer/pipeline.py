# deployer/pipeline.py
"""Deployment pipeline driver.

    validate -> discover -> build -> swap -> health poll -> smoke test
             -> cleanup (success) | rollback (failure) -> report

Stages run strictly in order; the first failure aborts the rest.
"""
import time
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

from .config import DeploymentConfig
from .deadline import Deadline
from .engine import ContainerRuntime, ContainerSpec, create_runtime
from .health import HealthPoller, Probe
from .log import DeploymentLogger
from .metrics import DEPLOYMENT_COUNTER, HEALTH_PROBE_COUNTER, write_metrics
from .report import DeploymentReport, write_report
from .rollback import RollbackManager
from .shell import run_command
from .smoke import SmokeTester
from .validator import Check, Validator, default_checks, tool_checks


@dataclass
class DeploymentOutcome:
    success: bool
    report: DeploymentReport
    duration_ms: int
    error: Optional[str] = None


def discover_current_container(runtime, prefix: str, logger) -> Optional[str]:
    """Name of the running container to fall back to, or None.

    When several containers match the prefix the most recently started wins.
    """
    try:
        running = [
            c for c in runtime.list(prefix, all=False)
            if c.get("status", "running") == "running"
        ]
    except Exception as e:
        logger.warn("Could not list containers", {"error": str(e)})
        return None

    if not running:
        logger.info("No current container found")
        return None

    current = running[0]["name"]
    if len(running) > 1:
        logger.warn(
            f"{len(running)} containers match '{prefix}', using most recent: {current}",
            {"others": [c["name"] for c in running[1:]]},
        )
    logger.info(f"Found current container: {current}")
    return current


class Deployer:
    def __init__(
        self,
        config: DeploymentConfig,
        runtime: Optional[ContainerRuntime] = None,
        logger: Optional[DeploymentLogger] = None,
        runner: Callable = run_command,
        probe: Optional[Probe] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        checks: Optional[Iterable[Check]] = None,
    ):
        self.config = config
        self.runtime = runtime or create_runtime(config.runtime)
        self.log = logger or DeploymentLogger(config.deployment_id, config.log_file)
        self.runner = runner
        self.clock = clock
        self.deadline = Deadline(config.deadline_seconds, clock)
        self.checks = list(checks) if checks is not None else self.default_checks()

        self.poller = HealthPoller(
            self.runtime,
            self.log,
            config.health_url,
            retries=config.health_retries,
            interval=config.health_interval_seconds,
            timeout=config.health_timeout_seconds,
            probe=probe,
            sleep=sleep,
            deadline=self.deadline,
            on_attempt=HEALTH_PROBE_COUNTER.inc,
        )
        # Rollback must be able to finish even after the deadline has passed.
        rollback_poller = HealthPoller(
            self.runtime,
            self.log,
            config.health_url,
            retries=config.health_retries,
            interval=config.health_interval_seconds,
            timeout=config.health_timeout_seconds,
            probe=probe,
            sleep=sleep,
        )
        self.smoke = SmokeTester(
            self.runtime,
            self.log,
            config.health_url,
            max_latency_ms=config.smoke_max_latency_ms,
            probe=probe,
            clock=clock,
        )
        self.rollback_manager = RollbackManager(
            self.runtime,
            self.log,
            rollback_poller,
            config.container_prefix,
            image_prune_age=self.image_prune_age(),
        )

        self.current_container: Optional[str] = None
        self.previous_container: Optional[str] = None
        self._discovered = False
        self._swap_started = False

    def default_checks(self) -> List[Check]:
        return default_checks(self.config)

    def image_prune_age(self) -> Optional[str]:
        return self.config.image_prune_age

    # ── Stages ────────────────────────────────────────────────────

    def validate(self) -> None:
        Validator(
            self.checks, self.log, runner=self.runner, cwd=self.config.build_context
        ).run()

    def discover(self) -> Optional[str]:
        self.previous_container = discover_current_container(
            self.runtime, self.config.container_prefix, self.log
        )
        self._discovered = True
        return self.previous_container

    def build_image(self) -> str:
        tag = self.config.image_tag
        self.log.info(f"Building image {tag}...")
        self.runtime.build(
            self.config.build_context,
            tag,
            target=self.config.build_target,
            extra_tags=[f"{self.config.image_name}:latest"],
        )
        self.log.success(f"Image built successfully: {tag}")
        return tag

    def deploy_container(self, image_tag: str) -> str:
        name = self.config.container_name
        # From here on the serving container may be disturbed.
        self._swap_started = True
        if self.previous_container:
            self.log.info(
                f"Stopping {self.previous_container} to release port {self.config.port}"
            )
            self.runtime.stop(self.previous_container)

        self.log.info(f"Deploying new container: {name}")
        # Recorded before the run call: a half-created container still needs removal.
        self.current_container = name
        self.runtime.run(name, image_tag, ContainerSpec.from_config(self.config))
        self.log.success(f"Container deployed: {name}")
        return name

    def run_stages(self) -> None:
        self.validate()
        self.deadline.check("validation")
        self.discover()
        image_tag = self.build_image()
        self.deadline.check("build")
        name = self.deploy_container(image_tag)
        self.deadline.check("deploy")
        self.poller.wait_until_healthy(name)
        self.smoke.run(name)
        self.deadline.check("smoke tests")
        self.rollback_manager.cleanup(name)

    # ── Driver ────────────────────────────────────────────────────

    def deploy(self) -> DeploymentOutcome:
        started = self.clock()
        self.deadline.start()
        self.log.info(f"Starting deployment [{self.config.deployment_id}]")
        self.log.info(
            "Configuration:", self.config.model_dump(mode="json", by_alias=True)
        )

        error: Optional[str] = None
        rollback_success: Optional[bool] = None
        try:
            self.run_stages()
        except Exception as e:
            error = str(e) or type(e).__name__
            self.log.error("Deployment failed", {"error": error})
            if self._swap_started:
                rollback_success = self.rollback_manager.rollback(
                    self.previous_container, self.current_container
                )
            elif self._discovered and not self.previous_container:
                # Nothing was serving before this run, so nothing can be restored.
                rollback_success = self.rollback_manager.rollback(None, None)
            else:
                self.log.info("Failed before any container was touched, nothing to roll back")

        duration_ms = int((self.clock() - started) * 1000)
        status = "success" if error is None else "failed"
        report = DeploymentReport.build(
            self.config,
            current=self.current_container,
            previous=self.previous_container,
            status=status,
            log_file=self.log.log_file,
            error=error,
            rollback_success=rollback_success,
            duration_ms=duration_ms,
        )
        write_report(report, self.config.report_file, self.log)
        DEPLOYMENT_COUNTER.labels(status=status).inc()
        self._write_metrics()
        self._summary(report)

        if error is None:
            self.log.success(f"Deployment completed successfully in {duration_ms}ms")
            self.log.success(f"Application is running at http://localhost:{self.config.port}")
            self.log.success(f"Health endpoint: {self.config.health_url}")
        else:
            self.log.error(f"Deployment failed after {duration_ms}ms")

        return DeploymentOutcome(
            success=error is None, report=report, duration_ms=duration_ms, error=error
        )

    def _write_metrics(self) -> None:
        if not self.config.metrics_file:
            return
        try:
            write_metrics(self.config.metrics_file)
        except OSError as e:
            self.log.warn(f"Failed to write metrics file: {e}")

    def _summary(self, report: DeploymentReport) -> None:
        data = report.to_dict()
        for key in ("deploymentId", "status", "error", "rollbackSuccess", "durationMs"):
            if key in data:
                self.log.info(f"{key}: {data[key]}")
        self.log.info(f"containers: {data['containers']}")


class LocalDeployer(Deployer):
    """Local variant: only checks the toolchain and keeps old images around."""

    def default_checks(self) -> List[Check]:
        return tool_checks()

    def image_prune_age(self) -> Optional[str]:
        return None


def create_deployer(config: DeploymentConfig, **kwargs) -> Deployer:
    if config.mode == "local":
        return LocalDeployer(config, **kwargs)
    return Deployer(config, **kwargs)
