# deployer/validator.py
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

from .errors import DeploymentError
from .shell import run_command


@dataclass(frozen=True)
class Check:
    name: str
    command: str
    required: bool = True
    timeout: int = 600


def tool_checks() -> List[Check]:
    return [
        Check("Docker availability", "docker --version", timeout=30),
        Check("Docker Compose availability", "docker compose version", timeout=30),
    ]


def default_checks(config) -> List[Check]:
    return tool_checks() + [
        Check("Quality checks", config.lint_command),
        Check("Security scan", config.security_scan_command, required=False),
        Check("Build verification", config.build_command),
    ]


class Validator:
    """Runs checks in order and stops at the first required one that fails."""

    def __init__(
        self,
        checks: Iterable[Check],
        logger,
        runner: Callable = run_command,
        cwd: Optional[str] = None,
    ):
        self.checks = list(checks)
        self.log = logger
        self.runner = runner
        self.cwd = cwd

    def run(self) -> None:
        self.log.info("Starting pre-deployment validation...")
        for check in self.checks:
            self.log.info(f"Validating: {check.name}...")
            self.log.debug(f"$ {check.command}")
            try:
                self.runner(check.command, timeout=check.timeout, check=True, cwd=self.cwd)
            except DeploymentError as e:
                if not check.required:
                    self.log.warn(
                        f"{check.name} - FAILED (non-blocking)", {"error": str(e)}
                    )
                    continue
                self.log.error(f"{check.name} - FAILED", {"error": str(e)})
                raise DeploymentError(
                    f"Pre-deployment validation failed: {check.name}",
                    stage="validation",
                )
            self.log.success(f"{check.name} - PASSED")

        self.log.success("All pre-deployment validations passed")
