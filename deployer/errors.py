# deployer/errors.py
from typing import Optional


class DeploymentError(Exception):
    """Raised when a deployment stage fails."""

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.stage = stage


class CommandError(DeploymentError):
    """Raised when an external command exits non-zero, times out or is missing."""

    def __init__(
        self,
        command: str,
        returncode: Optional[int] = None,
        stderr: str = "",
        message: Optional[str] = None,
    ):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        if message is None:
            message = f"Command failed: {command}"
            if stderr:
                message += f"\nstderr: {stderr}"
        super().__init__(message)
