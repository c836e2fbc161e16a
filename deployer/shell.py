# deployer/shell.py
import shlex
import subprocess
from typing import Optional, Sequence, Union

from .errors import CommandError

Command = Union[str, Sequence[str]]


def _split(cmd: Command):
    if isinstance(cmd, str):
        return shlex.split(cmd), cmd
    cmd_list = [str(part) for part in cmd]
    return cmd_list, " ".join(cmd_list)


def run_command(
    cmd: Command,
    timeout: int = 60,
    check: bool = True,
    cwd: Optional[str] = None,
) -> subprocess.CompletedProcess:
    """Run an external command and capture its text output.

    Raises CommandError when the command exits non-zero (if ``check``),
    runs past ``timeout`` seconds, or the executable cannot be found.
    """
    cmd_list, cmd_str = _split(cmd)
    try:
        result = subprocess.run(
            cmd_list,
            capture_output=True,
            text=True,
            timeout=timeout,
            cwd=cwd,
        )
    except subprocess.TimeoutExpired:
        raise CommandError(
            cmd_str, message=f"Command timed out after {timeout}s: {cmd_str}"
        )
    except FileNotFoundError:
        raise CommandError(
            cmd_str, returncode=127, message=f"Command not found: {cmd_str}"
        )

    if check and result.returncode != 0:
        raise CommandError(cmd_str, result.returncode, (result.stderr or "").strip())
    return result
