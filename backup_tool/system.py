"""Thin wrappers around external commands and host checks."""

import logging
import os
import shlex
import shutil
import subprocess
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)


class CommandResult:
    """Exit status and merged stdout/stderr of an external command."""

    def __init__(self, returncode: int, output: str = ""):
        self.returncode = returncode
        self.output = output

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def run_command(cmd: List[str], input_text: Optional[str] = None) -> CommandResult:
    """
    Run a command to completion and capture its output.

    No timeout is applied: the call blocks until the tool exits. A missing
    executable is reported as status 127, the way a shell would. Output
    bytes that are not UTF-8 (legacy file names) are replaced, not fatal.
    """
    logger.debug(f"Running command: {shlex.join(cmd)}")
    try:
        result = subprocess.run(
            cmd,
            input=input_text,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            encoding="utf-8",
            errors="replace",
            check=False,
        )
    except FileNotFoundError:
        return CommandResult(127, f"command not found: {cmd[0]}")
    except (OSError, subprocess.SubprocessError) as e:
        return CommandResult(126, f"cannot execute {cmd[0]}: {e}")

    logger.debug(f"Command exited with status {result.returncode}")
    return CommandResult(result.returncode, result.stdout or "")


def find_missing_tools(tools: Iterable[str]) -> List[str]:
    """Return the tools from ``tools`` that are not on PATH."""
    return [tool for tool in tools if not shutil.which(tool)]


def require_tools(tools: Iterable[str]) -> None:
    """Raise RuntimeError listing every missing tool at once."""
    missing = find_missing_tools(tools)
    if missing:
        raise RuntimeError(f"Missing required tools: {', '.join(missing)}")


def require_root() -> None:
    if os.geteuid() != 0:
        raise PermissionError("This command must be run as root (try sudo)")
