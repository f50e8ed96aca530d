"""Run rendered automation scripts inside the design tool."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sys
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0
# The tool reports script failures as a returned string, not an exit code.
ERROR_PREFIX = "ERROR:"


def _applescript_string(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


class AutomationInvocationError(Exception):
    """The design tool could not run the script, or the script reported an error."""

    def __init__(self, message: str, *, returncode: int | None = None, stdout: str = "", stderr: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


class AutomationTimeoutError(AutomationInvocationError):
    """The script did not finish within the configured timeout."""


@dataclass(frozen=True)
class ScriptResult:
    returncode: int
    stdout: str
    stderr: str


class ScriptExecutor:
    """Invokes the design tool with a script file.

    On Windows the tool executable is called with the script path; on macOS
    the script is handed over through ``osascript``.
    """

    def __init__(
        self,
        tool_path: str,
        *,
        tool_app: str = "Adobe Illustrator",
        timeout: float = DEFAULT_TIMEOUT,
        platform: str = sys.platform,
    ) -> None:
        self.tool_path = tool_path
        self.tool_app = tool_app
        self.timeout = timeout
        self.platform = platform

    def build_command(self, script_path: Path) -> list[str]:
        if self.platform == "win32":
            return [self.tool_path, str(script_path)]
        if self.platform == "darwin":
            return [
                "osascript",
                "-e",
                f'tell application "{_applescript_string(self.tool_app)}" '
                f'to do javascript file "{_applescript_string(str(script_path))}"',
            ]
        raise AutomationInvocationError(f"Unsupported platform for design tool automation: {self.platform}")

    async def run(self, script_path: Path) -> ScriptResult:
        command = self.build_command(script_path)
        logger.info("running automation script %s", script_path.name)
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise AutomationInvocationError(f"Could not start {command[0]}: {exc}") from exc

        try:
            raw_out, raw_err = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()
            raise AutomationTimeoutError(f"Script timed out after {self.timeout:g}s") from None

        stdout = raw_out.decode("utf-8", errors="replace").strip()
        stderr = raw_err.decode("utf-8", errors="replace").strip()
        returncode = process.returncode if process.returncode is not None else -1
        if returncode != 0:
            raise AutomationInvocationError(
                f"Script exited with code {returncode}: {stderr or stdout or 'no output'}",
                returncode=returncode,
                stdout=stdout,
                stderr=stderr,
            )
        if stdout.startswith(ERROR_PREFIX):
            raise AutomationInvocationError(
                stdout[len(ERROR_PREFIX) :].strip() or "Script reported an error",
                returncode=returncode,
                stdout=stdout,
                stderr=stderr,
            )
        if stderr:
            logger.debug("script stderr: %s", stderr)
        return ScriptResult(returncode=returncode, stdout=stdout, stderr=stderr)
