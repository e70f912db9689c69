"""External process runner.

Runs a command, capturing stdout and stderr combined, and reports the exit
code. Used by stack provisioners that shell out to a synthesis tool.
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence

import structlog

from stackweave.core.errors import LaunchFailedError, NonZeroExitError

logger = structlog.get_logger()


@dataclass(frozen=True)
class ProcessResult:
    exit_code: int
    output: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class ProcessRunner:
    """Runs external commands on the event loop."""

    async def run(
        self,
        path: str,
        args: Sequence[str] = (),
        *,
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = False,
    ) -> ProcessResult:
        """Run ``path`` with ``args`` and return its exit code and combined output.

        Raises LaunchFailedError if the process cannot be started and, when
        ``check`` is set, NonZeroExitError if it exits with a non-zero code.
        """
        process_env = None
        if env:
            process_env = {**os.environ, **env}

        try:
            process = await asyncio.create_subprocess_exec(
                path,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                cwd=str(cwd) if cwd is not None else None,
                env=process_env,
            )
        except OSError as exc:
            logger.debug("process_launch_failed", path=path, error=str(exc))
            raise LaunchFailedError(path, str(exc)) from exc

        stdout, _ = await process.communicate()
        output = stdout.decode("utf-8", errors="replace") if stdout else ""
        exit_code = process.returncode if process.returncode is not None else -1

        if exit_code != 0:
            logger.debug("process_exited_nonzero", path=path, exit_code=exit_code)
            if check:
                raise NonZeroExitError(path, exit_code, output)

        return ProcessResult(exit_code=exit_code, output=output)
