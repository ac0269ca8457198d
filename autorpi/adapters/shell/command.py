"""
Subprocess runner — execute external commands.

This is the most fundamental adapter: it runs commands and captures
their output. The apt, systemd and reboot adapters are built on it.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
import time
from collections.abc import Mapping, Sequence

from autorpi.adapters.base import ProcessRunner
from autorpi.core.models.receipt import Receipt

logger = logging.getLogger(__name__)


class SubprocessRunner(ProcessRunner):
    """Run commands with :mod:`subprocess` and capture output.

    Args:
        default_timeout: Timeout applied when a call passes none
            (None = wait indefinitely).
    """

    def __init__(self, default_timeout: int | None = None):
        self._default_timeout = default_timeout

    @property
    def name(self) -> str:
        return "shell"

    def is_available(self) -> bool:
        return shutil.which("sh") is not None

    def which(self, program: str) -> bool:
        return shutil.which(program) is not None

    def shell(self, command: str, env: Mapping[str, str] | None = None) -> Receipt:
        return self.run(["/bin/sh", "-c", command], env=env)

    def run(
        self,
        argv: Sequence[str],
        input: str | None = None,
        env: Mapping[str, str] | None = None,
        timeout: int | None = None,
        cwd: str | None = None,
    ) -> Receipt:
        command = shlex.join(argv)
        timeout = timeout if timeout is not None else self._default_timeout
        run_env = {**os.environ, **env} if env else None

        logger.debug("Executing: %s", command)
        start = time.monotonic()

        try:
            result = subprocess.run(
                list(argv),
                input=input,
                env=run_env,
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            return Receipt.failure(
                adapter=self.name,
                operation=command,
                error=f"Command timed out after {timeout}s",
                metadata={"timeout": timeout},
            )
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                operation=command,
                error=f"Command execution error: {e}",
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        output = result.stdout.strip()
        stderr = result.stderr.strip()

        if result.returncode == 0:
            return Receipt.success(
                adapter=self.name,
                operation=command,
                output=output,
                return_code=0,
                duration_ms=elapsed_ms,
                metadata={"stderr": stderr},
            )
        return Receipt.failure(
            adapter=self.name,
            operation=command,
            error=stderr or f"Command exited with code {result.returncode}",
            output=output,
            return_code=result.returncode,
            duration_ms=elapsed_ms,
        )
