"""Subprocess execution service for nextdeploy."""

import os
import re
import subprocess
from typing import Dict, List, Optional

from nextdeploy.errors import CommandError

_URL_CREDENTIALS = re.compile(r"(?P<scheme>[a-z][a-z0-9+.-]*://)[^/@\s]+@", re.IGNORECASE)


def mask_credentials(text: str) -> str:
    """Hides ``user:token@`` parts of URLs embedded in ``text``."""
    return _URL_CREDENTIALS.sub(r"\g<scheme>***@", text)


class CommandRunner:
    """Runs external commands with consistent error handling."""

    def __init__(self, logger, default_timeout: Optional[float] = None):
        self.logger = logger
        self.default_timeout = default_timeout

    def run(
        self,
        cmd: List[str],
        check: bool = True,
        capture_output: bool = True,
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> subprocess.CompletedProcess:
        cmd_str = mask_credentials(" ".join(cmd))
        if cwd:
            self.logger.debug("Executing in %s: %s", cwd, cmd_str)
        else:
            self.logger.debug("Executing: %s", cmd_str)

        effective_timeout = timeout if timeout is not None else self.default_timeout
        full_env = None
        if env:
            full_env = dict(os.environ)
            full_env.update(env)

        try:
            result = subprocess.run(
                cmd,
                text=True,
                capture_output=capture_output,
                cwd=cwd,
                env=full_env,
                timeout=effective_timeout,
            )
        except FileNotFoundError as exc:
            raise CommandError(
                f"Required command not found: {cmd[0]}. Please install it and try again.",
                cmd=cmd,
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise CommandError(
                f"Command timed out after {effective_timeout}s: {cmd_str}", cmd=cmd
            ) from exc
        except OSError as exc:
            raise CommandError(f"Failed to execute command: {cmd_str}. {exc}", cmd=cmd) from exc

        if capture_output and result.stdout:
            self.logger.debug("Command output: %s", mask_credentials(result.stdout.strip()))

        if result.returncode == 0:
            return result

        stderr = mask_credentials((result.stderr or "").strip()) if capture_output else ""
        message = f"Command failed ({result.returncode}): {cmd_str}"
        if stderr:
            message = f"{message}\n{stderr}"

        if check:
            raise CommandError(message, cmd=cmd, returncode=result.returncode, stderr=stderr)

        self.logger.debug(message)
        return result
