"""Terminal-multiplexer access used by the session scanner.

``TmuxClient`` is the narrow interface the scanner depends on; ``TmuxDriver``
implements it on top of the ``tmux`` binary.
"""

import shutil
import subprocess  # nosec B404 - fixed tmux argv, no shell
from typing import Protocol, runtime_checkable

from structlog import get_logger

from claude_quota.exceptions import TmuxError


logger = get_logger(__name__)


@runtime_checkable
class TmuxClient(Protocol):
    """Operations the scanner needs from the terminal driver.

    Every method raises on failure; the scanner decides which failures are
    fatal.
    """

    def list_sessions(self) -> list[str]: ...

    def capture_pane(self, session: str, lines: int) -> str: ...

    def get_environment(self, session: str, key: str) -> str: ...


class TmuxDriver:
    """TmuxClient backed by the tmux command-line tool."""

    def __init__(self, tmux_path: str | None = None, timeout: float = 10.0) -> None:
        self.tmux_path = tmux_path or shutil.which("tmux") or "tmux"
        self.timeout = timeout

    def _run(self, *args: str, session: str | None = None) -> str:
        cmd = [self.tmux_path, *args]
        try:
            # nosec B603 - argv list, no shell
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise TmuxError(f"tmux {args[0]} failed: {e}", session=session) from e

        if result.returncode != 0:
            stderr = result.stderr.strip()
            logger.debug(
                "tmux_command_failed",
                command=args[0],
                session=session,
                returncode=result.returncode,
                stderr=stderr,
            )
            raise TmuxError(
                f"tmux {args[0]} exited {result.returncode}: {stderr}",
                session=session,
            )
        return result.stdout

    def list_sessions(self) -> list[str]:
        output = self._run("list-sessions", "-F", "#{session_name}")
        return [line.strip() for line in output.splitlines() if line.strip()]

    def capture_pane(self, session: str, lines: int) -> str:
        return self._run(
            "capture-pane", "-p", "-t", session, "-S", f"-{lines}", session=session
        )

    def get_environment(self, session: str, key: str) -> str:
        """Read a session environment variable.

        Raises:
            TmuxError: If the variable is unset or the session is gone
        """
        output = self._run("show-environment", "-t", session, key, session=session)
        line = output.strip()
        # tmux prints "-KEY" for variables explicitly removed from the session
        if line.startswith("-") or "=" not in line:
            raise TmuxError(f"{key} not set in session {session}", session=session)
        name, _, value = line.partition("=")
        if name != key:
            raise TmuxError(f"{key} not set in session {session}", session=session)
        return value
