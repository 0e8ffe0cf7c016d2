from __future__ import annotations

import abc
import os
import subprocess
from pathlib import Path
from typing import List, Sequence

import structlog

from agen.utils.exceptions import FetchError

logger = structlog.get_logger(__name__)


class VersionControl(abc.ABC):
    """Narrow version control capability used by the VCS fetcher."""

    @abc.abstractmethod
    def clone(self, url: str, ref: str, dest: Path) -> None:
        """Shallow, single-branch clone of ``ref`` from ``url`` into ``dest``.

        Raises:
            FetchError: If the clone fails
        """

    @abc.abstractmethod
    def pull(self, dest: Path, ref: str) -> None:
        """Update the working copy at ``dest`` to the latest ``ref``.

        Raises:
            FetchError: If the update fails
        """


class GitClient(VersionControl):
    """Runs the ``git`` executable as a subprocess."""

    def __init__(self, executable: str = "git") -> None:
        self.executable = executable

    def clone(self, url: str, ref: str, dest: Path) -> None:
        self._run(
            ["clone", "--depth", "1", "--single-branch", "--branch", ref, url, str(dest)],
            action="clone",
        )

    def pull(self, dest: Path, ref: str) -> None:
        self._run(["-C", str(dest), "pull", "origin", ref], action="update")

    def _run(self, args: Sequence[str], action: str) -> None:
        command: List[str] = [self.executable, *args]
        logger.debug("git_command", command=command)
        try:
            completed = subprocess.run(
                command,
                check=False,
                capture_output=True,
                text=True,
                stdin=subprocess.DEVNULL,
                env={**os.environ, "GIT_TERMINAL_PROMPT": "0"},
            )
        except OSError as e:
            raise FetchError(f"Failed to {action}: cannot run {self.executable}: {e}") from e

        if completed.returncode != 0:
            stderr = (completed.stderr or "").strip()
            raise FetchError(
                f"Failed to {action}: {self.executable} exited with status {completed.returncode}"
                + (f": {stderr}" if stderr else ""),
                details={"returncode": completed.returncode, "stderr": stderr},
            )
