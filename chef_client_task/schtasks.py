"""
Task scheduler adapter backed by schtasks.exe.

CREATE_AND_ENABLE registers the task from rendered XML (overwriting any
existing definition) and then enables it. DELETE removes the task if it
exists and is a no-op otherwise. Only a "cannot find" answer from
schtasks /Query counts as absent; any other query failure is raised.
"""

import logging
import os
import shutil
import subprocess
import tempfile
from datetime import datetime
from typing import Callable, List, Optional

from chef_client_task.definition import REDACTED, TaskAction, TaskDefinition
from chef_client_task.task_xml import TaskXmlError, render_task_xml

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60  # seconds

# schtasks /Query stderr when the task isn't registered
NOT_FOUND_MARKER = "cannot find"


class SchedulerError(Exception):
    """Raised when Task Scheduler rejects or fails a request."""

    def __init__(self, task_name: str, message: str, command_args: Optional[List[str]] = None, stderr: str = ""):
        self.task_name = task_name
        self.command_args = command_args or []
        self.stderr = stderr
        detail = message
        if stderr:
            detail += f": {stderr.strip()}"
        super().__init__(f"Task '{task_name}': {detail}")


def _mask(args: List[str]) -> List[str]:
    """Copy of args with the values of /RU and /RP masked."""
    masked = list(args)
    for index, arg in enumerate(masked[:-1]):
        if arg.upper() in ("/RU", "/RP"):
            masked[index + 1] = REDACTED
    return masked


class SchtasksAdapter:
    """
    Applies TaskDefinitions with schtasks.exe.

    Args:
        executable: Path to schtasks (default: looked up on PATH)
        timeout: Per-command timeout in seconds
        runner: subprocess.run-compatible callable, replaceable in tests
        now: Clock used for default start boundaries
    """

    def __init__(
        self,
        executable: Optional[str] = None,
        timeout: int = DEFAULT_TIMEOUT,
        runner: Callable = subprocess.run,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.executable = executable
        self.timeout = timeout
        self.runner = runner
        self.now = now or datetime.now

    def _schtasks(self, task_name: str) -> str:
        if self.executable:
            return self.executable
        found = shutil.which("schtasks")
        if not found:
            raise SchedulerError(task_name, "'schtasks' command not found")
        return found

    def _run(self, task_name: str, args: List[str], check: bool = True):
        command = [self._schtasks(task_name)] + args
        logger.debug(f"Running: {' '.join(_mask(command))}")
        try:
            result = self.runner(
                command,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise SchedulerError(
                task_name, f"schtasks timed out after {self.timeout}s", _mask(command)
            ) from e
        except OSError as e:
            raise SchedulerError(task_name, f"Failed to run schtasks: {e}", _mask(command)) from e

        if check and result.returncode != 0:
            raise SchedulerError(
                task_name,
                f"schtasks {args[0]} failed with exit code {result.returncode}",
                _mask(command),
                result.stderr or "",
            )
        return result

    def task_exists(self, task_name: str) -> bool:
        """
        Whether the named task is registered.

        Raises:
            SchedulerError: If the query fails for any reason other than
                the task being absent
        """
        args = ["/Query", "/TN", task_name]
        result = self._run(task_name, args, check=False)
        if result.returncode == 0:
            return True
        stderr = result.stderr or ""
        if NOT_FOUND_MARKER in stderr.lower():
            return False
        raise SchedulerError(
            task_name,
            f"schtasks /Query failed with exit code {result.returncode}",
            _mask([self._schtasks(task_name)] + args),
            stderr,
        )

    def create_and_enable(self, definition: TaskDefinition):
        try:
            xml = render_task_xml(definition, now=self.now())
        except TaskXmlError as e:
            raise SchedulerError(definition.task_name, str(e)) from e

        fd, xml_path = tempfile.mkstemp(suffix=".xml", prefix="chef-client-task-")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(xml)

            args = ["/Create", "/TN", definition.task_name, "/XML", xml_path, "/F"]
            if definition.user:
                args += ["/RU", definition.user]
            if definition.password:
                args += ["/RP", definition.password]
            self._run(definition.task_name, args)
        finally:
            os.unlink(xml_path)

        self._run(definition.task_name, ["/Change", "/TN", definition.task_name, "/ENABLE"])
        logger.info(f"Task '{definition.task_name}' created and enabled")

    def delete(self, task_name: str):
        if not self.task_exists(task_name):
            logger.info(f"Task '{task_name}' does not exist, nothing to delete")
            return
        self._run(task_name, ["/Delete", "/TN", task_name, "/F"])
        logger.info(f"Task '{task_name}' deleted")

    def ensure_scheduled_task(self, definition: TaskDefinition):
        """
        Bring the named task in line with the definition.

        Raises:
            SchedulerError: If schtasks is missing, times out or fails
        """
        if definition.action == TaskAction.DELETE:
            self.delete(definition.task_name)
        elif definition.action == TaskAction.CREATE_AND_ENABLE:
            self.create_and_enable(definition)
        else:
            raise SchedulerError(definition.task_name, f"Unknown action {definition.action!r}")
