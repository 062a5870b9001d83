"""
Convergence of the chef-client scheduled task.

Given declared configuration and an action ('add' or 'remove'), builds
an ordered plan of idempotent steps and runs it against two
collaborators: a directory service for the log directory and a task
scheduler adapter for the task itself.

    add:    [EnsureDirectory(log_directory)]  (only if missing)
            EnsureScheduledTask(CREATE_AND_ENABLE)
    remove: EnsureScheduledTask(DELETE)

Nothing is retried. The first failing step aborts the run, and the
directory step always runs before the task is touched.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from chef_client_task.command import build_command_line, get_shell_path
from chef_client_task.definition import TaskAction, TaskDefinition
from chef_client_task.schedule import ScheduleSpec, ValidationError, validate

logger = logging.getLogger(__name__)

ACTION_ADD = "add"
ACTION_REMOVE = "remove"
ACTIONS = (ACTION_ADD, ACTION_REMOVE)

RUN_LEVEL_HIGHEST = "highest"


class DirectoryError(OSError):
    """Raised when the log directory can't be created."""

    def __init__(self, path: str, reason: Exception):
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to create directory {path}: {reason}")


class LocalDirectoryService:
    """Directory collaborator backed by the local filesystem."""

    def exists(self, path: str) -> bool:
        return Path(path).is_dir()

    def ensure_directory(self, path: str, recursive: bool = True):
        try:
            Path(path).mkdir(parents=recursive, exist_ok=True)
        except OSError as e:
            raise DirectoryError(path, e) from e
        logger.info(f"Created directory {path}")


@dataclass(frozen=True)
class EnsureDirectory:
    path: str


@dataclass(frozen=True)
class EnsureScheduledTask:
    definition: TaskDefinition


Step = Union[EnsureDirectory, EnsureScheduledTask]


@dataclass(frozen=True)
class ConvergePlan:
    """Ordered steps for one convergence run."""
    action: str
    steps: Tuple[Step, ...]

    @property
    def task_definition(self) -> TaskDefinition:
        return self.steps[-1].definition

    def describe(self) -> Dict[str, Any]:
        """Plan as plain data with credentials masked."""
        described = []
        for step in self.steps:
            if isinstance(step, EnsureDirectory):
                described.append({"step": "ensure_directory", "path": step.path})
            else:
                described.append({
                    "step": "ensure_scheduled_task",
                    "definition": step.definition.redacted(),
                })
        return {"action": self.action, "steps": described}


def build_task_definition(spec: ScheduleSpec, command_line: str) -> TaskDefinition:
    """
    Task definition for the 'add' action.

    The frequency modifier and random delay are dropped for frequencies
    that don't accept them. When run_on_battery is off the splay value
    is forwarded as disallow_start_if_on_batteries, as the resource
    always has.
    """
    return TaskDefinition(
        task_name=spec.task_name,
        action=TaskAction.CREATE_AND_ENABLE,
        run_level=RUN_LEVEL_HIGHEST,
        command=command_line,
        user=spec.user,
        password=spec.password,
        frequency=spec.frequency,
        frequency_modifier=spec.frequency_modifier if spec.supports_frequency_modifier else None,
        start_time=spec.start_time,
        start_date=spec.start_date,
        random_delay=spec.splay if spec.supports_random_delay else None,
        disallow_start_if_on_batteries=None if spec.run_on_battery else spec.splay,
    )


def build_plan(
    spec: ScheduleSpec,
    action: str = ACTION_ADD,
    shell: str = "",
    directory_service=None,
) -> ConvergePlan:
    """
    Build the convergence plan for a validated schedule.

    Args:
        spec: Validated schedule
        action: 'add' or 'remove'
        shell: Command shell path embedded in the command line
        directory_service: Used to skip the directory step when the log
            directory already exists. None means always include it.

    Raises:
        ValidationError: If action is not 'add' or 'remove'
    """
    if action == ACTION_REMOVE:
        definition = TaskDefinition(task_name=spec.task_name, action=TaskAction.DELETE)
        return ConvergePlan(action=action, steps=(EnsureScheduledTask(definition),))

    if action != ACTION_ADD:
        raise ValidationError("action", action, f"must be one of {', '.join(ACTIONS)}")

    steps = []
    if directory_service is None or not directory_service.exists(spec.log_directory):
        steps.append(EnsureDirectory(spec.log_directory))

    command_line = build_command_line(spec, shell)
    steps.append(EnsureScheduledTask(build_task_definition(spec, command_line)))
    return ConvergePlan(action=action, steps=tuple(steps))


class TaskConverger:
    """
    Runs convergence plans against the directory and scheduler collaborators.

    The scheduler adapter must provide ensure_scheduled_task(definition);
    the directory service must provide exists(path) and
    ensure_directory(path, recursive=True).
    """

    def __init__(self, directory_service=None, scheduler=None, environ: Optional[Mapping[str, str]] = None):
        if directory_service is None:
            directory_service = LocalDirectoryService()
        if scheduler is None:
            from chef_client_task.schtasks import SchtasksAdapter
            scheduler = SchtasksAdapter()
        self.directory_service = directory_service
        self.scheduler = scheduler
        self.environ = environ

    def plan(self, spec: ScheduleSpec, action: str = ACTION_ADD) -> ConvergePlan:
        shell = get_shell_path(self.environ) if action == ACTION_ADD else ""
        return build_plan(spec, action, shell=shell, directory_service=self.directory_service)

    def execute(self, plan: ConvergePlan):
        """Run each step in order; the first failure propagates."""
        for step in plan.steps:
            if isinstance(step, EnsureDirectory):
                logger.info(f"Ensuring log directory {step.path}")
                self.directory_service.ensure_directory(step.path, recursive=True)
            else:
                definition = step.definition
                logger.info(
                    f"Ensuring scheduled task '{definition.task_name}' "
                    f"({definition.action.value})"
                )
                self.scheduler.ensure_scheduled_task(definition)

    def converge(self, spec: ScheduleSpec, action: str = ACTION_ADD, dry_run: bool = False) -> ConvergePlan:
        plan = self.plan(spec, action)
        logger.debug(f"Convergence plan: {plan.describe()}")
        if dry_run:
            logger.info(f"Dry run: {len(plan.steps)} step(s) not executed")
            return plan
        self.execute(plan)
        logger.info(f"Task '{spec.task_name}' converged ({action})")
        return plan


def converge(
    raw_config: Optional[Dict[str, Any]] = None,
    action: str = ACTION_ADD,
    directory_service=None,
    scheduler=None,
    environ: Optional[Mapping[str, str]] = None,
    dry_run: bool = False,
) -> ConvergePlan:
    """
    Validate declared configuration and converge the scheduled task.

    Args:
        raw_config: Declared task settings (see schedule.validate)
        action: 'add' to create and enable the task, 'remove' to delete it
        directory_service: Directory collaborator (default: local filesystem)
        scheduler: Task scheduler adapter (default: schtasks)
        environ: Environment used to look up COMSPEC (default: os.environ)
        dry_run: Build the plan without executing it

    Returns:
        The executed (or, for a dry run, planned) ConvergePlan

    Raises:
        ValidationError: Bad configuration or action
        DirectoryError: Log directory creation failed
        SchedulerError: The scheduler adapter rejected the task
    """
    if action not in ACTIONS:
        raise ValidationError("action", action, f"must be one of {', '.join(ACTIONS)}")

    spec = validate(raw_config)
    converger = TaskConverger(
        directory_service=directory_service,
        scheduler=scheduler,
        environ=environ,
    )
    return converger.converge(spec, action, dry_run=dry_run)
