"""
chef-client scheduled task

Declares and converges a Windows scheduled task that runs chef-client
periodically.

Main Components:
- validate / ScheduleSpec: Declared settings to a validated schedule
- build_command_line: The exact command the task executes
- converge / TaskConverger: Plan and apply create+enable or delete
- SchtasksAdapter: Registers the task with schtasks.exe
- ClientTaskConfig: JSON configuration file management
"""

from chef_client_task.schedule import (
    ScheduleSpec,
    ValidationError,
    InvalidNumber,
    InvalidFrequency,
    InvalidFormat,
    validate,
    supports_random_delay,
    supports_frequency_modifier,
)
from chef_client_task.command import build_client_command, build_command_line, get_shell_path
from chef_client_task.definition import TaskAction, TaskDefinition
from chef_client_task.converger import (
    ConvergePlan,
    DirectoryError,
    EnsureDirectory,
    EnsureScheduledTask,
    LocalDirectoryService,
    TaskConverger,
    build_plan,
    converge,
)
from chef_client_task.schtasks import SchedulerError, SchtasksAdapter
from chef_client_task.config import ClientTaskConfig

__version__ = "0.1.0"

__all__ = [
    # Validation
    "ScheduleSpec",
    "ValidationError",
    "InvalidNumber",
    "InvalidFrequency",
    "InvalidFormat",
    "validate",
    "supports_random_delay",
    "supports_frequency_modifier",
    # Command line
    "build_client_command",
    "build_command_line",
    "get_shell_path",
    # Convergence
    "TaskAction",
    "TaskDefinition",
    "ConvergePlan",
    "DirectoryError",
    "EnsureDirectory",
    "EnsureScheduledTask",
    "LocalDirectoryService",
    "TaskConverger",
    "build_plan",
    "converge",
    # Scheduler adapter
    "SchedulerError",
    "SchtasksAdapter",
    # Configuration
    "ClientTaskConfig",
]
