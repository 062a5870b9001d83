"""
Task definition handed to the OS task scheduler adapter.
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, Optional

REDACTED = "********"


class TaskAction(str, Enum):
    """Lifecycle action requested from the scheduler adapter."""
    CREATE_AND_ENABLE = "create_and_enable"
    DELETE = "delete"


@dataclass(frozen=True)
class TaskDefinition:
    """
    Everything the adapter needs to create, enable or delete one task.

    Optional fields are None when they must not be forwarded, e.g. the
    frequency modifier for 'once'. For DELETE only task_name is set.
    """
    task_name: str
    action: TaskAction
    run_level: Optional[str] = None
    command: Optional[str] = None
    user: Optional[str] = field(default=None, repr=False)
    password: Optional[str] = field(default=None, repr=False)
    frequency: Optional[str] = None
    frequency_modifier: Optional[int] = None
    start_time: Optional[str] = None
    start_date: Optional[str] = None
    random_delay: Optional[int] = None
    # carries the splay value, not a boolean
    disallow_start_if_on_batteries: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Fields that are set, with the action as its string value."""
        data = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            data[f.name] = value.value if isinstance(value, TaskAction) else value
        return data

    def redacted(self) -> Dict[str, Any]:
        """to_dict() with the run-as credentials masked, safe to log or print."""
        data = self.to_dict()
        for key in ("user", "password"):
            if key in data:
                data[key] = REDACTED
        return data
