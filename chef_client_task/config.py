"""
Configuration management for the chef-client scheduled task.

Handles loading, saving, and validating the declared task settings.
Settings are stored as JSON:

    {
      "task": {"frequency": "minute", "frequency_modifier": 30, ...},
      "logging": {"level": "INFO", "file": "..."}
    }

Values under "task" are kept raw; schedule.validate() turns them into
a ScheduleSpec.
"""

import json
import logging
import os
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from chef_client_task.schedule import ScheduleSpec, ValidationError, validate

load_dotenv()

logger = logging.getLogger(__name__)

ENV_CONFIG_PATH = "CHEF_CLIENT_TASK_CONFIG"
ENV_LOG_DIR = "CHEF_CLIENT_TASK_LOG_DIR"


def _get_default_log_file() -> str:
    """Get default log file path from environment or default."""
    if os.environ.get(ENV_LOG_DIR):
        return str(Path(os.environ[ENV_LOG_DIR]).expanduser() / "chef-client-task.log")
    return "~/.chef_client_task/logs/chef-client-task.log"


@dataclass
class LoggingConfig:
    """Logging configuration for the CLI itself."""
    level: str = "INFO"
    file: str = None  # Set dynamically in __post_init__

    def __post_init__(self):
        if self.file is None:
            self.file = _get_default_log_file()


def _logging_config(section: Any) -> LoggingConfig:
    """Build LoggingConfig from the "logging" section, ignoring unknown keys."""
    if not isinstance(section, dict):
        raise ValidationError("logging", section, "must be a JSON object")
    known = {k: v for k, v in section.items() if k in LoggingConfig.__dataclass_fields__}
    unknown = sorted(set(section) - set(known))
    if unknown:
        logger.debug(f"Ignoring unknown logging settings: {', '.join(unknown)}")
    return LoggingConfig(**known)


def default_task_settings() -> Dict[str, Any]:
    """Declared task settings written by 'init'."""
    spec = ScheduleSpec()
    settings = asdict(spec)
    settings["daemon_options"] = list(spec.daemon_options)
    # log_directory follows config_directory unless set explicitly
    del settings["log_directory"]
    del settings["password"]
    return settings


class ClientTaskConfig:
    """
    Task configuration manager.

    Configuration path priority:
    1. Explicit config_path argument
    2. CHEF_CLIENT_TASK_CONFIG environment variable
    3. Default: ~/.chef_client_task/config.json
    """

    DEFAULT_CONFIG_PATH = Path.home() / ".chef_client_task" / "config.json"

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize task configuration.

        Args:
            config_path: Path to configuration file. If None, uses env var or default.
        """
        if config_path:
            self.config_path = Path(config_path).expanduser()
        elif os.environ.get(ENV_CONFIG_PATH):
            self.config_path = Path(os.environ[ENV_CONFIG_PATH]).expanduser()
        else:
            self.config_path = self.DEFAULT_CONFIG_PATH
        self.task: Dict[str, Any] = {}
        self.logging: LoggingConfig = LoggingConfig()

        if self.config_path.exists():
            self.load()
        else:
            logger.info(f"No config found at {self.config_path}, using defaults")

    def load(self):
        """Load configuration from JSON file."""
        try:
            with open(self.config_path, 'r') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load config from {self.config_path}: {e}")
            raise

        if not isinstance(data, dict):
            raise ValidationError("config", data, "must be a JSON object")
        task = data.get('task', {})
        if not isinstance(task, dict):
            raise ValidationError("task", task, "must be a JSON object")
        self.task = task

        if 'logging' in data:
            self.logging = _logging_config(data['logging'])

        logger.info(f"Loaded task settings from {self.config_path}")

    def save(self):
        """Save configuration to JSON file."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            'task': self.task,
            'logging': asdict(self.logging),
        }

        with open(self.config_path, 'w') as f:
            json.dump(data, f, indent=2)

        logger.info(f"Saved configuration to {self.config_path}")

    def load_defaults(self):
        """Replace task settings with the defaults."""
        self.task = default_task_settings()

    def update(self, **overrides):
        """Apply overrides to the task settings; None values are skipped."""
        for key, value in overrides.items():
            if value is not None:
                self.task[key] = value

    def to_schedule_spec(self) -> ScheduleSpec:
        """
        Validate the task settings.

        Raises:
            ValidationError: On the first invalid field
        """
        return validate(self.task)

    def validate(self) -> List[str]:
        """
        Validate configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        try:
            self.to_schedule_spec()
        except ValidationError as e:
            return [str(e)]
        return []

    def __repr__(self):
        return f"ClientTaskConfig(path={self.config_path})"
