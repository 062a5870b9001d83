"""
Schedule validation for the chef-client scheduled task.

Turns raw declared configuration (a dict, usually loaded from JSON or
built from CLI flags) into an immutable ScheduleSpec. Numeric fields are
coerced, the frequency is checked against the accepted set, and start
date/time are checked for shape only.

Which scheduler features apply to a frequency is decided here too, by
two pure functions, so the converger never has to guess.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

# Defaults for every declared field
DEFAULT_TASK_NAME = "chef-client"
DEFAULT_USER = "System"
DEFAULT_FREQUENCY = "minute"
DEFAULT_FREQUENCY_MODIFIER = 30
DEFAULT_SPLAY = 300
DEFAULT_CONFIG_DIRECTORY = "C:/chef"
DEFAULT_LOG_FILE_NAME = "client.log"
DEFAULT_CHEF_BINARY_PATH = "C:/opscode/chef/bin/chef-client"

FREQUENCIES = (
    "minute",
    "hourly",
    "daily",
    "monthly",
    "once",
    "on_logon",
    "onstart",
    "on_idle",
)

# windows_task accepts random_delay for these ('weekly' is never produced
# by validate() but the adapter understands it)
RANDOM_DELAY_FREQUENCIES = frozenset({"once", "minute", "hourly", "daily", "weekly", "monthly"})

# schtasks: /MO is not accepted with these schedule types
NO_MODIFIER_FREQUENCIES = frozenset({"once", "on_logon", "onstart", "on_idle"})

STRING_FIELDS = (
    "task_name",
    "user",
    "config_directory",
    "log_directory",
    "log_file_name",
    "chef_binary_path",
)

START_DATE_PATTERN = re.compile(r"^[0-1][0-9]/[0-3][0-9]/\d{4}$")
START_TIME_PATTERN = re.compile(r"^\d{2}:\d{2}$")

_TRUE_STRINGS = {"true", "yes", "1", "on"}
_FALSE_STRINGS = {"false", "no", "0", "off"}


class ValidationError(ValueError):
    """Raised when a declared field has the wrong shape."""

    def __init__(self, field_name: str, value: Any, message: str):
        self.field = field_name
        self.value = value
        super().__init__(f"{field_name}: {message} (got {value!r})")


class InvalidNumber(ValidationError):
    """A numeric field is not a positive integer."""


class InvalidFrequency(ValidationError):
    """The frequency is not one of FREQUENCIES."""


class InvalidFormat(ValidationError):
    """A string field does not match its required format."""


def supports_random_delay(frequency: str) -> bool:
    """Not all frequencies accept a random delay."""
    return frequency in RANDOM_DELAY_FREQUENCIES


def supports_frequency_modifier(frequency: str) -> bool:
    """Not all frequencies accept a frequency modifier."""
    return frequency not in NO_MODIFIER_FREQUENCIES


@dataclass(frozen=True)
class ScheduleSpec:
    """
    Validated description of how and when chef-client should run.

    Build it with validate(); direct construction re-checks the numeric
    and format invariants in __post_init__ but does no coercion.
    """
    task_name: str = DEFAULT_TASK_NAME
    user: str = field(default=DEFAULT_USER, repr=False)
    password: Optional[str] = field(default=None, repr=False)
    frequency: str = DEFAULT_FREQUENCY
    frequency_modifier: int = DEFAULT_FREQUENCY_MODIFIER
    start_date: Optional[str] = None  # MM/DD/YYYY
    start_time: Optional[str] = None  # HH:MM
    splay: int = DEFAULT_SPLAY  # seconds
    run_on_battery: bool = True
    config_directory: str = DEFAULT_CONFIG_DIRECTORY
    log_directory: str = f"{DEFAULT_CONFIG_DIRECTORY}/log"
    log_file_name: str = DEFAULT_LOG_FILE_NAME
    chef_binary_path: str = DEFAULT_CHEF_BINARY_PATH
    daemon_options: Tuple[str, ...] = ()
    accept_chef_license: bool = False

    def __post_init__(self):
        for name in STRING_FIELDS:
            _check_str(name, getattr(self, name))
        if self.password is not None:
            _check_str("password", self.password)
        if not self.task_name:
            raise InvalidFormat("task_name", self.task_name, "must not be empty")
        if self.frequency not in FREQUENCIES:
            raise InvalidFrequency(
                "frequency", self.frequency, f"must be one of {', '.join(FREQUENCIES)}"
            )
        for name in ("frequency_modifier", "splay"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise InvalidNumber(name, value, "should be a positive number")
        _check_format("start_date", self.start_date, START_DATE_PATTERN)
        _check_format("start_time", self.start_time, START_TIME_PATTERN)

    @property
    def supports_random_delay(self) -> bool:
        return supports_random_delay(self.frequency)

    @property
    def supports_frequency_modifier(self) -> bool:
        return supports_frequency_modifier(self.frequency)


def _check_str(name: str, value: Any) -> None:
    if not isinstance(value, str):
        raise InvalidFormat(name, value, "must be a string")


def _check_format(name: str, value: Optional[str], pattern: "re.Pattern") -> None:
    if value is None:
        return
    if not isinstance(value, str) or not pattern.match(value):
        raise InvalidFormat(name, value, f"must match {pattern.pattern}")


def coerce_positive_int(name: str, value: Any) -> int:
    """
    Coerce a str or int to a positive integer.

    Raises:
        InvalidNumber: if the value isn't an integer or is <= 0
    """
    if isinstance(value, bool):
        raise InvalidNumber(name, value, "should be a positive number")
    if isinstance(value, int):
        number = value
    elif isinstance(value, float) and value.is_integer():
        number = int(value)
    elif isinstance(value, str):
        try:
            number = int(value.strip())
        except ValueError:
            raise InvalidNumber(name, value, "should be a positive number") from None
    else:
        raise InvalidNumber(name, value, "should be a positive number")

    if number <= 0:
        raise InvalidNumber(name, value, "should be a positive number")
    return number


def coerce_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise InvalidFormat(name, value, "must be true or false")


def _coerce_options(value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, (list, tuple)):
        raise InvalidFormat("daemon_options", value, "must be a list of strings")
    options = tuple(value)
    for option in options:
        if not isinstance(option, str):
            raise InvalidFormat("daemon_options", value, "must be a list of strings")
    return options


def _optional_str(raw: Dict[str, Any], name: str) -> Optional[str]:
    value = raw.get(name)
    if value is None or value == "":
        return None
    return value


_FIELDS = frozenset(ScheduleSpec.__dataclass_fields__)


def validate(raw_config: Optional[Dict[str, Any]] = None) -> ScheduleSpec:
    """
    Validate raw configuration and build a ScheduleSpec.

    Missing keys take their defaults; log_directory defaults to
    '<config_directory>/log' after config_directory is resolved.

    Args:
        raw_config: Mapping of declared field names to raw values

    Returns:
        Validated ScheduleSpec

    Raises:
        ValidationError: InvalidNumber, InvalidFrequency or InvalidFormat
    """
    raw = dict(raw_config or {})

    unknown = sorted(set(raw) - _FIELDS)
    if unknown:
        logger.debug(f"Ignoring unknown task settings: {', '.join(unknown)}")

    frequency = raw.get("frequency", DEFAULT_FREQUENCY)
    if frequency not in FREQUENCIES:
        raise InvalidFrequency(
            "frequency", frequency, f"must be one of {', '.join(FREQUENCIES)}"
        )

    config_directory = raw.get("config_directory") or DEFAULT_CONFIG_DIRECTORY
    log_directory = raw.get("log_directory") or f"{config_directory}/log"

    spec = ScheduleSpec(
        task_name=raw.get("task_name", DEFAULT_TASK_NAME),
        user=raw.get("user") or DEFAULT_USER,
        password=_optional_str(raw, "password"),
        frequency=frequency,
        frequency_modifier=coerce_positive_int(
            "frequency_modifier", raw.get("frequency_modifier", DEFAULT_FREQUENCY_MODIFIER)
        ),
        start_date=_optional_str(raw, "start_date"),
        start_time=_optional_str(raw, "start_time"),
        splay=coerce_positive_int("splay", raw.get("splay", DEFAULT_SPLAY)),
        run_on_battery=coerce_bool("run_on_battery", raw.get("run_on_battery", True)),
        config_directory=config_directory,
        log_directory=log_directory,
        log_file_name=raw.get("log_file_name") or DEFAULT_LOG_FILE_NAME,
        chef_binary_path=raw.get("chef_binary_path") or DEFAULT_CHEF_BINARY_PATH,
        daemon_options=_coerce_options(raw.get("daemon_options")),
        accept_chef_license=coerce_bool(
            "accept_chef_license", raw.get("accept_chef_license", False)
        ),
    )

    logger.debug(f"Validated schedule for task '{spec.task_name}': {spec}")
    return spec
