"""
Task Scheduler XML rendering.

schtasks flags can't express a trigger's random delay or the battery
policy, so tasks are registered from an XML definition instead
(schtasks /Create /XML). Dates are reshaped as strings and never
parsed: an impossible date such as 13/39/2020 renders as-is and is
rejected by Task Scheduler itself.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from lxml import etree

from chef_client_task.definition import TaskDefinition

logger = logging.getLogger(__name__)

TASK_NAMESPACE = "http://schemas.microsoft.com/windows/2004/02/mit/task"
TASK_SCHEMA_VERSION = "1.2"

SYSTEM_SID = "S-1-5-18"
SYSTEM_ACCOUNTS = {"system", "nt authority\\system", "localsystem"}

RUN_LEVELS = {
    "highest": "HighestAvailable",
    "limited": "LeastPrivilege",
}

CALENDAR_FREQUENCIES = ("daily", "weekly", "monthly")

EVENT_TRIGGERS = {
    "on_logon": "LogonTrigger",
    "onstart": "BootTrigger",
    "on_idle": "IdleTrigger",
}

MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)
MAX_MONTHLY_MODIFIER = 12


class TaskXmlError(ValueError):
    """Raised when a task definition can't be expressed as task XML."""


def _el(parent, tag: str, text: Optional[str] = None):
    element = etree.SubElement(parent, f"{{{TASK_NAMESPACE}}}{tag}")
    if text is not None:
        element.text = text
    return element


def _bool(value) -> str:
    return "true" if value else "false"


def start_boundary(definition: TaskDefinition, now: datetime) -> str:
    """
    StartBoundary in Task Scheduler's local format (YYYY-MM-DDTHH:MM:SS).

    Without a start time, 'minute' tasks start one modifier interval
    from now and everything else starts now. Without a start date,
    today's date is used.

    A 'once' task has a single trigger, so it needs an explicit start
    time; "now" has already passed by the time the task is registered.

    Raises:
        TaskXmlError: For a 'once' definition without a start time
    """
    if definition.frequency == "once" and not definition.start_time:
        raise TaskXmlError(
            f"Task '{definition.task_name}': a 'once' schedule requires start_time"
        )
    if definition.start_time:
        time_part = f"{definition.start_time}:00"
    else:
        start = now
        if definition.frequency == "minute" and definition.frequency_modifier:
            start = now + timedelta(minutes=definition.frequency_modifier)
        time_part = start.strftime("%H:%M:00")
        if not definition.start_date:
            return f"{start.strftime('%Y-%m-%d')}T{time_part}"

    if definition.start_date:
        month, day, year = definition.start_date.split("/")
        date_part = f"{year}-{month}-{day}"
    else:
        date_part = now.strftime("%Y-%m-%d")
    return f"{date_part}T{time_part}"


def _add_trigger(triggers, definition: TaskDefinition, now: datetime):
    frequency = definition.frequency
    modifier = definition.frequency_modifier or 1

    if frequency in ("minute", "hourly", "once"):
        trigger = _el(triggers, "TimeTrigger")
        if frequency != "once":
            unit = "M" if frequency == "minute" else "H"
            repetition = _el(trigger, "Repetition")
            _el(repetition, "Interval", f"PT{modifier}{unit}")
            _el(repetition, "StopAtDurationEnd", "false")
        _el(trigger, "StartBoundary", start_boundary(definition, now))
    elif frequency in CALENDAR_FREQUENCIES:
        trigger = _el(triggers, "CalendarTrigger")
        _el(trigger, "StartBoundary", start_boundary(definition, now))
    elif frequency in EVENT_TRIGGERS:
        trigger = _el(triggers, EVENT_TRIGGERS[frequency])
    else:
        raise TaskXmlError(f"Unsupported frequency for task XML: {frequency!r}")

    _el(trigger, "Enabled", "true")
    if definition.random_delay is not None:
        _el(trigger, "RandomDelay", f"PT{definition.random_delay}S")

    if frequency == "daily":
        schedule = _el(trigger, "ScheduleByDay")
        _el(schedule, "DaysInterval", str(modifier))
    elif frequency == "weekly":
        _add_weekly_schedule(trigger, start_boundary(definition, now), modifier)
    elif frequency == "monthly":
        _add_monthly_schedule(trigger, start_boundary(definition, now), modifier)
    return trigger


def _add_weekly_schedule(trigger, boundary: str, modifier: int):
    """Every n-th week on the start date's weekday."""
    try:
        weekday = datetime.strptime(boundary[:10], "%Y-%m-%d").strftime("%A")
    except ValueError as e:
        raise TaskXmlError(f"Invalid start boundary {boundary!r}") from e

    schedule = _el(trigger, "ScheduleByWeek")
    _el(schedule, "WeeksInterval", str(modifier))
    days = _el(schedule, "DaysOfWeek")
    _el(days, weekday)


def _add_monthly_schedule(trigger, boundary: str, modifier: int):
    """
    Every n-th month, from the start month, on the start day.

    ScheduleByMonth lists calendar months and repeats every year, so a
    modifier that doesn't divide 12 (5, 7, ...) wraps around at the year
    boundary instead of keeping a strict n-month gap. Modifiers above 12
    can't be expressed at all.
    """
    if modifier > MAX_MONTHLY_MODIFIER:
        raise TaskXmlError(
            f"Monthly modifier {modifier} exceeds {MAX_MONTHLY_MODIFIER}"
        )
    try:
        start_month = int(boundary[5:7])
        start_day = int(boundary[8:10])
    except ValueError as e:
        raise TaskXmlError(f"Invalid start boundary {boundary!r}") from e

    schedule = _el(trigger, "ScheduleByMonth")
    days = _el(schedule, "DaysOfMonth")
    _el(days, "Day", str(start_day))
    months = _el(schedule, "Months")
    month_offsets = range(0, 12, modifier)
    for month in sorted({(start_month - 1 + offset) % 12 for offset in month_offsets}):
        _el(months, MONTH_NAMES[month])


def _add_principal(task, definition: TaskDefinition):
    principals = _el(task, "Principals")
    principal = _el(principals, "Principal")
    principal.set("id", "Author")

    user = definition.user or ""
    if user.lower() in SYSTEM_ACCOUNTS:
        _el(principal, "UserId", SYSTEM_SID)
        _el(principal, "LogonType", "ServiceAccount")
    elif user:
        _el(principal, "UserId", user)
        _el(principal, "LogonType", "Password" if definition.password else "InteractiveToken")
    else:
        _el(principal, "LogonType", "InteractiveToken")

    run_level = RUN_LEVELS.get(definition.run_level or "limited", "LeastPrivilege")
    _el(principal, "RunLevel", run_level)


def split_command_line(command_line: str):
    """Split '<shell> /c <args>' into (shell, '/c <args>')."""
    marker = " /c "
    index = command_line.find(marker)
    if index < 0:
        return command_line, ""
    return command_line[:index], command_line[index + 1:]


def build_task_element(definition: TaskDefinition, now: Optional[datetime] = None):
    """Build the <Task> element for a CREATE_AND_ENABLE definition."""
    now = now or datetime.now()

    task = etree.Element(f"{{{TASK_NAMESPACE}}}Task", nsmap={None: TASK_NAMESPACE})
    task.set("version", TASK_SCHEMA_VERSION)

    reg_info = _el(task, "RegistrationInfo")
    _el(reg_info, "Date", now.isoformat(timespec="seconds"))
    _el(reg_info, "Description", f"Run chef-client ({definition.frequency})")
    uri = definition.task_name if definition.task_name.startswith("\\") else f"\\{definition.task_name}"
    _el(reg_info, "URI", uri)

    triggers = _el(task, "Triggers")
    _add_trigger(triggers, definition, now)

    _add_principal(task, definition)

    settings = _el(task, "Settings")
    _el(settings, "MultipleInstancesPolicy", "IgnoreNew")
    _el(settings, "DisallowStartIfOnBatteries", _bool(definition.disallow_start_if_on_batteries))
    _el(settings, "StopIfGoingOnBatteries", "false")
    _el(settings, "AllowHardTerminate", "true")
    _el(settings, "StartWhenAvailable", "false")
    _el(settings, "AllowStartOnDemand", "true")
    _el(settings, "Enabled", "true")
    _el(settings, "Hidden", "false")
    _el(settings, "ExecutionTimeLimit", "PT72H")
    _el(settings, "Priority", "7")

    actions = _el(task, "Actions")
    actions.set("Context", "Author")
    exec_action = _el(actions, "Exec")
    shell, arguments = split_command_line(definition.command or "")
    _el(exec_action, "Command", shell)
    if arguments:
        _el(exec_action, "Arguments", arguments)

    return task


def render_task_xml(definition: TaskDefinition, now: Optional[datetime] = None) -> bytes:
    """
    Render a task definition as UTF-16 Task Scheduler XML.

    Raises:
        TaskXmlError: If the frequency or start boundary can't be expressed
    """
    task = build_task_element(definition, now)
    logger.debug(f"Rendered task XML for '{definition.task_name}'")
    return etree.tostring(task, encoding="UTF-16", xml_declaration=True, pretty_print=True)
