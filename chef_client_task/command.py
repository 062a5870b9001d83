"""
Command line synthesis for the scheduled chef-client run.

Nothing here is quoted or escaped: paths and daemon options are
embedded exactly as declared, so a path containing spaces produces a
broken command. Existing task definitions depend on this output.
"""

import os
from typing import Mapping, Optional

from chef_client_task.schedule import ScheduleSpec

CLIENT_CONFIG_FILE = "client.rb"


def join_path(*parts: str) -> str:
    """
    Join path parts with forward slashes.

    Separators at each seam collapse to one; nothing else is normalized.
    """
    result = ""
    for index, part in enumerate(parts):
        if index == 0:
            result = part
            continue
        result = result.rstrip("/") + "/" + part.lstrip("/")
    return result


def build_client_command(spec: ScheduleSpec) -> str:
    """Build the chef-client invocation passed to the command shell."""
    cmd = spec.chef_binary_path
    cmd += f" -L {join_path(spec.log_directory, spec.log_file_name)}"
    cmd += f" -c {join_path(spec.config_directory, CLIENT_CONFIG_FILE)}"

    if spec.daemon_options:
        cmd += f" {' '.join(spec.daemon_options)}"
    if spec.accept_chef_license:
        cmd += " --chef-license accept"
    return cmd


def get_shell_path(environ: Optional[Mapping[str, str]] = None) -> str:
    """Path of cmd.exe from COMSPEC, or an empty string when unset."""
    if environ is None:
        environ = os.environ
    return environ.get("COMSPEC", "")


def build_command_line(spec: ScheduleSpec, shell: str) -> str:
    """
    Full command line for the scheduled task.

    Args:
        spec: Validated schedule
        shell: Command shell path, normally get_shell_path()

    Returns:
        "<shell> /c '<chef-client command>'"
    """
    return f"{shell} /c '{build_client_command(spec)}'"
