#!/usr/bin/env python3
"""
Tests for command line synthesis.
"""

import pytest

from chef_client_task.command import (
    build_client_command,
    build_command_line,
    get_shell_path,
    join_path,
)
from chef_client_task.schedule import validate

BASE = {
    "chef_binary_path": "C:/chef/bin/chef-client",
    "log_directory": "C:/chef/log",
    "log_file_name": "client.log",
    "config_directory": "C:/chef",
    "daemon_options": [],
    "accept_chef_license": False,
}


def _spec(**overrides):
    settings = dict(BASE)
    settings.update(overrides)
    return validate(settings)


def test_basic_command():
    assert build_client_command(_spec()) == (
        "C:/chef/bin/chef-client -L C:/chef/log/client.log -c C:/chef/client.rb"
    )


def test_accept_license_appended_last():
    assert build_client_command(_spec(accept_chef_license=True)) == (
        "C:/chef/bin/chef-client -L C:/chef/log/client.log -c C:/chef/client.rb"
        " --chef-license accept"
    )


def test_daemon_options_in_order_before_license():
    spec = _spec(
        daemon_options=["--override-runlist mycorp_base::default", "-l debug"],
        accept_chef_license=True,
    )
    assert build_client_command(spec) == (
        "C:/chef/bin/chef-client -L C:/chef/log/client.log -c C:/chef/client.rb"
        " --override-runlist mycorp_base::default -l debug --chef-license accept"
    )


def test_paths_with_spaces_are_not_quoted():
    spec = _spec(chef_binary_path="C:/Program Files/chef/bin/chef-client")
    assert build_client_command(spec).startswith("C:/Program Files/chef/bin/chef-client -L ")


def test_trailing_separator_collapses():
    spec = _spec(log_directory="C:/chef/log/", config_directory="C:/chef/")
    assert build_client_command(spec) == (
        "C:/chef/bin/chef-client -L C:/chef/log/client.log -c C:/chef/client.rb"
    )


def test_backslashes_untouched():
    spec = _spec(log_directory="C:\\chef\\log")
    assert "-L C:\\chef\\log/client.log" in build_client_command(spec)


@pytest.mark.parametrize("parts,expected", [
    (("a", "b"), "a/b"),
    (("a/", "b"), "a/b"),
    (("a", "/b"), "a/b"),
    (("a//", "//b"), "a/b"),
    (("C:/x", "y", "z"), "C:/x/y/z"),
    (("a/./", "b"), "a/./b"),
])
def test_join_path(parts, expected):
    assert join_path(*parts) == expected


def test_full_command_line_wraps_in_shell():
    spec = _spec()
    shell = "C:\\Windows\\system32\\cmd.exe"
    assert build_command_line(spec, shell) == (
        "C:\\Windows\\system32\\cmd.exe /c "
        "'C:/chef/bin/chef-client -L C:/chef/log/client.log -c C:/chef/client.rb'"
    )


def test_missing_shell_gives_empty_path():
    line = build_command_line(_spec(), get_shell_path({}))
    assert line.startswith(" /c 'C:/chef/bin/chef-client")


def test_shell_from_environment(monkeypatch):
    monkeypatch.setenv("COMSPEC", "C:\\Windows\\system32\\cmd.exe")
    assert get_shell_path() == "C:\\Windows\\system32\\cmd.exe"

    monkeypatch.delenv("COMSPEC")
    assert get_shell_path() == ""


def test_deterministic():
    spec = _spec(daemon_options=["-l info"], accept_chef_license=True)
    lines = {build_command_line(spec, "cmd.exe") for _ in range(5)}
    assert len(lines) == 1
    assert build_command_line(spec, "cmd.exe") == build_command_line(_spec(
        daemon_options=["-l info"], accept_chef_license=True), "cmd.exe")
