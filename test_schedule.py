#!/usr/bin/env python3
"""
Tests for schedule validation and the per-frequency capability rules.
"""

import dataclasses

import pytest

from chef_client_task.schedule import (
    FREQUENCIES,
    InvalidFormat,
    InvalidFrequency,
    InvalidNumber,
    ScheduleSpec,
    ValidationError,
    supports_frequency_modifier,
    supports_random_delay,
    validate,
)


@pytest.mark.parametrize("frequency", ["once", "on_logon", "onstart", "on_idle"])
def test_frequency_modifier_not_supported(frequency):
    assert supports_frequency_modifier(frequency) is False


@pytest.mark.parametrize("frequency", ["minute", "hourly", "daily", "weekly", "monthly"])
def test_frequency_modifier_supported(frequency):
    assert supports_frequency_modifier(frequency) is True


@pytest.mark.parametrize("frequency", ["once", "minute", "hourly", "daily", "weekly", "monthly"])
def test_random_delay_supported(frequency):
    assert supports_random_delay(frequency) is True


@pytest.mark.parametrize("frequency", ["on_logon", "onstart", "on_idle"])
def test_random_delay_not_supported(frequency):
    assert supports_random_delay(frequency) is False


def test_defaults():
    spec = validate({})

    assert spec.task_name == "chef-client"
    assert spec.user == "System"
    assert spec.password is None
    assert spec.frequency == "minute"
    assert spec.frequency_modifier == 30
    assert spec.splay == 300
    assert spec.run_on_battery is True
    assert spec.log_file_name == "client.log"
    assert spec.config_directory == "C:/chef"
    assert spec.log_directory == "C:/chef/log"
    assert spec.daemon_options == ()
    assert spec.accept_chef_license is False


def test_log_directory_follows_config_directory():
    spec = validate({"config_directory": "D:/chef"})
    assert spec.log_directory == "D:/chef/log"

    spec = validate({"config_directory": "D:/chef", "log_directory": "E:/logs"})
    assert spec.log_directory == "E:/logs"


def test_numeric_strings_are_coerced():
    spec = validate({"frequency_modifier": "15", "splay": " 60 "})
    assert spec.frequency_modifier == 15
    assert spec.splay == 60


@pytest.mark.parametrize("value", [0, -5, "0", "-5", "abc", "", "1.5", None, True, 2.5, [1]])
def test_frequency_modifier_rejected(value):
    with pytest.raises(InvalidNumber) as excinfo:
        validate({"frequency_modifier": value})
    assert excinfo.value.field == "frequency_modifier"
    assert excinfo.value.value == value


@pytest.mark.parametrize("value", [0, -1, "ten"])
def test_splay_rejected(value):
    with pytest.raises(InvalidNumber) as excinfo:
        validate({"splay": value})
    assert excinfo.value.field == "splay"


def test_invalid_frequency():
    with pytest.raises(InvalidFrequency) as excinfo:
        validate({"frequency": "weekly"})
    assert excinfo.value.field == "frequency"
    assert "weekly" in str(excinfo.value)


@pytest.mark.parametrize("frequency", FREQUENCIES)
def test_every_accepted_frequency_validates(frequency):
    assert validate({"frequency": frequency}).frequency == frequency


@pytest.mark.parametrize("value", ["12/17/2020", "01/01/1999", "13/39/2020", "19/39/0000"])
def test_start_date_shape_only(value):
    # calendar correctness is not checked
    assert validate({"start_date": value}).start_date == value


@pytest.mark.parametrize("value", ["2020-12-17", "1/1/2020", "12/17/20", "23/01/2020", "13/99/2020", "12/17/2020 "])
def test_start_date_rejected(value):
    with pytest.raises(InvalidFormat) as excinfo:
        validate({"start_date": value})
    assert excinfo.value.field == "start_date"


@pytest.mark.parametrize("value", ["14:00", "00:00", "99:99"])
def test_start_time_accepted(value):
    assert validate({"start_time": value}).start_time == value


@pytest.mark.parametrize("value", ["2pm", "1:00", "14:00:00", "14-00"])
def test_start_time_rejected(value):
    with pytest.raises(InvalidFormat):
        validate({"start_time": value})


def test_empty_start_values_are_absent():
    spec = validate({"start_date": "", "start_time": None})
    assert spec.start_date is None
    assert spec.start_time is None


def test_empty_task_name_rejected():
    with pytest.raises(InvalidFormat):
        validate({"task_name": ""})


def test_boolean_strings():
    spec = validate({"run_on_battery": "false", "accept_chef_license": "yes"})
    assert spec.run_on_battery is False
    assert spec.accept_chef_license is True

    with pytest.raises(InvalidFormat):
        validate({"run_on_battery": "maybe"})


def test_daemon_options_preserve_order():
    options = ["--override-runlist mycorp_base::default", "-l debug"]
    spec = validate({"daemon_options": options})
    assert spec.daemon_options == tuple(options)


def test_single_daemon_option_string():
    spec = validate({"daemon_options": "--once"})
    assert spec.daemon_options == ("--once",)


def test_daemon_options_must_be_strings():
    with pytest.raises(InvalidFormat):
        validate({"daemon_options": ["--once", 5]})


@pytest.mark.parametrize("daemon_options", [{"--once": True}, {"-l", "debug"}, 5])
def test_daemon_options_must_be_a_list(daemon_options):
    with pytest.raises(InvalidFormat) as excinfo:
        validate({"daemon_options": daemon_options})
    assert excinfo.value.field == "daemon_options"


@pytest.mark.parametrize("name,value", [
    ("task_name", 5),
    ("user", ["CORP\\svc"]),
    ("password", 1234),
    ("config_directory", 5),
    ("log_directory", {"path": "C:/logs"}),
    ("log_file_name", 42),
    ("chef_binary_path", True),
])
def test_string_fields_reject_other_types(name, value):
    with pytest.raises(InvalidFormat) as excinfo:
        validate({name: value})
    assert excinfo.value.field == name
    assert excinfo.value.value == value


def test_unknown_keys_ignored():
    spec = validate({"frequency": "daily", "not_a_setting": 1})
    assert spec.frequency == "daily"


def test_validation_errors_are_value_errors():
    assert issubclass(ValidationError, ValueError)
    for cls in (InvalidNumber, InvalidFrequency, InvalidFormat):
        assert issubclass(cls, ValidationError)


def test_spec_is_immutable():
    spec = validate({})
    with pytest.raises(dataclasses.FrozenInstanceError):
        spec.frequency = "daily"


def test_direct_construction_checks_invariants():
    with pytest.raises(InvalidNumber):
        ScheduleSpec(splay=0)
    with pytest.raises(InvalidFormat):
        ScheduleSpec(start_time="2pm")


def test_credentials_not_in_repr():
    spec = validate({"user": "CORP\\svc-chef", "password": "hunter2"})
    text = repr(spec)
    assert "hunter2" not in text
    assert "svc-chef" not in text


def test_spec_capability_properties():
    spec = validate({"frequency": "once"})
    assert spec.supports_frequency_modifier is False
    assert spec.supports_random_delay is True
