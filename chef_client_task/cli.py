"""
Command-line interface for the chef-client scheduled task.

Provides commands for:
- Creating/enabling the task (add) and deleting it (remove)
- Previewing the command line and task definition (show)
- Managing the configuration file (init, show-config)

Task settings come from the configuration file; flags override them
for a single run without saving.
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from chef_client_task.config import ClientTaskConfig
from chef_client_task.converger import (
    ACTION_ADD,
    ACTION_REMOVE,
    DirectoryError,
    build_plan,
    converge,
)
from chef_client_task.command import build_command_line, get_shell_path
from chef_client_task.schedule import FREQUENCIES, ValidationError
from chef_client_task.schtasks import SchedulerError

logger = logging.getLogger(__name__)

ENV_PASSWORD = "CHEF_CLIENT_TASK_PASSWORD"


def setup_logging(log_file: str = None, verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_formatter = logging.Formatter(
        '%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_handler.setFormatter(console_formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(level)
        file_formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
        )
        file_handler.setFormatter(file_formatter)
        root_logger.addHandler(file_handler)


def _load_config(args) -> ClientTaskConfig:
    """Load the config file and apply command-line overrides."""
    config = ClientTaskConfig(args.config)
    config.update(
        task_name=args.task_name,
        user=args.user,
        frequency=args.frequency,
        frequency_modifier=args.frequency_modifier,
        start_date=args.start_date,
        start_time=args.start_time,
        splay=args.splay,
        run_on_battery=args.run_on_battery,
        config_directory=args.config_directory,
        log_directory=args.log_directory,
        log_file_name=args.log_file_name,
        chef_binary_path=args.chef_binary_path,
        daemon_options=args.daemon_options,
        accept_chef_license=args.accept_chef_license,
        password=os.environ.get(ENV_PASSWORD),
    )
    return config


def _converge(args, action: str):
    try:
        config = _load_config(args)
    except (OSError, ValueError) as e:
        setup_logging(verbose=args.verbose)
        logger.error(f"Failed to load config: {e}")
        sys.exit(1)

    setup_logging(
        log_file=args.log_file or config.logging.file,
        verbose=args.verbose
    )

    try:
        plan = converge(config.task, action=action, dry_run=args.dry_run)
    except ValidationError as e:
        logger.error(f"Invalid task settings: {e}")
        sys.exit(1)
    except (DirectoryError, SchedulerError) as e:
        logger.error(f"Failed to {action} scheduled task: {e}", exc_info=args.verbose)
        sys.exit(1)

    if args.dry_run:
        print(json.dumps(plan.describe(), indent=2))


def cmd_add(args):
    """Create and enable the scheduled task."""
    _converge(args, ACTION_ADD)


def cmd_remove(args):
    """Delete the scheduled task."""
    _converge(args, ACTION_REMOVE)


def cmd_show(args):
    """Show the command line and task definition without applying them."""
    setup_logging(verbose=args.verbose)

    try:
        config = _load_config(args)
        spec = config.to_schedule_spec()
    except (OSError, ValueError) as e:
        logger.error(f"Invalid task settings: {e}")
        sys.exit(1)

    shell = get_shell_path()
    plan = build_plan(spec, ACTION_ADD, shell=shell)

    print(f"\nTask:          {spec.task_name}")
    print(f"Frequency:     {spec.frequency}")
    print(f"Command line:  {build_command_line(spec, shell)}")
    print("\nTask definition:")
    print(json.dumps(plan.task_definition.redacted(), indent=2))


def cmd_init(args):
    """Initialize task configuration."""
    setup_logging(verbose=args.verbose)

    config = ClientTaskConfig(args.config)
    if config.config_path.exists() and not args.force:
        logger.error(f"Configuration already exists at {config.config_path} (use --force to overwrite)")
        sys.exit(1)

    try:
        config.load_defaults()
        config.save()
    except OSError as e:
        logger.error(f"Failed to initialize: {e}")
        sys.exit(1)

    logger.info(f"Initialized task configuration at: {config.config_path}")


def cmd_show_config(args):
    """Show current configuration."""
    setup_logging(verbose=args.verbose)

    try:
        config = ClientTaskConfig(args.config)
    except (OSError, ValueError) as e:
        logger.error(f"Failed to show config: {e}")
        sys.exit(1)

    task = dict(config.task)
    if task.get("password"):
        task["password"] = "********"

    print(f"\nConfiguration file: {config.config_path}")
    print(f"Logging level: {config.logging.level}")
    print(f"Log file: {config.logging.file}")
    print("\nTask settings:")
    print(json.dumps(task, indent=2))

    errors = config.validate()
    for error in errors:
        print(f"  ! {error}")


def _add_task_options(parser):
    """Flags that override task settings from the config file."""
    group = parser.add_argument_group('task settings')
    group.add_argument('--task-name', type=str, help='Name of the scheduled task')
    group.add_argument('--user', type=str, help='User the task runs as (password: $CHEF_CLIENT_TASK_PASSWORD)')
    group.add_argument('--frequency', type=str, choices=FREQUENCIES, help='How often to run')
    group.add_argument('--frequency-modifier', type=str, help='Interval count for the frequency')
    group.add_argument('--start-date', type=str, help='Start date (MM/DD/YYYY)')
    group.add_argument('--start-time', type=str, help='Start time (HH:MM)')
    group.add_argument('--splay', type=str, help='Random delay bound in seconds')
    group.add_argument('--no-run-on-battery', dest='run_on_battery', action='store_false',
                       default=None, help='Do not start the task on battery power')
    group.add_argument('--config-directory', type=str, help='chef-client config directory')
    group.add_argument('--log-directory', type=str, help='Directory for the client log')
    group.add_argument('--log-file-name', type=str, help='Client log file name')
    group.add_argument('--chef-binary-path', type=str, help='Path to the chef-client binary')
    group.add_argument('--daemon-option', dest='daemon_options', action='append',
                       help='Extra option passed to chef-client (repeatable)')
    group.add_argument('--accept-chef-license', action='store_true', default=None,
                       help='Pass --chef-license accept to chef-client')


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Run chef-client as a Windows scheduled task",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        '-c', '--config',
        type=str,
        help='Path to task configuration file'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )
    parser.add_argument(
        '--log-file',
        type=str,
        help='Log file path'
    )

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # Add command
    add_parser = subparsers.add_parser('add', help='Create and enable the scheduled task')
    add_parser.add_argument('--dry-run', action='store_true', help='Print the plan without applying it')
    _add_task_options(add_parser)
    add_parser.set_defaults(func=cmd_add)

    # Remove command
    remove_parser = subparsers.add_parser('remove', help='Delete the scheduled task')
    remove_parser.add_argument('--dry-run', action='store_true', help='Print the plan without applying it')
    _add_task_options(remove_parser)
    remove_parser.set_defaults(func=cmd_remove)

    # Show command
    show_parser = subparsers.add_parser('show', help='Show the command line and task definition')
    _add_task_options(show_parser)
    show_parser.set_defaults(func=cmd_show)

    # Init command
    init_parser = subparsers.add_parser('init', help='Initialize task configuration')
    init_parser.add_argument('--force', action='store_true', help='Overwrite an existing file')
    init_parser.set_defaults(func=cmd_init)

    # Show config command
    show_config_parser = subparsers.add_parser('show-config', help='Show configuration')
    show_config_parser.set_defaults(func=cmd_show_config)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == '__main__':
    main()
