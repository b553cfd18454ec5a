# cadence/core/cli.py
"""
Command line entry point: `cadence run` and `cadence check`.

The app is located the way Celery locates its app: `cadence run app.jobs:app`
imports app.jobs from sys.path and takes its `app` attribute. A .py path works
too, and the attribute may be omitted when the module holds exactly one
Cadence instance. When cwd is a project root it is added to sys.path.
"""

import argparse
import asyncio
import logging
import signal
import sys
from types import ModuleType

from cadence.core.app import Cadence
from cadence.core.errors import CadenceError, ConfigurationError, ErrorCode
from cadence.core.logging import apply_level, get_logger
from cadence.core.utils.imports import load_module, setup_sys_path_from_cwd

logger = get_logger('cli')


def _resolve_module_argument(args: argparse.Namespace) -> str:
    """Return module path from --module or positional, error if missing."""
    module_path = getattr(args, 'module', None) or getattr(args, 'module_pos', None)
    if not module_path:
        raise ConfigurationError(
            message='module path is required',
            code=ErrorCode.CLI_INVALID_ARGS,
            notes=['neither --module nor a positional module was given'],
            help_text=(
                'name the module holding your Cadence app:\n'
                '  cadence run app.jobs:app\n'
                '  cadence run app/jobs.py:app\n'
                '  cadence run app.jobs  (single Cadence instance in the module)'
            ),
        )
    return module_path


def _parse_locator(locator: str) -> tuple[str, str | None]:
    """
    Split a locator into (module_path, attribute_name).

    - "app.jobs:app" -> ("app.jobs", "app")
    - "app/jobs.py" -> ("app/jobs.py", None)
    """
    module_part, sep, attr = locator.rpartition(':')
    if not sep:
        return (locator, None)
    return (module_part, attr)


def _find_app(module: ModuleType, attr_name: str | None) -> tuple[Cadence, str]:
    module_name = module.__name__
    if attr_name:
        obj = getattr(module, attr_name, None)
        if obj is None:
            raise AttributeError(
                f"Module '{module_name}' has no attribute '{attr_name}'"
            )
        if not isinstance(obj, Cadence):
            raise TypeError(
                f"'{attr_name}' in module '{module_name}' is not a Cadence instance "
                f'(got {type(obj).__name__})'
            )
        return obj, attr_name

    found = {
        name: obj
        for name, obj in vars(module).items()
        if not name.startswith('_') and isinstance(obj, Cadence)
    }
    if len(found) == 1:
        [(name, app)] = found.items()
        return app, name
    if not found:
        raise AttributeError(
            f'No Cadence instance found in {module_name}; '
            'name it explicitly as module.path:variable'
        )
    raise AttributeError(
        f'Multiple Cadence instances found in {module_name}: {sorted(found)}; '
        'name one explicitly as module.path:variable'
    )


def discover_app(module_locator: str) -> tuple[Cadence, str, str]:
    """
    Import the module a locator names and find its Cadence app.

    Returns:
        (app_instance, variable_name, module_name)
    """
    project_root = setup_sys_path_from_cwd()
    if project_root:
        logger.info(f'Added project root to sys.path: {project_root}')

    module_path, attr_name = _parse_locator(module_locator)
    module = load_module(module_path)
    app, var_name = _find_app(module, attr_name)

    logger.info(f"Discovered cadence app '{var_name}' from {module.__name__}")
    return app, var_name, module.__name__


def setup_logging(loglevel: str) -> None:
    """Configure logging level for every cadence logger."""
    apply_level(getattr(logging, loglevel.upper(), logging.INFO))


def _discover_or_exit(args: argparse.Namespace) -> Cadence:
    try:
        app, _var_name, _module_name = discover_app(_resolve_module_argument(args))
    except CadenceError as e:
        logger.error(str(e))
        sys.exit(1)
    except Exception as e:
        logger.error(f'Failed to discover app: {e}')
        sys.exit(1)
    return app


def run_command(args: argparse.Namespace) -> None:
    """Run the scheduler in the foreground until SIGINT/SIGTERM."""
    setup_logging(args.loglevel)
    logger.info(f'Starting scheduler with loglevel={args.loglevel}')

    app = _discover_or_exit(args)
    logger.info(f'{len(app.list_jobs())} job(s) registered')
    # Jobs created at import may have written through the app's loop thread;
    # release it so the scheduler owns the loop below.
    app.close()

    async def run_scheduler() -> None:
        scheduler = app.get_scheduler()
        loop = asyncio.get_running_loop()

        def on_signal() -> None:
            logger.info('Received stop signal, finishing in-flight executions')
            scheduler.request_stop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, on_signal)
            except NotImplementedError:
                # Windows event loops have no signal handlers
                pass

        await scheduler.run_forever()

    try:
        asyncio.run(run_scheduler())
    except KeyboardInterrupt:
        logger.info('Scheduler interrupted by user')
    except Exception as e:
        logger.error(f'Scheduler failed: {e}', exc_info=True)
        sys.exit(1)


def check_command(args: argparse.Namespace) -> None:
    """Validate discovery and configuration, then list the declared jobs."""
    setup_logging(args.loglevel)
    app = _discover_or_exit(args)

    print('ok: app configuration is valid')
    for line in app.config.describe():
        print(f'  {line}')

    jobs = app.list_jobs()
    print(f'  {len(jobs)} job(s) registered')
    for job in jobs:
        state = 'active' if job.is_active else 'paused'
        next_run = job.next_run.isoformat() if job.next_run else '-'
        print(
            f'    - {job.name} [{state}] {job.recurrence.describe()}, next run {next_run}'
        )
    app.close()
    sys.exit(0)


def _add_common_arguments(parser: argparse.ArgumentParser, default_level: str) -> None:
    parser.add_argument(
        '-m',
        '--module',
        dest='module',
        help='Module path (e.g., app.jobs:app)',
    )
    parser.add_argument(
        'module_pos',
        nargs='?',
        help='Module path (e.g., app.jobs:app)',
    )
    parser.add_argument(
        '--loglevel',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        default=default_level,
        type=str.upper,
        help=f'Logging level (default: {default_level})',
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='cadence',
        description='cadence recurring job scheduler',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  cadence run app.jobs:app
  cadence run app/jobs.py:app
  cadence check app.jobs:app --loglevel DEBUG
""",
    )
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    run_parser = subparsers.add_parser('run', help='Run the scheduler')
    _add_common_arguments(run_parser, 'INFO')

    check_parser = subparsers.add_parser(
        'check', help='Validate app configuration without starting the scheduler'
    )
    _add_common_arguments(check_parser, 'WARNING')

    return parser


def main() -> None:
    parser = build_parser()
    try:
        args = parser.parse_args()

        match args.command:
            case 'run':
                run_command(args)
            case 'check':
                check_command(args)
            case _:
                parser.print_help()
                sys.exit(1)
    except KeyboardInterrupt:
        print('\nInterrupted by user')
        sys.exit(0)


if __name__ == '__main__':
    main()
