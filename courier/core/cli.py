# courier/core/cli.py
"""
CLI for the courier email worker, events worker and configuration check.

Configuration comes from the environment. A ``.env`` file in the working
directory (or the path given with ``--env-file``) is loaded first; variables
already set in the environment win.
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from typing import Callable, Optional, Sequence

from dotenv import load_dotenv
from pydantic import ValidationError
from sqlalchemy import text

from courier.core.dispatch.engine import DispatchEngine
from courier.core.errors import (
    ConfigurationError,
    CourierError,
    ErrorCode,
    ListenerDisconnectedError,
)
from courier.core.logging import apply_level, get_logger
from courier.core.models.settings import Settings
from courier.core.store.engine import create_store_engine
from courier.core.utils.url import mask_database_url

EngineBuilder = Callable[[Settings], DispatchEngine]


def setup_logging(loglevel: str) -> None:
    """Configure logging level for every courier logger."""
    level = getattr(logging, loglevel.upper(), logging.INFO)
    apply_level(level)


def _load_env(env_file: Optional[str]) -> None:
    if env_file is None:
        load_dotenv(override=False)
        return
    if not os.path.isfile(env_file):
        raise ConfigurationError(
            message='env file not found',
            code=ErrorCode.CLI_INVALID_ARGS,
            notes=[f'--env-file {env_file}'],
            help_text='pass an existing dotenv file or omit --env-file to use ./.env',
        )
    load_dotenv(env_file, override=False)


def _load_settings(args: argparse.Namespace) -> Settings:
    """Load settings or exit 1 with a readable report."""
    try:
        _load_env(args.env_file)
        return Settings.from_env()
    except CourierError as e:
        print(e.format_rust_style(), file=sys.stderr)
        sys.exit(1)
    except ValidationError as e:
        print(f'error: invalid configuration\n{e}', file=sys.stderr)
        sys.exit(1)


def run_engine(name: str, build: EngineBuilder, args: argparse.Namespace) -> None:
    """Run one worker engine until SIGINT/SIGTERM or a fatal error."""
    logger = get_logger('cli')
    settings = _load_settings(args)

    async def run_worker() -> None:
        engine = build(settings)
        loop = asyncio.get_running_loop()

        def signal_handler() -> None:
            logger.info(f'Received interrupt signal, stopping {name} worker...')
            engine.request_stop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, signal_handler)
            except NotImplementedError:
                pass

        await engine.run_forever()

    logger.info(
        f'Starting {name} worker ({mask_database_url(settings.database.database_url)})'
    )
    try:
        asyncio.run(run_worker())
    except KeyboardInterrupt:
        logger.info(f'{name} worker interrupted by user')
        return
    except ListenerDisconnectedError as e:
        logger.critical(f'Notification listener disconnected, exiting: {e}')
        sys.exit(1)
    except Exception as e:
        logger.critical(f'{name} worker failed: {e}', exc_info=True)
        sys.exit(1)
    logger.info(f'{name} worker stopped')


def email_command(args: argparse.Namespace) -> None:
    from courier.mail.worker import build_email_engine

    run_engine('email', build_email_engine, args)


def events_command(args: argparse.Namespace) -> None:
    from courier.events.worker import build_events_engine

    run_engine('events', build_events_engine, args)


async def _check_database(settings: Settings) -> None:
    engine, sf = create_store_engine(settings.database)
    try:
        async with sf() as s:
            await s.execute(text('SELECT 1'))
    finally:
        await engine.dispose()


def check_command(args: argparse.Namespace) -> None:
    """Validate configuration (and optionally database connectivity)."""
    settings = _load_settings(args)

    if args.live:
        try:
            asyncio.run(_check_database(settings))
        except Exception as e:
            print(f'error: database check failed: {e}', file=sys.stderr)
            sys.exit(1)

    lines = ['ok: configuration valid']
    for label, cfg in (('email', settings.email), ('events', settings.events)):
        lines.append(
            f'  {label}: table={cfg.table.name} channels={",".join(cfg.channels)} '
            f'batch={cfg.batch_size} poll={cfg.effective_poll_interval_ms}ms '
            f'retries={cfg.retry_policy.max_retries} ({cfg.retry_policy.strategy})'
        )
    lines.append(
        f'  matrix: {"configured" if settings.matrix.is_configured else "not configured"}'
    )
    if args.live:
        lines.append('  database: reachable')
    print('\n'.join(lines))


def _add_common_arguments(
    parser: argparse.ArgumentParser, default_level: str = 'INFO'
) -> None:
    parser.add_argument(
        '--loglevel',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        default=default_level,
        type=str.upper,
        help=f'Logging level (default: {default_level})',
    )
    parser.add_argument(
        '--env-file',
        dest='env_file',
        default=None,
        help='dotenv file to load before reading the environment (default: ./.env)',
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='courier',
        description='courier - PostgreSQL-backed email and event dispatch workers',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  courier email
  courier events --loglevel DEBUG
  courier check --live
""",
    )
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    email_parser = subparsers.add_parser(
        'email', help='Run the transactional email worker'
    )
    _add_common_arguments(email_parser)

    events_parser = subparsers.add_parser('events', help='Run the domain event worker')
    _add_common_arguments(events_parser)

    check_parser = subparsers.add_parser(
        'check', help='Validate configuration without starting workers'
    )
    _add_common_arguments(check_parser, default_level='WARNING')
    check_parser.add_argument(
        '--live',
        action='store_true',
        default=False,
        help='Also check database connectivity (SELECT 1)',
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Main CLI entry point."""
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
        if args.command is not None:
            setup_logging(args.loglevel)

        match args.command:
            case 'email':
                email_command(args)
            case 'events':
                events_command(args)
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
