#!/usr/bin/env python3
"""Main entry point for the seedbox maintenance daemon."""

import argparse
import logging
import signal
import sys
from datetime import datetime
from threading import Event
from typing import List, Optional

from . import __version__
from .config import Settings, load_config, parse_listen_address
from .exceptions import ConfigError
from .supervisor import Supervisor

EXIT_CONFIG_ERROR = 2


# Custom log formatter with colors and symbols
class PrettyFormatter(logging.Formatter):
    """Custom formatter with colors and symbols for prettier output."""

    # ANSI color codes
    COLORS = {
        'DEBUG': '\033[36m',    # Cyan
        'INFO': '\033[32m',     # Green
        'WARNING': '\033[33m',  # Yellow
        'ERROR': '\033[31m',    # Red
        'CRITICAL': '\033[35m', # Magenta
        'RESET': '\033[0m',
        'BOLD': '\033[1m',
        'DIM': '\033[2m',
    }

    # Log level symbols
    SYMBOLS = {
        'DEBUG': '🔍',
        'INFO': '✔',
        'WARNING': '⚠',
        'ERROR': '✗',
        'CRITICAL': '💀',
    }

    def __init__(self, use_colors=True, use_symbols=True):
        """Initialize formatter."""
        self.use_colors = use_colors and sys.stdout.isatty()
        self.use_symbols = use_symbols
        super().__init__()

    def format(self, record):
        """Format log record with colors and symbols."""
        levelname = record.levelname
        color = self.COLORS.get(levelname, '')
        reset = self.COLORS['RESET'] if self.use_colors else ''
        symbol = self.SYMBOLS.get(levelname, '•') if self.use_symbols else ''

        time_str = datetime.fromtimestamp(record.created).strftime('%H:%M:%S')

        if self.use_colors:
            if levelname in ('WARNING', 'ERROR', 'CRITICAL'):
                formatted = f"{self.COLORS['DIM']}{time_str}{reset} {color}{symbol} {levelname:8}{reset} {record.getMessage()}"
            elif record.name == __name__:
                # Main module messages in bold
                formatted = f"{self.COLORS['DIM']}{time_str}{reset} {color}{symbol}{reset} {self.COLORS['BOLD']}{record.getMessage()}{reset}"
            else:
                formatted = f"{self.COLORS['DIM']}{time_str}{reset} {color}{symbol}{reset} {record.getMessage()}"
        else:
            formatted = f"{time_str} {symbol} {levelname:8} [{record.threadName}] {record.getMessage()}"

        if record.exc_info:
            formatted += f"\n{self.formatException(record.exc_info)}"

        return formatted


def setup_logging(debug=False):
    """Set up logging with pretty formatting."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(PrettyFormatter(use_colors=True, use_symbols=True))

    level = logging.DEBUG if debug else logging.INFO
    root_logger.setLevel(level)
    console_handler.setLevel(level)
    if not debug:
        # Suppress some noisy loggers
        logging.getLogger('urllib3').setLevel(logging.WARNING)
        logging.getLogger('qbittorrentapi').setLevel(logging.WARNING)
        logging.getLogger('uvicorn.access').setLevel(logging.WARNING)

    root_logger.addHandler(console_handler)


# Set up module logger
logger = logging.getLogger(__name__)


def print_banner():
    """Print a startup banner."""
    banner = f"""
╔══════════════════════════════════════════════════════════╗
║            🌱 Seedbox Maintenance v{__version__:<8} 🌱            ║
╚══════════════════════════════════════════════════════════╝"""
    print(banner)


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    """Build the command-line parser, with defaults taken from the environment."""
    parser = argparse.ArgumentParser(
        prog="seedbox-maintenance",
        description="Delete torrents from qBittorrent according to retention policies",
    )
    parser.add_argument("config", nargs="?", default=settings.config_path,
                        help=f"YAML rules file (default: {settings.config_path})")
    parser.add_argument("-f", "--take-action", action="store_true", default=settings.take_action,
                        help="Actually remove torrents; without this flag only log what would happen")
    parser.add_argument("--once", action="store_true", default=settings.run_once,
                        help="Run a single cycle on every instance and exit")
    parser.add_argument("--check", action="store_true",
                        help="Validate the rules file, print the policies and exit")
    parser.add_argument("--listen", default=settings.api_listen, metavar="HOST:PORT",
                        help="Serve the status API and Prometheus metrics on this address")
    parser.add_argument("--grace-period", type=float, default=settings.grace_period, metavar="SECONDS",
                        help="How long running cycles may take to finish on shutdown")
    parser.add_argument("--debug", action="store_true", default=settings.debug,
                        help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def print_rules(instances) -> None:
    """Print the loaded instances and policies."""
    for instance in instances:
        print(f"{instance.name}: {instance} (every {instance.poll_interval}s)")
        if not len(instance.rules):
            print("  (no policies - metrics only)")
        for policy in instance.rules:
            print(f"  - {policy.describe()}")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    settings = Settings.from_environment()
    args = build_parser(settings).parse_args(argv)

    setup_logging(debug=args.debug)

    try:
        instances = load_config(args.config)
        listen = parse_listen_address(args.listen) if args.listen else None
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR

    if args.check:
        print_rules(instances)
        return 0

    print_banner()
    supervisor = Supervisor(instances, enforce=args.take_action)

    if args.take_action:
        logger.info("Mode: ENFORCE - matching torrents will be removed")
    else:
        logger.info("Mode: DRY RUN - pass -f/--take-action to remove torrents")
    for instance in instances:
        logger.info(f"  -> {instance.name}: {len(instance.rules)} policies, every {instance.poll_interval}s")
    print("─" * 60)

    if args.once:
        success = supervisor.run_once()
        if success:
            logger.info("Exiting successfully")
        else:
            logger.error("Exiting with errors")
        return 0 if success else 1

    api_server = None
    if listen:
        from .api import ApiServer
        from .api.app_state import AppState
        api_server = ApiServer(AppState(supervisor), *listen)
        api_server.start()

    shutdown = Event()

    def handle_shutdown(signum, frame):
        logger.info(f"Received {signal.Signals(signum).name}, shutting down - goodbye! 👋")
        shutdown.set()

    def handle_poll(signum, frame):
        logger.info("Poll triggered via signal")
        supervisor.trigger_all()

    signal.signal(signal.SIGTERM, handle_shutdown)
    signal.signal(signal.SIGINT, handle_shutdown)
    if hasattr(signal, "SIGUSR1"):
        signal.signal(signal.SIGUSR1, handle_poll)

    abandoned = supervisor.run(shutdown, grace_period=args.grace_period)
    if api_server is not None:
        api_server.stop()
    return 1 if abandoned else 0


if __name__ == "__main__":
    sys.exit(main())
