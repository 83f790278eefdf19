#!/usr/bin/env python3
"""
OPC UA Data Logger - Entry Point

Usage:
    opclogger                           # Start with ./config.yaml
    opclogger --config my.yaml          # Use custom config file
    opclogger --dry-run                 # Validate config and exit
    opclogger --verbose                 # Enable debug logging (plain text)

Exit codes:
    0  clean shutdown (SIGINT/SIGTERM)
    1  invalid configuration, or connection retries exhausted at startup
"""

import argparse
import asyncio
import os
import sys

from opclogger import __version__
from opclogger.common.config import LoggerConfig, load_config_file
from opclogger.common.exceptions import ConfigError
from opclogger.common.logging_setup import get_service_logger, reconfigure_all
from opclogger.services.logging.service import (
    DataLoggerService,
    EXIT_OK,
    EXIT_STARTUP_FAILURE,
)

logger = get_service_logger("main")

# Default configuration path
DEFAULT_CONFIG_PATH = "config.yaml"


def print_startup_banner(config: LoggerConfig) -> None:
    """Print startup information."""
    print()
    print("=" * 60)
    print("  OPC UA DATA LOGGER")
    print("=" * 60)
    print()
    print(f"  Endpoint:        {config.endpoint}")
    print(f"  Log directory:   {config.log_dir}")
    print(f"  Log interval:    {config.log_interval_s}s")
    print(f"  Keep-alive:      {config.keep_alive.interval_s}s ({config.keep_alive.diagnostic_node})")
    print(f"  Session timeout: {config.session.timeout_s}s")
    print(f"  Points:          {', '.join(config.point_names)}")
    print(
        f"  Retry:           {config.retry.max_retry} attempts, "
        f"{config.retry.initial_delay_ms}-{config.retry.max_delay_ms}ms"
    )
    if config.health.enabled:
        print(f"  Health:          http://{config.health.host}:{config.health.port}/health")
    print()
    print("=" * 60)
    print()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="opclogger",
        description="OPC UA Data Logger - hourly CSV logging with session keep-alive",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    opclogger                           # Start with default config
    opclogger --config my.yaml          # Use custom config file
    opclogger --dry-run                 # Validate config and exit
    opclogger -v                        # Enable debug logging
        """,
    )

    parser.add_argument(
        "--config", "-c",
        type=str,
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {DEFAULT_CONFIG_PATH})",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate configuration and exit without connecting",
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (debug) logging",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"opclogger {__version__}",
    )

    return parser


async def main_async(config: LoggerConfig) -> int:
    """Run the logger service until shutdown; returns the process exit code."""
    service = DataLoggerService(config)
    return await service.run()


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    if args.verbose:
        reconfigure_all("DEBUG", json_format=False)
    else:
        reconfigure_all(
            os.environ.get("OPCLOGGER_LOG_LEVEL", "INFO"),
            json_format=os.environ.get("OPCLOGGER_LOG_FORMAT", "json").lower() == "json",
        )

    try:
        config = load_config_file(args.config)
    except ConfigError as e:
        print(f"Error: {e.message}")
        for error in e.errors:
            print(f"  - {error}")
        return EXIT_STARTUP_FAILURE

    print_startup_banner(config)

    if args.dry_run:
        print("Dry run mode - configuration valid")
        return EXIT_OK

    print("Press Ctrl+C to stop")
    print()

    try:
        return asyncio.run(main_async(config))
    except KeyboardInterrupt:
        print("\nStopped by user")
        return EXIT_OK
    except Exception as e:
        logger.critical(f"Fatal error: {e}")
        return EXIT_STARTUP_FAILURE


if __name__ == "__main__":
    sys.exit(main())
