"""
remus-netbuf-setup command line entry point.

Invoked by the toolstack's hotplug machinery as

    remus-netbuf-setup {setup|teardown}

with the vif and store path passed through the environment:

    vifname      vif interface name (required)
    XENBUS_PATH  store path of this vif's netbuf record (required),
                 e.g. /libxl/<domid>/remus/netbuf/<devid>
    IFB          buffering device to release (required for teardown)

Each may also be given as an option, which wins over the environment.
"""

import argparse
import logging
import logging.handlers
import os
import sys
from typing import List, Optional

from .config import LoggingConfig, NetbufConfig, get_config, set_config
from .exceptions import InvalidInvocationError, NetbufException
from .hotplug import NetbufHotplug

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2

COMMANDS = ("setup", "teardown")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="remus-netbuf-setup",
        description="Set up or tear down network buffering for a Remus-protected vif",
    )
    parser.add_argument("command", help="setup or teardown")
    parser.add_argument("--vifname", default=os.getenv("vifname"),
                        help="vif interface name (default: $vifname)")
    parser.add_argument("--xenbus-path", default=os.getenv("XENBUS_PATH"),
                        help="store path for this vif (default: $XENBUS_PATH)")
    parser.add_argument("--ifb", default=os.getenv("IFB"),
                        help="buffering device to release on teardown (default: $IFB)")
    parser.add_argument("--config", default=os.getenv("NETBUF_CONFIG"),
                        help="YAML configuration file (default: $NETBUF_CONFIG)")
    parser.add_argument("--log-level", default=None,
                        choices=["debug", "info", "warning", "error", "critical"],
                        help="override the configured log level")
    return parser


def configure_logging(cfg: LoggingConfig, level_override: Optional[str] = None) -> None:
    level_name = (level_override or cfg.level.value).upper()
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    file_error = None
    if cfg.file_path:
        try:
            handlers.append(logging.handlers.RotatingFileHandler(
                cfg.file_path,
                maxBytes=cfg.max_file_size_mb * 1024 * 1024,
                backupCount=cfg.backup_count,
            ))
        except OSError as e:
            file_error = e
    logging.basicConfig(level=getattr(logging, level_name), format=cfg.format,
                        handlers=handlers, force=True)
    if file_error is not None:
        logger.warning(f"Cannot log to {cfg.file_path}, using stderr only: {file_error}")


def run(args: argparse.Namespace, hotplug: NetbufHotplug) -> int:
    """Execute the parsed command; returns the process exit status."""
    if args.command == "setup":
        result = hotplug.setup(args.vifname, args.xenbus_path)
        logger.debug(
            f"Successful remus-netbuf-setup setup for {result.vif}, ifb {result.device}"
        )
        return EXIT_OK

    report = hotplug.teardown(args.vifname, args.ifb, args.xenbus_path)
    logger.debug(
        f"Successful remus-netbuf-setup teardown for {report.vif}, ifb {report.device}"
        f" ({len(report.failures)} step(s) ignored)"
    )
    return EXIT_OK


def main(argv: Optional[List[str]] = None, hotplug: Optional[NetbufHotplug] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command not in COMMANDS:
        logger.error(f"Invalid command: {args.command}")
        print(f"Invalid command: {args.command}", file=sys.stderr)
        return EXIT_USAGE

    try:
        config = NetbufConfig.load(args.config) if args.config else get_config()
    except NetbufException as e:
        print(str(e), file=sys.stderr)
        return EXIT_FAILURE
    set_config(config)
    configure_logging(config.logging, args.log_level)

    if hotplug is None:
        hotplug = NetbufHotplug(config)

    try:
        return run(args, hotplug)
    except InvalidInvocationError as e:
        logger.error(str(e))
        return EXIT_USAGE
    except (NetbufException, OSError) as e:
        logger.error(f"remus-netbuf-setup {args.command} failed: {e}")
        return EXIT_FAILURE


def entry_point() -> None:
    sys.exit(main())
