"""Command line interface for controlling a running process compose server."""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from typing import Any, Callable, NoReturn, Sequence

import requests
import websocket

from . import client, config
from .log_client import LogClient

log = logging.getLogger(__name__)

DEFAULT_PORT_NUM = 8080
PORT_ENV_VAR_NAME = "PC_PORT_NUM"
TUI_ENV_VAR_NAME = "PC_DISABLE_TUI"
CONFIG_ENV_VAR_NAME = "PC_CONFIG_FILES"
DEFAULT_ADDRESS = "localhost"

_INFO_FORMAT = "{:<15} {}"
_CLIENT_ERRORS = (client.ClientError, requests.RequestException)

Handler = Callable[[argparse.Namespace], int]


def get_tui_default() -> bool:
    """The TUI is on unless ``PC_DISABLE_TUI`` is set."""
    return TUI_ENV_VAR_NAME not in os.environ


def get_port_default() -> int:
    """The port from ``PC_PORT_NUM``, or 8080; raise on an invalid value."""
    value = os.environ.get(PORT_ENV_VAR_NAME)
    if value is None:
        return DEFAULT_PORT_NUM
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Invalid port number: {value}") from None


def get_config_default() -> list[str]:
    """Config files listed, comma separated, in ``PC_CONFIG_FILES``."""
    value = os.environ.get(CONFIG_ENV_VAR_NAME)
    if value is None:
        return []
    return value.split(",")


def print_info() -> None:
    """Print where the log file and shortcuts file live."""
    print("Process Compose")
    print(_INFO_FORMAT.format("Logs:", config.get_log_file_path()))
    path = config.get_shortcuts_path()
    if path:
        print(_INFO_FORMAT.format("Shortcuts:", path))


def print_version() -> None:
    """Print version and build information."""
    print("Process Compose")
    print(_INFO_FORMAT.format("Version:", config.VERSION))
    print(_INFO_FORMAT.format("Commit:", config.COMMIT))
    print(_INFO_FORMAT.format("Date (UTC):", config.DATE))
    print(_INFO_FORMAT.format("License:", config.LICENSE))


class _LogFileHandler(logging.StreamHandler):
    """Stream handler that owns, and closes, its stream."""

    def close(self) -> None:
        self.acquire()
        try:
            try:
                self.flush()
            finally:
                stream = self.stream
                if stream is not None and not stream.closed:
                    stream.close()
        finally:
            self.release()
        super().close()


def setup_logger(log_path: str) -> logging.Handler:
    """Send all logging to ``log_path`` (truncated) at debug level.

    Returns the handler; remove it from the root logger and close it when done.
    """
    fd = os.open(log_path, config.LOG_FILE_FLAGS, config.LOG_FILE_MODE)
    stream = os.fdopen(fd, "a", encoding="utf-8")
    handler = _LogFileHandler(stream)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s.%(msecs)03d %(levelname)s %(name)s > %(message)s",
            datefmt="%y-%m-%d %H:%M:%S",
        )
    )
    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG)
    return handler


def _log_fatal(err: BaseException, fmt: str, *args: Any) -> NoReturn:
    message = fmt % args
    print(f"{message}: {err}")
    log.critical("%s: %s", message, err)
    raise SystemExit(1)


def _format_list(items: Sequence[Any]) -> str:
    return "[" + " ".join(str(item) for item in items) + "]"


def _run_info(args: argparse.Namespace) -> int:
    print_info()
    return 0


def _run_version(args: argparse.Namespace) -> int:
    print_version()
    return 0


def _run_list(args: argparse.Namespace) -> int:
    try:
        names = client.get_processes_name(args.address, args.port)
    except _CLIENT_ERRORS as err:
        _log_fatal(err, "failed to list processes")
    for name in names:
        print(name)
    return 0


def _run_logs(args: argparse.Namespace) -> int:
    name = args.name
    logger = LogClient(line_format="%s\n")
    try:
        logger.read_process_logs(
            args.address, args.port, name, args.tail, args.follow, sys.stdout
        )
    except (websocket.WebSocketException, OSError) as err:
        log.error("Failed to fetch logs for process %s: %s", name, err)
        return 0
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print("interrupt")
        try:
            logger.close_channel()
        except (RuntimeError, OSError, websocket.WebSocketException) as err:
            log.error("failed to close log channel: %s", err)
        time.sleep(1)
    return 0


def _run_ports(args: argparse.Namespace) -> int:
    name = args.name
    try:
        ports = client.get_process_ports(args.address, args.port, name)
    except _CLIENT_ERRORS as err:
        _log_fatal(err, "failed to get process %s ports", name)
    tcp_ports = _format_list(ports.get("tcp_ports") or [])
    log.info("Process %s TCP ports: %s", name, tcp_ports)
    print(f"Process {name} TCP ports: {tcp_ports}")
    return 0


def _run_restart(args: argparse.Namespace) -> int:
    try:
        client.restart_process(args.address, args.port, args.name)
    except _CLIENT_ERRORS as err:
        _log_fatal(err, "failed to restart process %s", args.name)
    print(f"Process {args.name} restarted")
    return 0


def _run_scale(args: argparse.Namespace) -> int:
    try:
        count = int(args.count)
    except ValueError as err:
        _log_fatal(err, "second argument must be an integer")
    try:
        client.scale_process(args.address, args.port, args.name, count)
    except _CLIENT_ERRORS as err:
        _log_fatal(err, "failed to scale process %s", args.name)
    log.info("Process %s scaled to %s", args.name, args.count)
    return 0


def _run_start(args: argparse.Namespace) -> int:
    try:
        client.start_process(args.address, args.port, args.name)
    except _CLIENT_ERRORS as err:
        _log_fatal(err, "failed to start process %s", args.name)
    print(f"Process {args.name} started")
    return 0


def _run_stop(args: argparse.Namespace) -> int:
    try:
        stopped = client.stop_processes(args.address, args.port, args.names)
    except _CLIENT_ERRORS as err:
        _log_fatal(err, "failed to stop processes %s", _format_list(args.names))
    print(f"Processes {_format_list(stopped)} stopped")
    return 0


def _add_port(parser: argparse.ArgumentParser, default: Any) -> None:
    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=default,
        help=f"port number (env: {PORT_ENV_VAR_NAME})",
    )


def _add_address(parser: argparse.ArgumentParser, default: Any) -> None:
    parser.add_argument(
        "-a",
        "--address",
        default=default,
        help="address of a running process compose server",
    )


def _add_leaf(
    subparsers: Any, name: str, help_text: str, handler: Handler, **kwargs: Any
) -> argparse.ArgumentParser:
    parser = subparsers.add_parser(name, help=help_text, description=help_text, **kwargs)
    _add_port(parser, argparse.SUPPRESS)
    parser.set_defaults(handler=handler)
    return parser


def _build_parser(argv: Sequence[str]) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="process-compose", description="Processes scheduler and orchestrator"
    )
    _add_port(parser, get_port_default())
    parser.add_argument(
        "-t",
        "--tui",
        type=lambda text: text.lower() in ("1", "t", "true"),
        default=get_tui_default(),
        help=f"disable tui (-t=false) (env: {TUI_ENV_VAR_NAME})",
    )
    parser.add_argument(
        "-f",
        "--config",
        action="append",
        default=get_config_default(),
        help=f"path to config files to load (env: {CONFIG_ENV_VAR_NAME})",
    )
    parser.add_argument(
        "--logFile",
        dest="log_file",
        default=config.get_log_file_path(argv),
        help=f"Specify the log file path (env: {config.LOG_PATH_ENV_VAR_NAME})",
    )
    parser.set_defaults(handler=None)

    commands = parser.add_subparsers(dest="command")
    _add_leaf(commands, "info", "Print configuration info", _run_info)
    _add_leaf(commands, "version", "Print version and build info", _run_version)

    process = commands.add_parser(
        "process", help="Execute operations on available processes"
    )
    _add_port(process, argparse.SUPPRESS)
    _add_address(process, DEFAULT_ADDRESS)
    operations = process.add_subparsers(dest="process_command", required=True)

    def leaf(name: str, help_text: str, handler: Handler, **kwargs: Any):
        sub = _add_leaf(operations, name, help_text, handler, **kwargs)
        _add_address(sub, argparse.SUPPRESS)
        return sub

    leaf("list", "List available processes", _run_list, aliases=["ls"])

    logs = leaf("logs", "Fetch the logs of a process", _run_logs)
    logs.add_argument("name", metavar="PROCESS")
    logs.add_argument(
        "-f", "--follow", action="store_true", help="Follow log output"
    )
    logs.add_argument(
        "-n",
        "--tail",
        type=int,
        default=sys.maxsize,
        help="Number of lines to show from the end of the logs",
    )

    ports = leaf("ports", "Get the ports that a process is listening on", _run_ports)
    ports.add_argument("name", metavar="PROCESS")

    restart = leaf("restart", "Restart a process", _run_restart)
    restart.add_argument("name", metavar="PROCESS")

    scale = leaf("scale", "Scale a process to a given count", _run_scale)
    scale.add_argument("name", metavar="PROCESS")
    scale.add_argument("count", metavar="COUNT")

    start = leaf("start", "Start a process", _run_start)
    start.add_argument("name", metavar="PROCESS")

    stop = leaf("stop", "Stop a running process", _run_stop)
    stop.add_argument("names", metavar="PROCESS", nargs="*")

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Parse the command line and run the chosen command."""
    args_list = list(sys.argv[1:] if argv is None else argv)
    try:
        parser = _build_parser(args_list)
    except ValueError as err:
        print(err, file=sys.stderr)
        return 1
    args = parser.parse_args(args_list)

    handler = setup_logger(args.log_file)
    root = logging.getLogger()
    try:
        log.info("Process Compose %s", config.VERSION)
        if args.handler is None:
            parser.print_help()
            return 0
        return args.handler(args)
    finally:
        root.removeHandler(handler)
        handler.close()


if __name__ == "__main__":
    sys.exit(main())