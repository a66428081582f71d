"""HTTP client for a running process compose server."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Optional

import requests

from .log_client import LogClient
from .project import LogObserver

log = logging.getLogger(__name__)

STATES_KEY = "data"
NAME_KEY = "name"


class ClientError(Exception):
    """The server rejected a request or answered with something unusable."""


def _url(address: str, port: int, path: str) -> str:
    return f"http://{address}:{port}{path}"


def _decode(resp: requests.Response) -> Any:
    try:
        return resp.json()
    except ValueError as err:
        raise ClientError(f"failed to decode response from {resp.url}: {err}") from err


def _error_from(resp: requests.Response) -> ClientError:
    body = _decode(resp)
    if isinstance(body, dict) and "error" in body:
        return ClientError(str(body["error"]))
    return ClientError(f"unexpected status {resp.status_code} {resp.reason}")


def _checked_json(resp: requests.Response) -> Any:
    if resp.status_code != requests.codes.ok:
        raise _error_from(resp)
    return _decode(resp)


def _expect_ok(resp: requests.Response) -> None:
    if resp.status_code != requests.codes.ok:
        raise _error_from(resp)


def get_processes_state(address: str, port: int) -> dict[str, Any]:
    """States of all processes of the server."""
    with requests.get(_url(address, port, "/processes")) as resp:
        return _checked_json(resp)


def get_processes_name(address: str, port: int) -> list[str]:
    """Names of all processes, sorted."""
    states = get_processes_state(address, port)
    return sorted(state.get(NAME_KEY, "") for state in states.get(STATES_KEY) or [])


def get_process_state(address: str, port: int, name: str) -> dict[str, Any]:
    with requests.get(_url(address, port, f"/process/{name}")) as resp:
        return _checked_json(resp)


def get_process_info(address: str, port: int, name: str) -> dict[str, Any]:
    with requests.get(_url(address, port, f"/process/info/{name}")) as resp:
        return _checked_json(resp)


def get_process_ports(address: str, port: int, name: str) -> dict[str, Any]:
    with requests.get(_url(address, port, f"/process/ports/{name}")) as resp:
        return _checked_json(resp)


def get_process_log(
    address: str, port: int, name: str, offset_from_end: int, limit: int
) -> list[str]:
    """Log lines of a process, counted back from the end."""
    path = f"/process/logs/{name}/{offset_from_end}/{limit}"
    with requests.get(_url(address, port, path)) as resp:
        body = _checked_json(resp)
    return list(body.get("logs") or [])


def restart_process(address: str, port: int, name: str) -> None:
    with requests.post(_url(address, port, f"/process/restart/{name}")) as resp:
        _expect_ok(resp)


def start_process(address: str, port: int, name: str) -> None:
    with requests.post(_url(address, port, f"/process/start/{name}")) as resp:
        _expect_ok(resp)


def scale_process(address: str, port: int, name: str, scale: int) -> None:
    with requests.patch(_url(address, port, f"/process/scale/{name}/{scale}")) as resp:
        _expect_ok(resp)


def stop_process(address: str, port: int, name: str) -> None:
    with requests.patch(_url(address, port, f"/process/stop/{name}")) as resp:
        _expect_ok(resp)


def stop_processes(address: str, port: int, names: list[str]) -> list[str]:
    """Stop the named processes; return the names that were stopped."""
    with requests.patch(_url(address, port, "/processes/stop"), json=list(names)) as resp:
        stopped = _checked_json(resp)
    log.info("stopped: %s", stopped)
    return list(stopped)


def is_alive(address: str, port: int) -> None:
    """Raise ``ClientError`` unless the server answers its liveness check."""
    with requests.get(_url(address, port, "/live")) as resp:
        if resp.status_code != requests.codes.ok:
            raise ClientError(f"unexpected status {resp.status_code} {resp.reason}")


def get_host_name(address: str, port: int) -> str:
    with requests.get(_url(address, port, "/hostname")) as resp:
        if resp.status_code != requests.codes.ok:
            raise ClientError(f"unexpected status {resp.status_code} {resp.reason}")
        body = _decode(resp)
    return str(body.get(NAME_KEY, "")) if isinstance(body, dict) else ""


class PcClient:
    """A project that lives on a remote server."""

    def __init__(self, address: str, port: int, log_length: int) -> None:
        self.address = address
        self.port = port
        self.log_length = log_length
        self.logger = LogClient()
        self._err_lock = threading.Lock()
        self._first_error: Optional[float] = None

    def shut_down_project(self) -> None:
        log.info("client detached")

    def is_remote(self) -> bool:
        return True

    def get_host_name(self) -> str:
        return get_host_name(self.address, self.port)

    def get_log_length(self) -> int:
        return self.log_length

    def get_logs_and_subscribe(self, name: str, observer: LogObserver) -> None:
        self.logger.read_process_logs(
            self.address, self.port, name, self.log_length, True, observer
        )

    def unsubscribe_logger(self, name: str, observer: LogObserver) -> None:
        self.logger.close_channel()

    def get_process_log(self, name: str, offset_from_end: int, limit: int) -> list[str]:
        return get_process_log(self.address, self.port, name, offset_from_end, limit)

    def get_lexicographic_process_names(self) -> list[str]:
        return get_processes_name(self.address, self.port)

    def get_process_info(self, name: str) -> dict[str, Any]:
        return get_process_info(self.address, self.port, name)

    def get_process_ports(self, name: str) -> dict[str, Any]:
        return get_process_ports(self.address, self.port, name)

    def get_process_state(self, name: str) -> dict[str, Any]:
        return get_process_state(self.address, self.port, name)

    def get_processes_state(self) -> dict[str, Any]:
        return get_processes_state(self.address, self.port)

    def stop_process(self, name: str) -> None:
        stop_process(self.address, self.port, name)

    def stop_processes(self, names: list[str]) -> list[str]:
        return stop_processes(self.address, self.port, names)

    def start_process(self, name: str) -> None:
        start_process(self.address, self.port, name)

    def restart_process(self, name: str) -> None:
        restart_process(self.address, self.port, name)

    def scale_process(self, name: str, scale: int) -> None:
        scale_process(self.address, self.port, name, scale)

    def is_alive(self) -> None:
        """Check the server; remember when it first stopped answering."""
        try:
            is_alive(self.address, self.port)
        except (ClientError, requests.RequestException):
            with self._err_lock:
                if self._first_error is None:
                    self._first_error = time.monotonic()
            raise
        with self._err_lock:
            self._first_error = None

    def error_for_secs(self) -> int:
        """Seconds since the server stopped answering, 0 while it answers."""
        with self._err_lock:
            if self._first_error is None:
                return 0
            return int(time.monotonic() - self._first_error)