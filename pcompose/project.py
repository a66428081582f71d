"""The project interface shared by the local runner and the remote client."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol, runtime_checkable


@dataclass
class LogMessage:
    """One log line of a process, as sent over the log stream."""

    message: str = ""
    process_name: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"message": self.message, "process_name": self.process_name}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LogMessage":
        return cls(
            message=str(data.get("message", "")),
            process_name=str(data.get("process_name", "")),
        )


@runtime_checkable
class LogObserver(Protocol):
    """Receives the existing log lines, then each new line as it arrives."""

    def add_lines(self, messages: list[str]) -> None: ...

    def write_string(self, message: str) -> int: ...


@runtime_checkable
class Project(Protocol):
    """Operations on a running project, local or remote."""

    def shut_down_project(self) -> None: ...

    def is_remote(self) -> bool: ...

    def error_for_secs(self) -> int: ...

    def get_host_name(self) -> str: ...

    def get_log_length(self) -> int: ...

    def get_logs_and_subscribe(self, name: str, observer: LogObserver) -> None: ...

    def unsubscribe_logger(self, name: str, observer: LogObserver) -> None: ...

    def get_process_log(
        self, name: str, offset_from_end: int, limit: int
    ) -> list[str]: ...

    def get_lexicographic_process_names(self) -> list[str]: ...

    def get_process_info(self, name: str) -> dict[str, Any]: ...

    def get_process_state(self, name: str) -> dict[str, Any]: ...

    def get_processes_state(self) -> dict[str, Any]: ...

    def stop_process(self, name: str) -> None: ...

    def stop_processes(self, names: list[str]) -> list[str]: ...

    def start_process(self, name: str) -> None: ...

    def restart_process(self, name: str) -> None: ...

    def scale_process(self, name: str, scale: int) -> None: ...

    def get_process_ports(self, name: str) -> dict[str, Any]: ...