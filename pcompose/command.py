"""Shell command construction, execution and termination."""

from __future__ import annotations

import collections
import datetime
import logging
import os
import shutil
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import IO, Iterator, Mapping, Sequence, Union

log = logging.getLogger(__name__)

MIN_SIGNAL = 1
MAX_SIGNAL = 31
COMPOSE_SHELL_ENV = "COMPOSE_SHELL"

EnvSpec = Union[Mapping[str, str], Sequence[str]]


@dataclass
class ShellConfig:
    """The shell and its argument used to run command strings."""

    shell_command: str
    shell_argument: str


def _is_windows() -> bool:
    return os.name == "nt"


def _runner_shell() -> str:
    shell = os.environ.get(COMPOSE_SHELL_ENV)
    if shell is None:
        shell = "cmd" if _is_windows() else "bash"
    return shell


def _runner_arg() -> str:
    return "/C" if _is_windows() else "-c"


def _env_to_dict(env: EnvSpec) -> dict[str, str]:
    """Accept either a mapping or ``KEY=VALUE`` strings; later entries win."""
    if isinstance(env, Mapping):
        return dict(env)
    result: dict[str, str] = {}
    for entry in env:
        key, sep, value = entry.partition("=")
        if sep:
            result[key] = value
    return result


class CmdWrapper:
    """A single external command with optional deadline and output capture."""

    def __init__(
        self,
        args: Sequence[str],
        *,
        timeout: float | None = None,
        capture_output: bool = False,
    ) -> None:
        self.args = list(args)
        self.env: EnvSpec | None = None
        self.cwd: str | None = None
        self.new_process_group = False
        self.capture_output = capture_output
        self.process: subprocess.Popen | None = None
        self._deadline = None if timeout is None else time.monotonic() + timeout

    @property
    def pid(self) -> int:
        if self.process is None:
            raise RuntimeError("command not started")
        return self.process.pid

    @property
    def exit_code(self) -> int:
        """Exit status, or -1 if not exited or terminated by a signal."""
        if self.process is None or self.process.returncode is None:
            return -1
        code = self.process.returncode
        return code if code >= 0 else -1

    @property
    def stdout(self) -> IO[str] | None:
        return self.process.stdout if self.process is not None else None

    @property
    def stderr(self) -> IO[str] | None:
        return self.process.stderr if self.process is not None else None

    def _remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def start(self) -> None:
        """Launch the command without waiting for it."""
        if self.process is not None:
            raise RuntimeError("command already started")
        kwargs: dict = {}
        if self.capture_output:
            kwargs.update(stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
        if self.new_process_group and not _is_windows():
            kwargs["start_new_session"] = True
        env = _env_to_dict(self.env) if self.env is not None else None
        self.process = subprocess.Popen(
            self.args, env=env, cwd=self.cwd or None, **kwargs
        )

    def wait(self) -> int:
        """Wait for the command to finish and return its exit code.

        If the command has a deadline and it passes, the command is killed and
        ``subprocess.TimeoutExpired`` is raised.
        """
        if self.process is None:
            raise RuntimeError("command not started")
        try:
            self.process.wait(timeout=self._remaining())
        except subprocess.TimeoutExpired:
            self.process.kill()
            self.process.wait()
            raise
        return self.exit_code

    def run(self) -> None:
        """Start the command and wait; raise if it fails or times out."""
        self.start()
        self.wait()
        assert self.process is not None
        if self.process.returncode != 0:
            raise subprocess.CalledProcessError(self.process.returncode, self.args)

    def stop(self, sig: int, parent_only: bool = False) -> None:
        """Send ``sig`` to the command, or to its whole process group."""
        if self.process is None:
            return
        if _is_windows():
            subprocess.run(
                ["TASKKILL", "/T", "/F", "/PID", str(self.pid)], check=True
            )
            return
        if not MIN_SIGNAL <= sig <= MAX_SIGNAL:
            sig = int(signal.SIGTERM)
        log.debug(
            "Stop Unix process. pid=%d signal=%d parentOnly=%s",
            self.pid,
            sig,
            parent_only,
        )
        if parent_only:
            os.kill(self.pid, sig)
            return
        os.killpg(os.getpgid(self.pid), sig)


def build_command_shell_arg(shell: ShellConfig, cmd: str) -> CmdWrapper:
    """Build a command that runs ``cmd`` through the given shell."""
    return CmdWrapper([shell.shell_command, shell.shell_argument, cmd])


def build_command_context(shell_cmd: str, timeout: float | None) -> CmdWrapper:
    """Build a command run through the default shell, killed after ``timeout``."""
    return CmdWrapper([_runner_shell(), _runner_arg(), shell_cmd], timeout=timeout)


def build_command_shell_arg_context(
    shell: ShellConfig, cmd: str, timeout: float | None
) -> CmdWrapper:
    """Build a command through the given shell, killed after ``timeout``."""
    return CmdWrapper(
        [shell.shell_command, shell.shell_argument, cmd], timeout=timeout
    )


def default_shell_config() -> ShellConfig:
    """The shell from ``COMPOSE_SHELL`` or the platform default."""
    return ShellConfig(shell_command=_runner_shell(), shell_argument=_runner_arg())


def validate_shell_config(shell: ShellConfig) -> None:
    """Raise ``FileNotFoundError`` if the shell executable cannot be found."""
    if shutil.which(shell.shell_command) is None:
        raise FileNotFoundError(f"Couldn't find {shell.shell_command}")


class NoiseMaker:
    """Produces a line of noise data on every tick until stopped or closed."""

    MAX_PENDING = 10

    def __init__(self, noise_data: str, interval: float = 1.0) -> None:
        self.noise_data = noise_data.encode()
        self.interval = interval
        self._buffer: collections.deque[bytes] = collections.deque()
        self._cond = threading.Condition()
        self._closed = False

    def run(self, stop_event: threading.Event) -> None:
        """Emit noise every interval until ``stop_event`` is set or closed."""
        while not stop_event.wait(self.interval):
            stamp = str(datetime.datetime.now().astimezone())
            data = self.noise_data + f" {stamp}\n".encode()
            with self._cond:
                while (
                    len(self._buffer) >= self.MAX_PENDING
                    and not self._closed
                    and not stop_event.is_set()
                ):
                    self._cond.wait(self.interval)
                if self._closed:
                    return
                if stop_event.is_set():
                    break
                self._buffer.append(data)
                self._cond.notify_all()

    def read(self) -> bytes:
        """Return the next chunk of noise, or ``b""`` once closed and drained."""
        with self._cond:
            while not self._buffer and not self._closed:
                self._cond.wait()
            if self._buffer:
                data = self._buffer.popleft()
                self._cond.notify_all()
                return data
            return b""

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def __iter__(self) -> Iterator[bytes]:
        while chunk := self.read():
            yield chunk