import os
import signal
import subprocess
import sys
import threading

import pytest

from pcompose.command import (
    CmdWrapper,
    NoiseMaker,
    ShellConfig,
    build_command_context,
    build_command_shell_arg,
    build_command_shell_arg_context,
    default_shell_config,
    validate_shell_config,
)

PY = ShellConfig(sys.executable, "-c")


def test_build_command_shell_arg_args():
    cmd = build_command_shell_arg(ShellConfig("bash", "-c"), "echo hi")
    assert cmd.args == ["bash", "-c", "echo hi"]


def test_build_command_context_uses_default_shell(monkeypatch):
    monkeypatch.setenv("COMPOSE_SHELL", "myshell")
    cmd = build_command_context("echo hi", 5)
    assert cmd.args[0] == "myshell"
    assert cmd.args[2] == "echo hi"


def test_default_shell_config_from_env(monkeypatch):
    monkeypatch.setenv("COMPOSE_SHELL", "zsh")
    conf = default_shell_config()
    assert conf.shell_command == "zsh"
    assert conf.shell_argument == "-c"


def test_default_shell_config_without_env(monkeypatch):
    monkeypatch.delenv("COMPOSE_SHELL", raising=False)
    assert default_shell_config() == ShellConfig("bash", "-c")


def test_validate_shell_config_missing():
    with pytest.raises(FileNotFoundError):
        validate_shell_config(ShellConfig("no-such-shell-xyz-42", "-c"))


def test_exit_code_before_start():
    cmd = build_command_shell_arg(PY, "pass")
    assert cmd.exit_code == -1


def test_wait_returns_exit_code():
    cmd = build_command_shell_arg(PY, "import sys; sys.exit(3)")
    cmd.start()
    assert cmd.wait() == 3
    assert cmd.exit_code == 3


def test_run_raises_on_failure():
    cmd = build_command_shell_arg(PY, "import sys; sys.exit(3)")
    with pytest.raises(subprocess.CalledProcessError) as info:
        cmd.run()
    assert info.value.returncode == 3


def test_capture_output_and_env(tmp_path):
    cmd = CmdWrapper(
        [sys.executable, "-c", "import os; print(os.environ['PC_X']); print(os.getcwd())"],
        capture_output=True,
    )
    cmd.env = ["PC_X=first", "PC_X=value"]
    cmd.cwd = str(tmp_path)
    cmd.start()
    out = cmd.stdout.read()
    assert cmd.wait() == 0
    lines = out.splitlines()
    assert lines[0] == "value"
    assert os.path.realpath(lines[1]) == os.path.realpath(str(tmp_path))


def test_context_timeout_kills():
    cmd = build_command_shell_arg_context(PY, "import time; time.sleep(10)", 0.2)
    with pytest.raises(subprocess.TimeoutExpired):
        cmd.run()
    assert cmd.process.returncode is not None


def test_stop_process_group_with_out_of_range_signal():
    cmd = build_command_shell_arg(PY, "import time; time.sleep(10)")
    cmd.new_process_group = True
    cmd.start()
    cmd.stop(0, False)
    cmd.wait()
    assert cmd.process.returncode == -signal.SIGTERM
    assert cmd.exit_code == -1


def test_stop_parent_only():
    cmd = build_command_shell_arg(PY, "import time; time.sleep(10)")
    cmd.start()
    cmd.stop(int(signal.SIGKILL), True)
    cmd.wait()
    assert cmd.process.returncode == -signal.SIGKILL


def test_start_twice_raises():
    cmd = build_command_shell_arg(PY, "pass")
    cmd.start()
    with pytest.raises(RuntimeError):
        cmd.start()
    assert cmd.wait() == 0


def test_noise_maker_produces_lines():
    maker = NoiseMaker("noise", interval=0.01)
    stop = threading.Event()
    thread = threading.Thread(target=maker.run, args=(stop,))
    thread.start()
    try:
        chunk = maker.read()
    finally:
        stop.set()
        maker.close()
        thread.join(timeout=2)
    assert chunk.startswith(b"noise ")
    assert chunk.endswith(b"\n")
    assert not thread.is_alive()


def test_noise_maker_closed_reads_eof():
    maker = NoiseMaker("noise", interval=0.01)
    maker.close()
    assert maker.read() == b""
    assert list(maker) == []