import os
import tempfile

from pcompose import config


def test_is_client_detects_process_and_attach():
    assert config.is_client(["pc", "process", "list"]) is True
    assert config.is_client(["pc", "attach"]) is True
    assert config.is_client(["pc", "up"]) is False


def test_log_file_path_from_env(monkeypatch, tmp_path):
    target = str(tmp_path / "custom.log")
    monkeypatch.setenv(config.LOG_PATH_ENV_VAR_NAME, target)
    assert config.get_log_file_path(["pc"]) == target


def test_log_file_path_default_server(monkeypatch):
    monkeypatch.delenv(config.LOG_PATH_ENV_VAR_NAME, raising=False)
    path = config.get_log_file_path(["pc", "up"])
    assert os.path.dirname(path) == tempfile.gettempdir()
    name = os.path.basename(path)
    assert name.startswith("process-compose-")
    assert name.endswith(".log")
    assert not name.endswith("-client.log")


def test_log_file_path_default_client(monkeypatch):
    monkeypatch.delenv(config.LOG_PATH_ENV_VAR_NAME, raising=False)
    server = config.get_log_file_path(["pc"])
    client = config.get_log_file_path(["pc", "process", "list"])
    assert client == server[: -len(".log")] + "-client.log"


def test_proc_comp_home_env(monkeypatch, tmp_path):
    monkeypatch.setenv(config.PC_CONFIG_ENV, str(tmp_path))
    assert config.proc_comp_home() == str(tmp_path)


def test_proc_comp_home_default(monkeypatch, tmp_path):
    monkeypatch.delenv(config.PC_CONFIG_ENV, raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    home = config.proc_comp_home()
    assert os.path.basename(home) == "process-compose"
    assert os.path.isdir(os.path.dirname(home))


def test_shortcuts_path_missing(monkeypatch, tmp_path):
    monkeypatch.setenv(config.PC_CONFIG_ENV, str(tmp_path))
    assert config.get_shortcuts_path() == ""


def test_shortcuts_path_yml(monkeypatch, tmp_path):
    monkeypatch.setenv(config.PC_CONFIG_ENV, str(tmp_path))
    (tmp_path / "shortcuts.yml").write_text("x: 1")
    assert config.get_shortcuts_path() == str(tmp_path / "shortcuts.yml")


def test_shortcuts_path_prefers_yaml(monkeypatch, tmp_path):
    monkeypatch.setenv(config.PC_CONFIG_ENV, str(tmp_path))
    (tmp_path / "shortcuts.yml").write_text("x: 1")
    (tmp_path / "shortcuts.yaml").write_text("x: 2")
    assert config.get_shortcuts_path() == str(tmp_path / "shortcuts.yaml")