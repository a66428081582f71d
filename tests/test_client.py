import json
from unittest.mock import patch

import pytest
import responses

from pcompose import client
from pcompose.client import ClientError, PcClient

ADDR = "localhost"
PORT = 8080
BASE = f"http://{ADDR}:{PORT}"


@pytest.fixture
def rsps():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as mock:
        yield mock


def test_get_processes_name_is_sorted(rsps):
    rsps.get(
        f"{BASE}/processes",
        json={"data": [{"name": "web"}, {"name": "db"}, {"name": "cache"}]},
    )
    assert client.get_processes_name(ADDR, PORT) == ["cache", "db", "web"]


def test_get_process_state_returns_body(rsps):
    body = {"name": "web", "status": "Running"}
    rsps.get(f"{BASE}/process/web", json=body)
    assert client.get_process_state(ADDR, PORT, "web") == body


def test_get_process_state_error_raises(rsps):
    rsps.get(
        f"{BASE}/process/nope",
        json={"error": "can't get state of process nope: no such process"},
        status=400,
    )
    with pytest.raises(ClientError, match="no such process"):
        client.get_process_state(ADDR, PORT, "nope")


def test_get_process_info_and_ports(rsps):
    info = {"name": "web", "command": "sleep 1"}
    ports = {"name": "web", "tcp_ports": [80]}
    rsps.get(f"{BASE}/process/info/web", json=info)
    rsps.get(f"{BASE}/process/ports/web", json=ports)
    assert client.get_process_info(ADDR, PORT, "web") == info
    assert client.get_process_ports(ADDR, PORT, "web") == ports


@pytest.mark.parametrize(
    "func,path",
    [
        (client.start_process, "/process/start/web"),
        (client.restart_process, "/process/restart/web"),
    ],
)
def test_post_actions(rsps, func, path):
    rsps.post(f"{BASE}{path}", json={"name": "web"})
    result = func(ADDR, PORT, "web")
    assert result is None
    assert [call.request.method for call in rsps.calls] == ["POST"]
    assert rsps.calls[0].request.url == f"{BASE}{path}"


@pytest.mark.parametrize(
    "func,path",
    [
        (client.start_process, "/process/start/web"),
        (client.restart_process, "/process/restart/web"),
    ],
)
def test_post_actions_raise_server_error(rsps, func, path):
    rsps.post(f"{BASE}{path}", json={"error": "no such process: web"}, status=400)
    with pytest.raises(ClientError, match="no such process: web"):
        func(ADDR, PORT, "web")


def test_stop_process_error(rsps):
    rsps.add(
        responses.PATCH,
        f"{BASE}/process/stop/web",
        json={"error": "process web is not running"},
        status=400,
    )
    with pytest.raises(ClientError, match="process web is not running"):
        client.stop_process(ADDR, PORT, "web")


def test_scale_process_uses_patch_with_count(rsps):
    rsps.add(responses.PATCH, f"{BASE}/process/scale/web/3", json={"name": "web"})
    result = client.scale_process(ADDR, PORT, "web", 3)
    assert result is None
    assert len(rsps.calls) == 1
    assert rsps.calls[0].request.method == "PATCH"
    assert rsps.calls[0].request.url == f"{BASE}/process/scale/web/3"


def test_stop_processes_sends_names(rsps):
    rsps.add(responses.PATCH, f"{BASE}/processes/stop", json=["web", "db"])
    stopped = client.stop_processes(ADDR, PORT, ["web", "db"])
    assert stopped == ["web", "db"]
    assert json.loads(rsps.calls[0].request.body) == ["web", "db"]


def test_stop_processes_error(rsps):
    rsps.add(
        responses.PATCH,
        f"{BASE}/processes/stop",
        json={"error": "process db is not running"},
        status=400,
    )
    with pytest.raises(ClientError, match="process db is not running"):
        client.stop_processes(ADDR, PORT, ["db"])


def test_undecodable_response_raises(rsps):
    rsps.post(f"{BASE}/process/start/web", body="oops", status=500)
    with pytest.raises(ClientError):
        client.start_process(ADDR, PORT, "web")


def test_is_alive_unexpected_status(rsps):
    rsps.get(f"{BASE}/live", status=500)
    with pytest.raises(ClientError, match="unexpected status 500"):
        client.is_alive(ADDR, PORT)


def test_get_host_name(rsps):
    rsps.get(f"{BASE}/hostname", json={"name": "box"})
    assert client.get_host_name(ADDR, PORT) == "box"


def test_get_process_log(rsps):
    rsps.get(f"{BASE}/process/logs/web/0/2", json={"logs": ["a", "b"]})
    assert client.get_process_log(ADDR, PORT, "web", 0, 2) == ["a", "b"]


def test_pc_client_delegates(rsps):
    rsps.get(f"{BASE}/processes", json={"data": [{"name": "b"}, {"name": "a"}]})
    rsps.get(f"{BASE}/process/logs/a/1/0", json={"logs": ["x"]})
    pc = PcClient(ADDR, PORT, 1000)
    assert pc.is_remote() is True
    assert pc.get_log_length() == 1000
    assert pc.get_lexicographic_process_names() == ["a", "b"]
    assert pc.get_process_log("a", 1, 0) == ["x"]


def test_pc_client_error_for_secs(rsps):
    pc = PcClient(ADDR, PORT, 10)
    assert pc.error_for_secs() == 0
    rsps.get(f"{BASE}/live", status=503)
    with patch("pcompose.client.time") as fake_time:
        fake_time.monotonic.side_effect = [100.0, 107.5]
        with pytest.raises(ClientError):
            pc.is_alive()
        assert pc.error_for_secs() == 7
    rsps.replace(responses.GET, f"{BASE}/live", json={"status": "alive"})
    pc.is_alive()
    assert pc.error_for_secs() == 0


def test_pc_client_unsubscribe_without_stream_raises():
    pc = PcClient(ADDR, PORT, 10)
    with pytest.raises(RuntimeError):
        pc.unsubscribe_logger("web", None)