"""WebSocket client that streams the log lines of a remote process."""

from __future__ import annotations

import json
import logging
import socket
import threading
from typing import Any, Optional
from urllib.parse import quote

import websocket

from .project import LogMessage

log = logging.getLogger(__name__)


def _write(out: Any, text: str) -> None:
    """Write to a log observer or to a plain text stream."""
    writer = getattr(out, "write_string", None)
    if writer is not None:
        writer(text)
    else:
        out.write(text)


class LogClient:
    """Reads the log of one process from a running server in the background."""

    def __init__(self, line_format: str = "%s") -> None:
        self.format = line_format
        self._ws: Optional[websocket.WebSocket] = None
        self._closed = threading.Event()
        self._done = threading.Event()
        self._done.set()
        self._reader: Optional[threading.Thread] = None

    def read_process_logs(
        self,
        address: str,
        port: int,
        name: str,
        offset: int,
        follow: bool,
        out: Any,
    ) -> None:
        """Connect and start forwarding log lines to ``out``.

        ``out`` is either an object with ``write_string`` or a text stream.
        Raises if the connection cannot be made.
        """
        url = (
            f"ws://{address}:{port}/process/logs/ws"
            f"?name={quote(name)}&offset={offset}&follow={str(follow).lower()}"
        )
        log.info("Connecting to %s", url)
        try:
            ws = websocket.create_connection(url)
        except (websocket.WebSocketException, OSError) as err:
            log.error("failed to dial to %s error: %s", url, err)
            raise
        self._ws = ws
        self._closed.clear()
        done = threading.Event()
        self._done = done
        self._reader = threading.Thread(
            target=self._read_logs,
            args=(ws, out, done),
            name=f"pc-logs-{name}",
            daemon=True,
        )
        self._reader.start()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Wait until the reader stops; return False on timeout."""
        return self._done.wait(timeout)

    def close_channel(self) -> None:
        """Send a normal close to the server and drop the connection."""
        ws = self._ws
        if ws is None:
            raise RuntimeError("log channel is not open")
        self._closed.set()
        try:
            ws.send_close(websocket.STATUS_NORMAL, b"")
        except (websocket.WebSocketException, OSError) as err:
            log.error("write close: %s", err)
            raise
        sock = ws.sock
        if sock is not None:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
        ws.shutdown()
        self._ws = None

    def _read_logs(self, ws: websocket.WebSocket, out: Any, done: threading.Event) -> None:
        try:
            while True:
                try:
                    raw = ws.recv()
                except websocket.WebSocketConnectionClosedException:
                    return
                except (websocket.WebSocketException, OSError) as err:
                    if not self._closed.is_set():
                        log.error("failed to read message: %s", err)
                    return
                if not raw:
                    return
                try:
                    data = json.loads(raw)
                except ValueError as err:
                    log.error("failed to read message: %s", err)
                    return
                if not isinstance(data, dict):
                    log.error("failed to read message: unexpected payload %r", data)
                    return
                message = LogMessage.from_dict(data)
                if message.process_name:
                    _write(out, self.format % message.message)
        finally:
            done.set()