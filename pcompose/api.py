"""HTTP and WebSocket API that exposes a project to remote clients."""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
import os
import re
import threading
import time
from typing import Any, Callable, Optional

from aiohttp import WSMsgType, web

from .project import LogMessage, Project

log = logging.getLogger(__name__)

ENV_DEBUG_MODE = "PC_DEBUG_MODE"
MAX_HEADER_BYTES = 1 << 20

_INT_RE = re.compile(r"[+-]?\d+")
_REMOTE_CLOSED = object()

LogSink = Callable[[Optional[LogMessage]], None]


def _atoi(text: str) -> int:
    """Parse a plain decimal integer, rejecting anything else."""
    if not _INT_RE.fullmatch(text):
        raise ValueError(f'invalid integer "{text}"')
    return int(text)


def _to_jsonable(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    return value


def _ok(value: Any) -> web.Response:
    return web.json_response(_to_jsonable(value))


def _bad_request(err: BaseException) -> web.Response:
    return web.json_response({"error": str(err)}, status=400)


class LogConnector:
    """Log observer that forwards lines of one process to a sink.

    The sink receives a ``LogMessage`` for every line and ``None`` once the
    initial lines have been delivered and the stream is not followed.
    """

    def __init__(
        self, sink: LogSink, process_name: str, follow: bool, offset: int
    ) -> None:
        self.process_name = process_name
        self.follow = follow
        self.offset = offset
        self._sink = sink
        self._ended = False
        self._lock = threading.Lock()

    def _emit(self, item: Optional[LogMessage]) -> None:
        with self._lock:
            if self._ended:
                return
            if item is None:
                self._ended = True
            self._sink(item)

    def add_lines(self, messages: list[str]) -> None:
        for message in messages:
            self._emit(LogMessage(message=message, process_name=self.process_name))
        if not self.follow:
            self._emit(None)

    def write_string(self, message: str) -> int:
        self._emit(LogMessage(message=message, process_name=self.process_name))
        return len(message)


class PcApi:
    """Request handlers backed by a project."""

    def __init__(self, project: Project) -> None:
        self.project = project

    async def get_process(self, request: web.Request) -> web.Response:
        name = request.match_info["name"]
        try:
            state = await asyncio.to_thread(self.project.get_process_state, name)
        except Exception as err:
            return _bad_request(err)
        return _ok(state)

    async def get_process_info(self, request: web.Request) -> web.Response:
        name = request.match_info["name"]
        try:
            info = await asyncio.to_thread(self.project.get_process_info, name)
        except Exception as err:
            return _bad_request(err)
        return _ok(info)

    async def get_processes(self, request: web.Request) -> web.Response:
        try:
            states = await asyncio.to_thread(self.project.get_processes_state)
        except Exception as err:
            return _bad_request(err)
        return _ok(states)

    async def get_process_logs(self, request: web.Request) -> web.Response:
        name = request.match_info["name"]
        try:
            end_offset = _atoi(request.match_info["endOffset"])
            limit = _atoi(request.match_info["limit"])
            logs = await asyncio.to_thread(
                self.project.get_process_log, name, end_offset, limit
            )
        except Exception as err:
            return _bad_request(err)
        return web.json_response({"logs": logs})

    async def stop_process(self, request: web.Request) -> web.Response:
        name = request.match_info["name"]
        try:
            await asyncio.to_thread(self.project.stop_process, name)
        except Exception as err:
            return _bad_request(err)
        return web.json_response({"name": name})

    async def stop_processes(self, request: web.Request) -> web.Response:
        try:
            names = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as err:
            return _bad_request(err)
        if not isinstance(names, list) or not all(isinstance(n, str) for n in names):
            return _bad_request(ValueError("expected a JSON array of process names"))
        try:
            stopped = await asyncio.to_thread(self.project.stop_processes, names)
        except Exception as err:
            return _bad_request(err)
        return web.json_response(stopped)

    async def start_process(self, request: web.Request) -> web.Response:
        name = request.match_info["name"]
        try:
            await asyncio.to_thread(self.project.start_process, name)
        except Exception as err:
            return _bad_request(err)
        return web.json_response({"name": name})

    async def restart_process(self, request: web.Request) -> web.Response:
        name = request.match_info["name"]
        try:
            await asyncio.to_thread(self.project.restart_process, name)
        except Exception as err:
            return _bad_request(err)
        return web.json_response({"name": name})

    async def scale_process(self, request: web.Request) -> web.Response:
        name = request.match_info["name"]
        try:
            scale = _atoi(request.match_info["scale"])
            await asyncio.to_thread(self.project.scale_process, name, scale)
        except Exception as err:
            return _bad_request(err)
        return web.json_response({"name": name})

    async def is_alive(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "alive"})

    async def get_host_name(self, request: web.Request) -> web.Response:
        try:
            name = await asyncio.to_thread(self.project.get_host_name)
        except Exception as err:
            return _bad_request(err)
        return web.json_response({"name": name})

    async def get_process_ports(self, request: web.Request) -> web.Response:
        name = request.match_info["name"]
        try:
            ports = await asyncio.to_thread(self.project.get_process_ports, name)
        except Exception as err:
            return _bad_request(err)
        return _ok(ports)

    async def handle_logs_stream(self, request: web.Request) -> web.StreamResponse:
        """Stream a process's log lines as JSON messages over a WebSocket."""
        proc_name = request.query.get("name", "")
        follow = request.query.get("follow") == "true"
        try:
            end_offset = _atoi(request.query.get("offset", ""))
        except ValueError as err:
            return _bad_request(err)

        ws = web.WebSocketResponse()
        await ws.prepare(request)

        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[Any] = asyncio.Queue()

        def sink(item: Optional[LogMessage]) -> None:
            loop.call_soon_threadsafe(queue.put_nowait, item)

        connector = LogConnector(sink, proc_name, follow, end_offset)

        reader: Optional[asyncio.Task] = None
        if follow:
            reader = asyncio.create_task(self._handle_incoming(ws, queue))

        try:
            try:
                await asyncio.to_thread(
                    self.project.get_logs_and_subscribe, proc_name, connector
                )
            except Exception as err:
                log.error("can't subscribe to process %s: %s", proc_name, err)
                return ws
            await self._handle_log(ws, queue)
        finally:
            if reader is not None:
                reader.cancel()
            try:
                await asyncio.to_thread(
                    self.project.unsubscribe_logger, proc_name, connector
                )
            except Exception as err:
                log.error("failed to unsubscribe from %s: %s", proc_name, err)
            await ws.close()
        return ws

    @staticmethod
    async def _handle_log(ws: web.WebSocketResponse, queue: asyncio.Queue) -> None:
        while True:
            item = await queue.get()
            if item is _REMOTE_CLOSED:
                log.warning("Socket closed remotely")
                return
            message = item if item is not None else LogMessage()
            try:
                await ws.send_json(message.to_dict())
            except (ConnectionError, RuntimeError) as err:
                log.error("Failed to write to socket: %s", err)
                return
            if item is None:
                return

    @staticmethod
    async def _handle_incoming(
        ws: web.WebSocketResponse, queue: asyncio.Queue
    ) -> None:
        try:
            async for msg in ws:
                if msg.type == WSMsgType.ERROR:
                    log.error("Failed to read from socket: %s", ws.exception())
                    break
        finally:
            queue.put_nowait(_REMOTE_CLOSED)


@web.middleware
async def _request_logger(request: web.Request, handler: Callable) -> Any:
    start = time.monotonic()
    response = await handler(request)
    elapsed_ms = (time.monotonic() - start) * 1000
    log.info(
        "%s %s %d %.3fms", request.method, request.path, response.status, elapsed_ms
    )
    return response


def init_routes(use_logger: bool, handler: PcApi) -> web.Application:
    """Build the application with every API route bound to ``handler``."""
    middlewares = [_request_logger] if use_logger else []
    app = web.Application(middlewares=middlewares)
    app.router.add_get("/live", handler.is_alive)
    app.router.add_get("/hostname", handler.get_host_name)
    app.router.add_get("/processes", handler.get_processes)
    app.router.add_get("/process/logs/ws", handler.handle_logs_stream)
    app.router.add_get("/process/info/{name}", handler.get_process_info)
    app.router.add_get("/process/ports/{name}", handler.get_process_ports)
    app.router.add_get(
        "/process/logs/{name}/{endOffset}/{limit}", handler.get_process_logs
    )
    app.router.add_get("/process/{name}", handler.get_process)
    app.router.add_patch("/process/stop/{name}", handler.stop_process)
    app.router.add_patch("/processes/stop", handler.stop_processes)
    app.router.add_post("/process/start/{name}", handler.start_process)
    app.router.add_post("/process/restart/{name}", handler.restart_process)
    app.router.add_patch("/process/scale/{name}/{scale}", handler.scale_process)
    return app


class _ServerHandle:
    """A running background server."""

    def __init__(
        self,
        thread: threading.Thread,
        loop: asyncio.AbstractEventLoop,
        runner: web.AppRunner,
        port: int,
    ) -> None:
        self.thread = thread
        self.port = port
        self._loop = loop
        self._runner = runner

    def stop(self) -> None:
        asyncio.run_coroutine_threadsafe(self._runner.cleanup(), self._loop).result()
        self._loop.call_soon_threadsafe(self._loop.stop)
        self.thread.join()


def start_http_server(use_logger: bool, port: int, project: Project) -> _ServerHandle:
    """Serve the API on ``port`` in a background thread.

    Returns once the server listens; raises ``OSError`` if it cannot bind.
    """
    app = init_routes(use_logger, PcApi(project))
    ready = threading.Event()
    state: dict[str, Any] = {}

    def serve() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        if os.environ.get(ENV_DEBUG_MODE):
            loop.set_debug(True)
        runner = web.AppRunner(app, access_log=None)
        try:
            loop.run_until_complete(runner.setup())
            site = web.TCPSite(runner, None, port)
            loop.run_until_complete(site.start())
        except BaseException as exc:
            state["error"] = exc
            ready.set()
            loop.run_until_complete(runner.cleanup())
            loop.close()
            return
        addresses = runner.addresses
        state["loop"] = loop
        state["runner"] = runner
        state["port"] = addresses[0][1] if addresses else port
        ready.set()
        loop.run_forever()
        loop.close()

    thread = threading.Thread(target=serve, name="pc-http-server", daemon=True)
    log.info("start http server listening :%d", port)
    thread.start()
    ready.wait()
    if "error" in state:
        log.critical("start http server on :%d failed: %s", port, state["error"])
        raise state["error"]
    return _ServerHandle(thread, state["loop"], state["runner"], state["port"])