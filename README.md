# pcompose

Building blocks for a process orchestrator: running shell commands, an
HTTP/WebSocket API that exposes a project's processes, a Python client for
that API, and the `pcompose` command that controls a running server from
another terminal.

## Installation

```
pip install .
```

## The `pcompose` command

Client commands live under `pcompose process`. They connect to `localhost`
on port 8080 by default. Use `-a`/`--address` for another address and
`-p`/`--port` for another port; the default port can also be set with
`PC_PORT_NUM`.

```
pcompose process list          # also: pcompose process ls
pcompose process start web
pcompose process stop web worker
pcompose process restart web
pcompose process scale worker 3
pcompose process ports web
pcompose process logs web -f -n 100
```

- `list` prints the process names, sorted.
- `start`, `restart` and `stop` print a confirmation such as
  `Process web started` or `Processes [web worker] stopped`.
- `scale` changes the replica count; the result is written to the log file only.
- `ports` prints the TCP ports a process listens on.
- `logs` streams a process's output over a WebSocket. `-f` keeps receiving
  new lines; `-n` limits the initial output to the last N lines. The command
  runs until interrupted with Ctrl-C.

If the server rejects a request or cannot be reached, the command prints the
error and exits with status 1.

Other commands:

```
pcompose info
pcompose version
```

`info` prints the log file location and, if one exists, the shortcuts file
(`shortcuts.yaml` or `shortcuts.yml` in the configuration directory).
`version` prints version, commit, build date and licence fields.

Run without a command, `pcompose` prints its help.

### Logging

Every run writes its own log, truncated at start, to the path given by
`--logFile`, `PC_LOG_FILE`, or by default
`<tempdir>/process-compose-<user>.log` (`-client.log` for `process`
commands).

## Library

- `pcompose.command` – `ShellConfig`, `default_shell_config()`,
  `validate_shell_config()`, and `CmdWrapper` built by
  `build_command_shell_arg()`, `build_command_context()` and
  `build_command_shell_arg_context()`; `CmdWrapper.stop()` signals the
  process or its process group (`TASKKILL` on Windows). `NoiseMaker`
  emits timestamped noise lines for testing output handling.
- `pcompose.project` – the `Project` and `LogObserver` protocols and the
  `LogMessage` record used on the log stream.
- `pcompose.api` – `PcApi` request handlers, `init_routes()` building an
  aiohttp application, and `start_http_server(use_logger, port, project)`
  which serves any `Project` in a background thread and returns a handle
  with `stop()`.
- `pcompose.client` – module-level functions for each endpoint, `PcClient`
  (a remote `Project`), and `ClientError` raised on rejected requests.
- `pcompose.log_client` – `LogClient`, which reads a process's log stream in
  the background.

## What this package does not do

It contains no project runner: it does not read project configuration
files, start or supervise processes, resolve dependencies, or scale
replicas by itself. The API server needs a `Project` implementation supplied
by the caller. There is no interactive terminal interface and no `up` or
`attach` command. The top-level `-t`/`--tui` and `-f`/`--config` options, and
the `PC_DISABLE_TUI` and `PC_CONFIG_FILES` variables that set their
defaults, are parsed but have no effect.

## Environment variables

| Variable           | Meaning                                              |
|--------------------|------------------------------------------------------|
| `PC_PORT_NUM`      | Default API port (8080 when unset)                   |
| `PC_LOG_FILE`      | Path of the log file                                 |
| `PROC_COMP_CONFIG` | Configuration directory (shortcuts file location)    |
| `COMPOSE_SHELL`    | Shell for `build_command_context` (default `bash`, `cmd` on Windows) |
| `PC_DEBUG_MODE`    | Runs the API server's event loop in debug mode       |

## Running the tests

```
pip install .[test]
pytest
```