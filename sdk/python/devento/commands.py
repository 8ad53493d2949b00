"""Command execution: polling and streaming modes"""

import logging
import socket
import threading
import time
from typing import TYPE_CHECKING, Callable, List, Optional

import requests

from .exceptions import APIError, CancelledError, CommandTimeoutError, DeventoError
from .models import Command, CommandOptions, CommandResult, CommandStatus
from .polling import CancellationToken
from .sse import SSEEvent, parse_sse

if TYPE_CHECKING:
    from .client import DeventoClient

logger = logging.getLogger(__name__)


class LineTracker:
    """Turns successive full-output snapshots into whole lines.

    Each ``feed`` receives the complete output so far. Only the bytes past
    the previous snapshot are considered, and a trailing partial line is held
    back until it is completed or ``flush`` is called.
    """

    def __init__(self, callback: Optional[Callable[[str], None]]):
        self.callback = callback
        self.seen = 0
        self.pending = ""

    def feed(self, output: str) -> None:
        if len(output) < self.seen:
            logger.warning("command output shrank from %d to %d chars", self.seen, len(output))
            return
        if self.callback is None or len(output) == self.seen:
            self.seen = len(output)
            return

        self.pending += output[self.seen:]
        self.seen = len(output)

        *lines, self.pending = self.pending.split("\n")
        for line in lines:
            self.callback(line)

    def flush(self) -> None:
        if self.callback is not None and self.pending:
            self.callback(self.pending)
        self.pending = ""


def _emit_fragment(fragment: str, callback: Optional[Callable[[str], None]]) -> None:
    # A fragment is self-contained text: every segment is a line except the
    # empty one left after a trailing newline.
    if callback is None:
        return
    lines = fragment.split("\n")
    for i, line in enumerate(lines):
        if i < len(lines) - 1 or line != "":
            callback(line)


def _stream_socket(response: requests.Response) -> Optional[socket.socket]:
    raw = getattr(response, "raw", None)
    connection = getattr(raw, "_connection", None)
    sock = getattr(connection, "sock", None)
    if sock is None:
        # Connection already detached from the urllib3 response
        fp = getattr(getattr(raw, "_fp", None), "fp", None)
        sock = getattr(getattr(fp, "raw", None), "_sock", None)
    return sock


def _abort_stream(response: requests.Response) -> None:
    """Wake a reader blocked on ``response`` from another thread.

    ``Response.close()`` alone does not interrupt a pending ``recv``; shutting
    the socket down makes it return at once.
    """
    sock = _stream_socket(response)
    if sock is None:
        response.close()
        return
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError as e:
        logger.debug("stream socket already closed: %s", e)


class CommandExecutor:
    """Runs one command on a box to completion.

    Delta-tracking state lives in each ``run`` call, so one executor can be
    shared between threads.
    """

    def __init__(self, client: "DeventoClient", box_id: str):
        self.client = client
        self.box_id = box_id

    def run(
        self,
        command: str,
        options: Optional[CommandOptions] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> CommandResult:
        """
        Execute a shell command and wait for it to finish.

        Args:
            command: Shell command text
            options: Timeout, poll cadence and output callbacks
            cancel: Token that aborts the wait when cancelled

        Returns:
            CommandResult with status, stdout, stderr and exit_code

        Raises:
            CommandTimeoutError: The command did not finish before the deadline
            CancelledError: ``cancel`` fired while waiting
        """
        options = options or CommandOptions()
        cancel = cancel or CancellationToken()
        cancel.check()

        if options.use_streaming:
            return self._run_streaming(command, options, cancel)
        return self._run_polling(command, options, cancel)

    def _run_polling(
        self, command: str, options: CommandOptions, cancel: CancellationToken
    ) -> CommandResult:
        response = self.client._request(
            "POST",
            f"/boxes/{self.box_id}",
            data={"command": command, "timeout_ms": options.timeout_ms},
        )
        command_id = response.get("id", "")
        logger.debug("queued command %s: %s", command_id, command)

        deadline = time.monotonic() + options.timeout
        stdout = LineTracker(options.on_stdout)
        stderr = LineTracker(options.on_stderr)

        while True:
            cmd = Command.from_dict(
                self.client._request("GET", f"/boxes/{self.box_id}/commands/{command_id}")
            )
            stdout.feed(cmd.stdout)
            stderr.feed(cmd.stderr)

            if cmd.is_terminal:
                stdout.flush()
                stderr.flush()
                return CommandResult.from_command(cmd)

            if time.monotonic() > deadline:
                raise CommandTimeoutError(cmd.id or command_id, options.timeout_ms)

            cancel.sleep(options.poll_interval)

    def _run_streaming(
        self, command: str, options: CommandOptions, cancel: CancellationToken
    ) -> CommandResult:
        response = self.client._stream(
            "POST",
            f"/boxes/{self.box_id}",
            data={"command": command, "stream": True, "timeout_ms": options.timeout_ms},
            read_timeout=options.timeout,
        )
        deadline = time.monotonic() + options.timeout
        timed_out = threading.Event()

        def on_deadline() -> None:
            timed_out.set()
            _abort_stream(response)

        # A blocked read only returns once the socket is shut down, so the
        # deadline needs its own timer rather than a check between events.
        watchdog = threading.Timer(options.timeout, on_deadline)
        watchdog.daemon = True
        watchdog.start()
        remove_callback = cancel.add_callback(lambda: _abort_stream(response))

        state = _StreamState(command)
        try:
            for event in parse_sse(response.iter_lines()):
                if time.monotonic() > deadline:
                    raise CommandTimeoutError(state.command_id, options.timeout_ms)
                result = self._handle_event(event, state, options)
                if result is not None:
                    return result
        except DeventoError:
            raise
        except Exception as e:
            # An aborted read surfaces as whatever the transport raised
            # mid-read, not only RequestException.
            if cancel.cancelled:
                raise CancelledError() from e
            if timed_out.is_set() or time.monotonic() > deadline:
                raise CommandTimeoutError(state.command_id, options.timeout_ms) from e
            raise
        finally:
            watchdog.cancel()
            remove_callback()
            response.close()

        if cancel.cancelled:
            raise CancelledError()
        if timed_out.is_set() or time.monotonic() > deadline:
            raise CommandTimeoutError(state.command_id, options.timeout_ms)

        # The server may close the connection after finishing without sending
        # "end"; hand back what arrived instead of failing.
        logger.warning(
            "event stream for command %s closed without a terminal event", state.command_id
        )
        return state.result(self.box_id, complete=False)

    def _handle_event(
        self, event: SSEEvent, state: "_StreamState", options: CommandOptions
    ) -> Optional[CommandResult]:
        try:
            data = event.json()
        except ValueError:
            logger.debug("ignoring undecodable %s event: %r", event.event, event.data)
            data = None

        if event.event == "start":
            if data:
                state.command_id = data.get("command_id", state.command_id)
            logger.debug("streaming command %s", state.command_id)

        elif event.event == "output":
            if data:
                out = data.get("stdout")
                if isinstance(out, str) and out:
                    state.stdout.append(out)
                    _emit_fragment(out, options.on_stdout)
                err = data.get("stderr")
                if isinstance(err, str) and err:
                    state.stderr.append(err)
                    _emit_fragment(err, options.on_stderr)

        elif event.event == "status":
            if data:
                if isinstance(data.get("status"), str):
                    state.set_status(data["status"])
                if isinstance(data.get("exit_code"), (int, float)):
                    state.exit_code = int(data["exit_code"])

        elif event.event == "end":
            status = data.get("status") if data else None
            if status == "timeout":
                raise CommandTimeoutError(state.command_id, options.timeout_ms)
            if isinstance(status, str) and status:
                state.set_status(status)
            if data and isinstance(data.get("exit_code"), (int, float)):
                state.exit_code = int(data["exit_code"])
            return state.result(self.box_id)

        elif event.event == "error":
            message = data.get("error") if data else None
            raise APIError(
                500,
                f"Command error: {message}" if message else "Command error",
                code="command_error",
                response=data,
            )

        elif event.event == "timeout":
            raise CommandTimeoutError(state.command_id, options.timeout_ms)

        return None


class _StreamState:
    """Output and status accumulated from one event stream"""

    def __init__(self, command: str):
        self.command = command
        self.command_id = ""
        self.status = CommandStatus.QUEUED
        self.exit_code: Optional[int] = None
        self.stdout: List[str] = []
        self.stderr: List[str] = []

    def set_status(self, value: str) -> None:
        try:
            self.status = CommandStatus(value)
        except ValueError:
            self.status = value

    def result(self, box_id: str, complete: bool = True) -> CommandResult:
        return CommandResult(
            id=self.command_id,
            box_id=box_id,
            cmd=self.command,
            status=self.status,
            stdout="".join(self.stdout),
            stderr="".join(self.stderr),
            exit_code=self.exit_code,
            complete=complete,
        )
