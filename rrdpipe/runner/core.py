"""
rrdpipe Channel - Core implementation

The Channel owns one rrdtool remote-control process and runs commands
through it strictly one at a time.
"""

import logging
import threading
import time
from typing import Any, List, Optional

from rrdpipe.errors import ChannelClosed, InvalidCommand
from rrdpipe.formatting import build_create_command, build_update_command
from rrdpipe.protocol import (
    CommandResult,
    CommandStatus,
    CreateRequest,
    ReplyKind,
    UpdateRequest,
    get_current_timestamp_iso,
    parse_reply,
)
from rrdpipe.runner.adapters import ToolAdapter

logger = logging.getLogger(__name__)


class Channel:
    """
    Serialized command channel to a single tool process.

    The Channel:
    1. Starts the tool through its adapter
    2. Writes one command line at a time under a lock
    3. Reads lines until OK or ERROR:, logging anything else as noise
    4. Marks itself broken when the tool dies, times out or closes its output
    5. Ends the session on close()
    """

    def __init__(self, adapter: ToolAdapter, timeout_s: Optional[float] = None):
        """
        Initialize Channel.

        Args:
            adapter: Tool adapter, started by start()
            timeout_s: Seconds to wait for a terminal reply, None for no limit
        """
        self.adapter = adapter
        self.timeout_s = timeout_s

        # Held for a whole round trip
        self._lock = threading.Lock()
        # Guards start/close bookkeeping only, never held during I/O waits
        self._state_lock = threading.Lock()
        self._started = False
        self._closed = False
        self._broken_reason: Optional[str] = None

    def start(self) -> "Channel":
        """Launch the tool process"""
        with self._state_lock:
            if self._closed:
                raise ChannelClosed("Channel is closed")
            if not self._started:
                self.adapter.start()
                self._started = True
        return self

    @property
    def broken(self) -> bool:
        return self._broken_reason is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def _mark_broken(self, reason: str) -> None:
        if self._broken_reason is None:
            logger.error("Channel broken: %s", reason)
            self._broken_reason = reason

    def _check_usable(self) -> None:
        if self._closed:
            raise ChannelClosed("Channel is closed")
        if not self._started:
            raise ChannelClosed("Channel not started")
        if self._broken_reason is not None:
            raise ChannelClosed(self._broken_reason)
        if not self.adapter.is_alive():
            self._mark_broken("tool process has exited")
            raise ChannelClosed(self._broken_reason)

    def drain_noise(self) -> List[str]:
        """Log and discard output the tool produced outside a round trip"""
        lines = self.adapter.pending_lines()
        for line in lines:
            logger.warning("Unsolicited tool output: %r", line)
        return lines

    def execute(self, command: str) -> CommandResult:
        """
        Send one command line and wait for its terminal reply.

        Args:
            command: Command text; a trailing newline is added if missing

        Returns:
            CommandResult with status ok, error, closed or timeout

        Raises:
            InvalidCommand: If the text spans more than one line
        """
        if not command.endswith("\n"):
            command += "\n"
        if "\n" in command[:-1] or "\r" in command:
            raise InvalidCommand(f"Command must be a single line: {command!r}", command)

        with self._lock:
            start_ts = get_current_timestamp_iso()
            try:
                self._check_usable()
            except ChannelClosed as e:
                return CommandResult(
                    status=CommandStatus.CLOSED,
                    command=command,
                    message=str(e),
                    start_ts=start_ts,
                    end_ts=get_current_timestamp_iso(),
                )

            noise = self.drain_noise()
            logger.info("Command: %r", command)
            status, message = self._round_trip(command, noise)

            return CommandResult(
                status=status,
                command=command,
                message=message,
                start_ts=start_ts,
                end_ts=get_current_timestamp_iso(),
                noise=noise,
            )

    def _round_trip(self, command: str, noise: List[str]):
        """Write command and read until a terminal line. Caller holds the lock."""
        try:
            self.adapter.write(command)
        except ChannelClosed as e:
            self._mark_broken(str(e))
            return CommandStatus.CLOSED, str(e)

        deadline = None if self.timeout_s is None else time.monotonic() + self.timeout_s
        while True:
            try:
                line = self.adapter.readline(timeout=self._remaining(deadline))
            except TimeoutError as e:
                # The reply stream is now out of step with our commands
                self._mark_broken(f"timed out waiting for reply: {e}")
                self.adapter.terminate()
                return CommandStatus.TIMEOUT, str(e)

            if line is None:
                self._mark_broken("tool closed its output")
                return CommandStatus.CLOSED, self._broken_reason

            reply = parse_reply(line)
            if reply.kind == ReplyKind.OK:
                return CommandStatus.OK, ""
            if reply.kind == ReplyKind.ERROR:
                logger.info("Tool error: %r", reply.message)
                return CommandStatus.ERROR, reply.message

            logger.warning("Ignoring tool output: %r", line)
            noise.append(line)

    def _remaining(self, deadline: Optional[float]) -> Optional[float]:
        """Time left for this round trip; the limit covers all lines, not each one"""
        if deadline is None:
            return None
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise TimeoutError(f"No terminal reply within {self.timeout_s}s")
        return remaining

    def submit(self, request: Any) -> CommandResult:
        """
        Render a request and execute it.

        Validation errors propagate before anything is written. Requests of
        unknown kind yield an unrecognized result.
        """
        if isinstance(request, CreateRequest):
            command = build_create_command(request.filename, request.datastores, request.archives)
        elif isinstance(request, UpdateRequest):
            command = build_update_command(request.filename, request.values, request.timestamp)
        else:
            logger.warning("Unrecognized request: %r", request)
            return CommandResult(
                status=CommandStatus.UNRECOGNIZED,
                message=f"unrecognized request: {request!r}",
            )
        return self.execute(command)

    def close(self) -> None:
        """
        End the tool session and release the process.

        Does not wait for an in-flight command to get its reply: ending the
        session makes its read see end of output, so it returns a closed
        result.
        """
        with self._state_lock:
            if self._closed:
                return
            self._closed = True
            started = self._started

        if self._broken_reason is None:
            self._broken_reason = "channel closed"
        if started:
            self.adapter.close()

        # Wait for any in-flight round trip to finish unwinding
        with self._lock:
            pass

    def __enter__(self) -> "Channel":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
