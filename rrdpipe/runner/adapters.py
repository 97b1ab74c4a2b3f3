"""
Tool adapters for the rrdpipe channel.

Adapters own the tool process and its pipes. The channel only sees
start/write/readline/close.
"""

import logging
import os
import queue
import subprocess
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from rrdpipe.errors import ChannelClosed, ToolStartError

logger = logging.getLogger(__name__)

DEFAULT_TOOL_PATH = "/usr/bin/rrdtool"
# Argument that puts rrdtool into remote-control mode
REMOTE_CONTROL_ARGS = ["-"]

# End-of-stream marker placed on the line queue by the reader thread
_EOF = None


@dataclass
class AdapterConfig:
    """Configuration for a tool adapter"""
    tool_name: str
    # Tool startup command (argv)
    command: List[str] = field(default_factory=list)
    # Working directory for the tool
    workdir: Optional[str] = None
    # Extra environment variables
    env: Dict[str, str] = field(default_factory=dict)
    # Seconds to wait for exit after closing stdin
    shutdown_timeout_s: float = 5.0


class ToolAdapter:
    """
    Line-oriented pipe connection to a tool process.

    A daemon reader thread moves stdout lines onto a queue so that
    readline() can honour a timeout.
    """

    def __init__(self, config: AdapterConfig):
        self.config = config
        self.process: Optional[subprocess.Popen] = None
        self.pid: Optional[int] = None
        self._lines: "queue.Queue[Optional[str]]" = queue.Queue()
        self._reader: Optional[threading.Thread] = None
        self._eof = False

    def start(self) -> int:
        """
        Start the tool process.

        Returns:
            PID of the tool process

        Raises:
            ToolStartError: If the binary cannot be launched
        """
        env = None
        if self.config.env:
            env = dict(os.environ)
            env.update(self.config.env)

        try:
            self.process = subprocess.Popen(
                self.config.command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                cwd=self.config.workdir,
                env=env,
                text=True,
                encoding="utf-8",
                bufsize=1,
                close_fds=True,
            )
        except OSError as e:
            raise ToolStartError(f"Failed to start {self.config.tool_name}: {e}") from e

        self.pid = self.process.pid
        self._reader = threading.Thread(
            target=self._read_loop,
            name=f"{self.config.tool_name}-reader",
            daemon=True,
        )
        self._reader.start()

        logger.info("%s started with PID %s", self.config.tool_name, self.pid)
        return self.pid

    def _read_loop(self) -> None:
        stdout = self.process.stdout
        try:
            for line in stdout:
                self._lines.put(line.rstrip("\r\n"))
        except (OSError, ValueError) as e:
            logger.debug("%s reader stopped: %s", self.config.tool_name, e)
        finally:
            self._lines.put(_EOF)

    def write(self, data: str) -> None:
        """
        Write data to the tool's stdin.

        Raises:
            ChannelClosed: If the process is gone or stdin is closed
        """
        if self.process is None or self.process.stdin is None:
            raise ChannelClosed("Tool not started")
        if self.process.stdin.closed:
            raise ChannelClosed("Tool stdin is closed")

        try:
            self.process.stdin.write(data)
            self.process.stdin.flush()
        except (BrokenPipeError, OSError, ValueError) as e:
            raise ChannelClosed(f"Write to {self.config.tool_name} failed: {e}") from e

    def readline(self, timeout: Optional[float] = None) -> Optional[str]:
        """
        Read one line of tool output without its line terminator.

        Args:
            timeout: Seconds to wait, None to wait forever

        Returns:
            The line, or None once the output stream has ended

        Raises:
            TimeoutError: If no line arrived in time
        """
        if self._eof:
            return None
        try:
            line = self._lines.get(timeout=timeout)
        except queue.Empty:
            raise TimeoutError(f"No output from {self.config.tool_name} within {timeout}s")
        if line is _EOF:
            self._eof = True
        return line

    def pending_lines(self) -> List[str]:
        """Return lines already read but not consumed, without blocking"""
        lines = []
        while not self._eof:
            try:
                line = self._lines.get_nowait()
            except queue.Empty:
                break
            if line is _EOF:
                self._eof = True
                break
            lines.append(line)
        return lines

    def is_alive(self) -> bool:
        """Check if the tool process is still running"""
        if self.process is None:
            return False
        return self.process.poll() is None and not self._eof

    def terminate(self) -> None:
        """Terminate the tool process gracefully"""
        if self.process is not None and self.process.poll() is None:
            self.process.terminate()
            try:
                self.process.wait(timeout=self.config.shutdown_timeout_s)
            except subprocess.TimeoutExpired:
                self.kill()

    def kill(self) -> None:
        """Force kill the tool process"""
        if self.process is not None and self.process.poll() is None:
            self.process.kill()
            try:
                self.process.wait(timeout=2)
            except subprocess.TimeoutExpired:
                logger.warning("%s (PID %s) did not exit after kill", self.config.tool_name, self.pid)

    def close(self) -> None:
        """
        End the session and release the process.

        Closing stdin is how rrdtool is told the session is over; terminate
        and kill are fallbacks for a tool that does not exit.
        """
        if self.process is None:
            return

        if self.process.stdin is not None and not self.process.stdin.closed:
            try:
                self.process.stdin.close()
            except OSError as e:
                logger.debug("Closing %s stdin failed: %s", self.config.tool_name, e)

        try:
            self.process.wait(timeout=self.config.shutdown_timeout_s)
        except subprocess.TimeoutExpired:
            logger.warning("%s did not exit after stdin closed, terminating", self.config.tool_name)
            self.terminate()

        if self._reader is not None:
            self._reader.join(timeout=1)
        if self.process.stdout is not None:
            self.process.stdout.close()

        logger.info("%s stopped with exit code %s", self.config.tool_name, self.process.returncode)


class RRDToolAdapter(ToolAdapter):
    """Adapter for rrdtool in remote-control mode (`rrdtool -`)"""

    @classmethod
    def create(
        cls,
        tool_path: Optional[str] = None,
        workdir: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        args: Optional[List[str]] = None,
        shutdown_timeout_s: float = 5.0,
    ) -> "RRDToolAdapter":
        """Create an rrdtool adapter, defaulting to DEFAULT_TOOL_PATH"""
        path = tool_path or DEFAULT_TOOL_PATH
        config = AdapterConfig(
            tool_name=os.path.basename(path),
            command=[path] + list(REMOTE_CONTROL_ARGS if args is None else args),
            workdir=workdir,
            env=dict(env or {}),
            shutdown_timeout_s=shutdown_timeout_s,
        )
        return cls(config)
