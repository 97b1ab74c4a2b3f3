"""
Unit tests for Channel with an in-memory adapter
"""

import queue
import threading
import time

import pytest

from rrdpipe.api import create, update
from rrdpipe.errors import ChannelClosed, InvalidCommand, InvalidDatastoreName
from rrdpipe.protocol import CommandStatus, TimePair, parse_reply
from rrdpipe.runner.core import Channel


class ScriptedAdapter:
    """Adapter double: replies come from a responder function"""

    def __init__(self, responder=None, reply_delay=0.0):
        self.responder = responder or (lambda command: ["OK u:0.00 s:0.00 r:0.00"])
        self.reply_delay = reply_delay
        self.lines = queue.Queue()
        self.written = []
        self.alive = True
        self.started = False
        self.closed = False
        self.terminated = False
        self.awaiting_reply = False
        self.interleaved = False

    def start(self):
        self.started = True
        return 4242

    def write(self, data):
        if not self.alive:
            raise ChannelClosed("Tool stdin is closed")
        if self.awaiting_reply:
            self.interleaved = True
        self.awaiting_reply = True
        self.written.append(data)
        for line in self.responder(data):
            self.lines.put(line)

    def readline(self, timeout=None):
        try:
            line = self.lines.get(timeout=timeout)
        except queue.Empty:
            raise TimeoutError("no reply")
        if line is None:
            return None
        if parse_reply(line).is_terminal:
            time.sleep(self.reply_delay)
            self.awaiting_reply = False
        return line

    def pending_lines(self):
        lines = []
        while True:
            try:
                lines.append(self.lines.get_nowait())
            except queue.Empty:
                return lines

    def is_alive(self):
        return self.alive

    def terminate(self):
        self.terminated = True
        self.alive = False

    def close(self):
        self.closed = True
        self.alive = False
        self.lines.put(None)


def test_execute_ok():
    adapter = ScriptedAdapter()
    with Channel(adapter) as channel:
        result = channel.execute("update a.rrd N:1\n")
    assert result.ok
    assert result.status == CommandStatus.OK
    assert adapter.written == ["update a.rrd N:1\n"]
    assert adapter.closed


def test_execute_error_keeps_channel_usable():
    adapter = ScriptedAdapter(lambda command: ["ERROR: invalid rrd file"])
    with Channel(adapter) as channel:
        result = channel.execute("update a.rrd N:1\n")
        assert result.status == CommandStatus.ERROR
        assert result.message == " invalid rrd file"
        assert not channel.broken

        adapter.responder = lambda command: ["OK"]
        assert channel.execute("update a.rrd N:2\n").ok


def test_noise_is_skipped():
    adapter = ScriptedAdapter(lambda command: ["Usage: something", "OKAY then", "ERROR: real"])
    with Channel(adapter) as channel:
        result = channel.execute("bogus\n")
    assert result.status == CommandStatus.OK
    assert result.noise == ["Usage: something"]


def test_noise_before_terminal_error():
    adapter = ScriptedAdapter(lambda command: ["warning: x", "", "ERROR: bad"])
    with Channel(adapter) as channel:
        result = channel.execute("bogus\n")
    assert result.status == CommandStatus.ERROR
    assert result.message == " bad"
    assert result.noise == ["warning: x", ""]


def test_unsolicited_output_is_drained():
    adapter = ScriptedAdapter()
    adapter.lines.put("banner line")
    with Channel(adapter) as channel:
        result = channel.execute("update a.rrd N:1\n")
    assert result.ok
    assert result.noise == ["banner line"]


def test_newline_is_appended():
    adapter = ScriptedAdapter()
    with Channel(adapter) as channel:
        channel.execute("update a.rrd N:1")
    assert adapter.written == ["update a.rrd N:1\n"]


def test_multiline_command_rejected():
    adapter = ScriptedAdapter()
    with Channel(adapter) as channel:
        with pytest.raises(InvalidCommand):
            channel.execute("update a.rrd N:1\nupdate b.rrd N:1\n")
    assert adapter.written == []


def test_not_started_channel_reports_closed():
    channel = Channel(ScriptedAdapter())
    result = channel.execute("update a.rrd N:1\n")
    assert result.status == CommandStatus.CLOSED


def test_dead_tool_reports_closed():
    adapter = ScriptedAdapter()
    with Channel(adapter) as channel:
        adapter.alive = False
        result = channel.execute("update a.rrd N:1\n")
        assert result.status == CommandStatus.CLOSED
        assert channel.broken
        with pytest.raises(ChannelClosed):
            result.raise_for_status()
    assert adapter.written == []


def test_output_eof_breaks_channel():
    adapter = ScriptedAdapter(lambda command: ["noise", None])
    with Channel(adapter) as channel:
        result = channel.execute("update a.rrd N:1\n")
        assert result.status == CommandStatus.CLOSED
        assert channel.broken

        adapter.responder = lambda command: ["OK"]
        assert channel.execute("update a.rrd N:2\n").status == CommandStatus.CLOSED
    assert len(adapter.written) == 1


def test_timeout_breaks_channel():
    adapter = ScriptedAdapter(lambda command: [])
    with Channel(adapter, timeout_s=0.05) as channel:
        result = channel.execute("update a.rrd N:1\n")
        assert result.status == CommandStatus.TIMEOUT
        assert channel.broken
        assert adapter.terminated
        assert channel.execute("update a.rrd N:2\n").status == CommandStatus.CLOSED


class ChattyAdapter(ScriptedAdapter):
    """Keeps producing progress lines and never a terminal reply"""

    def readline(self, timeout=None):
        time.sleep(0.02)
        return "still working"


def test_timeout_covers_whole_round_trip():
    """A steady stream of noise lines does not extend the reply timeout"""
    adapter = ChattyAdapter()
    with Channel(adapter, timeout_s=0.2) as channel:
        started = time.monotonic()
        result = channel.execute("update a.rrd N:1\n")
        elapsed = time.monotonic() - started
    assert result.status == CommandStatus.TIMEOUT
    assert elapsed < 2.0
    assert result.noise
    assert adapter.terminated


def test_close_does_not_wait_for_hung_command():
    """close() from another thread ends an in-flight command that never gets a reply"""
    adapter = ScriptedAdapter(lambda command: [])
    channel = Channel(adapter).start()
    results = []

    worker = threading.Thread(target=lambda: results.append(channel.execute("update a.rrd N:1\n")))
    worker.start()
    while not adapter.written:
        time.sleep(0.01)

    closer = threading.Thread(target=channel.close)
    closer.start()
    closer.join(timeout=2.0)
    worker.join(timeout=2.0)

    assert not closer.is_alive()
    assert not worker.is_alive()
    assert adapter.closed
    assert results[0].status == CommandStatus.CLOSED
    assert channel.execute("update a.rrd N:2\n").status == CommandStatus.CLOSED



def test_closed_channel_reports_closed():
    adapter = ScriptedAdapter()
    channel = Channel(adapter).start()
    channel.close()
    channel.close()
    assert channel.closed
    assert channel.execute("update a.rrd N:1\n").status == CommandStatus.CLOSED
    with pytest.raises(ChannelClosed):
        channel.start()


def test_concurrent_commands_do_not_interleave():
    adapter = ScriptedAdapter(reply_delay=0.02)
    results = []
    with Channel(adapter) as channel:
        def worker(i):
            results.append(channel.execute(f"update a.rrd N:{i}\n"))

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

    assert not adapter.interleaved
    assert len(adapter.written) == 8
    assert all(r.ok for r in results)


def test_create_and_update_through_channel():
    adapter = ScriptedAdapter()
    with Channel(adapter) as channel:
        assert create(channel, "t.rrd", [("temp", "GAUGE", (600, None, None))], [("LAST", 0.5, 1, 10)]).ok
        assert update(channel, "t.rrd", [("temp", 21.5)], TimePair(1234, 567890)).ok
    assert adapter.written == [
        "create t.rrd DS:temp:GAUGE:600:U:U RRA:LAST:0.50:1:10\n",
        "update t.rrd -t temp 1234567890:21.5\n",
    ]


def test_validation_happens_before_io():
    adapter = ScriptedAdapter()
    with Channel(adapter) as channel:
        with pytest.raises(InvalidDatastoreName):
            update(channel, "t.rrd", [("bad name", 1)])
    assert adapter.written == []


def test_unrecognized_request():
    adapter = ScriptedAdapter()
    with Channel(adapter) as channel:
        result = channel.submit({"kind": "graph"})
    assert result.status == CommandStatus.UNRECOGNIZED
    assert "unrecognized request" in result.message
    assert adapter.written == []
