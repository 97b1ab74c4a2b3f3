"""
Core protocol types for the rrdtool remote-control session.

Requests are rendered into single text lines, replies are single lines that
start with OK or ERROR:. Everything else the tool prints is noise.
"""

import re
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Sequence, Union

from rrdpipe.errors import (
    ChannelClosed,
    CommandTimeout,
    ProtocolError,
    RRDPipeError,
)


# Datastore and value names accepted by rrdtool
NAME_PATTERN = re.compile(r"[A-Za-z0-9_]{1,19}")

# Reply prefixes
REPLY_OK = "OK"
REPLY_ERROR = "ERROR:"

# Token rrdtool reads as "now" and as "unknown"
NOW_TOKEN = "N"
UNKNOWN_TOKEN = "U"


class DatastoreType(str, Enum):
    """Data source types"""
    GAUGE = "GAUGE"
    COUNTER = "COUNTER"
    DERIVE = "DERIVE"
    ABSOLUTE = "ABSOLUTE"
    COMPUTE = "COMPUTE"


class ConsolidationFunction(str, Enum):
    """Archive consolidation functions"""
    MAX = "MAX"
    MIN = "MIN"
    AVERAGE = "AVERAGE"
    LAST = "LAST"


class CommandStatus(str, Enum):
    """Outcome of a single round trip"""
    OK = "ok"
    ERROR = "error"
    CLOSED = "closed"
    TIMEOUT = "timeout"
    UNRECOGNIZED = "unrecognized"


class ReplyKind(str, Enum):
    """Classification of one line read from the tool"""
    OK = "ok"
    ERROR = "error"
    NOISE = "noise"


@dataclass
class DatastoreSpec:
    """
    One DS definition for `create`.

    args is an expression string for COMPUTE, otherwise a
    (heartbeat, min, max) triple where min/max may both be None.
    """
    name: str
    type: Union[DatastoreType, str]
    args: Any


@dataclass
class ArchiveSpec:
    """One RRA definition for `create`"""
    cf: Union[ConsolidationFunction, str]
    xff: float
    steps: int
    rows: int


@dataclass
class DatastoreValue:
    """One name/value pair for `update`"""
    name: str
    value: Union[int, float, str, bytes]


class _Now:
    """Sentinel for the current time"""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NOW"


NOW = _Now()


@dataclass(frozen=True)
class TimePair:
    """
    Coarse+fine time components, rendered by plain concatenation.

    This is not a calendar conversion: TimePair(1234, 567890) renders as
    "1234567890". micro is accepted and ignored.
    """
    coarse: int
    fine: int
    micro: int = 0


Timestamp = Union[_Now, TimePair, str]


@dataclass
class Reply:
    """A parsed reply line"""
    kind: ReplyKind
    line: str
    message: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.kind != ReplyKind.NOISE


def parse_reply(line: str) -> Reply:
    """
    Classify one line of tool output.

    Args:
        line: Line as read from stdout, with or without its newline

    Returns:
        Reply with the verbatim remainder as message for ERROR lines
    """
    line = line.rstrip("\r\n")
    if line.startswith(REPLY_OK):
        return Reply(kind=ReplyKind.OK, line=line)
    if line.startswith(REPLY_ERROR):
        return Reply(kind=ReplyKind.ERROR, line=line, message=line[len(REPLY_ERROR):])
    return Reply(kind=ReplyKind.NOISE, line=line)


@dataclass
class CreateRequest:
    """Request to create an RRD file"""
    filename: str
    datastores: Sequence[Any]
    archives: Sequence[Any]
    kind: str = "create"


@dataclass
class UpdateRequest:
    """Request to feed values into an RRD file"""
    filename: str
    values: Sequence[Any]
    timestamp: Any = NOW
    kind: str = "update"


@dataclass
class CommandResult:
    """
    Result of one command round trip.

    message holds the text after ERROR: verbatim for protocol failures, or a
    description of the channel problem otherwise.
    """
    status: CommandStatus
    command: str = ""
    message: str = ""
    start_ts: str = ""
    end_ts: str = ""
    noise: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == CommandStatus.OK

    def raise_for_status(self) -> None:
        """Raise the matching exception if this result is a failure"""
        if self.status == CommandStatus.OK:
            return
        if self.status == CommandStatus.ERROR:
            raise ProtocolError(self.message, command=self.command)
        if self.status == CommandStatus.CLOSED:
            raise ChannelClosed(self.message)
        if self.status == CommandStatus.TIMEOUT:
            raise CommandTimeout(self.message)
        raise RRDPipeError(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CommandResult":
        return cls(
            status=CommandStatus(data["status"]),
            command=data.get("command", ""),
            message=data.get("message", ""),
            start_ts=data.get("start_ts", ""),
            end_ts=data.get("end_ts", ""),
            noise=list(data.get("noise", [])),
        )


def get_current_timestamp_iso() -> str:
    """Get current timestamp as ISO8601 string"""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def is_valid_name(name: Any) -> bool:
    """Check a datastore name against NAME_PATTERN"""
    return isinstance(name, str) and NAME_PATTERN.fullmatch(name) is not None

