"""
rrdpipe - rrdtool remote-control client

Drives a long-lived `rrdtool -` process over its stdin/stdout line protocol.

Core components:
- Channel: owns the tool process and serializes commands into it
- Formatting: validates and renders create/update requests
- Config: YAML configuration for the tool and channel
- CLI: Entry point for scripts and operators
"""

__version__ = "1.0.0"

from rrdpipe.api import create, open_channel, update
from rrdpipe.errors import (
    ChannelClosed,
    CommandTimeout,
    InvalidArchiveSpec,
    InvalidDatastoreArguments,
    InvalidDatastoreName,
    InvalidDatastoreSpec,
    InvalidDatastoreType,
    InvalidDatastoreValue,
    ProtocolError,
    RRDPipeError,
    ValidationError,
)
from rrdpipe.protocol import (
    NOW,
    ArchiveSpec,
    CommandResult,
    CommandStatus,
    ConsolidationFunction,
    DatastoreSpec,
    DatastoreType,
    DatastoreValue,
    TimePair,
)
from rrdpipe.runner.core import Channel

__all__ = [
    "open_channel",
    "create",
    "update",
    "Channel",
    "NOW",
    "TimePair",
    "ArchiveSpec",
    "CommandResult",
    "CommandStatus",
    "ConsolidationFunction",
    "DatastoreSpec",
    "DatastoreType",
    "DatastoreValue",
    "RRDPipeError",
    "ValidationError",
    "InvalidDatastoreName",
    "InvalidDatastoreType",
    "InvalidDatastoreArguments",
    "InvalidDatastoreSpec",
    "InvalidArchiveSpec",
    "InvalidDatastoreValue",
    "ChannelClosed",
    "CommandTimeout",
    "ProtocolError",
]
