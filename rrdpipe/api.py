"""
Public operations: open a channel, create an RRD, update an RRD.
"""

from typing import Any, Optional, Sequence

from rrdpipe.config import PipeConfig, default_config
from rrdpipe.protocol import NOW, CommandResult, CreateRequest, UpdateRequest
from rrdpipe.runner.adapters import RRDToolAdapter
from rrdpipe.runner.core import Channel


def open_channel(tool_path: Optional[str] = None, config: Optional[PipeConfig] = None) -> Channel:
    """
    Start rrdtool in remote-control mode and return a started Channel.

    Args:
        tool_path: rrdtool binary, overrides config
        config: Settings, defaults to default_config()

    Raises:
        ToolStartError: If the binary cannot be launched
    """
    config = config or default_config()
    adapter = RRDToolAdapter.create(
        tool_path=tool_path or config.tool.path,
        workdir=config.tool.workdir,
        env=config.tool.env,
        args=config.tool.args,
        shutdown_timeout_s=config.channel.shutdown_timeout_s,
    )
    return Channel(adapter, timeout_s=config.channel.timeout_s).start()


def create(
    channel: Channel,
    filename: str,
    datastores: Sequence[Any],
    archives: Sequence[Any],
) -> CommandResult:
    """
    Create an RRD file.

    Validation errors are raised before the command is sent.
    """
    return channel.submit(CreateRequest(filename=filename, datastores=datastores, archives=archives))


def update(
    channel: Channel,
    filename: str,
    values: Sequence[Any],
    timestamp: Any = NOW,
) -> CommandResult:
    """
    Feed datastore values into an RRD file at timestamp (default now).

    Validation errors are raised before the command is sent.
    """
    return channel.submit(UpdateRequest(filename=filename, values=values, timestamp=timestamp))
