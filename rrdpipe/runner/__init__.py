"""
Channel and tool adapters
"""

from rrdpipe.runner.adapters import AdapterConfig, RRDToolAdapter, ToolAdapter
from rrdpipe.runner.core import Channel

__all__ = [
    "AdapterConfig",
    "Channel",
    "RRDToolAdapter",
    "ToolAdapter",
]
