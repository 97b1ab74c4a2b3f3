"""
Exception hierarchy for rrdpipe.

Validation errors are raised before anything is written to the tool.
Channel and protocol errors are normally reported through CommandResult and
only raised when a caller asks for it (CommandResult.raise_for_status).
"""

from typing import Any


class RRDPipeError(Exception):
    """Base class for all rrdpipe errors"""


class ConfigError(RRDPipeError):
    """Configuration file is missing or malformed"""


# Validation errors


class ValidationError(RRDPipeError):
    """Input could not be rendered into a command line"""

    def __init__(self, message: str, value: Any = None):
        super().__init__(message)
        self.value = value


class InvalidDatastoreName(ValidationError):
    pass


class InvalidDatastoreType(ValidationError):
    pass


class InvalidDatastoreArguments(ValidationError):
    pass


class InvalidDatastoreSpec(ValidationError):
    pass


class InvalidArchiveSpec(ValidationError):
    pass


class InvalidDatastoreValue(ValidationError):
    pass


class InvalidTimestamp(ValidationError):
    pass


class InvalidFilename(ValidationError):
    pass


class InvalidCommand(ValidationError):
    pass


# Channel errors


class ChannelError(RRDPipeError):
    """The tool process cannot be used"""


class ChannelClosed(ChannelError):
    """Tool has exited or its streams are closed; the channel must be recreated"""


class ToolStartError(ChannelError):
    """Tool binary could not be launched"""


class CommandTimeout(ChannelError):
    """No terminal reply arrived within the configured timeout"""


class ProtocolError(RRDPipeError):
    """Tool answered a command with ERROR:<message>"""

    def __init__(self, message: str, command: str = ""):
        super().__init__(message)
        self.message = message
        self.command = command
