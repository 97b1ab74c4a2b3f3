"""
rrdpipe configuration

YAML configuration for the tool binary and channel behaviour.

Example:

    tool:
      path: /usr/bin/rrdtool
      args: ["-"]
      workdir: /var/lib/rrd
      env: {}
    channel:
      timeout_s: 30
      shutdown_timeout_s: 5
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional
import os
import yaml

from rrdpipe.errors import ConfigError
from rrdpipe.runner.adapters import DEFAULT_TOOL_PATH, REMOTE_CONTROL_ARGS


# Environment variable that overrides tool.path
ENV_TOOL_PATH = "RRDPIPE_TOOL"


@dataclass
class ToolConfig:
    """Tool binary configuration"""
    path: str = DEFAULT_TOOL_PATH
    args: List[str] = field(default_factory=lambda: list(REMOTE_CONTROL_ARGS))
    workdir: Optional[str] = None
    env: Dict[str, str] = field(default_factory=dict)


@dataclass
class ChannelConfig:
    """Channel behaviour"""
    # None waits forever for a reply
    timeout_s: Optional[float] = None
    shutdown_timeout_s: float = 5.0


@dataclass
class PipeConfig:
    """Main configuration"""
    tool: ToolConfig = field(default_factory=ToolConfig)
    channel: ChannelConfig = field(default_factory=ChannelConfig)


def default_config() -> PipeConfig:
    """Built-in defaults with the environment override applied"""
    config = PipeConfig()
    return apply_env(config)


def apply_env(config: PipeConfig) -> PipeConfig:
    """Apply RRDPIPE_TOOL to config, if set"""
    tool_path = os.environ.get(ENV_TOOL_PATH)
    if tool_path:
        config.tool.path = tool_path
    return config


def _optional_float(value, key: str) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be a number, got {value!r}")


def load_config(config_path: str) -> PipeConfig:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to config file

    Returns:
        PipeConfig object

    Raises:
        ConfigError: If config file doesn't exist or is invalid
    """
    if not os.path.exists(config_path):
        raise ConfigError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}")

    if not isinstance(data, dict):
        raise ConfigError(f"Config root must be a mapping: {config_path}")

    # Parse tool config
    tool_data = data.get('tool') or {}
    if not isinstance(tool_data, dict):
        raise ConfigError(f"tool must be a mapping, got {tool_data!r}")
    args = tool_data.get('args', list(REMOTE_CONTROL_ARGS))
    if not isinstance(args, list):
        raise ConfigError(f"tool.args must be a list, got {args!r}")
    env = tool_data.get('env') or {}
    if not isinstance(env, dict):
        raise ConfigError(f"tool.env must be a mapping, got {env!r}")
    tool = ToolConfig(
        path=str(tool_data.get('path', DEFAULT_TOOL_PATH)),
        args=[str(a) for a in args],
        workdir=tool_data.get('workdir'),
        env={str(k): str(v) for k, v in env.items()},
    )

    # Parse channel settings
    channel_data = data.get('channel') or {}
    if not isinstance(channel_data, dict):
        raise ConfigError(f"channel must be a mapping, got {channel_data!r}")
    shutdown_timeout = _optional_float(channel_data.get('shutdown_timeout_s', 5.0), 'channel.shutdown_timeout_s')
    channel = ChannelConfig(
        timeout_s=_optional_float(channel_data.get('timeout_s'), 'channel.timeout_s'),
        shutdown_timeout_s=5.0 if shutdown_timeout is None else shutdown_timeout,
    )

    return apply_env(PipeConfig(tool=tool, channel=channel))


def save_config(config: PipeConfig, config_path: str) -> None:
    """
    Save configuration to YAML file.

    Args:
        config: PipeConfig object to save
        config_path: Path to save config file
    """
    data = {
        'tool': {
            'path': config.tool.path,
            'args': list(config.tool.args),
            'workdir': config.tool.workdir,
            'env': dict(config.tool.env),
        },
        'channel': {
            'timeout_s': config.channel.timeout_s,
            'shutdown_timeout_s': config.channel.shutdown_timeout_s,
        },
    }

    with open(config_path, 'w') as f:
        yaml.dump(data, f, default_flow_style=False)
