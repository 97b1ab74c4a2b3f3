"""
rrdpipe CLI - Main entry point

Provides commands for:
- create: Create an RRD file
- update: Feed values into an RRD file
- exec: Send one raw command line to rrdtool
- run: Run a YAML script of create/update operations over one session
"""

import argparse
import logging
import sys
from typing import Any, List, Optional

import yaml

from rrdpipe import __version__
from rrdpipe.api import create, open_channel, update
from rrdpipe.config import PipeConfig, default_config, load_config
from rrdpipe.errors import ChannelError, ConfigError, ValidationError
from rrdpipe.protocol import (
    NOW,
    NOW_TOKEN,
    UNKNOWN_TOKEN,
    ArchiveSpec,
    CommandResult,
    DatastoreSpec,
    DatastoreType,
)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


# Argument parsing helpers

def _parse_number(text: str) -> Any:
    """Return int or float for numeric text, otherwise the text itself"""
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        return text


def parse_ds_arg(text: str) -> DatastoreSpec:
    """
    Parse NAME:TYPE:ARGS.

    ARGS is HEARTBEAT:MIN:MAX (U for unknown) or an RPN expression for COMPUTE.
    """
    parts = text.split(":", 2)
    if len(parts) != 3:
        raise argparse.ArgumentTypeError(f"expected NAME:TYPE:ARGS, got {text!r}")
    name, ds_type, rest = parts
    if ds_type == DatastoreType.COMPUTE.value:
        return DatastoreSpec(name=name, type=ds_type, args=rest)

    args: List[Any] = []
    for part in rest.split(":"):
        args.append(None if part == UNKNOWN_TOKEN else _parse_number(part))
    return DatastoreSpec(name=name, type=ds_type, args=args)


def parse_rra_arg(text: str) -> ArchiveSpec:
    """Parse CF:XFF:STEPS:ROWS"""
    parts = text.split(":")
    if len(parts) != 4:
        raise argparse.ArgumentTypeError(f"expected CF:XFF:STEPS:ROWS, got {text!r}")
    cf, xff, steps, rows = parts
    return ArchiveSpec(cf=cf, xff=_parse_number(xff), steps=_parse_number(steps), rows=_parse_number(rows))


def parse_value_arg(text: str):
    """Parse NAME=VALUE"""
    name, sep, value = text.partition("=")
    if not sep:
        raise argparse.ArgumentTypeError(f"expected NAME=VALUE, got {text!r}")
    return name, _parse_number(value)


def parse_time_arg(text: Optional[str]) -> Any:
    if text is None or text == NOW_TOKEN:
        return NOW
    return text


# Script helpers

def _as_datastore(item: Any) -> Any:
    if isinstance(item, dict):
        return DatastoreSpec(name=item.get("name"), type=item.get("type"), args=item.get("args"))
    if isinstance(item, list):
        return tuple(item)
    return item


def _as_archive(item: Any) -> Any:
    if isinstance(item, dict):
        return ArchiveSpec(cf=item.get("cf"), xff=item.get("xff"), steps=item.get("steps"), rows=item.get("rows"))
    if isinstance(item, list):
        return tuple(item)
    return item


def _as_values(values: Any) -> Any:
    if isinstance(values, dict):
        return list(values.items())
    if isinstance(values, list):
        return [tuple(v) if isinstance(v, list) else v for v in values]
    return values


def load_script(script_path: str) -> List[dict]:
    """
    Load a YAML operation script.

    The script is a mapping with an `operations` list; each entry has a
    single `create` or `update` key.
    """
    with open(script_path, 'r') as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {script_path}: {e}")
    operations = data.get("operations") if isinstance(data, dict) else None
    if not isinstance(operations, list):
        raise ConfigError(f"Script must contain an 'operations' list: {script_path}")
    return operations


# Config and output

def _resolve_config(args) -> PipeConfig:
    config = load_config(args.config) if args.config else default_config()
    if args.tool:
        config.tool.path = args.tool
    if args.timeout is not None:
        config.channel.timeout_s = args.timeout
    if getattr(args, "workdir", None):
        config.tool.workdir = args.workdir
    return config


def _report(label: str, result: CommandResult) -> int:
    if result.ok:
        print(f"✅ {label}: OK", file=sys.stderr)
        return EXIT_OK
    print(f"❌ {label}: {result.status.value}: {result.message.strip()}", file=sys.stderr)
    return EXIT_FAILED


# Commands

def cmd_create(args, channel) -> int:
    """Create an RRD file"""
    result = create(channel, args.filename, args.ds, args.rra)
    return _report(f"create {args.filename}", result)


def cmd_update(args, channel) -> int:
    """Update an RRD file"""
    result = update(channel, args.filename, args.values, parse_time_arg(args.time))
    return _report(f"update {args.filename}", result)


def cmd_exec(args, channel) -> int:
    """Send a raw command line"""
    result = channel.execute(args.line)
    for line in result.noise:
        print(line)
    return _report(args.line.split(" ", 1)[0], result)


def cmd_run(args, channel) -> int:
    """Run a YAML script of operations"""
    operations = load_script(args.script)
    print(f"📋 Running {len(operations)} operation(s) from {args.script}", file=sys.stderr)

    failures = 0
    for i, op in enumerate(operations, 1):
        if not isinstance(op, dict) or len(op) != 1:
            raise ConfigError(f"Operation {i} must have exactly one of 'create' or 'update': {op!r}")
        kind, body = next(iter(op.items()))
        body = body or {}
        if not isinstance(body, dict):
            raise ConfigError(f"Operation {i} ({kind}) must be a mapping, got {body!r}")

        if kind == "create":
            result = create(
                channel,
                body.get("file"),
                [_as_datastore(ds) for ds in body.get("datastores") or []],
                [_as_archive(rra) for rra in body.get("archives") or []],
            )
        elif kind == "update":
            time_value = body.get("time")
            result = update(
                channel,
                body.get("file"),
                _as_values(body.get("values")),
                parse_time_arg(None if time_value is None else str(time_value)),
            )
        else:
            raise ConfigError(f"Operation {i} has unknown kind: {kind!r}")

        if _report(f"[{i}] {kind} {body.get('file')}", result) != EXIT_OK:
            failures += 1
            if not args.keep_going:
                return EXIT_FAILED

    return EXIT_FAILED if failures else EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rrdpipe",
        description="rrdpipe - drive rrdtool through its remote-control mode",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", help="Path to configuration file (YAML)")
    parser.add_argument("--tool", help="rrdtool binary (overrides config)")
    parser.add_argument("--workdir", help="Working directory for rrdtool (overrides config)")
    parser.add_argument("--timeout", type=float, help="Seconds to wait for each reply (overrides config)")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Log commands (-vv for debug)")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    create_parser = subparsers.add_parser("create", help="Create an RRD file")
    create_parser.add_argument("filename", help="RRD file to create")
    create_parser.add_argument("--ds", action="append", type=parse_ds_arg, default=[], required=True,
                               help="Datastore NAME:TYPE:HEARTBEAT:MIN:MAX (U for unknown), repeatable")
    create_parser.add_argument("--rra", action="append", type=parse_rra_arg, default=[], required=True,
                               help="Archive CF:XFF:STEPS:ROWS, repeatable")
    create_parser.set_defaults(func=cmd_create)

    update_parser = subparsers.add_parser("update", help="Update an RRD file")
    update_parser.add_argument("filename", help="RRD file to update")
    update_parser.add_argument("values", nargs="+", type=parse_value_arg, help="NAME=VALUE pairs")
    update_parser.add_argument("--time", help="Timestamp (default: N)")
    update_parser.set_defaults(func=cmd_update)

    exec_parser = subparsers.add_parser("exec", help="Send one raw command line")
    exec_parser.add_argument("line", help="Command line, e.g. 'update a.rrd N:1'")
    exec_parser.set_defaults(func=cmd_exec)

    run_parser = subparsers.add_parser("run", help="Run a YAML operation script")
    run_parser.add_argument("script", help="Path to script file")
    run_parser.add_argument("--keep-going", action="store_true", help="Continue after a failed operation")
    run_parser.set_defaults(func=cmd_run)

    return parser


def _setup_logging(verbose: int) -> None:
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for rrdpipe CLI"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return EXIT_USAGE

    _setup_logging(args.verbose)

    try:
        config = _resolve_config(args)
    except ConfigError as e:
        print(f"❌ {e}", file=sys.stderr)
        return EXIT_USAGE

    try:
        channel = open_channel(config=config)
    except ChannelError as e:
        print(f"❌ {e}", file=sys.stderr)
        return EXIT_FAILED

    try:
        return args.func(args, channel)
    except ValidationError as e:
        print(f"❌ Invalid input: {e}", file=sys.stderr)
        return EXIT_USAGE
    except (ConfigError, OSError) as e:
        print(f"❌ {e}", file=sys.stderr)
        return EXIT_USAGE
    finally:
        channel.close()


if __name__ == "__main__":
    sys.exit(main())
