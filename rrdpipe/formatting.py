"""
Rendering of create/update requests into rrdtool command lines.

All validation happens here, before a line is handed to the channel.
"""

from typing import Any, List, Sequence, Tuple

from rrdpipe.errors import (
    InvalidArchiveSpec,
    InvalidDatastoreArguments,
    InvalidDatastoreName,
    InvalidDatastoreSpec,
    InvalidDatastoreType,
    InvalidDatastoreValue,
    InvalidFilename,
    InvalidTimestamp,
)
from rrdpipe.protocol import (
    NOW,
    NOW_TOKEN,
    UNKNOWN_TOKEN,
    ArchiveSpec,
    ConsolidationFunction,
    DatastoreSpec,
    DatastoreType,
    DatastoreValue,
    TimePair,
    is_valid_name,
)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _enum_member(enum_cls, value: Any):
    """Look up an enum member by member or by its string value, else None"""
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value)
        except ValueError:
            return None
    return None


def validate_filename(filename: Any) -> str:
    """
    Check that filename is usable as a single command token.

    Raises:
        InvalidFilename: If empty, not a string or containing whitespace
    """
    if not isinstance(filename, str) or not filename:
        raise InvalidFilename(f"Filename must be a non-empty string: {filename!r}", filename)
    if any(ch.isspace() for ch in filename):
        raise InvalidFilename(f"Filename must not contain whitespace: {filename!r}", filename)
    return filename


def format_arguments(ds_type: DatastoreType, arguments: Any) -> str:
    """
    Render the type-specific part of a DS definition.

    COMPUTE expressions are passed through without validation.
    """
    if ds_type == DatastoreType.COMPUTE:
        # TODO: validate the RPN expression before sending it
        if not isinstance(arguments, str):
            raise InvalidDatastoreArguments(
                f"COMPUTE arguments must be an expression string: {arguments!r}", arguments
            )
        return arguments

    if isinstance(arguments, (tuple, list)) and len(arguments) == 3:
        heartbeat, minimum, maximum = arguments
        if _is_int(heartbeat) and _is_int(minimum) and _is_int(maximum):
            return f"{heartbeat}:{minimum}:{maximum}"
        if _is_int(heartbeat) and minimum is None and maximum is None:
            return f"{heartbeat}:{UNKNOWN_TOKEN}:{UNKNOWN_TOKEN}"

    raise InvalidDatastoreArguments(f"Bad datastore arguments: {arguments!r}", arguments)


def format_datastore(spec: Any) -> str:
    """
    Render one DatastoreSpec (or (name, type, args) tuple) as DS:<name>:<type>:<args>.

    Raises:
        InvalidDatastoreSpec: If the input is not a 3-element spec
        InvalidDatastoreName: If the name does not match NAME_PATTERN
        InvalidDatastoreType: If the type is not a known DatastoreType
        InvalidDatastoreArguments: If the arguments do not fit the type
    """
    if isinstance(spec, DatastoreSpec):
        name, ds_type, arguments = spec.name, spec.type, spec.args
    elif isinstance(spec, (tuple, list)) and len(spec) == 3:
        name, ds_type, arguments = spec
    else:
        raise InvalidDatastoreSpec(f"Bad datastore: {spec!r}", spec)

    if not isinstance(name, str):
        raise InvalidDatastoreSpec(f"Bad datastore: {spec!r}", spec)
    if not is_valid_name(name):
        raise InvalidDatastoreName(f"Bad datastore name: {name!r}", name)

    member = _enum_member(DatastoreType, ds_type)
    if member is None:
        raise InvalidDatastoreType(f"Bad datastore type: {ds_type!r}", ds_type)

    return f"DS:{name}:{member.value}:{format_arguments(member, arguments)}"


def format_datastores(datastores: Sequence[Any]) -> List[str]:
    """Render every datastore, failing on the first bad one"""
    if not datastores:
        raise InvalidDatastoreSpec("At least one datastore is required", datastores)
    return [format_datastore(ds) for ds in datastores]


def format_archive(spec: Any) -> str:
    """
    Render one ArchiveSpec (or (cf, xff, steps, rows) tuple) as
    RRA:<CF>:<xff>:<steps>:<rows> with xff to two decimal places.
    """
    if isinstance(spec, ArchiveSpec):
        cf, xff, steps, rows = spec.cf, spec.xff, spec.steps, spec.rows
    elif isinstance(spec, (tuple, list)) and len(spec) == 4:
        cf, xff, steps, rows = spec
    else:
        raise InvalidArchiveSpec(f"Bad archive: {spec!r}", spec)

    member = _enum_member(ConsolidationFunction, cf)
    if member is None:
        raise InvalidArchiveSpec(f"Bad consolidation function: {cf!r}", spec)
    if not _is_number(xff):
        raise InvalidArchiveSpec(f"Bad xff: {xff!r}", spec)
    if not (_is_int(steps) and steps > 0 and _is_int(rows) and rows > 0):
        raise InvalidArchiveSpec(f"Steps and rows must be positive integers: {spec!r}", spec)

    return f"RRA:{member.value}:{xff:.2f}:{steps}:{rows}"


def format_archives(archives: Sequence[Any]) -> List[str]:
    """Render every archive, failing on the first bad one"""
    if not archives:
        raise InvalidArchiveSpec("At least one archive is required", archives)
    return [format_archive(rra) for rra in archives]


def format_value(value: Any) -> str:
    """
    Render a datastore value as text.

    Text values go on the update line as-is, so they must be a single
    token: non-empty, no ':' and no whitespace.
    """
    if isinstance(value, bool):
        raise InvalidDatastoreValue(f"Bad datastore value: {value!r}", value)
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, (bytes, bytearray)):
        try:
            text = bytes(value).decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidDatastoreValue(f"Datastore value is not UTF-8: {value!r}", value) from e
    elif isinstance(value, str):
        text = value
    else:
        raise InvalidDatastoreValue(f"Bad datastore value: {value!r}", value)

    if not text or ":" in text or any(c.isspace() for c in text):
        raise InvalidDatastoreValue(f"Bad datastore value: {value!r}", value)
    return text


def format_datastore_values(values: Sequence[Any]) -> Tuple[List[str], List[str]]:
    """
    Split name/value pairs into parallel name and value lists.

    Args:
        values: DatastoreValue instances or (name, value) tuples

    Returns:
        (names, rendered_values), same order and length
    """
    if not values:
        raise InvalidDatastoreValue("At least one datastore value is required", values)

    names: List[str] = []
    rendered: List[str] = []
    for item in values:
        if isinstance(item, DatastoreValue):
            name, value = item.name, item.value
        elif isinstance(item, (tuple, list)) and len(item) == 2:
            name, value = item
        else:
            raise InvalidDatastoreValue(f"Bad datastore value: {item!r}", item)

        if not is_valid_name(name):
            raise InvalidDatastoreName(f"Bad datastore name: {name!r}", name)
        names.append(name)
        rendered.append(format_value(value))
    return names, rendered


def format_timestamp(timestamp: Any) -> str:
    """
    Render the update timestamp.

    NOW (or None) -> "N", TimePair -> coarse and fine concatenated,
    str -> unchanged.
    """
    if timestamp is None or timestamp is NOW:
        return NOW_TOKEN
    if isinstance(timestamp, TimePair):
        if not (_is_int(timestamp.coarse) and _is_int(timestamp.fine)):
            raise InvalidTimestamp(f"Bad time pair: {timestamp!r}", timestamp)
        return f"{timestamp.coarse}{timestamp.fine}"
    if isinstance(timestamp, str) and timestamp:
        return timestamp
    raise InvalidTimestamp(f"Bad timestamp: {timestamp!r}", timestamp)


def build_create_command(filename: str, datastores: Sequence[Any], archives: Sequence[Any]) -> str:
    """Assemble a complete `create` line, newline included"""
    validate_filename(filename)
    ds_tokens = format_datastores(datastores)
    rra_tokens = format_archives(archives)
    return f"create {filename} {' '.join(ds_tokens)} {' '.join(rra_tokens)}\n"


def build_update_command(filename: str, values: Sequence[Any], timestamp: Any = NOW) -> str:
    """Assemble a complete `update` line, newline included"""
    validate_filename(filename)
    names, rendered = format_datastore_values(values)
    ts = format_timestamp(timestamp)
    return f"update {filename} -t {':'.join(names)} {ts}:{':'.join(rendered)}\n"
