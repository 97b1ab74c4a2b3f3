#!/usr/bin/env python3
"""
Fake rrdtool - mock of `rrdtool -` for testing

Speaks the remote-control protocol: one command per stdin line, answered by a
line starting with OK or ERROR:. Files are plain text records of the commands
applied to them, not real RRDs.

Supports:
- create <file> DS:... RRA:...   - writes <file>
- update <file> [-t names] ts:v  - appends to <file>, fails if missing
- noise <count>                  - prints <count> non-reply lines, then OK
- sleep <seconds>                - waits, then OK
- die                            - exits without replying
- quit                           - exits

Set FAKE_RRDTOOL_JOURNAL to a path to record every received line.
Pass --banner to print a greeting line before reading commands.
"""

import os
import re
import sys
import time

OK_LINE = "OK u:0.00 s:0.00 r:0.00"


def reply(text: str) -> None:
    print(text, flush=True)


def error(msg: str) -> None:
    reply(f"ERROR: {msg}")


def journal(line: str) -> None:
    path = os.environ.get("FAKE_RRDTOOL_JOURNAL")
    if path:
        with open(path, "a") as f:
            f.write(line + "\n")


def create_cmd(args: list) -> None:
    if not args:
        error("you must define at least one Round Robin Archive")
        return
    filename, tokens = args[0], args[1:]
    if not any(t.startswith("DS:") for t in tokens):
        error("you must define at least one Data Source")
        return
    if not any(t.startswith("RRA:") for t in tokens):
        error("you must define at least one Round Robin Archive")
        return
    with open(filename, "w") as f:
        f.write("create " + " ".join(tokens) + "\n")
    reply(OK_LINE)


def update_cmd(args: list) -> None:
    if not args:
        error("Not enough arguments")
        return
    filename = args[0]
    if not os.path.exists(filename):
        error(f"opening '{filename}': No such file or directory")
        return
    with open(filename, "a") as f:
        f.write("update " + " ".join(args[1:]) + "\n")
    reply(OK_LINE)


def process_command(line: str) -> bool:
    """
    Process a command line.
    Returns True to continue, False to exit.
    """
    line = line.strip()
    journal(line)

    if not line:
        return True

    parts = re.split(r"\s+", line)
    cmd, args = parts[0], parts[1:]

    if cmd == "quit":
        return False
    if cmd == "die":
        sys.exit(3)

    if cmd == "create":
        create_cmd(args)
    elif cmd == "update":
        update_cmd(args)
    elif cmd == "noise":
        count = int(args[0]) if args else 1
        for i in range(count):
            reply(f"noise line {i}")
        reply(OK_LINE)
    elif cmd == "sleep":
        try:
            time.sleep(float(args[0]))
            reply(OK_LINE)
        except (IndexError, ValueError):
            error(f"Invalid sleep duration: {args}")
    else:
        error(f"unknown function '{cmd}'")

    return True


def main():
    """Remote-control loop"""
    if "-" not in sys.argv[1:]:
        print("Usage: fake_rrdtool.py [--banner] -", file=sys.stderr)
        sys.exit(1)

    if "--banner" in sys.argv[1:]:
        reply("Fake RRDtool 1.0 remote control")

    for line in sys.stdin:
        if not process_command(line):
            break


if __name__ == "__main__":
    main()
