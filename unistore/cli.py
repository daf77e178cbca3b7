"""Command line access to a single operator.

    unistore kv-plain -o endpoint=tcp://127.0.0.1:6379 put greeting hello.txt
    unistore kv-plain -o endpoint=tcp://127.0.0.1:6379 cat greeting
    unistore relational-kv --env ls reports/
    unistore s3 --env --deadline 2.5 stat reports/q1.csv

With ``--env`` the configuration comes from ``UNISTORE_<SCHEME>_<KEY>``
variables (and a ``.env`` file, if present) instead of ``-o`` options.
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence

from unistore.core.storage import Operator, StorageError, capabilities, new_operator
from unistore.core.storage.registry import available_schemes
from unistore.core.utils.env import config_map_from_env, load_env_file_if_present

COMMANDS = ("cat", "put", "rm", "ls", "stat", "caps")


def _parse_option(text: str) -> tuple[str, str]:
    if "=" not in text:
        raise argparse.ArgumentTypeError(f"expected key=value, got '{text}'")
    key, value = text.split("=", 1)
    return key.strip(), value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="unistore", description="Run one storage operation against a configured backend"
    )
    parser.add_argument("scheme", help=f"Backend scheme ({', '.join(available_schemes())})")
    parser.add_argument("command", choices=COMMANDS, help="Operation to run")
    parser.add_argument("args", nargs="*", help="Key, prefix, or key and source file for put")
    parser.add_argument(
        "-o",
        "--option",
        dest="options",
        action="append",
        type=_parse_option,
        default=[],
        metavar="KEY=VALUE",
        help="Configuration option (repeatable)",
    )
    parser.add_argument("--env", action="store_true", help="Read options from UNISTORE_<SCHEME>_* variables")
    parser.add_argument("--strict", action="store_true", help="Reject unrecognized options")
    parser.add_argument(
        "--deadline", type=float, metavar="SECONDS", help="Time allowed for the operation's network calls"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def _run(op: Operator, command: str, args: list[str], timeout: float | None = None) -> int:
    if command == "cat":
        sys.stdout.buffer.write(op.read(args[0], timeout=timeout))
    elif command == "put":
        source = args[1] if len(args) > 1 else "-"
        if source == "-":
            data = sys.stdin.buffer.read()
        else:
            with open(source, "rb") as f:
                data = f.read()
        op.write(args[0], data, timeout=timeout)
        print(f"Stored {len(data)} bytes at {args[0]}")
    elif command == "rm":
        for key in args:
            op.delete(key, timeout=timeout)
    elif command == "ls":
        for key in op.list(args[0] if args else "", timeout=timeout):
            print(key)
    elif command == "stat":
        meta = op.stat(args[0], timeout=timeout)
        print(f"key:           {meta.key}")
        print(f"size:          {meta.size if meta.size is not None else '-'}")
        print(f"last_modified: {meta.last_modified.isoformat() if meta.last_modified else '-'}")
        print(f"etag:          {meta.etag or '-'}")
        print(f"content_type:  {meta.content_type or '-'}")
        print(f"is_dir:        {str(meta.is_dir).lower()}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_intermixed_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    needs_key = {"cat", "put", "stat", "rm"}
    if args.command in needs_key and not args.args:
        parser.error(f"'{args.command}' requires a key")

    try:
        if args.command == "caps":
            for name in capabilities(args.scheme).names():
                print(name)
            return 0

        if args.env:
            load_env_file_if_present()
            config = dict(config_map_from_env(args.scheme))
        else:
            config = {}
        config.update(dict(args.options))

        with new_operator(args.scheme, config, strict=args.strict) as op:
            return _run(op, args.command, args.args, args.deadline)
    except (StorageError, OSError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
