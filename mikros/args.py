"""Command-line options understood by every service."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import Sequence


class ArgsError(ValueError):
    """The command line could not be parsed."""


@dataclass
class Args:
    """Options given to a service on its command line."""

    service_name: str
    config_path: str | None = None
    help: bool = False


def parse_args(argv: Sequence[str]) -> Args:
    """Parse a full command line, program name first."""
    if not argv:
        raise ArgsError("error: missing service name")

    args = Args(service_name=argv[0])
    rest = iter(argv[1:])
    for arg in rest:
        if arg in ("-h", "--help"):
            args.help = True
        elif arg == "--config":
            path = next(rest, None)
            if path is None:
                raise ArgsError("error: --config option requires a file path")
            args.config_path = path
        else:
            raise ArgsError(f"unknown argument: {arg}")
    return args


def usage(service_name: str) -> str:
    """The help text for a service."""
    return (
        f"Usage: {service_name} [OPTIONS]\n"
        "\n"
        "Options:\n"
        "  -h, --help      Print this help menu.\n"
        "  --config <path> Specify an alternative 'service.toml' config file.\n"
    )


def load_args(argv: Sequence[str] | None = None) -> Args:
    """Parse the command line, printing help or errors and exiting when needed."""
    if argv is None:
        argv = sys.argv
    try:
        args = parse_args(argv)
    except ArgsError as exc:
        print(exc, file=sys.stderr)
        raise SystemExit(1) from exc

    if args.help:
        sys.stdout.write(usage(args.service_name))
        raise SystemExit(0)
    return args