from __future__ import annotations

import argparse
import sys
from typing import Sequence

from stackweave.config.settings import get_settings
from stackweave.logging import configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stackweave",
        description="Provision cloud resources and wire their outputs into applications",
    )
    subparsers = parser.add_subparsers(dest="command")

    plan_parser = subparsers.add_parser(
        "plan",
        help="Show the order resources would be provisioned in (dry-run)",
    )
    plan_parser.add_argument("app_yaml", help="Path to application YAML file")
    plan_parser.add_argument("--output", choices=["text", "json"], default="text",
                             help="Output format")

    provision_parser = subparsers.add_parser(
        "provision",
        help="Provision every resource and resolve output bindings",
    )
    provision_parser.add_argument("app_yaml", help="Path to application YAML file")
    provision_parser.add_argument("--output", choices=["text", "json"], default="text",
                                  help="Output format")
    provision_parser.add_argument("--timeout", type=float, default=None,
                                  help="Stop waiting on dependencies after this many seconds")

    return parser


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    configure_logging(get_settings().log_level)

    if args.command == "plan":
        from stackweave.cli.plan import plan_command
        sys.exit(plan_command(args.app_yaml, output_format=args.output))

    if args.command == "provision":
        from stackweave.cli.provision import provision_command
        sys.exit(provision_command(
            args.app_yaml,
            output_format=args.output,
            timeout=args.timeout,
        ))


if __name__ == "__main__":  # pragma: no cover
    main()
