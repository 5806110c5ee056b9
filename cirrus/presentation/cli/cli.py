"""
CLI Module

Architectural Intent:
- Command-line interface for checking Azure cloud profiles offline
- Delegates to the client factory via the composition root
- Supports --verbose/--debug flags for log level control

Security:
- Image listings never print passwords, only whether one is set
"""

import argparse
import json
import logging
import sys
from dataclasses import replace
from typing import Optional

from cirrus.composition_root import create_container
from cirrus.domain.errors import ConfigurationError
from cirrus.infrastructure.config import StorageConfig, load_config
from cirrus.infrastructure.logging import configure_logging


def _load_params(path: str) -> dict[str, str]:
    with open(path) as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a JSON object of profile parameters")
    return {str(k): v if isinstance(v, str) else json.dumps(v) for k, v in data.items()}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cirrus",
        description="Cirrus: Azure build-agent cloud profiles",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable verbose output"
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug output"
    )
    parser.add_argument("--config", "-c", help="Path to cirrus.json")
    parser.add_argument("--state-root", help="Override the plugin data directory")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    check_parser = subparsers.add_parser(
        "check-profile", help="Validate profile parameters and print typed errors"
    )
    check_parser.add_argument("params", help="JSON file with profile parameters")

    images_parser = subparsers.add_parser(
        "list-images", help="Parse the image data of a profile"
    )
    images_parser.add_argument("params", help="JSON file with profile parameters")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.debug:
        configure_logging(level=logging.DEBUG)
    elif args.verbose:
        configure_logging(level=logging.INFO)
    else:
        configure_logging(level=logging.WARNING)

    if not args.command:
        parser.print_help()
        return 2

    config = load_config(args.config)
    if args.state_root:
        config = replace(config, storage=StorageConfig(state_root=args.state_root))

    try:
        params = _load_params(args.params)
    except (OSError, ValueError) as e:
        print(f"Cannot read {args.params}: {e}", file=sys.stderr)
        return 2

    container = create_container(config)
    try:
        if args.command == "check-profile":
            errors = container.factory.check_client_params(params)
            if not errors:
                print("Profile OK")
                return 0
            for error in errors:
                print(f"{error.type}: {error.message}")
            return 1

        if args.command == "list-images":
            try:
                images = container.factory.parse_image_data(params)
            except ConfigurationError as e:
                print(f"parse: {e}", file=sys.stderr)
                return 1
            for image in images:
                password = "yes" if image.has_password else "no"
                print(
                    f"{image.source_name}\t{image.behaviour.value}\t"
                    f"max={image.max_instances}\tpassword={password}"
                )
            return 0
    finally:
        container.close()

    parser.print_help()
    return 2


if __name__ == "__main__":
    sys.exit(main())
