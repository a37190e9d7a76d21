"""
CLI entry point for Hostsharing DynDNS.

This module provides the command-line interface for starting the server,
validating the configuration and generating a password.
"""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

import uvicorn

from hostsharing_dyndns.config import ConfigValidationError, load_config, parse_args
from hostsharing_dyndns.logging_config import build_uvicorn_log_config, setup_logging
from hostsharing_dyndns.server import set_preloaded_config
from hostsharing_dyndns.validators.argon2id import generate_credentials

if TYPE_CHECKING:
    import argparse


def serve(args: argparse.Namespace) -> None:
    """
    Start the update server.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed command-line arguments.
    """
    try:
        config = load_config(args)
    except ConfigValidationError as e:
        print(e, file=sys.stderr)  # noqa: T201
        sys.exit(1)

    setup_logging(config.logging)

    # Inject the loaded configuration into the server module to prevent
    # re-parsing arguments when the app starts.
    set_preloaded_config(config)

    uvicorn.run(
        "hostsharing_dyndns.server:app",
        host=config.server.host,
        port=config.server.port,
        log_level=config.logging.level.lower(),
        access_log=True,
        log_config=build_uvicorn_log_config(config.logging),
    )


def validate_config(args: argparse.Namespace) -> None:
    """
    Validate the configuration and print it without key material.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed command-line arguments.
    """
    try:
        config = load_config(args)
    except ConfigValidationError as e:
        print(e, file=sys.stderr)  # noqa: T201
        sys.exit(1)

    print(  # noqa: T201
        config.model_dump_json(
            indent=2,
            exclude={"updater": {"password": {"key", "salt"}}},
        ),
    )


def generate_password(args: argparse.Namespace) -> None:
    """
    Generate a password and print the matching configuration.

    Prints the ``[updater.password]`` TOML table, a blank line, and the
    password clients have to send.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed command-line arguments.
    """
    try:
        credentials = generate_credentials(
            salt_length=args.salt_length,
            password_length=args.password_length,
            time=args.time,
            memory=args.memory,
            threads=args.threads,
            key_len=args.key_len,
        )
    except ValueError as e:
        print(e, file=sys.stderr)  # noqa: T201
        sys.exit(1)

    print(f"{credentials.to_toml()}\n\n{credentials.password}")  # noqa: T201


COMMANDS = {
    "serve": serve,
    "validate-config": validate_config,
    "generate-password": generate_password,
}


def main(argv: list[str] | None = None) -> None:
    """
    Run the command selected on the command line.

    Parameters
    ----------
    argv : list[str] | None, optional
        Command-line arguments. If None, uses sys.argv.
    """
    args = parse_args(argv)
    COMMANDS[args.command](args)


if __name__ == "__main__":
    main()
