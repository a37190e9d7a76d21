"""
Configuration for Hostsharing DynDNS.

Settings are read from a TOML file (``config.toml`` in the working
directory unless ``--config`` is given) and may be overridden on the
command line. Values given on the command line win over the file, and
the file wins over the model defaults.
"""

from __future__ import annotations

import argparse
import base64
import binascii
import copy
import logging
import sys
import tomllib
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from pydantic_core import PydanticCustomError

from hostsharing_dyndns.logging_config import DATE_FORMAT, LOG_FORMAT
from hostsharing_dyndns.validators.argon2id import (
    DEFAULT_KEY_LENGTH,
    DEFAULT_MEMORY,
    DEFAULT_PASSWORD_LENGTH,
    DEFAULT_SALT_LENGTH,
    DEFAULT_THREADS,
    DEFAULT_TIME,
    check_parameters,
)
from hostsharing_dyndns.zonefile import DEFAULT_HEADER, DEFAULT_HOSTNAME_PLACEHOLDER

if TYPE_CHECKING:
    from typing import Any, Self


def _startup_logger() -> logging.Logger:
    """
    Return a console logger usable before ``setup_logging()`` runs.

    Messages emitted while the configuration is loaded cannot go to the
    log file yet, since its path is part of that configuration.
    """
    startup = logging.getLogger(__name__)
    startup.setLevel(logging.DEBUG)
    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    startup.addHandler(console)
    startup.propagate = False
    return startup


logger_basic = _startup_logger()


# Minimum length of the stored key, in bytes
MIN_STORED_KEY_LENGTH = 8


class ConfigValidationError(Exception):
    """
    The merged configuration does not validate.

    The message lists one line per offending field and is meant to be
    printed as is.

    Attributes
    ----------
    config_path : Path | None
        File the configuration was read from, if any.
    """

    def __init__(self, message: str, config_path: Path | None = None) -> None:
        self.config_path = config_path
        super().__init__(message)


def decode_base64(value: str) -> bytes:
    """
    Decode URL-safe base64, tolerating missing padding.

    Parameters
    ----------
    value : str
        The encoded value.

    Returns
    -------
    bytes
        The decoded bytes.

    Raises
    ------
    binascii.Error
        If the value is not valid URL-safe base64.
    """
    value = value.strip()
    padded = value + "=" * (-len(value) % 4)
    return base64.b64decode(padded, altchars=b"-_", validate=True)


# Configuration sections


class ServerConfig(BaseModel):
    """
    Server configuration.

    Attributes
    ----------
    host : str
        Host address to bind to.
    port : int
        Port number to listen on.
    """

    host: str = "0.0.0.0"  # noqa: S104
    port: int = 9000


class PasswordConfig(BaseModel):
    """
    Stored Argon2id credential.

    ``key`` and ``salt`` are given as URL-safe base64 strings in the
    configuration file.

    Attributes
    ----------
    key : bytes
        The stored Argon2id key.
    salt : bytes
        The salt the key was derived with.
    time : int
        Number of iterations.
    memory : int
        Memory cost in KiB.
    threads : int
        Degree of parallelism.
    key_len : int
        Length of the derived key in bytes.
    """

    key: bytes = Field(repr=False)
    salt: bytes = Field(repr=False)
    time: int = DEFAULT_TIME
    memory: int = DEFAULT_MEMORY
    threads: int = DEFAULT_THREADS
    key_len: int = DEFAULT_KEY_LENGTH

    @field_validator("key", "salt", mode="before")
    @classmethod
    def decode_base64_field(cls, value: Any) -> Any:
        """
        Decode base64 strings into bytes.

        Parameters
        ----------
        value : Any
            Raw value from the configuration.

        Returns
        -------
        Any
            Decoded bytes for strings; other values are passed through.

        Raises
        ------
        PydanticCustomError
            If a string is not valid URL-safe base64.
        """
        if not isinstance(value, str):
            return value
        try:
            return decode_base64(value)
        except (binascii.Error, ValueError) as e:
            err_type = "base64_decode"
            raise PydanticCustomError(
                err_type,
                "Value is not valid URL-safe base64",
            ) from e

    @model_validator(mode="after")
    def check_argon2_parameters(self) -> Self:
        """
        Validate that the credential can be used with Argon2id.

        Returns
        -------
        Self
            The validated model.

        Raises
        ------
        PydanticCustomError
            If a parameter is out of range or the key length does not
            match ``key_len``.
        """
        problems = check_parameters(
            salt=self.salt,
            time=self.time,
            memory=self.memory,
            threads=self.threads,
            key_len=self.key_len,
        )
        if len(self.key) < MIN_STORED_KEY_LENGTH:
            problems.append(f"key must be at least {MIN_STORED_KEY_LENGTH} bytes")
        elif len(self.key) != self.key_len:
            problems.append(
                f"key is {len(self.key)} bytes but key_len is {self.key_len}",
            )

        if problems:
            err_type = "password_config_error"
            raise PydanticCustomError(
                err_type,
                "Invalid password configuration: {problems}",
                {"problems": "; ".join(problems)},
            )
        return self


class UpdaterConfig(BaseModel):
    """
    Update endpoint configuration.

    Attributes
    ----------
    user : str
        The single accepted username.
    password : PasswordConfig
        The stored credential.
    filename : str
        Path of the zone fragment to write.
    domain_subpart : str
        Subdomain managed by this service (e.g., "home").
    ttl : int
        TTL of the written records, in seconds.
    retain_missing_family : bool
        Keep the stored address of a family the request omits, instead
        of clearing it.
    """

    user: str = Field(..., min_length=1)
    password: PasswordConfig
    filename: str = Field(..., min_length=1)
    domain_subpart: str = Field(..., min_length=1)
    ttl: int = Field(default=60, ge=1)
    retain_missing_family: bool = False

    @property
    def filename_as_path(self) -> Path:
        """
        Get the zone fragment path as a Path object.

        Returns
        -------
        Path
            The zone fragment path.
        """
        return Path(self.filename)


class ZonefileConfig(BaseModel):
    """
    Zone fragment template configuration.

    Attributes
    ----------
    header : str
        First line of the fragment.
    hostname_placeholder : str
        Token the DNS server replaces with the domain name.
    """

    header: str = DEFAULT_HEADER
    hostname_placeholder: str = DEFAULT_HOSTNAME_PLACEHOLDER


class LoggingConfig(BaseModel):
    """
    Logging configuration.

    Attributes
    ----------
    level : str
        Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    file_enabled : bool
        Whether to log to file.
    file_path : str
        Path to the log file.
    """

    level: str = "INFO"
    file_enabled: bool = False
    file_path: str = "/var/log/hostsharing-dyndns.log"

    @property
    def file_path_as_path(self) -> Path:
        """
        Get the log file path as a Path object.

        Returns
        -------
        Path
            The resolved log file path.
        """
        return Path(self.file_path)


class HealthConfig(BaseModel):
    """
    Liveness endpoint configuration.

    Attributes
    ----------
    enabled : bool
        Whether the /test endpoint is enabled.
    """

    enabled: bool = True


class Config(BaseModel):
    """
    Application configuration.

    Attributes
    ----------
    server : ServerConfig
        Server configuration.
    updater : UpdaterConfig
        Update endpoint configuration.
    zonefile : ZonefileConfig
        Zone fragment template configuration.
    logging : LoggingConfig
        Logging configuration.
    health : HealthConfig
        Liveness endpoint configuration.
    """

    server: ServerConfig = ServerConfig()
    updater: UpdaterConfig
    zonefile: ZonefileConfig = ZonefileConfig()
    logging: LoggingConfig = LoggingConfig()
    health: HealthConfig = HealthConfig()



# Pydantic error types mapped to the type name shown to the user
_EXPECTED_TYPES: dict[str, str] = {
    "int_type": "int",
    "int_parsing": "int",
    "bool_type": "bool",
    "bool_parsing": "bool",
    "string_type": "str",
    "string_too_short": "non-empty str",
    "greater_than_equal": "larger value",
}

# Error types whose input may contain key material
_SECRET_ERROR_TYPES = frozenset({"password_config_error", "base64_decode"})


def _describe_error(err: Any) -> str:
    """Render one pydantic error as an indented report line."""
    field_path = ".".join(str(loc) for loc in err["loc"])
    error_type = err["type"]

    if error_type == "missing":
        return f"  [{field_path}]: Missing required field."
    if error_type in _SECRET_ERROR_TYPES:
        return f"  [{field_path}]: {err['msg']}."

    value = err["input"]
    shown = f'"{value}"' if isinstance(value, str) else repr(value)
    expected = _EXPECTED_TYPES.get(error_type, error_type)
    return (
        f"  [{field_path}]: Expected {expected}, got {type(value).__name__} "
        f"(value: {shown}). {err['msg']}."
    )


def _format_validation_errors(
    error: ValidationError,
    config_path: Path | None,
) -> str:
    """
    Turn a pydantic ``ValidationError`` into the report printed on startup.

    Parameters
    ----------
    error : ValidationError
        The error raised while building ``Config``.
    config_path : Path | None
        File the configuration came from, named in the first line.

    Returns
    -------
    str
        A header line followed by one line per error.
    """
    header = (
        f'Configuration error in "{config_path}":'
        if config_path
        else "Configuration error:"
    )
    return "\n".join([header, *(_describe_error(err) for err in error.errors())])


def validate_config_dict(
    data: dict[str, Any],
    config_path: Path | None = None,
) -> None:
    """
    Check a raw configuration dictionary against ``Config``.

    Parameters
    ----------
    data : dict[str, Any]
        Merged file and command-line settings.
    config_path : Path | None, optional
        File the settings came from, for the error report.

    Raises
    ------
    ConfigValidationError
        If any field is missing or invalid.
    """
    try:
        Config(**data)
    except ValidationError as e:
        raise ConfigValidationError(
            _format_validation_errors(e, config_path),
            config_path,
        ) from e


def load_config_from_file(config_path: Path) -> dict[str, Any]:
    """
    Read a TOML configuration file.

    Parameters
    ----------
    config_path : Path
        The file to read.

    Returns
    -------
    dict[str, Any]
        The parsed tables.

    Raises
    ------
    FileNotFoundError
        If the file is missing.
    tomllib.TOMLDecodeError
        If the file is not valid TOML.
    """
    with config_path.open("rb") as f:
        return tomllib.load(f)


def merge_config(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Merge ``override`` into a copy of ``base``, table by table.

    Nested tables are merged recursively; any other value in ``override``
    replaces the one in ``base``. Neither argument is modified.
    """
    merged = copy.deepcopy(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = merge_config(current, value)
        else:
            merged[key] = value
    return merged


# (section, key) of settings holding a filesystem path
_PATH_SETTINGS: tuple[tuple[str, str], ...] = (
    ("logging", "file_path"),
    ("updater", "filename"),
)


def dict_to_config(data: dict[str, Any]) -> Config:
    """
    Build ``Config`` from a validated dictionary.

    ``~`` in path settings is expanded first.

    Parameters
    ----------
    data : dict[str, Any]
        Configuration dictionary.

    Returns
    -------
    Config
        The configuration.
    """
    data = copy.deepcopy(data)
    for section, key in _PATH_SETTINGS:
        if key in data.get(section, {}):
            data[section][key] = str(Path(data[section][key]).expanduser())
    return Config.model_validate(data)


def _add_generate_password_parser(subparsers: Any) -> None:
    """Register ``generate-password`` and its Argon2id options."""
    gen_parser = subparsers.add_parser(
        "generate-password",
        aliases=["genpasswd", "gen"],
        help="Generate a random password and print the matching configuration",
    )
    gen_parser.set_defaults(command="generate-password")
    gen_parser.add_argument(
        "-s",
        "--salt",
        type=int,
        dest="salt_length",
        default=DEFAULT_SALT_LENGTH,
        help="Byte size of the generated salt",
    )
    gen_parser.add_argument(
        "-p",
        "--password",
        type=int,
        dest="password_length",
        default=DEFAULT_PASSWORD_LENGTH,
        help="Byte size of the generated password",
    )
    gen_parser.add_argument(
        "--time",
        type=int,
        default=DEFAULT_TIME,
        help="Argon2id time parameter",
    )
    gen_parser.add_argument(
        "-m",
        "--memory",
        type=int,
        default=DEFAULT_MEMORY,
        help="Argon2id memory parameter (KiB)",
    )
    gen_parser.add_argument(
        "--threads",
        type=int,
        default=DEFAULT_THREADS,
        help="Argon2id threads parameter",
    )
    gen_parser.add_argument(
        "--key-length",
        type=int,
        dest="key_len",
        default=DEFAULT_KEY_LENGTH,
        help="Argon2id key length parameter",
    )


def _add_toggle(
    parser: argparse.ArgumentParser,
    name: str,
    dest: str,
    what: str,
) -> None:
    """Add a mutually exclusive ``--<name>-enabled/--<name>-disabled`` pair."""
    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        f"--{name}-enabled",
        action="store_true",
        dest=dest,
        default=None,
        help=f"Enable {what}",
    )
    group.add_argument(
        f"--{name}-disabled",
        action="store_false",
        dest=dest,
        default=None,
        help=f"Disable {what}",
    )


def build_parser() -> argparse.ArgumentParser:
    """
    Build the command-line parser.

    Global options override the configuration file and go before the
    subcommand. Without a subcommand, ``serve`` is assumed.

    Returns
    -------
    argparse.ArgumentParser
        The parser.
    """
    parser = argparse.ArgumentParser(
        prog="hostsharing-dyndns",
        description="Dynamic DNS updater writing a zone-file fragment",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Configuration file (default: ./config.toml if present)",
    )
    parser.add_argument("--host", type=str, default=None, help="Bind address")
    parser.add_argument("--port", type=int, default=None, help="Listen port")
    parser.add_argument(
        "--zonefile",
        type=Path,
        default=None,
        help="Zone fragment to write",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Log level",
    )
    _add_toggle(parser, "log-file", "log_file_enabled", "logging to a file")
    parser.add_argument(
        "--log-file-path",
        type=Path,
        default=None,
        help="Log file location",
    )
    _add_toggle(parser, "health", "health_enabled", 'the "/test" endpoint')

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    # Must follow add_subparsers, whose own default is None
    parser.set_defaults(command="serve")
    subparsers.add_parser("serve", help="Run the update server (default)")
    subparsers.add_parser(
        "validate-config",
        help="Validate the configuration and print it without key material",
    )
    _add_generate_password_parser(subparsers)
    return parser


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Parameters
    ----------
    args : list[str] | None, optional
        Arguments to parse. Defaults to ``sys.argv[1:]``.

    Returns
    -------
    argparse.Namespace
        Parsed arguments; ``command`` names the subcommand.
    """
    return build_parser().parse_args(args)


# Command-line option -> (section, key) it overrides
_CLI_OVERRIDES: tuple[tuple[str, tuple[str, str]], ...] = (
    ("host", ("server", "host")),
    ("port", ("server", "port")),
    ("zonefile", ("updater", "filename")),
    ("log_level", ("logging", "level")),
    ("log_file_enabled", ("logging", "file_enabled")),
    ("log_file_path", ("logging", "file_path")),
    ("health_enabled", ("health", "enabled")),
)


def _cli_overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Collect the options given on the command line as config tables."""
    overrides: dict[str, Any] = {}
    for option, (section, key) in _CLI_OVERRIDES:
        value = getattr(args, option, None)
        if value is None:
            continue
        if isinstance(value, Path):
            value = str(value)
        overrides.setdefault(section, {})[key] = value
    return overrides


def _resolve_config_path(args: argparse.Namespace) -> Path | None:
    """Return the configuration file to read, if any."""
    if args.config is not None:
        return args.config.expanduser()
    default_config = Path("config.toml")
    return default_config if default_config.exists() else None


def load_config(args: argparse.Namespace | None = None) -> Config:
    """
    Load the configuration from file and command line.

    Parameters
    ----------
    args : argparse.Namespace | None, optional
        Parsed command-line arguments. Parsed from ``sys.argv`` if None.

    Returns
    -------
    Config
        The validated configuration.

    Raises
    ------
    ConfigValidationError
        If the merged configuration is invalid.
    SystemExit
        If the configuration file is missing or is not valid TOML.
    """
    if args is None:
        args = parse_args()

    config_dict: dict[str, Any] = {}
    config_path = _resolve_config_path(args)

    if config_path is not None:
        if not config_path.exists():
            logger_basic.critical('Configuration file not found: "%s".', config_path)
            sys.exit(1)
        logger_basic.info('Loading configuration from "%s".', config_path)
        try:
            config_dict = load_config_from_file(config_path)
        except tomllib.TOMLDecodeError as e:
            logger_basic.critical('Failed to parse configuration file: "%s".', e)
            sys.exit(1)

    overrides = _cli_overrides(args)
    if overrides:
        config_dict = merge_config(config_dict, overrides)

    validate_config_dict(config_dict, config_path)
    return dict_to_config(config_dict)
