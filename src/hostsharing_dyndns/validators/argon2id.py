"""
Argon2id password validator.

The stored credential is an Argon2id key derived from the client password.
A candidate password is run through the same derivation and the result is
compared to the stored key in constant time.
"""

from __future__ import annotations

import base64
import logging
import secrets
from typing import TYPE_CHECKING

from argon2.low_level import Type, hash_secret_raw
from pydantic import BaseModel, ConfigDict, Field

from hostsharing_dyndns.validators.base import PasswordValidator

if TYPE_CHECKING:
    from typing import Final

    from hostsharing_dyndns.config import PasswordConfig


# Lower bounds enforced by the Argon2 reference implementation
MIN_SALT_LENGTH: Final[int] = 8
MIN_KEY_LENGTH: Final[int] = 4
MIN_MEMORY_PER_THREAD: Final[int] = 8
MAX_THREADS: Final[int] = 255

# Defaults used when generating a new credential
DEFAULT_SALT_LENGTH: Final[int] = 16
DEFAULT_PASSWORD_LENGTH: Final[int] = 32
DEFAULT_TIME: Final[int] = 1
DEFAULT_MEMORY: Final[int] = 64 * 1024
DEFAULT_THREADS: Final[int] = 4
DEFAULT_KEY_LENGTH: Final[int] = 32


logger = logging.getLogger(__name__)


def check_parameters(
    *,
    salt: bytes,
    time: int,
    memory: int,
    threads: int,
    key_len: int,
) -> list[str]:
    """
    Check Argon2id parameters for values the KDF would reject.

    Parameters
    ----------
    salt : bytes
        The salt.
    time : int
        Number of iterations.
    memory : int
        Memory cost in KiB.
    threads : int
        Degree of parallelism.
    key_len : int
        Length of the derived key in bytes.

    Returns
    -------
    list[str]
        Human-readable problems; empty if the parameters are usable.
    """
    problems: list[str] = []
    if len(salt) < MIN_SALT_LENGTH:
        problems.append(f"salt must be at least {MIN_SALT_LENGTH} bytes")
    if time < 1:
        problems.append("time must be at least 1")
    if not 1 <= threads <= MAX_THREADS:
        problems.append(f"threads must be between 1 and {MAX_THREADS}")
    elif memory < MIN_MEMORY_PER_THREAD * threads:
        problems.append(
            f"memory must be at least {MIN_MEMORY_PER_THREAD} KiB per thread "
            f"({MIN_MEMORY_PER_THREAD * threads} KiB for {threads} threads)",
        )
    if key_len < MIN_KEY_LENGTH:
        problems.append(f"key_len must be at least {MIN_KEY_LENGTH}")
    return problems


def derive_key(
    password: bytes,
    salt: bytes,
    time: int,
    memory: int,
    threads: int,
    key_len: int,
) -> bytes:
    """Derive a raw Argon2id key."""
    return hash_secret_raw(
        secret=password,
        salt=salt,
        time_cost=time,
        memory_cost=memory,
        parallelism=threads,
        hash_len=key_len,
        type=Type.ID,
    )


class Argon2idValidator(PasswordValidator):
    """
    Validate passwords against a stored Argon2id key.

    Uses `argon2-cffi` for the key derivation and
    `secrets.compare_digest` for the comparison.
    """

    def __init__(
        self,
        key: bytes,
        salt: bytes,
        time: int,
        memory: int,
        threads: int,
        key_len: int,
    ) -> None:
        """
        Initialize an Argon2idValidator.

        Parameters
        ----------
        key : bytes
            The stored key.
        salt : bytes
            The salt the stored key was derived with.
        time : int
            Number of iterations.
        memory : int
            Memory cost in KiB.
        threads : int
            Degree of parallelism.
        key_len : int
            Length of the derived key in bytes.

        Raises
        ------
        ValueError
            If the parameters cannot be used for Argon2id.
        """
        problems = check_parameters(
            salt=salt, time=time, memory=memory, threads=threads, key_len=key_len,
        )
        if problems:
            msg = f"Invalid Argon2id parameters: {'; '.join(problems)}."
            raise ValueError(msg)

        self._key = key
        self._salt = salt
        self._time = time
        self._memory = memory
        self._threads = threads
        self._key_len = key_len

    @classmethod
    def from_config(cls, config: PasswordConfig) -> Argon2idValidator:
        """
        Build a validator from the password configuration.

        Parameters
        ----------
        config : PasswordConfig
            The validated password configuration.

        Returns
        -------
        Argon2idValidator
            The validator.
        """
        return cls(
            key=config.key,
            salt=config.salt,
            time=config.time,
            memory=config.memory,
            threads=config.threads,
            key_len=config.key_len,
        )

    @property
    def name(self) -> str:
        """Get the validator name."""
        return "argon2id"

    def validate(self, password: bytes) -> bool:
        """
        Check a candidate password.

        The comparison always runs over the full derived key, so a stored
        key of a different length is rejected without an early return.

        Parameters
        ----------
        password : bytes
            The password sent by the client.

        Returns
        -------
        bool
            True if the derived key equals the stored key.
        """
        candidate = derive_key(
            password,
            self._salt,
            self._time,
            self._memory,
            self._threads,
            self._key_len,
        )
        # Loop length of compare_digest follows the second argument
        return secrets.compare_digest(self._key, candidate)


class GeneratedCredentials(BaseModel):
    """
    A freshly generated password and its derived credential.

    Attributes
    ----------
    password : str
        The password clients have to send.
    key : bytes
        Argon2id key derived from ``password``.
    salt : bytes
        The random salt.
    time : int
        Number of iterations.
    memory : int
        Memory cost in KiB.
    threads : int
        Degree of parallelism.
    key_len : int
        Length of ``key`` in bytes.
    """

    model_config = ConfigDict(frozen=True)

    password: str = Field(repr=False)
    key: bytes = Field(repr=False)
    salt: bytes
    time: int
    memory: int
    threads: int
    key_len: int

    def to_toml(self) -> str:
        """
        Render the credential as an ``[updater.password]`` TOML table.

        Returns
        -------
        str
            TOML snippet for the configuration file.
        """
        key = base64.urlsafe_b64encode(self.key).decode("ascii")
        salt = base64.urlsafe_b64encode(self.salt).decode("ascii")
        return "\n".join(
            [
                "[updater.password]",
                f'key = "{key}"',
                f'salt = "{salt}"',
                f"time = {self.time}",
                f"memory = {self.memory}",
                f"threads = {self.threads}",
                f"key_len = {self.key_len}",
            ],
        )


def generate_credentials(
    salt_length: int = DEFAULT_SALT_LENGTH,
    password_length: int = DEFAULT_PASSWORD_LENGTH,
    time: int = DEFAULT_TIME,
    memory: int = DEFAULT_MEMORY,
    threads: int = DEFAULT_THREADS,
    key_len: int = DEFAULT_KEY_LENGTH,
) -> GeneratedCredentials:
    """
    Generate a random password and derive its stored credential.

    The key is derived from the URL-safe password text itself, which is
    exactly what clients send in the ``passwd`` query parameter.

    Parameters
    ----------
    salt_length : int, optional
        Number of random salt bytes.
    password_length : int, optional
        Number of random bytes encoded into the password.
    time : int, optional
        Number of iterations.
    memory : int, optional
        Memory cost in KiB.
    threads : int, optional
        Degree of parallelism.
    key_len : int, optional
        Length of the derived key in bytes.

    Returns
    -------
    GeneratedCredentials
        The password and its credential.

    Raises
    ------
    ValueError
        If the parameters cannot be used for Argon2id.
    """
    salt = secrets.token_bytes(salt_length)
    problems = check_parameters(
        salt=salt, time=time, memory=memory, threads=threads, key_len=key_len,
    )
    if problems:
        msg = f"Invalid Argon2id parameters: {'; '.join(problems)}."
        raise ValueError(msg)

    password = secrets.token_urlsafe(password_length)
    key = derive_key(password.encode("utf-8"), salt, time, memory, threads, key_len)
    logger.debug(
        "Generated credential (time=%d, memory=%d, threads=%d, key_len=%d).",
        time,
        memory,
        threads,
        key_len,
    )

    return GeneratedCredentials(
        password=password,
        key=key,
        salt=salt,
        time=time,
        memory=memory,
        threads=threads,
        key_len=key_len,
    )
