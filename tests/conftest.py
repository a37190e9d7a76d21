"""Shared fixtures for Hostsharing DynDNS tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from argon2.low_level import Type, hash_secret_raw

from hostsharing_dyndns.config import Config, PasswordConfig, UpdaterConfig

if TYPE_CHECKING:
    from pathlib import Path

# Cheapest Argon2id parameters accepted by the reference implementation
PASSWORD = ".test."
SALT = b"0123456789abcdef"
TIME = 1
MEMORY = 8
THREADS = 1
KEY_LEN = 32


def derive(password: bytes, salt: bytes = SALT) -> bytes:
    """Derive a key with the test parameters."""
    return hash_secret_raw(
        secret=password,
        salt=salt,
        time_cost=TIME,
        memory_cost=MEMORY,
        parallelism=THREADS,
        hash_len=KEY_LEN,
        type=Type.ID,
    )


@pytest.fixture
def password_config() -> PasswordConfig:
    """Password configuration matching PASSWORD."""
    return PasswordConfig(
        key=derive(PASSWORD.encode()),
        salt=SALT,
        time=TIME,
        memory=MEMORY,
        threads=THREADS,
        key_len=KEY_LEN,
    )


@pytest.fixture
def zonefile_path(tmp_path: Path) -> Path:
    """Path of the zone fragment written by the tests."""
    return tmp_path / "zonefile.fragment"


@pytest.fixture
def config(password_config: PasswordConfig, zonefile_path: Path) -> Config:
    """Configuration for user "baz" managing "foobar"."""
    return Config(
        updater=UpdaterConfig(
            user="baz",
            password=password_config,
            filename=str(zonefile_path),
            domain_subpart="foobar",
        ),
    )
