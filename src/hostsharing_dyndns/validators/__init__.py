"""Password validators for Hostsharing DynDNS."""

from hostsharing_dyndns.validators.argon2id import (
    Argon2idValidator,
    GeneratedCredentials,
    generate_credentials,
)
from hostsharing_dyndns.validators.base import PasswordValidator

__all__ = [
    "Argon2idValidator",
    "GeneratedCredentials",
    "PasswordValidator",
    "generate_credentials",
]
