"""
Base class for password validators.

This module defines the abstract base class that the update pipeline uses
to check a client password. Implementations must not raise for a wrong
password; they return False instead.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class PasswordValidator(ABC):
    """
    Abstract base class for password validators.

    All validators must implement the `validate` method.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """
        Get the validator name.

        Returns
        -------
        str
            Validator name identifier.
        """
        ...

    @abstractmethod
    def validate(self, password: bytes) -> bool:
        """
        Check a candidate password.

        Parameters
        ----------
        password : bytes
            The password sent by the client.

        Returns
        -------
        bool
            True if the password matches the stored credential.
        """
        ...
