"""
Request error types for Hostsharing DynDNS.

Every failure of a single update request is raised as a `DynDNSError`
subclass. The server turns these into plain-text HTTP responses, so each
error carries the status code and the body it should be reported with.

Exception hierarchy::

    DynDNSError
    ├─ AuthenticationError      - wrong/missing user or password (401)
    ├─ AddressValidationError   - malformed "ipaddr"/"ip6addr" (400)
    └─ PersistenceError         - zone fragment could not be written (500)
"""

from __future__ import annotations

from starlette import status as st_status


class DynDNSError(Exception):
    """
    Base exception for all per-request failures.

    Attributes
    ----------
    status_code : int
        HTTP status code to respond with.
    message : str
        Response body (without trailing newline).
    """

    status_code: int = st_status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        """
        Initialize DynDNSError.

        Parameters
        ----------
        message : str
            Response body (without trailing newline).
        """
        self.message = message
        super().__init__(message)


class AuthenticationError(DynDNSError):
    """
    User or password did not match.

    The message is always the same generic text, so the caller cannot
    tell which of the two fields was wrong.
    """

    status_code = st_status.HTTP_401_UNAUTHORIZED

    def __init__(self) -> None:
        """Initialize AuthenticationError with the generic message."""
        super().__init__("user or password wrong")


class AddressValidationError(DynDNSError):
    """
    One or both address parameters are malformed.

    Attributes
    ----------
    fields : tuple[str, ...]
        Names of the rejected query parameters, in request order.
    """

    status_code = st_status.HTTP_400_BAD_REQUEST

    def __init__(self, fields: tuple[str, ...]) -> None:
        """
        Initialize AddressValidationError.

        Parameters
        ----------
        fields : tuple[str, ...]
            Names of the rejected query parameters.
        """
        self.fields = fields
        super().__init__("\n".join(f"{field} is incorrect" for field in fields))


class PersistenceError(DynDNSError):
    """The zone fragment could not be written to disk."""

    status_code = st_status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self) -> None:
        """Initialize PersistenceError with the generic message."""
        super().__init__("cannot write zonefile")
