"""
Update request pipeline for Hostsharing DynDNS.

An update request passes these stages in order:

1. user check     -> `AuthenticationError` (401)
2. password check -> `AuthenticationError` (401)
3. address check  -> `AddressValidationError` (400)
4. zone update    -> `PersistenceError` (500)

A stage that fails ends the request; the zone state is only touched by the
last stage, after every check has passed.
"""

from __future__ import annotations

import logging
import secrets
import time
from ipaddress import IPv4Address, IPv6Address, ip_address
from typing import TYPE_CHECKING

from hostsharing_dyndns.errors import (
    AddressValidationError,
    AuthenticationError,
    DynDNSError,
)
from hostsharing_dyndns.models import SubdomainRecord, UpdateParams, UpdateRequest

if TYPE_CHECKING:
    from hostsharing_dyndns.config import UpdaterConfig
    from hostsharing_dyndns.validators.base import PasswordValidator
    from hostsharing_dyndns.zonefile import ZoneFile, ZoneState


logger = logging.getLogger(__name__)


def parse_address(
    value: str | None,
    family: type[IPv4Address | IPv6Address],
) -> IPv4Address | IPv6Address | None:
    """
    Parse an optional IP literal of a given family.

    Parameters
    ----------
    value : str | None
        The raw query parameter. None or "" means not provided.
    family : type[IPv4Address | IPv6Address]
        The required address class.

    Returns
    -------
    IPv4Address | IPv6Address | None
        The parsed address, or None if not provided.

    Raises
    ------
    ValueError
        If the value is not an IP literal of the required family, or is an
        IPv6 address with a scope id.
    """
    if not value:
        return None

    address = ip_address(value)
    if not isinstance(address, family):
        msg = f'"{value}" is not an {family.__name__}'
        raise ValueError(msg)  # noqa: TRY004
    if isinstance(address, IPv6Address) and address.scope_id is not None:
        msg = f'"{value}" has a scope id'
        raise ValueError(msg)
    return address


def parse_addresses(
    ipaddr: str | None,
    ip6addr: str | None,
) -> tuple[IPv4Address | None, IPv6Address | None]:
    """
    Parse both address parameters of an update request.

    Both parameters are always checked, so a single error reports every
    malformed field.

    Parameters
    ----------
    ipaddr : str | None
        The "ipaddr" query parameter.
    ip6addr : str | None
        The "ip6addr" query parameter.

    Returns
    -------
    tuple[IPv4Address | None, IPv6Address | None]
        The parsed IPv4 and IPv6 addresses.

    Raises
    ------
    AddressValidationError
        If either parameter is malformed.
    """
    invalid: list[str] = []

    ipv4: IPv4Address | None = None
    ipv6: IPv6Address | None = None
    try:
        ipv4 = parse_address(ipaddr, IPv4Address)  # type: ignore[assignment]
    except ValueError as e:
        logger.debug("Rejected ipaddr: %s", e)
        invalid.append("ipaddr")
    try:
        ipv6 = parse_address(ip6addr, IPv6Address)  # type: ignore[assignment]
    except ValueError as e:
        logger.debug("Rejected ip6addr: %s", e)
        invalid.append("ip6addr")

    if invalid:
        raise AddressValidationError(tuple(invalid))
    return ipv4, ipv6


class Updater:
    """
    Authenticate update requests and apply them to the zone state.

    Attributes
    ----------
    config : UpdaterConfig
        Update endpoint configuration.
    validator : PasswordValidator
        Password check used by the password stage.
    state : ZoneState
        The managed subdomain.
    zonefile : ZoneFile
        Renderer for the zone fragment.
    """

    def __init__(
        self,
        config: UpdaterConfig,
        validator: PasswordValidator,
        state: ZoneState,
        zonefile: ZoneFile,
    ) -> None:
        self.config = config
        self.validator = validator
        self.state = state
        self.zonefile = zonefile
        self._user = config.user.encode("utf-8")

    def check_user(self, user: str | None) -> str:
        """
        Compare the user with the configured one in constant time.

        Parameters
        ----------
        user : str | None
            The "user" query parameter.

        Returns
        -------
        str
            The verified user.

        Raises
        ------
        AuthenticationError
            If the user is missing or does not match.
        """
        if not user:
            logger.debug("Rejected request without user.")
            raise AuthenticationError
        if not secrets.compare_digest(self._user, user.encode("utf-8")):
            logger.debug("Rejected unknown user.")
            raise AuthenticationError
        return user

    def check_password(self, passwd: str | None) -> bytes:
        """
        Verify the password with the configured validator.

        Parameters
        ----------
        passwd : str | None
            The "passwd" query parameter.

        Returns
        -------
        bytes
            The verified password.

        Raises
        ------
        AuthenticationError
            If the password is missing or wrong.
        """
        if not passwd:
            logger.debug("Rejected request without password.")
            raise AuthenticationError
        password = passwd.encode("utf-8")
        if not self.validator.validate(password):
            logger.debug("Rejected wrong password (%s).", self.validator.name)
            raise AuthenticationError
        return password

    def validate(self, params: UpdateParams) -> UpdateRequest:
        """
        Run the user, password and address stages.

        Parameters
        ----------
        params : UpdateParams
            Raw query parameters.

        Returns
        -------
        UpdateRequest
            The authenticated request with parsed addresses.

        Raises
        ------
        AuthenticationError
            If the user or password is wrong.
        AddressValidationError
            If an address parameter is malformed.
        """
        user = self.check_user(params.user)
        password = self.check_password(params.passwd)
        ipv4, ipv6 = parse_addresses(params.ipaddr, params.ip6addr)
        return UpdateRequest(user=user, password=password, ipv4=ipv4, ipv6=ipv6)

    def apply(self, request: UpdateRequest) -> SubdomainRecord:
        """
        Store the request's addresses and rewrite the zone fragment.

        Parameters
        ----------
        request : UpdateRequest
            A validated request.

        Returns
        -------
        SubdomainRecord
            The record now held by the zone state.

        Raises
        ------
        PersistenceError
            If the zone fragment cannot be written.
        """
        record = SubdomainRecord(
            name=self.config.domain_subpart,
            ttl=self.config.ttl,
            ipv4=request.ipv4,
            ipv6=request.ipv6,
        )
        return self.state.update(
            record,
            self.zonefile,
            self.config.filename_as_path,
            retain_missing=self.config.retain_missing_family,
        )

    def handle(self, params: UpdateParams) -> SubdomainRecord:
        """
        Process one update request end to end.

        Parameters
        ----------
        params : UpdateParams
            Raw query parameters.

        Returns
        -------
        SubdomainRecord
            The record now held by the zone state.

        Raises
        ------
        DynDNSError
            If any stage rejects the request.
        """
        start_time = time.monotonic()

        # Never log the password
        logger.info(
            "[request] user=%s ipaddr=%s ip6addr=%s",
            params.user,
            params.ipaddr,
            params.ip6addr,
        )

        try:
            record = self.apply(self.validate(params))
        except DynDNSError as e:
            logger.warning(
                "[response] status=%d message=%s duration=%.2fs",
                e.status_code,
                e.message.replace("\n", "; "),
                time.monotonic() - start_time,
            )
            raise

        logger.info(
            "[response] status=200 ipv4=%s ipv6=%s duration=%.2fs",
            record.ipv4,
            record.ipv6,
            time.monotonic() - start_time,
        )
        return record
