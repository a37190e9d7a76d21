"""
Data models for Hostsharing DynDNS.

This module defines the data passed along the update pipeline: the raw
query parameters, the validated update request, and the subdomain record
that is rendered into the zone fragment.
"""

from __future__ import annotations

from enum import StrEnum
from ipaddress import IPv4Address, IPv6Address

from pydantic import BaseModel, ConfigDict, Field


class RecordType(StrEnum):
    """
    DNS record types written to the zone fragment.

    Attributes
    ----------
    A : str
        IPv4 address record.
    AAAA : str
        IPv6 address record.
    """

    A = "A"
    AAAA = "AAAA"


class UpdateParams(BaseModel):
    """
    Raw query parameters of an update request.

    All fields are optional at this level; the pipeline decides whether a
    missing value is an error. An empty string counts as missing.

    Attributes
    ----------
    user : str | None
        Username as sent by the client.
    passwd : str | None
        Plaintext password as sent by the client.
    ipaddr : str | None
        IPv4 literal to record.
    ip6addr : str | None
        IPv6 literal to record.
    """

    model_config = ConfigDict(frozen=True)

    user: str | None = None
    passwd: str | None = Field(default=None, repr=False)
    ipaddr: str | None = None
    ip6addr: str | None = None


class UpdateRequest(BaseModel):
    """
    An authenticated update request with parsed addresses.

    Built by the pipeline only after every validation stage has passed.

    Attributes
    ----------
    user : str
        The authenticated username.
    password : bytes
        The password that was verified. Never shown in ``repr``.
    ipv4 : IPv4Address | None
        Validated IPv4 address, or None if not provided.
    ipv6 : IPv6Address | None
        Validated IPv6 address, or None if not provided.
    """

    model_config = ConfigDict(frozen=True)

    user: str
    password: bytes = Field(repr=False)
    ipv4: IPv4Address | None = None
    ipv6: IPv6Address | None = None


class SubdomainRecord(BaseModel):
    """
    Address records of the managed subdomain.

    Attributes
    ----------
    name : str
        Subdomain part of the host name (e.g., "home").
    ttl : int
        Time to live in seconds.
    ipv4 : IPv4Address | None
        Current IPv4 address.
    ipv6 : IPv6Address | None
        Current IPv6 address.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    ttl: int = Field(default=60, ge=1)
    ipv4: IPv4Address | None = None
    ipv6: IPv6Address | None = None

    @classmethod
    def empty(cls, name: str, ttl: int = 60) -> SubdomainRecord:
        """Create a record without any address."""
        return cls(name=name, ttl=ttl)

    def merged_with(self, previous: SubdomainRecord) -> SubdomainRecord:
        """
        Fill address families missing here from a previous record.

        Parameters
        ----------
        previous : SubdomainRecord
            The record currently held by the zone state.

        Returns
        -------
        SubdomainRecord
            A copy of this record where absent families keep their
            previous value.
        """
        return self.model_copy(
            update={
                "ipv4": self.ipv4 if self.ipv4 is not None else previous.ipv4,
                "ipv6": self.ipv6 if self.ipv6 is not None else previous.ipv6,
            },
        )
