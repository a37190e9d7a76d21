"""
Zone fragment rendering and state for Hostsharing DynDNS.

The managed subdomain is held in memory by `ZoneState` and rendered by
`ZoneFile` into a zone-file fragment. The fragment keeps the ``{DEFAULT}``
header and the ``{DOM_HOSTNAME}`` placeholder verbatim; both are expanded
by the DNS server that includes the fragment.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from hostsharing_dyndns.errors import PersistenceError
from hostsharing_dyndns.models import RecordType, SubdomainRecord

if TYPE_CHECKING:
    from pathlib import Path
    from typing import Final


DEFAULT_HEADER: Final[str] = "{DEFAULT}"
DEFAULT_HOSTNAME_PLACEHOLDER: Final[str] = "{DOM_HOSTNAME}"


logger = logging.getLogger(__name__)


class ZoneFile:
    """
    Renderer and writer for the zone fragment.

    Attributes
    ----------
    header : str
        First line of the fragment.
    hostname_placeholder : str
        Token appended to the subdomain name in each record line.
    """

    def __init__(
        self,
        header: str = DEFAULT_HEADER,
        hostname_placeholder: str = DEFAULT_HOSTNAME_PLACEHOLDER,
    ) -> None:
        self.header = header
        self.hostname_placeholder = hostname_placeholder

    def record_line(
        self,
        record: SubdomainRecord,
        record_type: RecordType,
        address: object,
    ) -> str:
        """Format a single resource-record line."""
        return (
            f"{record.name}.{self.hostname_placeholder}. "
            f"{record.ttl} IN {record_type} {address}"
        )

    def render(self, record: SubdomainRecord) -> str:
        """
        Render a record into the zone fragment.

        The A line always precedes the AAAA line; families without an
        address produce no line.

        Parameters
        ----------
        record : SubdomainRecord
            The record to render.

        Returns
        -------
        str
            The fragment text, each line terminated by a newline.
        """
        lines = [self.header]
        if record.ipv4 is not None:
            lines.append(self.record_line(record, RecordType.A, record.ipv4))
        if record.ipv6 is not None:
            lines.append(self.record_line(record, RecordType.AAAA, record.ipv6))
        return "".join(f"{line}\n" for line in lines)

    def write(self, path: Path, record: SubdomainRecord) -> None:
        """
        Overwrite the fragment file with the rendered record.

        The file is created if absent and truncated before writing.

        Parameters
        ----------
        path : Path
            Target file.
        record : SubdomainRecord
            The record to render.

        Raises
        ------
        PersistenceError
            If the file cannot be written.
        """
        content = self.render(record)
        try:
            with path.open("w", encoding="utf-8") as f:
                f.write(content)
        except OSError as e:
            logger.error('Cannot write zonefile "%s": %s', path, e)
            raise PersistenceError from e


class ZoneState:
    """
    In-memory state of the managed subdomain.

    `update` holds a lock across mutate, render and write, so at most one
    write is in flight and the file always reflects the last completed
    update. `set` takes the same lock and cannot interleave with an
    update.
    """

    def __init__(self, record: SubdomainRecord) -> None:
        self._record = record
        self._lock = threading.Lock()

    def set(self, record: SubdomainRecord) -> None:
        """Replace the held record without writing the fragment."""
        with self._lock:
            self._record = record

    def current_record(self) -> SubdomainRecord:
        """Return the held record."""
        return self._record

    def update(
        self,
        record: SubdomainRecord,
        zonefile: ZoneFile,
        path: Path,
        *,
        retain_missing: bool = False,
    ) -> SubdomainRecord:
        """
        Store a record and persist it as the zone fragment.

        Parameters
        ----------
        record : SubdomainRecord
            The new record.
        zonefile : ZoneFile
            Renderer used to write the fragment.
        path : Path
            Target file.
        retain_missing : bool, optional
            Keep the current address of a family the new record lacks,
            instead of clearing it.

        Returns
        -------
        SubdomainRecord
            The record that was stored and written.

        Raises
        ------
        PersistenceError
            If the file cannot be written. The in-memory record keeps the
            new value.
        """
        with self._lock:
            if retain_missing:
                record = record.merged_with(self._record)
            self._record = record
            zonefile.write(path, record)
            return record
