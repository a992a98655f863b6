# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

from __future__ import annotations

import asyncio
import dataclasses
import logging
import socket
import ssl
import typing as t
import urllib.parse

from ._controls import ControlOptions, LDAPControl
from ._filter import FilterOptions
from ._messages import PackingOptions

log = logging.getLogger(__name__)

DEFAULT_PORTS = {
    "ldap": 389,
    "ldaps": 636,
}


@dataclasses.dataclass
class ConnectionSettings:
    """Settings for an LDAP connection.

    Args:
        connect_timeout: Seconds to wait for the transport to connect, None
            waits forever.
        operation_timeout: The default timeout in seconds for each operation,
            None waits forever.
        ssl_context: The SSLContext used for LDAPS and StartTLS. A default
            context is created when not set.
        starttls: Upgrade an ``ldap://`` connection with StartTLS as soon as
            it is connected.
        no_tls_verify: Do not verify the server certificate or hostname when
            creating the default SSLContext.
        server_hostname: The hostname used for the TLS SNI and certificate
            checks, defaults to the host of the URL.
        read_size: The number of bytes read from the transport at a time.
        string_encoding: The encoding used for strings on the wire.
        control_choices: Extra control types to unpack responses into.
    """

    connect_timeout: t.Optional[float] = None
    operation_timeout: t.Optional[float] = None
    ssl_context: t.Optional[ssl.SSLContext] = None
    starttls: bool = False
    no_tls_verify: bool = False
    server_hostname: t.Optional[str] = None
    read_size: int = 65536
    string_encoding: str = "utf-8"
    control_choices: t.List[t.Type[LDAPControl]] = dataclasses.field(default_factory=list)

    def packing_options(self) -> PackingOptions:
        """Build the codec options for these settings."""
        control = ControlOptions(string_encoding=self.string_encoding)
        for control_type in self.control_choices:
            control.register(control_type)

        return PackingOptions(
            string_encoding=self.string_encoding,
            control=control,
            filter=FilterOptions(string_encoding=self.string_encoding),
        )

    def get_ssl_context(self) -> ssl.SSLContext:
        """Get the SSLContext to use for TLS."""
        if self.ssl_context:
            return self.ssl_context

        context = ssl.create_default_context()
        if self.no_tls_verify:
            context.check_hostname = False
            context.verify_mode = ssl.VerifyMode.CERT_NONE

        return context


class ConnectTarget(t.NamedTuple):
    """The parsed location of an LDAP server.

    Attributes:
        scheme: ``ldap``, ``ldaps``, or ``ldapi``.
        host: The hostname, empty for ``ldapi``.
        port: The TCP port, 0 for ``ldapi``.
        path: The Unix socket path for ``ldapi``, empty otherwise.
    """

    scheme: str
    host: str
    port: int
    path: str = ""

    @property
    def use_tls(self) -> bool:
        return self.scheme == "ldaps"


def parse_ldap_url(
    url: str,
) -> ConnectTarget:
    """Parse an LDAP URL.

    Only the scheme and authority of the URL are used, any DN, attributes or
    filter after them are ignored. The ``ldapi`` scheme uses the percent
    encoded socket path as the host, for example
    ``ldapi://%2Fvar%2Frun%2Fslapd%2Fldapi``.

    Args:
        url: The URL to parse.

    Returns:
        ConnectTarget: The connection details.

    Raises:
        ValueError: The URL is not a valid LDAP URL.
    """
    parsed = urllib.parse.urlsplit(url)
    scheme = parsed.scheme.lower()

    if scheme == "ldapi":
        path = urllib.parse.unquote(parsed.netloc)
        if not path:
            raise ValueError(f"ldapi URL '{url}' does not contain a socket path")

        return ConnectTarget(scheme=scheme, host="", port=0, path=path)

    if scheme not in DEFAULT_PORTS:
        raise ValueError(f"Unsupported LDAP URL scheme '{parsed.scheme}' in '{url}'")

    host = parsed.hostname
    if not host:
        raise ValueError(f"LDAP URL '{url}' does not contain a host")

    try:
        port = parsed.port
    except ValueError as e:
        raise ValueError(f"LDAP URL '{url}' has an invalid port: {e}") from e

    return ConnectTarget(
        scheme=scheme,
        host=host,
        port=port or DEFAULT_PORTS[scheme],
    )


async def open_stream(
    target: t.Optional[ConnectTarget],
    settings: ConnectionSettings,
    sock: t.Optional[socket.socket] = None,
) -> t.Tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    """Open the stream to the LDAP server.

    Args:
        target: The server to connect to, can be None when sock is set.
        settings: The connection settings.
        sock: An already connected socket to use instead of connecting.

    Returns:
        Tuple[asyncio.StreamReader, asyncio.StreamWriter]: The stream pair.
    """
    ssl_context: t.Optional[ssl.SSLContext] = None
    server_hostname: t.Optional[str] = None
    if target and target.use_tls:
        ssl_context = settings.get_ssl_context()
        server_hostname = settings.server_hostname or target.host

    if sock is not None:
        log.debug("Using existing socket %s", sock)
        coro = asyncio.open_connection(
            sock=sock,
            ssl=ssl_context,
            server_hostname=server_hostname,
            limit=settings.read_size,
        )

    elif target is None:
        raise ValueError("A connection target or socket must be specified")

    elif target.scheme == "ldapi":
        log.debug("Connecting to Unix socket %s", target.path)
        coro = asyncio.open_unix_connection(target.path, limit=settings.read_size)

    else:
        log.debug("Connecting to %s:%d", target.host, target.port)
        coro = asyncio.open_connection(
            target.host,
            target.port,
            ssl=ssl_context,
            server_hostname=server_hostname,
            limit=settings.read_size,
        )

    return await asyncio.wait_for(coro, settings.connect_timeout)


async def upgrade_stream(
    writer: asyncio.StreamWriter,
    ssl_context: ssl.SSLContext,
    server_hostname: t.Optional[str],
) -> None:
    """Upgrade the stream in place with TLS.

    Args:
        writer: The stream writer of the connection.
        ssl_context: The SSLContext used for the handshake.
        server_hostname: The hostname used to validate the certificate.
    """
    # start_tls was added in Python 3.11
    if not hasattr(writer, "start_tls"):
        raise NotImplementedError("Need Python 3.11 for StartTLS")

    await writer.start_tls(ssl_context, server_hostname=server_hostname)
