# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

from __future__ import annotations

import asyncio
import enum
import logging
import socket
import typing as t
import weakref

from ._authentication import AuthenticationCredential, SaslCredential, SimpleCredential
from ._connection import ConnectionState, LDAPConnection
from ._controls import LDAPControl, PagedResultControl
from ._exceptions import (
    ConnectionClosed,
    LDAPResultError,
    OperationCancelled,
    OperationTimeout,
    ProtocolError,
)
from ._extended import pack_password_modify, unpack_password_modify
from ._filter import FilterPresent, LDAPFilter
from ._messages import (
    AbandonRequest,
    AddRequest,
    AddResponse,
    BindRequest,
    BindResponse,
    CompareRequest,
    CompareResponse,
    DelRequest,
    DelResponse,
    DereferencingPolicy,
    ExtendedRequest,
    ExtendedResponse,
    IntermediateResponse,
    LDAPMessage,
    LDAPResultCode,
    ModifyChange,
    ModifyDNRequest,
    ModifyDNResponse,
    ModifyRequest,
    ModifyResponse,
    PartialAttribute,
    SearchRequest,
    SearchScope,
)
from ._request_table import ResponseChannel
from ._results import (
    BindResult,
    CompareResult,
    ExtendedResult,
    OperationResult,
    SearchResult,
    SearchStream,
)
from ._transport import ConnectionSettings, open_stream, parse_ldap_url

if t.TYPE_CHECKING:
    from .sasl import SaslProvider

log = logging.getLogger(__name__)

AttributeValues = t.Union[str, bytes, t.Iterable[t.Union[str, bytes]]]


class ExtendedOperations(str, enum.Enum):
    """Known LDAP Extended Operation Names."""

    LDAP_NOTICE_OF_DISCONNECTION = "1.3.6.1.4.1.1466.20036"
    LDAP_START_TLS = "1.3.6.1.4.1.1466.20037"
    LDAP_WHO_AM_I = "1.3.6.1.4.1.4203.1.11.3"
    LDAP_PASSWORD_MODIFY = "1.3.6.1.4.1.4203.1.11.1"


class _Default(enum.Enum):
    token = 0


_DEFAULT = _Default.token
TimeoutValue = t.Union[t.Optional[float], _Default]


async def connect(
    url: t.Optional[str] = None,
    settings: t.Optional[ConnectionSettings] = None,
    *,
    sock: t.Optional[socket.socket] = None,
) -> LDAPClient:
    """Connect to an LDAP server.

    Opens the transport, starts the connection I/O loop, and performs a
    StartTLS upgrade if requested in the settings.

    Args:
        url: The LDAP URL of the server, ``ldap://``, ``ldaps://`` or
            ``ldapi://``. Can be omitted when sock is set.
        settings: The connection settings.
        sock: An already connected socket to use.

    Returns:
        LDAPClient: The client for the new connection.
    """
    settings = settings or ConnectionSettings()
    target = parse_ldap_url(url) if url else None

    log.debug("LDAP connection state %s %s", ConnectionState.CONNECTING.name, url or sock)
    reader, writer = await open_stream(target, settings, sock=sock)

    connection = LDAPConnection(
        reader,
        writer,
        settings=settings,
        server_hostname=target.host if target else None,
    )
    connection.start()
    client = LDAPClient(connection)

    if settings.starttls:
        if target and target.use_tls:
            await connection.close(unbind=False)
            raise ValueError("Cannot use StartTLS on an ldaps:// connection")

        try:
            await client.start_tls()
        except BaseException:
            await connection.close(unbind=False)
            raise

    return client


class _SharedConnection:
    """Owned by every handle of a connection.

    Once the last handle is garbage collected without an unbind, the
    connection is told to unbind and close.
    """

    def __init__(
        self,
        connection: LDAPConnection,
    ) -> None:
        self.connection = connection
        self._finalizer = weakref.finalize(self, connection.close_nowait)

    def detach(self) -> None:
        self._finalizer.detach()


class LDAPClient:
    """The asyncio LDAP client.

    Every operation allocates a message id, encodes and queues the request,
    and waits for the responses routed back by the connection. Any number of
    operations can run concurrently from different tasks. Use :func:`connect`
    to create a client.

    A result code that is not ``SUCCESS`` is returned as data on the result
    object, only the bind helpers raise :class:`LDAPResultError`.

    Args:
        connection: The connection to use.
        timeout: The default operation timeout, defaults to the
            ``operation_timeout`` of the connection settings.
        controls: Controls to add to every request.
    """

    def __init__(
        self,
        connection: t.Union[LDAPConnection, _SharedConnection],
        timeout: TimeoutValue = _DEFAULT,
        controls: t.Optional[t.List[LDAPControl]] = None,
    ) -> None:
        if isinstance(connection, LDAPConnection):
            connection = _SharedConnection(connection)

        self._shared = connection
        self._connection = connection.connection
        self._timeout = self._connection.settings.operation_timeout if timeout is _DEFAULT else timeout
        self._controls = list(controls or [])
        self._last_message_id = 0

    async def __aenter__(self) -> LDAPClient:
        return self

    async def __aexit__(
        self,
        *args: t.Any,
        **kwargs: t.Any,
    ) -> None:
        await self.unbind()

    @property
    def connection(self) -> LDAPConnection:
        return self._connection

    @property
    def state(self) -> ConnectionState:
        return self._connection.state

    @property
    def last_message_id(self) -> int:
        """The message id of the last operation started by this handle."""
        return self._last_message_id

    @property
    def orphaned_responses(self) -> int:
        """Number of responses received for requests no longer outstanding."""
        return self._connection.orphaned_responses

    def with_timeout(
        self,
        timeout: t.Optional[float],
    ) -> LDAPClient:
        """Get a handle on the same connection with a new default timeout."""
        return LDAPClient(self._shared, timeout=timeout, controls=self._controls)

    def with_controls(
        self,
        controls: t.List[LDAPControl],
    ) -> LDAPClient:
        """Get a handle on the same connection that sends these controls."""
        return LDAPClient(self._shared, timeout=self._timeout, controls=controls)

    async def bind(
        self,
        name: str,
        authentication: AuthenticationCredential,
        *,
        controls: t.Optional[t.List[LDAPControl]] = None,
        timeout: TimeoutValue = _DEFAULT,
    ) -> BindResult:
        """Send a BindRequest.

        The result is returned as is, a failed bind does not raise.

        Args:
            name: The DN to bind as.
            authentication: The credential to authenticate with.
            controls: Controls to send with the request.
            timeout: Override the operation timeout.

        Returns:
            BindResult: The bind result.
        """
        msg = await self._request(
            lambda mid, c: BindRequest(
                message_id=mid,
                controls=c,
                version=3,
                name=name,
                authentication=authentication,
            ),
            BindResponse,
            controls,
            timeout,
        )
        return BindResult.from_message(msg)

    async def bind_simple(
        self,
        name: t.Optional[str] = None,
        password: t.Optional[str] = None,
        *,
        controls: t.Optional[t.List[LDAPControl]] = None,
        timeout: TimeoutValue = _DEFAULT,
    ) -> BindResult:
        """Bind using Simple Auth.

        Without a name the bind is anonymous, with a name and no password it
        is an unauthenticated bind which most servers reject.

        Args:
            name: The DN or server specific username to bind with.
            password: The password for the user.

        Raises:
            LDAPResultError: The bind failed.
        """
        result = await self.bind(
            name or "",
            SimpleCredential(password or ""),
            controls=controls,
            timeout=timeout,
        )
        return result.success()

    async def bind_sasl(
        self,
        provider: SaslProvider,
        *,
        controls: t.Optional[t.List[LDAPControl]] = None,
        timeout: TimeoutValue = _DEFAULT,
    ) -> BindResult:
        """Bind using SASL.

        Exchanges tokens with the server until the provider is complete. If
        the provider negotiated a security layer it is installed on the
        connection and all further traffic is wrapped.

        Args:
            provider: The SASL provider, for example :class:`External`,
                :class:`Gssapi` or :class:`GssSpnego`.

        Raises:
            LDAPResultError: The bind failed.
        """
        tls_channel = self._connection.ssl_object
        in_token: t.Optional[bytes] = None
        result: t.Optional[BindResult] = None

        while True:
            out_token = provider.step(in_token=in_token, tls_channel=tls_channel)
            if out_token is None:
                break

            result = await self.bind(
                "",
                SaslCredential(provider.mechanism, out_token),
                controls=controls,
                timeout=timeout,
            )
            if result.result_code not in [
                LDAPResultCode.SUCCESS,
                LDAPResultCode.SASL_BIND_IN_PROGRESS,
            ]:
                raise LDAPResultError("SASL bind failed", result.result)

            in_token = result.server_sasl_creds

        if result is None:
            raise ValueError(f"SASL provider {provider.mechanism} did not produce a token")

        if result.result_code != LDAPResultCode.SUCCESS:
            raise LDAPResultError("SASL bind failed", result.result)

        self._connection.install_sasl(provider)

        return result

    async def unbind(self) -> None:
        """Send an UnbindRequest and close the connection.

        Any operation still waiting fails with :class:`ConnectionClosed` as
        does any operation started afterwards on any handle of the connection.
        """
        self._shared.detach()
        await self._connection.close(unbind=True)

    async def search(
        self,
        base_object: t.Optional[str] = None,
        scope: t.Union[int, SearchScope] = SearchScope.SUBTREE,
        filter: t.Optional[t.Union[str, LDAPFilter]] = None,
        attributes: t.Optional[t.List[str]] = None,
        *,
        deref_aliases: t.Union[int, DereferencingPolicy] = DereferencingPolicy.NEVER,
        size_limit: int = 0,
        time_limit: int = 0,
        types_only: bool = False,
        controls: t.Optional[t.List[LDAPControl]] = None,
        timeout: TimeoutValue = _DEFAULT,
    ) -> SearchResult:
        """Search the directory.

        Waits for every response of the search and returns them aggregated.
        A non success result, for example ``NO_SUCH_OBJECT``, is returned as
        data.

        Args:
            base_object: The DN to search from, defaults to the root DSE.
            scope: The search scope.
            filter: The filter string or object, defaults to
                ``(objectClass=*)``.
            attributes: The attributes to return, defaults to all user
                attributes.
            deref_aliases: The alias dereferencing policy.
            size_limit: The maximum number of entries to return.
            time_limit: The server side time limit in seconds.
            types_only: Only return the attribute names.
            controls: Controls to send with the request.
            timeout: Override the operation timeout, applies to each response.

        Returns:
            SearchResult: The entries, references and final result.
        """
        stream = await self.search_stream(
            base_object,
            scope,
            filter,
            attributes,
            deref_aliases=deref_aliases,
            size_limit=size_limit,
            time_limit=time_limit,
            types_only=types_only,
            controls=controls,
            timeout=timeout,
        )
        return await stream.finish()

    async def search_stream(
        self,
        base_object: t.Optional[str] = None,
        scope: t.Union[int, SearchScope] = SearchScope.SUBTREE,
        filter: t.Optional[t.Union[str, LDAPFilter]] = None,
        attributes: t.Optional[t.List[str]] = None,
        *,
        deref_aliases: t.Union[int, DereferencingPolicy] = DereferencingPolicy.NEVER,
        size_limit: int = 0,
        time_limit: int = 0,
        types_only: bool = False,
        controls: t.Optional[t.List[LDAPControl]] = None,
        timeout: TimeoutValue = _DEFAULT,
    ) -> SearchStream:
        """Start a search and iterate the responses as they arrive.

        Takes the same arguments as :meth:`search`.

        Returns:
            SearchStream: The stream of search responses.
        """
        ldap_filter: LDAPFilter
        if isinstance(filter, LDAPFilter):
            ldap_filter = filter
        elif filter:
            ldap_filter = LDAPFilter.from_string(filter)
        else:
            ldap_filter = FilterPresent("objectClass")

        message_id, channel = self._submit(
            lambda mid, c: SearchRequest(
                message_id=mid,
                controls=c,
                base_object=base_object or "",
                scope=SearchScope(scope),
                deref_aliases=DereferencingPolicy(deref_aliases),
                size_limit=size_limit,
                time_limit=time_limit,
                types_only=types_only,
                filter=ldap_filter,
                attributes=attributes or [],
            ),
            controls,
            expects_stream=True,
        )
        return SearchStream(self, message_id, channel, self._get_timeout(timeout))

    async def search_paged(
        self,
        base_object: t.Optional[str] = None,
        scope: t.Union[int, SearchScope] = SearchScope.SUBTREE,
        filter: t.Optional[t.Union[str, LDAPFilter]] = None,
        attributes: t.Optional[t.List[str]] = None,
        *,
        page_size: int = 500,
        controls: t.Optional[t.List[LDAPControl]] = None,
        timeout: TimeoutValue = _DEFAULT,
        **kwargs: t.Any,
    ) -> t.AsyncIterator[SearchResult]:
        """Search using the Simple Paged Results control.

        Yields the result of each page until the server returns an empty
        cookie or a page fails. The caller checks each page result.

        Args:
            page_size: The number of entries requested per page.
            kwargs: Other arguments for :meth:`search`.
        """
        cookie = b""
        while True:
            page_controls = list(controls or [])
            page_controls.append(PagedResultControl(critical=True, size=page_size, cookie=cookie))

            result = await self.search(
                base_object,
                scope,
                filter,
                attributes,
                controls=page_controls,
                timeout=timeout,
                **kwargs,
            )
            yield result

            paged = result.get_control(PagedResultControl)
            if result.result_code != LDAPResultCode.SUCCESS or not paged or not paged.cookie:
                break

            cookie = paged.cookie

    async def add(
        self,
        entry: str,
        attributes: t.Union[t.Mapping[str, AttributeValues], t.List[PartialAttribute]],
        *,
        controls: t.Optional[t.List[LDAPControl]] = None,
        timeout: TimeoutValue = _DEFAULT,
    ) -> OperationResult:
        """Add a new entry.

        Args:
            entry: The DN of the entry.
            attributes: The attributes of the entry, either as a mapping of
                names to values or a list of :class:`PartialAttribute`.
                String values are encoded with the connection encoding.
        """
        attrs = self._to_attributes(attributes)
        msg = await self._request(
            lambda mid, c: AddRequest(message_id=mid, controls=c, entry=entry, attributes=attrs),
            AddResponse,
            controls,
            timeout,
        )
        return OperationResult.from_message(msg)

    async def modify(
        self,
        entry: str,
        changes: t.List[ModifyChange],
        *,
        controls: t.Optional[t.List[LDAPControl]] = None,
        timeout: TimeoutValue = _DEFAULT,
    ) -> OperationResult:
        """Modify the attributes of an entry.

        Args:
            entry: The DN of the entry.
            changes: The changes to apply in order.
        """
        msg = await self._request(
            lambda mid, c: ModifyRequest(message_id=mid, controls=c, object=entry, changes=changes),
            ModifyResponse,
            controls,
            timeout,
        )
        return OperationResult.from_message(msg)

    async def modify_dn(
        self,
        entry: str,
        new_rdn: str,
        delete_old_rdn: bool = True,
        new_superior: t.Optional[str] = None,
        *,
        controls: t.Optional[t.List[LDAPControl]] = None,
        timeout: TimeoutValue = _DEFAULT,
    ) -> OperationResult:
        """Rename or move an entry."""
        msg = await self._request(
            lambda mid, c: ModifyDNRequest(
                message_id=mid,
                controls=c,
                entry=entry,
                new_rdn=new_rdn,
                delete_old_rdn=delete_old_rdn,
                new_superior=new_superior,
            ),
            ModifyDNResponse,
            controls,
            timeout,
        )
        return OperationResult.from_message(msg)

    async def delete(
        self,
        entry: str,
        *,
        controls: t.Optional[t.List[LDAPControl]] = None,
        timeout: TimeoutValue = _DEFAULT,
    ) -> OperationResult:
        """Delete a leaf entry."""
        msg = await self._request(
            lambda mid, c: DelRequest(message_id=mid, controls=c, entry=entry),
            DelResponse,
            controls,
            timeout,
        )
        return OperationResult.from_message(msg)

    async def compare(
        self,
        entry: str,
        attribute: str,
        value: t.Union[str, bytes],
        *,
        controls: t.Optional[t.List[LDAPControl]] = None,
        timeout: TimeoutValue = _DEFAULT,
    ) -> CompareResult:
        """Compare an attribute value of an entry.

        Use :meth:`CompareResult.equal` to get the answer.
        """
        b_value = self._to_bytes(value)
        msg = await self._request(
            lambda mid, c: CompareRequest(
                message_id=mid,
                controls=c,
                entry=entry,
                attribute=attribute,
                value=b_value,
            ),
            CompareResponse,
            controls,
            timeout,
        )
        return CompareResult.from_message(msg)

    async def extended(
        self,
        name: str,
        value: t.Optional[bytes] = None,
        *,
        controls: t.Optional[t.List[LDAPControl]] = None,
        timeout: TimeoutValue = _DEFAULT,
    ) -> ExtendedResult:
        """Send an extended operation.

        Args:
            name: The OID of the operation.
            value: The operation specific request value.
        """
        msg = await self._request(
            lambda mid, c: ExtendedRequest(message_id=mid, controls=c, name=name, value=value),
            ExtendedResponse,
            controls,
            timeout,
        )
        return ExtendedResult.from_message(msg)

    async def abandon(
        self,
        message_id: int,
        *,
        controls: t.Optional[t.List[LDAPControl]] = None,
    ) -> None:
        """Abandon an outstanding operation.

        The waiter of the operation fails with :class:`OperationCancelled`
        straight away. The AbandonRequest is sent without waiting, the server
        may still complete the operation.

        Args:
            message_id: The message id of the operation to abandon.
        """
        self._connection.release_request(
            message_id,
            OperationCancelled(f"LDAP operation {message_id} was abandoned", message_id),
        )
        self._send_abandon(message_id, controls)

    async def start_tls(
        self,
        *,
        timeout: TimeoutValue = _DEFAULT,
    ) -> ExtendedResult:
        """LDAP StartTLS.

        Upgrades the connection with TLS using the SSLContext of the
        connection settings. Requests started while the handshake is in
        progress are sent once it is complete.

        Raises:
            LDAPResultError: The server refused StartTLS.
        """
        msg = await self._request(
            lambda mid, c: ExtendedRequest(
                message_id=mid,
                controls=c,
                name=ExtendedOperations.LDAP_START_TLS.value,
            ),
            ExtendedResponse,
            None,
            timeout,
            is_start_tls=True,
        )
        return ExtendedResult.from_message(msg).success()

    async def whoami(
        self,
        *,
        timeout: TimeoutValue = _DEFAULT,
    ) -> str:
        """LDAP Who Am I.

        Returns:
            str: The authorization identity of the connection, empty for an
            anonymous connection.

        Raises:
            LDAPResultError: The operation failed.
        """
        result = await self.extended(ExtendedOperations.LDAP_WHO_AM_I.value, timeout=timeout)
        result.success()

        return result.value.decode(self._connection.settings.string_encoding) if result.value else ""

    async def password_modify(
        self,
        user: t.Optional[str] = None,
        old_password: t.Optional[str] = None,
        new_password: t.Optional[str] = None,
        *,
        controls: t.Optional[t.List[LDAPControl]] = None,
        timeout: TimeoutValue = _DEFAULT,
    ) -> t.Optional[str]:
        """LDAP Password Modify extended operation.

        Args:
            user: The user to change, defaults to the bound user.
            old_password: The current password.
            new_password: The new password, the server generates one if not
                set.

        Returns:
            Optional[str]: The password generated by the server if any.

        Raises:
            LDAPResultError: The operation failed.
        """
        encoding = self._connection.settings.string_encoding
        value = pack_password_modify(
            user.encode(encoding) if user is not None else None,
            old_password.encode(encoding) if old_password is not None else None,
            new_password.encode(encoding) if new_password is not None else None,
        )
        result = await self.extended(
            ExtendedOperations.LDAP_PASSWORD_MODIFY.value,
            value,
            controls=controls,
            timeout=timeout,
        )
        result.success()

        gen_password = unpack_password_modify(result.value) if result.value else None
        return gen_password.decode(encoding) if gen_password is not None else None

    async def next_notification(self) -> ExtendedResponse:
        """Wait for the next unsolicited notification from the server."""
        return await self._connection.next_notification()

    def _get_timeout(
        self,
        timeout: TimeoutValue,
    ) -> t.Optional[float]:
        return self._timeout if timeout is _DEFAULT else timeout

    def _submit(
        self,
        build: t.Callable[[int, t.List[LDAPControl]], LDAPMessage],
        controls: t.Optional[t.List[LDAPControl]],
        expects_stream: bool = False,
        is_start_tls: bool = False,
    ) -> t.Tuple[int, ResponseChannel]:
        connection = self._connection
        message_id = connection.next_message_id()
        msg = build(message_id, self._controls + list(controls or []))
        channel = connection.send(msg, expects_stream=expects_stream, is_start_tls=is_start_tls)
        self._last_message_id = message_id

        return message_id, t.cast(ResponseChannel, channel)

    async def _request(
        self,
        build: t.Callable[[int, t.List[LDAPControl]], LDAPMessage],
        response_type: t.Type[LDAPMessage],
        controls: t.Optional[t.List[LDAPControl]],
        timeout: TimeoutValue,
        is_start_tls: bool = False,
    ) -> LDAPMessage:
        message_id, channel = self._submit(build, controls, is_start_tls=is_start_tls)
        op_timeout = self._get_timeout(timeout)

        while True:
            msg = await self._wait_response(message_id, channel, op_timeout)
            if isinstance(msg, IntermediateResponse):
                log.debug("Ignoring IntermediateResponse %s for message_id %d", msg.name, message_id)
                continue

            elif not isinstance(msg, response_type):
                exp = ProtocolError(
                    f"Received {type(msg).__name__} for message_id {message_id}, expecting {response_type.__name__}",
                    msg,
                )
                self._connection.fail_protocol(exp)
                raise exp

            return msg

    async def _wait_response(
        self,
        message_id: int,
        channel: ResponseChannel,
        timeout: t.Optional[float],
    ) -> LDAPMessage:
        try:
            return await asyncio.wait_for(channel.get(), timeout)

        except asyncio.TimeoutError:
            if channel.closed:
                # Failed by the connection at the same time as the timeout.
                return await channel.get()

            log.debug("LDAP operation %d timed out after %s seconds", message_id, timeout)
            exp = OperationTimeout(f"LDAP operation {message_id} timed out after {timeout} seconds", message_id)
            self._connection.release_request(message_id, exp)
            self._send_abandon(message_id)
            raise exp from None

        except asyncio.CancelledError:
            if self._connection.release_request(message_id):
                self._send_abandon(message_id)

            raise

    def _send_abandon(
        self,
        message_id: int,
        controls: t.Optional[t.List[LDAPControl]] = None,
    ) -> None:
        connection = self._connection
        if connection.is_closed:
            return

        try:
            connection.send(
                AbandonRequest(
                    message_id=connection.next_message_id(),
                    controls=self._controls + list(controls or []),
                    abandon_id=message_id,
                ),
                expects_response=False,
            )
        except ConnectionClosed:
            pass

    def _to_bytes(
        self,
        value: t.Union[str, bytes],
    ) -> bytes:
        if isinstance(value, str):
            return value.encode(self._connection.settings.string_encoding)

        return value

    def _to_attributes(
        self,
        attributes: t.Union[t.Mapping[str, AttributeValues], t.List[PartialAttribute]],
    ) -> t.List[PartialAttribute]:
        if isinstance(attributes, list):
            return attributes

        attrs = []
        for name, values in attributes.items():
            if isinstance(values, (str, bytes)):
                values = [values]

            attrs.append(PartialAttribute(name=name, values=[self._to_bytes(v) for v in values]))

        return attrs
