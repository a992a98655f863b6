# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

from __future__ import annotations

import asyncio
import logging
import socket
import threading
import typing as t
import weakref

from ._client import _DEFAULT, AttributeValues, LDAPClient, TimeoutValue, connect
from ._connection import ConnectionState
from ._controls import LDAPControl
from ._exceptions import ConnectionClosed
from ._filter import LDAPFilter
from ._messages import (
    DereferencingPolicy,
    ExtendedResponse,
    ModifyChange,
    PartialAttribute,
    SearchScope,
)
from ._results import (
    BindResult,
    CompareResult,
    ExtendedResult,
    OperationResult,
    SearchItem,
    SearchResult,
    SearchStream,
)
from ._transport import ConnectionSettings

if t.TYPE_CHECKING:
    from .sasl import SaslProvider

log = logging.getLogger(__name__)

T = t.TypeVar("T")


def connect_sync(
    url: t.Optional[str] = None,
    settings: t.Optional[ConnectionSettings] = None,
    *,
    sock: t.Optional[socket.socket] = None,
) -> SyncLDAPClient:
    """Connect to an LDAP server with a blocking client.

    See :func:`connect` for the arguments.

    Returns:
        SyncLDAPClient: The blocking client for the new connection.
    """
    runner = _LoopRunner()
    try:
        client = runner.run(connect(url, settings, sock=sock))
    except BaseException:
        runner.close()
        raise

    runner.own(client)
    return SyncLDAPClient(client, runner)


def _close_runner(
    client: LDAPClient,
    loop: asyncio.AbstractEventLoop,
    lock: threading.RLock,
) -> None:
    # Best effort, another thread may be using the loop.
    if loop.is_closed() or not lock.acquire(blocking=False):
        return

    try:
        if not client.connection.is_closed:
            loop.run_until_complete(client.unbind())
        loop.close()
    except Exception as e:
        log.debug("Failed to close LDAP connection on collection: %s", e)
    finally:
        lock.release()


class _LoopRunner:
    """The private event loop of a sync connection and the lock serializing it."""

    def __init__(self) -> None:
        self.loop = asyncio.new_event_loop()
        self.lock = threading.RLock()
        self._finalizer: t.Optional[weakref.finalize] = None

    @property
    def closed(self) -> bool:
        return self.loop.is_closed()

    def own(
        self,
        client: LDAPClient,
    ) -> None:
        """Unbind the client when the runner is collected without being closed."""
        self._finalizer = weakref.finalize(self, _close_runner, client, self.loop, self.lock)

    def run(
        self,
        coro: t.Awaitable[T],
    ) -> T:
        with self.lock:
            if self.loop.is_closed():
                if asyncio.iscoroutine(coro):
                    coro.close()
                raise ConnectionClosed("LDAP connection has been closed")

            return self.loop.run_until_complete(coro)

    def close(self) -> None:
        if self._finalizer:
            self._finalizer.detach()

        with self.lock:
            if not self.loop.is_closed():
                self.loop.run_until_complete(self.loop.shutdown_asyncgens())
                self.loop.close()


class SyncSearchStream:
    """Blocking iterator over the responses of one search.

    The lock of the client is held from the moment the search is started
    until the stream is exhausted, finished, abandoned or closed. Other
    threads using the same client block in the meantime. The stream must be
    consumed on the thread that started it.

    This is created by :meth:`SyncLDAPClient.search_stream`.
    """

    def __init__(
        self,
        runner: _LoopRunner,
        stream: SearchStream,
    ) -> None:
        self._runner = runner
        self._stream = stream
        self._released = False

    @property
    def message_id(self) -> int:
        return self._stream.message_id

    @property
    def done(self) -> bool:
        return self._stream.done

    def __iter__(self) -> SyncSearchStream:
        return self

    def __next__(self) -> SearchItem:
        if self._released:
            raise StopIteration

        try:
            return self._runner.run(self._stream.__anext__())
        except StopAsyncIteration:
            self.close()
            raise StopIteration from None
        except BaseException:
            self.close()
            raise

    def __enter__(self) -> SyncSearchStream:
        return self

    def __exit__(self, *args: t.Any, **kwargs: t.Any) -> None:
        if not self._released and not self.done:
            self.abandon()
        self.close()

    def finish(self) -> SearchResult:
        """Read the remaining responses and return the aggregated result."""
        try:
            return self._runner.run(self._stream.finish())
        finally:
            self.close()

    def abandon(self) -> None:
        """Abandon the search and release the client."""
        try:
            if not self._runner.closed:
                self._runner.run(self._stream.abandon())
        finally:
            self.close()

    def close(self) -> None:
        """Release the client lock without reading the remaining responses."""
        if not self._released:
            self._released = True
            self._runner.lock.release()


class SyncLDAPClient:
    """The blocking LDAP client.

    Runs the asyncio :class:`LDAPClient` on a private event loop. Each call
    takes the client lock and runs one operation to completion so calls from
    multiple threads are serialized. The exceptions raised are the same as the
    asyncio client. Use :func:`connect_sync` to create a client.

    The connection I/O only runs while a call is in progress, unsolicited
    notifications are processed on the next call.
    """

    def __init__(
        self,
        client: LDAPClient,
        runner: _LoopRunner,
    ) -> None:
        self._client = client
        self._runner = runner

    def __enter__(self) -> SyncLDAPClient:
        return self

    def __exit__(self, *args: t.Any, **kwargs: t.Any) -> None:
        self.close()

    @property
    def state(self) -> ConnectionState:
        return self._client.state

    @property
    def last_message_id(self) -> int:
        return self._client.last_message_id

    @property
    def orphaned_responses(self) -> int:
        return self._client.orphaned_responses

    def with_timeout(
        self,
        timeout: t.Optional[float],
    ) -> SyncLDAPClient:
        """Get a handle on the same connection with a new default timeout."""
        return SyncLDAPClient(self._client.with_timeout(timeout), self._runner)

    def with_controls(
        self,
        controls: t.List[LDAPControl],
    ) -> SyncLDAPClient:
        """Get a handle on the same connection that sends these controls."""
        return SyncLDAPClient(self._client.with_controls(controls), self._runner)

    def close(self) -> None:
        """Unbind and close the connection and the event loop."""
        with self._runner.lock:
            if not self._runner.closed:
                try:
                    self._runner.run(self._client.unbind())
                finally:
                    self._runner.close()

    def unbind(self) -> None:
        self.close()

    def bind(
        self,
        name: str,
        authentication: t.Any,
        *,
        controls: t.Optional[t.List[LDAPControl]] = None,
        timeout: TimeoutValue = _DEFAULT,
    ) -> BindResult:
        return self._runner.run(self._client.bind(name, authentication, controls=controls, timeout=timeout))

    def bind_simple(
        self,
        name: t.Optional[str] = None,
        password: t.Optional[str] = None,
        *,
        controls: t.Optional[t.List[LDAPControl]] = None,
        timeout: TimeoutValue = _DEFAULT,
    ) -> BindResult:
        return self._runner.run(self._client.bind_simple(name, password, controls=controls, timeout=timeout))

    def bind_sasl(
        self,
        provider: SaslProvider,
        *,
        controls: t.Optional[t.List[LDAPControl]] = None,
        timeout: TimeoutValue = _DEFAULT,
    ) -> BindResult:
        return self._runner.run(self._client.bind_sasl(provider, controls=controls, timeout=timeout))

    def search(
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
        return self._runner.run(
            self._client.search(
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
        )

    def search_stream(
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
    ) -> SyncSearchStream:
        """Start a search and iterate the responses as they arrive.

        The client is locked to the calling thread until the returned stream
        is exhausted or closed.
        """
        self._runner.lock.acquire()
        try:
            stream = self._runner.run(
                self._client.search_stream(
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
            )
        except BaseException:
            self._runner.lock.release()
            raise

        return SyncSearchStream(self._runner, stream)

    def search_paged(
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
    ) -> t.Iterator[SearchResult]:
        pages = self._client.search_paged(
            base_object,
            scope,
            filter,
            attributes,
            page_size=page_size,
            controls=controls,
            timeout=timeout,
            **kwargs,
        )
        try:
            while True:
                try:
                    page = self._runner.run(pages.__anext__())
                except StopAsyncIteration:
                    return

                yield page

        finally:
            if not self._runner.closed:
                self._runner.run(pages.aclose())

    def add(
        self,
        entry: str,
        attributes: t.Union[t.Mapping[str, AttributeValues], t.List[PartialAttribute]],
        *,
        controls: t.Optional[t.List[LDAPControl]] = None,
        timeout: TimeoutValue = _DEFAULT,
    ) -> OperationResult:
        return self._runner.run(self._client.add(entry, attributes, controls=controls, timeout=timeout))

    def modify(
        self,
        entry: str,
        changes: t.List[ModifyChange],
        *,
        controls: t.Optional[t.List[LDAPControl]] = None,
        timeout: TimeoutValue = _DEFAULT,
    ) -> OperationResult:
        return self._runner.run(self._client.modify(entry, changes, controls=controls, timeout=timeout))

    def modify_dn(
        self,
        entry: str,
        new_rdn: str,
        delete_old_rdn: bool = True,
        new_superior: t.Optional[str] = None,
        *,
        controls: t.Optional[t.List[LDAPControl]] = None,
        timeout: TimeoutValue = _DEFAULT,
    ) -> OperationResult:
        return self._runner.run(
            self._client.modify_dn(
                entry,
                new_rdn,
                delete_old_rdn,
                new_superior,
                controls=controls,
                timeout=timeout,
            )
        )

    def delete(
        self,
        entry: str,
        *,
        controls: t.Optional[t.List[LDAPControl]] = None,
        timeout: TimeoutValue = _DEFAULT,
    ) -> OperationResult:
        return self._runner.run(self._client.delete(entry, controls=controls, timeout=timeout))

    def compare(
        self,
        entry: str,
        attribute: str,
        value: t.Union[str, bytes],
        *,
        controls: t.Optional[t.List[LDAPControl]] = None,
        timeout: TimeoutValue = _DEFAULT,
    ) -> CompareResult:
        return self._runner.run(self._client.compare(entry, attribute, value, controls=controls, timeout=timeout))

    def extended(
        self,
        name: str,
        value: t.Optional[bytes] = None,
        *,
        controls: t.Optional[t.List[LDAPControl]] = None,
        timeout: TimeoutValue = _DEFAULT,
    ) -> ExtendedResult:
        return self._runner.run(self._client.extended(name, value, controls=controls, timeout=timeout))

    def abandon(
        self,
        message_id: int,
        *,
        controls: t.Optional[t.List[LDAPControl]] = None,
    ) -> None:
        self._runner.run(self._client.abandon(message_id, controls=controls))

    def start_tls(
        self,
        *,
        timeout: TimeoutValue = _DEFAULT,
    ) -> ExtendedResult:
        return self._runner.run(self._client.start_tls(timeout=timeout))

    def whoami(
        self,
        *,
        timeout: TimeoutValue = _DEFAULT,
    ) -> str:
        return self._runner.run(self._client.whoami(timeout=timeout))

    def password_modify(
        self,
        user: t.Optional[str] = None,
        old_password: t.Optional[str] = None,
        new_password: t.Optional[str] = None,
        *,
        controls: t.Optional[t.List[LDAPControl]] = None,
        timeout: TimeoutValue = _DEFAULT,
    ) -> t.Optional[str]:
        return self._runner.run(
            self._client.password_modify(
                user,
                old_password,
                new_password,
                controls=controls,
                timeout=timeout,
            )
        )

    def next_notification(
        self,
        timeout: t.Optional[float] = None,
    ) -> ExtendedResponse:
        """Wait for the next unsolicited notification.

        The client is locked while waiting, use a timeout to avoid blocking
        other threads forever.

        Raises:
            asyncio.TimeoutError: No notification was received in time.
        """
        return self._runner.run(asyncio.wait_for(self._client.next_notification(), timeout))
