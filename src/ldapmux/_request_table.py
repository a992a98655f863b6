# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

from __future__ import annotations

import asyncio
import dataclasses
import logging
import typing as t

from ._messages import MAX_MESSAGE_ID, IntermediateResponse, LDAPMessage, SearchResultDone

log = logging.getLogger(__name__)


class ResponseChannel:
    """Delivers the responses of one request to the waiting caller.

    Messages are buffered until the caller retrieves them so a stream of
    responses received in one read is never lost. Once failed, any message
    still buffered is dropped and every following :meth:`get` raises the
    exception.

    Args:
        message_id: The message id of the request.
    """

    def __init__(
        self,
        message_id: int,
    ) -> None:
        self.message_id = message_id
        self._queue: asyncio.Queue[t.Union[LDAPMessage, BaseException]] = asyncio.Queue()
        self._exp: t.Optional[BaseException] = None

    @property
    def closed(self) -> bool:
        return self._exp is not None

    def put(
        self,
        msg: LDAPMessage,
    ) -> None:
        if self._exp is None:
            self._queue.put_nowait(msg)

    def fail(
        self,
        exp: BaseException,
    ) -> None:
        if self._exp is None:
            self._exp = exp
            while not self._queue.empty():
                self._queue.get_nowait()

            self._queue.put_nowait(exp)

    async def get(self) -> LDAPMessage:
        if self._exp is not None and self._queue.empty():
            raise self._exp

        value = await self._queue.get()
        if isinstance(value, BaseException):
            raise value

        return value


@dataclasses.dataclass
class RequestEntry:
    """An outstanding request waiting on responses.

    Args:
        message_id: The message id of the request.
        channel: The channel the responses are delivered to.
        expects_stream: The request has multiple responses that end with
            SearchResultDone.
        is_start_tls: The request is a StartTLS extended operation.
    """

    message_id: int
    channel: ResponseChannel
    expects_stream: bool = False
    is_start_tls: bool = False

    def is_terminal(
        self,
        msg: LDAPMessage,
    ) -> bool:
        if isinstance(msg, IntermediateResponse):
            return False

        return isinstance(msg, SearchResultDone) if self.expects_stream else True


class RequestTable:
    """The outstanding requests of a connection keyed by message id.

    The table is only used from the event loop of the connection so no
    locking is done.
    """

    def __init__(self) -> None:
        self._entries: t.Dict[int, RequestEntry] = {}
        self._next_id = 1

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def allocate_id(self) -> int:
        """Get the next free message id.

        Ids increase from 1 and wrap back to 1 after the maximum, any id
        still in the table is skipped.

        Returns:
            int: The message id to use for the next request.
        """
        if len(self._entries) >= MAX_MESSAGE_ID:
            raise RuntimeError("No free LDAP message ids available")

        while True:
            message_id = self._next_id
            self._next_id = 1 if message_id >= MAX_MESSAGE_ID else message_id + 1

            if message_id not in self._entries:
                return message_id

    def register(
        self,
        message_id: int,
        expects_stream: bool,
        is_start_tls: bool = False,
    ) -> ResponseChannel:
        """Register a request that waits for responses.

        Args:
            message_id: The message id of the request.
            expects_stream: The request is a search with multiple responses.
            is_start_tls: The request is a StartTLS extended operation.

        Returns:
            ResponseChannel: The channel the responses are delivered to.
        """
        if message_id in self._entries:
            raise ValueError(f"Message id {message_id} is already registered")

        channel = ResponseChannel(message_id)
        self._entries[message_id] = RequestEntry(
            message_id=message_id,
            channel=channel,
            expects_stream=expects_stream,
            is_start_tls=is_start_tls,
        )

        return channel

    def get(
        self,
        message_id: int,
    ) -> t.Optional[RequestEntry]:
        return self._entries.get(message_id, None)

    def deliver(
        self,
        msg: LDAPMessage,
    ) -> bool:
        """Deliver a response to the request it belongs to.

        The entry is removed once its final response is delivered.

        Args:
            msg: The response received.

        Returns:
            bool: True if delivered, False if no request with that id exists.
        """
        entry = self._entries.get(msg.message_id, None)
        if entry is None:
            return False

        if entry.is_terminal(msg):
            del self._entries[msg.message_id]

        entry.channel.put(msg)
        return True

    def remove(
        self,
        message_id: int,
    ) -> t.Optional[RequestEntry]:
        return self._entries.pop(message_id, None)

    def fail(
        self,
        message_id: int,
        exp: BaseException,
    ) -> bool:
        """Remove a request and fail its waiter with the exception given."""
        entry = self._entries.pop(message_id, None)
        if entry is None:
            return False

        entry.channel.fail(exp)
        return True

    def fail_all(
        self,
        exp: BaseException,
    ) -> None:
        """Remove every request and fail their waiters."""
        entries = list(self._entries.values())
        self._entries.clear()

        if entries:
            log.debug("Failing %d outstanding request(s): %s", len(entries), exp)

        for entry in entries:
            entry.channel.fail(exp)
