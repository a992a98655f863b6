# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

from __future__ import annotations

import dataclasses
import enum
import typing as t

from ._controls import LDAPControl
from ._exceptions import LDAPResultError, ProtocolError
from ._messages import (
    BindResponse,
    ExtendedResponse,
    IntermediateResponse,
    LDAPMessage,
    LDAPResult,
    LDAPResultCode,
    SearchResultDone,
    SearchResultEntry,
    SearchResultReference,
)

if t.TYPE_CHECKING:
    from ._client import LDAPClient
    from ._request_table import ResponseChannel

ControlType = t.TypeVar("ControlType", bound=LDAPControl)
ResultType = t.TypeVar("ResultType", bound="OperationResult")

SearchItem = t.Union[SearchResultEntry, SearchResultReference, IntermediateResponse]

_NON_ERROR_CODES = [
    LDAPResultCode.SUCCESS,
    LDAPResultCode.COMPARE_FALSE,
    LDAPResultCode.COMPARE_TRUE,
    LDAPResultCode.REFERRAL,
]


def _get_control(
    controls: t.List[LDAPControl],
    control_type: t.Type[ControlType],
) -> t.Optional[ControlType]:
    return next((c for c in controls if isinstance(c, control_type)), None)


@dataclasses.dataclass(frozen=True)
class OperationResult:
    """The result of a single response operation.

    A result code that is not ``SUCCESS`` is data, use :meth:`success` or
    :meth:`non_error` to turn it into an exception.

    Args:
        message_id: The message id of the operation.
        result: The LDAPResult returned by the server.
        controls: The controls returned with the response.
    """

    message_id: int
    result: LDAPResult
    controls: t.List[LDAPControl] = dataclasses.field(default_factory=list)

    @property
    def result_code(self) -> LDAPResultCode:
        return self.result.result_code

    def get_control(
        self,
        control_type: t.Type[ControlType],
    ) -> t.Optional[ControlType]:
        """Get the first response control of the type specified."""
        return _get_control(self.controls, control_type)

    def success(self: ResultType) -> ResultType:
        """Raise :class:`LDAPResultError` unless the result is ``SUCCESS``."""
        if self.result.result_code != LDAPResultCode.SUCCESS:
            raise LDAPResultError("operation failed", self.result)

        return self

    def non_error(self: ResultType) -> ResultType:
        """Like :meth:`success` but also accepts compare and referral codes."""
        if self.result.result_code not in _NON_ERROR_CODES:
            raise LDAPResultError("operation failed", self.result)

        return self

    @classmethod
    def from_message(
        cls,
        msg: LDAPMessage,
    ) -> OperationResult:
        return cls(
            message_id=msg.message_id,
            result=getattr(msg, "result"),
            controls=msg.controls,
        )


@dataclasses.dataclass(frozen=True)
class BindResult(OperationResult):
    """The result of a bind operation.

    Args:
        server_sasl_creds: The SASL token the server returned.
    """

    server_sasl_creds: t.Optional[bytes] = None

    @classmethod
    def from_message(
        cls,
        msg: LDAPMessage,
    ) -> BindResult:
        msg = t.cast(BindResponse, msg)
        return cls(
            message_id=msg.message_id,
            result=msg.result,
            controls=msg.controls,
            server_sasl_creds=msg.server_sasl_creds,
        )


@dataclasses.dataclass(frozen=True)
class CompareResult(OperationResult):
    """The result of a compare operation."""

    def equal(self) -> bool:
        """Whether the compared value matched.

        Raises:
            LDAPResultError: The server did not return a compare result.
        """
        if self.result.result_code == LDAPResultCode.COMPARE_TRUE:
            return True

        elif self.result.result_code == LDAPResultCode.COMPARE_FALSE:
            return False

        raise LDAPResultError("compare failed", self.result)


@dataclasses.dataclass(frozen=True)
class ExtendedResult(OperationResult):
    """The result of an extended operation.

    Args:
        name: The response OID, if returned.
        value: The response value, if returned.
    """

    name: t.Optional[str] = None
    value: t.Optional[bytes] = None

    @classmethod
    def from_message(
        cls,
        msg: LDAPMessage,
    ) -> ExtendedResult:
        msg = t.cast(ExtendedResponse, msg)
        return cls(
            message_id=msg.message_id,
            result=msg.result,
            controls=msg.controls,
            name=msg.name,
            value=msg.value,
        )


@dataclasses.dataclass(frozen=True)
class SearchResult(OperationResult):
    """The aggregated result of a search operation.

    Args:
        entries: The entries in the order they were received.
        referrals: The search result references in the order they were
            received.
        intermediates: Any intermediate responses received.
    """

    entries: t.List[SearchResultEntry] = dataclasses.field(default_factory=list)
    referrals: t.List[SearchResultReference] = dataclasses.field(default_factory=list)
    intermediates: t.List[IntermediateResponse] = dataclasses.field(default_factory=list)


class SearchState(enum.Enum):
    AWAITING = enum.auto()
    ACCUMULATING = enum.auto()
    DONE = enum.auto()


class SearchAccumulator:
    """Collects the responses of one search.

    Args:
        message_id: The message id of the search.
    """

    def __init__(
        self,
        message_id: int,
    ) -> None:
        self.message_id = message_id
        self.state = SearchState.AWAITING
        self.entries: t.List[SearchResultEntry] = []
        self.references: t.List[SearchResultReference] = []
        self.intermediates: t.List[IntermediateResponse] = []
        self._done: t.Optional[SearchResultDone] = None

    def add(
        self,
        msg: LDAPMessage,
    ) -> None:
        if self.state == SearchState.DONE:
            raise ProtocolError(f"Received {type(msg).__name__} after SearchResultDone", msg)

        if isinstance(msg, SearchResultEntry):
            self.entries.append(msg)

        elif isinstance(msg, SearchResultReference):
            self.references.append(msg)

        elif isinstance(msg, IntermediateResponse):
            self.intermediates.append(msg)

        elif isinstance(msg, SearchResultDone):
            self._done = msg
            self.state = SearchState.DONE
            return

        else:
            raise ProtocolError(f"Received unexpected {type(msg).__name__} in response to a search", msg)

        self.state = SearchState.ACCUMULATING

    def finish(self) -> SearchResult:
        if self._done is None:
            raise ValueError("Search has not received SearchResultDone")

        return SearchResult(
            message_id=self.message_id,
            result=self._done.result,
            controls=self._done.controls,
            entries=self.entries,
            referrals=self.references,
            intermediates=self.intermediates,
        )


class SearchStream:
    """Async iterator over the responses of one search.

    Yields each :class:`SearchResultEntry`, :class:`SearchResultReference`
    and :class:`IntermediateResponse` as it arrives. The iteration ends when
    the server sends SearchResultDone. The stream is forward only and cannot
    be restarted. Everything yielded is also kept so :meth:`finish` returns
    the complete :class:`SearchResult`.

    This is created by :meth:`LDAPClient.search_stream`.
    """

    def __init__(
        self,
        client: LDAPClient,
        message_id: int,
        channel: ResponseChannel,
        timeout: t.Optional[float],
    ) -> None:
        self.message_id = message_id
        self._client = client
        self._channel = channel
        self._timeout = timeout
        self._accumulator = SearchAccumulator(message_id)

    @property
    def done(self) -> bool:
        return self._accumulator.state == SearchState.DONE

    def __aiter__(self) -> SearchStream:
        return self

    async def __anext__(self) -> SearchItem:
        if self.done:
            raise StopAsyncIteration

        msg = await self._client._wait_response(self.message_id, self._channel, self._timeout)
        try:
            self._accumulator.add(msg)
        except ProtocolError as e:
            self._client.connection.fail_protocol(e)
            raise

        if isinstance(msg, SearchResultDone):
            raise StopAsyncIteration

        return t.cast(SearchItem, msg)

    async def finish(self) -> SearchResult:
        """Read the remaining responses and return the aggregated result."""
        async for _ in self:
            pass

        return self._accumulator.finish()

    async def abandon(self) -> None:
        """Stop the search, further iteration raises OperationCancelled."""
        if not self.done:
            await self._client.abandon(self.message_id)
