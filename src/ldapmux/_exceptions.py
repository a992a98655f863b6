# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

from __future__ import annotations

import typing as t

if t.TYPE_CHECKING:
    from ._messages import LDAPMessage, LDAPResult


class LDAPError(Exception):
    """Base LDAP error class."""


class EncodeError(LDAPError, ValueError):
    """A request could not be encoded.

    Raised before anything is written to the connection, the caller supplied a
    value that cannot be represented on the wire. The connection and any other
    outstanding operation are unaffected.
    """


class NeedMoreData(LDAPError):
    """The buffer holds an incomplete LDAP message.

    Used by the codec to signal that the data is a valid prefix of a message
    and more data is needed from the peer. This is never raised to callers of
    the client operations.
    """


class ProtocolError(LDAPError):
    """Generic LDAP protocol errors.

    An exception used to signal a fatal error on the LDAP connection. It is
    raised when the peer sent data that cannot be processed or a message that
    is not valid for a client to receive. The connection is closed when this
    occurs and every outstanding operation fails with this error.

    Args:
        msg: The error message.
        message: The incoming message that caused the protocol error, or None
            if the incoming data could not be unpacked.
    """

    def __init__(
        self,
        msg: str,
        message: t.Optional[LDAPMessage] = None,
    ) -> None:
        super().__init__(msg)
        self.message = message


class DecodeError(ProtocolError):
    """The peer sent bytes that are not a valid LDAP message."""


class ConnectionClosed(LDAPError):
    """The LDAP connection is closed.

    Raised when an operation is issued after an unbind or after the connection
    has been closed, and for every operation still waiting on a response when
    the connection is lost.
    """


class OperationTimeout(LDAPError, TimeoutError):
    """The operation did not receive a response in time.

    The local request has been dropped and an abandon request was sent to the
    server. The connection is still usable.

    Args:
        msg: The error message.
        message_id: The message id of the operation that timed out.
    """

    def __init__(
        self,
        msg: str,
        message_id: int,
    ) -> None:
        super().__init__(msg)
        self.message_id = message_id


class OperationCancelled(LDAPError):
    """The operation was abandoned by the client.

    The client stopped waiting for the response. This does not mean the server
    stopped processing the request.

    Args:
        msg: The error message.
        message_id: The message id of the operation that was abandoned.
    """

    def __init__(
        self,
        msg: str,
        message_id: int,
    ) -> None:
        super().__init__(msg)
        self.message_id = message_id


class LDAPResultError(LDAPError):
    """The server returned an unsuccessful result.

    This is only raised when the caller asks for a successful result, the
    operation itself completed at the protocol level.

    Args:
        msg: The error message.
        result: The LDAPResult returned by the server.
    """

    def __init__(
        self,
        msg: str,
        result: LDAPResult,
    ) -> None:
        super().__init__(msg)
        self.result = result

    @property
    def result_code(self) -> int:
        return self.result.result_code

    def __str__(self) -> str:
        inner_msg = super().__str__()
        msg = f"Received LDAPResult error {inner_msg} - {self.result.result_code.name}"
        if self.result.matched_dn:
            msg += f" - Matched DN {self.result.matched_dn}"

        if self.result.diagnostics_message:
            msg += f" - {self.result.diagnostics_message}"

        return msg
