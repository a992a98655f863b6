# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

from __future__ import annotations

import asyncio
import enum
import logging
import ssl
import typing as t

from ._codec import LDAPCodec
from ._exceptions import ConnectionClosed, LDAPError, ProtocolError
from ._messages import (
    ExtendedResponse,
    LDAPMessage,
    LDAPResultCode,
    Response,
    UnbindRequest,
)
from ._request_table import RequestEntry, RequestTable, ResponseChannel
from ._transport import ConnectionSettings, upgrade_stream

if t.TYPE_CHECKING:
    from .sasl import SaslProvider

log = logging.getLogger(__name__)

NOTICE_OF_DISCONNECTION = "1.3.6.1.4.1.1466.20036"


class ConnectionState(enum.Enum):
    """The state of the LDAP connection.

    A connection starts as CONNECTING until the transport is open, it is then
    ESTABLISHED. A StartTLS upgrade moves it through TLS_NEGOTIATING to
    TLS_ESTABLISHED. Once the I/O loop is running the state is ACTIVE and it
    returns to ACTIVE after a StartTLS upgrade. An unbind or close moves it to
    CLOSING and then CLOSED. A failure moves it straight to CLOSED.
    """

    CONNECTING = enum.auto()
    "The transport is being opened."

    ESTABLISHED = enum.auto()
    "The transport is open, the I/O loop is not running yet."

    TLS_NEGOTIATING = enum.auto()
    "The TLS handshake of a StartTLS upgrade is in progress."

    TLS_ESTABLISHED = enum.auto()
    "The TLS handshake has completed."

    ACTIVE = enum.auto()
    "The I/O loop is running and operations can be sent."

    CLOSING = enum.auto()
    "The connection is flushing the last messages before closing."

    CLOSED = enum.auto()
    "The connection is closed and can no longer be used."


class LDAPConnection:
    """The I/O loop of one LDAP connection.

    The connection exclusively owns the stream pair. Operations submit their
    encoded requests through :meth:`send` and wait on the returned
    :class:`ResponseChannel`. A writer task writes the requests in the order
    they were submitted while a reader task decodes incoming messages and
    routes them to the request they belong to.

    Responses for a message id that is no longer outstanding, for example a
    late response to an abandoned request, are logged and counted in
    ``orphaned_responses``. They do not affect the connection.

    Args:
        reader: The stream reader of the transport.
        writer: The stream writer of the transport.
        settings: The connection settings.
        server_hostname: The hostname used for a StartTLS handshake.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        settings: t.Optional[ConnectionSettings] = None,
        server_hostname: t.Optional[str] = None,
    ) -> None:
        self.settings = settings or ConnectionSettings()
        self.server_hostname = self.settings.server_hostname or server_hostname
        self.codec = LDAPCodec(self.settings.packing_options())
        self.requests = RequestTable()
        self.orphaned_responses = 0

        self._reader = reader
        self._writer = writer
        self._state = ConnectionState.ESTABLISHED
        if writer.get_extra_info("ssl_object") is not None:
            self._state = ConnectionState.TLS_ESTABLISHED

        self._notifications: asyncio.Queue[t.Optional[ExtendedResponse]] = asyncio.Queue()
        # The second item is the message id of a StartTLS request.
        self._write_queue: asyncio.Queue[t.Optional[t.Tuple[bytes, t.Optional[int]]]] = asyncio.Queue()
        self._write_gate = asyncio.Event()
        self._write_gate.set()
        self._closed = asyncio.Event()
        self._close_reason: t.Optional[BaseException] = None
        self._sasl_provider: t.Optional[SaslProvider] = None
        self._reader_task: t.Optional[asyncio.Task] = None
        self._writer_task: t.Optional[asyncio.Task] = None
        self._close_task: t.Optional[asyncio.Task] = None
        self._loop: t.Optional[asyncio.AbstractEventLoop] = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_closed(self) -> bool:
        return self._state in [ConnectionState.CLOSING, ConnectionState.CLOSED]

    @property
    def close_reason(self) -> t.Optional[BaseException]:
        """The exception that closed the connection, if any."""
        return self._close_reason

    @property
    def ssl_object(self) -> t.Optional[ssl.SSLObject]:
        """The TLS object of the transport, None when TLS is not used."""
        return self._writer.get_extra_info("ssl_object")

    @property
    def sasl_provider(self) -> t.Optional[SaslProvider]:
        return self._sasl_provider

    def start(self) -> None:
        """Start the reader and writer tasks on the running loop."""
        if self._reader_task:
            return

        self._loop = asyncio.get_running_loop()
        self._reader_task = self._loop.create_task(self._read_loop())
        self._writer_task = self._loop.create_task(self._write_loop())
        self._set_state(ConnectionState.ACTIVE)

    def install_sasl(
        self,
        provider: SaslProvider,
    ) -> None:
        """Wrap and unwrap all further traffic with the SASL provider."""
        log.debug("Installing SASL %s security layer", provider.mechanism)
        self._sasl_provider = provider

    def next_message_id(self) -> int:
        return self.requests.allocate_id()

    def release_request(
        self,
        message_id: int,
        exp: t.Optional[BaseException] = None,
    ) -> bool:
        """Stop waiting for the responses of a request.

        Used when the caller gives up on a request, a late response is then
        counted as an orphan. A released StartTLS request opens the writer
        again so the requests queued behind it are sent.

        Args:
            message_id: The message id of the request.
            exp: Fail the waiter with this exception.

        Returns:
            bool: True if the request was outstanding.
        """
        entry = self.requests.remove(message_id)
        if entry is None:
            return False

        if exp is not None:
            entry.channel.fail(exp)

        if entry.is_start_tls:
            log.debug("StartTLS request %d released before its response, resuming writes", message_id)
            self._write_gate.set()

        return True

    def fail_protocol(
        self,
        exp: ProtocolError,
    ) -> None:
        """Close the connection after the peer broke the protocol.

        Every outstanding request fails with the error and a best effort
        UnbindRequest is sent.
        """
        if self._state == ConnectionState.CLOSED:
            return

        log.debug("LDAP protocol error: %s", exp)
        self._send_unbind_nowait()
        self._shutdown(exp)

    def send(
        self,
        msg: LDAPMessage,
        expects_response: bool = True,
        expects_stream: bool = False,
        is_start_tls: bool = False,
    ) -> t.Optional[ResponseChannel]:
        """Submit a request to be sent.

        The message is encoded before anything is registered so an encoding
        failure leaves the connection untouched.

        Args:
            msg: The request to send.
            expects_response: Register the request to wait for its response.
            expects_stream: The request has multiple responses that end with
                SearchResultDone.
            is_start_tls: Upgrade the stream with TLS when the successful
                response is received.

        Returns:
            Optional[ResponseChannel]: The channel the responses are delivered
            to, None if no response is expected.

        Raises:
            EncodeError: The message could not be encoded.
            ConnectionClosed: The connection is closed.
        """
        self._check_open()
        data = self.codec.encode(msg)

        channel: t.Optional[ResponseChannel] = None
        if expects_response:
            channel = self.requests.register(
                msg.message_id,
                expects_stream=expects_stream,
                is_start_tls=is_start_tls,
            )

        log.debug("Queuing %s message_id=%d", type(msg).__name__, msg.message_id)
        self._write_queue.put_nowait((data, msg.message_id if is_start_tls else None))

        return channel

    async def next_notification(self) -> ExtendedResponse:
        """Wait for the next unsolicited notification from the server.

        Raises:
            ConnectionClosed: The connection closed before a notification
                was received.
        """
        msg = await self._notifications.get()
        if msg is None:
            # Keep the marker for any other waiter.
            self._notifications.put_nowait(None)
            raise self._closed_error()

        return msg

    async def close(
        self,
        unbind: bool = True,
    ) -> None:
        """Close the connection.

        Flushes the queued requests, optionally sending an UnbindRequest
        last, and closes the transport. Every outstanding request fails with
        :class:`ConnectionClosed`.

        Args:
            unbind: Send an UnbindRequest before closing.
        """
        if self.is_closed:
            await self._closed.wait()
            return

        self._set_state(ConnectionState.CLOSING)
        if unbind:
            msg = UnbindRequest(message_id=self.next_message_id(), controls=[])
            log.debug("Queuing UnbindRequest message_id=%d", msg.message_id)
            self._write_queue.put_nowait((self.codec.encode(msg), None))

        self._write_queue.put_nowait(None)
        self._write_gate.set()

        if self._writer_task:
            await self._writer_task

        self._shutdown(ConnectionClosed("LDAP connection has been closed"))
        await self._wait_transport_closed()

    def close_nowait(self) -> None:
        """Schedule an unbind and close from any thread.

        Used when the client is dropped without being closed. Nothing happens
        if the loop of the connection is no longer available.
        """
        loop = self._loop
        if self.is_closed or loop is None or loop.is_closed():
            return

        def schedule_close() -> None:
            if not self.is_closed and self._close_task is None:
                self._close_task = loop.create_task(self.close())

        try:
            loop.call_soon_threadsafe(schedule_close)
        except RuntimeError:
            # The loop was closed between the check and the call.
            pass

    async def wait_closed(self) -> None:
        await self._closed.wait()

    def _check_open(self) -> None:
        if self.is_closed:
            raise self._closed_error()

        elif not self._reader_task:
            raise ConnectionClosed("LDAP connection has not been started")

    def _closed_error(self) -> ConnectionClosed:
        reason = self._close_reason
        if isinstance(reason, ConnectionClosed):
            return ConnectionClosed(str(reason))

        msg = "LDAP connection is closed"
        if reason:
            msg += f": {reason}"

        return ConnectionClosed(msg)

    def _set_state(
        self,
        state: ConnectionState,
    ) -> None:
        if self._state != state:
            log.debug("LDAP connection state %s -> %s", self._state.name, state.name)
            self._state = state

    async def _write_loop(self) -> None:
        while True:
            item = await self._write_queue.get()
            if item is None:
                break

            data, start_tls_id = item
            if start_tls_id is not None and start_tls_id in self.requests:
                # Nothing else can be written until the reader has upgraded
                # the stream or StartTLS failed.
                self._write_gate.clear()

            try:
                if self._sasl_provider:
                    data = self._sasl_provider.wrap(data)

                self._writer.write(data)
                await self._writer.drain()

            except (OSError, RuntimeError) as e:
                log.debug("Failed to write to the LDAP connection: %s", e)
                self._shutdown(ConnectionClosed(f"Failed to write to the LDAP connection: {e}"))
                break

            except Exception as e:
                # Failures from a SASL security layer end up here.
                log.debug("LDAP write loop failed", exc_info=True)
                self._shutdown(ConnectionClosed(f"LDAP connection failed: {e}"))
                break

            if not self._write_gate.is_set():
                await self._write_gate.wait()

    async def _read_loop(self) -> None:
        sasl_buffer = bytearray()
        try:
            while True:
                data = await self._reader.read(self.settings.read_size)
                if not data:
                    raise ConnectionClosed("LDAP connection has been shutdown by the peer")

                if self._sasl_provider:
                    sasl_buffer.extend(data)
                    data = bytearray()
                    while sasl_buffer:
                        dec_data, enc_len = self._sasl_provider.unwrap(bytes(sasl_buffer))
                        if enc_len == 0:
                            break

                        data.extend(dec_data)
                        del sasl_buffer[:enc_len]

                for msg in self.codec.feed(data):
                    await self._process_message(msg)

        except ProtocolError as e:
            self.fail_protocol(e)

        except ConnectionClosed as e:
            self._shutdown(e)

        except (OSError, ssl.SSLError, EOFError) as e:
            self._shutdown(ConnectionClosed(f"Failed to read from the LDAP connection: {e}"))

        except Exception as e:
            # Failures from a SASL security layer end up here.
            log.debug("LDAP read loop failed", exc_info=True)
            self._shutdown(ConnectionClosed(f"LDAP connection failed: {e}"))

    async def _process_message(
        self,
        msg: LDAPMessage,
    ) -> None:
        msg_name = type(msg).__name__
        if not isinstance(msg, Response):
            raise ProtocolError(f"Received an LDAP message that is not a response {msg_name}, cannot process", msg)

        if msg.message_id == 0:
            self._process_notification(msg)
            return

        entry = self.requests.get(msg.message_id)
        if entry is None:
            self.orphaned_responses += 1
            log.warning("Received %s for unknown message_id %d, ignoring", msg_name, msg.message_id)
            return

        log.debug("Received %s message_id=%d", msg_name, msg.message_id)
        if entry.is_start_tls:
            await self._process_start_tls(entry, msg)
            return

        self.requests.deliver(msg)

    def _process_notification(
        self,
        msg: LDAPMessage,
    ) -> None:
        if not isinstance(msg, ExtendedResponse):
            raise ProtocolError(f"Received unsolicited {type(msg).__name__} message, expecting ExtendedResponse", msg)

        log.warning(
            "Received unsolicited notification %s %s: %s",
            msg.name,
            msg.result.result_code.name,
            msg.result.diagnostics_message,
        )
        self._notifications.put_nowait(msg)

        if msg.name == NOTICE_OF_DISCONNECTION:
            error_msg = f"Peer has sent a NoticeOfDisconnection {msg.result.result_code.name}"
            if msg.result.diagnostics_message:
                error_msg += f": {msg.result.diagnostics_message}"

            raise ConnectionClosed(error_msg)

    async def _process_start_tls(
        self,
        entry: RequestEntry,
        msg: LDAPMessage,
    ) -> None:
        try:
            if isinstance(msg, ExtendedResponse) and msg.result.result_code == LDAPResultCode.SUCCESS:
                self._set_state(ConnectionState.TLS_NEGOTIATING)
                try:
                    await upgrade_stream(
                        self._writer,
                        self.settings.get_ssl_context(),
                        self.server_hostname,
                    )
                except (OSError, ssl.SSLError, NotImplementedError) as e:
                    exp = ConnectionClosed(f"StartTLS handshake failed: {e}")
                    self.requests.fail(entry.message_id, exp)
                    raise exp from e

                self._set_state(ConnectionState.TLS_ESTABLISHED)
                self._set_state(ConnectionState.ACTIVE)

            self.requests.deliver(msg)

        finally:
            self._write_gate.set()

    def _send_unbind_nowait(self) -> None:
        # The writer task may be stopped so the message is written directly.
        try:
            data = self.codec.encode(UnbindRequest(message_id=self.next_message_id(), controls=[]))
            if self._sasl_provider:
                data = self._sasl_provider.wrap(data)

            self._writer.write(data)

        except (OSError, RuntimeError, LDAPError) as e:
            log.debug("Failed to send UnbindRequest: %s", e)

    def _shutdown(
        self,
        exp: BaseException,
    ) -> None:
        if self._state == ConnectionState.CLOSED:
            return

        log.debug("Closing LDAP connection: %s", exp)
        self._close_reason = exp
        self._set_state(ConnectionState.CLOSED)

        self.requests.fail_all(exp)
        self._notifications.put_nowait(None)

        self._write_gate.set()
        self._write_queue.put_nowait(None)
        self._writer.close()

        current = asyncio.current_task()
        if self._reader_task and self._reader_task is not current:
            self._reader_task.cancel()

        self._closed.set()

    async def _wait_transport_closed(self) -> None:
        try:
            await self._writer.wait_closed()
        except (OSError, ssl.SSLError):
            pass

        if self._reader_task:
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
