# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

from __future__ import annotations

import asyncio
import socket
import threading
import time
import typing as t

import pytest

import ldapmux
import ldapmux._messages as m

Responder = t.Callable[[m.LDAPMessage], t.List[m.LDAPMessage]]

# Bounds every wait so a broken exchange fails the test instead of hanging.
TEST_SETTINGS = ldapmux.ConnectionSettings(operation_timeout=5)


def success(code: m.LDAPResultCode = m.LDAPResultCode.SUCCESS, diagnostics: str = "") -> m.LDAPResult:
    return m.LDAPResult(result_code=code, diagnostics_message=diagnostics)


def default_responses(msg: m.LDAPMessage) -> t.List[m.LDAPMessage]:
    mid = msg.message_id

    if isinstance(msg, m.BindRequest):
        return [m.BindResponse(message_id=mid, controls=[], result=success())]

    elif isinstance(msg, m.SearchRequest):
        return [m.SearchResultDone(message_id=mid, controls=[], result=success())]

    elif isinstance(msg, m.AddRequest):
        return [m.AddResponse(message_id=mid, controls=[], result=success())]

    elif isinstance(msg, m.ModifyRequest):
        return [m.ModifyResponse(message_id=mid, controls=[], result=success())]

    elif isinstance(msg, m.DelRequest):
        return [m.DelResponse(message_id=mid, controls=[], result=success())]

    elif isinstance(msg, m.ModifyDNRequest):
        return [m.ModifyDNResponse(message_id=mid, controls=[], result=success())]

    elif isinstance(msg, m.CompareRequest):
        return [m.CompareResponse(message_id=mid, controls=[], result=success(m.LDAPResultCode.COMPARE_TRUE))]

    elif isinstance(msg, m.ExtendedRequest):
        return [m.ExtendedResponse(message_id=mid, controls=[], result=success())]

    return []


class FakeServer:
    """A scripted LDAP server on one end of a socket pair.

    Every request received is decoded with the library codec, recorded in
    ``received``, and passed to ``responder`` which returns the responses to
    send back. The server closes its end when it receives an UnbindRequest.
    A failure while decoding or responding closes the server and is raised
    again when the server is stopped.
    """

    def __init__(self) -> None:
        self.client_sock, self.server_sock = socket.socketpair()
        self.codec = ldapmux.LDAPCodec()
        self.received: t.List[m.LDAPMessage] = []
        self.responder: Responder = default_responses
        self.closed = threading.Event()
        self.error: t.Optional[Exception] = None
        self._write_lock = threading.Lock()
        self._cond = threading.Condition()
        self._thread = threading.Thread(target=self._run, name="FakeLDAPServer", daemon=True)

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self.close()
        self._thread.join(5)
        self.client_sock.close()

        if self.error:
            raise self.error

    def close(self) -> None:
        try:
            self.server_sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self.server_sock.close()
        self.closed.set()

    def send(self, *messages: m.LDAPMessage) -> None:
        self.send_raw(b"".join(ldapmux.encode_message(msg) for msg in messages))

    def send_raw(self, data: bytes) -> None:
        with self._write_lock:
            self.server_sock.sendall(data)

    def wait_received(
        self,
        count: int,
        timeout: float = 5.0,
    ) -> t.List[m.LDAPMessage]:
        """Block until at least count requests have been received."""
        with self._cond:
            if not self._cond.wait_for(lambda: len(self.received) >= count, timeout):
                raise TimeoutError(f"Only received {len(self.received)} of {count} requests")

            return list(self.received)

    def requests_of(
        self,
        msg_type: t.Type[m.LDAPMessage],
    ) -> t.List[m.LDAPMessage]:
        with self._cond:
            return [r for r in self.received if isinstance(r, msg_type)]

    def _run(self) -> None:
        try:
            self._serve()
        except Exception as e:
            self.error = e
            self.close()

    def _serve(self) -> None:
        while True:
            try:
                data = self.server_sock.recv(65536)
            except OSError:
                break

            if not data:
                break

            for msg in self.codec.feed(data):
                with self._cond:
                    self.received.append(msg)
                    self._cond.notify_all()

                if isinstance(msg, m.UnbindRequest):
                    self.close()
                    return

                responses = self.responder(msg)
                if responses:
                    try:
                        self.send(*responses)
                    except OSError:
                        return


async def wait_until(
    condition: t.Callable[[], bool],
    timeout: float = 5.0,
) -> None:
    """Yield to the event loop until the condition is true."""
    end = time.monotonic() + timeout
    while not condition():
        if time.monotonic() > end:
            raise TimeoutError("Condition was not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def server() -> t.Iterator[FakeServer]:
    ldap_server = FakeServer()
    ldap_server.start()
    yield ldap_server
    ldap_server.stop()


@pytest.fixture
async def client(server: FakeServer) -> t.AsyncIterator[ldapmux.LDAPClient]:
    ldap_client = await ldapmux.connect(settings=TEST_SETTINGS, sock=server.client_sock)
    yield ldap_client
    await ldap_client.unbind()
