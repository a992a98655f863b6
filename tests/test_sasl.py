# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

from __future__ import annotations

import base64
import datetime
import typing as t

import pytest
from conftest import FakeServer, success
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

import ldapmux
import ldapmux._exceptions as e
import ldapmux._messages as m
import ldapmux.sasl as sasl


class FakeIOVResult:
    def __init__(self, data: bytes) -> None:
        self.data = data


class FakeContext:
    """Wraps by reversing the data."""

    def __init__(self, complete: bool = True) -> None:
        self.complete = complete
        self.kwargs: t.Dict[str, t.Any] = {}

    def step(self, in_token: t.Optional[bytes] = None, channel_bindings: t.Any = None) -> t.Optional[bytes]:
        self.complete = True
        return None

    def wrap(self, data: bytes, encrypt: bool = True) -> FakeIOVResult:
        return FakeIOVResult(data[::-1])

    def unwrap(self, data: bytes) -> FakeIOVResult:
        return FakeIOVResult(data[::-1])


class FakeGssProvider(sasl._GssSaslProvider):
    def __init__(self, sign: bool = True, encrypt: bool = True, complete: bool = True) -> None:
        super().__init__(FakeContext(complete), sign, encrypt)  # type: ignore[arg-type]

    @property
    def mechanism(self) -> str:
        return "FAKE"


class FakeTLSChannel:
    def __init__(self, cert: t.Optional[bytes]) -> None:
        self._cert = cert

    def getpeercert(self, binary_form: bool = False) -> t.Optional[bytes]:
        return self._cert


# A self signed certificate using ecdsa-with-SHA1, current cryptography
# releases no longer sign with SHA1 so it cannot be generated in the test.
SHA1_CERT = base64.b64decode(
    "MIIBiTCCATCgAwIBAgIUNS1gbzAt5//vYagTh7wyN6hrE78wCQYHKoZIzj0EATAbMRkwFwYDVQQD"
    "DBBkYzAxLmRvbWFpbi50ZXN0MB4XDTI2MTAxOTIwMDQ0MloXDTM2MTAxNjIwMDQ0MlowGzEZMBcG"
    "A1UEAwwQZGMwMS5kb21haW4udGVzdDBZMBMGByqGSM49AgEGCCqGSM49AwEHA0IABBQxDlzZBkOO"
    "On1b/IzY5MKxf2EDs5xsUl85kwD7yc2jsl/sBE2XHb7x3HajmXfZWK5LGJmzgNo0GLadm/A8YaWj"
    "UzBRMB0GA1UdDgQWBBT2RKZVRE/p/IkdNFJN3X6u7RygDjAfBgNVHSMEGDAWgBT2RKZVRE/p/Ikd"
    "NFJN3X6u7RygDjAPBgNVHRMBAf8EBTADAQH/MAkGByqGSM49BAEDSAAwRQIhAOg8nuNU5+whH1lo"
    "zNvTSloeIpIaRWWhqVd+xpHo0oQHAiBLYloazt5grudBVNIuQkOWwIcz1qfSC77PikaHkz9bPQ=="
)
SHA1_CERT_SHA256 = bytes.fromhex("1f22a7b6817a240f37f4f1cf8b669ecc452108b24a4fdd70a9acf219c21db646")


def generate_cert(algorithm: hashes.HashAlgorithm) -> bytes:
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "dc01.domain.test")])
    now = datetime.datetime.now(datetime.timezone.utc)

    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + datetime.timedelta(days=1))
        .sign(key, algorithm)
    )
    return cert.public_bytes(serialization.Encoding.DER)


def test_external_step() -> None:
    provider = sasl.External()

    assert provider.mechanism == "EXTERNAL"
    assert provider.step() == b""
    assert provider.step(b"server") is None


def test_external_authz_id() -> None:
    provider = sasl.External("dn:CN=user,DC=domain,DC=test")

    assert provider.step() == b"dn:CN=user,DC=domain,DC=test"


def test_base_provider_passthrough() -> None:
    provider = sasl.External()

    assert provider.wrap(b"data") == b"data"
    assert provider.unwrap(b"data") == (b"data", 4)


def test_gss_wrap() -> None:
    provider = FakeGssProvider()

    actual = provider.wrap(b"abc")

    assert actual == b"\x00\x00\x00\x03cba"


def test_gss_wrap_no_security() -> None:
    provider = FakeGssProvider(sign=False, encrypt=False)

    assert provider.wrap(b"abc") == b"abc"
    assert provider.unwrap(b"abc") == (b"abc", 3)


def test_gss_unwrap() -> None:
    provider = FakeGssProvider()

    actual = provider.unwrap(b"\x00\x00\x00\x03cba\x00\x00")

    assert actual == (b"abc", 7)


@pytest.mark.parametrize("data", [b"", b"\x00\x00", b"\x00\x00\x00\x05cba"])
def test_gss_unwrap_need_more_data(data: bytes) -> None:
    provider = FakeGssProvider()

    assert provider.unwrap(data) == (b"", 0)


def test_gss_fail_incomplete_context() -> None:
    provider = FakeGssProvider(complete=False)

    with pytest.raises(sasl.SaslError, match="Cannot wrap without a completed context"):
        provider.wrap(b"data")

    with pytest.raises(sasl.SaslError, match="Cannot unwrap without a completed context"):
        provider.unwrap(b"data")


def test_channel_bindings_sha256() -> None:
    cert = generate_cert(hashes.SHA384())
    digest = hashes.Hash(hashes.SHA384())
    digest.update(cert)

    actual = sasl._tls_channel_bindings(FakeTLSChannel(cert))  # type: ignore[arg-type]

    assert actual is not None
    assert actual.application_data == b"tls-server-end-point:" + digest.finalize()


def test_channel_bindings_sha1_uses_sha256() -> None:
    actual = sasl._tls_channel_bindings(FakeTLSChannel(SHA1_CERT))  # type: ignore[arg-type]

    assert actual is not None
    assert actual.application_data == b"tls-server-end-point:" + SHA1_CERT_SHA256


def test_channel_bindings_no_tls() -> None:
    assert sasl._tls_channel_bindings(None) is None
    assert sasl._tls_channel_bindings(FakeTLSChannel(None)) is None  # type: ignore[arg-type]


@pytest.fixture
def fake_spnego(monkeypatch: pytest.MonkeyPatch) -> FakeContext:
    context = FakeContext(complete=False)

    def client(**kwargs: t.Any) -> FakeContext:
        context.kwargs = kwargs
        return context

    monkeypatch.setattr(sasl.spnego, "client", client)
    return context


class TestGssapi:
    def test_ssf_negotiation(self, fake_spnego: FakeContext) -> None:
        provider = sasl.Gssapi(hostname="dc01.domain.test")
        assert fake_spnego.kwargs["protocol"] == "kerberos"

        # The Kerberos exchange finished without a final token.
        assert provider.step() == b""

        # Server offers every layer with a max message length of 0x010000.
        offer = b"\x07\x01\x00\x00"[::-1]
        reply = provider.step(offer)

        assert provider.ssf_negotiated
        assert reply is not None
        assert reply[::-1] == b"\x07\x01\x00\x00"
        assert provider.step(b"") is None

    def test_ssf_no_security(self, fake_spnego: FakeContext) -> None:
        provider = sasl.Gssapi(sign=False, encrypt=False)
        provider.step()

        reply = provider.step(b"\x07\x01\x00\x00"[::-1])

        assert reply is not None
        assert reply[::-1] == b"\x01\x00\x00\x00"
        assert provider.wrap(b"data") == b"data"

    def test_ssf_sign_only(self, fake_spnego: FakeContext) -> None:
        provider = sasl.Gssapi(encrypt=False)
        provider.step()

        reply = provider.step(b"\x07\x00\x10\x00"[::-1])

        assert reply is not None
        assert reply[::-1] == b"\x03\x00\x10\x00"

    def test_fail_ssf_no_token(self, fake_spnego: FakeContext) -> None:
        provider = sasl.Gssapi()
        provider.step()

        with pytest.raises(sasl.SaslError, match="Expecting input token"):
            provider.step(None)

    def test_fail_ssf_token_size(self, fake_spnego: FakeContext) -> None:
        provider = sasl.Gssapi()
        provider.step()

        with pytest.raises(sasl.SaslError, match="not the expected size"):
            provider.step(b"\x01\x00")

    def test_fail_ssf_no_security_with_length(self, fake_spnego: FakeContext) -> None:
        provider = sasl.Gssapi()
        provider.step()

        with pytest.raises(sasl.SaslError, match="server message length but was 16"):
            provider.step(b"\x01\x00\x00\x10"[::-1])


class TestGssSpnego:
    def test_context_req_encrypt(self, fake_spnego: FakeContext) -> None:
        provider = sasl.GssSpnego()

        context_req = fake_spnego.kwargs["context_req"]
        assert provider.mechanism == "GSS-SPNEGO"
        assert fake_spnego.kwargs["protocol"] == "negotiate"
        assert context_req & sasl.spnego.ContextReq.confidentiality
        assert context_req & sasl.spnego.ContextReq.integrity
        assert not context_req & sasl.spnego.ContextReq.no_integrity

    def test_context_req_no_security(self, fake_spnego: FakeContext) -> None:
        sasl.GssSpnego(protocol="ntlm", sign=False, encrypt=False)

        context_req = fake_spnego.kwargs["context_req"]
        assert fake_spnego.kwargs["protocol"] == "ntlm"
        assert context_req & sasl.spnego.ContextReq.no_integrity
        assert not context_req & sasl.spnego.ContextReq.confidentiality

    def test_step_until_complete(self, fake_spnego: FakeContext) -> None:
        provider = sasl.GssSpnego()

        assert provider.step() is None
        assert fake_spnego.complete
        assert provider.step(b"token") is None



class TestBindSasl:
    async def test_bind_external(self, server: FakeServer, client: ldapmux.LDAPClient) -> None:
        result = await client.bind_sasl(sasl.External())

        assert result.result_code == m.LDAPResultCode.SUCCESS
        assert client.connection.sasl_provider is not None

        request = server.requests_of(m.BindRequest)[0]
        assert isinstance(request, m.BindRequest)
        assert request.name == ""
        assert request.authentication == ldapmux.SaslCredential("EXTERNAL", b"")

    async def test_bind_multiple_steps(self, server: FakeServer, client: ldapmux.LDAPClient) -> None:
        class TwoStepProvider(sasl.SaslProvider):
            def __init__(self) -> None:
                self.received: t.List[t.Optional[bytes]] = []

            @property
            def mechanism(self) -> str:
                return "TWO-STEP"

            def step(
                self,
                in_token: t.Optional[bytes] = None,
                *,
                tls_channel: t.Any = None,
            ) -> t.Optional[bytes]:
                self.received.append(in_token)
                return None if len(self.received) > 2 else f"token{len(self.received)}".encode()

        def responder(msg: m.LDAPMessage) -> t.List[m.LDAPMessage]:
            assert isinstance(msg, m.BindRequest)
            assert isinstance(msg.authentication, ldapmux.SaslCredential)

            if msg.authentication.credentials == b"token1":
                code = m.LDAPResultCode.SASL_BIND_IN_PROGRESS
                creds = b"challenge"
            else:
                code = m.LDAPResultCode.SUCCESS
                creds = b"final"

            return [
                m.BindResponse(
                    message_id=msg.message_id,
                    controls=[],
                    result=success(code),
                    server_sasl_creds=creds,
                )
            ]

        server.responder = responder
        provider = TwoStepProvider()

        result = await client.bind_sasl(provider)

        assert result.result_code == m.LDAPResultCode.SUCCESS
        assert provider.received == [None, b"challenge", b"final"]
        assert len(server.requests_of(m.BindRequest)) == 2

    async def test_bind_sasl_fails(self, server: FakeServer, client: ldapmux.LDAPClient) -> None:
        server.responder = lambda msg: [
            m.BindResponse(
                message_id=msg.message_id,
                controls=[],
                result=success(m.LDAPResultCode.INAPPROPRIATE_AUTHENTICATION),
            )
        ]

        with pytest.raises(e.LDAPResultError, match="SASL bind failed") as exc:
            await client.bind_sasl(sasl.External())

        assert exc.value.result_code == m.LDAPResultCode.INAPPROPRIATE_AUTHENTICATION
        assert client.connection.sasl_provider is None
