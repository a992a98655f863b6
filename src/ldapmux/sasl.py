# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

"""SASL mechanisms for ``LDAPClient.bind_sasl``.

A provider produces the token for each BindRequest of the exchange. Once the
bind succeeded the client installs the provider on the connection, a
provider that negotiated a security layer then wraps every message sent and
unwraps every chunk received.
"""

from __future__ import annotations

import enum
import logging
import ssl
import struct
import typing as t

import spnego
from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes

from ._exceptions import LDAPError

log = logging.getLogger(__name__)

# Each wrapped token is prefixed by its length.
_WRAP_LENGTH = struct.Struct(">I")


class SaslError(LDAPError):
    """A SASL provider failed to produce or process a token."""


class SaslSecurityFlags(enum.IntFlag):
    """The security layers offered in the GSSAPI SSF negotiation, RFC 4752 3.3."""

    NONE = 0
    NO_SECURITY = 1
    INTEGRITY = 2
    CONFIDENTIALITY = 4


class SaslProvider:
    """A SASL mechanism.

    :meth:`step` is called with the server token of the previous response
    until it returns None. The default :meth:`wrap` and :meth:`unwrap` pass
    the data through for mechanisms without a security layer.
    """

    @property
    def mechanism(self) -> str:
        """The SASL mechanism name sent in the BindRequest."""
        raise NotImplementedError()

    def step(
        self,
        in_token: t.Optional[bytes] = None,
        *,
        tls_channel: t.Optional[ssl.SSLObject] = None,
    ) -> t.Optional[bytes]:
        """Produce the token for the next BindRequest.

        Args:
            in_token: The serverSaslCreds of the last BindResponse, None on
                the first call.
            tls_channel: The TLS object of the connection, None without TLS.

        Returns:
            Optional[bytes]: The token to send, b"" sends an empty token and
            None ends the exchange.
        """
        raise NotImplementedError()

    def wrap(
        self,
        data: bytes,
    ) -> bytes:
        """Protect the data before it is sent."""
        return data

    def unwrap(
        self,
        data: bytes,
    ) -> t.Tuple[bytes, int]:
        """Unprotect received data.

        The data can end with a partial token, the caller keeps what was not
        consumed and calls again once more data arrived.

        Returns:
            Tuple[bytes, int]: The plaintext and the number of input bytes
            consumed, 0 when a full token is not available yet.
        """
        return data, len(data)


class External(SaslProvider):
    """SASL EXTERNAL.

    Authenticates with an identity established outside of LDAP, usually the
    TLS client certificate. Sends a single token.

    Args:
        authz_id: The authorization identity to request, empty for the
            identity of the external channel.
    """

    def __init__(
        self,
        authz_id: str = "",
    ) -> None:
        self.authz_id = authz_id
        self._sent = False

    @property
    def mechanism(self) -> str:
        return "EXTERNAL"

    def step(
        self,
        in_token: t.Optional[bytes] = None,
        *,
        tls_channel: t.Optional[ssl.SSLObject] = None,
    ) -> t.Optional[bytes]:
        if self._sent:
            return None

        self._sent = True
        return self.authz_id.encode("utf-8")


class _GssSaslProvider(SaslProvider):
    """A mechanism backed by a pyspnego context.

    With signing or encryption requested every message is wrapped by the
    context and sent with a 4 byte length prefix.
    """

    def __init__(
        self,
        context: spnego.ContextProxy,
        sign: bool,
        encrypt: bool,
    ) -> None:
        self.context = context
        self.sign = sign
        self.encrypt = encrypt

    @property
    def security_layer(self) -> bool:
        return self.sign or self.encrypt

    def wrap(
        self,
        data: bytes,
    ) -> bytes:
        self._check_complete("wrap")
        if not self.security_layer:
            return data

        token = self.context.wrap(data, encrypt=self.encrypt).data
        return _WRAP_LENGTH.pack(len(token)) + token

    def unwrap(
        self,
        data: bytes,
    ) -> t.Tuple[bytes, int]:
        self._check_complete("unwrap")
        if not self.security_layer:
            return data, len(data)

        if len(data) < _WRAP_LENGTH.size:
            return b"", 0

        token_len = _WRAP_LENGTH.unpack_from(data)[0]
        end = _WRAP_LENGTH.size + token_len
        if len(data) < end:
            return b"", 0

        return self.context.unwrap(data[_WRAP_LENGTH.size : end]).data, end

    def _check_complete(
        self,
        action: str,
    ) -> None:
        if not self.context.complete:
            raise SaslError(f"Cannot {action} without a completed context")


class Gssapi(_GssSaslProvider):
    """SASL GSSAPI, Kerberos only.

    After the Kerberos exchange the server offers its security layers and
    the client answers with the layer it picked, as described in
    `RFC 4752 3.1`_. This adds up to 2 round trips compared to
    :class:`GssSpnego`.

    Without a username and password the credentials of the current user are
    used, on Linux that is the ticket cache filled by ``kinit``.

    Note:
        Microsoft Active Directory refuses signing and encryption inside a TLS
        channel, set sign=False and encrypt=False when using LDAPS or
        StartTLS.

    Args:
        username: The username to authenticate with.
        password: The password to authenticate with.
        hostname: The LDAP server name used to build the SPN.
        service: The service used to build the SPN.
        sign: Sign the messages after the bind.
        encrypt: Encrypt the messages after the bind, implies sign.

    .. _RFC 4752 3.1:
        https://www.rfc-editor.org/rfc/rfc4752#section-3.1
    """

    def __init__(
        self,
        username: t.Optional[str] = None,
        password: t.Optional[str] = None,
        hostname: str = "unspecified",
        service: str = "ldap",
        sign: bool = True,
        encrypt: bool = True,
    ) -> None:
        context = spnego.client(
            username=username,
            password=password,
            hostname=hostname,
            service=service,
            protocol="kerberos",
        )
        super().__init__(context, sign, encrypt)
        self.ssf_negotiated = False

    @property
    def mechanism(self) -> str:
        return "GSSAPI"

    def step(
        self,
        in_token: t.Optional[bytes] = None,
        *,
        tls_channel: t.Optional[ssl.SSLObject] = None,
    ) -> t.Optional[bytes]:
        if not self.context.complete:
            out_token = self.context.step(in_token=in_token, channel_bindings=_tls_channel_bindings(tls_channel))

            # The server answers an empty token after the last Kerberos token
            # with its security layer offer.
            return out_token or b""

        elif self.ssf_negotiated:
            return None

        if not in_token:
            raise SaslError("Expecting input token to verify server security context with SASL SSF")

        server_flags, max_length = _unpack_ssf(self.context.unwrap(in_token).data)
        if server_flags == SaslSecurityFlags.NO_SECURITY and max_length != 0:
            raise SaslError(f"Server did not respond with 0 for the server message length but was {max_length}")

        client_flags = SaslSecurityFlags.NO_SECURITY
        if self.encrypt:
            client_flags |= SaslSecurityFlags.INTEGRITY | SaslSecurityFlags.CONFIDENTIALITY
        elif self.sign:
            client_flags |= SaslSecurityFlags.INTEGRITY

        log.debug("SASL GSSAPI SSF server flags %s max %d, client flags %s", server_flags, max_length, client_flags)
        self.ssf_negotiated = True

        reply = _pack_ssf(client_flags, 0 if client_flags == SaslSecurityFlags.NO_SECURITY else max_length)
        return self.context.wrap(reply, encrypt=False).data


class GssSpnego(_GssSaslProvider):
    """SASL GSS-SPNEGO as used by Microsoft Active Directory.

    Negotiates Kerberos or NTLM and skips the SSF exchange of
    :class:`Gssapi`, the security layer is requested through the context
    flags instead.

    Note:
        Microsoft Active Directory refuses signing and encryption inside a TLS
        channel, set sign=False and encrypt=False when using LDAPS or
        StartTLS.

    Args:
        username: The username to authenticate with.
        password: The password to authenticate with.
        protocol: The pyspnego protocol, negotiate, kerberos or ntlm.
        hostname: The LDAP server name used to build the SPN.
        service: The service used to build the SPN.
        sign: Sign the messages after the bind.
        encrypt: Encrypt the messages after the bind, implies sign.
    """

    def __init__(
        self,
        username: t.Optional[str] = None,
        password: t.Optional[str] = None,
        protocol: str = "negotiate",
        hostname: str = "unspecified",
        service: str = "ldap",
        sign: bool = True,
        encrypt: bool = True,
    ) -> None:
        context = spnego.client(
            username=username,
            password=password,
            hostname=hostname,
            service=service,
            protocol=protocol,
            context_req=_spnego_context_req(sign, encrypt),
        )
        super().__init__(context, sign, encrypt)

    @property
    def mechanism(self) -> str:
        return "GSS-SPNEGO"

    def step(
        self,
        in_token: t.Optional[bytes] = None,
        *,
        tls_channel: t.Optional[ssl.SSLObject] = None,
    ) -> t.Optional[bytes]:
        if self.context.complete:
            return None

        return self.context.step(in_token=in_token, channel_bindings=_tls_channel_bindings(tls_channel))


def _spnego_context_req(
    sign: bool,
    encrypt: bool,
) -> spnego.ContextReq:
    context_req = spnego.ContextReq.mutual_auth
    if encrypt:
        context_req |= spnego.ContextReq.confidentiality

    if sign or encrypt:
        context_req |= spnego.ContextReq.integrity | spnego.ContextReq.sequence_detect
    else:
        # Kerberos sets integrity unless told not to.
        context_req |= spnego.ContextReq.no_integrity

    return context_req


def _unpack_ssf(
    token: bytes,
) -> t.Tuple[SaslSecurityFlags, int]:
    # The first octet holds the layers, the other 3 the max message length.
    if len(token) != 4:
        raise SaslError("Input token for SASL SSF negotiation was not the expected size")

    return SaslSecurityFlags(token[0]), int.from_bytes(token[1:], byteorder="big")


def _pack_ssf(
    flags: SaslSecurityFlags,
    max_length: int,
) -> bytes:
    return bytes([flags.value]) + max_length.to_bytes(3, byteorder="big")


def _tls_channel_bindings(
    tls_channel: t.Optional[ssl.SSLObject],
) -> t.Optional[spnego.channel_bindings.GssChannelBindings]:
    """The RFC 5929 tls-server-end-point bindings of the TLS channel."""
    cert = tls_channel.getpeercert(True) if tls_channel else None
    if not cert:
        return None

    digest = hashes.Hash(_end_point_hash(cert))
    digest.update(cert)

    return spnego.channel_bindings.GssChannelBindings(
        application_data=b"tls-server-end-point:" + digest.finalize(),
    )


def _end_point_hash(
    cert: bytes,
) -> hashes.HashAlgorithm:
    try:
        algorithm = x509.load_der_x509_certificate(cert).signature_hash_algorithm
    except UnsupportedAlgorithm:
        algorithm = None

    # MD5 and SHA1 signed certificates are hashed with SHA256.
    if algorithm is None or algorithm.name in ["md5", "sha1"]:
        return hashes.SHA256()

    return algorithm
