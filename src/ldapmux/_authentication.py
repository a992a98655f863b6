# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

"""Credentials carried by a BindRequest.

The client only binds with a password or through a SASL mechanism so the
AuthenticationChoice is a closed set. The other choices, like the reserved
Kerberos v4 tags, are rejected when decoding.
"""

from __future__ import annotations

import dataclasses
import typing as t

from .asn1 import ASN1Reader, ASN1Tag, ASN1Writer, TagClass

# AuthenticationChoice ::= CHOICE {
#      simple                  [0] OCTET STRING,
#                              -- 1 and 2 reserved
#      sasl                    [3] SaslCredentials,
#      ...  }
SIMPLE_TAG = ASN1Tag(TagClass.CONTEXT_SPECIFIC, 0, False)
SASL_TAG = ASN1Tag(TagClass.CONTEXT_SPECIFIC, 3, True)


@dataclasses.dataclass(frozen=True)
class SimpleCredential:
    """A password for a simple bind.

    An empty password with a name is an unauthenticated bind, an empty
    password and name is an anonymous bind. The password is left out of the
    repr so a logged request does not disclose it.

    Args:
        password: The password to authenticate with.
    """

    password: str = dataclasses.field(repr=False)

    @property
    def is_anonymous(self) -> bool:
        return not self.password


@dataclasses.dataclass(frozen=True)
class SaslCredential:
    """The mechanism and token of one SASL bind step.

    Defined as SaslCredentials in `RFC 4511 4.2. Bind Operation`_. A token of
    ``None`` omits the credentials field, ``b""`` sends it empty.

    Args:
        mechanism: The SASL mechanism name.
        credentials: The token for this step, if any.

    .. _RFC 4511 4.2. Bind Operation:
        https://www.rfc-editor.org/rfc/rfc4511#section-4.2
    """

    # SaslCredentials ::= SEQUENCE {
    #      mechanism               LDAPString,
    #      credentials             OCTET STRING OPTIONAL }

    mechanism: str
    credentials: t.Optional[bytes] = None


AuthenticationCredential = t.Union[SimpleCredential, SaslCredential]


def pack_credential(
    credential: AuthenticationCredential,
    writer: ASN1Writer,
    string_encoding: str,
) -> None:
    """Write the AuthenticationChoice of a BindRequest."""
    if isinstance(credential, SimpleCredential):
        writer.write_octet_string(credential.password.encode(string_encoding), tag=SIMPLE_TAG)

    elif isinstance(credential, SaslCredential):
        with writer.push_sequence(tag=SASL_TAG) as sasl_writer:
            sasl_writer.write_octet_string(credential.mechanism.encode(string_encoding))
            if credential.credentials is not None:
                sasl_writer.write_octet_string(credential.credentials)

    else:
        raise ValueError(f"Unsupported bind credential {type(credential).__name__}")


def unpack_credential(
    reader: ASN1Reader,
    string_encoding: str,
) -> AuthenticationCredential:
    """Read the AuthenticationChoice of a BindRequest.

    Raises:
        NotImplementedError: The choice is not a simple or SASL credential.
    """
    header = reader.peek_header()
    unpack_func = _CREDENTIAL_UNPACKERS.get(header.tag, None)
    if not unpack_func:
        raise NotImplementedError(f"Unknown authentication object {header.tag}, cannot unpack")

    return unpack_func(reader, string_encoding)


def _unpack_simple(
    reader: ASN1Reader,
    string_encoding: str,
) -> SimpleCredential:
    password = reader.read_octet_string(tag=SIMPLE_TAG, hint="SimpleCredential.password")
    return SimpleCredential(password.decode(string_encoding))


def _unpack_sasl(
    reader: ASN1Reader,
    string_encoding: str,
) -> SaslCredential:
    sasl_reader = reader.read_sequence(tag=SASL_TAG, hint="SaslCredential")
    mechanism = sasl_reader.read_octet_string(hint="SaslCredential.mechanism")

    credentials: t.Optional[bytes] = None
    if sasl_reader:
        credentials = sasl_reader.read_octet_string(hint="SaslCredential.credentials")

    return SaslCredential(mechanism.decode(string_encoding), credentials)


_CREDENTIAL_UNPACKERS: t.Dict[ASN1Tag, t.Callable[[ASN1Reader, str], AuthenticationCredential]] = {
    SIMPLE_TAG: _unpack_simple,
    SASL_TAG: _unpack_sasl,
}
