# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

from __future__ import annotations

import dataclasses
import typing as t

from .asn1 import ASN1Reader, ASN1Writer, TagClass, TypeTagNumber

# Control ::= SEQUENCE {
#         controlType             LDAPOID,
#         criticality             BOOLEAN DEFAULT FALSE,
#         controlValue            OCTET STRING OPTIONAL
# }


@dataclasses.dataclass(frozen=True)
class LDAPControl:
    """A control sent with a request or returned with a response.

    Defined in `RFC 4511 4.1.11. Controls`_. A control the client does not
    know is kept as is, the value is opaque bytes and the control can be sent
    back unchanged.

    Known controls subclass this with a fixed ``control_type``, build their
    value in :meth:`encode_value` and are created from a received value by
    :meth:`decode_value`. Extra known controls are set through
    ``ConnectionSettings.control_choices``.

    Args:
        control_type: The control OID.
        critical: The server must fail the operation if it does not support
            the control.
        value: The raw control value, if any.

    .. _RFC 4511 4.1.11. Controls:
        https://www.rfc-editor.org/rfc/rfc4511#section-4.1.11
    """

    control_type: str
    critical: bool = False
    value: t.Optional[bytes] = None

    def encode_value(
        self,
        string_encoding: str,
    ) -> t.Optional[bytes]:
        return self.value

    @classmethod
    def decode_value(
        cls,
        critical: bool,
        value: t.Optional[bytes],
        string_encoding: str,
    ) -> LDAPControl:
        raise NotImplementedError(f"{cls.__name__} cannot be decoded from a control value")


@dataclasses.dataclass
class ControlOptions:
    """Options used to pack and unpack controls.

    Args:
        string_encoding: The encoding of string control values.
        known: The control types to decode keyed by their OID, the rest stay
            as :class:`LDAPControl`.
    """

    string_encoding: str = "utf-8"
    known: t.Dict[str, t.Type[LDAPControl]] = dataclasses.field(
        default_factory=lambda: {
            ManageDsaITControl.control_type: ManageDsaITControl,
            PagedResultControl.control_type: PagedResultControl,
            ProxiedAuthorizationControl.control_type: ProxiedAuthorizationControl,
        }
    )

    def register(
        self,
        control: t.Type[LDAPControl],
    ) -> None:
        """Decode controls with the OID of this type into it."""
        self.known[control.control_type] = control


def pack_control(
    control: LDAPControl,
    writer: ASN1Writer,
    options: ControlOptions,
) -> None:
    with writer.push_sequence() as control_writer:
        control_writer.write_octet_string(control.control_type.encode(options.string_encoding))

        # criticality is DEFAULT FALSE so it is only written when set.
        if control.critical:
            control_writer.write_boolean(True)

        value = control.encode_value(options.string_encoding)
        if value is not None:
            control_writer.write_octet_string(value)


def unpack_control(
    reader: ASN1Reader,
    options: ControlOptions,
) -> LDAPControl:
    """Read the next Control in the reader.

    Controls with an OID in ``options.known`` are decoded into their type,
    anything else is returned as a plain :class:`LDAPControl`.
    """
    control_reader = reader.read_sequence(hint="Control")
    control_type = control_reader.read_octet_string(hint="Control.controlType").decode(options.string_encoding)

    critical = False
    value: t.Optional[bytes] = None
    while control_reader:
        header = control_reader.peek_header()
        universal = header.tag.tag_class == TagClass.UNIVERSAL and value is None

        if universal and header.tag.tag_number == TypeTagNumber.BOOLEAN:
            critical = control_reader.read_boolean(header=header, hint="Control.criticality")

        elif universal and header.tag.tag_number == TypeTagNumber.OCTET_STRING:
            value = control_reader.read_octet_string(header=header, hint="Control.controlValue")

        else:
            control_reader.skip_value(header)

    control_cls = options.known.get(control_type, None)
    if control_cls is None:
        return LDAPControl(control_type, critical, value)

    return control_cls.decode_value(critical, value, options.string_encoding)


@dataclasses.dataclass(frozen=True)
class ManageDsaITControl(LDAPControl):
    """Treat referral and other special objects as normal entries.

    Defined in `RFC 3296`_, the control has no value.

    .. _RFC 3296:
        https://www.rfc-editor.org/rfc/rfc3296
    """

    control_type: str = dataclasses.field(init=False, default="2.16.840.1.113730.3.4.2")
    value: t.Optional[bytes] = dataclasses.field(init=False, default=None, repr=False)

    @classmethod
    def decode_value(
        cls,
        critical: bool,
        value: t.Optional[bytes],
        string_encoding: str,
    ) -> ManageDsaITControl:
        return ManageDsaITControl(critical=critical)


@dataclasses.dataclass(frozen=True)
class ProxiedAuthorizationControl(LDAPControl):
    """Run the operation as another authorization identity.

    Defined in `RFC 4370`_. The value is the authzId, for example
    ``dn:cn=user,dc=domain`` or ``u:user``, an empty string requests the
    anonymous identity. The control must always be critical.

    Args:
        authz_id: The authorization identity.

    .. _RFC 4370:
        https://www.rfc-editor.org/rfc/rfc4370
    """

    control_type: str = dataclasses.field(init=False, default="2.16.840.1.113730.3.4.18")
    critical: bool = True
    value: t.Optional[bytes] = dataclasses.field(init=False, default=None, repr=False)

    authz_id: str = ""

    def encode_value(
        self,
        string_encoding: str,
    ) -> t.Optional[bytes]:
        return self.authz_id.encode(string_encoding)

    @classmethod
    def decode_value(
        cls,
        critical: bool,
        value: t.Optional[bytes],
        string_encoding: str,
    ) -> ProxiedAuthorizationControl:
        return ProxiedAuthorizationControl(critical=critical, authz_id=(value or b"").decode(string_encoding))


@dataclasses.dataclass(frozen=True)
class PagedResultControl(LDAPControl):
    """Simple Paged Results.

    Sent with a search to ask for the entries in pages of ``size``. The
    server returns it with SearchResultDone carrying the cookie for the next
    page, an empty cookie means the last page was returned. Defined in
    `RFC 2696 2. The Control`_.

    Args:
        size: The requested page size, or the server estimate of the result
            set size in a response.
        cookie: The opaque paging cookie, empty on the first request.

    .. _RFC 2696 2. The Control:
        https://www.rfc-editor.org/rfc/rfc2696.html#section-2
    """

    # realSearchControlValue ::= SEQUENCE {
    #         size            INTEGER (0..maxInt),
    #         cookie          OCTET STRING
    # }

    control_type: str = dataclasses.field(init=False, default="1.2.840.113556.1.4.319")
    value: t.Optional[bytes] = dataclasses.field(init=False, default=None, repr=False)

    size: int = 0
    cookie: bytes = b""

    def encode_value(
        self,
        string_encoding: str,
    ) -> t.Optional[bytes]:
        writer = ASN1Writer()
        with writer.push_sequence() as value_writer:
            value_writer.write_integer(self.size)
            value_writer.write_octet_string(self.cookie)

        return bytes(writer.get_data())

    @classmethod
    def decode_value(
        cls,
        critical: bool,
        value: t.Optional[bytes],
        string_encoding: str,
    ) -> PagedResultControl:
        value_reader = ASN1Reader(value or b"").read_sequence(hint="PagedResultControl")
        size = value_reader.read_integer(hint="PagedResultControl.size")
        cookie = value_reader.read_octet_string(hint="PagedResultControl.cookie")

        return PagedResultControl(critical=critical, size=size, cookie=cookie)
