# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

"""BER reader and writer for the subset of ASN.1 used by LDAP.

LDAP messages are encoded with the Basic Encoding Rules but the protocol
restricts the encoding to a small subset, see `RFC 4511 5.1. Protocol
Encoding`_. This module only implements the types needed by LDAP; it is not
a general purpose ASN.1 library.

Values are always written with a definite length. When reading, both the
definite and indefinite length forms are accepted so that peers that stream
constructed values can still be parsed.

.. _RFC 4511 5.1. Protocol Encoding:
    https://www.rfc-editor.org/rfc/rfc4511#section-5.1
"""

from __future__ import annotations

import enum
import typing as t


EnumType = t.TypeVar("EnumType", bound=enum.IntEnum)


class NotEnoughData(Exception):
    """Signals the input ends before the current TLV is complete.

    This is not a parsing failure, the caller should wait for more data and
    try again once it has arrived.
    """


class TagClass(enum.IntEnum):
    UNIVERSAL = 0
    APPLICATION = 1
    CONTEXT_SPECIFIC = 2
    PRIVATE = 3


class TypeTagNumber(enum.IntEnum):
    END_OF_CONTENT = 0
    BOOLEAN = 1
    INTEGER = 2
    BIT_STRING = 3
    OCTET_STRING = 4
    NULL = 5
    OBJECT_IDENTIFIER = 6
    OBJECT_DESCRIPTOR = 7
    EXTERNAL = 8
    REAL = 9
    ENUMERATED = 10
    EMBEDDED_PDV = 11
    UTF8_STRING = 12
    RELATIVE_OID = 13
    TIME = 14
    RESERVED = 15
    SEQUENCE = 16
    SEQUENCE_OF = 16
    SET = 17
    SET_OF = 17
    NUMERIC_STRING = 18
    PRINTABLE_STRING = 19
    T61_STRING = 20
    VIDEOTEX_STRING = 21
    IA5_STRING = 22
    UTC_TIME = 23
    GENERALIZED_TIME = 24
    GRAPHIC_STRING = 25
    VISIBLE_STRING = 26
    GENERAL_STRING = 27
    UNIVERSAL_STRING = 28
    CHARACTER_STRING = 29
    BMP_STRING = 30
    DATE = 31
    TIME_OF_DAY = 32
    DATE_TIME = 33
    DURATION = 34
    OID_IRL = 35
    RELATIVE_OID_IRL = 36

    @classmethod
    def _missing_(cls, value: object) -> t.Any:
        # Universal tags above the known range are still valid BER, they
        # just have no name.
        if not isinstance(value, int):
            return None

        new_member = int.__new__(cls)
        new_member._name_ = f"UNKNOWN {value}"
        new_member._value_ = value

        return cls._value2member_map_.setdefault(value, new_member)


class ASN1Tag(t.NamedTuple):
    tag_class: TagClass
    tag_number: t.Union[int, TypeTagNumber]
    is_constructed: bool

    @classmethod
    def universal_tag(
        cls,
        number: TypeTagNumber,
        is_constructed: bool = False,
    ) -> ASN1Tag:
        return ASN1Tag(
            tag_class=TagClass.UNIVERSAL,
            tag_number=number,
            is_constructed=is_constructed,
        )


class ASN1Header(t.NamedTuple):
    """The identifier and length octets of a TLV.

    Attributes:
        tag: The tag of the value.
        tag_length: The number of octets used by the identifier and length
            octets.
        length: The length of the contents, -1 if the indefinite form was
            used.
    """

    tag: ASN1Tag
    tag_length: int
    length: int


def read_asn1_header(
    data: t.Union[bytes, bytearray, memoryview],
) -> ASN1Header:
    """Reads the ASN.1 identifier and length octets.

    Args:
        data: The raw bytes starting at the identifier octet.

    Returns:
        ASN1Header: The tag and length information.

    Raises:
        NotEnoughData: The data ends inside the identifier or length octets.
        ValueError: The length octets are invalid.
    """
    view = memoryview(data)
    if not view:
        raise NotEnoughData("No data available to read ASN.1 header")

    octet1 = view[0]
    tag_class = TagClass((octet1 & 0b11000000) >> 6)
    constructed = bool(octet1 & 0b00100000)
    tag_number: t.Union[int, TypeTagNumber] = octet1 & 0b00011111

    idx = 1
    if tag_number == 31:
        tag_number = 0
        while True:
            if idx >= len(view):
                raise NotEnoughData("Not enough data to read ASN.1 tag number")

            octet = view[idx]
            idx += 1
            tag_number = (tag_number << 7) | (octet & 0b01111111)
            if not octet & 0b10000000:
                break

    if tag_class == TagClass.UNIVERSAL:
        tag_number = TypeTagNumber(tag_number)

    if idx >= len(view):
        raise NotEnoughData("Not enough data to read ASN.1 length")

    length = view[idx]
    idx += 1

    if length == 0b10000000:
        # Indefinite length, the contents are terminated by the two
        # end-of-contents octets.
        if not constructed:
            raise ValueError("Indefinite length is only valid for constructed values")
        length = -1

    elif length & 0b10000000:
        length_octets = length & 0b01111111
        if length_octets == 0b01111111:
            raise ValueError("Invalid ASN.1 length octet 0xFF")

        if length_octets > 8:
            raise ValueError(f"ASN.1 length uses too many octets {length_octets}")

        if idx + length_octets > len(view):
            raise NotEnoughData("Not enough data to read ASN.1 long form length")

        length = int.from_bytes(view[idx : idx + length_octets], byteorder="big")
        idx += length_octets

    return ASN1Header(
        tag=ASN1Tag(
            tag_class=tag_class,
            tag_number=tag_number,
            is_constructed=constructed,
        ),
        tag_length=idx,
        length=length,
    )


def _indefinite_content_length(
    view: memoryview,
) -> int:
    """Finds the content length of an indefinite length value.

    The view starts at the first content octet. The nested values are walked
    until the end-of-contents octets at the same nesting level are found.
    """
    offset = 0
    while True:
        if len(view) - offset < 2:
            raise NotEnoughData("Not enough data to find ASN.1 end-of-contents")

        if view[offset] == 0 and view[offset + 1] == 0:
            return offset

        header = read_asn1_header(view[offset:])
        if header.length == -1:
            inner_length = _indefinite_content_length(view[offset + header.tag_length :])
            offset += header.tag_length + inner_length + 2
        else:
            offset += header.tag_length + header.length

        if offset > len(view):
            raise NotEnoughData("Not enough data to find ASN.1 end-of-contents")


def _expected_tag(
    tag: t.Optional[ASN1Tag],
    header: t.Optional[ASN1Header],
    default: ASN1Tag,
) -> ASN1Tag:
    # A header peeked by the caller carries the tag it already matched on,
    # usually an implicit context specific tag.
    if tag:
        return tag

    elif header:
        return header.tag

    return default


def _decode_integer(
    data: t.Union[bytes, memoryview],
    hint: t.Optional[str] = None,
) -> int:
    if not data:
        hint_str = f" for {hint}" if hint else ""
        raise ValueError(f"Received empty INTEGER value{hint_str}")

    return int.from_bytes(data, byteorder="big", signed=True)


def _encode_integer(
    value: int,
) -> bytes:
    length = ((value + (value < 0)).bit_length() // 8) + 1
    return value.to_bytes(length, byteorder="big", signed=True)


def pack_asn1(
    tag_class: TagClass,
    constructed: bool,
    tag_number: t.Union[TypeTagNumber, int],
    data: t.Union[bytes, bytearray, memoryview],
) -> bytes:
    """Pack the ASN.1 value into the ASN.1 bytes.

    Will pack the raw bytes into an ASN.1 Type Length Value (TLV) value. A TLV
    is in the form:

    | Identifier Octet(s) | Length Octet(s) | Data Octet(s) |

    Args:
        tag_class: The tag class of the data.
        constructed: Whether the data is constructed (True), i.e. contains 0,
            1, or more element encodings, or is primitive (False).
        tag_number: The type tag number if tag_class is universal else the
            explicit tag number of the TLV.
        data: The encoded value to pack into the ASN.1 TLV.

    Returns:
        bytes: The ASN.1 value as raw bytes.
    """
    b_asn1_data = bytearray()

    # |             Octet 1             |  |              Octet 2              |
    # | 8 | 7 |  6  | 5 | 4 | 3 | 2 | 1 |  |   8   | 7 | 6 | 5 | 4 | 3 | 2 | 1 |
    # | Class | P/C | Tag Number (0-30) |  | More  | Tag number                |
    identifier_octets = tag_class << 6
    identifier_octets |= (1 if constructed else 0) << 5

    if tag_number < 31:
        identifier_octets |= tag_number
        b_asn1_data.append(identifier_octets)
    else:
        identifier_octets |= 31
        b_asn1_data.append(identifier_octets)

        num_octets = bytearray()
        num = int(tag_number)
        while num:
            octet_value = num & 0b01111111
            if num_octets:
                octet_value |= 0b10000000
            num_octets.append(octet_value)
            num >>= 7

        num_octets.reverse()
        b_asn1_data.extend(num_octets)

    # Lengths are always written in the definite form, short form when it
    # fits in 7 bits otherwise the long form.
    length = len(data)
    if length < 128:
        b_asn1_data.append(length)
    else:
        length_octets = length.to_bytes((length.bit_length() + 7) // 8, byteorder="big")
        b_asn1_data.append(len(length_octets) | 0b10000000)
        b_asn1_data.extend(length_octets)

    return bytes(b_asn1_data) + bytes(data)


class ASN1Reader:
    """Reads ASN.1 values from a buffer.

    Each read method consumes the value it reads, checks the tag against the
    expected tag, and returns the decoded value. Constructed values are
    returned as a new reader scoped to the contents. The reader is truthy
    while it still has data left to read.

    Args:
        data: The data to read.
    """

    def __init__(
        self,
        data: t.Union[bytes, bytearray, memoryview],
    ) -> None:
        self._view = memoryview(data)

    def __bool__(self) -> bool:
        return len(self._view) > 0

    def __len__(self) -> int:
        return len(self._view)

    def get_remaining_data(self) -> memoryview:
        return self._view

    def peek_header(self) -> ASN1Header:
        return read_asn1_header(self._view)

    def skip_value(
        self,
        header: t.Optional[ASN1Header] = None,
    ) -> None:
        header = header or self.peek_header()
        self._read_value(header.tag, header=header)

    def read_value(
        self,
        header: t.Optional[ASN1Header] = None,
        hint: t.Optional[str] = None,
    ) -> memoryview:
        """Reads the contents of the next value regardless of its tag."""
        header = header or self.peek_header()
        return self._read_value(header.tag, header=header, hint=hint)

    def read_boolean(
        self,
        tag: t.Optional[ASN1Tag] = None,
        header: t.Optional[ASN1Header] = None,
        hint: t.Optional[str] = None,
    ) -> bool:
        tag = _expected_tag(tag, header, ASN1Tag.universal_tag(TypeTagNumber.BOOLEAN, False))
        raw = self._read_value(tag, header=header, hint=hint)
        if len(raw) != 1:
            hint_str = f" for {hint}" if hint else ""
            raise ValueError(f"Expected BOOLEAN{hint_str} to be 1 octet but got {len(raw)}")

        return raw[0] != 0

    def read_integer(
        self,
        tag: t.Optional[ASN1Tag] = None,
        header: t.Optional[ASN1Header] = None,
        hint: t.Optional[str] = None,
    ) -> int:
        tag = _expected_tag(tag, header, ASN1Tag.universal_tag(TypeTagNumber.INTEGER, False))
        raw = self._read_value(tag, header=header, hint=hint)
        return _decode_integer(raw, hint=hint)

    def read_enumerated(
        self,
        enum_type: t.Type[EnumType],
        tag: t.Optional[ASN1Tag] = None,
        header: t.Optional[ASN1Header] = None,
        hint: t.Optional[str] = None,
    ) -> EnumType:
        tag = _expected_tag(tag, header, ASN1Tag.universal_tag(TypeTagNumber.ENUMERATED, False))
        raw = self._read_value(tag, header=header, hint=hint)
        return enum_type(_decode_integer(raw, hint=hint))

    def read_octet_string(
        self,
        tag: t.Optional[ASN1Tag] = None,
        header: t.Optional[ASN1Header] = None,
        hint: t.Optional[str] = None,
    ) -> bytes:
        tag = _expected_tag(tag, header, ASN1Tag.universal_tag(TypeTagNumber.OCTET_STRING, False))
        return self._read_value(tag, header=header, hint=hint).tobytes()

    def read_sequence(
        self,
        tag: t.Optional[ASN1Tag] = None,
        header: t.Optional[ASN1Header] = None,
        hint: t.Optional[str] = None,
    ) -> ASN1Reader:
        tag = _expected_tag(tag, header, ASN1Tag.universal_tag(TypeTagNumber.SEQUENCE, True))
        return ASN1Reader(self._read_value(tag, header=header, hint=hint))

    def read_sequence_of(
        self,
        tag: t.Optional[ASN1Tag] = None,
        header: t.Optional[ASN1Header] = None,
        hint: t.Optional[str] = None,
    ) -> ASN1Reader:
        tag = _expected_tag(tag, header, ASN1Tag.universal_tag(TypeTagNumber.SEQUENCE_OF, True))
        return ASN1Reader(self._read_value(tag, header=header, hint=hint))

    def read_set(
        self,
        tag: t.Optional[ASN1Tag] = None,
        header: t.Optional[ASN1Header] = None,
        hint: t.Optional[str] = None,
    ) -> ASN1Reader:
        tag = _expected_tag(tag, header, ASN1Tag.universal_tag(TypeTagNumber.SET, True))
        return ASN1Reader(self._read_value(tag, header=header, hint=hint))

    def read_set_of(
        self,
        tag: t.Optional[ASN1Tag] = None,
        header: t.Optional[ASN1Header] = None,
        hint: t.Optional[str] = None,
    ) -> ASN1Reader:
        tag = _expected_tag(tag, header, ASN1Tag.universal_tag(TypeTagNumber.SET_OF, True))
        return ASN1Reader(self._read_value(tag, header=header, hint=hint))

    def _read_value(
        self,
        expected_tag: ASN1Tag,
        header: t.Optional[ASN1Header] = None,
        hint: t.Optional[str] = None,
    ) -> memoryview:
        header = header or self.peek_header()
        hint_str = f" for {hint}" if hint else ""

        if header.tag != expected_tag:
            raise ValueError(f"Expected tag {expected_tag}{hint_str} but got {header.tag}")

        contents = self._view[header.tag_length :]
        if header.length == -1:
            length = _indefinite_content_length(contents)
            consumed = header.tag_length + length + 2
        else:
            length = header.length
            if len(contents) < length:
                raise NotEnoughData(f"Not enough data{hint_str}: expecting {length} but got {len(contents)}")
            consumed = header.tag_length + length

        value = contents[:length]
        self._view = self._view[consumed:]

        return value


class ASN1Writer:
    """Writes ASN.1 values into a buffer.

    Constructed values are written with the ``push_*`` context managers which
    return a nested writer. The nested contents are packed into the parent
    writer with a definite length when the context exits.
    """

    def __init__(self) -> None:
        self._data = bytearray()

    def get_data(self) -> bytearray:
        return self._data

    def write_raw(
        self,
        data: t.Union[bytes, bytearray, memoryview],
    ) -> None:
        self._data.extend(data)

    def write_boolean(
        self,
        value: bool,
        tag: t.Optional[ASN1Tag] = None,
    ) -> None:
        tag = tag or ASN1Tag.universal_tag(TypeTagNumber.BOOLEAN, False)
        self._write_tlv(tag, b"\xff" if value else b"\x00")

    def write_integer(
        self,
        value: int,
        tag: t.Optional[ASN1Tag] = None,
    ) -> None:
        tag = tag or ASN1Tag.universal_tag(TypeTagNumber.INTEGER, False)
        self._write_tlv(tag, _encode_integer(value))

    def write_enumerated(
        self,
        value: int,
        tag: t.Optional[ASN1Tag] = None,
    ) -> None:
        tag = tag or ASN1Tag.universal_tag(TypeTagNumber.ENUMERATED, False)
        self._write_tlv(tag, _encode_integer(value))

    def write_null(
        self,
        tag: t.Optional[ASN1Tag] = None,
    ) -> None:
        tag = tag or ASN1Tag.universal_tag(TypeTagNumber.NULL, False)
        self._write_tlv(tag, b"")

    def write_octet_string(
        self,
        value: t.Union[bytes, bytearray, memoryview],
        tag: t.Optional[ASN1Tag] = None,
    ) -> None:
        tag = tag or ASN1Tag.universal_tag(TypeTagNumber.OCTET_STRING, False)
        self._write_tlv(tag, value)

    def push_sequence(
        self,
        tag: t.Optional[ASN1Tag] = None,
    ) -> ASN1ConstructedWriter:
        tag = tag or ASN1Tag.universal_tag(TypeTagNumber.SEQUENCE, True)
        return ASN1ConstructedWriter(self, tag)

    def push_sequence_of(
        self,
        tag: t.Optional[ASN1Tag] = None,
    ) -> ASN1ConstructedWriter:
        tag = tag or ASN1Tag.universal_tag(TypeTagNumber.SEQUENCE_OF, True)
        return ASN1ConstructedWriter(self, tag)

    def push_set(
        self,
        tag: t.Optional[ASN1Tag] = None,
    ) -> ASN1ConstructedWriter:
        tag = tag or ASN1Tag.universal_tag(TypeTagNumber.SET, True)
        return ASN1ConstructedWriter(self, tag)

    def push_set_of(
        self,
        tag: t.Optional[ASN1Tag] = None,
    ) -> ASN1ConstructedWriter:
        tag = tag or ASN1Tag.universal_tag(TypeTagNumber.SET_OF, True)
        return ASN1ConstructedWriter(self, tag)

    def _write_tlv(
        self,
        tag: ASN1Tag,
        value: t.Union[bytes, bytearray, memoryview],
    ) -> None:
        self._data.extend(pack_asn1(tag.tag_class, tag.is_constructed, tag.tag_number, value))


class ASN1ConstructedWriter(ASN1Writer):
    """Writer for the contents of a constructed value."""

    def __init__(
        self,
        parent: ASN1Writer,
        tag: ASN1Tag,
    ) -> None:
        super().__init__()
        self._parent = parent
        self._tag = tag

    def __enter__(self) -> ASN1ConstructedWriter:
        return self

    def __exit__(self, exc_type: t.Any, *args: t.Any) -> None:
        # Nothing is written to the parent if the contents failed to build so
        # a partial value never ends up in the output.
        if exc_type is None:
            self._parent._write_tlv(self._tag, self._data)
