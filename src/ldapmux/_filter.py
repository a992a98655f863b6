# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

from __future__ import annotations

import dataclasses
import re
import typing as t

from .asn1 import ASN1Reader, ASN1Tag, ASN1Writer, TagClass

_ATTRIBUTE_PATTERN = re.compile(
    r"""^
(?:
    [a-zA-Z][a-zA-Z0-9\-]*                  # descr
    |
    (?:0|[1-9][0-9]*)(?:\.(?:0|[1-9][0-9]*))+  # numericoid
)
(?:;[a-zA-Z0-9\-]+)*                        # options
$""",
    re.VERBOSE,
)
_RULE_PATTERN = re.compile(r"^(?:[a-zA-Z][a-zA-Z0-9\-]*|(?:0|[1-9][0-9]*)(?:\.(?:0|[1-9][0-9]*))+)$")
_HEX_CHARS = "0123456789abcdefABCDEF"


class FilterSyntaxError(ValueError):
    """Exception used for LDAP filter syntax errors.

    Raised when an LDAP filter string cannot be parsed. It contains the full
    filter as well as the offset and length of the part that failed.

    Args:
        msg: Details of the syntax error.
        filter: The filter string that was being parsed.
        offset: The offset of the filter provided that failed.
        length: The length after offset that was part of the failure.
    """

    def __init__(
        self,
        msg: str,
        filter: str,
        offset: int,
        length: int,
    ) -> None:
        super().__init__(msg)
        self.filter = filter
        self.offset = offset
        self.length = length


def _escape_filter_value(
    value: bytes,
) -> str:
    """Escapes a value for use in an LDAP filter string (RFC 4515 3.)."""
    chars = []
    for b in value:
        if b in b"()*\\" or b < 0x20 or b >= 0x7F:
            chars.append(f"\\{b:02x}")
        else:
            chars.append(chr(b))

    return "".join(chars)


@dataclasses.dataclass
class FilterOptions:
    """Options used for Filter packing and unpacking.

    Args:
        string_encoding: The encoding that is used to encode and decode
            strings. Defaults to utf-8.
        choices: List of known filter types.
    """

    string_encoding: str = "utf-8"
    choices: t.List[t.Type[LDAPFilter]] = dataclasses.field(
        default_factory=lambda: [
            FilterAnd,
            FilterApproxMatch,
            FilterEquality,
            FilterExtensibleMatch,
            FilterGreaterOrEqual,
            FilterLessOrEqual,
            FilterNot,
            FilterOr,
            FilterPresent,
            FilterSubstrings,
        ]
    )


@dataclasses.dataclass(frozen=True)
class LDAPFilter:
    """Base class for all LDAP filters.

    A search filter is sent as a tagged CHOICE value, ``filter_id`` is the
    context specific tag of the choice. Filters are normally built from the
    string representation with :meth:`from_string`, for example
    ``LDAPFilter.from_string("(&(objectClass=user)(cn=foo*))")``. The
    string form of a filter object can be retrieved with ``str(filter)``.
    """

    # Filter ::= CHOICE {
    #      and             [0] SET SIZE (1..MAX) OF filter Filter,
    #      or              [1] SET SIZE (1..MAX) OF filter Filter,
    #      not             [2] Filter,
    #      equalityMatch   [3] AttributeValueAssertion,
    #      substrings      [4] SubstringFilter,
    #      greaterOrEqual  [5] AttributeValueAssertion,
    #      lessOrEqual     [6] AttributeValueAssertion,
    #      present         [7] AttributeDescription,
    #      approxMatch     [8] AttributeValueAssertion,
    #      extensibleMatch [9] MatchingRuleAssertion,
    #      ...  }

    filter_id: int

    def pack(
        self,
        writer: ASN1Writer,
        options: FilterOptions,
    ) -> None:
        raise NotImplementedError()  # pragma: nocover

    @classmethod
    def from_string(
        cls,
        filter: str,
    ) -> LDAPFilter:
        """Convert an LDAP filter string to a filter object.

        Parses the string representation of a search filter as defined in
        `RFC 4515`_. A single item without the surrounding parenthesis, like
        ``objectClass=*``, is also accepted.

        Args:
            filter: The LDAP filter string to convert.

        Returns:
            LDAPFilter: The converted filter.

        Raises:
            FilterSyntaxError: The filter string is not valid.

        .. _RFC 4515:
            https://www.rfc-editor.org/rfc/rfc4515
        """
        return _FilterParser(filter).parse()

    @classmethod
    def unpack(
        cls,
        reader: ASN1Reader,
        options: FilterOptions,
    ) -> LDAPFilter:
        next_header = reader.peek_header()
        if next_header.tag.tag_class == TagClass.CONTEXT_SPECIFIC:
            for filter_type in options.choices:
                if filter_type.filter_id == next_header.tag.tag_number:
                    return filter_type.unpack(reader, options)

        raise NotImplementedError(f"Unknown filter object {next_header.tag}, cannot unpack")


@dataclasses.dataclass(frozen=True)
class _FilterSet(LDAPFilter):
    filters: t.List[LDAPFilter]

    _operator: t.ClassVar[str] = ""

    def __str__(self) -> str:
        filter_strings = "".join(str(f) for f in self.filters)
        return f"({self._operator}{filter_strings})"

    def pack(
        self,
        writer: ASN1Writer,
        options: FilterOptions,
    ) -> None:
        with writer.push_set_of(
            ASN1Tag(TagClass.CONTEXT_SPECIFIC, self.filter_id, True),
        ) as w:
            for f in self.filters:
                f.pack(w, options)

    @classmethod
    def unpack(
        cls,
        reader: ASN1Reader,
        options: FilterOptions,
    ) -> LDAPFilter:
        set_reader = reader.read_set_of(
            tag=ASN1Tag(TagClass.CONTEXT_SPECIFIC, cls.filter_id, True),
            hint=f"Filter.{cls.__name__}",
        )
        filters = []
        while set_reader:
            filters.append(LDAPFilter.unpack(set_reader, options))

        return cls(filters=filters)


@dataclasses.dataclass(frozen=True)
class FilterAnd(_FilterSet):
    """LDAP Filter And.

    True when every filter in ``filters`` is true, ``(&(a=1)(b=2))``.

    Args:
        filters: The filters to combine.
    """

    filter_id: int = dataclasses.field(init=False, repr=False, default=0)
    _operator: t.ClassVar[str] = "&"


@dataclasses.dataclass(frozen=True)
class FilterOr(_FilterSet):
    """LDAP Filter Or.

    True when any filter in ``filters`` is true, ``(|(a=1)(b=2))``.

    Args:
        filters: The filters to combine.
    """

    filter_id: int = dataclasses.field(init=False, repr=False, default=1)
    _operator: t.ClassVar[str] = "|"


@dataclasses.dataclass(frozen=True)
class FilterNot(LDAPFilter):
    """LDAP Filter Not.

    Inverts the result of the inner filter, ``(!(a=1))``.

    Args:
        filter: The filter to invert.
    """

    filter_id: int = dataclasses.field(init=False, repr=False, default=2)

    filter: LDAPFilter

    def __str__(self) -> str:
        return f"(!{self.filter!s})"

    def pack(
        self,
        writer: ASN1Writer,
        options: FilterOptions,
    ) -> None:
        # not is an explicit tag, the inner filter keeps its own choice tag.
        with writer.push_sequence(
            ASN1Tag(TagClass.CONTEXT_SPECIFIC, self.filter_id, True),
        ) as w:
            self.filter.pack(w, options)

    @classmethod
    def unpack(
        cls,
        reader: ASN1Reader,
        options: FilterOptions,
    ) -> FilterNot:
        not_reader = reader.read_sequence(
            tag=ASN1Tag(TagClass.CONTEXT_SPECIFIC, cls.filter_id, True),
            hint="Filter.not",
        )
        return FilterNot(filter=LDAPFilter.unpack(not_reader, options))


@dataclasses.dataclass(frozen=True)
class _FilterAttributeValueAssertion(LDAPFilter):
    # AttributeValueAssertion ::= SEQUENCE {
    #      attributeDesc   AttributeDescription,
    #      assertionValue  AssertionValue }

    attribute: str
    value: bytes

    _operator: t.ClassVar[str] = "="

    def __str__(self) -> str:
        return f"({self.attribute}{self._operator}{_escape_filter_value(self.value)})"

    def pack(
        self,
        writer: ASN1Writer,
        options: FilterOptions,
    ) -> None:
        with writer.push_sequence(
            ASN1Tag(TagClass.CONTEXT_SPECIFIC, self.filter_id, True),
        ) as w:
            w.write_octet_string(self.attribute.encode(options.string_encoding))
            w.write_octet_string(self.value)

    @classmethod
    def unpack(
        cls,
        reader: ASN1Reader,
        options: FilterOptions,
    ) -> LDAPFilter:
        name = cls.__name__
        filter_reader = reader.read_sequence(
            tag=ASN1Tag(TagClass.CONTEXT_SPECIFIC, cls.filter_id, True),
            hint=f"Filter.{name}",
        )
        attribute = filter_reader.read_octet_string(
            hint=f"Filter.{name}.attributeDesc",
        ).decode(options.string_encoding)
        value = filter_reader.read_octet_string(hint=f"Filter.{name}.assertionValue")

        return cls(attribute=attribute, value=value)


@dataclasses.dataclass(frozen=True)
class FilterEquality(_FilterAttributeValueAssertion):
    """LDAP Filter Equality, ``(attribute=value)``.

    Args:
        attribute: The attribute to match against.
        value: The value the attribute must equal.
    """

    filter_id: int = dataclasses.field(init=False, repr=False, default=3)
    _operator: t.ClassVar[str] = "="


@dataclasses.dataclass(frozen=True)
class FilterGreaterOrEqual(_FilterAttributeValueAssertion):
    """LDAP Filter Greater Or Equal, ``(attribute>=value)``."""

    filter_id: int = dataclasses.field(init=False, repr=False, default=5)
    _operator: t.ClassVar[str] = ">="


@dataclasses.dataclass(frozen=True)
class FilterLessOrEqual(_FilterAttributeValueAssertion):
    """LDAP Filter Less Or Equal, ``(attribute<=value)``."""

    filter_id: int = dataclasses.field(init=False, repr=False, default=6)
    _operator: t.ClassVar[str] = "<="


@dataclasses.dataclass(frozen=True)
class FilterApproxMatch(_FilterAttributeValueAssertion):
    """LDAP Filter Approximate Match, ``(attribute~=value)``.

    The matching algorithm used is defined by the server.
    """

    filter_id: int = dataclasses.field(init=False, repr=False, default=8)
    _operator: t.ClassVar[str] = "~="


@dataclasses.dataclass(frozen=True)
class FilterSubstrings(LDAPFilter):
    """LDAP Filter Substrings.

    Matches an attribute value against an initial, any number of middle, and
    a final substring, ``(attribute=initial*any 1*any 2*final)``.

    Args:
        attribute: The attribute to match against.
        initial: The value must start with this value if present.
        any: Values that must appear in order inside the value.
        final: The value must end with this value if present.
    """

    # SubstringFilter ::= SEQUENCE {
    #      type           AttributeDescription,
    #      substrings     SEQUENCE SIZE (1..MAX) OF substring CHOICE {
    #           initial [0] AssertionValue,  -- can occur at most once
    #           any     [1] AssertionValue,
    #           final   [2] AssertionValue } -- can occur at most once
    #      }

    filter_id: int = dataclasses.field(init=False, repr=False, default=4)

    attribute: str
    initial: t.Optional[bytes]
    any: t.List[bytes]
    final: t.Optional[bytes]

    def __str__(self) -> str:
        values = [_escape_filter_value(self.initial or b"")]
        values.extend(_escape_filter_value(a) for a in self.any)
        values.append(_escape_filter_value(self.final or b""))

        return f"({self.attribute}={'*'.join(values)})"

    def pack(
        self,
        writer: ASN1Writer,
        options: FilterOptions,
    ) -> None:
        with writer.push_sequence(
            ASN1Tag(TagClass.CONTEXT_SPECIFIC, self.filter_id, True),
        ) as w:
            w.write_octet_string(self.attribute.encode(options.string_encoding))

            with w.push_sequence_of() as value_writer:
                if self.initial is not None:
                    value_writer.write_octet_string(self.initial, tag=ASN1Tag(TagClass.CONTEXT_SPECIFIC, 0, False))

                for value in self.any:
                    value_writer.write_octet_string(value, tag=ASN1Tag(TagClass.CONTEXT_SPECIFIC, 1, False))

                if self.final is not None:
                    value_writer.write_octet_string(self.final, tag=ASN1Tag(TagClass.CONTEXT_SPECIFIC, 2, False))

    @classmethod
    def unpack(
        cls,
        reader: ASN1Reader,
        options: FilterOptions,
    ) -> FilterSubstrings:
        filter_reader = reader.read_sequence(
            tag=ASN1Tag(TagClass.CONTEXT_SPECIFIC, cls.filter_id, True),
            hint="Filter.substrings",
        )
        attribute = filter_reader.read_octet_string(hint="Filter.substrings.type").decode(options.string_encoding)

        substrings_reader = filter_reader.read_sequence_of(hint="Filter.substrings.substrings")
        initial: t.Optional[bytes] = None
        any_values: t.List[bytes] = []
        final: t.Optional[bytes] = None
        while substrings_reader:
            next_header = substrings_reader.peek_header()
            tag = next_header.tag

            if tag.tag_class != TagClass.CONTEXT_SPECIFIC or tag.tag_number not in (0, 1, 2):
                substrings_reader.skip_value(next_header)
                continue

            value = substrings_reader.read_octet_string(header=next_header, hint="Filter.substrings.substring")
            if tag.tag_number == 0:
                if initial is not None:
                    raise ValueError("Received multiple initial values when unpacking Filter.substrings")
                initial = value

            elif tag.tag_number == 1:
                any_values.append(value)

            else:
                if final is not None:
                    raise ValueError("Received multiple final values when unpacking Filter.substrings")
                final = value

        return FilterSubstrings(attribute=attribute, initial=initial, any=any_values, final=final)


@dataclasses.dataclass(frozen=True)
class FilterPresent(LDAPFilter):
    """LDAP Filter Present, ``(attribute=*)``.

    Args:
        attribute: The attribute that must be present on the entry.
    """

    filter_id: int = dataclasses.field(init=False, repr=False, default=7)

    attribute: str

    def __str__(self) -> str:
        return f"({self.attribute}=*)"

    def pack(
        self,
        writer: ASN1Writer,
        options: FilterOptions,
    ) -> None:
        writer.write_octet_string(
            self.attribute.encode(options.string_encoding),
            tag=ASN1Tag(TagClass.CONTEXT_SPECIFIC, self.filter_id, False),
        )

    @classmethod
    def unpack(
        cls,
        reader: ASN1Reader,
        options: FilterOptions,
    ) -> FilterPresent:
        attribute = reader.read_octet_string(
            tag=ASN1Tag(TagClass.CONTEXT_SPECIFIC, cls.filter_id, False),
            hint="Filter.present",
        ).decode(options.string_encoding)
        return FilterPresent(attribute=attribute)


@dataclasses.dataclass(frozen=True)
class FilterExtensibleMatch(LDAPFilter):
    """LDAP Filter Extensible Match.

    Matches using a specific matching rule, ``(attribute:=value)``,
    ``(attribute:dn:=value)``, or ``(attribute:1.2.3:=value)``. Either the
    rule or the attribute must be set.

    Args:
        rule: The matching rule name or OID, None to use the attribute's
            equality rule.
        attribute: The attribute to match, None to match any attribute the
            rule applies to.
        value: The value to compare.
        dn_attributes: Also match the attributes that make up the entry's DN.
    """

    # MatchingRuleAssertion ::= SEQUENCE {
    #      matchingRule    [1] MatchingRuleId OPTIONAL,
    #      type            [2] AttributeDescription OPTIONAL,
    #      matchValue      [3] AssertionValue,
    #      dnAttributes    [4] BOOLEAN DEFAULT FALSE }

    filter_id: int = dataclasses.field(init=False, repr=False, default=9)

    rule: t.Optional[str]
    attribute: t.Optional[str]
    value: bytes
    dn_attributes: bool = False

    def __str__(self) -> str:
        headers = [self.attribute or ""]
        if self.dn_attributes:
            headers.append("dn")
        if self.rule is not None:
            headers.append(self.rule)

        return f"({':'.join(headers)}:={_escape_filter_value(self.value)})"

    def pack(
        self,
        writer: ASN1Writer,
        options: FilterOptions,
    ) -> None:
        with writer.push_sequence(
            ASN1Tag(TagClass.CONTEXT_SPECIFIC, self.filter_id, True),
        ) as w:
            if self.rule is not None:
                w.write_octet_string(
                    self.rule.encode(options.string_encoding),
                    tag=ASN1Tag(TagClass.CONTEXT_SPECIFIC, 1, False),
                )

            if self.attribute is not None:
                w.write_octet_string(
                    self.attribute.encode(options.string_encoding),
                    tag=ASN1Tag(TagClass.CONTEXT_SPECIFIC, 2, False),
                )

            w.write_octet_string(self.value, tag=ASN1Tag(TagClass.CONTEXT_SPECIFIC, 3, False))

            if self.dn_attributes:
                w.write_boolean(True, tag=ASN1Tag(TagClass.CONTEXT_SPECIFIC, 4, False))

    @classmethod
    def unpack(
        cls,
        reader: ASN1Reader,
        options: FilterOptions,
    ) -> FilterExtensibleMatch:
        filter_reader = reader.read_sequence(
            tag=ASN1Tag(TagClass.CONTEXT_SPECIFIC, cls.filter_id, True),
            hint="Filter.extensibleMatch",
        )

        rule: t.Optional[str] = None
        attribute: t.Optional[str] = None
        value = b""
        dn_attributes = False
        while filter_reader:
            next_header = filter_reader.peek_header()
            tag = next_header.tag

            if tag.tag_class == TagClass.CONTEXT_SPECIFIC and tag.tag_number == 1:
                rule = filter_reader.read_octet_string(
                    header=next_header,
                    hint="Filter.extensibleMatch.matchingRule",
                ).decode(options.string_encoding)

            elif tag.tag_class == TagClass.CONTEXT_SPECIFIC and tag.tag_number == 2:
                attribute = filter_reader.read_octet_string(
                    header=next_header,
                    hint="Filter.extensibleMatch.type",
                ).decode(options.string_encoding)

            elif tag.tag_class == TagClass.CONTEXT_SPECIFIC and tag.tag_number == 3:
                value = filter_reader.read_octet_string(
                    header=next_header,
                    hint="Filter.extensibleMatch.matchValue",
                )

            elif tag.tag_class == TagClass.CONTEXT_SPECIFIC and tag.tag_number == 4:
                dn_attributes = filter_reader.read_boolean(
                    header=next_header,
                    hint="Filter.extensibleMatch.dnAttributes",
                )

            else:
                filter_reader.skip_value(next_header)

        return FilterExtensibleMatch(rule=rule, attribute=attribute, value=value, dn_attributes=dn_attributes)


class _FilterParser:
    """Recursive descent parser for RFC 4515 filter strings."""

    def __init__(
        self,
        filter: str,
    ) -> None:
        self.filter = filter
        self.pos = 0

    def parse(self) -> LDAPFilter:
        self._skip_spaces()
        if self.pos < len(self.filter) and self.filter[self.pos] != "(":
            end = len(self.filter.rstrip())
            parsed = self._parse_item(self.pos, end)
            self.pos = end
        else:
            parsed = self._parse_filter()

        self._skip_spaces()
        if self.pos < len(self.filter):
            raise self._error("Extra data found at filter end", self.pos, len(self.filter) - self.pos)

        return parsed

    def _error(
        self,
        msg: str,
        offset: int,
        length: int = 1,
    ) -> FilterSyntaxError:
        return FilterSyntaxError(msg, filter=self.filter, offset=offset, length=length)

    def _skip_spaces(self) -> None:
        while self.pos < len(self.filter) and self.filter[self.pos] == " ":
            self.pos += 1

    def _parse_filter(self) -> LDAPFilter:
        if self.pos >= len(self.filter) or self.filter[self.pos] != "(":
            raise self._error("Expecting '(' to start a filter", self.pos)

        start = self.pos
        self.pos += 1
        self._skip_spaces()
        if self.pos >= len(self.filter):
            raise self._error("Unbalanced starting '(' without a closing ')'", start)

        current = self.filter[self.pos]
        parsed: LDAPFilter
        if current in "&|":
            self.pos += 1
            filters = self._parse_filter_list(start)
            parsed = FilterAnd(filters=filters) if current == "&" else FilterOr(filters=filters)

        elif current == "!":
            self.pos += 1
            self._skip_spaces()
            parsed = FilterNot(filter=self._parse_filter())

        elif current == "(":
            raise self._error("Nested '(' without filter conditional", self.pos)

        else:
            end = self.filter.find(")", self.pos)
            if end == -1:
                raise self._error("Unbalanced starting '(' without a closing ')'", start)

            parsed = self._parse_item(self.pos, end)
            self.pos = end

        self._skip_spaces()
        if self.pos >= len(self.filter) or self.filter[self.pos] != ")":
            raise self._error("Unbalanced starting '(' without a closing ')'", start, self.pos - start)
        self.pos += 1

        return parsed

    def _parse_filter_list(
        self,
        start: int,
    ) -> t.List[LDAPFilter]:
        filters = []
        self._skip_spaces()
        while self.pos < len(self.filter) and self.filter[self.pos] == "(":
            filters.append(self._parse_filter())
            self._skip_spaces()

        if not filters:
            raise self._error("No filter found for conditional", start, self.pos - start)

        return filters

    def _parse_item(
        self,
        start: int,
        end: int,
    ) -> LDAPFilter:
        item = self.filter[start:end]
        equals_idx = item.find("=")
        if equals_idx < 1:
            raise self._error("Filter item must be in the form 'attribute<op>value'", start, len(item))

        op_char = item[equals_idx - 1]
        raw_value = item[equals_idx + 1 :]
        value_offset = start + equals_idx + 1

        if op_char == ":":
            return self._parse_extensible(item[: equals_idx - 1], start, raw_value, value_offset)

        attribute = item[: equals_idx - 1] if op_char in "~<>" else item[:equals_idx]
        attribute = attribute.strip()
        if not _ATTRIBUTE_PATTERN.match(attribute):
            raise self._error(f"Invalid filter attribute value '{attribute}'", start, len(attribute))

        if op_char == "~":
            return FilterApproxMatch(attribute=attribute, value=self._unescape(raw_value, value_offset))

        elif op_char == ">":
            return FilterGreaterOrEqual(attribute=attribute, value=self._unescape(raw_value, value_offset))

        elif op_char == "<":
            return FilterLessOrEqual(attribute=attribute, value=self._unescape(raw_value, value_offset))

        elif raw_value == "*":
            return FilterPresent(attribute=attribute)

        elif "*" in raw_value:
            parts = raw_value.split("*")
            part_offsets = []
            offset = value_offset
            for p in parts:
                part_offsets.append(offset)
                offset += len(p) + 1

            initial = self._unescape(parts[0], part_offsets[0]) if parts[0] else None
            final = self._unescape(parts[-1], part_offsets[-1]) if parts[-1] else None
            any_values = [
                self._unescape(p, o) for p, o in zip(parts[1:-1], part_offsets[1:-1]) if p
            ]
            return FilterSubstrings(attribute=attribute, initial=initial, any=any_values, final=final)

        return FilterEquality(attribute=attribute, value=self._unescape(raw_value, value_offset))

    def _parse_extensible(
        self,
        header: str,
        start: int,
        raw_value: str,
        value_offset: int,
    ) -> FilterExtensibleMatch:
        # attr [":dn"] [":" matchingrule] ":=" value
        # [":dn"] ":" matchingrule ":=" value
        parts = header.split(":")
        attribute: t.Optional[str] = parts[0].strip() or None
        dn_attributes = False
        rule: t.Optional[str] = None

        for p in parts[1:]:
            if p.lower() == "dn" and not dn_attributes and rule is None:
                dn_attributes = True
            elif rule is None and _RULE_PATTERN.match(p):
                rule = p
            else:
                raise self._error(f"Invalid extensible filter header '{header}'", start, len(header))

        if attribute is not None and not _ATTRIBUTE_PATTERN.match(attribute):
            raise self._error(f"Invalid filter attribute value '{attribute}'", start, len(header))

        if attribute is None and rule is None:
            raise self._error("Extensible filter must specify an attribute or rule", start, len(header))

        return FilterExtensibleMatch(
            rule=rule,
            attribute=attribute,
            value=self._unescape(raw_value, value_offset),
            dn_attributes=dn_attributes,
        )

    def _unescape(
        self,
        value: str,
        offset: int,
    ) -> bytes:
        b_value = bytearray()
        idx = 0
        while idx < len(value):
            char = value[idx]
            if char == "\\":
                hex_value = value[idx + 1 : idx + 3]
                if len(hex_value) != 2 or any(c not in _HEX_CHARS for c in hex_value):
                    raise self._error("Invalid hex characters following \\ escape", offset + idx, len(hex_value) + 1)

                b_value.append(int(hex_value, 16))
                idx += 3
                continue

            elif char in "()":
                raise self._error(f"Unescaped '{char}' in filter value", offset + idx)

            b_value.extend(char.encode("utf-8", errors="surrogateescape"))
            idx += 1

        return bytes(b_value)
