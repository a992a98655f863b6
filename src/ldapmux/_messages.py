# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

from __future__ import annotations

import dataclasses
import enum
import typing as t

from ._authentication import AuthenticationCredential, pack_credential, unpack_credential
from ._controls import ControlOptions, LDAPControl, pack_control, unpack_control
from ._filter import FilterOptions, LDAPFilter
from .asn1 import ASN1Reader, ASN1Tag, ASN1Writer, TagClass, pack_asn1

MAX_MESSAGE_ID = 2**31 - 1


@dataclasses.dataclass
class PackingOptions:
    """Packing Options.

    Controls how LDAP messages are packed and unpacked.

    Args:
        string_encoding: The encoding used for encoding and decoding strings.
        control: Options used to pack/unpack Control values.
        filter: Options used to pack/unpack search filters.
    """

    string_encoding: str = "utf-8"
    control: ControlOptions = dataclasses.field(default_factory=ControlOptions)
    filter: FilterOptions = dataclasses.field(default_factory=FilterOptions)


def unpack_ldap_message(
    reader: ASN1Reader,
    options: PackingOptions,
) -> LDAPMessage:
    """Unpack an LDAP message.

    Unpacks the next LDAPMessage in the reader into the message object for
    its protocolOp choice.

    Args:
        reader: The ASN.1 reader to read from.
        options: Options used to control the unpacking.

    Returns:
        LDAPMessage: The unpacked message object.

    Raises:
        ValueError: The message is not a valid LDAPMessage.
        NotImplementedError: The protocolOp is not known.
    """
    message = reader.read_sequence(hint="LDAPMessage")
    message_id = message.read_integer(hint="LDAPMessage.messageID")

    protocol_op_header = message.peek_header()
    protocol_op_tag = protocol_op_header.tag
    if protocol_op_tag.tag_class != TagClass.APPLICATION:
        raise ValueError(f"Expecting LDAPMessage.protocolOp to be an APPLICATION but got {protocol_op_tag}")

    unpack_func = PROTOCOL_PACKER.get(protocol_op_tag.tag_number, None)
    if not unpack_func:
        raise NotImplementedError(f"Unknown LDAPMessage.protocolOp choice {protocol_op_tag.tag_number}")

    # Some choices are primitive types, the unpacker receives the contents
    # regardless of the form.
    protocol_reader = ASN1Reader(
        message.read_value(
            header=protocol_op_header,
            hint="LDAPMessage.protocolOp",
        )
    )

    controls: t.List[LDAPControl] = []
    response_name: t.Optional[str] = None
    while message:
        next_header = message.peek_header()

        if next_header.tag.tag_class == TagClass.CONTEXT_SPECIFIC:
            if next_header.tag.tag_number == 0:
                control_reader = message.read_sequence(
                    header=next_header,
                    hint="LDAPMessage.controls",
                )
                while control_reader:
                    controls.append(unpack_control(control_reader, options.control))

                continue

            elif next_header.tag.tag_number == 10:
                # MS-ADTS NoticeOfDisconnectionLDAPMessage places the
                # responseName after the protocolOp.
                response_name = message.read_octet_string(
                    header=next_header,
                    hint="LDAPMessage.responseName",
                ).decode(options.string_encoding)
                continue

        message.skip_value(next_header)

    msg = unpack_func(protocol_reader, options, message_id, controls)

    if isinstance(msg, ExtendedResponse) and response_name and not msg.name:
        object.__setattr__(msg, "name", response_name)

    return msg


class DereferencingPolicy(enum.IntEnum):
    """How alias entries are dereferenced during a search."""

    NEVER = 0
    "Never dereference aliases."

    IN_SEARCHING = 1
    "Dereference aliases found under the base object but not the base itself."

    FINDING_BASE_OBJ = 2
    "Dereference the base object only."

    ALWAYS = 3
    "Dereference aliases when finding the base and searching under it."


class LDAPResultCode(enum.IntEnum):
    """The known LDAP result codes."""

    SUCCESS = 0
    OPERATIONS_ERROR = 1
    PROTOCOL_ERROR = 2
    TIME_LIMIT_EXCEEDED = 3
    SIZE_LIMIT_EXCEEDED = 4
    COMPARE_FALSE = 5
    COMPARE_TRUE = 6
    AUTH_METHOD_NOT_SUPPORTED = 7
    STRONG_AUTH_REQUIRED = 8
    REFERRAL = 10
    ADMIN_LIMIT_EXCEEDED = 11
    UNAVAILABLE_CRITICAL_EXTENSION = 12
    CONFIDENTIALITY_REQUIRED = 13
    SASL_BIND_IN_PROGRESS = 14
    NO_SUCH_ATTRIBUTE = 16
    UNDEFINED_ATTRIBUTE_TYPE = 17
    INAPPROPRIATE_MATCHING = 18
    CONSTRAINT_VIOLATION = 19
    ATTRIBUTE_OR_VALUE_EXISTS = 20
    INVALID_ATTRIBUTE_SYNTAX = 21
    NO_SUCH_OBJECT = 32
    ALIAS_PROBLEM = 33
    INVALID_DN_SYNTAX = 34
    ALIAS_DEREFERENCING_PROBLEM = 36
    INAPPROPRIATE_AUTHENTICATION = 48
    INVALID_CREDENTIALS = 49
    INSUFFICIENT_ACCESS_RIGHTS = 50
    BUSY = 51
    UNAVAILABLE = 52
    UNWILLING_TO_PERFORM = 53
    LOOP_DETECT = 54
    NAMING_VIOLATION = 64
    OBJECT_CLASS_VIOLATION = 65
    NOT_ALLOWED_ON_NON_LEAF = 66
    NOT_ALLOWED_ON_RDN = 67
    ENTRY_ALREADY_EXISTS = 68
    OBJECT_CLASS_MODS_PROHIBITED = 69
    AFFECTS_MULTIPLE_DSAS = 71
    OTHER = 80

    @classmethod
    def _missing_(cls, value: object) -> t.Any:
        # Result codes are extensible, unknown codes get a synthetic member.
        if not isinstance(value, int):
            return None

        new_member = int.__new__(cls)
        new_member._name_ = "UNKNOWN 0x{0:08X}".format(value)
        new_member._value_ = value

        return cls._value2member_map_.setdefault(value, new_member)


class SearchScope(enum.IntEnum):
    """The scope of a search operation."""

    BASE = 0
    "Only the entry named by base_object."

    ONE_LEVEL = 1
    "The immediate children of base_object."

    SUBTREE = 2
    "base_object and everything under it."


class ModifyOperation(enum.IntEnum):
    """The type of change in a ModifyRequest."""

    ADD = 0
    "Add the values to the attribute, creating it if needed."

    DELETE = 1
    "Delete the values, or the whole attribute when no values are given."

    REPLACE = 2
    "Replace all the existing values with the new values."

    INCREMENT = 3
    "Increment the attribute value by the value given (RFC 4525)."


class Request:
    "Identifies LDAP requests"


class Response:
    "Identifies LDAP responses"


@dataclasses.dataclass(frozen=True)
class LDAPMessage:
    """The base LDAP Message object.

    Every message exchanged on the connection is an LDAPMessage envelope with
    a message id, one protocolOp and optional controls. The structure is
    defined in `RFC 4511 4.1.1. Message Envelope`_.

    Args:
        message_id: The id correlating requests and responses.
        controls: A list of controls associated with the message.
        tag_number: The protocolOp choice for this message type. This is
            defined on each LDAPMessage sub class.

    .. _RFC 4511 4.1.1. Message Envelope:
        https://www.rfc-editor.org/rfc/rfc4511#section-4.1.1
    """

    # LDAPMessage ::= SEQUENCE {
    #         messageID       MessageID,
    #         protocolOp      CHOICE {
    #             bindRequest           BindRequest,
    #             bindResponse          BindResponse,
    #             unbindRequest         UnbindRequest,
    #             searchRequest         SearchRequest,
    #             searchResEntry        SearchResultEntry,
    #             searchResDone         SearchResultDone,
    #             searchResRef          SearchResultReference,
    #             modifyRequest         ModifyRequest,
    #             modifyResponse        ModifyResponse,
    #             addRequest            AddRequest,
    #             addResponse           AddResponse,
    #             delRequest            DelRequest,
    #             delResponse           DelResponse,
    #             modDNRequest          ModifyDNRequest,
    #             modDNResponse         ModifyDNResponse,
    #             compareRequest        CompareRequest,
    #             compareResponse       CompareResponse,
    #             abandonRequest        AbandonRequest,
    #             extendedReq           ExtendedRequest,
    #             extendedResp          ExtendedResponse,
    #             ...,
    #             intermediateResponse  IntermediateResponse },
    #         controls       [0] Controls OPTIONAL }

    tag_number: int = dataclasses.field(init=False, default=0)

    message_id: int
    controls: t.List[LDAPControl]

    def pack(
        self,
        options: PackingOptions,
    ) -> bytes:
        """Packs the current message.

        Returns:
            bytes: The BER encoded LDAPMessage.

        Raises:
            ValueError: A field cannot be represented on the wire.
        """
        if not 0 <= self.message_id <= MAX_MESSAGE_ID:
            raise ValueError(f"LDAPMessage.messageID {self.message_id} must be between 0 and {MAX_MESSAGE_ID}")

        writer = ASN1Writer()
        with writer.push_sequence() as seq:
            seq.write_integer(self.message_id)
            self._pack_protocol_op(seq, options)

            if self.controls:
                with seq.push_sequence(
                    ASN1Tag(TagClass.CONTEXT_SPECIFIC, 0, True),
                ) as control_writer:
                    for control in self.controls:
                        pack_control(control, control_writer, options.control)

        return bytes(writer.get_data())

    def _pack_protocol_op(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        with writer.push_sequence(
            ASN1Tag(TagClass.APPLICATION, self.tag_number, True),
        ) as inner:
            self._pack_inner(inner, options)

    def _pack_inner(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        return


@dataclasses.dataclass(frozen=True)
class BindRequest(LDAPMessage, Request):
    """The bind request message.

    Authenticates the client to the server. The BindRequest structure is
    defined in `RFC 4511 4.2. Bind Operation`_.

    Args:
        message_id: The id correlating requests and responses.
        controls: A list of controls associated with the message.
        version: The protocol version, only 3 is supported.
        name: The DN to bind as, empty for SASL and anonymous binds.
        authentication: The :class:`SimpleCredential` or
            :class:`SaslCredential` to authenticate with.

    .. _RFC 4511 4.2. Bind Operation:
        https://www.rfc-editor.org/rfc/rfc4511#section-4.2
    """

    # BindRequest ::= [APPLICATION 0] SEQUENCE {
    #      version                 INTEGER (1 ..  127),
    #      name                    LDAPDN,
    #      authentication          AuthenticationChoice }

    tag_number = 0

    version: int
    name: str
    authentication: AuthenticationCredential

    def _pack_inner(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        writer.write_integer(self.version)
        writer.write_octet_string(self.name.encode(options.string_encoding))
        pack_credential(self.authentication, writer, options.string_encoding)


def _unpack_bind_request(
    reader: ASN1Reader,
    options: PackingOptions,
    message_id: int,
    controls: t.List[LDAPControl],
) -> BindRequest:
    version = reader.read_integer(hint="BindRequest.version")
    name = reader.read_octet_string(hint="BindRequest.name").decode(options.string_encoding)
    authentication = unpack_credential(reader, options.string_encoding)

    return BindRequest(
        message_id=message_id,
        controls=controls,
        version=version,
        name=name,
        authentication=authentication,
    )


@dataclasses.dataclass(frozen=True)
class BindResponse(LDAPMessage, Response):
    """The bind response message.

    The result of a bind request with the server SASL token for the next
    step of a SASL exchange. Defined in `RFC 4511 4.2.2. Bind Response`_.

    Args:
        message_id: The id correlating requests and responses.
        controls: A list of controls associated with the message.
        result: The LDAP result.
        server_sasl_creds: The SASL token returned by the server.

    .. _RFC 4511 4.2.2. Bind Response:
        https://www.rfc-editor.org/rfc/rfc4511#section-4.2.2
    """

    # BindResponse ::= [APPLICATION 1] SEQUENCE {
    #      COMPONENTS OF LDAPResult,
    #      serverSaslCreds    [7] OCTET STRING OPTIONAL }

    tag_number = 1

    result: LDAPResult
    server_sasl_creds: t.Optional[bytes] = None

    def _pack_inner(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        self.result._pack_inner(writer, options)

        if self.server_sasl_creds is not None:
            writer.write_octet_string(
                self.server_sasl_creds,
                ASN1Tag(TagClass.CONTEXT_SPECIFIC, 7, False),
            )


def _unpack_bind_response(
    reader: ASN1Reader,
    options: PackingOptions,
    message_id: int,
    controls: t.List[LDAPControl],
) -> BindResponse:
    result = _unpack_ldap_result(reader, options)

    sasl_creds: t.Optional[bytes] = None
    while reader:
        next_header = reader.peek_header()

        if next_header.tag.tag_class == TagClass.CONTEXT_SPECIFIC and next_header.tag.tag_number == 7:
            sasl_creds = reader.read_octet_string(
                header=next_header,
                hint="BindResponse.serverSaslCreds",
            )
            continue

        reader.skip_value(next_header)

    return BindResponse(
        message_id=message_id,
        controls=controls,
        result=result,
        server_sasl_creds=sasl_creds,
    )


@dataclasses.dataclass(frozen=True)
class UnbindRequest(LDAPMessage, Request):
    """The unbind request message.

    Signals the session is to be terminated. There is no response, both
    sides close the connection. Defined in `RFC 4511 4.3. Unbind Operation`_.

    Args:
        message_id: The id correlating requests and responses.
        controls: A list of controls associated with the message.

    .. _RFC 4511 4.3. Unbind Operation:
        https://www.rfc-editor.org/rfc/rfc4511#section-4.3
    """

    # UnbindRequest ::= [APPLICATION 2] NULL

    tag_number = 2

    def _pack_protocol_op(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        writer.write_null(ASN1Tag(TagClass.APPLICATION, self.tag_number, False))


@dataclasses.dataclass(frozen=True)
class SearchRequest(LDAPMessage, Request):
    """The search request message.

    Starts a search operation. The server replies with any number of
    :class:`SearchResultEntry` and :class:`SearchResultReference` messages
    followed by one :class:`SearchResultDone`. The SearchRequest structure is
    defined in `RFC 4511 4.5.1. Search Request`_.

    The attribute ``*`` requests all user attributes in addition to the ones
    listed, ``1.1`` requests no attributes at all.

    Args:
        message_id: The id correlating requests and responses.
        controls: A list of controls associated with the message.
        base_object: The DN of the entry to search from, an empty string is
            the root DSE.
        scope: The :class:`SearchScope` of the search.
        deref_aliases: The :class:`DereferencingPolicy` to use.
        size_limit: The maximum number of entries to return, 0 is no limit.
        time_limit: The maximum number of seconds the search may take, 0 is
            no limit.
        types_only: Return only the attribute names without values.
        filter: The :class:`LDAPFilter` entries must match.
        attributes: The attributes to return, empty for all user
            attributes.

    .. _RFC 4511 4.5.1. Search Request:
        https://www.rfc-editor.org/rfc/rfc4511#section-4.5.1
    """

    # SearchRequest ::= [APPLICATION 3] SEQUENCE {
    #      baseObject      LDAPDN,
    #      scope           ENUMERATED,
    #      derefAliases    ENUMERATED,
    #      sizeLimit       INTEGER (0 ..  maxInt),
    #      timeLimit       INTEGER (0 ..  maxInt),
    #      typesOnly       BOOLEAN,
    #      filter          Filter,
    #      attributes      AttributeSelection }

    tag_number = 3

    base_object: str
    scope: SearchScope
    deref_aliases: DereferencingPolicy
    size_limit: int
    time_limit: int
    types_only: bool
    filter: LDAPFilter
    attributes: t.List[str]

    def _pack_inner(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        for name, limit in [("sizeLimit", self.size_limit), ("timeLimit", self.time_limit)]:
            if not 0 <= limit <= MAX_MESSAGE_ID:
                raise ValueError(f"SearchRequest.{name} {limit} must be between 0 and {MAX_MESSAGE_ID}")

        writer.write_octet_string(self.base_object.encode(options.string_encoding))
        writer.write_enumerated(self.scope.value)
        writer.write_enumerated(self.deref_aliases.value)
        writer.write_integer(self.size_limit)
        writer.write_integer(self.time_limit)
        writer.write_boolean(self.types_only)
        self.filter.pack(writer, options.filter)

        with writer.push_sequence_of() as attr_writer:
            for attr in self.attributes:
                attr_writer.write_octet_string(attr.encode(options.string_encoding))


def _unpack_search_request(
    reader: ASN1Reader,
    options: PackingOptions,
    message_id: int,
    controls: t.List[LDAPControl],
) -> SearchRequest:
    base_object = reader.read_octet_string(hint="SearchRequest.baseObject")
    scope = reader.read_enumerated(SearchScope, hint="SearchRequest.scope")
    deref_aliases = reader.read_enumerated(
        DereferencingPolicy,
        hint="SearchRequest.derefAliases",
    )
    size_limit = reader.read_integer(hint="SearchRequest.sizeLimit")
    time_limit = reader.read_integer(hint="SearchRequest.timeLimit")
    types_only = reader.read_boolean(hint="SearchRequest.typesOnly")
    filter = LDAPFilter.unpack(reader, options.filter)

    attributes: t.List[str] = []
    attributes_reader = reader.read_sequence_of(hint="SearchRequest.attributes")
    while attributes_reader:
        attr = attributes_reader.read_octet_string(hint="SearchRequest.attributes.value")
        attributes.append(attr.decode(options.string_encoding))

    return SearchRequest(
        message_id=message_id,
        controls=controls,
        base_object=base_object.decode(options.string_encoding),
        scope=scope,
        deref_aliases=deref_aliases,
        size_limit=size_limit,
        time_limit=time_limit,
        types_only=types_only,
        filter=filter,
        attributes=attributes,
    )


@dataclasses.dataclass(frozen=True)
class SearchResultEntry(LDAPMessage, Response):
    """The search result entry message.

    One entry that matched a search. Defined in
    `RFC 4511 4.5.2. Search Result`_.

    Args:
        message_id: The id correlating requests and responses.
        controls: A list of controls associated with the message.
        object_name: The DN of the entry.
        attributes: The attributes of the entry that were requested.

    .. _RFC 4511 4.5.2. Search Result:
        https://www.rfc-editor.org/rfc/rfc4511#section-4.5.2
    """

    # SearchResultEntry ::= [APPLICATION 4] SEQUENCE {
    #      objectName      LDAPDN,
    #      attributes      PartialAttributeList }

    tag_number = 4

    object_name: str
    attributes: t.List[PartialAttribute]

    def _pack_inner(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        writer.write_octet_string(self.object_name.encode(options.string_encoding))

        with writer.push_sequence_of() as attr_writer:
            for attribute in self.attributes:
                attribute._pack_inner(attr_writer, options)


def _unpack_search_result_entry(
    reader: ASN1Reader,
    options: PackingOptions,
    message_id: int,
    controls: t.List[LDAPControl],
) -> SearchResultEntry:
    object_name = reader.read_octet_string(
        hint="SearchResultEntry.objectName",
    ).decode(options.string_encoding)

    attributes: t.List[PartialAttribute] = []
    attr_reader = reader.read_sequence_of(hint="SearchResultEntry.attributes")
    while attr_reader:
        attributes.append(_unpack_partial_attribute(attr_reader, options))

    return SearchResultEntry(
        message_id=message_id,
        controls=controls,
        object_name=object_name,
        attributes=attributes,
    )


@dataclasses.dataclass(frozen=True)
class SearchResultDone(LDAPMessage, Response):
    """The search result done message.

    The final message of a search operation containing the result. Defined
    in `RFC 4511 4.5.2. Search Result`_.

    Args:
        message_id: The id correlating requests and responses.
        controls: A list of controls associated with the message.
        result: The LDAP result of the search.

    .. _RFC 4511 4.5.2. Search Result:
        https://www.rfc-editor.org/rfc/rfc4511#section-4.5.2
    """

    # SearchResultDone ::= [APPLICATION 5] LDAPResult

    tag_number = 5

    result: LDAPResult

    def _pack_inner(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        self.result._pack_inner(writer, options)


@dataclasses.dataclass(frozen=True)
class SearchResultReference(LDAPMessage, Response):
    """The search result reference message.

    Returned during a search when part of the search must be continued on
    other servers. Each URI is a server the search can be continued on, the
    client does not chase them. Defined in `RFC 4511 4.5.2. Search Result`_.

    Args:
        message_id: The id correlating requests and responses.
        controls: A list of controls associated with the message.
        uris: The URIs to continue the search with.

    .. _RFC 4511 4.5.2. Search Result:
        https://www.rfc-editor.org/rfc/rfc4511#section-4.5.2
    """

    # SearchResultReference ::= [APPLICATION 19] SEQUENCE
    #                           SIZE (1..MAX) OF uri URI

    tag_number = 19

    uris: t.List[str]

    def _pack_inner(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        for uri in self.uris:
            writer.write_octet_string(uri.encode(options.string_encoding))


def _unpack_search_result_reference(
    reader: ASN1Reader,
    options: PackingOptions,
    message_id: int,
    controls: t.List[LDAPControl],
) -> SearchResultReference:
    uris: t.List[str] = []
    while reader:
        uri = reader.read_octet_string(hint="SearchResultReference.uri").decode(options.string_encoding)
        uris.append(uri)

    return SearchResultReference(
        message_id=message_id,
        controls=controls,
        uris=uris,
    )


@dataclasses.dataclass(frozen=True)
class ModifyRequest(LDAPMessage, Request):
    """The modify request message.

    Applies a list of changes to an entry. The changes are applied in order
    and atomically by the server. Defined in
    `RFC 4511 4.6. Modify Operation`_.

    Args:
        message_id: The id correlating requests and responses.
        controls: A list of controls associated with the message.
        object: The DN of the entry to modify.
        changes: The :class:`ModifyChange` values to apply.

    .. _RFC 4511 4.6. Modify Operation:
        https://www.rfc-editor.org/rfc/rfc4511#section-4.6
    """

    # ModifyRequest ::= [APPLICATION 6] SEQUENCE {
    #      object          LDAPDN,
    #      changes         SEQUENCE OF change SEQUENCE {
    #           operation       ENUMERATED {
    #                add     (0),
    #                delete  (1),
    #                replace (2),
    #                ...  },
    #           modification    PartialAttribute } }

    tag_number = 6

    object: str
    changes: t.List[ModifyChange]

    def _pack_inner(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        writer.write_octet_string(self.object.encode(options.string_encoding))

        with writer.push_sequence_of() as changes_writer:
            for change in self.changes:
                with changes_writer.push_sequence() as change_writer:
                    change_writer.write_enumerated(change.operation.value)
                    change.modification._pack_inner(change_writer, options)


def _unpack_modify_request(
    reader: ASN1Reader,
    options: PackingOptions,
    message_id: int,
    controls: t.List[LDAPControl],
) -> ModifyRequest:
    obj = reader.read_octet_string(hint="ModifyRequest.object").decode(options.string_encoding)

    changes: t.List[ModifyChange] = []
    changes_reader = reader.read_sequence_of(hint="ModifyRequest.changes")
    while changes_reader:
        change_reader = changes_reader.read_sequence(hint="ModifyRequest.changes.change")
        operation = change_reader.read_enumerated(
            ModifyOperation,
            hint="ModifyRequest.changes.change.operation",
        )
        modification = _unpack_partial_attribute(change_reader, options)
        changes.append(ModifyChange(operation=operation, modification=modification))

    return ModifyRequest(
        message_id=message_id,
        controls=controls,
        object=obj,
        changes=changes,
    )


@dataclasses.dataclass(frozen=True)
class ModifyResponse(LDAPMessage, Response):
    """The response to a :class:`ModifyRequest`."""

    # ModifyResponse ::= [APPLICATION 7] LDAPResult

    tag_number = 7

    result: LDAPResult

    def _pack_inner(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        self.result._pack_inner(writer, options)


@dataclasses.dataclass(frozen=True)
class AddRequest(LDAPMessage, Request):
    """The add request message.

    Adds a new entry to the directory. Defined in
    `RFC 4511 4.7. Add Operation`_.

    Args:
        message_id: The id correlating requests and responses.
        controls: A list of controls associated with the message.
        entry: The DN of the new entry.
        attributes: The attributes of the new entry.

    .. _RFC 4511 4.7. Add Operation:
        https://www.rfc-editor.org/rfc/rfc4511#section-4.7
    """

    # AddRequest ::= [APPLICATION 8] SEQUENCE {
    #      entry           LDAPDN,
    #      attributes      AttributeList }
    #
    # AttributeList ::= SEQUENCE OF attribute Attribute

    tag_number = 8

    entry: str
    attributes: t.List[PartialAttribute]

    def _pack_inner(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        writer.write_octet_string(self.entry.encode(options.string_encoding))

        with writer.push_sequence_of() as attr_writer:
            for attribute in self.attributes:
                attribute._pack_inner(attr_writer, options)


def _unpack_add_request(
    reader: ASN1Reader,
    options: PackingOptions,
    message_id: int,
    controls: t.List[LDAPControl],
) -> AddRequest:
    entry = reader.read_octet_string(hint="AddRequest.entry").decode(options.string_encoding)

    attributes: t.List[PartialAttribute] = []
    attr_reader = reader.read_sequence_of(hint="AddRequest.attributes")
    while attr_reader:
        attributes.append(_unpack_partial_attribute(attr_reader, options))

    return AddRequest(
        message_id=message_id,
        controls=controls,
        entry=entry,
        attributes=attributes,
    )


@dataclasses.dataclass(frozen=True)
class AddResponse(LDAPMessage, Response):
    """The response to an :class:`AddRequest`."""

    # AddResponse ::= [APPLICATION 9] LDAPResult

    tag_number = 9

    result: LDAPResult

    def _pack_inner(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        self.result._pack_inner(writer, options)


@dataclasses.dataclass(frozen=True)
class DelRequest(LDAPMessage, Request):
    """The delete request message.

    Removes a leaf entry from the directory. Defined in
    `RFC 4511 4.8. Delete Operation`_.

    Args:
        message_id: The id correlating requests and responses.
        controls: A list of controls associated with the message.
        entry: The DN of the entry to delete.

    .. _RFC 4511 4.8. Delete Operation:
        https://www.rfc-editor.org/rfc/rfc4511#section-4.8
    """

    # DelRequest ::= [APPLICATION 10] LDAPDN

    tag_number = 10

    entry: str

    def _pack_protocol_op(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        writer.write_octet_string(
            self.entry.encode(options.string_encoding),
            tag=ASN1Tag(TagClass.APPLICATION, self.tag_number, False),
        )


def _unpack_del_request(
    reader: ASN1Reader,
    options: PackingOptions,
    message_id: int,
    controls: t.List[LDAPControl],
) -> DelRequest:
    entry = reader.get_remaining_data().tobytes().decode(options.string_encoding)
    return DelRequest(message_id=message_id, controls=controls, entry=entry)


@dataclasses.dataclass(frozen=True)
class DelResponse(LDAPMessage, Response):
    """The response to a :class:`DelRequest`."""

    # DelResponse ::= [APPLICATION 11] LDAPResult

    tag_number = 11

    result: LDAPResult

    def _pack_inner(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        self.result._pack_inner(writer, options)


@dataclasses.dataclass(frozen=True)
class ModifyDNRequest(LDAPMessage, Request):
    """The modify DN request message.

    Renames an entry and optionally moves it under a new parent. Defined in
    `RFC 4511 4.9. Modify DN Operation`_.

    Args:
        message_id: The id correlating requests and responses.
        controls: A list of controls associated with the message.
        entry: The DN of the entry to rename.
        new_rdn: The new RDN of the entry.
        delete_old_rdn: Remove the old RDN values from the entry attributes.
        new_superior: The DN of the new parent entry, None to keep the
            current parent.

    .. _RFC 4511 4.9. Modify DN Operation:
        https://www.rfc-editor.org/rfc/rfc4511#section-4.9
    """

    # ModifyDNRequest ::= [APPLICATION 12] SEQUENCE {
    #      entry           LDAPDN,
    #      newrdn          RelativeLDAPDN,
    #      deleteoldrdn    BOOLEAN,
    #      newSuperior     [0] LDAPDN OPTIONAL }

    tag_number = 12

    entry: str
    new_rdn: str
    delete_old_rdn: bool
    new_superior: t.Optional[str] = None

    def _pack_inner(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        writer.write_octet_string(self.entry.encode(options.string_encoding))
        writer.write_octet_string(self.new_rdn.encode(options.string_encoding))
        writer.write_boolean(self.delete_old_rdn)

        if self.new_superior is not None:
            writer.write_octet_string(
                self.new_superior.encode(options.string_encoding),
                tag=ASN1Tag(TagClass.CONTEXT_SPECIFIC, 0, False),
            )


def _unpack_modify_dn_request(
    reader: ASN1Reader,
    options: PackingOptions,
    message_id: int,
    controls: t.List[LDAPControl],
) -> ModifyDNRequest:
    entry = reader.read_octet_string(hint="ModifyDNRequest.entry").decode(options.string_encoding)
    new_rdn = reader.read_octet_string(hint="ModifyDNRequest.newrdn").decode(options.string_encoding)
    delete_old_rdn = reader.read_boolean(hint="ModifyDNRequest.deleteoldrdn")

    new_superior: t.Optional[str] = None
    while reader:
        next_header = reader.peek_header()

        if next_header.tag.tag_class == TagClass.CONTEXT_SPECIFIC and next_header.tag.tag_number == 0:
            new_superior = reader.read_octet_string(
                header=next_header,
                hint="ModifyDNRequest.newSuperior",
            ).decode(options.string_encoding)
            continue

        reader.skip_value(next_header)

    return ModifyDNRequest(
        message_id=message_id,
        controls=controls,
        entry=entry,
        new_rdn=new_rdn,
        delete_old_rdn=delete_old_rdn,
        new_superior=new_superior,
    )


@dataclasses.dataclass(frozen=True)
class ModifyDNResponse(LDAPMessage, Response):
    """The response to a :class:`ModifyDNRequest`."""

    # ModifyDNResponse ::= [APPLICATION 13] LDAPResult

    tag_number = 13

    result: LDAPResult

    def _pack_inner(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        self.result._pack_inner(writer, options)


@dataclasses.dataclass(frozen=True)
class CompareRequest(LDAPMessage, Request):
    """The compare request message.

    Asks the server whether an entry has an attribute with the value given.
    The answer is the ``COMPARE_TRUE`` or ``COMPARE_FALSE`` result code.
    Defined in `RFC 4511 4.10. Compare Operation`_.

    Args:
        message_id: The id correlating requests and responses.
        controls: A list of controls associated with the message.
        entry: The DN of the entry to compare.
        attribute: The attribute to compare.
        value: The value to compare with.

    .. _RFC 4511 4.10. Compare Operation:
        https://www.rfc-editor.org/rfc/rfc4511#section-4.10
    """

    # CompareRequest ::= [APPLICATION 14] SEQUENCE {
    #      entry           LDAPDN,
    #      ava             AttributeValueAssertion }

    tag_number = 14

    entry: str
    attribute: str
    value: bytes

    def _pack_inner(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        writer.write_octet_string(self.entry.encode(options.string_encoding))

        with writer.push_sequence() as ava_writer:
            ava_writer.write_octet_string(self.attribute.encode(options.string_encoding))
            ava_writer.write_octet_string(self.value)


def _unpack_compare_request(
    reader: ASN1Reader,
    options: PackingOptions,
    message_id: int,
    controls: t.List[LDAPControl],
) -> CompareRequest:
    entry = reader.read_octet_string(hint="CompareRequest.entry").decode(options.string_encoding)

    ava_reader = reader.read_sequence(hint="CompareRequest.ava")
    attribute = ava_reader.read_octet_string(
        hint="CompareRequest.ava.attributeDesc",
    ).decode(options.string_encoding)
    value = ava_reader.read_octet_string(hint="CompareRequest.ava.assertionValue")

    return CompareRequest(
        message_id=message_id,
        controls=controls,
        entry=entry,
        attribute=attribute,
        value=value,
    )


@dataclasses.dataclass(frozen=True)
class CompareResponse(LDAPMessage, Response):
    """The response to a :class:`CompareRequest`."""

    # CompareResponse ::= [APPLICATION 15] LDAPResult

    tag_number = 15

    result: LDAPResult

    def _pack_inner(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        self.result._pack_inner(writer, options)


@dataclasses.dataclass(frozen=True)
class AbandonRequest(LDAPMessage, Request):
    """The abandon request message.

    Asks the server to stop processing an outstanding operation. There is no
    response and the server may have already finished the operation. Defined
    in `RFC 4511 4.11. Abandon Operation`_.

    Args:
        message_id: The id correlating requests and responses.
        controls: A list of controls associated with the message.
        abandon_id: The message id of the operation to abandon.

    .. _RFC 4511 4.11. Abandon Operation:
        https://www.rfc-editor.org/rfc/rfc4511#section-4.11
    """

    # AbandonRequest ::= [APPLICATION 16] MessageID

    tag_number = 16

    abandon_id: int

    def _pack_protocol_op(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        if not 0 <= self.abandon_id <= MAX_MESSAGE_ID:
            raise ValueError(f"AbandonRequest.idToAbandon {self.abandon_id} must be between 0 and {MAX_MESSAGE_ID}")

        writer.write_integer(
            self.abandon_id,
            tag=ASN1Tag(TagClass.APPLICATION, self.tag_number, False),
        )


def _unpack_abandon_request(
    reader: ASN1Reader,
    options: PackingOptions,
    message_id: int,
    controls: t.List[LDAPControl],
) -> AbandonRequest:
    raw = reader.get_remaining_data()
    if not raw:
        raise ValueError("Received empty INTEGER value for AbandonRequest.idToAbandon")

    return AbandonRequest(
        message_id=message_id,
        controls=controls,
        abandon_id=int.from_bytes(raw, byteorder="big", signed=True),
    )


@dataclasses.dataclass(frozen=True)
class ExtendedRequest(LDAPMessage, Request):
    """The extended request message.

    Invokes an operation identified by an OID that is not part of the core
    protocol, for example StartTLS or the Who Am I operation. Defined in
    `RFC 4511 4.12. Extended Operation`_.

    Args:
        message_id: The id correlating requests and responses.
        controls: A list of controls associated with the message.
        name: The extended operation OID string.
        value: The operation specific value, None if not needed.

    .. _RFC 4511 4.12. Extended Operation:
        https://www.rfc-editor.org/rfc/rfc4511#section-4.12
    """

    # ExtendedRequest ::= [APPLICATION 23] SEQUENCE {
    #      requestName      [0] LDAPOID,
    #      requestValue     [1] OCTET STRING OPTIONAL }

    tag_number = 23

    name: str
    value: t.Optional[bytes] = None

    def _pack_inner(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        writer.write_octet_string(
            self.name.encode(options.string_encoding),
            tag=ASN1Tag(TagClass.CONTEXT_SPECIFIC, 0, False),
        )

        if self.value is not None:
            writer.write_octet_string(
                self.value,
                tag=ASN1Tag(TagClass.CONTEXT_SPECIFIC, 1, False),
            )


def _unpack_extended_request(
    reader: ASN1Reader,
    options: PackingOptions,
    message_id: int,
    controls: t.List[LDAPControl],
) -> ExtendedRequest:
    name = reader.read_octet_string(
        tag=ASN1Tag(TagClass.CONTEXT_SPECIFIC, 0, False),
        hint="ExtendedRequest.requestName",
    ).decode(options.string_encoding)

    value: t.Optional[bytes] = None
    while reader:
        next_header = reader.peek_header()

        if next_header.tag.tag_class == TagClass.CONTEXT_SPECIFIC and next_header.tag.tag_number == 1:
            value = reader.read_octet_string(
                header=next_header,
                hint="ExtendedRequest.requestValue",
            )
            continue

        reader.skip_value(next_header)

    return ExtendedRequest(
        message_id=message_id,
        controls=controls,
        name=name,
        value=value,
    )


@dataclasses.dataclass(frozen=True)
class ExtendedResponse(LDAPMessage, Response):
    """The extended response message.

    The response to an :class:`ExtendedRequest`. It is also used by the
    server for unsolicited notifications, those always use the message id 0.
    Defined in `RFC 4511 4.12. Extended Operation`_.

    Args:
        message_id: The id correlating requests and responses.
        controls: A list of controls associated with the message.
        result: The result of the operation.
        name: The operation OID string, optionally returned by the server.
        value: The operation specific response value.

    .. _RFC 4511 4.12. Extended Operation:
        https://www.rfc-editor.org/rfc/rfc4511#section-4.12
    """

    # ExtendedResponse ::= [APPLICATION 24] SEQUENCE {
    #      COMPONENTS OF LDAPResult,
    #      responseName     [10] LDAPOID OPTIONAL,
    #      responseValue    [11] OCTET STRING OPTIONAL }

    tag_number = 24

    result: LDAPResult
    name: t.Optional[str] = None
    value: t.Optional[bytes] = None

    def _pack_inner(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        self.result._pack_inner(writer, options)

        if self.name is not None:
            writer.write_octet_string(
                self.name.encode(options.string_encoding),
                ASN1Tag(TagClass.CONTEXT_SPECIFIC, 10, False),
            )

        if self.value is not None:
            writer.write_octet_string(
                self.value,
                ASN1Tag(TagClass.CONTEXT_SPECIFIC, 11, False),
            )


def _unpack_extended_response(
    reader: ASN1Reader,
    options: PackingOptions,
    message_id: int,
    controls: t.List[LDAPControl],
) -> ExtendedResponse:
    result = _unpack_ldap_result(reader, options)

    name: t.Optional[str] = None
    value: t.Optional[bytes] = None
    while reader:
        next_header = reader.peek_header()

        if next_header.tag.tag_class == TagClass.CONTEXT_SPECIFIC:
            if next_header.tag.tag_number == 10:
                name = reader.read_octet_string(
                    header=next_header,
                    hint="ExtendedResponse.responseName",
                ).decode(options.string_encoding)
                continue

            elif next_header.tag.tag_number == 11:
                value = reader.read_octet_string(
                    header=next_header,
                    hint="ExtendedResponse.responseValue",
                )
                continue

        reader.skip_value(next_header)

    return ExtendedResponse(
        message_id=message_id,
        controls=controls,
        result=result,
        name=name,
        value=value,
    )


@dataclasses.dataclass(frozen=True)
class IntermediateResponse(LDAPMessage, Response):
    """The intermediate response message.

    An extra response sent by the server before the final response of an
    operation. It is part of the stream of responses for the request it
    belongs to. Defined in `RFC 4511 4.13. IntermediateResponse Message`_.

    Args:
        message_id: The id correlating requests and responses.
        controls: A list of controls associated with the message.
        name: The response OID, if any.
        value: The response value, if any.

    .. _RFC 4511 4.13. IntermediateResponse Message:
        https://www.rfc-editor.org/rfc/rfc4511#section-4.13
    """

    # IntermediateResponse ::= [APPLICATION 25] SEQUENCE {
    #         responseName     [0] LDAPOID OPTIONAL,
    #         responseValue    [1] OCTET STRING OPTIONAL }

    tag_number = 25

    name: t.Optional[str] = None
    value: t.Optional[bytes] = None

    def _pack_inner(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        if self.name is not None:
            writer.write_octet_string(
                self.name.encode(options.string_encoding),
                ASN1Tag(TagClass.CONTEXT_SPECIFIC, 0, False),
            )

        if self.value is not None:
            writer.write_octet_string(
                self.value,
                ASN1Tag(TagClass.CONTEXT_SPECIFIC, 1, False),
            )


def _unpack_intermediate_response(
    reader: ASN1Reader,
    options: PackingOptions,
    message_id: int,
    controls: t.List[LDAPControl],
) -> IntermediateResponse:
    name: t.Optional[str] = None
    value: t.Optional[bytes] = None
    while reader:
        next_header = reader.peek_header()

        if next_header.tag.tag_class == TagClass.CONTEXT_SPECIFIC:
            if next_header.tag.tag_number == 0:
                name = reader.read_octet_string(
                    header=next_header,
                    hint="IntermediateResponse.responseName",
                ).decode(options.string_encoding)
                continue

            elif next_header.tag.tag_number == 1:
                value = reader.read_octet_string(
                    header=next_header,
                    hint="IntermediateResponse.responseValue",
                )
                continue

        reader.skip_value(next_header)

    return IntermediateResponse(
        message_id=message_id,
        controls=controls,
        name=name,
        value=value,
    )


@dataclasses.dataclass(frozen=True)
class LDAPResult:
    """The LDAPResult message.

    The common result structure of every response. Defined in
    `RFC 4511 4.1.9. Result Message`_.

    Args:
        result_code: The :class:`LDAPResultCode` of the operation.
        matched_dn: The last entry the server matched when the target entry
            was not found, an empty string otherwise.
        diagnostics_message: Human readable diagnostics, not meant to be
            parsed.
        referrals: The servers to continue the operation on when the result
            code is ``REFERRAL``.

    .. _RFC 4511 4.1.9. Result Message:
        https://www.rfc-editor.org/rfc/rfc4511#section-4.1.9
    """

    # LDAPResult ::= SEQUENCE {
    #      resultCode         ENUMERATED,
    #      matchedDN          LDAPDN,
    #      diagnosticMessage  LDAPString,
    #      referral           [3] Referral OPTIONAL }
    #
    # Referral ::= SEQUENCE SIZE (1..MAX) OF uri URI

    result_code: LDAPResultCode
    matched_dn: str = ""
    diagnostics_message: str = ""
    referrals: t.Optional[t.List[str]] = None

    def _pack_inner(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        writer.write_enumerated(self.result_code.value)
        writer.write_octet_string(self.matched_dn.encode(options.string_encoding))
        writer.write_octet_string(self.diagnostics_message.encode(options.string_encoding))

        if self.referrals is not None:
            with writer.push_sequence(ASN1Tag(TagClass.CONTEXT_SPECIFIC, 3, True)) as referrals:
                for r in self.referrals:
                    referrals.write_octet_string(r.encode(options.string_encoding))


def _unpack_ldap_result(
    reader: ASN1Reader,
    options: PackingOptions,
) -> LDAPResult:
    result_code = reader.read_enumerated(LDAPResultCode, hint="LDAPResult.resultCode")
    matched_dn = reader.read_octet_string(hint="LDAPResult.matchedDN").decode(options.string_encoding)
    diagnostics_message = reader.read_octet_string(
        hint="LDAPResult.diagnosticMessage",
    ).decode(options.string_encoding)

    referrals: t.Optional[t.List[str]] = None
    if reader:
        next_header = reader.peek_header()

        if next_header.tag.tag_class == TagClass.CONTEXT_SPECIFIC and next_header.tag.tag_number == 3:
            referral_reader = reader.read_sequence(
                header=next_header,
                hint="LDAPResult.referral",
            )

            referrals = []
            while referral_reader:
                r = referral_reader.read_octet_string(hint="LDAPResult.referral.uri")
                referrals.append(r.decode(options.string_encoding))

    return LDAPResult(
        result_code=result_code,
        matched_dn=matched_dn,
        diagnostics_message=diagnostics_message,
        referrals=referrals,
    )


@dataclasses.dataclass(frozen=True)
class PartialAttribute:
    """An attribute description with its values.

    Used for the attributes of search result entries, new entries, and
    modifications. The values are unordered. Defined in
    `RFC 4511 4.1.7. Attribute and PartialAttribute`_.

    Args:
        name: The attribute name.
        values: The attribute values, may be empty.

    .. _RFC 4511 4.1.7. Attribute and PartialAttribute:
        https://www.rfc-editor.org/rfc/rfc4511#section-4.1.7
    """

    # PartialAttribute ::= SEQUENCE {
    #      type       AttributeDescription,
    #      vals       SET OF value AttributeValue }

    name: str
    values: t.List[bytes]

    def _pack_inner(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        with writer.push_sequence() as val:
            val.write_octet_string(self.name.encode(options.string_encoding))

            with val.push_set_of() as values:
                for v in self.values:
                    values.write_octet_string(v)


def _unpack_partial_attribute(
    reader: ASN1Reader,
    options: PackingOptions,
) -> PartialAttribute:
    attr_reader = reader.read_sequence(hint="PartialAttribute")
    name = attr_reader.read_octet_string(hint="PartialAttribute.type").decode(options.string_encoding)

    values: t.List[bytes] = []
    value_reader = attr_reader.read_set_of(hint="PartialAttribute.vals")
    while value_reader:
        values.append(value_reader.read_octet_string(hint="PartialAttribute.vals.value"))

    return PartialAttribute(name=name, values=values)


@dataclasses.dataclass(frozen=True)
class ModifyChange:
    """A single change of a :class:`ModifyRequest`.

    Args:
        operation: The :class:`ModifyOperation` to apply.
        modification: The attribute and values the operation applies to.
    """

    operation: ModifyOperation
    modification: PartialAttribute


_ResultMessage = t.Union[
    t.Type[SearchResultDone],
    t.Type[ModifyResponse],
    t.Type[AddResponse],
    t.Type[DelResponse],
    t.Type[ModifyDNResponse],
    t.Type[CompareResponse],
]


def _result_unpacker(
    msg_type: _ResultMessage,
) -> t.Callable[[ASN1Reader, PackingOptions, int, t.List[LDAPControl]], LDAPMessage]:
    def unpack(
        reader: ASN1Reader,
        options: PackingOptions,
        message_id: int,
        controls: t.List[LDAPControl],
    ) -> LDAPMessage:
        return msg_type(
            message_id=message_id,
            controls=controls,
            result=_unpack_ldap_result(reader, options),
        )

    return unpack


def _unpack_unbind_request(
    reader: ASN1Reader,
    options: PackingOptions,
    message_id: int,
    controls: t.List[LDAPControl],
) -> UnbindRequest:
    # Both the primitive NULL and an empty constructed value are accepted.
    if reader:
        raise ValueError(f"Expecting UnbindRequest to be NULL but got {len(reader)} octets")

    return UnbindRequest(message_id=message_id, controls=controls)


PROTOCOL_PACKER: t.Dict[int, t.Callable[[ASN1Reader, PackingOptions, int, t.List[LDAPControl]], LDAPMessage]] = {
    BindRequest.tag_number: _unpack_bind_request,
    BindResponse.tag_number: _unpack_bind_response,
    UnbindRequest.tag_number: _unpack_unbind_request,
    SearchRequest.tag_number: _unpack_search_request,
    SearchResultEntry.tag_number: _unpack_search_result_entry,
    SearchResultDone.tag_number: _result_unpacker(SearchResultDone),
    ModifyRequest.tag_number: _unpack_modify_request,
    ModifyResponse.tag_number: _result_unpacker(ModifyResponse),
    AddRequest.tag_number: _unpack_add_request,
    AddResponse.tag_number: _result_unpacker(AddResponse),
    DelRequest.tag_number: _unpack_del_request,
    DelResponse.tag_number: _result_unpacker(DelResponse),
    ModifyDNRequest.tag_number: _unpack_modify_dn_request,
    ModifyDNResponse.tag_number: _result_unpacker(ModifyDNResponse),
    CompareRequest.tag_number: _unpack_compare_request,
    CompareResponse.tag_number: _result_unpacker(CompareResponse),
    AbandonRequest.tag_number: _unpack_abandon_request,
    SearchResultReference.tag_number: _unpack_search_result_reference,
    ExtendedRequest.tag_number: _unpack_extended_request,
    ExtendedResponse.tag_number: _unpack_extended_response,
    IntermediateResponse.tag_number: _unpack_intermediate_response,
}
