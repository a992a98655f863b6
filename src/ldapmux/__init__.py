# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

from ._authentication import (
    AuthenticationCredential,
    SaslCredential,
    SimpleCredential,
)
from ._client import ExtendedOperations, LDAPClient, connect
from ._codec import LDAPCodec, decode_message, encode_message, frame_length
from ._connection import ConnectionState, LDAPConnection
from ._controls import (
    ControlOptions,
    LDAPControl,
    ManageDsaITControl,
    PagedResultControl,
    ProxiedAuthorizationControl,
)
from ._exceptions import (
    ConnectionClosed,
    DecodeError,
    EncodeError,
    LDAPError,
    LDAPResultError,
    NeedMoreData,
    OperationCancelled,
    OperationTimeout,
    ProtocolError,
)
from ._filter import (
    FilterAnd,
    FilterApproxMatch,
    FilterEquality,
    FilterExtensibleMatch,
    FilterGreaterOrEqual,
    FilterLessOrEqual,
    FilterNot,
    FilterOptions,
    FilterOr,
    FilterPresent,
    FilterSubstrings,
    FilterSyntaxError,
    LDAPFilter,
)
from ._messages import (
    MAX_MESSAGE_ID,
    AbandonRequest,
    AddRequest,
    AddResponse,
    BindRequest,
    BindResponse,
    CompareRequest,
    CompareResponse,
    DelRequest,
    DelResponse,
    DereferencingPolicy,
    ExtendedRequest,
    ExtendedResponse,
    IntermediateResponse,
    LDAPMessage,
    LDAPResult,
    LDAPResultCode,
    ModifyChange,
    ModifyDNRequest,
    ModifyDNResponse,
    ModifyOperation,
    ModifyRequest,
    ModifyResponse,
    PackingOptions,
    PartialAttribute,
    SearchRequest,
    SearchResultDone,
    SearchResultEntry,
    SearchResultReference,
    SearchScope,
    UnbindRequest,
)
from ._request_table import RequestTable, ResponseChannel
from ._results import (
    BindResult,
    CompareResult,
    ExtendedResult,
    OperationResult,
    SearchAccumulator,
    SearchResult,
    SearchStream,
)
from ._sync import SyncLDAPClient, SyncSearchStream, connect_sync
from ._transport import ConnectionSettings, ConnectTarget, parse_ldap_url

__all__ = [
    "MAX_MESSAGE_ID",
    "AbandonRequest",
    "AddRequest",
    "AddResponse",
    "AuthenticationCredential",
    "BindRequest",
    "BindResponse",
    "BindResult",
    "CompareRequest",
    "CompareResponse",
    "CompareResult",
    "ConnectionClosed",
    "ConnectionSettings",
    "ConnectionState",
    "ConnectTarget",
    "ControlOptions",
    "DecodeError",
    "DelRequest",
    "DelResponse",
    "DereferencingPolicy",
    "EncodeError",
    "ExtendedOperations",
    "ExtendedRequest",
    "ExtendedResponse",
    "ExtendedResult",
    "FilterAnd",
    "FilterApproxMatch",
    "FilterEquality",
    "FilterExtensibleMatch",
    "FilterGreaterOrEqual",
    "FilterLessOrEqual",
    "FilterNot",
    "FilterOptions",
    "FilterOr",
    "FilterPresent",
    "FilterSubstrings",
    "FilterSyntaxError",
    "IntermediateResponse",
    "LDAPClient",
    "LDAPCodec",
    "LDAPConnection",
    "LDAPControl",
    "LDAPError",
    "LDAPFilter",
    "LDAPMessage",
    "LDAPResult",
    "LDAPResultCode",
    "LDAPResultError",
    "ManageDsaITControl",
    "ModifyChange",
    "ModifyDNRequest",
    "ModifyDNResponse",
    "ModifyOperation",
    "ModifyRequest",
    "ModifyResponse",
    "NeedMoreData",
    "OperationCancelled",
    "OperationResult",
    "OperationTimeout",
    "PackingOptions",
    "PagedResultControl",
    "PartialAttribute",
    "ProtocolError",
    "ProxiedAuthorizationControl",
    "RequestTable",
    "ResponseChannel",
    "SaslCredential",
    "SearchAccumulator",
    "SearchRequest",
    "SearchResult",
    "SearchResultDone",
    "SearchResultEntry",
    "SearchResultReference",
    "SearchScope",
    "SearchStream",
    "SimpleCredential",
    "SyncLDAPClient",
    "SyncSearchStream",
    "UnbindRequest",
    "connect",
    "connect_sync",
    "decode_message",
    "encode_message",
    "frame_length",
    "parse_ldap_url",
]
