# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

import base64
import re

import pytest

import ldapmux._authentication as a
import ldapmux._controls as c
import ldapmux._filter as f
import ldapmux._messages as m
from ldapmux.asn1 import ASN1Reader, ASN1Tag, ASN1Writer, TagClass

PACKING_OPTIONS = m.PackingOptions()


def unpack_message(data: bytes) -> m.LDAPMessage:
    reader = ASN1Reader(data)
    return m.unpack_ldap_message(reader, PACKING_OPTIONS)


class TestGenericMessages:
    def test_fail_unpack_not_application_tag(self) -> None:
        writer = ASN1Writer()
        with writer.push_sequence() as writer_seq:
            writer_seq.write_integer(0)
            writer_seq.write_octet_string(b"value")
        data = bytes(writer.get_data())

        expected = "Expecting LDAPMessage.protocolOp to be an APPLICATION but got ASN1Tag(tag_class=<TagClass.UNIVERSAL: 0>, tag_number=<TypeTagNumber.OCTET_STRING: 4>, is_constructed=False)"
        with pytest.raises(ValueError, match=re.escape(expected)):
            unpack_message(data)

    def test_fail_unpack_unknown_protocol_op(self) -> None:
        writer = ASN1Writer()
        with writer.push_sequence() as writer_seq:
            writer_seq.write_integer(0)
            writer_seq.write_octet_string(b"value", tag=ASN1Tag(TagClass.APPLICATION, 1024, False))
        data = bytes(writer.get_data())

        expected = "Unknown LDAPMessage.protocolOp choice 1024"
        with pytest.raises(NotImplementedError, match=re.escape(expected)):
            unpack_message(data)

    def test_unpack_extra_data_in_header(self) -> None:
        # UnbindRequest with a random OCTET_STRING between the protocolOp and
        # controls
        data = b"\x30\x29\x02\x01\x00\x42\x00\x04\x05dummy\xa0\x1b\x30\x19\x04\x172.16.840.1.113730.3.4.2"

        actual = unpack_message(data)
        assert isinstance(actual, m.UnbindRequest)
        assert len(actual.controls) == 1
        assert isinstance(actual.controls[0], c.ManageDsaITControl)
        assert actual.controls[0].critical is False

    def test_unpack_extra_context_specific_data_in_header(self) -> None:
        # UnbindRequest with a random CONTEXT_SPECIFIC tagged OCTET_STRING
        # between the protocolOp and controls
        data = b"\x30\x2a\x02\x01\x00\x42\x00\x9f\x88\x00\x05dummy\xa0\x1b\x30\x19\x04\x172.16.840.1.113730.3.4.2"

        actual = unpack_message(data)
        assert isinstance(actual, m.UnbindRequest)
        assert len(actual.controls) == 1
        assert isinstance(actual.controls[0], c.ManageDsaITControl)

    def test_fail_message_id_out_of_range(self) -> None:
        msg = m.DelRequest(message_id=m.MAX_MESSAGE_ID + 1, controls=[], entry="cn=foo")

        with pytest.raises(ValueError, match="LDAPMessage.messageID 2147483648 must be between 0 and 2147483647"):
            msg.pack(PACKING_OPTIONS)


class TestLDAPResultCode:
    def test_add_missing_member(self) -> None:
        value = m.LDAPResultCode(666)
        assert isinstance(value, m.LDAPResultCode)
        assert value.name == "UNKNOWN 0x0000029A"
        assert value.value == 666

    def test_missing_member_is_reused(self) -> None:
        assert m.LDAPResultCode(4096) is m.LDAPResultCode(4096)

    def test_fail_adding_non_integer(self) -> None:
        with pytest.raises(ValueError, match="'abc' is not a valid LDAPResultCode"):
            m.LDAPResultCode("abc")  # type: ignore[arg-type]  # Testing this


class TestBindRequest:
    def test_simple_create(self) -> None:
        msg = m.BindRequest(
            message_id=2,
            controls=[],
            version=3,
            name="CN=User",
            authentication=a.SimpleCredential("password"),
        )
        actual = msg.pack(PACKING_OPTIONS)
        assert isinstance(actual, bytes)

        unpacked = unpack_message(actual)
        assert isinstance(unpacked, m.BindRequest)
        assert unpacked.message_id == 2
        assert unpacked.controls == []
        assert unpacked.version == 3
        assert unpacked.name == "CN=User"
        assert isinstance(unpacked.authentication, a.SimpleCredential)
        assert unpacked.authentication.password == "password"

    def test_sasl_create(self) -> None:
        msg = m.BindRequest(
            message_id=2,
            controls=[],
            version=3,
            name="UserName",
            authentication=a.SaslCredential(
                mechanism="GSSAPI",
                credentials=b"abcdef\x00",
            ),
        )
        actual = msg.pack(PACKING_OPTIONS)
        assert isinstance(actual, bytes)

        unpacked = unpack_message(actual)
        assert isinstance(unpacked, m.BindRequest)
        assert unpacked.message_id == 2
        assert unpacked.controls == []
        assert unpacked.version == 3
        assert unpacked.name == "UserName"
        assert isinstance(unpacked.authentication, a.SaslCredential)
        assert unpacked.authentication.mechanism == "GSSAPI"
        assert unpacked.authentication.credentials == b"abcdef\x00"


class TestBindResponse:
    def test_create(self) -> None:
        msg = m.BindResponse(
            message_id=2,
            controls=[],
            result=m.LDAPResult(
                result_code=m.LDAPResultCode.SUCCESS,
                matched_dn="CN=User,DC=domain,DC=test",
                diagnostics_message="Some random message",
                referrals=None,
            ),
            server_sasl_creds=b"abc\x00",
        )
        actual = msg.pack(PACKING_OPTIONS)
        assert isinstance(actual, bytes)

        unpacked = unpack_message(actual)
        assert isinstance(unpacked, m.BindResponse)
        assert unpacked.message_id == 2
        assert unpacked.controls == []
        assert unpacked.result.result_code == m.LDAPResultCode.SUCCESS
        assert unpacked.result.diagnostics_message == "Some random message"
        assert unpacked.result.matched_dn == "CN=User,DC=domain,DC=test"
        assert unpacked.result.referrals is None
        assert unpacked.server_sasl_creds == b"abc\x00"

    def test_create_no_sasl_cred(self) -> None:
        msg = m.BindResponse(
            message_id=1,
            controls=[],
            result=m.LDAPResult(
                result_code=m.LDAPResultCode.SUCCESS,
                matched_dn="",
                diagnostics_message="",
                referrals=None,
            ),
            server_sasl_creds=None,
        )
        actual = msg.pack(PACKING_OPTIONS)
        assert actual == b"\x30\x0c\x02\x01\x01\x61\x07\x0a\x01\x00\x04\x00\x04\x00"

        unpacked = unpack_message(actual)
        assert isinstance(unpacked, m.BindResponse)
        assert unpacked.server_sasl_creds is None

    def test_parse_with_extra_data(self) -> None:
        data = base64.b64decode("MBgCAQFhEwoBAAQABAAEBWR1bW15hwNhYmM=")

        actual = unpack_message(data)
        assert isinstance(actual, m.BindResponse)
        assert actual.message_id == 1
        assert actual.controls == []
        assert actual.result.result_code == m.LDAPResultCode.SUCCESS
        assert actual.result.diagnostics_message == ""
        assert actual.result.matched_dn == ""
        assert actual.result.referrals is None
        assert actual.server_sasl_creds == b"abc"

    def test_parse_unknown_result_code(self) -> None:
        data = b"\x30\x0d\x02\x01\x01\x61\x08\x0a\x02\x02\x9a\x04\x00\x04\x00"

        actual = unpack_message(data)
        assert isinstance(actual, m.BindResponse)
        assert actual.result.result_code == 666
        assert actual.result.result_code.name == "UNKNOWN 0x0000029A"


class TestUnbindRequest:
    def test_create(self) -> None:
        actual = m.UnbindRequest(message_id=1, controls=[]).pack(PACKING_OPTIONS)

        assert actual == b"\x30\x05\x02\x01\x01\x42\x00"

    def test_parse_constructed_form(self) -> None:
        actual = unpack_message(b"\x30\x05\x02\x01\x01\x62\x00")

        assert isinstance(actual, m.UnbindRequest)
        assert actual.message_id == 1

    def test_fail_parse_with_value(self) -> None:
        with pytest.raises(ValueError, match="Expecting UnbindRequest to be NULL but got 1 octets"):
            unpack_message(b"\x30\x06\x02\x01\x01\x42\x01\x00")


class TestSearchRequest:
    def test_create(self) -> None:
        msg = m.SearchRequest(
            message_id=2,
            controls=[],
            base_object="CN=BaseObject",
            scope=m.SearchScope.ONE_LEVEL,
            deref_aliases=m.DereferencingPolicy.ALWAYS,
            size_limit=1024,
            time_limit=2048,
            types_only=True,
            filter=f.FilterPresent("myAttribute"),
            attributes=["attr1", "attr 2"],
        )
        actual = msg.pack(PACKING_OPTIONS)
        assert isinstance(actual, bytes)

        unpacked = unpack_message(actual)
        assert isinstance(unpacked, m.SearchRequest)
        assert unpacked.message_id == 2
        assert unpacked.controls == []
        assert unpacked.base_object == "CN=BaseObject"
        assert unpacked.scope == m.SearchScope.ONE_LEVEL
        assert unpacked.deref_aliases == m.DereferencingPolicy.ALWAYS
        assert unpacked.size_limit == 1024
        assert unpacked.time_limit == 2048
        assert unpacked.types_only is True
        assert isinstance(unpacked.filter, f.FilterPresent)
        assert unpacked.filter.attribute == "myAttribute"
        assert unpacked.attributes == ["attr1", "attr 2"]

    def test_create_with_paged_control(self) -> None:
        msg = m.SearchRequest(
            message_id=2,
            controls=[c.PagedResultControl(critical=False, size=1000, cookie=b"")],
            base_object="",
            scope=m.SearchScope.BASE,
            deref_aliases=m.DereferencingPolicy.NEVER,
            size_limit=0,
            time_limit=180,
            types_only=False,
            filter=f.FilterPresent("objectClass"),
            attributes=["defaultNamingContext", "dnsHostName"],
        )

        unpacked = unpack_message(msg.pack(PACKING_OPTIONS))

        assert isinstance(unpacked, m.SearchRequest)
        assert len(unpacked.controls) == 1
        assert isinstance(unpacked.controls[0], c.PagedResultControl)
        assert unpacked.controls[0].control_type == "1.2.840.113556.1.4.319"
        assert unpacked.controls[0].critical is False
        assert unpacked.controls[0].size == 1000
        assert unpacked.controls[0].cookie == b""
        assert unpacked.scope == m.SearchScope.BASE
        assert unpacked.time_limit == 180
        assert unpacked.attributes == ["defaultNamingContext", "dnsHostName"]

    def test_fail_time_limit_out_of_range(self) -> None:
        msg = m.SearchRequest(
            message_id=2,
            controls=[],
            base_object="",
            scope=m.SearchScope.BASE,
            deref_aliases=m.DereferencingPolicy.NEVER,
            size_limit=0,
            time_limit=-1,
            types_only=False,
            filter=f.FilterPresent("objectClass"),
            attributes=[],
        )

        with pytest.raises(ValueError, match="SearchRequest.timeLimit -1 must be between 0 and 2147483647"):
            msg.pack(PACKING_OPTIONS)


class TestSearchResultEntry:
    def test_create(self) -> None:
        msg = m.SearchResultEntry(
            message_id=2,
            controls=[],
            object_name="CN=Object",
            attributes=[
                m.PartialAttribute("name1", [b"value 1", b"value 2\x00"]),
                m.PartialAttribute("name 2", []),
                m.PartialAttribute("name 3", [b"foo bar"]),
            ],
        )
        actual = msg.pack(PACKING_OPTIONS)
        assert isinstance(actual, bytes)

        unpacked = unpack_message(actual)
        assert isinstance(unpacked, m.SearchResultEntry)
        assert unpacked.message_id == 2
        assert unpacked.controls == []
        assert unpacked.object_name == "CN=Object"
        assert len(unpacked.attributes) == 3

        assert isinstance(unpacked.attributes[0], m.PartialAttribute)
        assert unpacked.attributes[0].name == "name1"
        assert unpacked.attributes[0].values == [b"value 1", b"value 2\x00"]

        assert isinstance(unpacked.attributes[1], m.PartialAttribute)
        assert unpacked.attributes[1].name == "name 2"
        assert unpacked.attributes[1].values == []

        assert isinstance(unpacked.attributes[2], m.PartialAttribute)
        assert unpacked.attributes[2].name == "name 3"
        assert unpacked.attributes[2].values == [b"foo bar"]

    def test_parse(self) -> None:
        data = b"\x30\x1c\x02\x01\x02\x64\x17\x04\x04cn=a\x30\x0f\x30\x0d\x04\x02cn\x31\x07\x04\x01a\x04\x02bc"

        actual = unpack_message(data)

        assert isinstance(actual, m.SearchResultEntry)
        assert actual.message_id == 2
        assert actual.object_name == "cn=a"
        assert actual.attributes == [m.PartialAttribute("cn", [b"a", b"bc"])]


class TestSearchResultDone:
    def test_create(self) -> None:
        msg = m.SearchResultDone(
            message_id=2,
            controls=[],
            result=m.LDAPResult(
                result_code=m.LDAPResultCode.SUCCESS,
                matched_dn="CN=User,DC=domain,DC=test",
                diagnostics_message="Some random message",
                referrals=None,
            ),
        )
        actual = msg.pack(PACKING_OPTIONS)
        assert isinstance(actual, bytes)

        unpacked = unpack_message(actual)
        assert isinstance(unpacked, m.SearchResultDone)
        assert unpacked.message_id == 2
        assert unpacked.controls == []
        assert unpacked.result.result_code == m.LDAPResultCode.SUCCESS
        assert unpacked.result.matched_dn == "CN=User,DC=domain,DC=test"
        assert unpacked.result.diagnostics_message == "Some random message"
        assert unpacked.result.referrals is None

    def test_create_with_control(self) -> None:
        msg = m.SearchResultDone(
            message_id=2,
            controls=[c.PagedResultControl(False, 1024, b"cookie")],
            result=m.LDAPResult(
                result_code=m.LDAPResultCode.SUCCESS,
                matched_dn="",
                diagnostics_message="",
                referrals=None,
            ),
        )
        actual = msg.pack(PACKING_OPTIONS)
        assert isinstance(actual, bytes)

        unpacked = unpack_message(actual)
        assert isinstance(unpacked, m.SearchResultDone)
        assert unpacked.message_id == 2
        assert len(unpacked.controls) == 1
        assert isinstance(unpacked.controls[0], c.PagedResultControl)
        assert unpacked.controls[0].control_type == "1.2.840.113556.1.4.319"
        assert unpacked.controls[0].critical is False
        assert unpacked.controls[0].size == 1024
        assert unpacked.controls[0].cookie == b"cookie"
        assert unpacked.result.result_code == m.LDAPResultCode.SUCCESS
        assert unpacked.result.matched_dn == ""
        assert unpacked.result.diagnostics_message == ""
        assert unpacked.result.referrals is None

    def test_create_with_referral(self) -> None:
        msg = m.SearchResultDone(
            message_id=2,
            controls=[],
            result=m.LDAPResult(
                result_code=m.LDAPResultCode.REFERRAL,
                matched_dn="",
                diagnostics_message="",
                referrals=[
                    "ldap://CN=Referal1,DC=domain",
                    "ldap://CN=Referal2,DC=test",
                ],
            ),
        )
        actual = msg.pack(PACKING_OPTIONS)
        assert isinstance(actual, bytes)

        unpacked = unpack_message(actual)
        assert isinstance(unpacked, m.SearchResultDone)
        assert unpacked.message_id == 2
        assert unpacked.controls == []
        assert unpacked.result.result_code == m.LDAPResultCode.REFERRAL
        assert unpacked.result.matched_dn == ""
        assert unpacked.result.diagnostics_message == ""
        assert unpacked.result.referrals == [
            "ldap://CN=Referal1,DC=domain",
            "ldap://CN=Referal2,DC=test",
        ]


class TestSearchResultReference:
    def test_create(self) -> None:
        msg = m.SearchResultReference(
            message_id=2,
            controls=[],
            uris=["uri 1", "uri 2"],
        )
        actual = msg.pack(PACKING_OPTIONS)
        assert isinstance(actual, bytes)

        unpacked = unpack_message(actual)
        assert isinstance(unpacked, m.SearchResultReference)
        assert unpacked.message_id == 2
        assert unpacked.controls == []
        assert unpacked.uris == ["uri 1", "uri 2"]


class TestModifyRequest:
    def test_create(self) -> None:
        msg = m.ModifyRequest(
            message_id=3,
            controls=[],
            object="CN=User,DC=domain,DC=test",
            changes=[
                m.ModifyChange(m.ModifyOperation.REPLACE, m.PartialAttribute("description", [b"test"])),
                m.ModifyChange(m.ModifyOperation.DELETE, m.PartialAttribute("mail", [])),
                m.ModifyChange(m.ModifyOperation.INCREMENT, m.PartialAttribute("uidNumber", [b"1"])),
            ],
        )

        unpacked = unpack_message(msg.pack(PACKING_OPTIONS))

        assert isinstance(unpacked, m.ModifyRequest)
        assert unpacked.message_id == 3
        assert unpacked.object == "CN=User,DC=domain,DC=test"
        assert unpacked.changes == msg.changes
        assert unpacked.changes[2].operation == m.ModifyOperation.INCREMENT


class TestAddRequest:
    def test_create(self) -> None:
        msg = m.AddRequest(
            message_id=4,
            controls=[c.ManageDsaITControl()],
            entry="CN=New,DC=domain,DC=test",
            attributes=[
                m.PartialAttribute("objectClass", [b"top", b"person"]),
                m.PartialAttribute("sn", [b"New"]),
            ],
        )

        unpacked = unpack_message(msg.pack(PACKING_OPTIONS))

        assert isinstance(unpacked, m.AddRequest)
        assert unpacked.entry == "CN=New,DC=domain,DC=test"
        assert unpacked.attributes == msg.attributes
        assert isinstance(unpacked.controls[0], c.ManageDsaITControl)


class TestDelRequest:
    def test_create(self) -> None:
        actual = m.DelRequest(message_id=5, controls=[], entry="cn=foo").pack(PACKING_OPTIONS)

        assert actual == b"\x30\x0b\x02\x01\x05\x4a\x06cn=foo"

        unpacked = unpack_message(actual)
        assert isinstance(unpacked, m.DelRequest)
        assert unpacked.entry == "cn=foo"


class TestModifyDNRequest:
    def test_create(self) -> None:
        msg = m.ModifyDNRequest(
            message_id=6,
            controls=[],
            entry="CN=Old,OU=A,DC=domain,DC=test",
            new_rdn="CN=New",
            delete_old_rdn=True,
            new_superior="OU=B,DC=domain,DC=test",
        )

        unpacked = unpack_message(msg.pack(PACKING_OPTIONS))

        assert isinstance(unpacked, m.ModifyDNRequest)
        assert unpacked.entry == "CN=Old,OU=A,DC=domain,DC=test"
        assert unpacked.new_rdn == "CN=New"
        assert unpacked.delete_old_rdn is True
        assert unpacked.new_superior == "OU=B,DC=domain,DC=test"

    def test_create_no_superior(self) -> None:
        msg = m.ModifyDNRequest(
            message_id=6,
            controls=[],
            entry="CN=Old,DC=domain,DC=test",
            new_rdn="CN=New",
            delete_old_rdn=False,
        )

        unpacked = unpack_message(msg.pack(PACKING_OPTIONS))

        assert isinstance(unpacked, m.ModifyDNRequest)
        assert unpacked.delete_old_rdn is False
        assert unpacked.new_superior is None


class TestCompareRequest:
    def test_create(self) -> None:
        msg = m.CompareRequest(
            message_id=7,
            controls=[],
            entry="CN=User,DC=domain,DC=test",
            attribute="sn",
            value=b"User",
        )

        unpacked = unpack_message(msg.pack(PACKING_OPTIONS))

        assert isinstance(unpacked, m.CompareRequest)
        assert unpacked.entry == "CN=User,DC=domain,DC=test"
        assert unpacked.attribute == "sn"
        assert unpacked.value == b"User"

    def test_parse_compare_response(self) -> None:
        actual = unpack_message(b"\x30\x0c\x02\x01\x07\x6f\x07\x0a\x01\x06\x04\x00\x04\x00")

        assert isinstance(actual, m.CompareResponse)
        assert actual.result.result_code == m.LDAPResultCode.COMPARE_TRUE


class TestAbandonRequest:
    def test_create(self) -> None:
        actual = m.AbandonRequest(message_id=8, controls=[], abandon_id=300).pack(PACKING_OPTIONS)

        assert actual == b"\x30\x07\x02\x01\x08\x50\x02\x01\x2c"

        unpacked = unpack_message(actual)
        assert isinstance(unpacked, m.AbandonRequest)
        assert unpacked.abandon_id == 300

    def test_fail_abandon_id_out_of_range(self) -> None:
        msg = m.AbandonRequest(message_id=8, controls=[], abandon_id=-1)

        with pytest.raises(ValueError, match="AbandonRequest.idToAbandon -1 must be between 0 and 2147483647"):
            msg.pack(PACKING_OPTIONS)

    def test_fail_parse_empty(self) -> None:
        with pytest.raises(ValueError, match="Received empty INTEGER value for AbandonRequest.idToAbandon"):
            unpack_message(b"\x30\x05\x02\x01\x08\x50\x00")


class TestExtendedRequest:
    def test_create(self) -> None:
        msg = m.ExtendedRequest(
            message_id=1,
            controls=[],
            name="1.2.3.1293.492190.1",
            value=b"abc\x00",
        )
        actual = msg.pack(PACKING_OPTIONS)
        assert isinstance(actual, bytes)

        unpacked = unpack_message(actual)
        assert isinstance(unpacked, m.ExtendedRequest)
        assert unpacked.message_id == 1
        assert unpacked.controls == []
        assert unpacked.name == "1.2.3.1293.492190.1"
        assert unpacked.value == b"abc\x00"

    def test_create_no_data(self) -> None:
        msg = m.ExtendedRequest(
            message_id=1,
            controls=[],
            name="1.2.3.1293.492190.1",
            value=None,
        )
        actual = msg.pack(PACKING_OPTIONS)
        assert isinstance(actual, bytes)

        unpacked = unpack_message(actual)
        assert isinstance(unpacked, m.ExtendedRequest)
        assert unpacked.message_id == 1
        assert unpacked.controls == []
        assert unpacked.name == "1.2.3.1293.492190.1"
        assert unpacked.value is None

    def test_parse_with_extra_data(self) -> None:
        data = base64.b64decode("MCsCAQF3JoAWMS4zLjYuMS40LjEuMTQ2Ni4yMDAzNwQFZHVtbXmBBXZhbHVl")

        actual = unpack_message(data)
        assert isinstance(actual, m.ExtendedRequest)
        assert actual.message_id == 1
        assert actual.name == "1.3.6.1.4.1.1466.20037"
        assert actual.value == b"value"


class TestExtendedResponse:
    def test_create(self) -> None:
        msg = m.ExtendedResponse(
            message_id=1,
            controls=[],
            result=m.LDAPResult(
                result_code=m.LDAPResultCode.SUCCESS,
                matched_dn="",
                diagnostics_message="",
                referrals=None,
            ),
            name="1.2.3.1293.492190.1",
            value=b"abc\x00",
        )
        actual = msg.pack(PACKING_OPTIONS)
        assert isinstance(actual, bytes)

        unpacked = unpack_message(actual)
        assert isinstance(unpacked, m.ExtendedResponse)
        assert unpacked.message_id == 1
        assert unpacked.controls == []
        assert unpacked.result.result_code == m.LDAPResultCode.SUCCESS
        assert unpacked.result.matched_dn == ""
        assert unpacked.result.diagnostics_message == ""
        assert unpacked.result.referrals is None
        assert unpacked.name == "1.2.3.1293.492190.1"
        assert unpacked.value == b"abc\x00"

    def test_create_no_name_value(self) -> None:
        msg = m.ExtendedResponse(
            message_id=1,
            controls=[],
            result=m.LDAPResult(
                result_code=m.LDAPResultCode.SUCCESS,
                matched_dn="",
                diagnostics_message="",
                referrals=None,
            ),
            name=None,
            value=None,
        )
        actual = msg.pack(PACKING_OPTIONS)
        assert isinstance(actual, bytes)

        unpacked = unpack_message(actual)
        assert isinstance(unpacked, m.ExtendedResponse)
        assert unpacked.name is None
        assert unpacked.value is None

    def test_parse_ms_ad_notice_of_disconnect(self) -> None:
        # The responseName is placed after the protocolOp in the LDAPMessage.
        data = b"\x30\x27\x02\x01\x00\x78\x0a\x0a\x01\x02\x04\x00\x04\x03bad\x8a\x161.3.6.1.4.1.1466.20036"

        actual = unpack_message(data)

        assert isinstance(actual, m.ExtendedResponse)
        assert actual.message_id == 0
        assert actual.result.result_code == m.LDAPResultCode.PROTOCOL_ERROR
        assert actual.result.diagnostics_message == "bad"
        assert actual.name == "1.3.6.1.4.1.1466.20036"
        assert actual.value is None

    def test_parse_with_extra_data(self) -> None:
        data = base64.b64decode("MC4CAQF4KQoBAAQABACKEzEuMi4zLjEyOTMuNDkyMTkwLjEEBWR1bW15iwRhYmMA")

        actual = unpack_message(data)
        assert isinstance(actual, m.ExtendedResponse)
        assert actual.message_id == 1
        assert actual.controls == []
        assert actual.result.result_code == m.LDAPResultCode.SUCCESS
        assert actual.name == "1.2.3.1293.492190.1"
        assert actual.value == b"abc\x00"

    def test_parse_with_extra_context_specific_data(self) -> None:
        data = base64.b64decode("MDACAQF4KwoBAAQABACKEzEuMi4zLjEyOTMuNDkyMTkwLjGfiAAFZHVtbXmLBGFiYwA=")

        actual = unpack_message(data)
        assert isinstance(actual, m.ExtendedResponse)
        assert actual.message_id == 1
        assert actual.controls == []
        assert actual.result.result_code == m.LDAPResultCode.SUCCESS
        assert actual.name == "1.2.3.1293.492190.1"
        assert actual.value == b"abc\x00"


class TestIntermediateResponse:
    def test_create(self) -> None:
        msg = m.IntermediateResponse(message_id=9, controls=[], name="1.2.3", value=b"\x01")

        actual = msg.pack(PACKING_OPTIONS)
        assert actual == b"\x30\x0f\x02\x01\x09\x79\x0a\x80\x051.2.3\x81\x01\x01"

        unpacked = unpack_message(actual)
        assert isinstance(unpacked, m.IntermediateResponse)
        assert unpacked.name == "1.2.3"
        assert unpacked.value == b"\x01"

    def test_create_empty(self) -> None:
        msg = m.IntermediateResponse(message_id=9, controls=[])

        unpacked = unpack_message(msg.pack(PACKING_OPTIONS))

        assert isinstance(unpacked, m.IntermediateResponse)
        assert unpacked.name is None
        assert unpacked.value is None
