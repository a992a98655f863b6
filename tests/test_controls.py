# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

from __future__ import annotations

import dataclasses
import struct
import typing as t

import pytest

import ldapmux._controls as c
import ldapmux._messages as m
import ldapmux.asn1

UNBIND_CONTROLS_PREFIX = b"\x02\x01\x00\x42\x00"


@dataclasses.dataclass(frozen=True)
class CustomControl(c.LDAPControl):
    control_type: str = dataclasses.field(init=False, repr=False, default="1.2.3.4")
    value: t.Optional[bytes] = dataclasses.field(init=False, repr=False, default=None)

    size: int = 0

    def encode_value(
        self,
        string_encoding: str,
    ) -> t.Optional[bytes]:
        return self.size.to_bytes(4, byteorder="big")

    @classmethod
    def decode_value(
        cls,
        critical: bool,
        value: t.Optional[bytes],
        string_encoding: str,
    ) -> CustomControl:
        size = struct.unpack(">I", (value or b""))[0]

        return CustomControl(critical=critical, size=size)


def unpack_message(
    data: bytes,
    options: t.Optional[m.PackingOptions] = None,
) -> m.LDAPMessage:
    reader = ldapmux.asn1.ASN1Reader(data)
    return m.unpack_ldap_message(reader, options or m.PackingOptions())


CUSTOM_CONTROL = b"\x30\x1b\x02\x01\x00\x42\x00\xa0\x14\x30\x12\x04\x071.2.3.4\x01\x01\xff\x04\x04\x00\x00\x00\x0a"


def test_pack_custom_control() -> None:
    req = m.UnbindRequest(
        message_id=0,
        controls=[CustomControl(critical=True, size=10)],
    )
    actual = req.pack(m.PackingOptions())
    assert actual == CUSTOM_CONTROL


def test_unpack_custom_control() -> None:
    options = m.PackingOptions()
    options.control.register(CustomControl)

    actual = unpack_message(CUSTOM_CONTROL, options)
    assert isinstance(actual, m.UnbindRequest)
    assert len(actual.controls) == 1
    assert isinstance(actual.controls[0], CustomControl)
    assert actual.controls[0].control_type == "1.2.3.4"
    assert actual.controls[0].critical is True
    assert actual.controls[0].size == 10
    assert actual.controls[0].encode_value("utf-8") == b"\x00\x00\x00\x0A"


def test_unpack_custom_control_not_registered() -> None:
    actual = unpack_message(CUSTOM_CONTROL)
    assert isinstance(actual, m.UnbindRequest)
    assert len(actual.controls) == 1
    assert type(actual.controls[0]) is c.LDAPControl
    assert actual.controls[0].control_type == "1.2.3.4"
    assert actual.controls[0].critical is True
    assert actual.controls[0].value == b"\x00\x00\x00\x0A"


@pytest.mark.parametrize(
    "critical, value, expected",
    [
        (True, None, b"\x30\x15" + UNBIND_CONTROLS_PREFIX + b"\xa0\x0e\x30\x0c\x04\x071.2.3.4\x01\x01\xff"),
        (False, None, b"\x30\x12" + UNBIND_CONTROLS_PREFIX + b"\xa0\x0b\x30\x09\x04\x071.2.3.4"),
        (True, b"", b"\x30\x17" + UNBIND_CONTROLS_PREFIX + b"\xa0\x10\x30\x0e\x04\x071.2.3.4\x01\x01\xff\x04\x00"),
        (False, b"", b"\x30\x14" + UNBIND_CONTROLS_PREFIX + b"\xa0\x0d\x30\x0b\x04\x071.2.3.4\x04\x00"),
        (
            True,
            b"\x00",
            b"\x30\x18" + UNBIND_CONTROLS_PREFIX + b"\xa0\x11\x30\x0f\x04\x071.2.3.4\x01\x01\xff\x04\x01\x00",
        ),
        (False, b"\x00", b"\x30\x15" + UNBIND_CONTROLS_PREFIX + b"\xa0\x0e\x30\x0c\x04\x071.2.3.4\x04\x01\x00"),
    ],
    ids=[
        "critical-no-value",
        "not-critical-no-value",
        "critical-empty-value",
        "not-critical-empty-value",
        "critical-value",
        "not-critical-value",
    ],
)
def test_generic_control(critical: bool, value: t.Optional[bytes], expected: bytes) -> None:
    req = m.UnbindRequest(
        message_id=0,
        controls=[c.LDAPControl(control_type="1.2.3.4", critical=critical, value=value)],
    )
    assert req.pack(m.PackingOptions()) == expected

    actual = unpack_message(expected)
    assert isinstance(actual, m.UnbindRequest)
    assert len(actual.controls) == 1
    assert actual.controls[0].control_type == "1.2.3.4"
    assert actual.controls[0].critical is critical
    assert actual.controls[0].value == value


def test_paged_result_control_value() -> None:
    control = c.PagedResultControl(critical=True, size=10, cookie=b"abc")

    actual = control.encode_value("utf-8")

    assert actual == b"\x30\x08\x02\x01\x0a\x04\x03abc"


def test_paged_result_control_round_trip() -> None:
    req = m.UnbindRequest(
        message_id=0,
        controls=[c.PagedResultControl(critical=False, size=500, cookie=b"\x01\x02")],
    )

    actual = unpack_message(req.pack(m.PackingOptions()))

    assert len(actual.controls) == 1
    control = actual.controls[0]
    assert isinstance(control, c.PagedResultControl)
    assert control.control_type == "1.2.840.113556.1.4.319"
    assert control.critical is False
    assert control.size == 500
    assert control.cookie == b"\x01\x02"


def test_manage_dsa_it_control() -> None:
    req = m.UnbindRequest(message_id=0, controls=[c.ManageDsaITControl(critical=True)])

    data = req.pack(m.PackingOptions())
    actual = unpack_message(data)

    assert b"2.16.840.1.113730.3.4.2" in data
    assert isinstance(actual.controls[0], c.ManageDsaITControl)
    assert actual.controls[0].critical is True
    assert actual.controls[0].value is None


def test_proxied_authorization_control() -> None:
    control = c.ProxiedAuthorizationControl(authz_id="dn:cn=user,dc=domain")
    assert control.critical is True
    assert control.encode_value("utf-8") == b"dn:cn=user,dc=domain"

    req = m.UnbindRequest(message_id=0, controls=[control])
    actual = unpack_message(req.pack(m.PackingOptions()))

    assert isinstance(actual.controls[0], c.ProxiedAuthorizationControl)
    assert actual.controls[0].authz_id == "dn:cn=user,dc=domain"
    assert actual.controls[0].critical is True


def test_unknown_control_value_is_opaque() -> None:
    req = m.UnbindRequest(
        message_id=0,
        controls=[c.LDAPControl(control_type="1.3.6.1.4.1.4203.1.9.1.1", critical=True, value=b"\x30\x00garbage")],
    )

    actual = unpack_message(req.pack(m.PackingOptions()))

    assert type(actual.controls[0]) is c.LDAPControl
    assert actual.controls[0].value == b"\x30\x00garbage"
