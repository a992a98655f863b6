# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

from __future__ import annotations

import typing as t

from ._exceptions import DecodeError
from .asn1 import ASN1Reader, ASN1Tag, ASN1Writer, NotEnoughData, TagClass


def pack_password_modify(
    user: t.Optional[bytes] = None,
    old_password: t.Optional[bytes] = None,
    new_password: t.Optional[bytes] = None,
) -> bytes:
    """Packs the Password Modify extended request value.

    Args:
        user: The user identity to change.
        old_password: The current password.
        new_password: The new password.

    Returns:
        bytes: The requestValue of the extended request.
    """
    # https://datatracker.ietf.org/doc/html/rfc3062#section-2
    # PasswdModifyRequestValue ::= SEQUENCE {
    #     userIdentity    [0]  OCTET STRING OPTIONAL
    #     oldPasswd       [1]  OCTET STRING OPTIONAL
    #     newPasswd       [2]  OCTET STRING OPTIONAL }
    writer = ASN1Writer()
    with writer.push_sequence() as seq:
        for idx, value in enumerate([user, old_password, new_password]):
            if value is not None:
                seq.write_octet_string(value, tag=ASN1Tag(TagClass.CONTEXT_SPECIFIC, idx, False))

    return bytes(writer.get_data())


def unpack_password_modify(
    data: bytes,
) -> t.Optional[bytes]:
    """Unpacks the Password Modify extended response value.

    Args:
        data: The responseValue of the extended response.

    Returns:
        Optional[bytes]: The password generated by the server, if any.
    """
    # PasswdModifyResponseValue ::= SEQUENCE {
    #     genPasswd       [0]     OCTET STRING OPTIONAL }
    try:
        reader = ASN1Reader(data).read_sequence(hint="PasswdModifyResponseValue")

        gen_password: t.Optional[bytes] = None
        while reader:
            next_header = reader.peek_header()

            if next_header.tag.tag_class == TagClass.CONTEXT_SPECIFIC and next_header.tag.tag_number == 0:
                gen_password = reader.read_octet_string(
                    header=next_header,
                    hint="PasswdModifyResponseValue.genPasswd",
                )
                continue

            reader.skip_value(next_header)

    except (NotEnoughData, ValueError) as e:
        raise DecodeError(f"Failed to unpack Password Modify response: {e}") from e

    return gen_password
