# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

from __future__ import annotations

import logging
import typing as t

from ._exceptions import DecodeError, EncodeError, NeedMoreData
from ._messages import LDAPMessage, PackingOptions, unpack_ldap_message
from .asn1 import ASN1Reader, NotEnoughData, TagClass, TypeTagNumber, _indefinite_content_length, read_asn1_header

log = logging.getLogger(__name__)


def encode_message(
    msg: LDAPMessage,
    options: t.Optional[PackingOptions] = None,
) -> bytes:
    """Encode an LDAP message.

    Args:
        msg: The message to encode.
        options: The packing options, uses the defaults if not set.

    Returns:
        bytes: The BER encoded message.

    Raises:
        EncodeError: A value in the message cannot be represented on the wire.
    """
    options = options or PackingOptions()
    try:
        return msg.pack(options)
    except (ValueError, OverflowError) as e:
        # UnicodeEncodeError is a ValueError.
        raise EncodeError(f"Failed to encode {type(msg).__name__}: {e}") from e


def frame_length(
    data: t.Union[bytes, bytearray, memoryview],
) -> int:
    """Get the length of the first LDAPMessage in the data.

    Only the outer SEQUENCE is inspected, the contents are not validated.

    Args:
        data: The data starting with an LDAPMessage.

    Returns:
        int: The number of bytes the first message occupies.

    Raises:
        NeedMoreData: The data does not contain the full outer frame.
        DecodeError: The outer frame is not a valid LDAPMessage envelope.
    """
    view = memoryview(data)
    try:
        header = read_asn1_header(view)
    except NotEnoughData as e:
        raise NeedMoreData(str(e)) from e
    except ValueError as e:
        raise DecodeError(f"Invalid LDAPMessage header: {e}") from e

    tag = header.tag
    if tag.tag_class != TagClass.UNIVERSAL or tag.tag_number != TypeTagNumber.SEQUENCE or not tag.is_constructed:
        raise DecodeError(f"Expecting LDAPMessage to be a SEQUENCE but got {tag}")

    if header.length == -1:
        try:
            return header.tag_length + _indefinite_content_length(view[header.tag_length :]) + 2
        except NotEnoughData as e:
            raise NeedMoreData(str(e)) from e
        except ValueError as e:
            raise DecodeError(f"Invalid LDAPMessage contents: {e}") from e

    total = header.tag_length + header.length
    if len(view) < total:
        raise NeedMoreData(f"Need {total} bytes for LDAPMessage but only have {len(view)}")

    return total


def decode_message(
    data: t.Union[bytes, bytearray, memoryview],
    options: t.Optional[PackingOptions] = None,
) -> t.Tuple[LDAPMessage, int]:
    """Decode the first LDAP message in the data.

    Args:
        data: The data to decode.
        options: The packing options, uses the defaults if not set.

    Returns:
        Tuple[LDAPMessage, int]: The decoded message and the number of bytes
        it consumed.

    Raises:
        NeedMoreData: The data is a valid prefix of a message.
        DecodeError: The data is not a valid LDAPMessage.
    """
    options = options or PackingOptions()
    view = memoryview(data)
    consumed = frame_length(view)

    try:
        msg = unpack_ldap_message(ASN1Reader(view[:consumed]), options)
    except (NotEnoughData, ValueError, NotImplementedError) as e:
        # The outer frame is complete so anything missing inside of it is
        # malformed data, not a partial read.
        raise DecodeError(f"Failed to decode LDAPMessage: {e}") from e

    return msg, consumed


class LDAPCodec:
    """Incremental LDAP message decoder.

    Buffers the bytes received from the peer and returns each complete
    message as it becomes available. Once invalid data has been received the
    codec refuses further input as the message boundaries can no longer be
    trusted.

    Args:
        options: The packing options used to decode the messages.
    """

    def __init__(
        self,
        options: t.Optional[PackingOptions] = None,
    ) -> None:
        self.options = options or PackingOptions()
        self._buffer = bytearray()
        self._error: t.Optional[DecodeError] = None
        self._frame_needed = 0

    @property
    def buffered(self) -> int:
        """The number of bytes waiting for the rest of a message."""
        return len(self._buffer)

    def feed(
        self,
        data: t.Union[bytes, bytearray, memoryview],
    ) -> t.List[LDAPMessage]:
        """Feed data received from the peer.

        Args:
            data: The raw bytes received.

        Returns:
            List[LDAPMessage]: Every message completed by this data.

        Raises:
            DecodeError: The data is not a valid stream of LDAP messages.
        """
        if self._error:
            raise DecodeError(f"Codec failed previously: {self._error}") from self._error

        self._buffer.extend(data)
        if len(self._buffer) < self._frame_needed:
            return []

        messages: t.List[LDAPMessage] = []
        view = memoryview(self._buffer)
        offset = 0
        self._frame_needed = 0
        try:
            while offset < len(view):
                try:
                    msg, consumed = decode_message(view[offset:], self.options)
                except NeedMoreData:
                    self._frame_needed = self._pending_frame_length(view[offset:]) + offset
                    break

                log.debug("Decoded %s message_id=%d (%d bytes)", type(msg).__name__, msg.message_id, consumed)
                messages.append(msg)
                offset += consumed

        except DecodeError as e:
            self._error = e
            raise

        finally:
            # A bytearray cannot be resized while a view of it exists, the
            # slice is a new buffer holding only the undecoded tail.
            del view
            self._buffer = self._buffer[offset:]
            self._frame_needed = max(self._frame_needed - offset, 0)

        return messages

    def _pending_frame_length(
        self,
        data: memoryview,
    ) -> int:
        # Only a definite length header tells how much to wait for, an
        # indefinite length frame is retried on every read.
        try:
            header = read_asn1_header(data)
        except (NotEnoughData, ValueError):
            return 0

        if header.length == -1:
            return 0

        return header.tag_length + header.length

    def encode(
        self,
        msg: LDAPMessage,
    ) -> bytes:
        """Encode a message with the codec options."""
        return encode_message(msg, self.options)
