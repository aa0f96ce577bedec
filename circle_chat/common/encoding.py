"""
Canonical byte encoding of chat message fields.

The encoding is the input to signing and verification, so it must be
deterministic and unambiguous: fixed-width integers are big-endian, and every
variable-length field (body, each attachment, author) carries a 4-byte
big-endian length prefix. The attachment list is preceded by its count.
"""
import logging
import struct
from typing import Optional, Sequence

from circle_chat.common.errors import ValidationError

logger = logging.getLogger(__name__)

ENC = "utf-8"
U64_MAX = 2**64 - 1
U32_MAX = 2**32 - 1

# Prefix for the encoding of a transmitted (encrypted) record, so it can never
# be mistaken for the encoding of a plaintext message.
WIRE_DOMAIN = b"circle-chat/wire\x00"


def u64(field: str, value: int) -> bytes:
    ''' Encode an unsigned 64-bit integer as 8 big-endian bytes. '''
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(field, f"expected an integer, got {type(value).__name__}")
    if not 0 <= value <= U64_MAX:
        raise ValidationError(field, "outside the unsigned 64-bit range")
    return struct.pack(">Q", value)


def flag(value: bool) -> bytes:
    return b"\x01" if value else b"\x00"


def text(field: str, value: str) -> bytes:
    ''' Return value as UTF-8. Non-strings and lone surrogates raise ValidationError. '''
    if not isinstance(value, str):
        raise ValidationError(field, f"expected a string, got {type(value).__name__}")
    try:
        return value.encode(ENC)
    except UnicodeEncodeError as e:
        raise ValidationError(field, "not encodable as UTF-8") from e


def prefixed(field: str, data: bytes) -> bytes:
    ''' Return data preceded by its 4-byte big-endian length. '''
    if len(data) > U32_MAX:
        raise ValidationError(field, f"{len(data)} bytes exceeds the maximum field size")
    return struct.pack(">I", len(data)) + data


def blob_list(field: str, blobs: Sequence[bytes]) -> bytes:
    ''' Encode an ordered list of blobs: count, then each blob length-prefixed. '''
    if len(blobs) > U32_MAX:
        raise ValidationError(field, "too many entries")
    parts = [struct.pack(">I", len(blobs))]
    for i, blob in enumerate(blobs):
        parts.append(prefixed(f"{field}[{i}]", bytes(blob)))
    return b"".join(parts)


def _header(message_id: int, channel_id: int, is_response: bool,
            is_response_to: Optional[int], is_broadcast: bool) -> bytes:
    # absent is_response_to is written as 0
    return b"".join((
        u64("message_id", message_id),
        u64("channel_id", channel_id),
        flag(is_response),
        u64("is_response_to", is_response_to if is_response_to is not None else 0),
        flag(is_broadcast),
    ))


def encode_message(message_id: int, channel_id: int, is_response: bool,
                   is_response_to: Optional[int], is_broadcast: bool, body: str,
                   attachments: Sequence[bytes], timestamp: int, author: str) -> bytes:
    '''
    Build the canonical encoding of a message's logical fields.
    Input:
        - the message fields, excluding the signature
    Output: bytes to be hashed and signed
    '''
    data = b"".join((
        _header(message_id, channel_id, is_response, is_response_to, is_broadcast),
        prefixed("body", text("body", body)),
        blob_list("attachments", attachments),
        u64("timestamp", timestamp),
        prefixed("author", text("author", author)),
    ))
    logger.debug("encoded message for channel %d: %d bytes", channel_id, len(data))
    return data


def encode_transmission(message_id: int, channel_id: int, is_response: bool,
                        is_response_to: Optional[int], is_broadcast: bool, body_ct: bytes,
                        attachment_cts: Sequence[bytes], timestamp_ct: bytes, author: str) -> bytes:
    '''
    Build the canonical encoding of a transmitted record, whose body,
    attachments and timestamp are ciphertexts.
    Output: bytes signed by the sender at packaging time
    '''
    return b"".join((
        WIRE_DOMAIN,
        _header(message_id, channel_id, is_response, is_response_to, is_broadcast),
        prefixed("body", body_ct),
        blob_list("attachments", attachment_cts),
        prefixed("timestamp", timestamp_ct),
        prefixed("author", text("author", author)),
    ))
