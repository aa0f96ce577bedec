"""
Signed chat messages and their encrypted wire records.

A Message is signed by its author when it is constructed. To send it, the
body, each attachment and the timestamp are encrypted for one recipient and
the resulting record is signed again over its transmitted (ciphertext) form.
Envelope fields (ids, flags, author) stay in plaintext so the receiver can
route the record and look up the author's key before decrypting.
"""
import dataclasses
import logging
import struct
import time
from concurrent.futures import Executor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

from cryptography.hazmat.primitives.asymmetric import rsa

from circle_chat.common import crypto
from circle_chat.common.encoding import ENC, encode_message, encode_transmission, text
from circle_chat.common.errors import (
    AuthenticityError, DecryptionError, ValidationError, WireFormatError,
)
from circle_chat.common.protocol import (
    WIRE_KEYS, from_hex, json_u64, read_bool, read_optional_u64, read_str, read_u64, to_hex,
)

logger = logging.getLogger(__name__)

TIMESTAMP = struct.Struct(">Q")


def _blobs(attachments) -> Tuple[bytes, ...]:
    # bytes(n) of an int would silently give n zero bytes
    attachments = list(attachments)
    for i, blob in enumerate(attachments):
        if not isinstance(blob, (bytes, bytearray, memoryview)):
            raise ValidationError(f"attachments[{i}]", f"expected bytes, got {type(blob).__name__}")
    return tuple(bytes(blob) for blob in attachments)


@dataclass(frozen=True)
class Message:
    message_id: int
    channel_id: int
    is_response: bool
    is_response_to: Optional[int]
    is_broadcast: bool
    body: str
    attachments: Tuple[bytes, ...]
    timestamp: int
    author: str
    signature: bytes = field(repr=False)

    def __post_init__(self):
        object.__setattr__(self, "attachments", _blobs(self.attachments))

    def encode(self) -> bytes:
        ''' Canonical encoding of every field except the signature '''
        return encode_message(self.message_id, self.channel_id, self.is_response,
                              self.is_response_to, self.is_broadcast, self.body,
                              self.attachments, self.timestamp, self.author)

    def verify(self, public_key: rsa.RSAPublicKey) -> bool:
        return verify_message(self, public_key)

    def with_id(self, message_id: int) -> "Message":
        '''
        Return a copy carrying the id assigned by a receiving authority.
        The construction signature still binds message_id 0, so the copy is
        authenticated by the signature made when it is packaged, not by verify().
        '''
        return dataclasses.replace(self, message_id=message_id)


@dataclass(frozen=True)
class ReceivedMessage:
    """The decrypted content of a wire record."""
    message_id: int
    channel_id: int
    is_response: bool
    is_response_to: Optional[int]
    is_broadcast: bool
    body: str
    attachments: Tuple[bytes, ...]
    timestamp: int
    author: str

    def with_id(self, message_id: int) -> "ReceivedMessage":
        return dataclasses.replace(self, message_id=message_id)


def construct_message(channel_id: int, is_response: bool, is_response_to: Optional[int],
                      is_broadcast: bool, body: str, attachments: Sequence[bytes], author: str,
                      private_key: rsa.RSAPrivateKey,
                      clock: Callable[[], float] = time.time) -> Message:
    '''
    Build and sign a new message.
    Input:
        - the message fields; is_response_to should be set iff is_response is true
        - private_key: the author's RSA private key
        - clock: source of the current Unix time
    Output: a signed Message with message_id 0
    Raises SigningError if the key cannot sign, ValidationError for out-of-range
    integers, non-bytes attachments, or body and author that are not UTF-8 text.
    '''
    timestamp = int(clock())
    attachments = _blobs(attachments)
    data = encode_message(0, channel_id, is_response, is_response_to, is_broadcast,
                          body, attachments, timestamp, author)
    signature = crypto.sign(private_key, data)
    return Message(
        message_id=0,
        channel_id=channel_id,
        is_response=is_response,
        is_response_to=is_response_to,
        is_broadcast=is_broadcast,
        body=body,
        attachments=attachments,
        timestamp=timestamp,
        author=author,
        signature=signature,
    )


def verify_message(message: Message, public_key: rsa.RSAPublicKey) -> bool:
    ''' Check the author's signature against the message's current field values. Never raises. '''
    try:
        data = message.encode()
    except (ValidationError, AttributeError, TypeError):
        return False
    return crypto.verify(public_key, data, message.signature)


def package_for_transmission(message: Message, recipient_public_key: rsa.RSAPublicKey,
                             sender_private_key: rsa.RSAPrivateKey,
                             executor: Optional[Executor] = None) -> Dict[str, Any]:
    '''
    Encrypt a message for one recipient and sign the transmitted form.
    Input:
        - message: a constructed Message
        - recipient_public_key: key the body, attachments and timestamp are encrypted under
        - sender_private_key: key that signs the record
        - executor: optional pool used to encrypt attachments concurrently
    Output: wire record dict, keys in wire order, ready for protocol.dump_record()
    Raises EncryptionError if any field fails to encrypt; no record is produced then.
    '''
    body_ct = crypto.encrypt_field(recipient_public_key, text("body", message.body), "body")

    def encrypt_attachment(indexed):
        i, blob = indexed
        return crypto.encrypt_field(recipient_public_key, blob, f"attachments[{i}]")

    # executor.map keeps input order regardless of completion order
    mapper = executor.map if executor is not None else map
    attachment_cts = list(mapper(encrypt_attachment, enumerate(message.attachments)))

    timestamp_ct = crypto.encrypt_field(recipient_public_key, TIMESTAMP.pack(message.timestamp),
                                        "timestamp")

    data = encode_transmission(message.message_id, message.channel_id, message.is_response,
                               message.is_response_to, message.is_broadcast, body_ct,
                               attachment_cts, timestamp_ct, message.author)
    signature = crypto.sign(sender_private_key, data)

    record = {
        "message_id": json_u64(message.message_id),
        "channel_id": json_u64(message.channel_id),
        "is_response": message.is_response,
        "is_response_to": None if message.is_response_to is None else json_u64(message.is_response_to),
        "is_broadcast": message.is_broadcast,
        "body": to_hex(body_ct),
        "attachments": [to_hex(ct) for ct in attachment_cts],
        "timestamp": to_hex(timestamp_ct),
        "author": message.author,
        "signature": to_hex(signature),
    }
    logger.debug("packaged message %d for channel %d with %d attachment(s)",
                 message.message_id, message.channel_id, len(attachment_cts))
    return record


@dataclass(frozen=True)
class _WireFields:
    message_id: int
    channel_id: int
    is_response: bool
    is_response_to: Optional[int]
    is_broadcast: bool
    body: bytes
    attachments: Tuple[bytes, ...]
    timestamp: bytes
    author: str
    signature: bytes

    def encode(self) -> bytes:
        return encode_transmission(self.message_id, self.channel_id, self.is_response,
                                   self.is_response_to, self.is_broadcast, self.body,
                                   self.attachments, self.timestamp, self.author)


def _parse_record(record: Dict[str, Any]) -> _WireFields:
    if not isinstance(record, dict):
        raise WireFormatError(f"expected an object, got {type(record).__name__}")
    missing = [k for k in WIRE_KEYS if k not in record]
    if missing:
        raise WireFormatError(f"missing keys: {', '.join(missing)}")
    attachments = record["attachments"]
    if not isinstance(attachments, list):
        raise WireFormatError("expected a list of hex strings", "attachments")
    return _WireFields(
        message_id=read_u64(record, "message_id"),
        channel_id=read_u64(record, "channel_id"),
        is_response=read_bool(record, "is_response"),
        is_response_to=read_optional_u64(record, "is_response_to"),
        is_broadcast=read_bool(record, "is_broadcast"),
        body=from_hex(record["body"], "body"),
        attachments=tuple(from_hex(a, f"attachments[{i}]") for i, a in enumerate(attachments)),
        timestamp=from_hex(record["timestamp"], "timestamp"),
        author=read_str(record, "author"),
        signature=from_hex(record["signature"], "signature"),
    )


def verify_wire_record(record: Dict[str, Any], sender_public_key: rsa.RSAPublicKey) -> bool:
    ''' Check the packaging signature of a wire record. Malformed records give False; never raises. '''
    try:
        fields = _parse_record(record)
        data = fields.encode()
    except (WireFormatError, ValidationError) as e:
        logger.debug("rejecting malformed wire record: %s", e)
        return False
    return crypto.verify(sender_public_key, data, fields.signature)


def decrypt_wire_record(record: Dict[str, Any],
                        recipient_private_key: rsa.RSAPrivateKey) -> ReceivedMessage:
    '''
    Decrypt the confidential fields of a wire record. The signature is not checked here;
    use open_wire_record() to verify and decrypt together.
    Raises WireFormatError for a malformed record, DecryptionError if any field fails.
    '''
    fields = _parse_record(record)
    body = crypto.decrypt_field(recipient_private_key, fields.body, "body")
    try:
        body_text = body.decode(ENC)
    except UnicodeDecodeError as e:
        raise DecryptionError("body", "plaintext is not valid UTF-8") from e
    attachments = tuple(
        crypto.decrypt_field(recipient_private_key, ct, f"attachments[{i}]")
        for i, ct in enumerate(fields.attachments)
    )
    raw_ts = crypto.decrypt_field(recipient_private_key, fields.timestamp, "timestamp")
    if len(raw_ts) != TIMESTAMP.size:
        raise DecryptionError("timestamp", f"expected {TIMESTAMP.size} bytes, got {len(raw_ts)}")
    (timestamp,) = TIMESTAMP.unpack(raw_ts)
    return ReceivedMessage(
        message_id=fields.message_id,
        channel_id=fields.channel_id,
        is_response=fields.is_response,
        is_response_to=fields.is_response_to,
        is_broadcast=fields.is_broadcast,
        body=body_text,
        attachments=attachments,
        timestamp=timestamp,
        author=fields.author,
    )


def open_wire_record(record: Dict[str, Any], sender_public_key: rsa.RSAPublicKey,
                     recipient_private_key: rsa.RSAPrivateKey) -> ReceivedMessage:
    ''' Verify a wire record's signature, then decrypt it. Raises AuthenticityError if it does not verify. '''
    if not verify_wire_record(record, sender_public_key):
        author = record.get("author") if isinstance(record, dict) else None
        logger.warning("wire record from %r failed signature verification", author)
        raise AuthenticityError("wire record signature does not match the sender's key")
    return decrypt_wire_record(record, recipient_private_key)
