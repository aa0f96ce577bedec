"""
Intake path of the receiving authority.

A transport hands each incoming wire record to accept_record(). The record's
plaintext author names the sender; their key is looked up, the record is
verified and decrypted, the sender's permission level is checked, and the
message is stored under a newly assigned id.
"""
import logging
from typing import Any, Dict

from cryptography.hazmat.primitives.asymmetric import rsa

from circle_chat.common.errors import PermissionDeniedError, WireFormatError
from circle_chat.common.messages import ReceivedMessage, open_wire_record
from circle_chat.common.users import PermissionLevel
from circle_chat.server.state import Directory, MessageStore

logger = logging.getLogger(__name__)

POST_LEVEL = PermissionLevel.REGULAR
ATTACH_LEVEL = PermissionLevel.PREMIUM


def accept_record(record: Dict[str, Any], directory: Directory, store: MessageStore,
                  server_private_key: rsa.RSAPrivateKey) -> ReceivedMessage:
    '''
    Input:
        - record: wire record addressed to this server
        - directory: identity lookup for the record's author
        - store: open message store that assigns the message id
        - server_private_key: key the record's fields were encrypted for
    Output: the stored message, carrying its assigned message_id
    Raises UnknownAuthorError, AuthenticityError, PermissionDeniedError,
    WireFormatError or DecryptionError; nothing is stored in those cases.
    '''
    author = record.get("author") if isinstance(record, dict) else None
    if not isinstance(author, str):
        raise WireFormatError("expected a string", "author")
    user = directory.lookup(author)

    if not user.has_permission(POST_LEVEL):
        logger.warning("rejected record from %r: permission level %d", author, user.permission_level)
        raise PermissionDeniedError(author, POST_LEVEL, user.permission_level)

    received = open_wire_record(record, user.public_key, server_private_key)

    if received.attachments and not user.has_permission(ATTACH_LEVEL):
        logger.warning("rejected attachments from %r: permission level %d",
                       author, user.permission_level)
        raise PermissionDeniedError(author, ATTACH_LEVEL, user.permission_level)

    message_id = store.insert(received)
    logger.info("accepted message %d from %r in channel %d", message_id, author, received.channel_id)
    return store.get(message_id)
