import logging
import time
from dataclasses import dataclass
from threading import Lock
from typing import Dict, List, Optional, Union

from circle_chat.common.errors import (
    DuplicateUserError, StoreClosedError, UnknownAuthorError, ValidationError,
)
from circle_chat.common.messages import Message, ReceivedMessage
from circle_chat.common.users import User

logger = logging.getLogger(__name__)

Stored = Union[Message, ReceivedMessage]


@dataclass(frozen=True)
class Channel:
    channel_id: int
    name: str
    created_at: int


class Directory:
    # Registered users keyed by canonical name; answers public key and permission lookups
    def __init__(self):
        self.lock = Lock()  # guards users
        self.users: Dict[str, User] = {}

    def register(self, user: User) -> None:
        ''' This function adds a user. Raises DuplicateUserError if the canonical name is taken '''
        with self.lock:
            if user.canonical_name in self.users:
                raise DuplicateUserError(user.canonical_name)
            self.users[user.canonical_name] = user

    def lookup(self, canonical_name: str) -> User:
        ''' This function returns the user for canonical_name or raises UnknownAuthorError '''
        with self.lock:
            user = self.users.get(canonical_name)
        if user is None:
            raise UnknownAuthorError(canonical_name)
        return user

    def remove(self, canonical_name: str) -> None:
        with self.lock:
            self.users.pop(canonical_name, None)

    def __contains__(self, canonical_name: str) -> bool:
        with self.lock:
            return canonical_name in self.users

    def __len__(self) -> int:
        with self.lock:
            return len(self.users)


class MessageStore:
    """
    In-memory message store that acts as the receiving authority: it assigns
    each inserted message the next message_id, starting at 1.

    The store must be opened before use and closed afterwards, either
    explicitly or with ``with MessageStore() as store:``.
    """

    def __init__(self):
        self.lock = Lock()
        self._messages: Dict[int, Stored] = {}
        self._next_id = 1
        self._channels: Dict[int, Channel] = {}
        self._next_channel = 1
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> "MessageStore":
        with self.lock:
            self._open = True
        logger.info("message store opened")
        return self

    def close(self) -> None:
        with self.lock:
            self._open = False
            count = len(self._messages)
        logger.info("message store closed (%d message(s))", count)

    def __enter__(self) -> "MessageStore":
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _check_open(self):
        if not self._open:
            raise StoreClosedError("message store is not open")

    def insert(self, message: Stored) -> int:
        '''
        This function stores a copy of message under a newly assigned id.
        Output: the assigned message_id
        '''
        with self.lock:
            self._check_open()
            message_id = self._next_id
            self._messages[message_id] = message.with_id(message_id)
            self._next_id += 1
        logger.debug("stored message %d in channel %d", message_id, message.channel_id)
        return message_id

    def get(self, message_id: int) -> Optional[Stored]:
        with self.lock:
            self._check_open()
            return self._messages.get(message_id)

    def by_channel(self, channel_id: int, limit: int = 50) -> List[Stored]:
        ''' This function returns up to limit messages of a channel, newest first '''
        with self.lock:
            self._check_open()
            found = [m for m in self._messages.values() if m.channel_id == channel_id]
        found.sort(key=lambda m: (m.timestamp, m.message_id), reverse=True)
        return found[:limit]

    def create_channel(self, name: str) -> Channel:
        ''' This function registers a named channel under the next channel id '''
        if not name:
            raise ValidationError("name", "cannot be empty")
        with self.lock:
            self._check_open()
            channel = Channel(self._next_channel, name, int(time.time()))
            self._channels[channel.channel_id] = channel
            self._next_channel += 1
        logger.debug("created channel %d", channel.channel_id)
        return channel

    def get_channel(self, channel_id: int) -> Optional[Channel]:
        with self.lock:
            self._check_open()
            return self._channels.get(channel_id)

    def list_channels(self) -> List[Channel]:
        with self.lock:
            self._check_open()
            return sorted(self._channels.values(), key=lambda c: c.channel_id)
