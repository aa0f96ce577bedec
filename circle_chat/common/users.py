"""
Users of the chat system and their permission levels.
"""
from enum import IntEnum
from typing import Union

from cryptography.hazmat.primitives.asymmetric import rsa

from circle_chat.common.errors import ValidationError

MAX_USERNAME = 64
CANONICAL_NAME_LENGTH = 64
MAX_PERMISSION = 15


class PermissionLevel(IntEnum):
    GUEST = 0       # can only ask to join
    REGULAR = 1     # can send and retrieve messages
    PREMIUM = 2     # can also send attachments
    MODERATOR = 8   # can also ban, mute or kick users
    ADMIN = 15      # can do anything


def permission_name(level: int) -> str:
    ''' Return the tier name for level, or "Custom" when it is not a named tier. '''
    try:
        return PermissionLevel(level).name.capitalize()
    except ValueError:
        return "Custom"


def _check_username(username: str) -> str:
    if not username:
        raise ValidationError("username", "cannot be empty")
    if len(username) > MAX_USERNAME:
        raise ValidationError("username", f"too long, maximum length is {MAX_USERNAME} characters")
    return username


def _check_permission(level: int) -> int:
    if isinstance(level, bool) or not isinstance(level, int):
        raise ValidationError("permission_level", "must be an integer")
    if not 0 <= level <= MAX_PERMISSION:
        raise ValidationError("permission_level", f"must be a 4-bit number (0-{MAX_PERMISSION})")
    return int(level)


class User:
    """
    A registered chat user.

    canonical_name and public_key are fixed for the lifetime of the identity;
    username and permission_level can be changed through their setters, which
    validate before assigning.
    """

    def __init__(self, username: str, canonical_name: str, permission_level: int,
                 public_key: rsa.RSAPublicKey):
        if len(canonical_name) != CANONICAL_NAME_LENGTH:
            raise ValidationError("canonical_name",
                                  f"must be exactly {CANONICAL_NAME_LENGTH} characters long")
        self._username = _check_username(username)
        self._canonical_name = canonical_name
        self._permission_level = _check_permission(permission_level)
        self._public_key = public_key

    @property
    def username(self) -> str:
        return self._username

    @username.setter
    def username(self, value: str):
        self._username = _check_username(value)

    @property
    def canonical_name(self) -> str:
        return self._canonical_name

    @property
    def permission_level(self) -> int:
        return self._permission_level

    @permission_level.setter
    def permission_level(self, value: int):
        self._permission_level = _check_permission(value)

    @property
    def public_key(self) -> rsa.RSAPublicKey:
        return self._public_key

    def has_permission(self, required: Union[int, PermissionLevel]) -> bool:
        return self._permission_level >= required

    def __repr__(self):
        return (f"User(username={self._username!r}, canonical_name={self._canonical_name!r}, "
                f"permission_level={self._permission_level})")

    def __str__(self):
        return (f"User '{self._username}' with permission level {self._permission_level} "
                f"({permission_name(self._permission_level)})")
