from typing import Optional


class ChatError(Exception):
    """Base class for every error raised by circle_chat."""
    pass


class ValidationError(ChatError):
    ''' Raised when a field value violates its constraint. Nothing is changed when this is raised. '''
    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field


class SigningError(ChatError):
    """Raised when a signature cannot be produced with the given key."""
    pass


class EncryptionError(ChatError):
    ''' Raised when one field of a message could not be encrypted. Packaging is aborted. '''
    def __init__(self, field: str, message: str):
        super().__init__(f"cannot encrypt {field}: {message}")
        self.field = field


class DecryptionError(ChatError):
    def __init__(self, field: str, message: str):
        super().__init__(f"cannot decrypt {field}: {message}")
        self.field = field


class WireFormatError(ChatError):
    """Raised when a wire record is structurally invalid."""
    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message if key is None else f"{key}: {message}")
        self.key = key


class AuthenticityError(ChatError):
    """Raised when a wire record's signature does not verify against the author's key."""
    pass


class UnknownAuthorError(ChatError):
    def __init__(self, canonical_name: str):
        super().__init__(f"unknown author {canonical_name!r}")
        self.canonical_name = canonical_name


class DuplicateUserError(ChatError):
    def __init__(self, canonical_name: str):
        super().__init__(f"canonical name already registered: {canonical_name!r}")
        self.canonical_name = canonical_name


class PermissionDeniedError(ChatError):
    def __init__(self, canonical_name: str, required: int, actual: int):
        super().__init__(f"{canonical_name!r} has permission level {actual}, needs {required}")
        self.canonical_name = canonical_name
        self.required = required
        self.actual = actual


class StoreClosedError(ChatError):
    """Raised when a message store is used outside its open/close lifecycle."""
    pass
