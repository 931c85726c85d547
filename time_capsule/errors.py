from typing import Dict


class CapsuleError(Exception):
    """Base class for time capsule errors."""


class CapsuleValidationError(CapsuleError):
    """One or more request fields are invalid.

    ``errors`` maps each invalid field name to a human readable message.
    """

    def __init__(self, errors: Dict[str, str]):
        super().__init__(", ".join(errors.values()))
        self.errors = dict(errors)


class CapsuleNotFound(CapsuleError):
    """No capsule is stored."""


class StorageError(CapsuleError):
    """The capsule file could not be read or written."""


class StorageCorruptError(StorageError):
    """The stored capsule is not a readable capsule record."""


class StorageWriteError(StorageError):
    """Writing or removing the capsule file failed."""


class CapsuleApiError(CapsuleError):
    """The capsule API answered with something the client does not expect."""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code
