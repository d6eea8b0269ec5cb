"""
Exception types shared by the store, the service and the HTTP layer.
"""


class PasteError(Exception):
    """Base exception for all paste errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.message)


class ValidationError(PasteError):
    """Raised when client input is malformed or missing."""


class DuplicateIdError(PasteError):
    """Raised by a store when the paste id is already taken."""

    def __init__(self, paste_id: str) -> None:
        self.paste_id = paste_id
        super().__init__(f"Paste id {paste_id} already exists")


class PasteNotFoundError(PasteError):
    """Raised when a paste is absent, expired or out of views.

    The three causes are deliberately indistinguishable to callers.
    """

    def __init__(self, message: str = "Paste not found or unavailable") -> None:
        super().__init__(message)


class StorageError(PasteError):
    """Raised when the backing store cannot be reached or a query fails."""
