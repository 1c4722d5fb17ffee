"""Error taxonomy shared by the store, its collaborators and the pipeline.

Provider failures are defined next to the client in llm.py; the pipeline
turns those into conversation content instead of raising them.
"""


class ForgeError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(ForgeError, ValueError):
    """Malformed create/update input. Nothing was changed."""


class EmptyMessageError(ValidationError):
    """A chat message was empty after trimming whitespace."""


class NotFoundError(ForgeError):
    """An operation referenced a character or message id that does not exist."""


class BusyError(ForgeError):
    """A send is already in flight for this conversation."""


class PersistenceError(ForgeError):
    """The state could not be written to (or read from) durable storage."""


class StorageQuotaExceeded(PersistenceError):
    """The storage medium is out of space or over quota."""


class ImportFormatError(ForgeError, ValueError):
    """An import payload was rejected. Existing state is untouched."""
