"""Error taxonomy for indexing and scoring.

Extraction and validation errors are retried inside the indexing pipeline;
everything else ends a note's pipeline on the spot.
"""

from typing import Optional


class AffinityError(Exception):
    """Base class for all Affinity errors."""


class ExtractionError(AffinityError):
    """The keyword extraction backend failed to produce keywords."""


class ExtractionTimeout(ExtractionError):
    """The extraction call did not finish within its per-attempt timeout."""


class ProtocolError(ExtractionError):
    """The extraction backend answered with an error or a malformed envelope."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class UnparseableResponse(ExtractionError):
    """No keyword list could be recovered from the backend's answer."""


class ValidationError(AffinityError):
    """Fewer than two distinct keywords came back."""

    def __init__(self, keywords):
        self.keywords = list(keywords)
        super().__init__(
            f"expected at least 2 distinct keywords, got {len(set(self.keywords))}"
        )


class PersistenceError(AffinityError):
    """Writing a note's metadata block back to the store failed."""

    def __init__(self, path: str, cause: Optional[BaseException] = None):
        self.path = path
        self.cause = cause
        super().__init__(f"failed to persist metadata for {path}: {cause}")


class NoteNotFoundError(AffinityError):
    """The requested note does not exist in the store."""


class MetadataFormatError(AffinityError):
    """A note's metadata block could not be parsed."""


RETRYABLE_ERRORS = (ExtractionError, ValidationError)
