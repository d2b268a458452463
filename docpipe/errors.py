"""Exception hierarchy for the document content pipeline."""


class DocPipeError(Exception):
    """Base class for all pipeline errors."""


class StructuralError(DocPipeError):
    """The document tree cannot be walked, serialized or safely mutated."""


class MatchError(DocPipeError):
    """A change request could not be matched against the document text."""

    reason = "match failed"


class NoMatchError(MatchError):
    """The search text does not occur in the document."""

    reason = "text not found"


class AmbiguousMatchError(MatchError):
    """The search text occurs more than once in the document."""

    reason = "ambiguous match"

    def __init__(self, message: str, occurrences: int = 0):
        super().__init__(message)
        self.occurrences = occurrences


class ChunkingError(DocPipeError):
    """Section-aware chunking could not produce a trustworthy chunk list."""


class ChunkingDegraded(UserWarning):
    """Section-aware chunking failed and simple chunking was used instead."""


class EmbeddingServiceError(DocPipeError):
    """The embedding service failed for some or all of a batch.

    Attributes:
        failed_indexes: Positions (within the submitted batch) that have no vector
        partial: Vectors aligned with the submitted batch, ``None`` where failed
    """

    def __init__(
        self,
        message: str,
        failed_indexes: list[int] | None = None,
        partial: list[list[float] | None] | None = None,
    ):
        super().__init__(message)
        self.failed_indexes = failed_indexes or []
        self.partial = partial
