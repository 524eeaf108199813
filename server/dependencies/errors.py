from fastapi import HTTPException

from shared.errors import (
    EmbeddingProviderError,
    IndexingError,
    NotIndexableError,
    ProfileNotFoundError,
    UnknownTypeError,
    VectorIndexerError,
    VectorStoreDeleteError,
    VectorStoreSearchError,
    VectorStoreWriteError,
)

# first matching class wins
STATUS_FOR_ERROR: list[tuple[type[Exception], int]] = [
    (UnknownTypeError, 404),
    (ProfileNotFoundError, 404),
    (NotIndexableError, 422),
    (EmbeddingProviderError, 502),
    (VectorStoreSearchError, 502),
    (VectorStoreWriteError, 502),
    (VectorStoreDeleteError, 502),
    (IndexingError, 502),
]


def to_http_error(error: VectorIndexerError) -> HTTPException:
    """Translate an engine error into the HTTPException a router raises."""
    for error_cls, status_code in STATUS_FOR_ERROR:
        if isinstance(error, error_cls):
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(status_code=500, detail=str(error))
