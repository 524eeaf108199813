"""Error taxonomy of the vector indexing engine.

Discovery errors (UnknownTypeError, NotIndexableError) are raised to the caller
of the analysis step and are never retried. EmbeddingProviderError and
VectorStoreWriteError fail the current queue item and are retried up to the
configured attempt limit. VectorStoreDeleteError is only logged while cleaning
up before an upsert. ExtractionFieldError is swallowed per field.
"""


class VectorIndexerError(Exception):
    """Base class for all engine errors."""


class ClientRequestError(VectorIndexerError):
    """A backend returned a non-success status code."""

    def __init__(self, url: str, status_code: int, body: str = "") -> None:
        super().__init__(f"Request to {url} failed with status {status_code}")
        self.url = url
        self.status_code = status_code
        self.body = body


##########################################
############### DISCOVERY ################
##########################################

class UnknownTypeError(VectorIndexerError):
    """The record type is not present in the record store's descriptor table."""

    def __init__(self, record_type: str) -> None:
        super().__init__(f"Record type '{record_type}' cannot be introspected")
        self.record_type = record_type


class NotIndexableError(VectorIndexerError):
    """The record type has no text-bearing field at depth 0."""

    def __init__(self, record_type: str) -> None:
        super().__init__(f"Record type '{record_type}' has no text fields and is not indexable")
        self.record_type = record_type


class ProfileNotFoundError(VectorIndexerError):
    """No (enabled) indexing profile exists for the requested record type."""


##########################################
############### EXTRACTION ###############
##########################################

class ExtractionFieldError(VectorIndexerError):
    """A single field could not be read from a record."""

    def __init__(self, record_type: str, field: str, cause: Exception | None = None) -> None:
        super().__init__(f"Could not read field '{field}' of '{record_type}': {cause}")
        self.record_type = record_type
        self.field = field
        self.cause = cause


class RecordNotFoundError(VectorIndexerError):
    """The record no longer exists in the record store."""

    def __init__(self, record_type: str, record_id: str) -> None:
        super().__init__(f"Record {record_type}#{record_id} does not exist")
        self.record_type = record_type
        self.record_id = record_id


##########################################
############### BACKENDS #################
##########################################

class EmbeddingProviderError(VectorIndexerError):
    """The embedding provider failed after all retry attempts."""

    def __init__(self, message: str, last_error: Exception | None = None, attempts: int = 0) -> None:
        super().__init__(message)
        self.last_error = last_error
        self.attempts = attempts


class VectorStoreWriteError(VectorIndexerError):
    """Collection creation or point upsert failed."""


class VectorStoreDeleteError(VectorIndexerError):
    """Deleting points by filter failed."""


class VectorStoreSearchError(VectorIndexerError):
    """A nearest-neighbour query failed."""


##########################################
############### INDEXING #################
##########################################

class IndexingError(VectorIndexerError):
    """A synchronous (non-queued) indexing request failed."""

    def __init__(self, record_type: str, record_id: str, action: str, cause: Exception) -> None:
        super().__init__(
            f"Indexing {action} for {record_type}#{record_id} failed: "
            f"{cause.__class__.__name__}: {cause}"
        )
        self.record_type = record_type
        self.record_id = record_id
        self.action = action
        self.cause = cause


class BackendUnavailableError(VectorIndexerError):
    """A required backend failed its startup healthcheck."""

    def __init__(self, client_type: str, engine: str, reason: str) -> None:
        super().__init__(f"{client_type} backend '{engine}' is not reachable: {reason}")
        self.client_type = client_type
        self.engine = engine
