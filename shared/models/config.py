from pydantic import BaseModel, Field, model_validator

from shared.helper.HelperConfig import HelperConfig


class EnvConfig(BaseModel):
    """
    Represents a single configuration parameter required for a env setting.

    Attributes:
        env_key (str): The key/name of the environment variable to read.
        val_type (str): The expected type of the environment variable's value. Supported types are "string", "number", "bool", and "list".
        default (str | int | bool | list | None): An optional default value if the environment variable is not set. If None, the variable is required and an error will be raised if it is not set.
    """

    env_key: str
    val_type: str
    default: str | int | float | bool | list | None = None


class IndexerSettings(BaseModel):
    """Engine-wide settings of the indexing pipeline, resolved once at startup.

    Attributes:
        max_attempts:        Attempts per queue item before it is marked failed.
        retry_after:         Base delay in seconds before a failed item becomes claimable again.
                             Doubles with every attempt.
        debounce_seconds:    Window in which repeated change events for the same record/action collapse.
        queue_enabled:       True routes work through the durable queue, False processes it inline.
        worker_concurrency:  Max items a single worker processes in parallel.
        poll_interval:       Seconds a worker sleeps when the queue is empty.
        index_on_create:     React to "created" change events.
        index_on_update:     React to "updated" change events.
        delete_on_delete:    React to "deleted" change events.
        watch_relationships: Register relationship watchers for related record types.
        max_relationship_depth: Default traversal depth for analysis.
        chunk_size:          Default chunk size when a field config omits it.
        chunk_overlap:       Default chunk overlap when a field config omits it.
        upsert_batch_size:   Max points per vector store upsert call.
        search_limit:        Default number of records returned by a search.
        search_threshold:    Default minimum similarity score.
        search_max_limit:    Upper bound for requested search limits.
        state_db:            Path of the sqlite database holding profiles, queue and audit log.
    """

    max_attempts: int = Field(default=3, ge=1)
    retry_after: float = Field(default=60.0, ge=0)
    debounce_seconds: float = Field(default=5.0, ge=0)
    queue_enabled: bool = True
    worker_concurrency: int = Field(default=5, ge=1)
    poll_interval: float = Field(default=1.0, gt=0)
    index_on_create: bool = True
    index_on_update: bool = True
    delete_on_delete: bool = True
    watch_relationships: bool = True
    max_relationship_depth: int = Field(default=3, ge=0)
    chunk_size: int = Field(default=1000, gt=0)
    chunk_overlap: int = Field(default=200, ge=0)
    upsert_batch_size: int = Field(default=100, ge=1)
    search_limit: int = Field(default=20, ge=1)
    search_threshold: float = 0.3
    search_max_limit: int = Field(default=100, ge=1)
    state_db: str = "vector_sync.sqlite3"

    @model_validator(mode="after")
    def _check_chunking(self) -> "IndexerSettings":
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("VECTOR_CHUNK_OVERLAP must be smaller than VECTOR_CHUNK_SIZE")
        return self

    @classmethod
    def from_helper_config(cls, helper_config: HelperConfig) -> "IndexerSettings":
        """Read all VECTOR_* settings from the environment.

        Args:
            helper_config (HelperConfig): The configuration helper.

        Returns:
            IndexerSettings: The resolved settings.
        """
        defaults = cls()
        return cls(
            max_attempts=helper_config.get_number_val("VECTOR_MAX_ATTEMPTS", default=defaults.max_attempts),
            retry_after=helper_config.get_number_val("VECTOR_RETRY_AFTER", default=defaults.retry_after),
            debounce_seconds=helper_config.get_number_val("VECTOR_DEBOUNCE_SECONDS", default=defaults.debounce_seconds),
            queue_enabled=helper_config.get_bool_val("VECTOR_QUEUE_ENABLED", default=defaults.queue_enabled),
            worker_concurrency=helper_config.get_number_val("VECTOR_WORKER_CONCURRENCY", default=defaults.worker_concurrency),
            poll_interval=helper_config.get_number_val("VECTOR_POLL_INTERVAL", default=defaults.poll_interval),
            index_on_create=helper_config.get_bool_val("VECTOR_INDEX_ON_CREATE", default=defaults.index_on_create),
            index_on_update=helper_config.get_bool_val("VECTOR_INDEX_ON_UPDATE", default=defaults.index_on_update),
            delete_on_delete=helper_config.get_bool_val("VECTOR_DELETE_ON_DELETE", default=defaults.delete_on_delete),
            watch_relationships=helper_config.get_bool_val("VECTOR_WATCH_RELATIONSHIPS", default=defaults.watch_relationships),
            max_relationship_depth=helper_config.get_number_val("VECTOR_MAX_RELATIONSHIP_DEPTH", default=defaults.max_relationship_depth),
            chunk_size=helper_config.get_number_val("VECTOR_CHUNK_SIZE", default=defaults.chunk_size),
            chunk_overlap=helper_config.get_number_val("VECTOR_CHUNK_OVERLAP", default=defaults.chunk_overlap),
            upsert_batch_size=helper_config.get_number_val("VECTOR_UPSERT_BATCH_SIZE", default=defaults.upsert_batch_size),
            search_limit=helper_config.get_number_val("VECTOR_SEARCH_LIMIT", default=defaults.search_limit),
            search_threshold=helper_config.get_number_val("VECTOR_SEARCH_THRESHOLD", default=defaults.search_threshold),
            search_max_limit=helper_config.get_number_val("VECTOR_SEARCH_MAX_LIMIT", default=defaults.search_max_limit),
            state_db=helper_config.get_string_val("VECTOR_STATE_DB", default=defaults.state_db),
        )
