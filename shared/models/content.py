from pydantic import BaseModel

MAIN_SOURCE = "main"


class ContentItem(BaseModel):
    """One piece of text extracted from a record.

    Attributes:
        source:        "main" for the record's own fields, otherwise the relationship path.
        field:         Field the text was read from.
        text:          The text itself.
        weight:        Field or relationship weight.
        chunk:         Whether the text is split into chunks before embedding.
        chunk_size:    Target chunk size, only meaningful when chunk is True.
        chunk_overlap: Chunk overlap, only meaningful when chunk is True.
    """

    source: str = MAIN_SOURCE
    field: str
    text: str
    weight: float = 1.0
    chunk: bool = False
    chunk_size: int | None = None
    chunk_overlap: int | None = None


class Chunk(BaseModel):
    """A piece of text ready for embedding. The position in the chunk list is the chunk index."""

    text: str
    source: str
    field: str
    weight: float
