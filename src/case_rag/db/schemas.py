"""
Chunk Store Query and Row Models
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..embeddings.models import ChunkMetadata


class ChunkScope(BaseModel):
    """
    Tenant scope of a chunk query.

    `organization_id` is mandatory; `document_id` narrows the scope to one
    document, None means every document of the tenant.
    """

    organization_id: int
    document_id: Optional[int] = None

    model_config = ConfigDict(frozen=True, extra="forbid")


class SimilarityQuery(BaseModel):
    """
    Typed top-K nearest-neighbour query. The only input accepted by the
    statement builder, so a similarity query can never lack its tenant filter.
    """

    scope: ChunkScope
    embedding: List[float]
    top_k: int = Field(..., ge=1)

    model_config = ConfigDict(frozen=True, extra="forbid")


class RetrievedChunk(BaseModel):
    """A chunk row returned by a similarity query."""

    id: int
    organization_id: int
    document_id: int
    chunk_index: int
    content: str
    content_lang: Optional[str] = None
    token_count: Optional[int] = None
    metadata: ChunkMetadata = Field(default_factory=ChunkMetadata)
    similarity: float

    model_config = ConfigDict(frozen=True)
