"""
RAG Result Models

Output contracts of the ingestion and retrieval services, consumed by
document-extraction workflows and chat/analysis features.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..embeddings.models import ChunkMetadata


class Citation(BaseModel):
    """
    Retrieval-time reference to one chunk, used as evidence for an answer.
    """
    chunk_id: int
    document_id: int
    chunk_index: int = Field(..., ge=0)
    similarity: float
    snippet: str
    content_lang: Optional[str] = None
    token_count: Optional[int] = None
    metadata: ChunkMetadata = Field(default_factory=ChunkMetadata)

    model_config = ConfigDict(frozen=True)


class RetrievalMeta(BaseModel):
    """
    Diagnostic record describing how one retrieval call ran.
    """
    strategy: str
    top_k_requested: int
    top_k_returned: int = Field(..., ge=0)
    query_chars: int = Field(..., ge=0)
    context_chars: int = Field(..., ge=0)
    embedding_dimension: int
    warnings: List[str] = Field(default_factory=list)


class RetrievalResult(BaseModel):
    context_text: str
    citations: List[Citation] = Field(default_factory=list)
    retrieval_meta: RetrievalMeta


class ReindexResult(BaseModel):
    """
    Outcome of one full replace of a document's chunk set.

    `payload_fingerprint` is a digest of the generated payload sequence;
    identical inputs always produce identical fingerprints.
    """
    chunks_persisted: int = Field(..., ge=0)
    embedded_chunks: int = Field(..., ge=0)
    embedding_dimension: Optional[int] = None
    payload_fingerprint: str
    truncated: bool = False
    warnings: List[str] = Field(default_factory=list)
