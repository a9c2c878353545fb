"""
Chunk Ingestion Service

Converts a document's full source text into the chunk set stored for that
document.

Workflow
--------
1. Check the caller's organization owns the document.
2. Split the text deterministically into chunk payloads.
3. Embed all chunk texts in one batch call.
4. Atomically replace the document's chunks with the new generation.

Embeddings are fully obtained before the write transaction opens, so an
embedding outage never leaves a half-written document. Full replace is the
idempotency mechanism: the same input always yields the same payloads.
"""

from __future__ import annotations

import hashlib
import json
import logging
from typing import List, Optional, Sequence

from ..config import settings, EMBEDDING_DIMENSION
from ..db.chunk_store import ChunkStore
from ..embeddings.embedder import Embedder, EmbeddingDimensionError
from ..embeddings.models import ChunkPayload
from ..embeddings.splitter import SplitResult, split_text_into_chunks
from .models import ReindexResult

logger = logging.getLogger("rag.ingestion")


def fingerprint_payloads(chunks: Sequence[ChunkPayload]) -> str:
    """
    Stable sha256 digest of a payload sequence.
    """
    canonical = json.dumps(
        [chunk.model_dump(mode="json", by_alias=True) for chunk in chunks],
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class ChunkIngestionService:
    """
    Reindexes documents into the chunk store.

    Stateless apart from its collaborators; safe to call concurrently for
    different documents. Concurrent reindexes of the same document resolve
    as last-writer-wins.
    """

    def __init__(
        self,
        chunk_store: ChunkStore,
        embedder: Embedder,
        chunk_chars: Optional[int] = None,
        overlap_chars: Optional[int] = None,
        max_chunks: Optional[int] = None,
        embedding_timeout: Optional[float] = None,
    ) -> None:
        self._store = chunk_store
        self._embedder = embedder
        self.chunk_chars = chunk_chars or settings.rag_chunk_chars
        self.overlap_chars = (
            settings.rag_chunk_overlap_chars if overlap_chars is None else overlap_chars
        )
        self.max_chunks = max_chunks or settings.rag_max_chunks
        self.embedding_timeout = embedding_timeout

    def build_chunk_payloads(self, source_text: str) -> SplitResult:
        """
        Split source text into embedding-less payloads. Pure.
        """
        return split_text_into_chunks(
            source_text,
            chunk_chars=self.chunk_chars,
            overlap_chars=self.overlap_chars,
            max_chunks=self.max_chunks,
        )

    async def _embed_payloads(self, chunks: List[ChunkPayload]) -> List[ChunkPayload]:
        response = await self._embedder.generate_embeddings(
            [chunk.content for chunk in chunks],
            timeout=self.embedding_timeout,
        )

        if response.count != len(chunks) or len(response.embeddings) != len(chunks):
            raise EmbeddingDimensionError(
                f"Embedding count mismatch: {len(response.embeddings)}!={len(chunks)}"
            )
        if response.dimension != EMBEDDING_DIMENSION:
            raise EmbeddingDimensionError(
                f"Embedding dimension mismatch: {response.dimension}!={EMBEDDING_DIMENSION}"
            )

        return [
            chunk.model_copy(update={"embedding": embedding})
            for chunk, embedding in zip(chunks, response.embeddings)
        ]

    async def reindex_document_chunks(
        self,
        organization_id: int,
        document_id: int,
        source_text: str,
    ) -> ReindexResult:
        """
        Replace a document's chunks with a fresh generation built from its text.

        Parameters
        ----------
        organization_id : int
            Caller's tenant; must own the document.
        document_id : int
            Document being reindexed.
        source_text : str
            Full extracted text of the document. Callers needing protection
            against pathological input must cap its size upstream.

        Returns
        -------
        ReindexResult
            Persisted counts, fingerprint and warnings.

        Raises
        ------
        NotFoundError, ForbiddenError
            Document missing or owned by another tenant.
        UnavailableError
            Embedding service unavailable; nothing was written.
        ConflictError
            Chunk position collision detected by the store.
        """
        await self._store.assert_document_access(organization_id, document_id)

        split = self.build_chunk_payloads(source_text)
        warnings: List[str] = []

        if split.truncated:
            logger.warning(
                "Document %s truncated at %d chunks", document_id, self.max_chunks
            )
            warnings.append(f"chunk_limit_reached:{self.max_chunks}")

        if not split.chunks:
            await self._store.replace_chunks_for_document(
                organization_id, document_id, []
            )
            logger.info("Document %s has no chunkable text, chunks cleared", document_id)
            return ReindexResult(
                chunks_persisted=0,
                embedded_chunks=0,
                embedding_dimension=None,
                payload_fingerprint=fingerprint_payloads([]),
                truncated=split.truncated,
                warnings=warnings + ["source_text_empty_or_not_chunkable"],
            )

        indexed_chunks = await self._embed_payloads(split.chunks)

        persisted = await self._store.replace_chunks_for_document(
            organization_id,
            document_id,
            indexed_chunks,
        )

        logger.info(
            "Reindexed document %s for organization %s: %d chunks",
            document_id,
            organization_id,
            len(persisted),
        )

        return ReindexResult(
            chunks_persisted=len(persisted),
            embedded_chunks=len(indexed_chunks),
            embedding_dimension=EMBEDDING_DIMENSION,
            payload_fingerprint=fingerprint_payloads(indexed_chunks),
            truncated=split.truncated,
            warnings=warnings,
        )
