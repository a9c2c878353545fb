"""
Retrieval / RAG Orchestrator

Serves one retrieval request end-to-end:

- Embed the query
- Fetch the top-K most similar chunks within the tenant (and document) scope
- Assemble the context text in document order
- Build citations (similarity order) and retrieval metadata
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from ..config import settings, EMBEDDING_DIMENSION
from ..core.exceptions import ValidationError
from ..db.chunk_store import ChunkStore
from ..db.schemas import ChunkScope, RetrievedChunk, SimilarityQuery
from ..embeddings.embedder import Embedder, EmbeddingDimensionError
from .models import Citation, RetrievalMeta, RetrievalResult

logger = logging.getLogger("rag.retrieval")

STRATEGY_DOCUMENT_SCOPE = "pgvector_cosine_document_scope_v1"
STRATEGY_ORGANIZATION_SCOPE = "pgvector_cosine_organization_scope_v1"

CONTEXT_SEPARATOR = "\n\n"


# ---------------------------------------------------------------------
# Formatting Helpers (pure)
# ---------------------------------------------------------------------

def make_snippet(content: str, max_chars: int) -> str:
    """
    Shorten chunk content for display, cutting on a word boundary when one
    exists in the second half of the window.
    """
    text = content.strip()
    if len(text) <= max_chars:
        return text

    cut = text.rfind(" ", 0, max_chars)
    if cut < max_chars // 2:
        cut = max_chars
    return text[:cut].rstrip() + "..."


def assemble_context(rows: Sequence[RetrievedChunk]) -> str:
    """
    Join chunk contents in document order.

    Similarity decides which chunks are used; position decides how they are
    read, so the context is a coherent excerpt.
    """
    ordered = sorted(rows, key=lambda row: (row.document_id, row.chunk_index))
    return CONTEXT_SEPARATOR.join(row.content for row in ordered).strip()


def to_citation(row: RetrievedChunk, snippet_chars: int) -> Citation:
    return Citation(
        chunk_id=row.id,
        document_id=row.document_id,
        chunk_index=row.chunk_index,
        similarity=row.similarity,
        snippet=make_snippet(row.content, snippet_chars),
        content_lang=row.content_lang,
        token_count=row.token_count,
        metadata=row.metadata,
    )


# ---------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------

class DocumentRagService:
    """
    Retrieval entry point for chat and analysis features.

    No caching: every call embeds the query and re-queries the store.
    """

    def __init__(
        self,
        chunk_store: ChunkStore,
        embedder: Embedder,
        max_top_k: Optional[int] = None,
        snippet_chars: Optional[int] = None,
        embedding_timeout: Optional[float] = None,
    ) -> None:
        self._store = chunk_store
        self._embedder = embedder
        self.max_top_k = max_top_k or settings.rag_max_top_k
        self.snippet_chars = snippet_chars or settings.rag_snippet_chars
        self.embedding_timeout = embedding_timeout

    def _resolve_top_k(self, top_k: object, warnings: List[str]) -> int:
        if isinstance(top_k, bool) or not isinstance(top_k, int):
            raise ValidationError("top_k must be a positive integer")
        if top_k < 1:
            raise ValidationError("top_k must be a positive integer")
        if top_k > self.max_top_k:
            warnings.append(f"top_k_clamped:{top_k}->{self.max_top_k}")
            return self.max_top_k
        return top_k

    async def retrieve_relevant_chunks(
        self,
        organization_id: int,
        query_text: str,
        top_k: Optional[int] = None,
        document_id: Optional[int] = None,
    ) -> RetrievalResult:
        """
        Retrieve evidence chunks for a query.

        Parameters
        ----------
        organization_id : int
            Caller's tenant.
        query_text : str
            Natural-language query; must not be blank.
        top_k : Optional[int]
            Number of chunks wanted. Defaults to settings.rag_default_top_k;
            values above the configured maximum are clamped.
        document_id : Optional[int]
            Restrict to one document; None searches the whole tenant.

        Returns
        -------
        RetrievalResult
            Context text (document order), citations (similarity order) and
            retrieval metadata. An empty scope is a normal, warned result.

        Raises
        ------
        ValidationError
            Blank query or invalid top_k.
        NotFoundError, ForbiddenError
            Scoped document missing or owned by another tenant.
        UnavailableError
            Embedding service unavailable.
        """
        if top_k is None:
            top_k = settings.rag_default_top_k
        if not isinstance(query_text, str) or not query_text.strip():
            raise ValidationError("query_text cannot be empty")

        warnings: List[str] = []
        effective_top_k = self._resolve_top_k(top_k, warnings)
        scope = ChunkScope(organization_id=organization_id, document_id=document_id)

        if document_id is not None:
            await self._store.assert_document_access(organization_id, document_id)

        query_embedding = await self._embedder.generate_embedding(
            query_text,
            timeout=self.embedding_timeout,
        )
        if len(query_embedding) != EMBEDDING_DIMENSION:
            raise EmbeddingDimensionError(
                f"Query embedding dimension mismatch: "
                f"{len(query_embedding)}!={EMBEDDING_DIMENSION}"
            )

        rows = await self._store.retrieve_top_k_chunks_by_similarity(
            SimilarityQuery(scope=scope, embedding=query_embedding, top_k=effective_top_k)
        )

        if not rows:
            warnings.append("no_vector_chunks_returned")
        if len(rows) < top_k:
            warnings.append(f"fewer_results_than_requested:{len(rows)}<{top_k}")

        context_text = assemble_context(rows)
        citations = [to_citation(row, self.snippet_chars) for row in rows]

        logger.info(
            "Retrieved %d/%d chunks for organization %s (document=%s)",
            len(rows),
            top_k,
            organization_id,
            document_id,
        )

        return RetrievalResult(
            context_text=context_text,
            citations=citations,
            retrieval_meta=RetrievalMeta(
                strategy=(
                    STRATEGY_DOCUMENT_SCOPE
                    if document_id is not None
                    else STRATEGY_ORGANIZATION_SCOPE
                ),
                top_k_requested=top_k,
                top_k_returned=len(rows),
                query_chars=len(query_text),
                context_chars=len(context_text),
                embedding_dimension=EMBEDDING_DIMENSION,
                warnings=warnings,
            ),
        )
