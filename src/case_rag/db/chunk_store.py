"""
Chunk Store

PostgreSQL + pgvector persistence and similarity search for document chunks.

Every operation first resolves the owning document's organization and compares
it to the caller's organization. A mismatch is always a ForbiddenError, raised
before any chunk-level work, so callers cannot probe another tenant's chunks
through a different error shape.
"""

from __future__ import annotations

import logging
import math
from contextlib import asynccontextmanager, contextmanager
from typing import AsyncIterator, Iterator, List, Optional, Sequence

from sqlalchemy import Select, delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import EMBEDDING_DIMENSION
from ..core.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from ..embeddings.models import ChunkMetadata, ChunkPayload
from .models import Case, Document, DocumentChunk
from .schemas import ChunkScope, RetrievedChunk, SimilarityQuery

logger = logging.getLogger("rag.chunk_store")

UNIQUE_VIOLATION_SQLSTATE = "23505"


# ---------------------------------------------------------------------
# Statement Builders
# ---------------------------------------------------------------------

def build_similarity_statement(query: SimilarityQuery) -> Select:
    """
    Build the top-K cosine similarity statement for a typed query.

    Rows are ordered by cosine distance ascending (similarity descending);
    equal distances fall back to the lower chunk_index, then the lower id.
    The tie-break keys make this an exact scan rather than an HNSW index scan.
    """
    cosine_distance = DocumentChunk.embedding.cosine_distance(query.embedding)

    stmt = (
        select(
            DocumentChunk.id,
            DocumentChunk.organization_id,
            DocumentChunk.document_id,
            DocumentChunk.chunk_index,
            DocumentChunk.content,
            DocumentChunk.content_lang,
            DocumentChunk.token_count,
            DocumentChunk.metadata_.label("metadata"),
            (1 - cosine_distance).label("similarity"),
        )
        .where(DocumentChunk.organization_id == query.scope.organization_id)
        .order_by(cosine_distance, DocumentChunk.chunk_index, DocumentChunk.id)
        .limit(query.top_k)
    )

    if query.scope.document_id is not None:
        stmt = stmt.where(DocumentChunk.document_id == query.scope.document_id)

    return stmt


def build_owner_statement(document_id: int) -> Select:
    """
    Resolve the organization owning a document through its case.
    """
    return (
        select(Case.organization_id)
        .join(Document, Document.case_id == Case.id)
        .where(Document.id == document_id)
    )


# ---------------------------------------------------------------------
# Validation Helpers
# ---------------------------------------------------------------------

def _validate_vector(values: Sequence[float], label: str) -> None:
    if len(values) != EMBEDDING_DIMENSION:
        raise ValidationError(
            f"{label} must have {EMBEDDING_DIMENSION} dimensions"
        )
    if any(not math.isfinite(value) for value in values):
        raise ValidationError(f"{label} contains invalid values")


def _is_unique_violation(exc: IntegrityError) -> bool:
    """
    True when the driver error carries SQLSTATE 23505.

    asyncpg exposes `sqlstate` (on the adapted error or its cause),
    psycopg2 exposes `pgcode`.
    """
    orig = exc.orig
    for candidate in (orig, getattr(orig, "__cause__", None)):
        if candidate is None:
            continue
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code == UNIQUE_VIOLATION_SQLSTATE:
            return True
    return False


# ---------------------------------------------------------------------
# Chunk Store
# ---------------------------------------------------------------------

class ChunkStore:
    """
    Tenant-checked access to the `document_chunks` table.

    Each public method runs as one atomic unit: a transaction on a fresh
    session, or a savepoint when the caller already holds a transaction (the
    caller then decides when to commit).
    """

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize with an async database session.

        Parameters
        ----------
        session : AsyncSession
            SQLAlchemy async session for database operations.
        """
        self._session = session

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _atomic(self) -> AsyncIterator[None]:
        if self._session.in_transaction():
            async with self._session.begin_nested():
                yield
        else:
            async with self._session.begin():
                yield

    @contextmanager
    def _unique_violation_as_conflict(self, document_id: int) -> Iterator[None]:
        try:
            yield
        except IntegrityError as exc:
            if not _is_unique_violation(exc):
                raise
            logger.warning(
                "Unique violation on document_chunks for document %s", document_id
            )
            raise ConflictError(
                "Chunk index already exists for this document"
            ) from exc

    async def _assert_document_org_access(
        self,
        document_id: int,
        organization_id: int,
    ) -> None:
        result = await self._session.execute(build_owner_statement(document_id))
        owner_id = result.scalar_one_or_none()

        if owner_id is None:
            raise NotFoundError("Document")

        if owner_id != organization_id:
            logger.warning(
                "Organization %s denied access to document %s",
                organization_id,
                document_id,
            )
            raise ForbiddenError("Access denied to this document")

    @staticmethod
    def _ensure_chunk_payload(chunks: Sequence[ChunkPayload]) -> List[ChunkPayload]:
        seen_chunk_indexes = set()

        for chunk in chunks:
            if isinstance(chunk.chunk_index, bool) or chunk.chunk_index < 0:
                raise ValidationError("chunk_index must be a non-negative integer")
            if not chunk.content or not chunk.content.strip():
                raise ValidationError("Chunk content cannot be empty")
            if chunk.chunk_index in seen_chunk_indexes:
                raise ConflictError("Duplicate chunk_index values in request payload")
            seen_chunk_indexes.add(chunk.chunk_index)

            if chunk.embedding is None:
                raise ValidationError("Chunk embedding is required")
            _validate_vector(chunk.embedding, "Chunk embedding")

        return list(chunks)

    @staticmethod
    def _build_rows(
        organization_id: int,
        document_id: int,
        chunks: Sequence[ChunkPayload],
    ) -> List[DocumentChunk]:
        return [
            DocumentChunk(
                organization_id=organization_id,
                document_id=document_id,
                chunk_index=chunk.chunk_index,
                content=chunk.content,
                content_lang=chunk.content_lang,
                token_count=chunk.token_count,
                embedding=chunk.embedding,
                metadata_=chunk.metadata.to_json(),
            )
            for chunk in chunks
        ]

    async def _add_rows(self, rows: List[DocumentChunk]) -> List[DocumentChunk]:
        self._session.add_all(rows)
        await self._session.flush()
        return rows

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def assert_document_access(
        self,
        organization_id: int,
        document_id: int,
    ) -> None:
        """
        Raise NotFoundError / ForbiddenError unless the document belongs to
        the organization.
        """
        async with self._atomic():
            await self._assert_document_org_access(document_id, organization_id)

    async def insert_chunks_for_document(
        self,
        organization_id: int,
        document_id: int,
        chunks: Sequence[ChunkPayload],
    ) -> List[DocumentChunk]:
        """
        Insert chunks for a document that has no prior chunk generation.

        Raises
        ------
        ForbiddenError
            Document belongs to another organization (nothing is written).
        ConflictError
            Duplicate chunk_index in the batch (checked before any write) or
            a unique violation reported by the store.
        ValidationError
            Malformed chunk payload.
        """
        with self._unique_violation_as_conflict(document_id):
            async with self._atomic():
                await self._assert_document_org_access(document_id, organization_id)
                normalized = self._ensure_chunk_payload(chunks)

                if not normalized:
                    return []

                rows = self._build_rows(organization_id, document_id, normalized)
                return await self._add_rows(rows)

    async def replace_chunks_for_document(
        self,
        organization_id: int,
        document_id: int,
        chunks: Sequence[ChunkPayload],
    ) -> List[DocumentChunk]:
        """
        Atomically swap a document's chunk set for a new generation.

        The delete and the insert run in one transaction: concurrent readers
        observe either the complete previous generation or the complete new
        one. An empty `chunks` clears the document.
        """
        with self._unique_violation_as_conflict(document_id):
            async with self._atomic():
                await self._assert_document_org_access(document_id, organization_id)
                normalized = self._ensure_chunk_payload(chunks)

                deleted = await self._session.execute(
                    delete(DocumentChunk).where(
                        DocumentChunk.organization_id == organization_id,
                        DocumentChunk.document_id == document_id,
                    )
                )
                logger.debug(
                    "Replacing %s chunks of document %s with %d new chunks",
                    deleted.rowcount,
                    document_id,
                    len(normalized),
                )

                if not normalized:
                    return []

                rows = self._build_rows(organization_id, document_id, normalized)
                return await self._add_rows(rows)

    async def delete_chunks_for_document(
        self,
        organization_id: int,
        document_id: int,
    ) -> int:
        """
        Remove every chunk of a document.

        Returns the number of deleted rows.
        """
        async with self._atomic():
            await self._assert_document_org_access(document_id, organization_id)
            result = await self._session.execute(
                delete(DocumentChunk).where(
                    DocumentChunk.organization_id == organization_id,
                    DocumentChunk.document_id == document_id,
                )
            )
        return result.rowcount

    async def count_chunks(self, scope: ChunkScope) -> int:
        """
        Return the number of chunks stored for a tenant or one of its documents.
        """
        stmt = select(func.count()).select_from(DocumentChunk).where(
            DocumentChunk.organization_id == scope.organization_id
        )
        if scope.document_id is not None:
            stmt = stmt.where(DocumentChunk.document_id == scope.document_id)

        async with self._atomic():
            if scope.document_id is not None:
                await self._assert_document_org_access(
                    scope.document_id, scope.organization_id
                )
            result = await self._session.execute(stmt)
        return result.scalar() or 0

    async def retrieve_top_k_chunks_by_similarity(
        self,
        query: SimilarityQuery,
    ) -> List[RetrievedChunk]:
        """
        Return the `top_k` chunks nearest to the query embedding.

        Parameters
        ----------
        query : SimilarityQuery
            Tenant scope (document optional), query vector and limit.

        Returns
        -------
        List[RetrievedChunk]
            Rows by descending similarity, ties by ascending chunk_index.
        """
        _validate_vector(query.embedding, "Query embedding")

        async with self._atomic():
            if query.scope.document_id is not None:
                await self._assert_document_org_access(
                    query.scope.document_id, query.scope.organization_id
                )
            result = await self._session.execute(build_similarity_statement(query))
            rows = result.all()

        return [self._to_retrieved(row) for row in rows]

    @staticmethod
    def _to_retrieved(row) -> RetrievedChunk:
        similarity: Optional[float] = row.similarity
        return RetrievedChunk(
            id=row.id,
            organization_id=row.organization_id,
            document_id=row.document_id,
            chunk_index=row.chunk_index,
            content=row.content,
            content_lang=row.content_lang,
            token_count=row.token_count,
            metadata=ChunkMetadata.coerce(row.metadata),
            similarity=float(similarity or 0.0),
        )
