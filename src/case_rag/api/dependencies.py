from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import ChunkStore, get_async_session
from ..embeddings.embedder import Embedder
from ..rag.ingestion import ChunkIngestionService
from ..rag.retrieval import DocumentRagService


@lru_cache
def get_embedder() -> Embedder:
    return Embedder()


def get_chunk_store(
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> ChunkStore:
    return ChunkStore(session)


def get_ingestion_service(
    chunk_store: Annotated[ChunkStore, Depends(get_chunk_store)],
    embedder: Annotated[Embedder, Depends(get_embedder)],
) -> ChunkIngestionService:
    return ChunkIngestionService(chunk_store, embedder)


def get_rag_service(
    chunk_store: Annotated[ChunkStore, Depends(get_chunk_store)],
    embedder: Annotated[Embedder, Depends(get_embedder)],
) -> DocumentRagService:
    return DocumentRagService(chunk_store, embedder)
