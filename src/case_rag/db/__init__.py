"""
Database Package

Provides SQLAlchemy async session management, model definitions and the
tenant-checked chunk store for PostgreSQL with pgvector.
"""

from .session import get_async_session, async_engine, AsyncSessionLocal, init_models
from .models import Base, Organization, Case, Document, DocumentChunk
from .schemas import ChunkScope, SimilarityQuery, RetrievedChunk
from .chunk_store import ChunkStore

__all__ = [
    "get_async_session",
    "async_engine",
    "AsyncSessionLocal",
    "init_models",
    "Base",
    "Organization",
    "Case",
    "Document",
    "DocumentChunk",
    "ChunkScope",
    "SimilarityQuery",
    "RetrievedChunk",
    "ChunkStore",
]
