"""
Shared fixtures for the case-rag tests.

Nothing here talks to PostgreSQL or the embedding service: `FakeSession`
stands in for an AsyncSession and records statements, pending/flushed rows
and transaction events, so tests can assert what would have been written.
"""

import hashlib
from typing import Any, List, Optional, Sequence
from unittest.mock import AsyncMock

import pytest

from case_rag.config import EMBEDDING_DIMENSION
from case_rag.db.chunk_store import ChunkStore
from case_rag.embeddings.embedder import Embedder
from case_rag.embeddings.models import EmbeddingResponse

ORG_ID = 7
OTHER_ORG_ID = 99
DOCUMENT_ID = 44


def vector(value: float) -> List[float]:
    return [value] * EMBEDDING_DIMENSION


class MockRow:
    def __init__(self, **kwargs):
        for k, v in kwargs.items():
            setattr(self, k, v)


class FakeResult:
    def __init__(self, scalar: Any = None, rows: Sequence[Any] = (), rowcount: int = 0):
        self._scalar = scalar
        self._rows = list(rows)
        self.rowcount = rowcount

    def scalar_one_or_none(self):
        return self._scalar

    def scalar(self):
        return self._scalar

    def all(self):
        return list(self._rows)


class FakeTransaction:
    def __init__(self, session: "FakeSession", nested: bool):
        self._session = session
        self._nested = nested

    async def __aenter__(self):
        self._session.events.append("savepoint" if self._nested else "begin")
        if not self._nested:
            self._session._in_tx = True
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if exc_type is not None:
            self._session.pending = []
            self._session.flushed = []
            self._session.events.append(
                "rollback_savepoint" if self._nested else "rollback"
            )
        elif self._nested:
            self._session.events.append("release_savepoint")
        else:
            self._session.committed.extend(self._session.flushed)
            self._session.flushed = []
            self._session.events.append("commit")

        if not self._nested:
            self._session._in_tx = False
        return False


class FakeSession:
    """Minimal AsyncSession double for ChunkStore."""

    def __init__(
        self,
        owner_org_id: Optional[int] = ORG_ID,
        rows: Sequence[Any] = (),
        count: int = 0,
        deleted: int = 0,
        flush_error: Optional[Exception] = None,
        in_transaction: bool = False,
    ):
        self.owner_org_id = owner_org_id
        self.rows = list(rows)
        self.count = count
        self.deleted = deleted
        self.flush_error = flush_error
        self._in_tx = in_transaction

        self.executed: List[Any] = []
        self.events: List[str] = []
        self.pending: List[Any] = []
        self.flushed: List[Any] = []
        self.committed: List[Any] = []

    def in_transaction(self) -> bool:
        return self._in_tx

    def begin(self):
        return FakeTransaction(self, nested=False)

    def begin_nested(self):
        return FakeTransaction(self, nested=True)

    def add_all(self, rows):
        self.pending.extend(rows)

    async def flush(self):
        if self.flush_error is not None:
            raise self.flush_error
        for i, row in enumerate(self.pending, start=len(self.flushed) + 1):
            row.id = i
        self.flushed.extend(self.pending)
        self.pending = []

    async def execute(self, stmt):
        self.executed.append(stmt)
        sql = str(stmt)

        if getattr(stmt, "is_delete", False):
            self.events.append("delete")
            return FakeResult(rowcount=self.deleted)
        if "FROM cases" in sql:
            return FakeResult(scalar=self.owner_org_id)
        if "count(" in sql:
            return FakeResult(scalar=self.count)
        return FakeResult(rows=self.rows)

    @property
    def written(self) -> List[Any]:
        return self.pending + self.flushed + self.committed


class DeterministicEmbedder:
    """Embedder double deriving each vector from a hash of its text."""

    def __init__(self, dimension: int = EMBEDDING_DIMENSION):
        self.dimension = dimension
        self.batch_calls: List[List[str]] = []

    @staticmethod
    def _seed(text: str) -> float:
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        return (digest[0] + 1) / 257.0

    async def generate_embeddings(self, texts, timeout=None) -> EmbeddingResponse:
        self.batch_calls.append(list(texts))
        embeddings = [[self._seed(t)] * self.dimension for t in texts]
        return EmbeddingResponse(
            embeddings=embeddings,
            dimension=self.dimension,
            count=len(embeddings),
        )

    async def generate_embedding(self, text, timeout=None):
        response = await self.generate_embeddings([text], timeout=timeout)
        return response.embeddings[0]


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def mock_store():
    return AsyncMock(spec=ChunkStore)


@pytest.fixture
def mock_embedder():
    mock = AsyncMock(spec=Embedder)
    mock.generate_embedding.return_value = vector(0.1)
    return mock
