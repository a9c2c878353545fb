"""
Embedding Client

This module implements the client for the AI microservice that generates
embeddings (`POST {embedding_service_url}/embed/`). It is responsible for:

- Efficient batching of text inputs
- Network and transport error isolation
- Strict response validation, including the fixed vector dimension
- Bounding every call by a timeout

Any failure of the dependency surfaces as an `UnavailableError` subclass so
that callers can report "temporarily unavailable" instead of a generic
internal error. Nothing is retried here; retry policy belongs to the caller.

The class is stateless and safe to reuse across requests.
"""

from __future__ import annotations

import asyncio
import math
from typing import List, Sequence, Optional
import logging
import httpx

from ..config import settings, EMBEDDING_DIMENSION
from ..core.exceptions import UnavailableError
from .models import EmbeddingResponse

logger = logging.getLogger("rag.embedder")


class EmbeddingUnavailableError(UnavailableError):
    """Raised when the embedding service is unconfigured, unreachable or misbehaving."""


class EmbeddingDimensionError(EmbeddingUnavailableError):
    """Raised when the service returns vectors of the wrong width or count."""


class Embedder:
    """
    Asynchronous embedding generator for batches of text.

    This class performs no caching; every call goes to the service.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        batch_size: Optional[int] = None,
        dimension: int = EMBEDDING_DIMENSION,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize an Embedder.

        Parameters
        ----------
        base_url : Optional[str]
            Base URL of the AI microservice. Defaults to
            settings.embedding_service_url. May be unset; calls then fail
            with EmbeddingUnavailableError.

        timeout : Optional[float]
            Default bound in seconds for a whole call.
            Defaults to settings.embedding_timeout_seconds.

        batch_size : Optional[int]
            Maximum texts per HTTP request.
            Defaults to settings.embedding_batch_size.

        dimension : int
            Expected vector width.

        transport : Optional[httpx.AsyncBaseTransport]
            Custom transport, used by tests.
        """
        raw_url = base_url or settings.embedding_service_url
        self.base_url = str(raw_url).rstrip("/") if raw_url else None
        self.timeout = timeout or settings.embedding_timeout_seconds
        self.batch_size = batch_size or settings.embedding_batch_size
        self.dimension = dimension
        self._transport = transport

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate_embeddings(
        self,
        texts: Sequence[str],
        timeout: Optional[float] = None,
    ) -> EmbeddingResponse:
        """
        Generate embeddings for a sequence of input texts.

        Parameters
        ----------
        texts : Sequence[str]
            Input strings, in order.

        timeout : Optional[float]
            Overall bound for the call in seconds, overriding the default.

        Returns
        -------
        EmbeddingResponse
            One vector per input text in input order, with dimension and count.

        Raises
        ------
        EmbeddingUnavailableError
            If the service is unconfigured, unreachable, times out or returns
            a malformed payload.
        EmbeddingDimensionError
            If any vector has the wrong width or the count does not match.
        """
        if not texts:
            return EmbeddingResponse(embeddings=[], dimension=self.dimension, count=0)

        if not self.base_url:
            raise EmbeddingUnavailableError("Embedding service URL is not configured")

        limit = timeout or self.timeout

        try:
            embeddings = await asyncio.wait_for(self._embed_batches(texts, limit), limit)
        except asyncio.TimeoutError as exc:
            logger.error(
                "Embedding request timed out after %.1fs: texts=%d",
                limit,
                len(texts),
            )
            raise EmbeddingUnavailableError("Embedding generation timed out") from exc

        if len(embeddings) != len(texts):
            raise EmbeddingDimensionError(
                f"Embedding count mismatch: {len(embeddings)}!={len(texts)}"
            )

        return EmbeddingResponse(
            embeddings=embeddings,
            dimension=self.dimension,
            count=len(embeddings),
        )

    async def generate_embedding(
        self,
        text: str,
        timeout: Optional[float] = None,
    ) -> List[float]:
        """
        Generate a single embedding vector for one text.
        """
        response = await self.generate_embeddings([text], timeout=timeout)
        return response.embeddings[0]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _embed_batches(
        self,
        texts: Sequence[str],
        timeout: float,
    ) -> List[List[float]]:
        all_embeddings: List[List[float]] = []
        url = f"{self.base_url}/embed/"

        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            for start in range(0, len(texts), self.batch_size):
                batch = list(texts[start : start + self.batch_size])
                payload = {
                    "texts": batch,
                    "normalize": True,
                }

                try:
                    response = await client.post(url, json=payload)
                    response.raise_for_status()
                    data = response.json()
                except (httpx.HTTPError, ValueError) as exc:
                    logger.error(
                        "Embedding request failed (%s): batch size=%d, error=%s",
                        type(exc).__name__,
                        len(batch),
                        str(exc),
                    )
                    raise EmbeddingUnavailableError(
                        f"Embedding generation failed: {type(exc).__name__}"
                    ) from exc

                embeddings = self._extract_embeddings(data, expected=len(batch))
                all_embeddings.extend(embeddings)

        return all_embeddings

    def _extract_embeddings(self, data: dict, expected: int) -> List[List[float]]:
        """
        Parse and validate embedding output format.

        The service returns:
            { "embeddings": [[...], ...], "dimension": 1024, "count": N }

        Raises
        ------
        EmbeddingUnavailableError
            If the payload has an unexpected structure.
        EmbeddingDimensionError
            If the reported or actual dimension, or the count, is wrong.
        """
        if not isinstance(data, dict) or "embeddings" not in data:
            raise EmbeddingUnavailableError("Embedding response missing 'embeddings' field.")

        records = data["embeddings"]
        if not isinstance(records, list):
            raise EmbeddingUnavailableError("'embeddings' field must be a list.")

        if len(records) != expected:
            raise EmbeddingDimensionError(
                f"Embedding count mismatch: {len(records)}!={expected}"
            )

        reported = data.get("dimension")
        if reported is not None and reported != self.dimension:
            raise EmbeddingDimensionError(
                f"Embedding dimension mismatch: {reported}!={self.dimension}"
            )

        embeddings: List[List[float]] = []

        for index, emb in enumerate(records):
            if not isinstance(emb, list) or not all(
                isinstance(x, (float, int)) and not isinstance(x, bool) for x in emb
            ):
                raise EmbeddingUnavailableError(
                    f"Invalid embedding vector at index {index}: must be float list."
                )

            if len(emb) != self.dimension:
                raise EmbeddingDimensionError(
                    f"Embedding dimension mismatch at index {index}: "
                    f"{len(emb)}!={self.dimension}"
                )

            # json accepts NaN/Infinity literals
            if not all(math.isfinite(x) for x in emb):
                raise EmbeddingUnavailableError(
                    f"Invalid embedding vector at index {index}: non-finite values."
                )

            embeddings.append([float(x) for x in emb])

        return embeddings
