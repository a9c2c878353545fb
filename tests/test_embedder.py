import asyncio
import json

import httpx
import pytest

from case_rag.config import EMBEDDING_DIMENSION
from case_rag.core.exceptions import UnavailableError
from case_rag.embeddings.embedder import (
    Embedder,
    EmbeddingDimensionError,
    EmbeddingUnavailableError,
)

BASE_URL = "http://ai-service.test"


def embed_handler(dimension=EMBEDDING_DIMENSION, drop_last=False, seen=None):
    """Echo one vector per input text; vector value encodes the text length."""

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if seen is not None:
            seen.append(body)
        texts = body["texts"]
        embeddings = [[float(len(t))] * dimension for t in texts]
        if drop_last:
            embeddings = embeddings[:-1]
        return httpx.Response(
            200,
            json={"embeddings": embeddings, "dimension": dimension, "count": len(embeddings)},
        )

    return handler


def make_embedder(handler, **kwargs) -> Embedder:
    return Embedder(base_url=BASE_URL, transport=httpx.MockTransport(handler), **kwargs)


async def test_generate_embeddings_batches_and_preserves_order():
    seen = []
    embedder = make_embedder(embed_handler(seen=seen), batch_size=2)
    texts = ["a", "bb", "ccc", "dddd", "eeeee"]

    response = await embedder.generate_embeddings(texts)

    assert response.count == 5
    assert response.dimension == EMBEDDING_DIMENSION
    assert [emb[0] for emb in response.embeddings] == [1.0, 2.0, 3.0, 4.0, 5.0]
    assert [body["texts"] for body in seen] == [["a", "bb"], ["ccc", "dddd"], ["eeeee"]]
    assert all(body["normalize"] is True for body in seen)


async def test_generate_embedding_returns_single_vector():
    embedder = make_embedder(embed_handler())

    embedding = await embedder.generate_embedding("hello")

    assert len(embedding) == EMBEDDING_DIMENSION
    assert embedding[0] == 5.0


async def test_request_goes_to_embed_endpoint():
    urls = []

    def handler(request):
        urls.append(str(request.url))
        return embed_handler()(request)

    embedder = Embedder(base_url=BASE_URL + "/", transport=httpx.MockTransport(handler))
    await embedder.generate_embedding("x")

    assert urls == [BASE_URL + "/embed/"]


async def test_empty_input_makes_no_request():
    def handler(request):
        raise AssertionError("no request expected")

    response = await make_embedder(handler).generate_embeddings([])

    assert response.embeddings == []
    assert response.count == 0


async def test_unconfigured_service_is_unavailable(monkeypatch):
    monkeypatch.setattr("case_rag.embeddings.embedder.settings.embedding_service_url", None)

    with pytest.raises(EmbeddingUnavailableError):
        await Embedder().generate_embedding("hello")


async def test_http_error_status_is_unavailable():
    embedder = make_embedder(lambda request: httpx.Response(502, text="bad gateway"))

    with pytest.raises(EmbeddingUnavailableError):
        await embedder.generate_embeddings(["a"])


async def test_connection_error_is_unavailable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(UnavailableError):
        await make_embedder(handler).generate_embeddings(["a"])


async def test_transport_timeout_is_unavailable():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(EmbeddingUnavailableError):
        await make_embedder(handler).generate_embeddings(["a"])


async def test_caller_timeout_bounds_the_call():
    async def slow_handler(request):
        await asyncio.sleep(5)
        return embed_handler()(request)

    embedder = make_embedder(slow_handler)

    with pytest.raises(EmbeddingUnavailableError):
        await embedder.generate_embeddings(["a"], timeout=0.05)


async def test_wrong_dimension_fails_whole_batch():
    embedder = make_embedder(embed_handler(dimension=768))

    with pytest.raises(EmbeddingDimensionError) as exc_info:
        await embedder.generate_embeddings(["a", "b"])

    # Dimension errors are a misconfigured dependency, reported as unavailable
    assert isinstance(exc_info.value, UnavailableError)


async def test_vector_width_checked_even_when_dimension_not_reported():
    def handler(request):
        return httpx.Response(200, json={"embeddings": [[0.1, 0.2]]})

    with pytest.raises(EmbeddingDimensionError):
        await make_embedder(handler).generate_embeddings(["a"])


async def test_count_mismatch_fails():
    embedder = make_embedder(embed_handler(drop_last=True))

    with pytest.raises(EmbeddingDimensionError):
        await embedder.generate_embeddings(["a", "b", "c"])


def non_finite_handler(literal="NaN"):
    """Return a raw JSON body with non-finite literals, which json.loads accepts."""

    def handler(request):
        row = "[" + ",".join([literal] * EMBEDDING_DIMENSION) + "]"
        body = '{"embeddings": [%s], "dimension": %d, "count": 1}' % (row, EMBEDDING_DIMENSION)
        return httpx.Response(
            200,
            content=body.encode("utf-8"),
            headers={"content-type": "application/json"},
        )

    return handler


@pytest.mark.parametrize("literal", ["NaN", "Infinity", "-Infinity"])
async def test_non_finite_values_are_unavailable(literal):
    embedder = make_embedder(non_finite_handler(literal))

    with pytest.raises(EmbeddingUnavailableError):
        await embedder.generate_embedding("hello")


async def test_malformed_payload_is_unavailable():
    embedder = make_embedder(lambda request: httpx.Response(200, json={"data": []}))

    with pytest.raises(EmbeddingUnavailableError):
        await embedder.generate_embeddings(["a"])


async def test_non_json_body_is_unavailable():
    embedder = make_embedder(lambda request: httpx.Response(200, text="<html>oops</html>"))

    with pytest.raises(EmbeddingUnavailableError):
        await embedder.generate_embeddings(["a"])
