"""
Chunk Splitter

Turns a document's source text into an ordered sequence of chunk payloads.

Splitting is pure: the same source text and settings always yield the same
chunk boundaries, contents and metadata. This is what makes reindexing
idempotent.

Policy
------
1. Normalize whitespace (line endings, runs of blanks, excess blank lines).
2. Split with a recursive character splitter: fixed-size windows that prefer
   paragraph, line, sentence and word boundaries, with a fixed overlap.
3. Record character offsets of each chunk in the normalized text.
4. Keep at most `max_chunks` chunks.
"""

from __future__ import annotations

import math
import re
from typing import List, NamedTuple, Optional

from langchain_text_splitters import RecursiveCharacterTextSplitter

from .models import ChunkMetadata, ChunkPayload

MIN_CHUNK_CHARS = 200

_ARABIC_RE = re.compile(r"[\u0600-\u06ff]")
_LATIN_RE = re.compile(r"[a-zA-Z]")
_BLANKS_RE = re.compile(r"[ \t\f\v]+")
_TRAILING_BLANKS_RE = re.compile(r" +\n")
_EXCESS_NEWLINES_RE = re.compile(r"\n{3,}")


class SplitResult(NamedTuple):
    """Chunks produced from one source text."""
    chunks: List[ChunkPayload]
    truncated: bool


def normalize_text(text: str) -> str:
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _BLANKS_RE.sub(" ", text)
    text = _TRAILING_BLANKS_RE.sub("\n", text)
    text = _EXCESS_NEWLINES_RE.sub("\n\n", text)
    return text.strip()


def detect_language(text: str) -> Optional[str]:
    """Coarse script-based language tag: "ar", "en" or None."""
    if _ARABIC_RE.search(text):
        return "ar"
    if _LATIN_RE.search(text):
        return "en"
    return None


def estimate_token_count(text: str) -> int:
    """Approximate token count at ~4 characters per token."""
    normalized = text.strip()
    if not normalized:
        return 0
    return max(1, math.ceil(len(normalized) / 4))


def _build_splitter(chunk_chars: int, overlap_chars: int) -> RecursiveCharacterTextSplitter:
    chunk_size = max(MIN_CHUNK_CHARS, chunk_chars)
    overlap = max(0, min(overlap_chars, chunk_size // 2))
    return RecursiveCharacterTextSplitter(
        chunk_size=chunk_size,
        chunk_overlap=overlap,
        length_function=len,
        separators=["\n\n", "\n", ". ", " ", ""],
        keep_separator="end",
        add_start_index=True,
    )


def split_text_into_chunks(
    source_text: str,
    chunk_chars: int,
    overlap_chars: int,
    max_chunks: int,
) -> SplitResult:
    """
    Split source text into chunk payloads without embeddings.

    Parameters
    ----------
    source_text : str
        Full extracted text of the document.
    chunk_chars : int
        Target chunk size in characters (at least 200).
    overlap_chars : int
        Characters shared between neighbouring chunks, capped at half the
        chunk size.
    max_chunks : int
        Upper bound on the number of chunks kept.

    Returns
    -------
    SplitResult
        Ordered payloads with chunk_index 0..n-1, and whether the sequence
        was cut at `max_chunks`.
    """
    normalized = normalize_text(source_text or "")
    if not normalized:
        return SplitResult(chunks=[], truncated=False)

    splitter = _build_splitter(chunk_chars, overlap_chars)
    documents = splitter.create_documents([normalized])

    limit = max(1, max_chunks)
    chunks: List[ChunkPayload] = []

    for document in documents:
        content = document.page_content.strip()
        if not content:
            continue
        if len(chunks) >= limit:
            return SplitResult(chunks=chunks, truncated=True)

        start = document.metadata.get("start_index", -1)
        if start is None or start < 0:
            start = normalized.find(content)

        chunks.append(
            ChunkPayload(
                chunk_index=len(chunks),
                content=content,
                content_lang=detect_language(content),
                token_count=estimate_token_count(content),
                metadata=ChunkMetadata(
                    char_start=max(start, 0),
                    char_end=max(start, 0) + len(content),
                ),
            )
        )

    return SplitResult(chunks=chunks, truncated=False)
