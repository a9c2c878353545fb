"""
Chunk and Embedding Data Models

This module defines the canonical payload models that flow from the splitter
through the embedding client into the chunk store.

Each `ChunkPayload` corresponds to ONE chunk of text and, once embedded, ONE
embedding vector.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

_KNOWN_METADATA_KEYS = ("charStart", "charEnd", "char_start", "char_end")


class ChunkMetadata(BaseModel):
    """
    Per-chunk metadata stored in the JSONB `metadata` column.

    Known keys are typed; anything else is kept as-is in `model_extra`.
    """

    char_start: Optional[int] = Field(
        default=None,
        ge=0,
        alias="charStart",
        description="Offset of the first character in the normalized source text.",
    )

    char_end: Optional[int] = Field(
        default=None,
        ge=0,
        alias="charEnd",
        description="Offset one past the last character in the normalized source text.",
    )

    model_config = ConfigDict(
        extra="allow",
        frozen=True,
        populate_by_name=True,
    )

    def to_json(self) -> Dict[str, Any]:
        """Serialize with storage keys, omitting unset known keys."""
        return self.model_dump(by_alias=True, exclude_none=True)

    @classmethod
    def coerce(cls, value: Any) -> "ChunkMetadata":
        """
        Build metadata from whatever the store returned.

        Accepts a dict or a JSON-encoded object. Anything else yields empty
        metadata. Malformed known keys are dropped, unknown keys survive.
        """
        if not value:
            return cls()

        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                return cls()

        if not isinstance(value, dict):
            return cls()

        try:
            return cls.model_validate(value)
        except PydanticValidationError:
            extras = {k: v for k, v in value.items() if k not in _KNOWN_METADATA_KEYS}
            return cls.model_validate(extras)


class ChunkPayload(BaseModel):
    """
    One chunk as produced by ingestion and accepted by the chunk store.

    Field checks (non-negative index, non-empty content, vector width) are
    done by the store so that they surface as domain errors.
    """

    chunk_index: int
    content: str
    content_lang: Optional[str] = None
    token_count: Optional[int] = None
    embedding: Optional[List[float]] = None
    metadata: ChunkMetadata = Field(default_factory=ChunkMetadata)

    model_config = ConfigDict(frozen=True)


class EmbeddingResponse(BaseModel):
    """
    Result of one batch embedding call.

    `embeddings` is in the same order as the input texts.
    """

    embeddings: List[List[float]]
    dimension: int = Field(..., ge=0)
    count: int = Field(..., ge=0)
