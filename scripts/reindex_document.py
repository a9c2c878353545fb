import argparse
import asyncio
import os
import sys
from pathlib import Path

# Ensure src is in pythonpath
sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from dotenv import load_dotenv
load_dotenv()

from case_rag.db import AsyncSessionLocal, ChunkStore, async_engine
from case_rag.embeddings.embedder import Embedder
from case_rag.rag.ingestion import ChunkIngestionService


def parse_args():
    parser = argparse.ArgumentParser(description="Reindex the chunks of one document.")
    parser.add_argument("--org", type=int, required=True, help="Organization id owning the document")
    parser.add_argument("--document", type=int, required=True, help="Document id")
    parser.add_argument("source", type=Path, help="UTF-8 text file with the extracted document text")
    return parser.parse_args()


async def main():
    args = parse_args()
    source_text = args.source.read_text(encoding="utf-8")

    print(f"Reindexing document {args.document} ({len(source_text)} chars)...")
    try:
        async with AsyncSessionLocal() as session:
            service = ChunkIngestionService(ChunkStore(session), Embedder())
            result = await service.reindex_document_chunks(
                organization_id=args.org,
                document_id=args.document,
                source_text=source_text,
            )
    finally:
        await async_engine.dispose()

    print(result.model_dump_json(indent=2))

if __name__ == "__main__":
    asyncio.run(main())
