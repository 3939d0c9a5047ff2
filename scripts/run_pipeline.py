#!/usr/bin/env python
"""Index a directory of text files, or query an indexed collection.

Usage:
    python -m scripts.run_pipeline index --input docs/ --batch-size 10
    python -m scripts.run_pipeline retrieve "what is a ReAct prompt?" --top-k 3

Connection and embedding settings come from the environment
(``QDRANT_*``, ``EMBEDDING_*``, ``INDEXER_*``, ``RETRIEVER_*``).
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from docvec.config import get_settings
from docvec.documents.models import Document
from docvec.exceptions import DocVecError
from docvec.indexer.indexer import Indexer, IndexerConfig
from docvec.logging_config import get_logger, setup_logging
from docvec.observability.callbacks import LoggingCallbackHandler
from docvec.retrieval.retriever import Retriever, RetrieverOptions
from docvec.vectorstore.service import QdrantVectorStore

logger = get_logger(__name__)

TEXT_SUFFIXES = {".txt", ".md"}


def load_documents(root: Path) -> list[Document]:
    """Load every text file under ``root``, keyed by its relative path."""
    if not root.is_dir():
        raise FileNotFoundError(f"Directory not found: {root}")

    return [
        Document(
            id=path.relative_to(root).as_posix(),
            content=path.read_text(encoding="utf-8"),
            metadata={"source": str(path)},
        )
        for path in sorted(root.rglob("*"))
        if path.is_file() and path.suffix.lower() in TEXT_SUFFIXES
    ]


async def run_index(input_dir: Path, batch_size: int | None) -> int:
    """Index a directory and print the stored IDs."""
    settings = get_settings()
    docs = load_documents(input_dir)
    logger.info(f"Loaded {len(docs)} documents from {input_dir}")

    overrides = {"batch_size": batch_size} if batch_size is not None else {}
    store = QdrantVectorStore(settings.qdrant)
    try:
        indexer = await Indexer.create(
            IndexerConfig.from_settings(settings, **overrides),
            store,
            callbacks=[LoggingCallbackHandler()],
            embedding_settings=settings.embedding,
        )
        try:
            ids = await indexer.store(docs)
        finally:
            await indexer.close()
    finally:
        await store.close()

    print(json.dumps({"stored": len(ids), "ids": ids}, indent=2))
    return 0


async def run_retrieve(query: str, top_k: int | None, threshold: float | None) -> int:
    """Run one query and print the scored documents."""
    settings = get_settings()
    store = QdrantVectorStore(settings.qdrant)
    try:
        retriever = Retriever.from_settings(
            settings,
            store=store,
            callbacks=[LoggingCallbackHandler()],
        )
        try:
            docs = await retriever.retrieve(
                query,
                RetrieverOptions(top_k=top_k, score_threshold=threshold),
            )
        finally:
            await retriever.close()
    finally:
        await store.close()

    print(json.dumps([doc.model_dump() for doc in docs], indent=2, ensure_ascii=False))
    return 0


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Index documents into, or retrieve them from, a vector store",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    index_parser = subparsers.add_parser("index", help="Index a directory of text files")
    index_parser.add_argument(
        "--input",
        type=Path,
        required=True,
        help="Directory containing .txt/.md files",
    )
    index_parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Documents per upsert batch (defaults to INDEXER_BATCH_SIZE)",
    )

    retrieve_parser = subparsers.add_parser("retrieve", help="Query the collection")
    retrieve_parser.add_argument("query", help="Query text")
    retrieve_parser.add_argument("--top-k", type=int, default=None, help="Maximum results")
    retrieve_parser.add_argument(
        "--threshold",
        type=float,
        default=None,
        help="Score threshold",
    )

    args = parser.parse_args()
    setup_logging(level=args.log_level, json_output=False)

    try:
        if args.command == "index":
            code = asyncio.run(run_index(args.input, args.batch_size))
        else:
            code = asyncio.run(run_retrieve(args.query, args.top_k, args.threshold))
    except (DocVecError, FileNotFoundError) as e:
        logger.error(f"{args.command} failed: {e}")
        code = 1

    sys.exit(code)


if __name__ == "__main__":
    main()
