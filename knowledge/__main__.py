"""
Command line entry point: ``python -m knowledge``.

Subcommands:
    ingest    Load, split, transform, embed and store files in a dataset
    search    Run a similarity search against a dataset
    datasets  List datasets and their document counts

Components are wired from environment settings (see knowledge.config).
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Sequence

from knowledge.config.settings import Settings, get_settings
from knowledge.core.types import WhereDocument, WhereDocumentOperator
from knowledge.core.vectorstore import get_store
from knowledge.ingestion.pipeline import IngestionRequest, get_ingestion_pipeline
from knowledge.utils.exceptions import KnowledgeError
from knowledge.utils.logging import configure_logging


def _key_value(text: str) -> tuple[str, str]:
    key, sep, value = text.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"expected KEY=VALUE, got {text!r}")
    return key, value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="knowledge",
        description="Ingest documents into a vector store and query them",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    ingest = subparsers.add_parser("ingest", help="Ingest files into a dataset")
    ingest.add_argument("files", nargs="+", type=Path, help="Files to ingest")
    ingest.add_argument("-d", "--dataset", required=True, help="Target dataset")
    ingest.add_argument(
        "--filetype",
        default=None,
        help="Extension or MIME type for all files (default: each file's suffix)",
    )
    ingest.add_argument(
        "-m", "--metadata",
        action="append",
        type=_key_value,
        default=[],
        metavar="KEY=VALUE",
        help="Metadata added to every chunk (repeatable)",
    )
    ingest.add_argument("--concurrency", type=int, default=None, help="Files processed in parallel")

    search = subparsers.add_parser("search", help="Similarity search in a dataset")
    search.add_argument("query", help="Query text")
    search.add_argument("-d", "--dataset", required=True, help="Dataset to search")
    search.add_argument("-k", type=int, default=4, help="Number of results (default: 4)")
    search.add_argument(
        "--where",
        action="append",
        type=_key_value,
        default=[],
        metavar="KEY=VALUE",
        help="Metadata equality filter (repeatable, all must match)",
    )
    search.add_argument("--contains", action="append", default=[], help="Content must contain TEXT")
    search.add_argument("--not-contains", action="append", default=[], help="Content must not contain TEXT")

    subparsers.add_parser("datasets", help="List datasets")
    return parser


async def run_ingest(args: argparse.Namespace, settings: Settings) -> int:
    pipeline = get_ingestion_pipeline(settings)

    requests = [
        IngestionRequest(
            dataset_id=args.dataset,
            source_id=path.name,
            filetype=args.filetype or path.suffix,
            content=path.read_bytes(),
            metadata=dict(args.metadata),
        )
        for path in args.files
    ]
    results = await pipeline.ingest_many(requests, max_concurrency=args.concurrency)

    for result in results:
        print(result)
    return 0 if all(r.success for r in results) else 1


def _first_line(text: str) -> str:
    lines = text.strip().splitlines()
    return lines[0] if lines else ""


async def run_search(args: argparse.Namespace, settings: Settings) -> int:
    where_document = [
        WhereDocument(WhereDocumentOperator.CONTAINS, text) for text in args.contains
    ] + [
        WhereDocument(WhereDocumentOperator.NOT_CONTAINS, text) for text in args.not_contains
    ]
    store = get_store(settings.chroma)
    documents = await store.similarity_search(
        args.query,
        args.k,
        args.dataset,
        where=dict(args.where),
        where_document=where_document,
    )

    for doc in documents:
        similarity = doc.metadata.get("similarity")
        score = f"{similarity:.3f}" if isinstance(similarity, float) else "-"
        print(f"[{score}] {doc.id}: {_first_line(doc.page_content)}")
    return 0


async def run_datasets(args: argparse.Namespace, settings: Settings) -> int:
    store = get_store(settings.chroma, configure_provider=False)
    for dataset in await store.list_datasets():
        print(f"{dataset.id}\t{dataset.document_count}")
    return 0


COMMANDS = {
    "ingest": run_ingest,
    "search": run_search,
    "datasets": run_datasets,
}


async def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    settings = get_settings()
    configure_logging(settings.logging)

    try:
        return await COMMANDS[args.command](args, settings)
    except (KnowledgeError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
