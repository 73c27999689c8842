"""Standalone CLI for chunking, scoring and indexing course documents.

Usage::

    python -m src.cli.ingest file --course intro-stats --file notes/week1.txt
    python -m src.cli.ingest quality --file notes/week1.txt --target 800
    python -m src.cli.ingest delete --course intro-stats --document-id week1 --yes

``file`` chunks a plain-text file, indexes it into the course collection
and prints per-chunk quality.  ``quality`` does the same scoring without
touching the index.  ``delete`` removes one document's chunks.  The index
client comes from ``src.providers.factory``, the same provider selection
the API server uses.

Chunking settings default to the ``generation:`` section of
``config/config.yaml``; ``--target``, ``--min`` and ``--overlap`` override
them per run.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from src.config.loader import load_config
from src.config.settings import Settings
from src.models.document import Document, SourceType
from src.models.pipeline import GenerationConfig
from src.models.rag import Chunk
from src.utils.errors import CourseForgeError


def _generation_config(args: argparse.Namespace, app_settings: Settings) -> GenerationConfig:
    base = load_config(settings=app_settings).get("generation") or {}
    overrides = {
        "target_chunk_size": args.target,
        "min_chunk_size": args.min,
        "overlap_size": args.overlap,
    }
    return GenerationConfig.model_validate(
        {**base, **{k: v for k, v in overrides.items() if v is not None}}
    )


def _read_document(args: argparse.Namespace) -> Document:
    path = Path(args.file)
    text = path.read_text(encoding="utf-8")
    return Document(
        id=args.document_id or path.stem,
        text=text,
        title=args.title or path.stem,
        source_type=SourceType.MARKDOWN if path.suffix.lower() in {".md", ".markdown"} else SourceType.TEXT,
    )


def _print_chunks(chunks: list[Chunk], config: GenerationConfig) -> None:
    from src.services.ingestion.chunker import document_quality, topic_coverage

    print(f"{'#':>4}  {'tokens':>6}  {'score':>6}  {'band':<16} {'lang':<5} issues")
    for chunk in chunks:
        print(
            f"{chunk.sequence_index:>4}  {chunk.token_count:>6}  {chunk.quality_score:>6.1f}  "
            f"{chunk.quality_band.value:<16} {chunk.language:<5} {', '.join(chunk.quality_issues)}"
        )
    score = document_quality(chunks)
    print()
    print(f"  Document quality: {score:.1f} ({config.thresholds.band_for(score).value})")
    print(f"  Key topics:       {', '.join(topic_coverage(chunks, limit=10))}")


# ---------------------------------------------------------------------------
# Subcommand handlers
# ---------------------------------------------------------------------------


def _handle_quality(args: argparse.Namespace, app_settings: Settings) -> int:
    """Score a file's chunks without indexing them."""
    from src.services.ingestion.chunker import TextChunker

    config = _generation_config(args, app_settings)
    document = _read_document(args)
    print(f"Scoring {args.file} ({document.byte_length} bytes)")
    print()
    _print_chunks(TextChunker().chunk(document, config), config)
    return 0


async def _handle_file(args: argparse.Namespace, app_settings: Settings) -> int:
    """Chunk, score and index a file into a course collection."""
    from src.providers.factory import build_index_client
    from src.services.index_client import collection_name
    from src.services.ingestion.chunker import TextChunker

    index_client = build_index_client(app_settings)
    config = _generation_config(args, app_settings)
    document = _read_document(args)
    chunks = await asyncio.to_thread(TextChunker().chunk, document, config)
    collection = collection_name(args.course, app_settings.chromadb_collection_prefix)

    print(f"Indexing {document.id} into {collection}")
    print()
    acks = await index_client.index(collection, chunks)
    _print_chunks(chunks, config)
    print(f"  Chunks indexed:   {sum(1 for a in acks if a.stored)}")
    return 0


async def _handle_delete(args: argparse.Namespace, app_settings: Settings) -> int:
    """Remove one document's chunks from a course collection."""
    from src.providers.factory import build_index_client
    from src.services.index_client import collection_name

    index_client = build_index_client(app_settings)
    collection = collection_name(args.course, app_settings.chromadb_collection_prefix)
    if not args.yes:
        confirm = input(f"  Delete all chunks of {args.document_id} from {collection}? [y/N] ")
        if confirm.strip().lower() not in ("y", "yes"):
            print("  Aborted.")
            return 0

    deleted = await index_client.delete(collection, args.document_id)
    print(f"  Deleted {deleted} chunks.")
    return 0


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _add_chunking_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--file", required=True, help="Path to a UTF-8 text or markdown file")
    parser.add_argument("--document-id", dest="document_id", help="Document id (default: file stem)")
    parser.add_argument("--title", help="Document title (default: file stem)")
    parser.add_argument("--target", type=int, help="Target chunk size in tokens")
    parser.add_argument("--min", type=int, help="Minimum chunk size in tokens")
    parser.add_argument("--overlap", type=int, help="Overlap between chunks in tokens")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m src.cli.ingest",
        description="Chunk, score and index CourseForge course documents.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Ingestion commands")

    file_parser = subparsers.add_parser("file", help="Chunk and index a file into a course")
    file_parser.add_argument("--course", required=True, help="Course id")
    _add_chunking_arguments(file_parser)

    quality_parser = subparsers.add_parser("quality", help="Score a file without indexing")
    _add_chunking_arguments(quality_parser)

    delete_parser = subparsers.add_parser("delete", help="Delete a document's chunks")
    delete_parser.add_argument("--course", required=True, help="Course id")
    delete_parser.add_argument("--document-id", dest="document_id", required=True)
    delete_parser.add_argument("--yes", "-y", action="store_true", help="Skip confirmation prompt")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    """Parse arguments and dispatch; returns the process exit code."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    app_settings = Settings()
    try:
        if args.command == "quality":
            return _handle_quality(args, app_settings)
        if args.command == "file":
            return asyncio.run(_handle_file(args, app_settings))
        if args.command == "delete":
            return asyncio.run(_handle_delete(args, app_settings))
    except (CourseForgeError, ValueError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
