"""Command-line interface for knowledge-base ingestion.

Usage::

    python -m kb_ingest.cli upload --kb handbook --file ./docs/guide.pdf
    python -m kb_ingest.cli process --document-id 3f2c...
    python -m kb_ingest.cli search --kb handbook --query "refund policy" --top-k 3
    python -m kb_ingest.cli status --kb handbook
    python -m kb_ingest.cli delete-document --document-id 3f2c...
    python -m kb_ingest.cli delete-kb --kb handbook --yes
    python -m kb_ingest.cli worker

Configuration comes from ``config/config.yaml`` (``--config``), overridden by
environment variables and ``.env`` (see :mod:`kb_ingest.config.loader`).
Without ``REDIS_URL`` uploads are processed inline before the command returns;
with it, ``upload`` and ``process`` only enqueue and a separate ``worker`` process does the work.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

import structlog

from kb_ingest.config.loader import DEFAULT_CONFIG_PATH, load_settings
from kb_ingest.models.document import Document
from kb_ingest.models.jobs import JobPriority
from kb_ingest.pipeline.dispatcher import AsyncDispatcher
from kb_ingest.pipeline.runtime import IngestionRuntime
from kb_ingest.utils.errors import KnowledgeBaseError
from kb_ingest.utils.logging import configure_logging

logger = structlog.get_logger(logger_name=__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _drain_local_queue(runtime: IngestionRuntime) -> None:
    """Wait for an in-process queue to empty before the command exits."""
    dispatcher = runtime.dispatcher
    if isinstance(dispatcher, AsyncDispatcher) and dispatcher.pool.running:
        await dispatcher.pool.wait_idle()


def _print_document(document: Document) -> None:
    print(f"  {document.document_id}  {document.status.value:<10} {document.file_name}")
    if document.fragment_count:
        print(f"      fragments: {document.fragment_count}")
    if document.error_message:
        print(f"      error:     {document.error_message}")


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


async def _handle_upload(args: argparse.Namespace, runtime: IngestionRuntime) -> int:
    """Upload one file into a knowledge base."""
    path = Path(args.file)
    if not path.is_file():
        print(f"Error: file not found: {path}", file=sys.stderr)
        return 1

    await runtime.initialize()
    print(f"Uploading {path.name} to knowledge base {args.kb}")
    document = await runtime.knowledge_bases.upload_document(
        knowledge_base_id=args.kb,
        file_name=path.name,
        data=path.read_bytes(),
        declared_type=args.type,
        priority=JobPriority(args.priority),
    )
    await _drain_local_queue(runtime)
    document = await runtime.knowledge_bases.get_document(document.document_id) or document

    print("\nUpload complete:")
    _print_document(document)
    return 0


async def _handle_process(args: argparse.Namespace, runtime: IngestionRuntime) -> int:
    """Re-enqueue one document or every document of a knowledge base."""
    await runtime.initialize()
    if args.document_id:
        job_ids = [await runtime.enqueue_document(args.document_id, JobPriority(args.priority))]
    else:
        job_ids = await runtime.knowledge_bases.reprocess_knowledge_base(
            args.kb, JobPriority(args.priority)
        )
    await _drain_local_queue(runtime)
    print(f"Dispatched {len(job_ids)} job(s) in {runtime.dispatcher.get_mode()} mode.")
    for job_id in job_ids:
        print(f"  job {job_id}")
    return 0


async def _handle_search(args: argparse.Namespace, runtime: IngestionRuntime) -> int:
    """Run a semantic search and print ranked fragments."""
    results = await runtime.search_knowledge_bases(
        args.kb,
        args.query,
        top_k=args.top_k,
        min_score=args.min_score,
    )
    if not results:
        print("No matching fragments.")
        return 0

    for rank, result in enumerate(results, start=1):
        source = result.file_name or result.document_id
        print(f"{rank:>2}. score={result.score:.4f}  {source} #{result.chunk_index}")
        snippet = result.content.replace("\n", " ")
        print(f"    {snippet[:200]}")
    return 0


async def _handle_status(args: argparse.Namespace, runtime: IngestionRuntime) -> int:
    """Show document status and queue counters."""
    await runtime.initialize()
    if args.document_id:
        document = await runtime.knowledge_bases.get_document(args.document_id)
        if document is None:
            print(f"Error: document {args.document_id} not found", file=sys.stderr)
            return 1
        _print_document(document)
    elif args.kb:
        documents = await runtime.knowledge_bases.list_documents(args.kb)
        print(f"Knowledge base {args.kb}: {len(documents)} document(s)")
        for document in documents:
            _print_document(document)

    status = await runtime.get_queue_status()
    print(f"\nQueue ({runtime.dispatcher.get_mode()})")
    print("=" * 40)
    print(f"  Waiting:   {status.waiting}")
    print(f"  Active:    {status.active}")
    print(f"  Completed: {status.completed}")
    print(f"  Failed:    {status.failed}")
    return 0


async def _handle_delete_document(args: argparse.Namespace, runtime: IngestionRuntime) -> int:
    await runtime.initialize()
    removed = await runtime.knowledge_bases.delete_document(args.document_id)
    print(f"Deleted document {args.document_id} ({removed} fragments).")
    return 0


async def _handle_delete_kb(args: argparse.Namespace, runtime: IngestionRuntime) -> int:
    if not args.yes:
        print(f"Refusing to delete knowledge base {args.kb} without --yes.", file=sys.stderr)
        return 1
    await runtime.initialize()
    documents = await runtime.knowledge_bases.delete_knowledge_base(args.kb)
    print(f"Deleted knowledge base {args.kb} ({documents} documents).")
    return 0


async def _handle_worker(args: argparse.Namespace, runtime: IngestionRuntime) -> int:
    """Run the worker pool until interrupted."""
    if runtime.dispatcher.get_mode() != "async":
        print("Error: the worker needs a queue backend; set REDIS_URL.", file=sys.stderr)
        return 1
    await runtime.initialize()
    print("Worker running; press Ctrl+C to stop.")
    await asyncio.Event().wait()
    return 0


_HANDLERS = {
    "upload": _handle_upload,
    "process": _handle_process,
    "search": _handle_search,
    "status": _handle_status,
    "delete-document": _handle_delete_document,
    "delete-kb": _handle_delete_kb,
    "worker": _handle_worker,
}


async def _run(args: argparse.Namespace, runtime: IngestionRuntime) -> int:
    try:
        return await _HANDLERS[args.command](args, runtime)
    except (KnowledgeBaseError, ValueError) as exc:
        logger.error("command_failed", command=args.command, error=str(exc))
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    finally:
        await runtime.shutdown()


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the ingestion CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m kb_ingest.cli",
        description="Ingest documents into knowledge bases and search them.",
    )
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help=f"YAML defaults file (default: {DEFAULT_CONFIG_PATH})",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")
    priorities = [p.value for p in JobPriority]

    # -- upload --
    upload_parser = subparsers.add_parser("upload", help="Upload and index a file")
    upload_parser.add_argument("--kb", required=True, help="Knowledge base id")
    upload_parser.add_argument("--file", required=True, help="Path to the file")
    upload_parser.add_argument(
        "--type", default=None, help="Declared type (default: the file extension)"
    )
    upload_parser.add_argument("--priority", choices=priorities, default="normal")

    # -- process --
    process_parser = subparsers.add_parser("process", help="Re-enqueue documents")
    target = process_parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--document-id", dest="document_id", help="Single document")
    target.add_argument("--kb", help="Every document of a knowledge base")
    process_parser.add_argument("--priority", choices=priorities, default="normal")

    # -- search --
    search_parser = subparsers.add_parser("search", help="Semantic search")
    search_parser.add_argument(
        "--kb", required=True, action="append", help="Knowledge base id (repeatable)"
    )
    search_parser.add_argument("--query", required=True, help="Query text")
    search_parser.add_argument("--top-k", dest="top_k", type=int, default=None)
    search_parser.add_argument("--min-score", dest="min_score", type=float, default=None)

    # -- status --
    status_parser = subparsers.add_parser("status", help="Show documents and queue counters")
    status_parser.add_argument("--document-id", dest="document_id", default=None)
    status_parser.add_argument("--kb", default=None)

    # -- delete-document --
    delete_doc_parser = subparsers.add_parser("delete-document", help="Delete one document")
    delete_doc_parser.add_argument("--document-id", dest="document_id", required=True)

    # -- delete-kb --
    delete_kb_parser = subparsers.add_parser("delete-kb", help="Delete a knowledge base")
    delete_kb_parser.add_argument("--kb", required=True)
    delete_kb_parser.add_argument(
        "--yes", "-y", action="store_true", help="Skip confirmation prompt"
    )

    # -- worker --
    subparsers.add_parser("worker", help="Run queue workers until interrupted")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.

    Only the ``worker`` command drains a Redis queue; every other command
    merely enqueues there.  With the in-memory backend the command keeps
    its own workers and waits for them before exiting.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    try:
        app_settings = load_settings(args.config)
    except KnowledgeBaseError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    configure_logging(
        log_level=app_settings.log_level,
        json_output=app_settings.app_env == "production",
    )

    try:
        mode = app_settings.resolved_queue_backend()
        runtime = IngestionRuntime.from_settings(
            app_settings,
            run_workers=args.command == "worker" or mode == "memory",
        )
    except KnowledgeBaseError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    try:
        exit_code = asyncio.run(_run(args, runtime))
    except KeyboardInterrupt:
        exit_code = 0
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
