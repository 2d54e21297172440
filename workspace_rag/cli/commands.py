"""Argparse front end over the workspace knowledge pipeline.

Usage::

    python -m workspace_rag.cli add-page --workspace ws1 --title "Onboarding" \\
        --file notes/onboarding.md

    python -m workspace_rag.cli ingest-file --workspace ws1 --file report.pdf

    python -m workspace_rag.cli search --workspace ws1 "quarterly targets"

    python -m workspace_rag.cli ask --workspace ws1 --user me "What changed in Q3?"

    python -m workspace_rag.cli index-help
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import uuid
from pathlib import Path
from typing import Any

from workspace_rag.config.settings import Settings, ThresholdUseCase
from workspace_rag.models.content import GLOBAL_SCOPE, PageRecord, SourceType
from workspace_rag.models.conversation import ConversationMode
from workspace_rag.models.retrieval import SearchOptions
from workspace_rag.utils.errors import WorkspaceRAGError
from workspace_rag.utils.logging import configure_logging

# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_add_page(args: argparse.Namespace, services: dict[str, Any]) -> int:
    path = Path(args.file)
    page = PageRecord(
        id=args.page_id or str(uuid.uuid4()),
        workspace_id=args.workspace,
        title=args.title or path.stem,
        content=path.read_text(encoding="utf-8"),
        tags=args.tags or [],
    )
    handle = await services["page_lifecycle"].on_page_saved(page)
    await services["task_queue"].wait(handle.task_id)
    stored = await services["store"].get_page(page.id)

    print(f"Page saved: {page.id}")
    print(f"  Title:   {page.title}")
    print(f"  Summary: {(stored.summary if stored else None) or '(none)'}")
    return 0


async def _handle_ingest_file(args: argparse.Namespace, services: dict[str, Any]) -> int:
    path = Path(args.file)
    file_type = args.type or path.suffix.lstrip(".")
    print(f"Ingesting file: {path} (type: {file_type})")

    result = await services["file_embeddings"].process_file(
        file_id=args.file_id or path.stem,
        file_bytes=path.read_bytes(),
        file_type=file_type,
        workspace_id=args.workspace,
        title=args.title or path.name,
    )
    if not result.success:
        print(f"Error: {result.error}", file=sys.stderr)
        return 1

    print("\nIngestion complete:")
    print(f"  File ID:         {result.file_id}")
    print(f"  Chunks embedded: {result.chunks}")
    print(f"  Chunking method: {result.chunking_method}")
    return 0


async def _handle_index_help(args: argparse.Namespace, services: dict[str, Any]) -> int:
    markdown = Path(args.file).read_text(encoding="utf-8") if args.file else None
    indexed = await services["help_content"].initialize_help_content(markdown)
    print(f"Help sections indexed: {indexed}")
    return 0


async def _handle_search(args: argparse.Namespace, services: dict[str, Any]) -> int:
    app_settings: Settings = services["settings"]
    threshold = (
        args.threshold if args.threshold is not None else app_settings.threshold_for(args.use_case)
    )
    max_results = args.max_results or services["config"].get("retrieval", {}).get("max_results", 10)
    sources = [SourceType(s) for s in args.sources]
    scope = GLOBAL_SCOPE if sources == [SourceType.HELP] else args.workspace

    result = await services["retrieval"].search(
        args.query,
        scope,
        SearchOptions(
            threshold=threshold,
            max_results=max_results,
            source_types=sources,
            required_tags=args.tags or [],
        ),
    )

    print(f"Strategy: {result.strategy.value}  (threshold {threshold:.2f})")
    if not result.results:
        print("No results.")
        return 0
    for rank, unit in enumerate(result.results, start=1):
        print(f"  {rank:>2}. [{unit.source_type.value:<4}] {unit.similarity:.3f}  {unit.title}")
        print(f"      {unit.owner_id}")
    return 0


async def _handle_ask(args: argparse.Namespace, services: dict[str, Any]) -> int:
    app_settings: Settings = services["settings"]
    answer = await services["orchestrator"].ask(
        args.question,
        workspace_id=args.workspace,
        user_id=args.user,
        conversation_id=args.conversation,
        mode=ConversationMode(args.mode),
        web_search_enabled=args.web or app_settings.web_search_enabled,
    )

    print(answer.answer)
    if answer.citations:
        print("\nSources:")
        for citation in answer.citations:
            print(f"  - {citation.source_title} ({citation.source_type.value}, {citation.relevance:.2f})")
    print(f"\nConversation: {answer.conversation_id}")
    return 0


async def _handle_suggest_links(args: argparse.Namespace, services: dict[str, Any]) -> int:
    suggestions = await services["link_suggestions"].suggest_links(
        args.text, args.workspace, page_id=args.page
    )
    if not suggestions:
        print("No link suggestions.")
        return 0
    for s in suggestions:
        print(f"  {s.confidence:.2f}  {s.matched_text!r} -> {s.target_title} ({s.target_page_id})")
    return 0


async def _handle_summarize(args: argparse.Namespace, services: dict[str, Any]) -> int:
    handle = await services["page_lifecycle"].schedule_workspace_summaries(
        args.workspace, force=args.force
    )
    print(f"Scheduled {handle.scheduled} page summaries")
    return await _wait_and_report(handle.task_id, services)


async def _handle_embed_workspace(args: argparse.Namespace, services: dict[str, Any]) -> int:
    handle = await services["page_lifecycle"].schedule_workspace_embeddings(args.workspace)
    print(f"Scheduled {handle.scheduled} page embeddings")
    return await _wait_and_report(handle.task_id, services)


async def _wait_and_report(task_id: str, services: dict[str, Any]) -> int:
    queue = services["task_queue"]
    await queue.wait(task_id)
    status = queue.status(task_id)
    if status is None:
        return 0
    print(f"  State:     {status.state.value}")
    print(f"  Completed: {status.completed}/{status.total}")
    print(f"  Failed:    {status.failed}")
    if status.error:
        print(f"  Error:     {status.error}", file=sys.stderr)
    return 0 if status.failed == 0 and status.error is None else 1


_HANDLERS = {
    "add-page": _handle_add_page,
    "ingest-file": _handle_ingest_file,
    "index-help": _handle_index_help,
    "search": _handle_search,
    "ask": _handle_ask,
    "suggest-links": _handle_suggest_links,
    "summarize": _handle_summarize,
    "embed-workspace": _handle_embed_workspace,
}


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m workspace_rag.cli",
        description="Workspace knowledge pipeline tools.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    add_page = subparsers.add_parser("add-page", help="Import a text file as a workspace page")
    add_page.add_argument("--workspace", required=True, help="Workspace id")
    add_page.add_argument("--file", required=True, help="Path to a text or markdown file")
    add_page.add_argument("--title", help="Page title (defaults to the file name)")
    add_page.add_argument("--page-id", help="Page id (defaults to a new UUID)")
    add_page.add_argument("--tags", nargs="*", help="Tag names")

    ingest = subparsers.add_parser("ingest-file", help="Embed an uploaded PDF or DOCX")
    ingest.add_argument("--workspace", required=True, help="Workspace id")
    ingest.add_argument("--file", required=True, help="Path to the document")
    ingest.add_argument("--file-id", help="File id (defaults to the file name stem)")
    ingest.add_argument("--title", help="Display title")
    ingest.add_argument("--type", choices=["pdf", "docx"], help="Override the detected type")

    help_cmd = subparsers.add_parser("index-help", help="Index the help document")
    help_cmd.add_argument("--file", help="Help markdown (defaults to HELP_CONTENT_PATH)")

    search = subparsers.add_parser("search", help="Semantic search over a workspace")
    search.add_argument("query", help="Search text")
    search.add_argument("--workspace", default=GLOBAL_SCOPE, help="Workspace id")
    search.add_argument(
        "--use-case",
        choices=[u.value for u in ThresholdUseCase],
        default=ThresholdUseCase.PAGE_SEARCH.value,
        help="Threshold profile to apply",
    )
    search.add_argument("--threshold", type=float, help="Explicit similarity threshold")
    search.add_argument("--max-results", type=int, help="Result cap (defaults to retrieval.max_results)")
    search.add_argument(
        "--sources",
        nargs="+",
        choices=[s.value for s in SourceType],
        default=[SourceType.PAGE.value, SourceType.FILE.value],
    )
    search.add_argument("--tags", nargs="*", help="Required tag names")

    ask = subparsers.add_parser("ask", help="Ask a question about a workspace")
    ask.add_argument("question", help="The question")
    ask.add_argument("--workspace", required=True, help="Workspace id")
    ask.add_argument("--user", default="cli", help="User id")
    ask.add_argument("--conversation", help="Continue an existing conversation")
    ask.add_argument(
        "--mode", choices=[m.value for m in ConversationMode], default=ConversationMode.WORKSPACE.value
    )
    ask.add_argument("--web", action="store_true", help="Add web search results")

    links = subparsers.add_parser("suggest-links", help="Suggest inline page links for text")
    links.add_argument("text", help="Text being edited")
    links.add_argument("--workspace", required=True, help="Workspace id")
    links.add_argument("--page", help="Id of the page being edited")

    summarize = subparsers.add_parser("summarize", help="Regenerate page summaries")
    summarize.add_argument("--workspace", required=True, help="Workspace id")
    summarize.add_argument("--force", action="store_true", help="Regenerate current summaries too")

    embed = subparsers.add_parser("embed-workspace", help="Re-index every page of a workspace")
    embed.add_argument("--workspace", required=True, help="Workspace id")

    return parser


async def _run(args: argparse.Namespace, app_settings: Settings) -> int:
    # Deferred so that --help works without provider credentials.
    from workspace_rag.main import build_services

    services = build_services(app_settings)
    await services["store"].initialize()
    return await _HANDLERS[args.command](args, services)


def main(argv: list[str] | None = None) -> None:
    """CLI entry point: parse, build services, dispatch, exit with the handler's code."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    app_settings = Settings()
    configure_logging(
        log_level=app_settings.log_level,
        json_output=(app_settings.app_env == "production"),
    )

    try:
        exit_code = asyncio.run(_run(args, app_settings))
    except (WorkspaceRAGError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
