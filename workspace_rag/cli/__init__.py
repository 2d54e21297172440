# =============================================================================
# workspace_rag/cli/__init__.py -- CLI Module Overview
# =============================================================================
#
# Operator tools for the workspace knowledge pipeline, run with
#     python -m workspace_rag.cli <command> [options]
#
# Commands (all defined in commands.py):
#
#   add-page        Import a text or markdown file as a workspace page and
#                   wait for its summary and embedding refresh.
#   ingest-file     Parse, chunk and embed an uploaded PDF or DOCX.
#   index-help      (Re)index the help document for help-mode chat.
#   search          Multi-source semantic search over a workspace.
#   ask             One RAG question/answer exchange.
#   suggest-links   Link suggestions for a piece of text.
#   summarize       Regenerate stale page summaries for a workspace.
#   embed-workspace Re-index every page of a workspace.
#
# Every command builds the full service graph through
# workspace_rag.main.build_services, so the CLI and an embedding
# application always share one wiring.
# =============================================================================

"""Command-line tools for the workspace knowledge pipeline."""
