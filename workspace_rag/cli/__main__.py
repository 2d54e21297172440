"""Allow ``python -m workspace_rag.cli`` execution."""

from workspace_rag.cli.commands import main

main()
