"""Allow ``python -m kb_ingest.cli`` execution."""

from kb_ingest.cli.ingest import main

main()
