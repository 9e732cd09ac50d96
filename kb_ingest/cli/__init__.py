"""Command-line tools for kb-ingest.

- ``python -m kb_ingest.cli`` (or the ``kb-ingest`` script) uploads,
  re-processes, searches and deletes documents, and runs queue workers.
"""
