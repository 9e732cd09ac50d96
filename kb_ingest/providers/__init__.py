"""Concrete adapters for the interfaces in :mod:`kb_ingest.interfaces`."""
