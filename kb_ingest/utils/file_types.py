"""Mapping of declared upload types (extensions or MIME types) to formats."""

from pathlib import Path

# Declared types mapped to a canonical format name.
_TYPE_ALIASES: dict[str, str] = {
    "pdf": "pdf",
    "application/pdf": "pdf",
    "docx": "docx",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "doc": "doc",
    "application/msword": "doc",
    "txt": "text",
    "text": "text",
    "text/plain": "text",
    "md": "text",
    "markdown": "text",
    "text/markdown": "text",
    "json": "text",
    "application/json": "text",
}


def normalize_declared_type(declared_type: str, file_name: str = "") -> str:
    """Return ``"pdf"``, ``"docx"``, ``"doc"``, ``"text"`` or ``"unknown"``.

    The declared type wins; the file name extension is consulted only when
    the declared type is empty or unrecognised.
    """
    key = declared_type.strip().lower().lstrip(".")
    if key in _TYPE_ALIASES:
        return _TYPE_ALIASES[key]
    suffix = Path(file_name).suffix.lower().lstrip(".")
    return _TYPE_ALIASES.get(suffix, "unknown")


def accepted_types() -> list[str]:
    """Return every declared type that has a parser (``doc`` excluded)."""
    return sorted(k for k, v in _TYPE_ALIASES.items() if v != "doc")
