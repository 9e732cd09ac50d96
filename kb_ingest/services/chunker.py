"""Text chunking with separator-aligned segments and overlapping windows.

Splits parsed document text into strings of at most ``chunk_size``
characters, ready for embedding.

The chunking strategy has two goals:

1. **Separator-preserving** -- Chunk boundaries fall on the configured
   separator (a newline by default) so chunks rarely start or end mid-line.

2. **Overlapping windows** -- When a chunk is flushed, the next one starts
   with the last ``overlap`` characters of the previous chunk so that a
   sentence spanning a boundary is retrievable from at least one side.

A single segment longer than ``chunk_size`` is cut into sliding windows of
``chunk_size`` characters advancing by ``chunk_size - overlap``.

The chunker is pure: the same text and config always yield the same list.
"""

from __future__ import annotations

import structlog

from kb_ingest.models.fragment import ChunkingConfig

logger = structlog.get_logger(logger_name=__name__)


class TextChunker:
    """Splits text into bounded, overlapping chunks.

    The algorithm works in two phases:
    1. Split text on the separator, re-attaching the separator to each piece
    2. Accumulate pieces into a buffer until the next one would exceed
       ``chunk_size``, then flush and start a new buffer seeded with overlap

    Parameters
    ----------
    config:
        Chunk size, overlap and separator.  Defaults to 500 / 50 / ``"\\n"``.
    """

    def __init__(self, config: ChunkingConfig | None = None) -> None:
        self._config = config or ChunkingConfig()

    @property
    def config(self) -> ChunkingConfig:
        return self._config

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chunk(self, text: str) -> list[str]:
        """Split *text* into trimmed, non-empty chunks.

        Parameters
        ----------
        text:
            The full document text.

        Returns
        -------
        list[str]
            Chunks in document order, each at most ``chunk_size`` characters.
            Empty or whitespace-only input returns an empty list.
        """
        if not text or not text.strip():
            return []

        chunk_size = self._config.chunk_size
        separator = self._config.separator
        segments = text.split(separator) if separator else [text]

        chunks: list[str] = []
        current = ""

        for segment in segments:
            piece = segment + separator

            if len(current) + len(piece) <= chunk_size:
                current += piece
                continue

            self._flush(current, chunks)

            if len(piece) > chunk_size:
                windows = self.split_long_text(piece)
                for window in windows[:-1]:
                    if window:
                        chunks.append(window)
                current = windows[-1] if windows else ""
            else:
                current = self._overlap_prefix(chunks, len(piece)) + piece

        self._flush(current, chunks)

        logger.debug(
            "chunking_complete",
            num_chunks=len(chunks),
            text_length=len(text),
            chunk_size=chunk_size,
            overlap=self._config.overlap,
        )
        return chunks

    def split_long_text(self, text: str) -> list[str]:
        """Cut *text* into trimmed windows of ``chunk_size`` characters.

        Windows advance by ``chunk_size - overlap`` and stop at the first
        window that reaches the end of *text*.  Trimmed windows may be empty
        when the source is mostly whitespace; callers drop those.
        """
        chunk_size = self._config.chunk_size
        overlap = self._config.overlap

        windows: list[str] = []
        start = 0
        while start < len(text):
            end = min(start + chunk_size, len(text))
            windows.append(text[start:end].strip())
            if end >= len(text):
                break
            start = end - overlap
        return windows

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _flush(buffer: str, chunks: list[str]) -> None:
        trimmed = buffer.strip()
        if trimmed:
            chunks.append(trimmed)

    def _overlap_prefix(self, chunks: list[str], piece_length: int) -> str:
        """Return the tail of the last chunk to prepend to the next buffer.

        The tail is shortened so that tail + piece stays within ``chunk_size``.
        """
        overlap = self._config.overlap
        if not chunks or overlap == 0:
            return ""
        room = min(overlap, self._config.chunk_size - piece_length)
        if room <= 0:
            return ""
        return chunks[-1][-room:]
