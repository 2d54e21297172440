"""Token-bounded text chunking with overlapping windows.

Splits extracted document text into :class:`~workspace_rag.models.content.Chunk`
objects sized for the embedding model.  Two strategies are tried in order:

1. **advanced** -- a recursive splitter that walks an ordered separator
   hierarchy (markdown headers and rules, fenced-code boundaries, paragraphs,
   lines, sentence and clause punctuation, spaces, raw characters), merges
   fragments up to ``max_tokens`` as measured by the ``tiktoken`` encoding,
   and carries up to ``overlap_tokens`` of trailing context into the next
   chunk.  Separators are kept at the start of the fragment they introduce,
   so a chunk never loses the header that opened it.

2. **basic** -- a sliding word window sized from ``max_tokens * 0.75``
   words (roughly one token per 0.75 words).  Used when the advanced
   strategy is disabled or raises, e.g. when the tokenizer cannot be loaded.

The strategy that produced the chunks is reported in
:class:`~workspace_rag.models.content.ChunkingResult` for diagnostics.
"""

from __future__ import annotations

import math
import re
import time
from collections.abc import Callable

import structlog
import tiktoken

from workspace_rag.models.content import (
    Chunk,
    ChunkingMethod,
    ChunkingOptions,
    ChunkingResult,
    TextMetadata,
)
from workspace_rag.utils.errors import ValidationError

logger = structlog.get_logger(logger_name=__name__)

_MARKDOWN_SEPARATORS = ["\n## ", "\n### ", "\n#### ", "\n# ", "\n---", "\n```"]
_CODE_BLOCK_SEPARATORS = ["\n```\n", "\n```", "```\n"]
_DEFAULT_SEPARATORS = ["\n\n", "\n", ". ", "! ", "? ", "; ", ", ", " ", ""]

# Roughly 0.75 words per token for English prose.
_WORDS_PER_TOKEN = 0.75

_SUMMARY_CHARS = 500

_HEADER_RE = re.compile(r"^#{1,6}\s+", re.MULTILINE)
_CAPS_HEADER_RE = re.compile(r"^[A-Z][A-Z\s]{2,}$", re.MULTILINE)
_LIST_RE = re.compile(r"^\s*(?:[-*•]\s|\d+\.\s)", re.MULTILINE)
_TABLE_RE = re.compile(r"^\s*\|.+\|\s*$", re.MULTILINE)


class TextChunker:
    """Splits text into overlapping, token-bounded chunks.

    Parameters
    ----------
    options:
        Default chunking options, overridable per call.
    encoding_name:
        ``tiktoken`` encoding used to measure chunk sizes.
    """

    def __init__(
        self,
        options: ChunkingOptions | None = None,
        encoding_name: str = "cl100k_base",
    ) -> None:
        self._options = options or ChunkingOptions()
        self._encoding_name = encoding_name

    @property
    def default_options(self) -> ChunkingOptions:
        return self._options

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chunk(
        self,
        text: str,
        options: ChunkingOptions | None = None,
        parent_id: str = "",
    ) -> list[Chunk]:
        """Split *text* into ordered chunks.

        Empty or whitespace-only text yields an empty list.

        Raises
        ------
        ValidationError
            If ``overlap_tokens >= max_tokens``.
        """
        return self.chunk_with_metadata(text, options, parent_id).chunks

    def chunk_with_metadata(
        self,
        text: str,
        options: ChunkingOptions | None = None,
        parent_id: str = "",
    ) -> ChunkingResult:
        """Split *text* and report which strategy ran plus size statistics."""
        opts = options or self._options
        if opts.overlap_tokens >= opts.max_tokens:
            raise ValidationError(
                message=(
                    f"overlap_tokens ({opts.overlap_tokens}) must be smaller than "
                    f"max_tokens ({opts.max_tokens})"
                )
            )

        started = time.perf_counter()
        if not text or not text.strip():
            return ChunkingResult(chunks=[], method=_preferred_method(opts))

        pieces, method = self._run_strategies(text, opts)
        # Basic chunks are sized by word estimate, so they are measured the same way.
        count = self.get_token_count if method is ChunkingMethod.ADVANCED else estimate_tokens
        chunks = [
            Chunk(
                parent_id=parent_id,
                index=i,
                text=piece,
                token_count=count(piece),
                char_count=len(piece),
            )
            for i, piece in enumerate(pieces)
        ]
        elapsed = time.perf_counter() - started

        total_tokens = sum(c.token_count for c in chunks)
        result = ChunkingResult(
            chunks=chunks,
            method=method,
            total_chunks=len(chunks),
            total_tokens=total_tokens,
            avg_tokens_per_chunk=round(total_tokens / len(chunks)) if chunks else 0,
            avg_chars_per_chunk=(
                round(sum(c.char_count for c in chunks) / len(chunks)) if chunks else 0
            ),
            processing_time=elapsed,
        )
        logger.debug(
            "chunking_complete",
            parent_id=parent_id or None,
            method=method.value,
            num_chunks=result.total_chunks,
            avg_tokens=result.avg_tokens_per_chunk,
            text_chars=len(text),
        )
        return result

    def get_token_count(self, text: str) -> int:
        """Count tokens with the configured encoding.

        Falls back to ``ceil(words / 0.75)`` when the encoding is unavailable.
        """
        try:
            encoding = tiktoken.get_encoding(self._encoding_name)
            return len(encoding.encode(text, disallowed_special=()))
        except Exception as exc:  # noqa: BLE001
            logger.warning("token_count_fallback", error=str(exc))
            return estimate_tokens(text)

    def extract_metadata(self, text: str, file_name: str = "") -> TextMetadata:
        """Derive structural facts about *text* without any model call."""
        lines = [line.strip() for line in text.split("\n") if line.strip()]
        header = _HEADER_RE.search(text)
        if header:
            line_end = text.find("\n", header.end())
            title = text[header.end() : line_end if line_end != -1 else None].strip()
        else:
            title = lines[0] if lines and len(lines[0]) <= 100 else None
        has_code = "```" in text
        has_headers = bool(header) or bool(_CAPS_HEADER_RE.search(text))

        return TextMetadata(
            extracted_title=title or file_name or None,
            summary=re.sub(r"\s+", " ", text[:_SUMMARY_CHARS]).strip(),
            word_count=len(text.split()),
            character_count=len(text),
            has_headers=has_headers,
            is_markdown=bool(header) or has_code,
            has_code_blocks=has_code,
            has_lists=bool(_LIST_RE.search(text)),
            has_tables=bool(_TABLE_RE.search(text)),
        )

    # ------------------------------------------------------------------
    # Strategy selection
    # ------------------------------------------------------------------

    def _run_strategies(
        self, text: str, opts: ChunkingOptions
    ) -> tuple[list[str], ChunkingMethod]:
        """Try each enabled strategy in order; the basic window always succeeds."""
        strategies: list[tuple[ChunkingMethod, Callable[[str, ChunkingOptions], list[str]]]] = []
        if opts.use_advanced:
            strategies.append((ChunkingMethod.ADVANCED, self._advanced_split))
        strategies.append((ChunkingMethod.BASIC, self._basic_split))

        for method, strategy in strategies[:-1]:
            try:
                return strategy(text, opts), method
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "chunking_strategy_failed",
                    strategy=method.value,
                    error=str(exc),
                )
        method, strategy = strategies[-1]
        return strategy(text, opts), method

    # ------------------------------------------------------------------
    # Advanced: recursive separator splitter
    # ------------------------------------------------------------------

    def _advanced_split(self, text: str, opts: ChunkingOptions) -> list[str]:
        encoding = tiktoken.get_encoding(self._encoding_name)
        cache: dict[str, int] = {}

        def length(fragment: str) -> int:
            if fragment not in cache:
                cache[fragment] = len(encoding.encode(fragment, disallowed_special=()))
            return cache[fragment]

        splitter = _RecursiveSplitter(
            separators=build_separators(opts),
            max_tokens=opts.max_tokens,
            overlap_tokens=opts.overlap_tokens,
            length=length,
        )
        try:
            pieces = splitter.split(text)
        finally:
            cache.clear()
        return [p for p in pieces if p.strip()]

    # ------------------------------------------------------------------
    # Basic: sliding word window
    # ------------------------------------------------------------------

    @staticmethod
    def _basic_split(text: str, opts: ChunkingOptions) -> list[str]:
        words_per_chunk = max(1, math.floor(opts.max_tokens * _WORDS_PER_TOKEN))
        overlap_words = math.floor(opts.overlap_tokens * _WORDS_PER_TOKEN)
        step = max(1, words_per_chunk - overlap_words)

        words = text.split()
        pieces: list[str] = []
        i = 0
        while i < len(words):
            pieces.append(" ".join(words[i : i + words_per_chunk]))
            if i + words_per_chunk >= len(words):
                break
            i += step
        return pieces


def build_separators(opts: ChunkingOptions) -> list[str]:
    """Return the ordered separator hierarchy for *opts*."""
    separators: list[str] = []
    if opts.preserve_markdown:
        separators.extend(_MARKDOWN_SEPARATORS)
    if opts.preserve_code_blocks:
        separators.extend(_CODE_BLOCK_SEPARATORS)
    separators.extend(_DEFAULT_SEPARATORS)
    return separators


def estimate_tokens(text: str) -> int:
    """Approximate token count from whitespace-separated words."""
    return math.ceil(len(text.split()) / _WORDS_PER_TOKEN)


def _preferred_method(opts: ChunkingOptions) -> ChunkingMethod:
    return ChunkingMethod.ADVANCED if opts.use_advanced else ChunkingMethod.BASIC


class _RecursiveSplitter:
    """Recursive separator splitter measuring fragments with *length*."""

    def __init__(
        self,
        separators: list[str],
        max_tokens: int,
        overlap_tokens: int,
        length: Callable[[str], int],
    ) -> None:
        self._separators = separators
        self._max = max_tokens
        self._overlap = overlap_tokens
        self._length = length

    def split(self, text: str) -> list[str]:
        return self._split(text, self._separators)

    def _split(self, text: str, separators: list[str]) -> list[str]:
        separator = separators[-1]
        remaining: list[str] = []
        for i, candidate in enumerate(separators):
            if candidate == "":
                separator = candidate
                break
            if candidate in text:
                separator = candidate
                remaining = separators[i + 1 :]
                break

        final: list[str] = []
        pending: list[str] = []
        for fragment in _split_keeping_separator(text, separator):
            if self._length(fragment) < self._max:
                pending.append(fragment)
                continue
            if pending:
                final.extend(self._merge(pending))
                pending = []
            if remaining:
                final.extend(self._split(fragment, remaining))
            else:
                final.append(fragment)
        if pending:
            final.extend(self._merge(pending))
        return final

    def _merge(self, fragments: list[str]) -> list[str]:
        """Pack fragments into chunks, keeping up to ``overlap`` trailing tokens."""
        merged: list[str] = []
        window: list[str] = []
        total = 0
        for fragment in fragments:
            size = self._length(fragment)
            if total + size > self._max and window:
                chunk = "".join(window).strip()
                if chunk:
                    merged.append(chunk)
                while window and (total > self._overlap or total + size > self._max):
                    total -= self._length(window.pop(0))
            window.append(fragment)
            total += size
        chunk = "".join(window).strip()
        if chunk:
            merged.append(chunk)
        return merged


def _split_keeping_separator(text: str, separator: str) -> list[str]:
    """Split *text* on *separator*, attaching it to the fragment it precedes."""
    if separator == "":
        return list(text)
    parts = text.split(separator)
    fragments = [parts[0]] + [separator + p for p in parts[1:]]
    return [f for f in fragments if f]
