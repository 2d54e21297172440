"""Text helpers shared by the indexer, retrieval, summaries and link scoring.

- **extract_page_text** -- flatten structured block content (the editor's
  ``{"blocks": [...]}`` document, a bare list of blocks, or a plain string)
  into ``title + "\\n\\n" + body`` text suitable for embedding.
- **extract_keywords** -- significant words (length > 4, not a stop word),
  capped at the first 15.
- **keyword_relevance** -- fraction of query words (length > 2) that appear
  in a piece of text; the cheap relevance signal used when vector search
  has nothing to offer.
- **word_count** -- whitespace split, empty tokens discarded.
"""

from __future__ import annotations

import json
import re
from typing import Any

STOP_WORDS = frozenset(
    {
        "the", "is", "at", "which", "on", "and", "a", "an", "as", "are",
        "was", "were", "been", "have", "has", "had", "do", "does", "did",
        "will", "would", "should", "could", "may", "might", "must", "can",
        "this", "that", "these", "those", "with", "from", "about", "into",
        "through", "during", "before", "after", "above", "below", "between",
        "under", "over", "but", "by", "for", "of", "to", "in", "it", "its",
        "there", "their", "where", "while", "other", "some", "such", "than",
        "then", "them", "they", "what", "when", "your",
    }
)

_WORD_RE = re.compile(r"[\w'-]+", re.UNICODE)


def word_count(text: str) -> int:
    """Count whitespace-separated tokens, ignoring empty ones."""
    return len([w for w in text.split() if w])


def tokenize_words(text: str) -> list[str]:
    """Lower-case word tokens with surrounding punctuation stripped."""
    return [m.group(0).lower() for m in _WORD_RE.finditer(text)]


def extract_keywords(text: str, limit: int = 15) -> list[str]:
    """Return up to *limit* significant words from *text*, in order of appearance."""
    keywords: list[str] = []
    for word in tokenize_words(text):
        if len(word) > 4 and word not in STOP_WORDS:
            keywords.append(word)
            if len(keywords) >= limit:
                break
    return keywords


def keyword_relevance(query: str, text: str) -> float:
    """Fraction of the query's words (longer than 2 chars) found in *text*.

    Returns a value in ``[0, 1]``; a query with no qualifying words scores 0.
    """
    query_words = [w for w in query.lower().split(" ") if len(w) > 2]
    if not query_words:
        return 0.0
    text_lower = text.lower()
    matches = sum(1 for w in query_words if w in text_lower)
    return matches / len(query_words)


# ---------------------------------------------------------------------------
# Structured content
# ---------------------------------------------------------------------------


def _inline_text(inline: Any) -> str:
    if isinstance(inline, str):
        return inline
    if isinstance(inline, dict):
        if "text" in inline and isinstance(inline["text"], str):
            return inline["text"]
        # Links wrap their own inline content.
        nested = inline.get("content")
        if isinstance(nested, list):
            return " ".join(_inline_text(n) for n in nested)
    return ""


def _blocks_text(blocks: list[Any], lines: list[str]) -> None:
    for block in blocks:
        if isinstance(block, str):
            lines.append(block)
            continue
        if not isinstance(block, dict):
            continue
        content = block.get("content")
        if isinstance(content, list):
            text = " ".join(t for t in (_inline_text(c) for c in content) if t)
            if text:
                lines.append(text)
        elif isinstance(content, str) and content:
            lines.append(content)
        children = block.get("children")
        if isinstance(children, list):
            _blocks_text(children, lines)


def extract_content_text(content: Any) -> str:
    """Flatten page *content* into plain text (body only, no title)."""
    if content is None:
        return ""
    if isinstance(content, str):
        stripped = content.strip()
        # Content persisted as a JSON string is decoded first.
        if stripped[:1] in ("{", "["):
            try:
                return extract_content_text(json.loads(stripped))
            except ValueError:
                return stripped
        return stripped
    lines: list[str] = []
    if isinstance(content, dict):
        blocks = content.get("blocks")
        if isinstance(blocks, list):
            _blocks_text(blocks, lines)
        else:
            return json.dumps(content, sort_keys=True)
    elif isinstance(content, list):
        _blocks_text(content, lines)
    return "\n".join(lines).strip()


def extract_page_text(title: str, content: Any, tags: list[str] | None = None) -> str:
    """Build the text that represents a page for embedding and prompting."""
    text = f"{title}\n\n{extract_content_text(content)}".strip()
    if tags:
        text += "\n\nTags: " + ", ".join(tags)
    return text


def extract_linked_page_ids(content: Any) -> set[str]:
    """Collect page ids referenced by internal ``/page/<id>`` links in *content*."""
    found: set[str] = set()

    def _walk(node: Any) -> None:
        if isinstance(node, dict):
            href = node.get("href")
            if node.get("type") == "link" and isinstance(href, str):
                match = re.search(r"/page/([A-Za-z0-9-]+)", href)
                if match:
                    found.add(match.group(1))
            for value in node.values():
                if isinstance(value, (list, dict)):
                    _walk(value)
        elif isinstance(node, list):
            for item in node:
                _walk(item)

    if isinstance(content, str):
        try:
            content = json.loads(content)
        except ValueError:
            return found
    _walk(content)
    return found


def truncate(text: str, limit: int, suffix: str = "...") -> str:
    """Return at most *limit* chars of *text*, appending *suffix* when cut."""
    if len(text) <= limit:
        return text
    return text[:limit] + suffix
