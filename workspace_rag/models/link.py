"""Link suggestion models (transient; never persisted)."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class LinkSuggestion(BaseModel):
    """A candidate inline link from the text being edited to another page.

    ``start_index`` / ``end_index`` locate ``matched_text`` in the context
    text; both are 0 when no literal span was found (generic suggestions).
    """

    model_config = ConfigDict(frozen=True)

    target_page_id: str
    target_title: str
    matched_text: str
    start_index: int = Field(default=0, ge=0)
    end_index: int = Field(default=0, ge=0)
    confidence: float = Field(ge=0.0, le=1.0)
    relevance_score: float | None = Field(
        default=None, description="Uncapped rule sum (enhanced path only)."
    )
    summary: str | None = None
    strategy: str = Field(default="basic", description="'enhanced' or 'basic'.")
