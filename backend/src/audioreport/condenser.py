"""Condense long report text into a ~30 second spoken summary."""

from __future__ import annotations

import logging
import re
from typing import Awaitable, Callable, Optional

from audioreport.config import Config, default_config
from audioreport.errors import redact_secrets
from audioreport.gemini import GeminiClient
from audioreport.models import CondensedText

logger = logging.getLogger(__name__)

Summarizer = Callable[[str], Awaitable[str]]

_SENTENCE_END = re.compile(r"[.!?](?=\s|$)")

CONDENSE_PROMPT = """Summarize this video streaming analytics report into a concise audio script of {min_words}-{max_words} words (about 30 seconds when spoken).

Rules:
- Keep the top 2-3 most important numbers.
- Keep exactly one actionable recommendation.
- Use plain, conversational sentences with no markdown, bullets or emoji.
- Do not invent numbers that are not in the report.
- Return only the script text.

Report:
{report}
"""


def truncate_to_words(text: str, max_words: int) -> str:
    """
    Cut text to at most max_words words.

    Ends at the last sentence boundary inside the cut when there is one,
    otherwise appends an ellipsis to the last kept word.
    """
    words = text.split()
    if len(words) <= max_words:
        return " ".join(words)
    clipped = " ".join(words[:max_words])
    boundaries = list(_SENTENCE_END.finditer(clipped))
    if boundaries:
        return clipped[: boundaries[-1].end()]
    return clipped.rstrip(",;:") + "..."


class TextCondenser:
    """Language-model summary first, deterministic truncation when that fails."""

    def __init__(
        self,
        summarizer: Optional[Summarizer] = None,
        *,
        config: Optional[Config] = None,
    ):
        self.config = config or default_config
        if summarizer is None:
            summarizer = GeminiClient(self.config).generate_text_async
        self.summarizer = summarizer
        self.max_words = self.config.condense_max_words
        self.min_words = self.config.condense_min_words

    def build_prompt(self, full_text: str) -> str:
        return CONDENSE_PROMPT.format(
            min_words=self.min_words,
            max_words=self.max_words,
            report=full_text,
        )

    async def condense(self, full_text: str) -> CondensedText:
        word_count = len(full_text.split())
        if word_count <= self.max_words:
            return CondensedText(text=full_text)

        try:
            summary = (await self.summarizer(self.build_prompt(full_text)) or "").strip()
        except Exception as exc:
            logger.warning("[condenser] summarizer failed, truncating instead: %s", redact_secrets(exc))
            summary = ""

        if summary:
            if len(summary.split()) <= self.max_words:
                logger.info("[condenser] condensed %d -> %d words", word_count, len(summary.split()))
                return CondensedText(text=summary, condensed=True)
            logger.warning("[condenser] summary over %d words; truncating", self.max_words)
            return CondensedText(
                text=truncate_to_words(summary, self.max_words),
                condensed=True,
                truncated=True,
            )

        return CondensedText(text=truncate_to_words(full_text, self.max_words), truncated=True)
