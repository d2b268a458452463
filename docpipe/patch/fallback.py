"""Fallback matchers for change requests without a unique exact match.

A matcher gets the flattened document text and the change request and
returns the span the edit should replace, or ``None`` when it cannot
locate one with confidence. ``candidates`` carries the start offsets of
every exact occurrence when the search text was ambiguous.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
import re
from typing import Optional, Sequence

from rapidfuzz import fuzz

from docpipe.domain.changes import ChangeRequest
from docpipe.llm import BaseLLM
from docpipe.logging import get_logger
from docpipe.patch.positions import find_all
from docpipe.pipeline.config import PatchConfig

logger = get_logger(__name__)

_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True, slots=True)
class Span:
    """Half-open ``[start, end)`` range in the flattened document text."""

    start: int
    end: int


class FallbackMatcher(ABC):
    """Locates the target of a change request approximately."""

    name = "fallback"

    @abstractmethod
    def locate(
        self,
        text: str,
        change: ChangeRequest,
        candidates: Sequence[int] | None = None,
    ) -> Optional[Span]:
        """Return the span to replace, or ``None``."""


class FuzzyFallbackMatcher(FallbackMatcher):
    """Tolerant text matching.

    Tries, in order: a unique case-insensitive match, a unique match with
    whitespace runs collapsed, and the best ``partial_ratio`` alignment
    scoring at least ``threshold``. Ambiguous candidates are never resolved
    here since every candidate scores the same.
    """

    name = "fuzzy"

    def __init__(self, threshold: float = 85.0):
        if not 0 < threshold <= 100:
            raise ValueError("threshold must be in (0, 100]")
        self.threshold = threshold

    def locate(self, text, change, candidates=None):
        search = change.search
        if candidates or not search.strip() or not text:
            return None

        span = self._case_insensitive(text, search)
        if span is None:
            span = self._whitespace_insensitive(text, search)
        if span is None:
            span = self._partial_ratio(text, search)
        return span

    def _case_insensitive(self, text: str, search: str) -> Optional[Span]:
        lowered = text.lower()
        # Offsets only carry over when lowercasing keeps lengths
        if len(lowered) != len(text):
            return None
        hits = find_all(lowered, search.lower())
        if len(hits) != 1:
            return None
        return Span(hits[0], hits[0] + len(search))

    def _whitespace_insensitive(self, text: str, search: str) -> Optional[Span]:
        needle = _WHITESPACE.sub(" ", search.strip())
        collapsed, offsets = _collapse_whitespace(text)
        hits = find_all(collapsed, needle)
        if len(hits) != 1:
            return None
        start = hits[0]
        end = start + len(needle)
        return Span(offsets[start], offsets[end - 1] + 1)

    def _partial_ratio(self, text: str, search: str) -> Optional[Span]:
        alignment = fuzz.partial_ratio_alignment(search, text, score_cutoff=self.threshold)
        if alignment is None or alignment.dest_end <= alignment.dest_start:
            return None
        logger.debug(
            f"Fuzzy match score {alignment.score:.1f} at "
            f"{alignment.dest_start}..{alignment.dest_end}"
        )
        return Span(alignment.dest_start, alignment.dest_end)


def _collapse_whitespace(text: str) -> tuple[str, list[int]]:
    """Collapse whitespace runs to one space, keeping a map back to ``text``."""
    chars = []
    offsets = []
    in_space = False
    for i, ch in enumerate(text):
        if ch.isspace():
            if in_space:
                continue
            in_space = True
            chars.append(" ")
        else:
            in_space = False
            chars.append(ch)
        offsets.append(i)
    return "".join(chars), offsets


LOCATE_PROMPT = """You are helping apply an edit to a document.

The edit wants to replace this text:
<search>
{search}
</search>

with:
<replace>
{replace}
</replace>

{hint}

Document:
<document>
{document}
</document>

Reply with the exact passage from the document that the edit should replace,
copied character for character. Reply with the passage only. If no passage
fits, reply with NONE."""

AMBIGUOUS_HINT = (
    "The search text occurs {count} times. Quote the occurrence the edit most "
    "plausibly targets together with enough surrounding words to make the "
    "quote unique."
)


class LLMFallbackMatcher(FallbackMatcher):
    """Asks an LLM to quote the passage an edit targets, then verifies it."""

    name = "llm"

    def __init__(self, llm: BaseLLM, context_chars: int = 8000):
        self.llm = llm
        self.context_chars = context_chars

    def locate(self, text, change, candidates=None):
        if not text:
            return None

        hint = AMBIGUOUS_HINT.format(count=len(candidates)) if candidates else ""
        prompt = LOCATE_PROMPT.format(
            search=change.search,
            replace=change.replace,
            hint=hint,
            document=text[: self.context_chars],
        )
        response = self.llm.generate(prompt)
        quote = _strip_quote(response.content)
        if not quote or quote == "NONE":
            return None

        hits = find_all(text, quote)
        if len(hits) != 1:
            logger.debug(f"LLM quote matched {len(hits)} times, rejecting")
            return None
        start = hits[0]

        if not candidates:
            return Span(start, start + len(quote))

        # Narrow the quote down to the occurrence it contains
        for candidate in candidates:
            if start <= candidate and candidate + len(change.search) <= start + len(quote):
                return Span(candidate, candidate + len(change.search))
        return None


def _strip_quote(content: str) -> str:
    quote = content.strip()
    if quote.startswith("```") and quote.endswith("```") and len(quote) >= 6:
        quote = quote[3:-3].strip()
    for left, right in (('"', '"'), ("'", "'"), ("<passage>", "</passage>")):
        if len(quote) > len(left) + len(right) and quote.startswith(left) and quote.endswith(right):
            quote = quote[len(left) : -len(right)]
    return quote


class ChainedFallbackMatcher(FallbackMatcher):
    """Tries each matcher in turn and returns the first span found."""

    name = "chain"

    def __init__(self, matchers: Sequence[FallbackMatcher]):
        self.matchers = list(matchers)

    def locate(self, text, change, candidates=None):
        for matcher in self.matchers:
            span = matcher.locate(text, change, candidates)
            if span is not None:
                logger.debug(f"Fallback matcher '{matcher.name}' located the edit")
                return span
        return None


def create_fallback_matcher(config: PatchConfig, llm: BaseLLM | None = None) -> FallbackMatcher | None:
    """Build the fallback matcher named by ``config.fallback``.

    Raises:
        ValueError: If an LLM-backed matcher is requested without an LLM
    """
    if config.fallback == "none":
        return None
    if config.fallback == "fuzzy":
        return FuzzyFallbackMatcher(config.fuzzy_threshold)
    if llm is None:
        raise ValueError(f"Fallback matcher '{config.fallback}' requires an LLM")
    llm_matcher = LLMFallbackMatcher(llm, config.llm_context_chars)
    if config.fallback == "llm":
        return llm_matcher
    return ChainedFallbackMatcher([FuzzyFallbackMatcher(config.fuzzy_threshold), llm_matcher])
