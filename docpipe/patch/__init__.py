"""Search/replace patching of document trees."""

from docpipe.patch.fallback import (
    ChainedFallbackMatcher,
    FallbackMatcher,
    FuzzyFallbackMatcher,
    LLMFallbackMatcher,
    Span,
    create_fallback_matcher,
)
from docpipe.patch.patcher import ContentPatcher, apply_changes, is_patch_in_flight
from docpipe.patch.positions import BlockSpan, PositionIndex

__all__ = [
    "BlockSpan",
    "ChainedFallbackMatcher",
    "ContentPatcher",
    "FallbackMatcher",
    "FuzzyFallbackMatcher",
    "LLMFallbackMatcher",
    "PositionIndex",
    "Span",
    "apply_changes",
    "create_fallback_matcher",
    "is_patch_in_flight",
]
