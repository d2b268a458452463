"""Apply search/replace change requests to a live document tree.

Every change moves through an explicit state machine::

    SEARCHING -> APPLIED | NOT_FOUND | AMBIGUOUS
    NOT_FOUND / AMBIGUOUS -> FALLBACK (overwrite only) -> APPLIED | FAILED
    APPLIED -> NOOP when the located text already reads as the replacement

Match failures are recorded per change and never stop the batch. An edit
that would leave the tree invalid is rolled back and halts the batch.
"""

import copy
from dataclasses import dataclass, field
import logging
from typing import Iterable, List, Mapping

from docpipe.domain.changes import ApplyResult, ChangeOutcome, ChangeRequest, MatchState
from docpipe.domain.nodes import Document, validate_tree
from docpipe.errors import AmbiguousMatchError, MatchError, NoMatchError, StructuralError
from docpipe.logging import get_logger, log_with_context
from docpipe.patch.editing import replace_span
from docpipe.patch.fallback import FallbackMatcher, Span
from docpipe.patch.positions import PositionIndex
from docpipe.pipeline.config import AMBIGUITY_FIRST, PatchConfig

logger = get_logger(__name__)

# ids of trees with a batch in flight
_ACTIVE: set[int] = set()


def is_patch_in_flight(tree: Document) -> bool:
    """True while a patch batch is mutating ``tree``."""
    return id(tree) in _ACTIVE


@dataclass
class _Attempt:
    change: ChangeRequest
    state: MatchState = MatchState.SEARCHING
    span: Span | None = None
    candidates: List[int] = field(default_factory=list)
    used_fallback: bool = False
    error: MatchError | None = None
    done: bool = False

    def fail(self, error: MatchError, state: MatchState | None = None) -> None:
        self.error = error
        if state is not None:
            self.state = state
        self.done = True


class ContentPatcher:
    """Applies ordered change requests to a document tree."""

    def __init__(self, fallback: FallbackMatcher | None = None, config: PatchConfig | None = None):
        self.fallback = fallback
        self.config = config or PatchConfig()
        self._handlers = {
            MatchState.SEARCHING: self._search,
            MatchState.NOT_FOUND: self._not_found,
            MatchState.AMBIGUOUS: self._ambiguous,
            MatchState.FALLBACK: self._fall_back,
        }

    def apply_changes(
        self,
        tree: Document,
        changes: Iterable[ChangeRequest | Mapping],
    ) -> ApplyResult:
        """Apply ``changes`` to ``tree`` in order.

        Args:
            tree: Live document tree, mutated in place
            changes: Change requests (or dicts with ``search``/``replace``/``overwrite``)

        Returns:
            ApplyResult for the batch

        Raises:
            StructuralError: If ``tree`` is not a document or a batch is
                already in flight on it
        """
        requests = [
            change if isinstance(change, ChangeRequest) else ChangeRequest.model_validate(change)
            for change in changes
        ]

        if not isinstance(tree, Document):
            raise StructuralError(f"Expected a document root, got {type(tree).__name__}")
        if is_patch_in_flight(tree):
            raise StructuralError("A patch batch is already in flight for this document")

        if not requests:
            return ApplyResult(success=True)

        try:
            validate_tree(tree)
        except StructuralError as e:
            logger.warning(f"Refusing to patch an invalid document: {e}")
            return ApplyResult(
                success=False,
                requested_changes=len(requests),
                aborted=True,
                error=str(e),
            )

        _ACTIVE.add(id(tree))
        try:
            return self._run(tree, requests)
        finally:
            _ACTIVE.discard(id(tree))

    def _run(self, tree: Document, requests: List[ChangeRequest]) -> ApplyResult:
        outcomes: List[ChangeOutcome] = []
        index: PositionIndex | None = None
        abort_error: str | None = None

        for position, change in enumerate(requests):
            if index is None:
                index = PositionIndex.build(tree)

            attempt = _Attempt(change)
            while not attempt.done and attempt.state in self._handlers:
                self._handlers[attempt.state](attempt, index)

            # Located text already reads as the replacement
            if (
                attempt.state is MatchState.APPLIED
                and index.text[attempt.span.start : attempt.span.end] == change.replace
            ):
                attempt.state = MatchState.NOOP

            if attempt.state is MatchState.APPLIED:
                try:
                    self._edit(tree, index, attempt.span, change.replace)
                except StructuralError as e:
                    abort_error = str(e)
                    outcomes.append(
                        ChangeOutcome(
                            index=position,
                            state=MatchState.FAILED,
                            used_fallback=attempt.used_fallback,
                            error=abort_error,
                        )
                    )
                    logger.warning(f"Change {position} rolled back, stopping batch: {e}")
                    break
                index = None

            if attempt.error is not None:
                logger.warning(f"Change {position} not applied: {attempt.error}")

            outcomes.append(
                ChangeOutcome(
                    index=position,
                    state=attempt.state,
                    used_fallback=attempt.used_fallback,
                    error=str(attempt.error) if attempt.error is not None else None,
                )
            )

        succeeded = sum(1 for outcome in outcomes if outcome.succeeded)
        aborted = abort_error is not None
        errors = [outcome.error for outcome in outcomes if outcome.error]

        result = ApplyResult(
            success=not aborted and succeeded == len(requests),
            applied_changes=succeeded,
            used_fallback=any(outcome.used_fallback for outcome in outcomes),
            error=abort_error or (errors[0] if errors else None),
            requested_changes=len(requests),
            aborted=aborted,
            outcomes=outcomes,
        )
        log_with_context(
            logger,
            logging.INFO,
            result.summary(),
            status=result.status,
            used_fallback=result.used_fallback,
        )
        return result

    def _search(self, attempt: _Attempt, index: PositionIndex) -> None:
        change = attempt.change
        if not change.search:
            if index.text.strip():
                attempt.fail(
                    AmbiguousMatchError("ambiguous match: empty search on a non-empty document"),
                    MatchState.AMBIGUOUS,
                )
                return
            # Empty document: the replacement becomes its content
            end = index.blocks[-1].end if index.blocks else 0
            attempt.span = Span(0, end)
            attempt.state = MatchState.APPLIED
            attempt.done = True
            return

        attempt.candidates = index.find_all(change.search)
        if len(attempt.candidates) == 1:
            start = attempt.candidates[0]
            attempt.span = Span(start, start + len(change.search))
            attempt.state = MatchState.APPLIED
            attempt.done = True
        elif not attempt.candidates:
            attempt.state = MatchState.NOT_FOUND
        else:
            attempt.state = MatchState.AMBIGUOUS

    def _not_found(self, attempt: _Attempt, index: PositionIndex) -> None:
        error = NoMatchError(f"{NoMatchError.reason}: {attempt.change.search!r}")
        if not attempt.change.overwrite or self.fallback is None:
            attempt.fail(error)
            return
        attempt.error = error
        attempt.state = MatchState.FALLBACK

    def _ambiguous(self, attempt: _Attempt, index: PositionIndex) -> None:
        change = attempt.change
        count = len(attempt.candidates)
        error = AmbiguousMatchError(
            f"{AmbiguousMatchError.reason}: {change.search!r} occurs {count} times",
            occurrences=count,
        )
        if not change.overwrite:
            attempt.fail(error)
            return

        if self.config.ambiguity_policy == AMBIGUITY_FIRST:
            start = attempt.candidates[0]
            attempt.span = Span(start, start + len(change.search))
            attempt.used_fallback = True
            attempt.state = MatchState.APPLIED
            attempt.done = True
            return

        if self.fallback is None:
            attempt.fail(error)
            return
        attempt.error = error
        attempt.state = MatchState.FALLBACK

    def _fall_back(self, attempt: _Attempt, index: PositionIndex) -> None:
        attempt.used_fallback = True
        try:
            span = self.fallback.locate(index.text, attempt.change, attempt.candidates or None)
        except RuntimeError as e:
            attempt.fail(
                type(attempt.error)(f"{attempt.error} (fallback failed: {e})"),
                MatchState.FAILED,
            )
            return

        if span is None or not 0 <= span.start <= span.end <= len(index.text):
            attempt.fail(
                type(attempt.error)(f"{attempt.error} (fallback could not locate the edit)"),
                MatchState.FAILED,
            )
            return

        attempt.span = span
        attempt.error = None
        attempt.state = MatchState.APPLIED
        attempt.done = True

    def _edit(self, tree: Document, index: PositionIndex, span: Span, replacement: str) -> None:
        snapshot = copy.deepcopy(tree.children)
        try:
            replace_span(tree, index, span.start, span.end, replacement)
            validate_tree(tree)
        except Exception as e:
            tree.children[:] = snapshot
            if isinstance(e, StructuralError):
                raise
            raise StructuralError(f"Edit at {span.start}..{span.end} failed: {e}") from e


def apply_changes(
    tree: Document,
    changes: Iterable[ChangeRequest | Mapping],
    fallback: FallbackMatcher | None = None,
    config: PatchConfig | None = None,
) -> ApplyResult:
    """Apply ``changes`` to ``tree`` with a one-off ContentPatcher."""
    return ContentPatcher(fallback=fallback, config=config).apply_changes(tree, changes)
