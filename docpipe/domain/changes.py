"""Change requests proposed against a live document and their results."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, computed_field


class ChangeRequest(BaseModel):
    """A single search/replace edit proposed for a document."""

    search: str = Field(default="", description="Exact text to find in the document")
    replace: str = Field(..., description="Replacement text; empty string deletes")
    overwrite: bool = Field(
        default=False,
        description="Apply via the fallback matcher when no unique exact match exists",
    )


class MatchState(str, Enum):
    """States a change request moves through while being applied."""

    SEARCHING = "searching"
    APPLIED = "applied"
    NOOP = "noop"
    NOT_FOUND = "not_found"
    AMBIGUOUS = "ambiguous"
    FALLBACK = "fallback"
    FAILED = "failed"


class ChangeOutcome(BaseModel):
    """What happened to one change request."""

    index: int = Field(..., ge=0, description="Position of the change in the batch")
    state: MatchState
    used_fallback: bool = False
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state in (MatchState.APPLIED, MatchState.NOOP)


STATUS_NOTHING_TO_APPLY = "nothing_to_apply"
STATUS_NONE_APPLIED = "none_applied"
STATUS_PARTIAL = "partial"
STATUS_COMPLETE = "complete"
STATUS_ABORTED = "aborted"


class ApplyResult(BaseModel):
    """Outcome of one batch of change requests."""

    success: bool
    applied_changes: int = Field(default=0, ge=0)
    used_fallback: bool = False
    error: Optional[str] = None
    requested_changes: int = Field(default=0, ge=0)
    aborted: bool = False
    outcomes: List[ChangeOutcome] = Field(default_factory=list)

    @computed_field
    @property
    def status(self) -> str:
        """User-facing summary of the batch."""
        if self.requested_changes == 0:
            return STATUS_NOTHING_TO_APPLY
        if self.aborted:
            return STATUS_ABORTED
        if self.success:
            return STATUS_COMPLETE
        if self.applied_changes == 0:
            return STATUS_NONE_APPLIED
        return STATUS_PARTIAL

    def summary(self) -> str:
        """Human readable one-liner for the batch outcome."""
        if self.status == STATUS_NOTHING_TO_APPLY:
            return "Nothing to apply"
        if self.status == STATUS_NONE_APPLIED:
            return "No changes could be applied"
        if self.status == STATUS_ABORTED:
            return (
                f"Stopped after {self.applied_changes} of {self.requested_changes} "
                f"changes: {self.error}"
            )
        return f"{self.applied_changes} of {self.requested_changes} changes applied"
