"""Explicit results for best-effort secondary writes.

A mirror write to the local store or an append to the sync log must not
change the primary control flow when it fails, but the failure must still
be visible to callers and tests.  Such writes return a ``WriteOutcome``
instead of raising.
"""

from __future__ import annotations

from pydantic import BaseModel


class WriteOutcome(BaseModel):
    """Result of one best-effort write.

    Attributes:
        target: Store label and path that was written (or would have been).
        attempted: ``False`` when the write was not tried (e.g. store offline).
        success: ``True`` only if the write completed.
        error: Error message when ``success`` is ``False``.
    """

    target: str
    attempted: bool = True
    success: bool
    error: str | None = None

    model_config = {"frozen": True}

    @classmethod
    def ok(cls, target: str) -> "WriteOutcome":
        return cls(target=target, success=True)

    @classmethod
    def failed(cls, target: str, error: BaseException | str) -> "WriteOutcome":
        return cls(target=target, success=False, error=str(error))

    @classmethod
    def skipped(cls, target: str, reason: str) -> "WriteOutcome":
        return cls(target=target, attempted=False, success=False, error=reason)
