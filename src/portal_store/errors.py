"""Exception hierarchy for portal_store.

Read paths (reconciliation, sync) log and degrade instead of raising; the
exceptions below surface from mutating paths and the lock layer, where
callers need a definite "operation failed, retry later" signal.
"""


class PortalStoreError(Exception):
    """Base class for all portal_store errors."""


class PrimaryStoreUnavailable(PortalStoreError):
    """The primary store root could not be reached."""

    def __init__(self, root: str) -> None:
        super().__init__(f"Primary store is not reachable: {root}")
        self.root = root


class LedgerFormatError(PortalStoreError):
    """A ledger file is structurally unusable (e.g. a header naming one column twice)."""


class DocumentFormatError(PortalStoreError):
    """A JSON document could not be decoded or has the wrong shape."""


class LockError(PortalStoreError):
    """Base class for lock acquisition and locked-operation failures."""


class LockNotAcquiredError(LockError):
    """A cross-process lock marker stayed in place through every retry."""

    def __init__(self, path: str, attempts: int) -> None:
        super().__init__(
            f"Failed to acquire file lock after {attempts} attempts: {path}"
        )
        self.path = path
        self.attempts = attempts


class OperationFailedError(LockError):
    """A serialized operation failed on every attempt.

    The last underlying exception is available as ``last_error`` and as
    ``__cause__``.
    """

    def __init__(
        self, key: str, attempts: int, last_error: BaseException | None
    ) -> None:
        super().__init__(
            f"Operation failed after {attempts} attempts for key: {key}"
        )
        self.key = key
        self.attempts = attempts
        self.last_error = last_error
