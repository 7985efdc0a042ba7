"""Exception taxonomy for sync runs and mutation operators."""

from __future__ import annotations

from skillssync.sync.models import SyncConflict


class SyncEngineError(Exception):
    """Base class for every error raised by the sync engine."""


class ConflictError(SyncEngineError):
    """Raised when independent real copies of the same skill disagree."""

    def __init__(self, conflicts: list[SyncConflict]) -> None:
        self.conflicts = conflicts
        super().__init__(f"Detected {len(conflicts)} skill conflict(s)")


class MigrationError(SyncEngineError):
    """Raised when moving canonical content to the preferred root fails."""

    def __init__(self, skill_key: str, reason: str) -> None:
        self.skill_key = skill_key
        self.reason = reason
        super().__init__(f"Migration failed for {skill_key}: {reason}")


class OperationError(SyncEngineError):
    """Raised when a mutation precondition fails. Nothing on disk has changed."""

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        super().__init__(message)


class ConfirmationRequiredError(OperationError):
    def __init__(self, operation: str) -> None:
        super().__init__(operation, f"{operation} requires confirmed=true")


class ProtectedPathError(OperationError):
    def __init__(self, operation: str) -> None:
        super().__init__(operation, f"{operation} blocked for protected path")


class OutsideAllowedRootsError(OperationError):
    def __init__(self, operation: str) -> None:
        super().__init__(operation, f"{operation} blocked: target outside allowed roots")


class TargetMissingError(OperationError):
    def __init__(self, operation: str, what: str = "target") -> None:
        super().__init__(operation, f"{operation} {what} does not exist")


class TargetExistsError(OperationError):
    def __init__(self, operation: str, path: str) -> None:
        self.path = path
        super().__init__(operation, f"{operation} blocked: target already exists: {path}")


class InvalidOperationError(OperationError):
    """Raised for a record in the wrong state for the requested operation."""


class RenameNoOpError(OperationError):
    def __init__(self) -> None:
        super().__init__("rename", "rename is a no-op: generated key is unchanged")
