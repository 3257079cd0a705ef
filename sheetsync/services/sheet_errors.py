"""
Error kinds surfaced by the sheet sync components.

Components raise these internally and convert them to result dicts at their
boundary, so callers only ever see {"success": False, "errorKind": ..., "message": ...}.
"""
from typing import Any, Optional


class SheetSyncError(Exception):
    kind = "sheet_sync_error"
    retryable = False

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_result(self, **extra: Any) -> dict:
        result = {
            "success": False,
            "errorKind": self.kind,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.details:
            result["details"] = self.details
        result.update(extra)
        return result


class ValidationError(SheetSyncError):
    """Spreadsheet unreachable, or it has no sheets."""
    kind = "validation_error"


class ConfigIncompleteError(SheetSyncError):
    """File id or sheet name missing, or the file failed validation."""
    kind = "config_incomplete"


class MappingIncompleteError(SheetSyncError):
    kind = "mapping_incomplete"

    def __init__(self, missing_labels: list[str]):
        super().__init__(
            "Map the required fields: " + ", ".join(missing_labels),
            details={"missing": list(missing_labels)},
        )
        self.missing_labels = list(missing_labels)


class UnsavedChannelError(SheetSyncError):
    kind = "unsaved_channel"

    def __init__(self, message: str = "Save the column mapping for this channel first."):
        super().__init__(message)


class ChannelBusyError(SheetSyncError):
    kind = "channel_busy"
    retryable = True


class StaleBatchError(SheetSyncError):
    """Staged rows no longer start at the channel cursor."""
    kind = "stale_batch"
    retryable = True


class FetchFailure(SheetSyncError):
    kind = "fetch_failure"
    retryable = True


class CommitFailure(SheetSyncError):
    kind = "commit_failure"
    retryable = True


class RemoteOperationError(SheetSyncError):
    """A remote write (save, toggle, delete, create file, disconnect) failed."""
    kind = "remote_error"
    retryable = True
