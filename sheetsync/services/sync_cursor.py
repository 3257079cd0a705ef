"""
Cursor-driven row sync: fetch rows from the channel cursor into a staged batch,
then commit the batch to order creation and advance the cursor.

The cursor is the only record of which rows are already ingested:
- it moves only after the backend reports a successful commit
- it moves by the accepted row count, never more than the rows submitted
- a failed commit leaves cursor and staged batch untouched, so a retry (or a
  re-fetch from the same cursor) submits the same rows again
Fetch and commit never overlap on one channel, and a commit never overlaps a
remote write of the same channel config.
"""
import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sheetsync.models import ChannelKind, SyncPhase, SyncRunStatus, SyncRunType
from sheetsync.services.sheet_channels import ChannelConfigStore, StagedBatch
from sheetsync.services.sheet_errors import (
    ChannelBusyError,
    CommitFailure,
    FetchFailure,
    StaleBatchError,
    UnsavedChannelError,
)
from sheetsync.services.sheets_api import SheetsApiError
from sheetsync.services.sync_history import SyncHistory

logger = logging.getLogger(__name__)


def accepted_row_count(response: dict, submitted: int) -> int:
    """
    Rows the backend reports as ingested, bounded by what was submitted.
    Falls back to the submitted count when the backend does not report one.
    """
    reported = response.get("rowsCreated")
    if isinstance(reported, bool) or not isinstance(reported, int):
        return submitted
    if reported < 0 or reported > submitted:
        logger.warning("Ignoring out-of-range rowsCreated=%s for batch of %s", reported, submitted)
        return submitted
    return reported


class SyncCursorEngine:
    def __init__(self, api, account_id: str, store: ChannelConfigStore, history: Optional[SyncHistory] = None):
        self.api = api
        self.account_id = account_id
        self.store = store
        self.history = history
        self.phases: dict[ChannelKind, SyncPhase] = {k: SyncPhase.IDLE for k in ChannelKind}
        self.staged: dict[ChannelKind, Optional[StagedBatch]] = {k: None for k in ChannelKind}
        self._fetch_tokens: dict[ChannelKind, int] = {k: 0 for k in ChannelKind}
        self._config_writes: dict[ChannelKind, int] = {k: 0 for k in ChannelKind}

    def phase(self, kind: ChannelKind) -> SyncPhase:
        return self.phases[ChannelKind(kind)]

    def staged_batch(self, kind: ChannelKind) -> Optional[StagedBatch]:
        return self.staged[ChannelKind(kind)]

    def is_committing(self, kind: ChannelKind) -> bool:
        return self.phases[ChannelKind(kind)] == SyncPhase.COMMITTING

    @contextmanager
    def config_write(self, kind: ChannelKind) -> Iterator[None]:
        """
        Mark a remote write of the channel config (save, auto-sync toggle, delete) as in flight.
        The written lastRowSynced comes from the cursor, so commits wait until it lands.
        """
        kind = ChannelKind(kind)
        self._config_writes[kind] += 1
        try:
            yield
        finally:
            self._config_writes[kind] -= 1

    def _start_run(self, kind, run_type, start_row, config_id=None) -> Optional[str]:
        if self.history is None:
            return None
        return self.history.start_run(self.account_id, kind, run_type, start_row, config_id=config_id)

    def _finish_run(self, run_id, status, **kwargs) -> None:
        if self.history is not None:
            self.history.finish_run(run_id, status, **kwargs)

    async def fetch(self, kind: ChannelKind, run_type: SyncRunType = SyncRunType.FETCH) -> dict:
        """
        Replace the staged batch with rows from the cursor to the end of the sheet.
        A failed fetch keeps whatever batch was staged before.
        """
        kind = ChannelKind(kind)
        if self.phases[kind] == SyncPhase.COMMITTING:
            return ChannelBusyError("A commit is in progress for this channel; fetch again once it finishes.").to_result()

        channel = self.store.get(kind)
        if not channel.is_configured:
            return {"success": True, "status": "noop", "message": "Channel has no spreadsheet configured.", "batch": None}

        self._fetch_tokens[kind] += 1
        token = self._fetch_tokens[kind]
        self.phases[kind] = SyncPhase.FETCHING
        start_row = channel.cursor
        run_id = self._start_run(kind, run_type, start_row, channel.persisted_id)

        try:
            rows = await self.api.get_rows(
                self.account_id, channel.file_id.strip(), channel.sheet_name.strip(), start_row
            )
        except SheetsApiError as e:
            logger.warning("Fetching %s rows failed account=%s start=%s: %s", kind.value, self.account_id, start_row, e)
            if token == self._fetch_tokens[kind]:
                self.phases[kind] = SyncPhase.STAGED if self.staged[kind] else SyncPhase.IDLE
            self._finish_run(run_id, SyncRunStatus.FAILED, error=str(e))
            return FetchFailure(f"Fetching rows failed: {e}").to_result()

        if token != self._fetch_tokens[kind]:
            self._finish_run(run_id, SyncRunStatus.FAILED, error="superseded by a newer fetch")
            return {"success": False, "status": "superseded", "message": "A newer fetch replaced this one.", "batch": None}

        if len(rows) <= 1:
            self.staged[kind] = None
            self.phases[kind] = SyncPhase.IDLE
            self._finish_run(run_id, SyncRunStatus.EMPTY, message="No new rows")
            return {"success": True, "status": "empty", "message": "No new data.", "batch": None}

        batch = StagedBatch(header=list(rows[0]), rows=[list(r) for r in rows[1:]], start_row=start_row)
        self.staged[kind] = batch
        self.phases[kind] = SyncPhase.STAGED
        self._finish_run(run_id, SyncRunStatus.SUCCESS, rows_count=len(batch), message=f"Fetched {len(batch)} rows")
        logger.info("Staged %s %s rows from row %s (account %s)", len(batch), kind.value, start_row, self.account_id)
        return {
            "success": True,
            "status": "staged",
            "message": f"Fetched {len(batch)} rows.",
            "batch": batch.to_dict(),
        }

    async def commit(self, kind: ChannelKind, run_type: SyncRunType = SyncRunType.COMMIT) -> dict:
        """Submit the staged batch for order creation; advance the cursor on success."""
        kind = ChannelKind(kind)
        phase = self.phases[kind]
        if phase == SyncPhase.COMMITTING:
            return ChannelBusyError("A commit is already in progress for this channel.").to_result()
        if phase == SyncPhase.FETCHING:
            return ChannelBusyError("Rows are still being fetched for this channel.").to_result()
        if self._config_writes[kind]:
            return ChannelBusyError("Channel settings are being saved; commit again once that finishes.").to_result()

        channel = self.store.get(kind)
        if not channel.persisted_id:
            return UnsavedChannelError().to_result()

        batch = self.staged[kind]
        if batch is None or len(batch) == 0:
            return {"success": True, "status": "noop", "message": "Nothing staged to commit.", "cursor": channel.cursor}

        if batch.start_row != channel.cursor:
            self.staged[kind] = None
            self.phases[kind] = SyncPhase.IDLE
            return StaleBatchError("Staged rows no longer match the sync position; fetch again.").to_result()

        self.phases[kind] = SyncPhase.COMMITTING
        cursor_before = channel.cursor
        submitted = len(batch)
        run_id = self._start_run(kind, run_type, batch.start_row, channel.persisted_id)
        try:
            try:
                response = await self.api.commit_rows(self.account_id, channel.persisted_id, batch.start_row)
            except SheetsApiError as e:
                logger.warning("Commit of %s %s rows failed account=%s: %s", submitted, kind.value, self.account_id, e)
                self._finish_run(run_id, SyncRunStatus.FAILED, error=str(e))
                return CommitFailure(f"Saving orders failed: {e}. Try again.").to_result(cursor=cursor_before)

            if not response.get("status"):
                self._finish_run(run_id, SyncRunStatus.FAILED, error="rejected by backend")
                return CommitFailure("The order backend rejected the batch. Try again.").to_result(cursor=cursor_before)

            # Channel reset (delete / reload) while the commit was outstanding
            if self.store.get(kind) is not channel:
                self._finish_run(run_id, SyncRunStatus.SUCCESS, rows_count=submitted, message="channel reset during commit")
                return {"success": True, "status": "committed", "rows": submitted, "cursor": self.store.get(kind).cursor}

            accepted = accepted_row_count(response, submitted)
            cursor = self.store.advance_cursor(kind, accepted)
            self.staged[kind] = None
            self._finish_run(
                run_id,
                SyncRunStatus.SUCCESS,
                rows_count=accepted,
                cursor_after=cursor,
                message=f"Committed {accepted} of {submitted} rows",
            )
            logger.info(
                "Committed %s/%s %s rows for account %s; cursor %s -> %s",
                accepted, submitted, kind.value, self.account_id, cursor_before, cursor,
            )
            return {
                "success": True,
                "status": "committed",
                "rows": accepted,
                "submitted": submitted,
                "partial": accepted < submitted,
                "cursor": cursor,
                "message": f"Saved {accepted} orders.",
            }
        finally:
            if self.phases[kind] == SyncPhase.COMMITTING:
                self.phases[kind] = SyncPhase.STAGED if self.staged[kind] else SyncPhase.IDLE

    def discard(self, kind: ChannelKind) -> dict:
        kind = ChannelKind(kind)
        if self.phases[kind] == SyncPhase.COMMITTING:
            return ChannelBusyError("A commit is in progress for this channel.").to_result()
        self.reset(kind)
        return {"success": True, "status": "discarded"}

    def reset(self, kind: Optional[ChannelKind] = None) -> None:
        """Drop staged rows and ignore any in-flight fetch."""
        kinds = [ChannelKind(kind)] if kind is not None else list(ChannelKind)
        for k in kinds:
            self._fetch_tokens[k] += 1
            self.staged[k] = None
            if self.phases[k] != SyncPhase.COMMITTING:
                self.phases[k] = SyncPhase.IDLE

    def to_dict(self, kind: ChannelKind) -> dict:
        kind = ChannelKind(kind)
        batch = self.staged[kind]
        return {
            "phase": self.phases[kind].value,
            "batch": batch.to_dict() if batch else None,
        }
