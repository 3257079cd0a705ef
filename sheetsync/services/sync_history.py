"""
Sync run history: one SheetSyncRun per fetch / commit / auto cycle, with log lines.
Recording is best-effort; a history write failure is logged and never fails a sync.
"""
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sheetsync.models import (
    ChannelKind,
    LogLevel,
    SheetSyncLog,
    SheetSyncRun,
    SyncRunStatus,
    SyncRunType,
)

logger = logging.getLogger(__name__)


class SyncHistory:
    """Writes run records through short-lived sessions from session_factory."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def start_run(
        self,
        account_id: str,
        kind: ChannelKind,
        run_type: SyncRunType,
        start_row: int,
        config_id: Optional[str] = None,
    ) -> Optional[str]:
        db = None
        try:
            db = self.session_factory()
            run = SheetSyncRun(
                account_id=account_id,
                channel=kind,
                config_id=config_id,
                run_type=run_type,
                status=SyncRunStatus.RUNNING,
                start_row=start_row,
                cursor_before=start_row,
                started_at=datetime.now(timezone.utc),
            )
            db.add(run)
            db.commit()
            return run.id
        except SQLAlchemyError as e:
            logger.warning("Could not record sync run start: %s", e)
            if db:
                db.rollback()
            return None
        finally:
            if db:
                db.close()

    def finish_run(
        self,
        run_id: Optional[str],
        status: SyncRunStatus,
        rows_count: int = 0,
        cursor_after: Optional[int] = None,
        message: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        if not run_id:
            return
        db = None
        try:
            db = self.session_factory()
            run = db.query(SheetSyncRun).filter(SheetSyncRun.id == run_id).first()
            if not run:
                return
            run.status = status
            run.rows_count = rows_count
            run.cursor_after = cursor_after if cursor_after is not None else run.cursor_before
            run.error_message = error
            run.finished_at = datetime.now(timezone.utc)
            db.add(SheetSyncLog(
                sync_run_id=run.id,
                level=LogLevel.ERROR if status == SyncRunStatus.FAILED else LogLevel.INFO,
                message=message or error or status.value,
                raw_payload={"error": error} if error else None,
            ))
            db.commit()
        except SQLAlchemyError as e:
            logger.warning("Could not record sync run finish: %s", e)
            if db:
                db.rollback()
        finally:
            if db:
                db.close()


def get_sync_history(
    db: Session,
    account_id: str,
    channel: Optional[ChannelKind] = None,
    limit: int = 50,
) -> list:
    """Get sync run history for an account, newest first"""
    query = db.query(SheetSyncRun).filter(SheetSyncRun.account_id == account_id)
    if channel is not None:
        query = query.filter(SheetSyncRun.channel == ChannelKind(channel))
    runs = query.order_by(SheetSyncRun.started_at.desc()).limit(limit).all()

    return [
        {
            "id": run.id,
            "channel": run.channel.value,
            "configId": run.config_id,
            "runType": run.run_type.value,
            "status": run.status.value,
            "startRow": run.start_row,
            "rowsCount": run.rows_count,
            "cursorBefore": run.cursor_before,
            "cursorAfter": run.cursor_after,
            "startedAt": run.started_at.isoformat() if run.started_at else None,
            "finishedAt": run.finished_at.isoformat() if run.finished_at else None,
            "errorMessage": run.error_message,
        }
        for run in runs
    ]
