"""
Auto-sync flag per channel.

The flag is persisted through the same update path as a config save. The periodic
trigger (sheetsync.workers.scheduler) calls run_cycle, which is a plain fetch
followed by commit on the shared SyncCursorEngine, so manual and automatic syncs
always read and advance the same cursor.
"""
import logging

from sheetsync.models import ChannelKind, SyncRunType
from sheetsync.services.sheet_channels import ChannelConfigStore
from sheetsync.services.sheet_errors import ChannelBusyError, RemoteOperationError, UnsavedChannelError
from sheetsync.services.sheets_api import SheetsApiError
from sheetsync.services.sync_cursor import SyncCursorEngine

logger = logging.getLogger(__name__)


class AutoSyncScheduler:
    def __init__(self, api, account_id: str, store: ChannelConfigStore, engine: SyncCursorEngine):
        self.api = api
        self.account_id = account_id
        self.store = store
        self.engine = engine

    async def toggle(self, kind: ChannelKind) -> dict:
        kind = ChannelKind(kind)
        channel = self.store.get(kind)
        if not channel.persisted_id:
            return UnsavedChannelError("Save the column mapping before enabling auto-sync.").to_result(
                autoSync=channel.auto_sync_enabled
            )

        if self.engine.is_committing(kind):
            return ChannelBusyError("Wait for the running commit to finish before changing auto-sync.").to_result(
                autoSync=channel.auto_sync_enabled
            )

        new_state = not channel.auto_sync_enabled
        try:
            with self.engine.config_write(kind):
                await self.api.update_channel_config(
                    self.account_id, channel.persisted_id, channel.to_content(auto_sync=new_state)
                )
        except SheetsApiError as e:
            logger.warning("Auto-sync toggle failed for %s account=%s: %s", kind.value, self.account_id, e)
            return RemoteOperationError("Changing auto-sync failed.").to_result(autoSync=channel.auto_sync_enabled)

        channel.auto_sync_enabled = new_state
        logger.info("Auto-sync %s for %s (account %s)", "enabled" if new_state else "disabled", kind.value, self.account_id)
        return {"success": True, "autoSync": new_state}

    def due_channels(self) -> list[ChannelKind]:
        return [
            k for k in ChannelKind
            if self.store.get(k).auto_sync_enabled and self.store.get(k).persisted_id
        ]

    async def run_cycle(self, kind: ChannelKind) -> dict:
        """One periodic tick for a channel: fetch from the cursor, then commit what was staged."""
        kind = ChannelKind(kind)
        channel = self.store.get(kind)
        if not channel.persisted_id:
            return UnsavedChannelError().to_result()
        if not channel.auto_sync_enabled:
            return {"success": True, "status": "disabled"}

        fetched = await self.engine.fetch(kind, run_type=SyncRunType.AUTO)
        if not fetched.get("success") or fetched.get("status") != "staged":
            return fetched
        return await self.engine.commit(kind, run_type=SyncRunType.AUTO)
