"""
Spreadsheet integration for one linked account.

Wires the channel store, validator, header inspector, mapping editor, cursor engine
and auto-sync flag together and exposes the operations the HTTP layer calls.
Every operation returns a result dict; remote failures never escape as exceptions.
"""
import asyncio
import logging
from typing import Callable, Optional

from sheetsync.config import settings
from sheetsync.database import SessionLocal
from sheetsync.models import ChannelKind
from sheetsync.services.auto_sync import AutoSyncScheduler
from sheetsync.services.header_inspector import HeaderInspector
from sheetsync.services.mapping_editor import ORDER_FIELDS, MappingEditor
from sheetsync.services.sheet_channels import ChannelConfigStore
from sheetsync.services.sheet_errors import (
    ChannelBusyError,
    ConfigIncompleteError,
    RemoteOperationError,
    UnsavedChannelError,
)
from sheetsync.services.sheet_validator import SpreadsheetValidator
from sheetsync.services.sheets_api import SheetsApiError, get_client
from sheetsync.services.sync_cursor import SyncCursorEngine
from sheetsync.services.sync_history import SyncHistory

logger = logging.getLogger(__name__)


class SheetIntegration:
    def __init__(self, api, account_id: str, history: Optional[SyncHistory] = None, debounce_seconds: Optional[float] = None):
        self.api = api
        self.account_id = account_id
        self.account: Optional[dict] = None
        self.loaded = False
        self.store = ChannelConfigStore()
        self.validator = SpreadsheetValidator(
            api, account_id, debounce_seconds=debounce_seconds, on_valid=self._on_file_valid
        )
        self.inspector = HeaderInspector(api, account_id, self.store)
        self.editor = MappingEditor(api, account_id, self.store, self.validator)
        self.engine = SyncCursorEngine(api, account_id, self.store, history=history)
        self.auto_sync = AutoSyncScheduler(api, account_id, self.store, self.engine)

    async def _on_file_valid(self, kind: ChannelKind) -> None:
        if self.store.get(kind).sheet_name.strip():
            await self.inspector.fetch_headers(kind)

    def _reset_channel(self, kind: Optional[ChannelKind] = None) -> None:
        self.store.reset(kind)
        self.validator.reset(kind)
        self.inspector.clear(kind)
        self.engine.reset(kind)

    # --- Account ---

    async def load(self) -> dict:
        """(Re)load the linked account and its saved channel configs from the remote API."""
        try:
            account = await self.api.get_account(self.account_id)
        except SheetsApiError as e:
            logger.warning("Loading sheets account %s failed: %s", self.account_id, e)
            return RemoteOperationError(f"Loading the spreadsheet account failed: {e}").to_result()

        self._reset_channel()
        if not account:
            self.account = None
            self.loaded = False
            return {"success": False, "errorKind": "not_linked", "message": "No spreadsheet account is linked.", "retryable": False}

        self.account = {k: account.get(k) for k in ("id", "email", "name")}
        saved = self.store.load(account.get("sheets") or [])
        self.loaded = True
        if saved:
            await asyncio.gather(*(self.inspector.fetch_headers(k) for k in saved))
        logger.info("Loaded sheets account %s with %s saved channel(s)", self.account_id, len(saved))
        return {"success": True, "snapshot": self.snapshot()}

    async def disconnect(self) -> dict:
        if any(self.engine.is_committing(k) for k in ChannelKind):
            return ChannelBusyError("Wait for the running commit to finish before disconnecting.").to_result()
        try:
            ok = await self.api.delete_account(self.account_id)
        except SheetsApiError as e:
            logger.warning("Disconnecting sheets account %s failed: %s", self.account_id, e)
            return RemoteOperationError(f"Disconnecting failed: {e}").to_result()
        if not ok:
            return RemoteOperationError("Disconnecting failed.").to_result()
        self._reset_channel()
        self.account = None
        self.loaded = False
        logger.info("Disconnected sheets account %s", self.account_id)
        return {"success": True}

    async def create_spreadsheet_file(self, title: str) -> dict:
        """Create a spreadsheet file, point both channels at it and validate it right away."""
        title = (title or "").strip()
        if not title:
            return ConfigIncompleteError("Enter a file name.").to_result()
        try:
            created = await self.api.create_spreadsheet_file(self.account_id, title)
        except SheetsApiError as e:
            logger.warning("Creating spreadsheet file failed account=%s: %s", self.account_id, e)
            return RemoteOperationError(f"Creating the file failed: {e}").to_result()

        file_id = created["id"]
        self.store.set_file_id(ChannelKind.NEW, file_id)
        self.store.set_sheet_name(ChannelKind.NEW, settings.CREATED_NEW_SHEET_NAME)
        self.store.set_file_id(ChannelKind.ABANDONED, file_id)
        self.store.set_sheet_name(ChannelKind.ABANDONED, settings.CREATED_ABANDONED_SHEET_NAME)
        self.inspector.clear()
        await asyncio.gather(*(self.validator.validate_now(k, file_id) for k in ChannelKind))
        logger.info("Created spreadsheet file %s (%s) for account %s", file_id, created.get("name"), self.account_id)
        return {"success": True, "file": created, "snapshot": self.snapshot()}

    # --- Channel editing ---

    def edit_file_id(self, kind: ChannelKind, file_id: str) -> dict:
        kind = ChannelKind(kind)
        self.store.set_file_id(kind, file_id)
        self.inspector.clear(kind)
        self.validator.file_id_changed(kind, file_id)
        return self.channel_snapshot(kind)

    async def select_sheet(self, kind: ChannelKind, sheet_name: str) -> dict:
        kind = ChannelKind(kind)
        self.store.set_sheet_name(kind, sheet_name)
        self.inspector.clear(kind)
        if self.validator.state(kind).is_valid and (sheet_name or "").strip():
            await self.inspector.fetch_headers(kind)
        return self.channel_snapshot(kind)

    def set_mapping(self, kind: ChannelKind, field: str, column: Optional[str]) -> dict:
        self.editor.set_mapping(kind, field, column)
        return self.channel_snapshot(kind)

    async def save(self, kind: ChannelKind) -> dict:
        kind = ChannelKind(kind)
        if self.engine.is_committing(kind):
            return ChannelBusyError("Wait for the running commit to finish before saving.").to_result()
        with self.engine.config_write(kind):
            return await self.editor.save(kind)

    async def delete_channel(self, kind: ChannelKind) -> dict:
        kind = ChannelKind(kind)
        channel = self.store.get(kind)
        if not channel.persisted_id:
            return UnsavedChannelError("This channel has no saved configuration.").to_result()
        if self.engine.is_committing(kind):
            return ChannelBusyError("A commit is in progress for this channel.").to_result()
        try:
            with self.engine.config_write(kind):
                await self.api.delete_channel_config(self.account_id, channel.persisted_id)
        except SheetsApiError as e:
            logger.warning("Deleting %s sheet config failed account=%s: %s", kind.value, self.account_id, e)
            return RemoteOperationError(f"Deleting the sheet configuration failed: {e}").to_result()
        self._reset_channel(kind)
        logger.info("Deleted %s sheet config for account %s", kind.value, self.account_id)
        return {"success": True, "channel": self.channel_snapshot(kind)}

    # --- Sync ---

    async def fetch(self, kind: ChannelKind) -> dict:
        return await self.engine.fetch(kind)

    async def commit(self, kind: ChannelKind) -> dict:
        return await self.engine.commit(kind)

    def discard(self, kind: ChannelKind) -> dict:
        return self.engine.discard(kind)

    async def toggle_auto_sync(self, kind: ChannelKind) -> dict:
        return await self.auto_sync.toggle(kind)

    # --- Projections ---

    def column_options(self, kind: ChannelKind) -> dict:
        return {
            "options": self.inspector.column_options(kind),
            "fallback": self.inspector.uses_fallback(kind),
        }

    def channel_snapshot(self, kind: ChannelKind) -> dict:
        kind = ChannelKind(kind)
        return {
            "config": self.store.get(kind).to_dict(),
            "validation": self.validator.state(kind).to_dict(),
            "sync": self.engine.to_dict(kind),
            "columns": self.column_options(kind),
        }

    def snapshot(self) -> dict:
        return {
            "accountId": self.account_id,
            "linked": self.loaded,
            "account": self.account,
            "fields": ORDER_FIELDS,
            "channels": {k.value: self.channel_snapshot(k) for k in ChannelKind},
        }


class SheetIntegrationRegistry:
    """One SheetIntegration per linked account, created and loaded on first use."""

    def __init__(self, api_factory: Callable = get_client, history: Optional[SyncHistory] = None, debounce_seconds: Optional[float] = None):
        self.api_factory = api_factory
        self.history = history
        self.debounce_seconds = debounce_seconds
        self.integrations: dict[str, SheetIntegration] = {}

    async def get(self, account_id: str) -> SheetIntegration:
        integration = self.integrations.get(account_id)
        if integration is None:
            integration = SheetIntegration(
                self.api_factory(), account_id, history=self.history, debounce_seconds=self.debounce_seconds
            )
            self.integrations[account_id] = integration
        if not integration.loaded:
            await integration.load()
        return integration

    def loaded(self) -> list[SheetIntegration]:
        return [i for i in self.integrations.values() if i.loaded]

    def remove(self, account_id: str) -> None:
        self.integrations.pop(account_id, None)


# Global registry instance
registry = SheetIntegrationRegistry(history=SyncHistory(SessionLocal))


def get_registry() -> SheetIntegrationRegistry:
    """FastAPI dependency for the integration registry."""
    return registry
