"""
Spreadsheet integration routes: account load/disconnect, per-channel config editing,
staged fetch / commit and auto-sync toggle.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from sheetsync.database import get_db
from sheetsync.models import ChannelKind
from sheetsync.http.requests import (
    CreateSpreadsheetRequest,
    FileIdRequest,
    MappingRequest,
    SheetNameRequest,
)
from sheetsync.services.sheet_integration import SheetIntegration, SheetIntegrationRegistry, get_registry
from sheetsync.services.sync_history import get_sync_history

logger = logging.getLogger(__name__)
router = APIRouter()

# errorKind -> HTTP status for failed results
ERROR_STATUS = {
    "validation_error": 400,
    "config_incomplete": 400,
    "mapping_incomplete": 400,
    "not_linked": 404,
    "unsaved_channel": 409,
    "channel_busy": 409,
    "stale_batch": 409,
    "fetch_failure": 502,
    "commit_failure": 502,
    "remote_error": 502,
}


def _respond(result: dict) -> dict:
    """Return successful results as-is; raise failed ones as HTTPException."""
    if result.get("success"):
        return result
    status_code = ERROR_STATUS.get(result.get("errorKind"), 400)
    raise HTTPException(status_code=status_code, detail=result)


async def _integration(account_id: str, registry: SheetIntegrationRegistry) -> SheetIntegration:
    return await registry.get(account_id)


@router.get("/{account_id}")
async def get_integration(
    account_id: str,
    registry: SheetIntegrationRegistry = Depends(get_registry),
):
    """Snapshot of the account's channels, validation, staged rows and column options"""
    integration = await _integration(account_id, registry)
    return integration.snapshot()


@router.post("/{account_id}/refresh")
async def refresh_integration(
    account_id: str,
    registry: SheetIntegrationRegistry = Depends(get_registry),
):
    """Reload saved channel configs from the remote API (drops staged rows)"""
    integration = await _integration(account_id, registry)
    if not integration.loaded:
        raise HTTPException(status_code=404, detail={"success": False, "errorKind": "not_linked", "message": "No spreadsheet account is linked."})
    return _respond(await integration.load())


@router.delete("/{account_id}")
async def disconnect_account(
    account_id: str,
    registry: SheetIntegrationRegistry = Depends(get_registry),
):
    """Unlink the spreadsheet account and reset both channels"""
    integration = await _integration(account_id, registry)
    result = _respond(await integration.disconnect())
    registry.remove(account_id)
    return result


@router.post("/{account_id}/spreadsheet")
async def create_spreadsheet(
    account_id: str,
    request: CreateSpreadsheetRequest,
    registry: SheetIntegrationRegistry = Depends(get_registry),
):
    """Create a new spreadsheet file and point both channels at it"""
    integration = await _integration(account_id, registry)
    return _respond(await integration.create_spreadsheet_file(request.title))


@router.get("/{account_id}/history")
async def list_sync_history(
    account_id: str,
    channel: Optional[ChannelKind] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """Sync run history for the account, newest first"""
    return {"runs": get_sync_history(db, account_id, channel=channel, limit=limit)}


@router.put("/{account_id}/{channel}/file")
async def edit_file_id(
    account_id: str,
    channel: ChannelKind,
    request: FileIdRequest,
    registry: SheetIntegrationRegistry = Depends(get_registry),
):
    """Set the spreadsheet id; validation runs once edits pause"""
    integration = await _integration(account_id, registry)
    return integration.edit_file_id(channel, request.fileId)


@router.put("/{account_id}/{channel}/sheet")
async def select_sheet(
    account_id: str,
    channel: ChannelKind,
    request: SheetNameRequest,
    registry: SheetIntegrationRegistry = Depends(get_registry),
):
    integration = await _integration(account_id, registry)
    return await integration.select_sheet(channel, request.sheetName)


@router.put("/{account_id}/{channel}/mapping")
async def set_mapping(
    account_id: str,
    channel: ChannelKind,
    request: MappingRequest,
    registry: SheetIntegrationRegistry = Depends(get_registry),
):
    """Map a system field to a spreadsheet column (empty column clears it)"""
    integration = await _integration(account_id, registry)
    return integration.set_mapping(channel, request.field, request.column)


@router.get("/{account_id}/{channel}/columns")
async def column_options(
    account_id: str,
    channel: ChannelKind,
    registry: SheetIntegrationRegistry = Depends(get_registry),
):
    integration = await _integration(account_id, registry)
    return integration.column_options(channel)


@router.post("/{account_id}/{channel}/save")
async def save_channel(
    account_id: str,
    channel: ChannelKind,
    registry: SheetIntegrationRegistry = Depends(get_registry),
):
    """Create or update the channel's saved configuration"""
    integration = await _integration(account_id, registry)
    return _respond(await integration.save(channel))


@router.post("/{account_id}/{channel}/fetch")
async def fetch_rows(
    account_id: str,
    channel: ChannelKind,
    registry: SheetIntegrationRegistry = Depends(get_registry),
):
    """Stage rows from the channel cursor for review"""
    integration = await _integration(account_id, registry)
    return _respond(await integration.fetch(channel))


@router.post("/{account_id}/{channel}/commit")
async def commit_rows(
    account_id: str,
    channel: ChannelKind,
    registry: SheetIntegrationRegistry = Depends(get_registry),
):
    """Create orders from the staged rows and advance the cursor"""
    integration = await _integration(account_id, registry)
    return _respond(await integration.commit(channel))


@router.post("/{account_id}/{channel}/discard")
async def discard_rows(
    account_id: str,
    channel: ChannelKind,
    registry: SheetIntegrationRegistry = Depends(get_registry),
):
    integration = await _integration(account_id, registry)
    return _respond(integration.discard(channel))


@router.post("/{account_id}/{channel}/auto-sync")
async def toggle_auto_sync(
    account_id: str,
    channel: ChannelKind,
    registry: SheetIntegrationRegistry = Depends(get_registry),
):
    integration = await _integration(account_id, registry)
    return _respond(await integration.toggle_auto_sync(channel))


@router.delete("/{account_id}/{channel}")
async def delete_channel(
    account_id: str,
    channel: ChannelKind,
    registry: SheetIntegrationRegistry = Depends(get_registry),
):
    """Delete the channel's saved configuration"""
    integration = await _integration(account_id, registry)
    return _respond(await integration.delete_channel(channel))
