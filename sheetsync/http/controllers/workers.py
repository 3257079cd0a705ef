"""
Background worker status routes
"""
import logging
from fastapi import APIRouter, Depends

from sheetsync.services.sheet_integration import SheetIntegrationRegistry, get_registry
from sheetsync.workers.scheduler import get_workers_status
from sheetsync.workers.sheets_auto_sync_worker import run_sheets_auto_sync_worker

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/status")
async def workers_status():
    """Status of all background workers"""
    return {"workers": get_workers_status()}


@router.post("/sheets-auto-sync/run")
async def run_auto_sync_now(registry: SheetIntegrationRegistry = Depends(get_registry)):
    """Run one auto-sync cycle immediately for every loaded account"""
    return await run_sheets_auto_sync_worker(registry)
