"""
Sheets Auto-Sync Worker

Periodic trigger for channels with auto-sync enabled: for every loaded account,
each due channel runs one fetch + commit cycle through its AutoSyncScheduler,
sharing the cursor with manual syncs.

Accounts listed in AUTO_SYNC_ACCOUNT_IDS are loaded by the worker itself, so
their channels keep syncing after a restart. Any other account is covered only
once an HTTP request has loaded it into the registry.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Any, Iterable, Optional

from sheetsync.config import settings
from sheetsync.services.sheet_integration import SheetIntegrationRegistry, registry as default_registry

logger = logging.getLogger(__name__)


class SheetsAutoSyncWorker:
    """Worker for running auto-sync cycles on every due sheet channel."""

    def __init__(
        self,
        registry: Optional[SheetIntegrationRegistry] = None,
        account_ids: Optional[Iterable[str]] = None,
    ):
        self.name = "sheets_auto_sync_worker"
        self.registry = registry or default_registry
        self.account_ids = list(settings.AUTO_SYNC_ACCOUNT_IDS if account_ids is None else account_ids)

    async def preload_accounts(self) -> None:
        """Load configured accounts that are not in the registry yet."""
        for account_id in self.account_ids:
            integration = await self.registry.get(account_id)
            if not integration.loaded:
                logger.warning("Auto-sync could not load sheets account %s", account_id)

    async def run_sync_cycle(self) -> Dict[str, Any]:
        """
        Run a single auto-sync cycle for all loaded accounts.

        Returns:
            Summary of committed rows and failed channels
        """
        await self.preload_accounts()
        integrations = self.registry.loaded()
        total_channels = 0
        total_rows = 0
        failed_channels = []

        for integration in integrations:
            for kind in integration.auto_sync.due_channels():
                total_channels += 1
                try:
                    result = await integration.auto_sync.run_cycle(kind)
                except Exception as e:
                    logger.exception("Auto-sync %s/%s crashed: %s", integration.account_id, kind.value, e)
                    result = {"success": False, "message": str(e)}

                if result.get("success"):
                    total_rows += result.get("rows", 0) if result.get("status") == "committed" else 0
                else:
                    failed_channels.append({
                        "account_id": integration.account_id,
                        "channel": kind.value,
                        "error_kind": result.get("errorKind"),
                        "error": result.get("message"),
                    })
                    logger.warning(
                        "Auto-sync %s/%s failed: %s", integration.account_id, kind.value, result.get("message")
                    )

        return {
            "success": len(failed_channels) == 0,
            "message": f"Processed {total_channels} channels across {len(integrations)} accounts: {total_rows} rows committed",
            "total_channels": total_channels,
            "total_rows": total_rows,
            "failed_channels": failed_channels,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


async def run_sheets_auto_sync_worker(registry: Optional[SheetIntegrationRegistry] = None) -> Dict[str, Any]:
    """
    Entry point for the sheets auto-sync worker.

    Returns:
        Sync result
    """
    worker = SheetsAutoSyncWorker(registry)
    logger.info("Starting sheets auto-sync cycle")
    result = await worker.run_sync_cycle()
    if result["success"]:
        logger.info(f"Sheets auto-sync completed: {result['message']}")
    else:
        logger.error(f"Sheets auto-sync had failures: {result['message']}")
    return result
