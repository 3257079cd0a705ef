"""
Worker Scheduler Configuration

Registers and schedules background workers; currently the sheets auto-sync worker.
"""

import logging
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Optional

from sheetsync.config import settings
from sheetsync.workers.sheets_auto_sync_worker import run_sheets_auto_sync_worker

logger = logging.getLogger(__name__)

CHECK_INTERVAL_SEC = 30


class WorkerScheduler:
    """Scheduler for running background workers at specified intervals."""

    def __init__(self):
        self.workers = {
            "sheets_auto_sync": {
                "func": run_sheets_auto_sync_worker,
                "interval": settings.AUTO_SYNC_INTERVAL_SEC,
                "last_run": None,
                "last_result": None,
                "enabled": settings.AUTO_SYNC_WORKER_ENABLED,
                "running": False,
            }
        }
        self.running = False
        self._task: Optional[asyncio.Task] = None

    async def run_worker(self, worker_name: str, worker_config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Run a single worker and log results.

        Args:
            worker_name: Name of the worker
            worker_config: Worker configuration

        Returns:
            Worker result
        """
        worker_config["running"] = True
        try:
            logger.info(f"Starting worker: {worker_name}")
            result = await worker_config["func"]()

            if result.get("success", False):
                logger.info(f"Worker {worker_name} completed: {result.get('message', 'No message')}")
            else:
                logger.error(f"Worker {worker_name} failed: {result.get('message', 'Unknown error')}")

        except Exception as e:
            logger.exception(f"Worker {worker_name} crashed: {e}")
            result = {
                "success": False,
                "message": f"Worker crashed: {str(e)}",
                "timestamp": datetime.now(timezone.utc).isoformat()
            }
        finally:
            worker_config["running"] = False
            worker_config["last_run"] = datetime.now(timezone.utc)

        worker_config["last_result"] = result
        return result

    async def start_scheduler(self, first_delay: float = 0):
        """Start the background worker scheduler."""
        self.running = True
        logger.info("🚀 Worker scheduler started")
        if first_delay:
            await asyncio.sleep(first_delay)

        while self.running:
            current_time = datetime.now(timezone.utc)

            for worker_name, worker_config in self.workers.items():
                # A worker never overlaps with its own previous run
                if not worker_config["enabled"] or worker_config["running"]:
                    continue

                last_run = worker_config["last_run"]
                interval = worker_config["interval"]

                if last_run is None or (current_time - last_run).total_seconds() >= interval:
                    await self.run_worker(worker_name, worker_config)

            await asyncio.sleep(min(CHECK_INTERVAL_SEC, max(1, self._shortest_interval())))

    def _shortest_interval(self) -> int:
        intervals = [w["interval"] for w in self.workers.values() if w["enabled"]]
        return min(intervals) if intervals else CHECK_INTERVAL_SEC

    def stop_scheduler(self):
        """Stop the background worker scheduler."""
        self.running = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        logger.info("⏹️ Worker scheduler stopped")

    def get_worker_status(self) -> Dict[str, Any]:
        """Get current status of all workers."""
        status = {}

        for worker_name, worker_config in self.workers.items():
            last_run = worker_config["last_run"]
            next_run = None

            if last_run:
                next_run = last_run + timedelta(seconds=worker_config["interval"])

            status[worker_name] = {
                "enabled": worker_config["enabled"],
                "last_run": last_run.isoformat() if last_run else None,
                "next_run": next_run.isoformat() if next_run else None,
                "interval_seconds": worker_config["interval"],
                "last_result": worker_config["last_result"],
                "status": "running" if self.running else "stopped"
            }

        return status


# Global scheduler instance
scheduler = WorkerScheduler()


def start_background_workers():
    """Start the background worker scheduler. Must be called from a running event loop."""
    if scheduler._task is not None and not scheduler._task.done():
        return
    scheduler._task = asyncio.create_task(
        scheduler.start_scheduler(first_delay=settings.AUTO_SYNC_FIRST_DELAY_SEC)
    )
    logger.info("✅ Background workers started successfully")


def stop_background_workers():
    """Stop the background worker scheduler."""
    scheduler.stop_scheduler()


def get_workers_status() -> Dict[str, Any]:
    """Get status of all background workers."""
    return scheduler.get_worker_status()
