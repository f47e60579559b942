#!/usr/bin/env python
"""
Sync Job Worker

Standalone process that claims and runs queued sync jobs. Run it next to
the API (with SYNC_WORKER_ENABLED=false there) when batches are large or
several API instances share one database.

Run with:
    python worker.py

Or with environment:
    WORKER_POLL_INTERVAL=10 WORKER_BATCH_SIZE=5 python worker.py
"""

import os
import sys
import time
import logging
import signal

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from fleet_sync.config import settings
from fleet_sync.database import SessionLocal
from fleet_sync.services.sync_jobs import SyncJobProcessor
from fleet_sync.utils.logging_config import setup_logging

logger = logging.getLogger("fleet_sync.worker")

RUNNING = True


def signal_handler(signum, frame):
    """Handle shutdown signals gracefully"""
    global RUNNING
    logger.info("Received shutdown signal, finishing current job...")
    RUNNING = False


def process_jobs(db, batch_size: int):
    """Process pending sync jobs"""
    processor = SyncJobProcessor(db)
    success = 0
    failed = 0

    for job in processor.get_pending_jobs(limit=batch_size):
        if not RUNNING:
            break
        try:
            if processor.process_job(job):
                success += 1
            else:
                failed += 1
        except Exception as e:
            logger.error(f"Error processing sync job {job.id}: {e}")
            db.rollback()
            failed += 1

    return success, failed


def run_worker():
    """Main worker loop"""
    poll_interval = settings.worker_poll_interval
    batch_size = settings.worker_batch_size

    logger.info("Starting Sync Job Worker")
    logger.info(f"Poll interval: {poll_interval}s, batch size: {batch_size}")

    cycle = 0
    while RUNNING:
        cycle += 1
        start_time = time.time()

        db = SessionLocal()
        try:
            success, failed = process_jobs(db, batch_size)
            if success + failed > 0:
                logger.info(
                    f"Cycle {cycle}: sync jobs {success} done / {failed} failed | "
                    f"{time.time() - start_time:.2f}s"
                )
        except Exception as e:
            logger.error(f"Critical error in cycle {cycle}: {e}")
        finally:
            db.close()

        # Sleep until next poll
        if RUNNING:
            time.sleep(poll_interval)

    logger.info("Worker shutdown complete")


if __name__ == "__main__":
    setup_logging(level=settings.log_level, json_format=settings.log_json, include_uvicorn=False)

    # Register signal handlers for graceful shutdown
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        run_worker()
    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")
    except Exception as e:
        logger.critical(f"Worker crashed: {e}")
        sys.exit(1)
