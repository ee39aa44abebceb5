"""
Background worker that drains the import queue one path at a time.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from booklib.dependencies import get_library_service, get_queue_client
from booklib.queue import ImportQueue
from booklib.service import LibraryService
from booklib.types import ImportReport

logger = logging.getLogger(__name__)


def process_next(
    *,
    service: Optional[LibraryService] = None,
    queue: Optional[ImportQueue] = None,
    block: bool = True,
    timeout: Optional[int] = None,
) -> Optional[ImportReport]:
    """
    Pop one import job and run it. Returns the report, or None when the
    queue was empty.
    """
    service = service or get_library_service()
    queue = queue or get_queue_client()

    job = queue.dequeue(block=block, timeout=timeout)
    if job is None:
        return None

    logger.info(
        "Starting queued import of %s (requested by %s, waited %.1fs)",
        job.path,
        job.requested_by or "unknown",
        max(0.0, time.time() - job.enqueued_at),
    )
    try:
        return service.import_path(job.path)
    except Exception:
        logger.exception("Queued import of %s failed", job.path)
        return ImportReport(failed=[job.path])


def run_once(
    *,
    service: Optional[LibraryService] = None,
    queue: Optional[ImportQueue] = None,
    block: bool = True,
    timeout: Optional[int] = None,
) -> Optional[ImportReport]:
    """
    One worker iteration: sync offline books if the backend came back (also
    when a previous job was the call that noticed), then run one queued job.
    """
    service = service or get_library_service()
    queue = queue or get_queue_client()
    service.sync_after_reconnect()
    return process_next(service=service, queue=queue, block=block, timeout=timeout)


def run_loop(poll_interval_seconds: float = 2.0) -> None:
    """
    Blocking loop for running under systemd/supervisor. Imports run strictly
    one after another.
    """
    service = get_library_service()
    queue = get_queue_client()
    # Books left offline by an earlier run.
    if service.is_backend_connected():
        service.sync_offline()
    while True:
        report = run_once(
            service=service, queue=queue, block=True, timeout=int(poll_interval_seconds)
        )
        if report is None:
            time.sleep(poll_interval_seconds)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run_loop()
