"""
Import job queue.

Jobs are small JSON records (path, requesting user, enqueue time). Redis
holds them in production; the in-memory queue serves tests and single
process runs.
"""

from __future__ import annotations

import json
import logging
import time
from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Deque, Optional, Protocol

import redis
from redis import exceptions as redis_exceptions

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImportJob:
    path: str
    requested_by: Optional[str] = None
    enqueued_at: float = field(default_factory=time.time)

    def dumps(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def loads(cls, raw: str | bytes) -> "ImportJob":
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        data = json.loads(raw)
        return cls(
            path=data["path"],
            requested_by=data.get("requested_by"),
            enqueued_at=data.get("enqueued_at", 0.0),
        )


class ImportQueue(Protocol):
    def enqueue(self, job: ImportJob) -> None:
        ...

    def dequeue(self, *, block: bool = True, timeout: int | None = None) -> Optional[ImportJob]:
        ...

    def pending(self) -> int:
        ...


class InMemoryImportQueue:
    """FIFO of jobs kept in process memory."""

    def __init__(self):
        self.jobs: Deque[ImportJob] = deque()

    def enqueue(self, job: ImportJob) -> None:
        self.jobs.append(job)

    def dequeue(self, *, block: bool = True, timeout: int | None = None) -> Optional[ImportJob]:
        return self.jobs.popleft() if self.jobs else None

    def pending(self) -> int:
        return len(self.jobs)


class RedisImportQueue:
    """Jobs pushed with RPUSH and taken with BLPOP/LPOP from one Redis list."""

    def __init__(self, url: str, queue_key: str = "booklib:imports"):
        self.url = url
        self.queue_key = queue_key
        self.client = redis.Redis.from_url(url)

    def enqueue(self, job: ImportJob) -> None:
        self.client.rpush(self.queue_key, job.dumps())

    def dequeue(self, *, block: bool = True, timeout: int | None = None) -> Optional[ImportJob]:
        try:
            if block:
                popped = self.client.blpop(self.queue_key, timeout=timeout or 0)
                raw = popped[1] if popped else None
            else:
                raw = self.client.lpop(self.queue_key)
        except redis_exceptions.ConnectionError:
            logger.warning("Lost connection to Redis at %s; reconnecting", self.url)
            self.client = redis.Redis.from_url(self.url)
            return None
        if raw is None:
            return None
        try:
            return ImportJob.loads(raw)
        except (ValueError, KeyError):
            logger.error("Dropping malformed import job: %r", raw)
            return None

    def pending(self) -> int:
        return int(self.client.llen(self.queue_key))
