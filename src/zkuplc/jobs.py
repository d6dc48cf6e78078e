"""In-memory job manager for prove requests submitted with ``?async=true``."""
from __future__ import annotations

import logging
import threading
import time
import uuid
from collections import deque
from dataclasses import dataclass
from queue import Empty, Queue
from typing import Any, Callable, Dict, Optional

LOGGER = logging.getLogger(__name__)

FINISHED_STATUSES = frozenset({"succeeded", "failed", "canceled"})

JobHandler = Callable[[Dict[str, Any]], "tuple[dict[str, Any], int]"]


@dataclass
class JobMetadata:
    job_id: str
    description: str
    status: str
    enqueued_at: float | None
    started_at: float | None
    finished_at: float | None
    http_status: int | None
    result: dict[str, Any] | None
    error: str | None
    location: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "jobId": self.job_id,
            "description": self.description,
            "status": self.status,
            "enqueuedAt": self.enqueued_at,
            "startedAt": self.started_at,
            "finishedAt": self.finished_at,
            "result": self.result,
            "statusCode": self.http_status,
            "error": self.error,
            "location": self.location,
        }


class JobManager:
    """Runs submitted handlers one at a time on a daemon thread.

    Proving parallelism is bounded by the prove pool, not here; this thread
    only waits on it. Finished jobs age out of a bounded history; queued and
    running jobs are never evicted, so the history may exceed its bound while
    more than ``history_size`` jobs are pending.
    """

    def __init__(self, history_size: int = 200) -> None:
        self._jobs: Dict[str, JobMetadata] = {}
        self._history_size = max(1, history_size)
        self._history: deque[str] = deque()
        self._queue: Queue[tuple[str, JobHandler, dict[str, Any]]] = Queue()
        self._lock = threading.Lock()
        self._worker = threading.Thread(target=self._loop, name="zkuplc-jobs", daemon=True)
        self._worker.start()

    def submit(self, description: str, handler: JobHandler, payload: dict[str, Any]) -> JobMetadata:
        job_id = uuid.uuid4().hex
        record = JobMetadata(
            job_id=job_id,
            description=description,
            status="queued",
            enqueued_at=time.time(),
            started_at=None,
            finished_at=None,
            http_status=None,
            result=None,
            error=None,
            location=f"/api/jobs/{job_id}",
        )
        with self._lock:
            self._jobs[job_id] = record
            self._history.appendleft(job_id)
            self._evict_finished()
        self._queue.put((job_id, handler, payload))
        return record

    def get(self, job_id: str) -> Optional[JobMetadata]:
        with self._lock:
            return self._jobs.get(job_id)

    def list(self, limit: int = 50) -> list[JobMetadata]:
        with self._lock:
            ids = list(self._history)[: max(1, limit)]
            return [self._jobs[jid] for jid in ids if jid in self._jobs]

    def cancel(self, job_id: str) -> bool:
        with self._lock:
            job = self._jobs.get(job_id)
            if not job or job.status != "queued":
                return False
            job.status = "canceled"
            job.finished_at = time.time()
            job.error = "canceled before start"
            self._evict_finished()
            return True

    def _evict_finished(self) -> None:
        """Drop the oldest finished jobs until the history fits. Caller holds the lock."""
        excess = len(self._history) - self._history_size
        if excess <= 0:
            return
        for job_id in reversed(list(self._history)):
            if excess == 0:
                break
            job = self._jobs.get(job_id)
            if job is not None and job.status not in FINISHED_STATUSES:
                continue
            self._history.remove(job_id)
            self._jobs.pop(job_id, None)
            excess -= 1

    def join(self) -> None:
        """Block until every submitted job has been processed."""
        self._queue.join()

    def _loop(self) -> None:
        while True:
            try:
                job_id, handler, payload = self._queue.get(timeout=0.5)
            except Empty:
                continue
            try:
                with self._lock:
                    job = self._jobs.get(job_id)
                    if not job or job.status == "canceled":
                        continue
                    job.status = "running"
                    job.started_at = time.time()
                self._run(job, handler, payload)
            finally:
                self._queue.task_done()

    def _run(self, job: JobMetadata, handler: JobHandler, payload: dict[str, Any]) -> None:
        try:
            body, status = handler(payload)
        except Exception as exc:
            LOGGER.exception("Job %s failed", job.job_id)
            with self._lock:
                job.status = "failed"
                job.error = str(exc)
                job.finished_at = time.time()
                self._evict_finished()
            return
        with self._lock:
            job.result = body
            job.http_status = status
            job.status = "succeeded" if 200 <= status < 400 else "failed"
            if job.status == "failed" and isinstance(body, dict):
                job.error = body.get("error")
            job.finished_at = time.time()
            self._evict_finished()


__all__ = ["JobManager", "JobMetadata"]
