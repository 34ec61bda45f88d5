"""
Job worker: the polling loop around the job store and executor.

One cycle:
1. cancel pending jobs whose conversation already reached a terminal status
2. claim a batch of due jobs, execute them one by one, repeat until a claim
   comes back empty

Any number of worker processes may run concurrently; leases keep them off
each other's jobs.
"""
import logging
import time
from datetime import timedelta

from django.conf import settings

from triage.models.job import JobStatus
from triage.services.job_store import (
    cancel_pending_jobs_for_closed_conversations,
    claim_due_jobs,
    mark_job_retry_or_failed,
)
from triage.utils import utcnow

logger = logging.getLogger(__name__)


class JobProcessingStats:
    def __init__(self):
        self.closed_conversation_cancellations = 0
        self.claimed = 0
        self.sent = 0
        self.canceled = 0
        self.retried = 0
        self.failed = 0

    def __str__(self):
        return (
            f"canceled={self.closed_conversation_cancellations} locked={self.claimed} sent={self.sent} "
            f"canceled_jobs={self.canceled} retried={self.retried} failed={self.failed}"
        )


class JobWorker:
    def __init__(
        self,
        executor,
        worker_id: str | None = None,
        batch_size: int | None = None,
        lease_timeout: timedelta | None = None,
        retry_delay: timedelta | None = None,
        poll_interval: float | None = None,
        clock=None,
    ):
        self.executor = executor
        self.clock = clock or utcnow
        self.worker_id = worker_id or settings.WORKER_ID
        self.batch_size = batch_size or settings.WORKER_BATCH_SIZE
        self.lease_timeout = lease_timeout or timedelta(seconds=settings.WORKER_LOCK_TIMEOUT_SECONDS)
        # A zero delay would let a failing job be re-claimed within the same cycle
        self.retry_delay = max(
            retry_delay if retry_delay is not None else timedelta(seconds=settings.JOB_RETRY_DELAY_SECONDS),
            timedelta(seconds=1),
        )
        self.poll_interval = poll_interval if poll_interval is not None else settings.WORKER_POLL_INTERVAL_SECONDS

    def run_cycle(self) -> JobProcessingStats:
        # The clock is read per claim and per job: a lease must start when the
        # batch is claimed, and jobs that fall due mid-cycle are drained too.
        started_at = self.clock()
        stats = JobProcessingStats()
        stats.closed_conversation_cancellations = cancel_pending_jobs_for_closed_conversations()

        while True:
            jobs = claim_due_jobs(self.worker_id, self.batch_size, self.lease_timeout, now=self.clock())
            if not jobs:
                break
            stats.claimed += len(jobs)

            for job in jobs:
                try:
                    result = self.executor.execute(job, now=self.clock())
                except Exception as e:
                    logger.exception("Job %s (%s) raised during execution", job.id, job.type)
                    if mark_job_retry_or_failed(job, e, self.retry_delay, now=self.clock()) == "failed":
                        stats.failed += 1
                    else:
                        stats.retried += 1
                    continue

                if result == JobStatus.SENT:
                    stats.sent += 1
                else:
                    stats.canceled += 1

        logger.info("[worker %s] %s %s", self.worker_id, started_at.isoformat(), stats)
        return stats

    def run_forever(self):
        logger.info(
            "Worker %s polling every %ss (batch=%d, lease=%s)",
            self.worker_id, self.poll_interval, self.batch_size, self.lease_timeout,
        )
        while True:
            try:
                self.run_cycle()
            except Exception:
                logger.exception("Worker %s cycle failed", self.worker_id)
            time.sleep(self.poll_interval)
