"""
=============================================================================
TRANSLATION BRIDGE
=============================================================================

Connects synchronous request/response connections to an engine that
runs one job at a time on another thread.

=============================================================================
THE PENDING SLOT
=============================================================================

    ┌──────────┐  submit()   ┌───────────────────────┐  complete(id)  ┌──────────┐
    │   IDLE   │ ──────────► │  PENDING(job, conn)   │ ─────────────► │   IDLE   │
    └──────────┘             └───────────────────────┘                └──────────┘
                                 │            ▲
                                 └─ submit() ─┘  (SUPERSEDE: replace the job)

At most one job is pending system-wide. submit() parks the connection
(its receive loop stops reading) and publishes the job on the JobChannel.
complete() checks the job id, writes the response and resumes the
connection so its next request is read.

Jobs are immutable and the slot is swapped by a single assignment under
the bridge lock, so nobody sees a half-installed job.

=============================================================================
ADMISSION POLICIES
=============================================================================

What happens when submit() finds a job already pending:

    SUPERSEDE (default)
        The new job replaces the pending one and gets a fresh job id so
        the engine starts a new session. The replaced connection is NOT
        notified and stays parked until the server stops. Under a burst
        of clients the last submitter wins and earlier ones starve.

    QUEUE
        The new job waits in a FIFO of at most max_queued_jobs. When the
        pending job completes the next one is promoted. A full FIFO makes
        submit() raise BridgeBusyError (answered with 429). Every
        admitted job is eventually run, so nobody starves.

=============================================================================
STALE COMPLETIONS
=============================================================================

A superseded job may still finish inside the engine. Its completion
carries the old id, which no longer matches the pending job, so it is
dropped:

    submit(A) → id a1 pending
    submit(B) → id b2 pending           (A superseded)
    complete(a1, ...)  → ignored
    complete(b2, ...)  → 200 to B's connection

=============================================================================
"""

import logging
import threading
import uuid
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Deque, List, Optional

from ..core.connection import Connection
from ..core.stats import ServerStats
from ..http.response import ResponseWriter
from ..http.status_codes import HTTPStatus
from ..text import normalize_newlines
from .channel import JobChannel, JobSpec
from .engines import TranslationOutcome


logger = logging.getLogger(__name__)


class AdmissionPolicy(Enum):
    SUPERSEDE = "supersede"
    QUEUE = "queue"


class BridgeState(Enum):
    IDLE = "idle"
    PENDING = "pending"


class BridgeBusyError(Exception):
    """Raised by submit() in QUEUE mode when the wait queue is full."""


@dataclass(frozen=True)
class TranslationJob:
    """One unit of translation work and the connection waiting for it."""

    job_id: str
    text: str
    source_language: str
    target_language: str
    connection: Connection = field(repr=False, compare=False)

    def to_spec(self) -> JobSpec:
        """The part of the job the engine gets to see."""
        return JobSpec(
            job_id=self.job_id,
            text=self.text,
            source_language=self.source_language,
            target_language=self.target_language,
        )


class TranslationBridge:
    """
    Single-slot correlation between connections and the engine.

    Args:
        writer: Serializes the 200/500 response onto the connection.
        resume: Called with the connection once its answer is written;
            hands the connection back for its next request.
        stats: Shared counters; last_response is recorded here.
        channel: Where pending jobs are published for the engine.
        policy: What submit() does while a job is pending.
        max_queued_jobs: FIFO depth in QUEUE mode.
    """

    def __init__(
        self,
        writer: ResponseWriter,
        resume: Callable[[Connection], object],
        stats: Optional[ServerStats] = None,
        channel: Optional[JobChannel] = None,
        policy: AdmissionPolicy = AdmissionPolicy.SUPERSEDE,
        max_queued_jobs: int = 8,
    ):
        self.writer = writer
        self.resume = resume
        self.stats = stats or ServerStats()
        self.channel = channel or JobChannel()
        self.policy = AdmissionPolicy(policy)
        self.max_queued_jobs = max_queued_jobs

        self._lock = threading.Lock()
        self._pending: Optional[TranslationJob] = None
        self._queue: Deque[TranslationJob] = deque()

    # =========================================================================
    # VIEWS
    # =========================================================================

    @property
    def pending(self) -> Optional[TranslationJob]:
        with self._lock:
            return self._pending

    @property
    def state(self) -> BridgeState:
        with self._lock:
            return BridgeState.IDLE if self._pending is None else BridgeState.PENDING

    @property
    def queued(self) -> List[TranslationJob]:
        with self._lock:
            return list(self._queue)

    # =========================================================================
    # SUBMIT
    # =========================================================================

    def submit(
        self,
        text: str,
        source_language: str,
        target_language: str,
        connection: Connection,
    ) -> TranslationJob:
        """
        Hand a job to the engine and park its connection.

        Returns:
            The new TranslationJob (pending, or queued in QUEUE mode).

        Raises:
            BridgeBusyError: QUEUE mode with a full wait queue. The
                connection is not parked in that case.
        """
        job = TranslationJob(
            job_id=uuid.uuid4().hex,
            text=text,
            source_language=source_language,
            target_language=target_language,
            connection=connection,
        )

        with self._lock:
            previous = self._pending

            if previous is not None and self.policy is AdmissionPolicy.QUEUE:
                if len(self._queue) >= self.max_queued_jobs:
                    raise BridgeBusyError(
                        f"job {previous.job_id} pending, {len(self._queue)} queued"
                    )
                connection.park()
                self._queue.append(job)
                logger.info(
                    f"[{connection.id}] Job {job.job_id} queued at position {len(self._queue)}"
                )
                return job

            # Park before publishing: the engine may finish before we return.
            connection.park()
            self._pending = job
            self.channel.publish(job.to_spec())

        if previous is not None:
            logger.warning(
                f"[{previous.connection.id}] Job {previous.job_id} superseded by "
                f"{job.job_id}; that connection will not be answered"
            )
        logger.debug(f"[{connection.id}] Job {job.job_id} pending")
        return job

    # =========================================================================
    # COMPLETE
    # =========================================================================

    def complete(self, job_id: str, outcome: TranslationOutcome) -> bool:
        """
        Deliver the engine's outcome for ``job_id``.

        Returns:
            True if the outcome was routed to a connection, False if it was
            stale (superseded or discarded job) and ignored.
        """
        with self._lock:
            job = self._pending
            if job is None or job.job_id != job_id:
                logger.debug(f"Ignoring stale completion for job {job_id}")
                return False

            if self._queue:
                promoted = self._queue.popleft()
                self._pending = promoted
                self.channel.publish(promoted.to_spec())
                logger.debug(f"[{promoted.connection.id}] Job {promoted.job_id} promoted")
            else:
                self._pending = None
                self.channel.publish(None)

        conn = job.connection
        if outcome.ok:
            translated = normalize_newlines(outcome.text or "")
            self.stats.record_response(translated)
            self.writer.send_translation(conn, translated)
        else:
            self.writer.send_error(
                conn, HTTPStatus.INTERNAL_SERVER_ERROR, f"translation error: {outcome.error}"
            )

        self.resume(conn)
        return True

    # =========================================================================
    # RESET
    # =========================================================================

    def reset(self) -> int:
        """
        Discard the pending and queued jobs without answering them.

        Returns:
            How many jobs were discarded.
        """
        with self._lock:
            dropped = len(self._queue) + (1 if self._pending is not None else 0)
            self._pending = None
            self._queue.clear()
            self.channel.publish(None)
        if dropped:
            logger.info(f"Discarded {dropped} unfinished translation job(s)")
        return dropped
