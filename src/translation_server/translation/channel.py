"""
=============================================================================
JOB CHANNEL
=============================================================================

The translation engine is not called; it is *configured*. It watches one
configuration slot and starts a one-shot session whenever that slot
changes to a job it has not seen:

    TranslationBridge                          EngineRunner
    ─────────────────                          ────────────
    publish(JobSpec(id=a1, ...)) ──► [ slot ] ──► wait_for_job(last=None) → a1
    publish(JobSpec(id=b2, ...)) ──► [ slot ] ──► wait_for_job(last=a1)  → b2
    publish(None)                ──► [ slot ]     (nothing to do)

Only the job_id decides whether the slot changed. Publishing the same
text and language pair under a new id re-triggers the engine; publishing
an id that was already handled does not.

=============================================================================
"""

import threading
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class JobSpec:
    """What the engine sees of a translation job."""
    job_id: str
    text: str
    source_language: str
    target_language: str


class JobChannel:
    """
    A single observable slot holding the current JobSpec (or None).

    Writers replace the slot and wake every waiter; readers block until
    the slot holds a job id different from the one they last handled.
    """

    def __init__(self):
        self._condition = threading.Condition()
        self._current: Optional[JobSpec] = None
        self._closed = False

    def publish(self, spec: Optional[JobSpec]):
        with self._condition:
            self._current = spec
            self._condition.notify_all()

    def current(self) -> Optional[JobSpec]:
        with self._condition:
            return self._current

    def wait_for_job(self, last_job_id: Optional[str], timeout: Optional[float] = None) -> Optional[JobSpec]:
        """
        Block until the slot holds a job other than ``last_job_id``.

        Returns:
            The new JobSpec, or None on timeout or when the channel is
            closed.
        """
        def changed() -> bool:
            if self._closed:
                return True
            spec = self._current
            return spec is not None and spec.job_id != last_job_id

        with self._condition:
            if not self._condition.wait_for(changed, timeout=timeout):
                return None
            if self._closed:
                return None
            return self._current

    def close(self):
        """Wake all waiters for good; they receive None."""
        with self._condition:
            self._closed = True
            self._condition.notify_all()

    def reopen(self):
        with self._condition:
            self._closed = False
            self._current = None

    @property
    def closed(self) -> bool:
        return self._closed
