"""
Engine execution context.

EngineRunner is the thread the translation capability runs on. It never
talks to sockets: it watches the JobChannel, runs each new job exactly
once, and hands the outcome to a completion callback (the bridge's
complete()). One job at a time, in the order the channel shows them.
"""

import logging
import threading
import time
from typing import Callable, Optional

from .channel import JobChannel, JobSpec
from .engines import TranslationCapability, TranslationOutcome


logger = logging.getLogger(__name__)


CompletionCallback = Callable[[str, TranslationOutcome], object]


class EngineRunner:
    """
    Runs a TranslationCapability on a dedicated daemon thread.

    Usage:
        runner = EngineRunner(channel, EchoCapability(), bridge.complete)
        runner.start()
        ...
        runner.stop()
    """

    def __init__(
        self,
        channel: JobChannel,
        capability: TranslationCapability,
        on_complete: CompletionCallback,
        poll_interval: float = 0.5,
    ):
        self.channel = channel
        self.capability = capability
        self.on_complete = on_complete
        self.poll_interval = poll_interval

        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._last_job_id: Optional[str] = None
        self.jobs_run = 0

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self.is_running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="EngineRunner", daemon=True)
        self._thread.start()
        logger.debug(f"Engine runner started ({self.capability.name})")

    def stop(self, timeout: float = 2.0):
        """
        Stop watching the channel.

        A job already inside the capability finishes on its own, but its
        outcome is dropped: on_complete is not called after stop().
        """
        self._stop.set()
        self.channel.close()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
            if thread.is_alive():
                logger.warning(f"Engine runner still busy after {timeout}s, leaving it")
        self._thread = None

    def _run(self):
        while not self._stop.is_set():
            spec = self.channel.wait_for_job(self._last_job_id, timeout=self.poll_interval)
            if spec is None:
                continue
            self._last_job_id = spec.job_id
            outcome = self.run_job(spec)
            if self._stop.is_set():
                break
            try:
                self.on_complete(spec.job_id, outcome)
            except Exception as e:
                logger.exception(f"Completion handler failed for job {spec.job_id}: {e}")

    def run_job(self, spec: JobSpec) -> TranslationOutcome:
        """Run the capability once and capture success or failure."""
        logger.debug(
            f"Job {spec.job_id}: {spec.source_language} -> {spec.target_language}, "
            f"{len(spec.text)} chars"
        )
        started = time.time()
        try:
            text = self.capability.translate(
                spec.text, spec.source_language, spec.target_language
            )
        except Exception as e:
            logger.warning(f"Job {spec.job_id} failed: {e}")
            return TranslationOutcome.failure(str(e) or e.__class__.__name__)
        finally:
            self.jobs_run += 1

        if not isinstance(text, str):
            return TranslationOutcome.failure(
                f"engine returned {type(text).__name__}, expected str"
            )

        logger.debug(f"Job {spec.job_id} finished in {time.time() - started:.3f}s")
        return TranslationOutcome.success(text)
